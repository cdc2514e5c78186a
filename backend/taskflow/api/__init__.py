"""API router package."""

from fastapi import APIRouter

from taskflow.api.v1 import health, notifications, projects, reminders, tasks

router = APIRouter()

router.include_router(health.router, tags=["Health"])
router.include_router(projects.router, prefix="/projects", tags=["Projects"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(reminders.router, tags=["Reminders"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
