"""Notification templates.

Each kind has a subject, a plain-text body and an HTML body. Text templates
render verbatim; HTML templates render with autoescaping so task titles and
comment previews cannot inject markup into emails.
"""

from typing import Any

from jinja2 import BaseLoader, Environment

# Jinja2 environments for template rendering
_text_env = Environment(loader=BaseLoader(), autoescape=False, keep_trailing_newline=False)
_html_env = Environment(loader=BaseLoader(), autoescape=True, keep_trailing_newline=False)


def render_text(template_str: str, variables: dict[str, Any]) -> str:
    """Render a plain-text template string."""
    return _text_env.from_string(template_str).render(**variables)


def render_html(template_str: str, variables: dict[str, Any]) -> str:
    """Render an HTML template string with every variable escaped."""
    return _html_env.from_string(template_str).render(**variables)


# =============================================================================
# Task templates
# =============================================================================

TASK_ASSIGNED = {
    "subject": "[Task Assigned] {{ task_title }}",
    "text": 'You have been assigned to task "{{ task_title }}". Due: {{ due_date }}',
    "html": (
        "<p>You have been assigned to task <strong>{{ task_title }}</strong>.</p>"
        "<p>Due: {{ due_date }}</p>"
    ),
}

TASK_UNASSIGNED = {
    "subject": "[Task Unassigned] {{ task_title }}",
    "text": 'You have been unassigned from task "{{ task_title }}".',
    "html": "<p>You have been unassigned from task <strong>{{ task_title }}</strong>.</p>",
}

TASK_STATUS_CHANGED = {
    "subject": "[Task Status Changed] {{ task_title }}: {{ old_status }} → {{ new_status }}",
    "text": (
        'Task "{{ task_title }}" status changed from {{ old_status }} to {{ new_status }}. '
        "Due: {{ due_date }}"
    ),
    "html": (
        "<p>Task <strong>{{ task_title }}</strong> status changed: "
        "<strong>{{ old_status }}</strong> → <strong>{{ new_status }}</strong>.</p>"
        "<p>Due: {{ due_date }}</p>"
    ),
}

COMMENT_MENTION = {
    "subject": "[Mentioned] {{ actor_name }} mentioned you on {{ task_title }}",
    "text": (
        '{{ actor_name }} mentioned you on task "{{ task_title }}".'
        "{% if comment_preview %} Comment: {{ comment_preview }}{% endif %}"
    ),
    "html": (
        "<p><strong>{{ actor_name }}</strong> mentioned you on task "
        "<strong>{{ task_title }}</strong>.</p>"
        "{% if comment_preview %}<p>Comment: {{ comment_preview }}</p>{% endif %}"
    ),
}

TASK_MEMBER_ADDED = {
    "subject": "[Added to Task] {{ task_title }}",
    "text": '{{ actor_name }} added you to task "{{ task_title }}". Due: {{ due_date }}',
    "html": (
        "<p><strong>{{ actor_name }}</strong> added you to task "
        "<strong>{{ task_title }}</strong>.</p><p>Due: {{ due_date }}</p>"
    ),
}

TASK_REMINDER = {
    "subject": "[Reminder] {{ task_title }}",
    "text": (
        'Task "{{ task_title }}" is due '
        "{% if days_until_due == 0 %}TODAY!"
        "{% elif days_until_due == 1 %}TOMORROW!"
        "{% else %}in {{ days_until_due }} days!{% endif %}"
    ),
    "html": (
        "<p>Task <strong>{{ task_title }}</strong> is due "
        "{% if days_until_due == 0 %}<strong>today</strong>"
        "{% elif days_until_due == 1 %}<strong>tomorrow</strong>"
        "{% else %}in {{ days_until_due }} days{% endif %}.</p>"
        "<p>Due: {{ due_date }}</p>"
    ),
}

TASK_OVERDUE = {
    "subject": "[Overdue]: {{ task_title }}",
    "text": 'Task "{{ task_title }}" is now OVERDUE (due {{ due_date }}).',
    "html": (
        "<p>Task <strong>{{ task_title }}</strong> is now <strong>overdue</strong>.</p>"
        "<p>Due: {{ due_date }}</p>"
    ),
}


# =============================================================================
# Project templates
# =============================================================================

PROJECT_MEMBER_ADDED = {
    "subject": "[Added to Project] {{ project_name }}",
    "text": '{{ actor_name }} added you to project "{{ project_name }}".',
    "html": (
        "<p><strong>{{ actor_name }}</strong> added you to project "
        "<strong>{{ project_name }}</strong>.</p>"
    ),
}
