"""Taskflow: task authorization and lifecycle engine."""
