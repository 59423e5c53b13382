from . import analytics, auth, comments, health, labels, metrics, notifications, projects, realtime, tasks, teams

__all__ = [
    "analytics",
    "auth",
    "comments",
    "health",
    "labels",
    "metrics",
    "notifications",
    "projects",
    "realtime",
    "tasks",
    "teams",
]
