from devsync.models.comment import Comment
from devsync.models.label import TaskLabel, task_label_assignments
from devsync.models.notification import Notification, NotificationType
from devsync.models.project import Project
from devsync.models.project_member import ProjectMember, ProjectRole
from devsync.models.task import ACTIVE_TASK_STATUSES, Task, TaskPriority, TaskStatus
from devsync.models.team import Team
from devsync.models.team_member import TeamMember, TeamRole
from devsync.models.user import User

__all__ = [
    "ACTIVE_TASK_STATUSES",
    "Comment",
    "Notification",
    "NotificationType",
    "Project",
    "ProjectMember",
    "ProjectRole",
    "Task",
    "TaskLabel",
    "TaskPriority",
    "TaskStatus",
    "Team",
    "TeamMember",
    "TeamRole",
    "User",
    "task_label_assignments",
]
