"""Domain models and DTOs."""

from studioflow.domain.actor import Actor, ActorRole, classify_role
from studioflow.domain.create_models import ActivityCreate, DeliverableCreate, StatusChangeCreate, TaskCreate
from studioflow.domain.notification import Notification, NotificationType
from studioflow.domain.project import Project
from studioflow.domain.task import ActivityType, Task, TaskPriority, TaskStatus, TaskType
from studioflow.domain.update_models import TaskUpdate
from studioflow.domain.user import TaskDifficulty, User


__all__ = [
    "ActivityCreate",
    "ActivityType",
    "Actor",
    "ActorRole",
    "DeliverableCreate",
    "Notification",
    "NotificationType",
    "Project",
    "StatusChangeCreate",
    "Task",
    "TaskCreate",
    "TaskDifficulty",
    "TaskPriority",
    "TaskStatus",
    "TaskType",
    "TaskUpdate",
    "User",
    "classify_role",
]
