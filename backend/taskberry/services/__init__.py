"""Services package."""

from taskberry.services.auth import AuthService
from taskberry.services.email import EmailNotifier, Notifier, get_notifier
from taskberry.services.hierarchy import HierarchyResolver
from taskberry.services.tasks import TaskService
from taskberry.services.users import UserService

__all__ = [
    "AuthService",
    "EmailNotifier",
    "HierarchyResolver",
    "Notifier",
    "TaskService",
    "UserService",
    "get_notifier",
]
