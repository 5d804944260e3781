"""Transport adapters for external mail and to-do providers."""

from .gmail_client import GmailGateway
from .todo_client import ExternalTodoApiGateway, GoogleTasksGateway, build_todo_gateway

__all__ = [
    "ExternalTodoApiGateway",
    "GmailGateway",
    "GoogleTasksGateway",
    "build_todo_gateway",
]
