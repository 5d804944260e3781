"""To-do backend adapters: an external list API and Google Tasks."""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.config import TodoSettings
from ..core.interfaces import TodoGateway, TodoGatewayError
from ..core.models import TodoList

LOGGER = logging.getLogger(__name__)


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class AddTodoRequest(_ApiModel):
    text: str
    creator_name: str = Field(default="MailFlow", alias="creatorName")


class AddTodoResponse(_ApiModel):
    success: bool
    todo_id: str | None = Field(default=None, alias="todoId")
    error: str | None = None


class CreateListRequest(_ApiModel):
    name: str
    creator_name: str = Field(default="MailFlow", alias="creatorName")


class CreateListResponse(_ApiModel):
    success: bool
    list_id: str | None = Field(default=None, alias="listId")
    url: str | None = None
    error: str | None = None


class _HttpGateway:
    """Shared async HTTP plumbing for the to-do adapters."""

    def __init__(
        self, settings: TodoSettings, client: httpx.AsyncClient | None
    ) -> None:
        self._settings = settings
        self._client = client or httpx.AsyncClient(timeout=settings.timeout_seconds)
        self._owns_client = client is None

    async def __aenter__(self) -> Any:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Release the HTTP client if this gateway created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        response = await self._client.request(
            method, url, headers=headers, json=json, params=params
        )
        if response.is_error:
            raise TodoGatewayError(
                f"{method} {url} failed with HTTP {response.status_code}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise TodoGatewayError(f"{method} {url} returned invalid JSON") from exc


class ExternalTodoApiGateway(_HttpGateway, TodoGateway):
    """Client for the shared-list HTTP API (``/lists/{listId}/todos``)."""

    def __init__(
        self, settings: TodoSettings, *, client: httpx.AsyncClient | None = None
    ) -> None:
        super().__init__(settings, client)

    async def add_todo(self, list_name: str, text: str) -> None:
        """Append ``text`` to the list identified by ``list_name``."""
        request = AddTodoRequest(text=text, creator_name=self._settings.creator_name)
        data = await self._request(
            "POST",
            self._url(f"lists/{quote(list_name, safe='')}/todos"),
            headers=self._headers(),
            json=request.model_dump(by_alias=True),
        )
        response = _validate(AddTodoResponse, data)
        if not response.success:
            raise TodoGatewayError(response.error or "Unknown API error")
        LOGGER.debug("Added todo %s to list %s", response.todo_id, list_name)

    async def create_list(self, name: str) -> TodoList:
        """Create a list and return its identifier and share URL."""
        request = CreateListRequest(name=name, creator_name=self._settings.creator_name)
        data = await self._request(
            "POST",
            self._url("lists"),
            headers=self._headers(),
            json=request.model_dump(by_alias=True),
        )
        response = _validate(CreateListResponse, data)
        if not response.success or not response.list_id:
            raise TodoGatewayError(response.error or "List creation failed")
        LOGGER.info("Created list %s (%s)", name, response.list_id)
        return TodoList(list_id=response.list_id, url=response.url)

    def _url(self, path: str) -> str:
        return f"{self._settings.base_url.rstrip('/')}/{path}"

    def _headers(self) -> dict[str, str]:
        if self._settings.api_key:
            return {"Authorization": f"Bearer {self._settings.api_key}"}
        return {}


class GoogleTasksGateway(_HttpGateway, TodoGateway):
    """Client for Google Tasks that resolves task lists by title."""

    def __init__(
        self, settings: TodoSettings, *, client: httpx.AsyncClient | None = None
    ) -> None:
        super().__init__(settings, client)
        self._list_ids: dict[str, str] = {}

    async def add_todo(self, list_name: str, text: str) -> None:
        """Insert a task titled ``text`` into the list titled ``list_name``."""
        list_id = await self._resolve_list(list_name)
        data = await self._request(
            "POST",
            self._url(f"lists/{quote(list_id, safe='')}/tasks"),
            headers=self._headers(),
            json={"title": text},
        )
        LOGGER.debug("Created Google task %s in list %s", data.get("id"), list_name)

    async def create_list(self, name: str) -> TodoList:
        """Create a task list titled ``name``."""
        data = await self._request(
            "POST",
            self._url("users/@me/lists"),
            headers=self._headers(),
            json={"title": name},
        )
        list_id = data.get("id")
        if not list_id:
            raise TodoGatewayError("Google Tasks did not return a list id")
        self._list_ids[name] = list_id
        return TodoList(list_id=list_id, url=data.get("selfLink"))

    async def _resolve_list(self, name: str) -> str:
        if name in self._list_ids:
            return self._list_ids[name]
        page_token: str | None = None
        while True:
            params: dict[str, Any] = {"maxResults": 100}
            if page_token:
                params["pageToken"] = page_token
            data = await self._request(
                "GET",
                self._url("users/@me/lists"),
                headers=self._headers(),
                params=params,
            )
            for item in data.get("items", []):
                if item.get("title") == name and item.get("id"):
                    self._list_ids[name] = item["id"]
                    return item["id"]
            page_token = data.get("nextPageToken")
            if not page_token:
                break
        LOGGER.info("Task list %s not found; creating it", name)
        created = await self.create_list(name)
        return created.list_id

    def _url(self, path: str) -> str:
        return f"{self._settings.tasks_base_url.rstrip('/')}/{path}"

    def _headers(self) -> dict[str, str]:
        token = self._settings.tasks_access_token
        if not token:
            raise TodoGatewayError("Google Tasks access token is not configured")
        return {"Authorization": f"Bearer {token}"}


def build_todo_gateway(
    settings: TodoSettings, *, client: httpx.AsyncClient | None = None
) -> ExternalTodoApiGateway | GoogleTasksGateway:
    """Return the adapter for the configured backend."""
    if settings.backend == "google_tasks":
        return GoogleTasksGateway(settings, client=client)
    return ExternalTodoApiGateway(settings, client=client)


def _validate(model: type[_ApiModel], data: Any) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise TodoGatewayError(f"Unexpected response payload: {exc}") from exc


__all__ = [
    "AddTodoRequest",
    "AddTodoResponse",
    "CreateListRequest",
    "CreateListResponse",
    "ExternalTodoApiGateway",
    "GoogleTasksGateway",
    "build_todo_gateway",
]
