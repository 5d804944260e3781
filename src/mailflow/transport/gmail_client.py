"""Gmail REST adapter implementing the mail gateway."""

from __future__ import annotations

import base64
import binascii
import logging
import re
from collections.abc import Iterator
from html import unescape
from types import TracebackType
from typing import Any

import httpx

from ..core.config import GmailSettings
from ..core.datetime_utils import from_epoch_millis
from ..core.interfaces import (
    MailAuthError,
    MailGateway,
    MailGatewayError,
    MailNetworkError,
)
from ..core.models import CanonicalMessage, FetchResult

LOGGER = logging.getLogger(__name__)

_TAG_PATTERN = re.compile(r"<[^>]+>")
_WHITESPACE_PATTERN = re.compile(r"[ \t]+")


class GmailGateway(MailGateway):
    """Fetch new Gmail messages by history cursor or search query."""

    def __init__(
        self,
        settings: GmailSettings,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Bind settings; an ``httpx.AsyncClient`` may be supplied for reuse."""
        self._settings = settings
        self._client = client or httpx.AsyncClient(timeout=settings.timeout_seconds)
        self._owns_client = client is None

    # Context manager helpers -------------------------------------------------
    async def __aenter__(self) -> GmailGateway:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # Public API ---------------------------------------------------------------
    async def fetch_new_messages(self, since: str | None) -> FetchResult:
        """Return messages added after ``since`` (or matching the query).

        The new cursor is read before listing. History pages are followed
        to the end; ``max_results`` only sizes each page.
        """
        profile = await self._get_json("profile")
        history_id = profile.get("historyId") if profile else None

        message_ids: list[str] | None = None
        if since is not None:
            message_ids = await self._list_history(since)
        if message_ids is None:
            message_ids = await self._list_by_query()

        messages: list[CanonicalMessage] = []
        for message_id in message_ids:
            payload = await self._get_json(
                f"messages/{message_id}", params={"format": "full"}, allow_missing=True
            )
            if payload is None:
                LOGGER.debug("Message %s disappeared before download", message_id)
                continue
            messages.append(parse_gmail_message(payload))

        LOGGER.info(
            "Fetched %s Gmail message(s); history cursor %s", len(messages), history_id
        )
        return FetchResult(
            messages=messages,
            new_checkpoint=str(history_id) if history_id is not None else None,
        )

    async def aclose(self) -> None:
        """Release the HTTP client if this gateway created it."""
        if self._owns_client:
            await self._client.aclose()

    # Internal helpers --------------------------------------------------------
    async def _list_by_query(self) -> list[str]:
        data = await self._get_json(
            "messages",
            params={"q": self._settings.query, "maxResults": self._settings.max_results},
        )
        return [item["id"] for item in (data or {}).get("messages", []) if "id" in item]

    async def _list_history(self, start_history_id: str) -> list[str] | None:
        """Return ids added since the cursor, or ``None`` when it has expired."""
        ids: list[str] = []
        page_token: str | None = None
        while True:
            params: dict[str, Any] = {
                "startHistoryId": start_history_id,
                "historyTypes": "messageAdded",
                "maxResults": self._settings.max_results,
            }
            if page_token:
                params["pageToken"] = page_token
            data = await self._get_json("history", params=params, allow_missing=True)
            if data is None:
                LOGGER.info(
                    "History cursor %s expired; falling back to query listing",
                    start_history_id,
                )
                return None
            for record in data.get("history", []):
                for added in record.get("messagesAdded", []):
                    message_id = added.get("message", {}).get("id")
                    if message_id and message_id not in ids:
                        ids.append(message_id)
            page_token = data.get("nextPageToken")
            if not page_token:
                return ids

    async def _get_json(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        allow_missing: bool = False,
    ) -> dict[str, Any] | None:
        token = self._settings.access_token
        if not token:
            raise MailAuthError("Gmail access token is not configured")
        url = f"{self._settings.base_url.rstrip('/')}/users/{self._settings.user_id}/{path}"
        try:
            response = await self._client.get(
                url, params=params, headers={"Authorization": f"Bearer {token}"}
            )
        except httpx.TransportError as exc:
            raise MailNetworkError(f"Unable to reach Gmail: {exc}") from exc

        if response.status_code in (401, 403):
            raise MailAuthError(f"Gmail rejected credentials (HTTP {response.status_code})")
        if response.status_code == 404 and allow_missing:
            return None
        if response.is_error:
            raise MailGatewayError(
                f"Gmail request {path} failed with HTTP {response.status_code}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise MailGatewayError(f"Gmail returned invalid JSON for {path}") from exc


def parse_gmail_message(payload: dict[str, Any]) -> CanonicalMessage:
    """Normalise a ``format=full`` Gmail message into a canonical record."""
    part = payload.get("payload", {})
    headers = {
        header.get("name", "").lower(): header.get("value", "")
        for header in part.get("headers", [])
    }
    body = _extract_body(part) or unescape(payload.get("snippet", ""))
    return CanonicalMessage(
        message_id=payload["id"],
        subject=headers.get("subject") or "(No Subject)",
        sender=headers.get("from") or "Unknown",
        body=body.strip(),
        received_at=from_epoch_millis(payload.get("internalDate")),
    )


def _extract_body(part: dict[str, Any]) -> str:
    plain = next(_iter_bodies(part, "text/plain"), None)
    if plain is not None:
        return plain
    html = next(_iter_bodies(part, "text/html"), None)
    if html is not None:
        return _strip_html(html)
    return ""


def _iter_bodies(part: dict[str, Any], mime_type: str) -> Iterator[str]:
    if part.get("mimeType") == mime_type:
        data = part.get("body", {}).get("data")
        if data:
            decoded = _decode_base64url(data)
            if decoded is not None:
                yield decoded
    for child in part.get("parts", []) or []:
        yield from _iter_bodies(child, mime_type)


def _decode_base64url(data: str) -> str | None:
    padded = data + "=" * (-len(data) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError):
        LOGGER.debug("Skipping undecodable message part")
        return None
    return raw.decode("utf-8", errors="replace")


def _strip_html(payload: str) -> str:
    text = _TAG_PATTERN.sub(" ", payload)
    text = _WHITESPACE_PATTERN.sub(" ", unescape(text))
    return "\n".join(line.strip() for line in text.splitlines() if line.strip())


__all__ = ["GmailGateway", "parse_gmail_message"]
