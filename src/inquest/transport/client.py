"""Async HTTP client for the case server."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Mapping, TypeVar

import aiohttp
from pydantic import BaseModel, ValidationError

from inquest.config import ClientConfig
from inquest.domain.models import (
    AccusationResult,
    AskResult,
    GenerationAccepted,
    InvestigateResult,
    MoveResult,
    Session,
    SessionSummary,
    SourceSelection,
)
from inquest.errors import AuthenticationError, DomainRejectedError, TransportError
from inquest.transport.stream import EventHandler, EventStream, TransportErrorHandler
from inquest.util.ids import PublicId, require_public_id

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _decode_body(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


def _server_message(body: Any) -> str | None:
    if isinstance(body, Mapping):
        message = body.get("message")
        if isinstance(message, str) and message.strip():
            return message
    return None


def _parse(model: type[ModelT], body: Any) -> ModelT:
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        logger.warning("Malformed %s response: %d validation errors", model.__name__, exc.error_count())
        raise TransportError(None) from exc


class CaseClient:
    """Talks to the case server; one instance per signed-in user."""

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        http: aiohttp.ClientSession | None = None,
        on_auth_failed: Callable[[], None] | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        self._http_session = http
        self._owns_http = http is None
        self._on_auth_failed = on_auth_failed
        self._access_token = self.config.access_token

    async def __aenter__(self) -> "CaseClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_http and self._http_session is not None and not self._http_session.closed:
            await self._http_session.close()
        self._http_session = None

    def _http(self) -> aiohttp.ClientSession:
        if self._http_session is None or self._http_session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)
            self._http_session = aiohttp.ClientSession(timeout=timeout)
            self._owns_http = True
        return self._http_session

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        payload: Mapping[str, Any] | None = None,
    ) -> tuple[int, Any]:
        url = self.config.url(path)
        try:
            async with self._http().request(
                method,
                url,
                json=payload,
                headers=self._headers(),
            ) as response:
                return response.status, _decode_body(await response.text())
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise TransportError(None) from exc

    async def _request(
        self,
        method: str,
        path: str,
        payload: Mapping[str, Any] | None = None,
    ) -> Any:
        status, body = await self._send(method, path, payload)
        if status == 401 and path != self.config.refresh_path:
            logger.info("%s %s was unauthorized; refreshing credentials", method, path)
            await self._reauthorize()
            status, body = await self._send(method, path, payload)
        if status < 400:
            return body
        message = _server_message(body)
        if status == 401:
            raise AuthenticationError(message, status=status)
        if status < 500:
            raise DomainRejectedError(message, status=status)
        raise TransportError(message, status=status)

    async def _reauthorize(self) -> None:
        try:
            await self.refresh()
        except TransportError as exc:
            if self._on_auth_failed is not None:
                self._on_auth_failed()
            raise AuthenticationError(exc.message, status=exc.status or 401) from exc

    async def refresh(self) -> None:
        body = await self._request("POST", self.config.refresh_path)
        if isinstance(body, Mapping) and isinstance(body.get("accessToken"), str):
            self._access_token = body["accessToken"]

    async def list_sessions(self) -> list[SessionSummary]:
        body = await self._request("GET", "/sessions")
        if not isinstance(body, list):
            logger.warning("Malformed session list response: %s", type(body).__name__)
            raise TransportError(None)
        return [_parse(SessionSummary, item) for item in body]

    async def start_session(self, selection: SourceSelection) -> Session:
        body = await self._request("POST", "/sessions", selection.to_payload())
        return _parse(Session, body)

    async def start_session_async(self, selection: SourceSelection) -> GenerationAccepted:
        body = await self._request("POST", self.config.async_start_path, selection.to_payload())
        return _parse(GenerationAccepted, body)

    async def get_session(self, public_id: PublicId) -> Session:
        pid = require_public_id(public_id)
        return _parse(Session, await self._request("GET", f"/sessions/{pid}"))

    async def ask(self, public_id: PublicId, question: str, suspect_name: str) -> AskResult:
        pid = require_public_id(public_id)
        body = await self._request(
            "POST",
            f"/sessions/{pid}/chat",
            {"question": question, "suspectName": suspect_name},
        )
        return _parse(AskResult, body or {})

    async def move(self, public_id: PublicId, location: str) -> MoveResult:
        pid = require_public_id(public_id)
        body = await self._request("POST", f"/sessions/{pid}/move", {"location": location})
        return _parse(MoveResult, body)

    async def investigate(self, public_id: PublicId) -> InvestigateResult:
        pid = require_public_id(public_id)
        body = await self._request("POST", f"/sessions/{pid}/investigate")
        return _parse(InvestigateResult, body or {})

    async def accuse(self, public_id: PublicId, suspect_name: str) -> AccusationResult:
        pid = require_public_id(public_id)
        body = await self._request("POST", f"/sessions/{pid}/accuse", {"suspectName": suspect_name})
        return _parse(AccusationResult, body)

    def open_generation_stream(
        self,
        on_event: EventHandler,
        on_transport_error: TransportErrorHandler | None = None,
    ) -> EventStream:
        stream = EventStream(
            self._http(),
            self.config.url(self.config.stream_path),
            on_event=on_event,
            on_transport_error=on_transport_error,
            headers=self._headers,
            reauthorize=self._reauthorize,
            retry_delay=self.config.stream_retry_delay,
        )
        return stream.open()
