"""Lifecycle of one asynchronous case-generation job."""

from __future__ import annotations

import asyncio
from functools import partial
import json
import logging
from typing import Any, Callable, Protocol

from inquest.config import COMPLETION_EXPIRY_SECONDS
from inquest.domain.enums import STAGE_TAGS, GenerationStatus
from inquest.domain.models import GenerationAccepted, GenerationJob, SourceSelection
from inquest.errors import AuthenticationError, TransportError
from inquest.transport.stream import EventHandler, StreamEvent, Subscription, TransportErrorHandler
from inquest.util.ids import PublicId, require_public_id

logger = logging.getLogger(__name__)

GENERATION_FAILED_MESSAGE = "사건 생성 요청에 실패했습니다."
IN_PROGRESS = frozenset({GenerationStatus.DRAFTING_STORY, GenerationStatus.RENDERING_IMAGES})

Listener = Callable[[GenerationJob], None]


class GenerationBackend(Protocol):
    async def start_session_async(self, selection: SourceSelection) -> GenerationAccepted: ...

    def open_generation_stream(
        self,
        on_event: EventHandler,
        on_transport_error: TransportErrorHandler | None = None,
    ) -> Subscription: ...


def _decode(data: str) -> dict[str, Any] | None:
    try:
        decoded = json.loads(data)
    except ValueError:
        return None
    return decoded if isinstance(decoded, dict) else None


class GenerationJobController:
    """Drives ``idle -> drafting-story -> rendering-images -> complete`` from push events.

    Every start, restore and clear bumps an epoch. Responses and stream
    events carry the epoch they were issued under and are dropped when it no
    longer matches, so a clear makes any in-flight work inert without
    cancelling the network call itself.
    """

    def __init__(
        self,
        backend: GenerationBackend,
        *,
        expiry_delay: float = COMPLETION_EXPIRY_SECONDS,
    ) -> None:
        self._backend = backend
        self._expiry_delay = expiry_delay
        self._status = GenerationStatus.IDLE
        self._job_id: PublicId | None = None
        self._error_message: str | None = None
        self._subscription: Subscription | None = None
        self._expiry: asyncio.TimerHandle | None = None
        self._epoch = 0
        self._listeners: list[Listener] = []

    @property
    def status(self) -> GenerationStatus:
        return self._status

    @property
    def job_id(self) -> PublicId | None:
        return self._job_id

    @property
    def error_message(self) -> str | None:
        return self._error_message

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None

    def snapshot(self) -> GenerationJob:
        return GenerationJob(
            status=self._status,
            job_id=self._job_id,
            error_message=self._error_message,
        )

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def start(self, selection: SourceSelection) -> None:
        if self._status != GenerationStatus.IDLE:
            logger.debug("Generation already %s; start ignored", self._status)
            return
        epoch = self._advance()
        self._update(GenerationStatus.DRAFTING_STORY, job_id=None, error_message=None)
        try:
            accepted = await self._backend.start_session_async(selection)
        except TransportError as exc:
            if epoch != self._epoch:
                logger.debug("Dropping create-job failure for a superseded job")
                return
            logger.warning("Create-job request rejected: %s", exc)
            self._update(
                GenerationStatus.FAILED,
                job_id=None,
                error_message=exc.message or GENERATION_FAILED_MESSAGE,
            )
            return
        if epoch != self._epoch:
            logger.debug("Dropping create-job response for a superseded job")
            return
        self._subscribe(epoch)
        self._update(self._status, job_id=accepted.public_id, error_message=None)

    def restore(self, public_id: str) -> None:
        """Follow a job started elsewhere (e.g. before a reload) without creating one."""
        if self._status != GenerationStatus.IDLE:
            logger.debug("Generation already %s; restore ignored", self._status)
            return
        job_id = require_public_id(public_id)
        epoch = self._advance()
        self._subscribe(epoch)
        self._update(GenerationStatus.DRAFTING_STORY, job_id=job_id, error_message=None)

    def clear(self) -> None:
        self._advance()
        self._update(GenerationStatus.IDLE, job_id=None, error_message=None)

    close = clear

    def _advance(self) -> int:
        self._epoch += 1
        self._cancel_expiry()
        self._unsubscribe()
        return self._epoch

    def _subscribe(self, epoch: int) -> None:
        self._unsubscribe()
        self._subscription = self._backend.open_generation_stream(
            partial(self._on_event, epoch),
            partial(self._on_transport_error, epoch),
        )

    def _unsubscribe(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    def _cancel_expiry(self) -> None:
        if self._expiry is not None:
            self._expiry.cancel()
            self._expiry = None

    def _update(
        self,
        status: GenerationStatus,
        *,
        job_id: PublicId | None,
        error_message: str | None,
    ) -> None:
        if status != self._status:
            logger.info("Generation %s -> %s", self._status.value, status.value)
        if status != GenerationStatus.COMPLETE:
            self._cancel_expiry()
        self._status = status
        self._job_id = job_id
        self._error_message = error_message
        job = self.snapshot()
        for listener in list(self._listeners):
            listener(job)

    def _on_event(self, epoch: int, event: StreamEvent) -> None:
        if epoch != self._epoch:
            logger.debug("Dropping %s event from a superseded subscription", event.event)
            return
        payload = _decode(event.data)
        if event.event == "progress":
            self._on_progress(payload)
        elif event.event == "complete":
            self._on_complete(epoch, payload)
        elif event.event == "error":
            self._on_failure(payload)
        else:
            logger.debug("Ignoring unknown stream event %r", event.event)

    def _on_progress(self, payload: dict[str, Any] | None) -> None:
        tag = payload.get("stage") if payload else None
        stage = STAGE_TAGS.get(tag) if isinstance(tag, str) else None
        if stage is None:
            logger.debug("Ignoring malformed progress event: %r", payload)
            return
        if self._status not in IN_PROGRESS:
            return
        self._update(stage, job_id=self._job_id, error_message=None)

    def _on_complete(self, epoch: int, payload: dict[str, Any] | None) -> None:
        public_id = payload.get("publicId") if payload else None
        if not isinstance(public_id, str) or not public_id.strip():
            logger.debug("Ignoring malformed complete event: %r", payload)
            return
        self._unsubscribe()
        self._update(GenerationStatus.COMPLETE, job_id=PublicId(public_id.strip()), error_message=None)
        loop = asyncio.get_running_loop()
        self._expiry = loop.call_later(self._expiry_delay, self._expire, epoch)

    def _on_failure(self, payload: dict[str, Any] | None) -> None:
        if payload is None:
            # An error frame without a readable body is a transport hiccup.
            logger.debug("Ignoring error event without a JSON body")
            return
        message = payload.get("message")
        if not isinstance(message, str) or not message.strip():
            message = GENERATION_FAILED_MESSAGE
        self._unsubscribe()
        self._update(GenerationStatus.FAILED, job_id=self._job_id, error_message=message)

    def _on_transport_error(self, epoch: int, exc: Exception) -> None:
        if epoch != self._epoch:
            return
        if isinstance(exc, AuthenticationError) and self._status in IN_PROGRESS:
            # The stream gave up; no further events will arrive for this job.
            self._unsubscribe()
            self._update(
                GenerationStatus.FAILED,
                job_id=self._job_id,
                error_message=exc.message or GENERATION_FAILED_MESSAGE,
            )
            return
        logger.debug("Generation stream interrupted while %s: %s", self._status.value, exc)

    def _expire(self, epoch: int) -> None:
        self._expiry = None
        if epoch != self._epoch or self._status != GenerationStatus.COMPLETE:
            return
        logger.info("Completed generation was not picked up; resetting")
        self._advance()
        self._update(GenerationStatus.IDLE, job_id=None, error_message=None)
