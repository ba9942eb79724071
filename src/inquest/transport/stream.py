"""Server-sent event subscription for generation progress."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Awaitable, Callable, Iterable, Iterator, Mapping, Protocol

import aiohttp

from inquest.errors import AuthenticationError, TransportError

logger = logging.getLogger(__name__)

EventHandler = Callable[["StreamEvent"], None]
TransportErrorHandler = Callable[[Exception], None]
HeaderProvider = Callable[[], Mapping[str, str]]
Reauthorizer = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class StreamEvent:
    event: str
    data: str
    id: str | None = None


class Subscription(Protocol):
    @property
    def closed(self) -> bool: ...

    def close(self) -> None: ...


class SSEDecoder:
    """Incremental decoder for ``text/event-stream`` lines."""

    def __init__(self) -> None:
        self._event = ""
        self._data: list[str] = []
        self.last_event_id: str | None = None
        self.retry: float | None = None

    def feed(self, line: str) -> StreamEvent | None:
        line = line.rstrip("\r\n")
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None
        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]
        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            if "\0" not in value:
                self.last_event_id = value or None
        elif name == "retry":
            if value.isdigit():
                self.retry = int(value) / 1000
        return None

    def _dispatch(self) -> StreamEvent | None:
        event_type = self._event or "message"
        data = self._data
        self._event = ""
        self._data = []
        if not data:
            return None
        return StreamEvent(event=event_type, data="\n".join(data), id=self.last_event_id)


def parse_sse_lines(lines: Iterable[str]) -> Iterator[StreamEvent]:
    decoder = SSEDecoder()
    for line in lines:
        event = decoder.feed(line)
        if event is not None:
            yield event


class EventStream:
    """One live subscription; reconnects on its own until closed.

    Headers are read from ``headers`` on every connect so a refreshed token
    is picked up. A 401 triggers ``reauthorize`` once; if the stream is still
    refused, or ``reauthorize`` raises, the stream stops and reports an
    ``AuthenticationError`` through ``on_transport_error``.
    """

    def __init__(
        self,
        http: aiohttp.ClientSession,
        url: str,
        *,
        on_event: EventHandler,
        on_transport_error: TransportErrorHandler | None = None,
        headers: HeaderProvider | None = None,
        reauthorize: Reauthorizer | None = None,
        retry_delay: float = 3.0,
    ) -> None:
        self._http = http
        self._url = url
        self._on_event = on_event
        self._on_transport_error = on_transport_error
        self._headers = headers
        self._reauthorize = reauthorize
        self.retry_delay = retry_delay
        self._last_event_id: str | None = None
        self._reauthorized = False
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> "EventStream":
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self

    def close(self) -> None:
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _run(self) -> None:
        while not self._closed:
            try:
                await self._consume()
                if self._closed:
                    return
                logger.info("Generation stream ended; reconnecting in %.1fs", self.retry_delay)
            except AuthenticationError as exc:
                if self._closed:
                    return
                if await self._recover_auth(exc):
                    continue
                return
            except (aiohttp.ClientError, asyncio.TimeoutError, TransportError) as exc:
                if self._closed:
                    return
                logger.warning(
                    "Generation stream dropped (%s); reconnecting in %.1fs", exc, self.retry_delay
                )
                self._report(exc)
            except Exception as exc:
                if self._closed:
                    return
                logger.exception("Generation stream failed; reconnecting in %.1fs", self.retry_delay)
                self._report(exc)
            await asyncio.sleep(self.retry_delay)

    async def _recover_auth(self, exc: AuthenticationError) -> bool:
        if self._reauthorize is not None and not self._reauthorized:
            self._reauthorized = True
            logger.info("Generation stream was unauthorized; refreshing credentials")
            try:
                await self._reauthorize()
            except AuthenticationError as refused:
                exc = refused
            else:
                return True
        logger.warning("Generation stream stopped: %s", exc)
        self._closed = True
        self._report(exc)
        return False

    def _report(self, exc: Exception) -> None:
        if self._on_transport_error is not None:
            self._on_transport_error(exc)

    async def _consume(self) -> None:
        headers = {
            **(self._headers() if self._headers is not None else {}),
            "Accept": "text/event-stream",
            "Cache-Control": "no-cache",
        }
        if self._last_event_id:
            headers["Last-Event-ID"] = self._last_event_id
        timeout = aiohttp.ClientTimeout(total=None, sock_read=None)
        async with self._http.get(self._url, headers=headers, timeout=timeout) as response:
            if response.status == 401:
                raise AuthenticationError(None, status=401)
            if response.status != 200:
                raise TransportError(f"stream rejected with status {response.status}", response.status)
            self._reauthorized = False
            decoder = SSEDecoder()
            async for raw in response.content:
                event = decoder.feed(raw.decode("utf-8", errors="replace"))
                if decoder.retry is not None:
                    self.retry_delay = decoder.retry
                if event is None:
                    continue
                self._last_event_id = event.id
                if self._closed:
                    return
                self._dispatch(event)

    def _dispatch(self, event: StreamEvent) -> None:
        try:
            self._on_event(event)
        except Exception:
            logger.exception("Generation stream handler failed on %r event", event.event)
