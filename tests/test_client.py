import asyncio
import json
from contextlib import asynccontextmanager

import pytest
from aiohttp import web
from aiohttp import test_utils

from conftest import make_snapshot
from inquest.config import ClientConfig
from inquest.domain.enums import SessionStatus
from inquest.domain.models import SourceSelection
from inquest.errors import (
    GENERIC_FAILURE_MESSAGE,
    AuthenticationError,
    DomainRejectedError,
    TransportError,
)
from inquest.transport import CaseClient


@asynccontextmanager
async def serve(app: web.Application, on_auth_failed=None, **config):
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        base_url = str(server.make_url("/api"))
        config = ClientConfig(base_url=base_url, **config)
        async with CaseClient(config, on_auth_failed=on_auth_failed) as client:
            yield client
    finally:
        await server.close()


def _run(coro):
    return asyncio.run(coro)


def test_endpoints_send_camel_case_payloads() -> None:
    seen = []

    async def record(request: web.Request) -> web.Response:
        body = await request.json() if request.can_read_body else None
        seen.append((request.method, request.path, body))
        if request.path.endswith("/move"):
            return web.json_response({"location": body["location"], "availableSuspects": ["Ada"]})
        if request.path.endswith("/accuse"):
            return web.json_response(
                {"correct": True, "actualKiller": "Ada", "keyClues": ["wet ink"], "status": "WON"}
            )
        if request.path.endswith("/async"):
            return web.json_response({"jobId": "gen-9"})
        return web.json_response({"answer": "I was reading.", "suspectName": "Ada"})

    app = web.Application()
    app.router.add_post("/api/sessions/async", record)
    app.router.add_post("/api/sessions/{pid}/chat", record)
    app.router.add_post("/api/sessions/{pid}/move", record)
    app.router.add_post("/api/sessions/{pid}/accuse", record)

    async def scenario() -> None:
        async with serve(app) as client:
            accepted = await client.start_session_async(SourceSelection.template(3, game_start_hour=20, game_end_hour=23))
            reply = await client.ask("abc", "Where were you?", "Ada")
            moved = await client.move("abc", "Library")
            verdict = await client.accuse("abc", "Ada")

        assert accepted.public_id == "gen-9"
        assert reply.answer == "I was reading."
        assert moved.available_suspects == ["Ada"]
        assert verdict.correct and verdict.status == SessionStatus.WON
        assert seen == [
            (
                "POST",
                "/api/sessions/async",
                {"mode": "BASIC", "basicCaseTemplateId": 3, "gameStartHour": 20, "gameEndHour": 23},
            ),
            ("POST", "/api/sessions/abc/chat", {"question": "Where were you?", "suspectName": "Ada"}),
            ("POST", "/api/sessions/abc/move", {"location": "Library"}),
            ("POST", "/api/sessions/abc/accuse", {"suspectName": "Ada"}),
        ]

    _run(scenario())


def test_unauthorized_request_refreshes_once_and_retries() -> None:
    refreshes = []

    async def get_session(request: web.Request) -> web.Response:
        if request.headers.get("Authorization") != "Bearer fresh":
            return web.json_response({"message": "expired"}, status=401)
        return web.json_response(make_snapshot(publicId=request.match_info["pid"]))

    async def refresh(request: web.Request) -> web.Response:
        refreshes.append(request.headers.get("Authorization"))
        return web.json_response({"accessToken": "fresh"})

    app = web.Application()
    app.router.add_get("/api/sessions/{pid}", get_session)
    app.router.add_post("/api/auth/refresh", refresh)

    async def scenario() -> None:
        async with serve(app, access_token="stale") as client:
            session = await client.get_session("abc")

        assert session.public_id == "abc"
        assert session.clock.remaining == 360
        assert refreshes == ["Bearer stale"]

    _run(scenario())


def test_failed_refresh_signals_auth_failure() -> None:
    calls = []

    async def rejected(request: web.Request) -> web.Response:
        calls.append(request.path)
        return web.json_response({"message": "no session"}, status=401)

    app = web.Application()
    app.router.add_get("/api/sessions/{pid}", rejected)
    app.router.add_post("/api/auth/refresh", rejected)

    async def scenario() -> None:
        failed = []
        server = test_utils.TestServer(app)
        await server.start_server()
        try:
            config = ClientConfig(base_url=str(server.make_url("/api")))
            async with CaseClient(config, on_auth_failed=lambda: failed.append(True)) as client:
                with pytest.raises(AuthenticationError):
                    await client.get_session("abc")
        finally:
            await server.close()

        assert failed == [True]
        assert calls == ["/api/sessions/abc", "/api/auth/refresh"]

    _run(scenario())


def test_client_error_carries_server_message() -> None:
    async def move(request: web.Request) -> web.Response:
        return web.json_response({"message": "진행 중인 세션이 아닙니다."}, status=409)

    app = web.Application()
    app.router.add_post("/api/sessions/{pid}/move", move)

    async def scenario() -> None:
        async with serve(app) as client:
            with pytest.raises(DomainRejectedError) as info:
                await client.move("abc", "Hall")

        assert info.value.status == 409
        assert info.value.message == "진행 중인 세션이 아닙니다."

    _run(scenario())


def test_server_error_without_message_uses_generic_text() -> None:
    async def broken(request: web.Request) -> web.Response:
        return web.Response(status=502, text="<html>bad gateway</html>")

    app = web.Application()
    app.router.add_get("/api/sessions/{pid}", broken)

    async def scenario() -> None:
        async with serve(app) as client:
            with pytest.raises(TransportError) as info:
                await client.get_session("abc")

        assert not isinstance(info.value, DomainRejectedError)
        assert info.value.message is None
        assert str(info.value) == GENERIC_FAILURE_MESSAGE

    _run(scenario())


def test_malformed_success_body_is_a_transport_error() -> None:
    async def odd(request: web.Request) -> web.Response:
        return web.json_response({"publicId": "abc"})

    app = web.Application()
    app.router.add_get("/api/sessions/{pid}", odd)

    async def scenario() -> None:
        async with serve(app) as client:
            with pytest.raises(TransportError) as info:
                await client.get_session("abc")
        assert info.value.message is None

    _run(scenario())


def test_unreachable_server_is_a_transport_error() -> None:
    async def scenario() -> None:
        async with CaseClient(ClientConfig(base_url="http://127.0.0.1:9/api", request_timeout=2)) as client:
            with pytest.raises(TransportError):
                await client.list_sessions()

    _run(scenario())


def test_blank_public_id_is_refused_before_sending() -> None:
    async def scenario() -> None:
        async with CaseClient() as client:
            with pytest.raises(ValueError):
                await client.get_session("  ")

    _run(scenario())


def test_generation_stream_reconnects_with_last_event_id() -> None:
    connections = []

    async def stream(request: web.Request) -> web.StreamResponse:
        connections.append(request.headers.get("Last-Event-ID"))
        response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await response.prepare(request)
        if len(connections) == 1:
            payload = json.dumps({"stage": "drafting-story"})
            await response.write(f"id: 1\nevent: progress\ndata: {payload}\n\n".encode())
        else:
            payload = json.dumps({"publicId": "abc"})
            await response.write(f"id: 2\nevent: complete\ndata: {payload}\n\n".encode())
        await response.write_eof()
        return response

    app = web.Application()
    app.router.add_get("/api/sessions/async/stream", stream)

    async def scenario() -> None:
        events = []
        done = asyncio.Event()

        def on_event(event) -> None:
            events.append(event)
            if event.event == "complete":
                done.set()

        async with serve(app, stream_retry_delay=0.01) as client:
            subscription = client.open_generation_stream(on_event)
            await asyncio.wait_for(done.wait(), timeout=5)
            subscription.close()
            assert subscription.closed

        assert [event.event for event in events] == ["progress", "complete"]
        assert json.loads(events[-1].data) == {"publicId": "abc"}
        assert connections[:2] == [None, "1"]

    _run(scenario())


def _sse(event: str, payload: dict) -> bytes:
    return f"event: {event}\ndata: {json.dumps(payload)}\n\n".encode()


def test_generation_stream_refreshes_token_after_401() -> None:
    seen_auth = []
    refreshes = []

    async def stream(request: web.Request) -> web.StreamResponse:
        seen_auth.append(request.headers.get("Authorization"))
        if request.headers.get("Authorization") != "Bearer new":
            return web.json_response({"message": "expired"}, status=401)
        response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await response.prepare(request)
        await response.write(_sse("complete", {"publicId": "abc"}))
        await response.write_eof()
        return response

    async def refresh(request: web.Request) -> web.Response:
        refreshes.append(request.headers.get("Authorization"))
        return web.json_response({"accessToken": "new"})

    app = web.Application()
    app.router.add_get("/api/sessions/async/stream", stream)
    app.router.add_post("/api/auth/refresh", refresh)

    async def scenario() -> None:
        events = []
        done = asyncio.Event()

        def on_event(event) -> None:
            events.append(event.event)
            done.set()

        async with serve(app, access_token="old", stream_retry_delay=0.01) as client:
            subscription = client.open_generation_stream(on_event)
            await asyncio.wait_for(done.wait(), timeout=5)
            subscription.close()

        assert events == ["complete"]
        assert refreshes == ["Bearer old"]
        assert seen_auth[:2] == ["Bearer old", "Bearer new"]

    _run(scenario())


def test_generation_stream_stops_when_refresh_is_refused() -> None:
    attempts = []

    async def rejected(request: web.Request) -> web.Response:
        attempts.append(request.path)
        return web.json_response({"message": "로그인이 필요합니다."}, status=401)

    app = web.Application()
    app.router.add_get("/api/sessions/async/stream", rejected)
    app.router.add_post("/api/auth/refresh", rejected)

    async def scenario() -> None:
        failed = []
        errors = []
        reported = asyncio.Event()

        def on_error(exc: Exception) -> None:
            errors.append(exc)
            reported.set()

        async with serve(
            app,
            on_auth_failed=lambda: failed.append(True),
            access_token="old",
            stream_retry_delay=0.01,
        ) as client:
            subscription = client.open_generation_stream(lambda event: None, on_error)
            await asyncio.wait_for(reported.wait(), timeout=5)
            await asyncio.sleep(0.05)

            assert subscription.closed

        assert failed == [True]
        assert len(errors) == 1 and isinstance(errors[0], AuthenticationError)
        assert attempts == ["/api/sessions/async/stream", "/api/auth/refresh"]

    _run(scenario())


def test_generation_stream_survives_a_failing_handler() -> None:
    async def stream(request: web.Request) -> web.StreamResponse:
        response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await response.prepare(request)
        await response.write(_sse("progress", {"stage": "drafting-story"}))
        await response.write(_sse("complete", {"publicId": "abc"}))
        await response.write_eof()
        return response

    app = web.Application()
    app.router.add_get("/api/sessions/async/stream", stream)

    async def scenario() -> None:
        events = []
        done = asyncio.Event()

        def on_event(event) -> None:
            events.append(event.event)
            if event.event == "progress":
                raise RuntimeError("listener blew up")
            done.set()

        async with serve(app, stream_retry_delay=0.01) as client:
            subscription = client.open_generation_stream(on_event)
            await asyncio.wait_for(done.wait(), timeout=5)
            assert not subscription.closed
            subscription.close()

        assert events[:2] == ["progress", "complete"]

    _run(scenario())
