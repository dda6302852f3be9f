"""
FastAPI control surface exposing streams to remote consumers.

Each session owns one :class:`~streambly.scope.StreamScope`.  Clients read
snapshots over REST, invoke controller operations, and follow changes over
a WebSocket.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Mapping, Optional

from fastapi import FastAPI, HTTPException, Request, Response, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..config import ServerSettings
from ..errors import ErrorKind, StreamError
from ..scope import StreamScope
from ..stream import LifecycleState
from . import schemas

LOG = logging.getLogger(__name__)

ERROR_STATUS = {
    ErrorKind.START_FAILED: 500,
    ErrorKind.CLEANUP_FAILED: 500,
    ErrorKind.MUTATION_REJECTED: 409,
    ErrorKind.NOT_RUNNING: 409,
    ErrorKind.ALREADY_STOPPED: 409,
    ErrorKind.STREAM_IN_ERROR_STATE: 409,
}


def _no_seed() -> Any:
    return None


@dataclass
class StreamDefinition:
    initializer: Callable[..., Any]
    seed_factory: Callable[[], Any] = _no_seed
    context: Any = None


class SessionLimitReached(RuntimeError):
    """Raised when ``max_sessions`` scopes are already open."""


@dataclass
class Session:
    id: str
    stream_name: str
    scope: StreamScope

    def snapshot(self, value: Any = None, *, use_value: bool = False) -> schemas.SessionSnapshot:
        state = self.scope.state()
        version: Optional[int] = None
        if state is LifecycleState.RUNNING:
            stream = self.scope.stream
            version = stream.version()
            if not use_value:
                value = self.scope.select()
        elif not use_value:
            value = None
        return schemas.SessionSnapshot(
            id=self.id,
            stream=self.stream_name,
            state=state,
            version=version,
            value=jsonable_encoder(value),
        )


class SessionManager:
    """Track open scopes by session id."""

    def __init__(self, catalog: Mapping[str, StreamDefinition], settings: ServerSettings) -> None:
        self.catalog = dict(catalog)
        self.settings = settings
        self._sessions: Dict[str, Session] = {}
        self._lock = asyncio.Lock()
        # Slots held by opens whose initializer has not settled yet.
        self._pending = 0

    def __len__(self) -> int:
        return len(self._sessions)

    @property
    def pending(self) -> int:
        return self._pending

    async def open(self, stream_name: str, seed: Any = None, *, use_seed: bool = False) -> Session:
        definition = self.catalog.get(stream_name)
        if definition is None:
            raise KeyError(stream_name)

        async with self._lock:
            if len(self._sessions) + self._pending >= self.settings.max_sessions:
                raise SessionLimitReached(f"at most {self.settings.max_sessions} sessions")
            self._pending += 1

        try:
            scope: StreamScope = StreamScope(
                definition.initializer,
                seed if use_seed else definition.seed_factory(),
                definition.context,
                options=self.settings.stream_options(),
                queue_size=self.settings.queue_size,
            )
            await scope.open()
        finally:
            self._pending -= 1

        session = Session(id=uuid.uuid4().hex, stream_name=stream_name, scope=scope)
        async with self._lock:
            self._sessions[session.id] = session

        LOG.info("Opened session %s for stream '%s'", session.id, stream_name)
        return session

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(session_id)
        return session

    async def close(self, session_id: str) -> None:
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise KeyError(session_id)
        LOG.info("Closing session %s", session_id)
        await session.scope.close()

    async def close_all(self) -> None:
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            try:
                await session.scope.close()
            except StreamError:
                LOG.exception("Failed to close session %s cleanly.", session.id)


def create_app(
    catalog: Mapping[str, StreamDefinition],
    settings: Optional[ServerSettings] = None,
    lifespan: Optional[Callable[..., Any]] = None,
) -> FastAPI:
    settings = settings or ServerSettings()
    sessions = SessionManager(catalog, settings)

    @asynccontextmanager
    async def app_lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            if lifespan is not None:
                async with lifespan(app):
                    yield
            else:
                yield
        finally:
            await sessions.close_all()

    app = FastAPI(title="Streambly API", lifespan=app_lifespan)
    app.state.sessions = sessions
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StreamError)
    async def _stream_error_handler(_request: Request, exc: StreamError) -> JSONResponse:
        return JSONResponse(status_code=ERROR_STATUS[exc.kind], content={"detail": exc.to_dict()})

    def _session_or_404(session_id: str) -> Session:
        try:
            return sessions.get(session_id)
        except KeyError:
            raise HTTPException(status_code=404, detail="Unknown session") from None

    @app.get("/healthz", response_model=schemas.HealthModel)
    async def healthz() -> schemas.HealthModel:
        return schemas.HealthModel(status="ok", sessions=len(sessions))

    @app.get("/streams", response_model=schemas.StreamCatalogModel)
    async def list_streams() -> schemas.StreamCatalogModel:
        return schemas.StreamCatalogModel(streams=sorted(sessions.catalog))

    @app.post("/streams/{name}/sessions", response_model=schemas.SessionSnapshot, status_code=201)
    async def open_session(
        name: str, payload: Optional[schemas.OpenSessionRequest] = None
    ) -> schemas.SessionSnapshot:
        use_seed = payload is not None and "seed" in payload.model_fields_set
        try:
            session = await sessions.open(name, payload.seed if use_seed else None, use_seed=use_seed)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Unknown stream '{name}'") from None
        except SessionLimitReached as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return session.snapshot()

    @app.get("/sessions/{session_id}", response_model=schemas.SessionSnapshot)
    async def read_session(session_id: str) -> schemas.SessionSnapshot:
        return _session_or_404(session_id).snapshot()

    @app.post("/sessions/{session_id}/actions/{op}", response_model=schemas.SessionSnapshot)
    async def invoke_action(
        session_id: str, op: str, payload: Optional[schemas.ActionRequest] = None
    ) -> schemas.SessionSnapshot:
        session = _session_or_404(session_id)
        request = payload or schemas.ActionRequest()
        try:
            await session.scope.invoke(op, *request.args, **request.kwargs)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Unknown operation '{op}'") from None
        except TypeError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return session.snapshot()

    @app.delete("/sessions/{session_id}", status_code=204)
    async def close_session(session_id: str) -> Response:
        try:
            await sessions.close(session_id)
        except KeyError:
            raise HTTPException(status_code=404, detail="Unknown session") from None
        return Response(status_code=204)

    @app.websocket("/sessions/{session_id}/ws")
    async def session_socket(websocket: WebSocket, session_id: str) -> None:
        try:
            session = sessions.get(session_id)
        except KeyError:
            await websocket.close(code=4404)
            return

        await websocket.accept()
        logger = LOG.getChild(f"ws.{session_id[:8]}")

        async def send_loop() -> None:
            async for value in session.scope.watch():
                payload = session.snapshot(value, use_value=True)
                await websocket.send_json({"type": "snapshot", "payload": payload.model_dump(mode="json")})

        async def send_error(detail: Any) -> None:
            await websocket.send_json({"type": "error", "detail": jsonable_encoder(detail)})

        sender = asyncio.create_task(send_loop())
        try:
            while True:
                message = await websocket.receive_json()
                try:
                    action = schemas.ActionMessage.model_validate(message)
                except ValidationError as exc:
                    await send_error(exc.errors(include_url=False, include_context=False))
                    continue
                try:
                    await session.scope.invoke(action.op, *action.args, **action.kwargs)
                except KeyError:
                    await send_error(f"Unknown operation '{action.op}'")
                except TypeError as exc:
                    await send_error(str(exc))
                except StreamError as exc:
                    await send_error(exc.to_dict())
        except WebSocketDisconnect:
            logger.debug("WebSocket client disconnected")
        finally:
            sender.cancel()
            with contextlib.suppress(asyncio.CancelledError, RuntimeError, WebSocketDisconnect):
                await sender

    return app


__all__ = ["Session", "SessionLimitReached", "SessionManager", "StreamDefinition", "create_app"]
