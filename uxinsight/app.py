from contextlib import ExitStack, asynccontextmanager
import json
import logging
from typing import Any, Dict, List, Optional, Union

from fastapi import Body, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
import redis

from .config import Settings, get_settings
from .errors import MalformedEventIgnored, SessionClosed, UnknownSession
from .events import FrictionSignal, parse_event
from .friction.classifier import InteractionClassifier
from .friction.session import RecordingSession
from .schemas import FrictionReport, Recording, RecordingUpload, SessionCreate, format_duration
from .store import Store
from .utils.logging import setup_logging

logger = logging.getLogger(__name__)


def _redis(settings: Settings):
    if not settings.redis_url:
        return None
    return redis.Redis.from_url(settings.redis_url, decode_responses=False)


def create_app(settings: Optional[Settings] = None, queue=None, store: Optional[Store] = None) -> FastAPI:
    """Build the API.

    ``queue`` is anything with ``rpush``/``ping`` (a redis client); by
    default one is created from ``settings.redis_url``.
    """
    settings = settings or get_settings()
    setup_logging(settings.logging)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting UX Insight API")
        try:
            yield
        finally:
            # no hesitation timer may outlive the process
            for rec in list(app.state.recorders.values()):
                rec.stop()
            logger.info("UX Insight API stopped")

    app = FastAPI(title="UX Insight API", version="0.1.0", lifespan=lifespan)

    # CORS so the extension can POST from any page
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.store = store or Store()
    app.state.queue = queue if queue is not None else _redis(settings)
    app.state.classifier = InteractionClassifier(settings.classifier)
    app.state.recorders = {}

    @app.exception_handler(UnknownSession)
    async def _unknown_session(request: Request, exc: UnknownSession):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(SessionClosed)
    async def _session_closed(request: Request, exc: SessionClosed):
        return JSONResponse(status_code=409, content={"error": str(exc)})

    def _signal_sink(session_id: str, signals: List[FrictionSignal]):
        st: Store = app.state.store
        page = st.current_page(session_id)
        for s in signals:
            st.record_friction(FrictionReport.from_signal(s, session_id=session_id, page=page))

    @app.get("/health")
    def health():
        redis_ok = False
        q = app.state.queue
        if q is not None:
            try:
                q.ping()
                redis_ok = True
            except Exception as e:
                logger.warning("redis ping failed: %s", e)
        return {"ok": True, "service": "uxinsight-api", "redis": redis_ok}

    # ---------- sessions ----------

    @app.get("/api/sessions")
    def list_sessions():
        return [s.to_json_dict() for s in app.state.store.list_sessions()]

    @app.post("/api/sessions", status_code=201)
    def create_session(body: Optional[SessionCreate] = Body(None)):
        rec = app.state.store.create_session(body or SessionCreate())
        recorder = RecordingSession(
            rec.id,
            classifier=app.state.classifier,
            sink=_signal_sink,
            use_timer=settings.hesitation_timer,
        )
        app.state.recorders[rec.id] = recorder.start()
        return rec.to_json_dict()

    @app.post("/api/sessions/{session_id}/end")
    def end_session(session_id: str, body: Optional[Dict[str, Any]] = Body(None)):
        recorder = app.state.recorders.pop(session_id, None)
        if recorder is not None:
            recorder.stop()
        rec = app.state.store.end_session(session_id)
        logger.info("Ending session %s at %s", session_id, (body or {}).get("endTime", rec.ended_at))
        return {
            "success": True,
            "message": f"Session {session_id} ended successfully",
            "session": rec.to_json_dict(),
        }

    # ---------- events ----------

    @app.post("/api/events")
    def ingest(payload: Union[Dict[str, Any], List[Dict[str, Any]]] = Body(...)):
        """
        Accept either a single event or a list of events, each carrying
        its sessionId. Recognized events are sanitized, pushed to the redis
        list, stored, and run through the session's classifier.
        """
        raws = payload if isinstance(payload, list) else [payload]
        if any(not r.get("sessionId") for r in raws):
            return JSONResponse(status_code=400, content={"error": "Session ID is required"})

        recorders: Dict[str, RecordingSession] = {}
        accepted = []
        ignored = 0
        for raw in raws:
            sid = raw["sessionId"]
            if sid not in recorders:
                app.state.store.get_session(sid)
                recorder = app.state.recorders.get(sid)
                if recorder is None or not recorder.active:
                    raise SessionClosed(sid)
                recorders[sid] = recorder
            try:
                ev = parse_event(raw)
            except MalformedEventIgnored as e:
                logger.debug("ignored event for %s: %s", sid, e.reason)
                ignored += 1
                continue
            accepted.append((recorders[sid], ev))

        q = app.state.queue
        signals = []
        with ExitStack() as held:
            # an end_session arriving now waits until the whole batch is in
            for sid in sorted(recorders):
                held.enter_context(recorders[sid].lock)
            for sid, recorder in recorders.items():
                if not recorder.active:
                    raise SessionClosed(sid)

            if q is not None and accepted:
                try:
                    for recorder, ev in accepted:
                        q.rpush(settings.events_queue,
                                json.dumps({"sessionId": recorder.session_id, "event": ev.to_json_dict()}))
                except Exception as e:
                    return JSONResponse(status_code=500, content={"error": str(e)})

            for recorder, ev in accepted:
                sid = recorder.session_id
                app.state.store.add_events(sid, [ev.to_json_dict()])
                for s in recorder.observe(ev):
                    signals.append(dict(s.to_json_dict(), sessionId=sid))

        return {
            "success": True,
            "status": "queued" if q is not None else "accepted",
            "count": len(accepted),
            "ignored": ignored,
            "signals": signals,
        }

    @app.get("/api/events")
    def list_events(session_id: Optional[str] = Query(None, alias="sessionId")):
        if not session_id:
            return JSONResponse(status_code=400, content={"error": "Session ID is required"})
        return app.state.store.events_for(session_id)

    # ---------- friction points ----------

    @app.get("/api/friction-points")
    def list_friction_points():
        return [fp.to_json_dict() for fp in app.state.store.friction_points()]

    @app.post("/api/friction-points")
    def report_friction(payload: Union[Dict[str, Any], List[Dict[str, Any]]] = Body(...)):
        try:
            if isinstance(payload, list):
                reports = [FrictionReport.model_validate(p) for p in payload]
            else:
                reports = [FrictionReport.model_validate(payload)]
        except ValidationError as e:
            logger.debug("rejected friction report: %s", e)
            return JSONResponse(status_code=400, content={"error": "Invalid request"})

        results = [app.state.store.record_friction(r) for r in reports]
        if isinstance(payload, list):
            return {"accepted": len(results), "points": [fp.to_json_dict() for fp, _ in results]}
        fp, created = results[0]
        return JSONResponse(status_code=201 if created else 200, content=fp.to_json_dict())

    # ---------- recordings ----------

    @app.get("/api/recordings/{recording_id}")
    def get_recording(recording_id: str):
        rec = app.state.store.get_recording(recording_id)
        if rec is None:
            return JSONResponse(status_code=404, content={"error": "Recording not found"})
        return rec.to_json_dict()

    @app.post("/api/recordings/{recording_id}")
    def upload_recording(recording_id: str, body: RecordingUpload = Body(...)):
        app.state.store.save_recording(Recording(
            id=recording_id,
            events=body.events,
            duration=format_duration(body.duration),
        ))
        return {"success": True, "id": recording_id}

    # ---------- stats ----------

    @app.get("/api/stats")
    def stats():
        return app.state.store.stats().to_json_dict()

    return app


def main():
    import uvicorn

    settings = get_settings()
    uvicorn.run("uxinsight.app:create_app", factory=True, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
