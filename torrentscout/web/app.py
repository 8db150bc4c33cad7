"""FastAPI app exposing torrentscout lookups for web clients."""

from __future__ import annotations

from datetime import datetime, timezone
from threading import RLock
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..core.errors import AllSourcesFailedError, InvalidRequestError, UnknownSourceError
from ..core.event_bus import Events
from .runtime import ScoutRuntime, build_runtime


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _split_codes(value: str) -> List[str]:
    return [piece.strip() for piece in (value or "").split(",") if piece.strip()]


class SourceInfo(BaseModel):
    id: str
    name: str
    enabled: bool
    lastError: Optional[str] = None
    lastErrorAt: Optional[str] = None


class SourcesResponse(BaseModel):
    sources: List[SourceInfo]


class HealthResponse(BaseModel):
    ok: bool
    sources: int
    time: str


def create_app(runtime: Optional[ScoutRuntime] = None) -> FastAPI:
    runtime = runtime or build_runtime()

    last_errors: Dict[str, Dict[str, str]] = {}
    last_errors_lock = RLock()

    def record_source_failure(data):
        payload = data or {}
        source = str(payload.get("source") or "")
        if not source:
            return
        with last_errors_lock:
            last_errors[source] = {"error": str(payload.get("error") or ""), "at": _utc_now_iso()}

    def clear_source_failure(data):
        source = str((data or {}).get("source") or "")
        with last_errors_lock:
            last_errors.pop(source, None)

    runtime.event_bus.subscribe(Events.SOURCE_FAILED, record_source_failure)
    runtime.event_bus.subscribe(Events.SOURCE_COMPLETED, clear_source_failure)

    app = FastAPI(title="torrentscout API", version="1.0.0")

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> Dict:
        return {"ok": True, "sources": len(runtime.source_manager.get_source_ids()), "time": _utc_now_iso()}

    @app.get("/api/sources", response_model=SourcesResponse)
    def sources() -> Dict:
        payload = []
        with last_errors_lock:
            errors = dict(last_errors)
        for source_id in runtime.source_manager.get_source_ids():
            entry = runtime.source_manager.get_source(source_id).describe()
            last = errors.get(entry["id"], {})
            entry.update(
                enabled=runtime.source_manager.is_source_enabled(source_id),
                lastError=last.get("error"),
                lastErrorAt=last.get("at"),
            )
            payload.append(entry)
        return {"sources": payload}

    @app.get("/api/search")
    def search(
        q: str = Query(""),
        sources: str = Query("all"),
        timeout: Optional[float] = Query(None),
    ):
        try:
            request = runtime.source_manager.build_request(q, _split_codes(sources), timeout)
        except (InvalidRequestError, UnknownSourceError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        try:
            result = runtime.source_manager.lookup(request)
        except AllSourcesFailedError as exc:
            body = exc.result.to_dict()
            body["detail"] = str(exc)
            return JSONResponse(status_code=503, content=body)

        body = result.to_dict()
        body["query"] = request.query
        body["sources"] = sorted(s.value for s in request.sources)
        return body

    return app


app = create_app()
