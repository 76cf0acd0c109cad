"""
Probe backend.

A small FastAPI service that runs TCP reachability probes from wherever it
is deployed and streams the progress back as NDJSON. The RemoteProber is its
client.

Every line is `{"code": ..., "message": ..., "data": ...}`:
- code 1: progress of one connect attempt
- code 0: the terminal result
- code 2: error
"""

import json
from typing import AsyncIterator, Optional

from fastapi import FastAPI, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from .audit_logger import AuditLogger
from .enums import LogLevel
from .models import ProbeProgress
from .prober import CODE_PROGRESS, CODE_RESULT, RESOLVE_IP_PATH, TCP_CHECKS_PATH, LocalProber

CODE_ERROR = 2


class ProbeRequest(BaseModel):
    target: str = Field(min_length=1, max_length=253)
    port: int = Field(default=80, ge=1, le=65535)
    key: str = ""


def _line(code: int, message: str, data: Optional[dict] = None) -> str:
    return json.dumps({"code": code, "message": message, "data": data}) + "\n"


def create_app(
    key: str,
    prober: Optional[LocalProber] = None,
    public_ip: str = "",
    logger: Optional[AuditLogger] = None,
) -> FastAPI:
    """
    Build the backend application.

    Args:
        key: Shared secret every request must carry
        prober: Prober used for checks (defaults to a 5 x 1s LocalProber)
        public_ip: Public address reported back with every result
        logger: Optional audit logger
    """
    prober = prober or LocalProber()
    app = FastAPI(
        title="dns-failover probe backend",
        description="TCP reachability probes streamed as NDJSON",
        docs_url=None,
        redoc_url=None,
    )

    def log(level: LogLevel, message: str, data: dict) -> None:
        if logger:
            logger.log(level, "ProbeBackend", message, data)

    def check_key(request: ProbeRequest) -> None:
        if not key or request.key != key:
            log(LogLevel.WARN, "Rejected request with invalid key", {"target": request.target})
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid or missing key",
            )

    async def stream_check(target: str, port: int) -> AsyncIterator[str]:
        async for event in prober.stream(target, port):
            if isinstance(event, ProbeProgress):
                yield _line(CODE_PROGRESS, "progress", {
                    "current": event.current,
                    "total": event.total,
                    "target": event.target,
                    "address": event.address,
                })
                continue
            log(
                LogLevel.INFO,
                f"Checked {target}:{port}",
                {"reachable": event.reachable, "target_ip": event.target_ip},
            )
            yield _line(CODE_RESULT, event.message or "ok", {
                "result": event.reachable,
                "target": event.target,
                "target_ip": event.target_ip,
                "message": event.message,
                "backend_public_ip": public_ip,
                "exhausted": event.exhausted,
                "attempts": event.attempts,
            })

    @app.post(TCP_CHECKS_PATH)
    async def tcp_checks(request: ProbeRequest) -> StreamingResponse:
        """Probe target:port and stream progress, then the result."""
        check_key(request)
        return StreamingResponse(
            stream_check(request.target.strip().lower(), request.port),
            media_type="application/x-ndjson",
        )

    @app.post(RESOLVE_IP_PATH)
    async def resolve_ip(request: ProbeRequest) -> dict:
        """Resolve a hostname without probing it."""
        check_key(request)
        target = request.target.strip().lower()
        try:
            target_ip = await prober.resolve(target, request.port)
        except OSError as e:
            return {"code": CODE_ERROR, "message": f"cannot resolve {target}: {e}", "data": None}
        return {"code": CODE_RESULT, "message": "ok", "data": {"target_ip": target_ip}}

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app
