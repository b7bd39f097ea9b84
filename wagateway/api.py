from __future__ import annotations

import logging
import math
from typing import Any, Optional

from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictStr, ValidationError, field_validator
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import gateway_config

from . import __version__
from .adapters import build_adapter_factory
from .credentials import FileCredentialStore
from .manager import (
    OUTCOME_BACKOFF,
    OUTCOME_CONNECTED,
    OUTCOME_QR,
    CapacityError,
    DispatchError,
    InfoPendingError,
    SessionConflictError,
    SessionLifecycleManager,
)
from .registry import STATUS_DISCONNECTED, STATUS_ERROR, STATUS_INITIALIZING
from .validation import MAX_BODY_LENGTH, is_valid_tenant_id, normalize_destination


logger = logging.getLogger("wagateway.api")

KNOWN_ROUTES = [
    "GET /health",
    "GET /info",
    "GET /metrics",
    "GET /session/:tenantId/status",
    "GET /session/:tenantId/qr",
    "GET /session/:tenantId/info",
    "GET /session/:tenantId/profile-pic",
    "POST /session/:tenantId/send",
    "POST /session/:tenantId/reconnect",
    "DELETE /session/:tenantId/logout",
]

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

CAPACITY_MESSAGE = "Session capacity reached. Please try again later."
INITIALIZING_MESSAGE = "Session is initializing. Please poll again shortly."


class SendRequest(BaseModel):
    """Outbound message; ``number``/``message`` are accepted as legacy names."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    destination: StrictStr = Field(
        validation_alias=AliasChoices("destination", "number")
    )
    body: StrictStr = Field(validation_alias=AliasChoices("body", "message"))

    @field_validator("destination")
    @classmethod
    def _normalize_destination(cls, value: str) -> str:
        normalized = normalize_destination(value)
        if normalized is None:
            raise ValueError("destination must contain between 10 and 15 digits")
        return normalized

    @field_validator("body")
    @classmethod
    def _check_body(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("body must not be empty")
        if len(value) > MAX_BODY_LENGTH:
            raise ValueError(f"body must be at most {MAX_BODY_LENGTH} characters")
        return value


def _json(body: dict[str, Any], status_code: int = 200, **extra_headers: str) -> JSONResponse:
    headers = dict(NO_STORE_HEADERS)
    headers.update(extra_headers)
    return JSONResponse(body, status_code=status_code, headers=headers)


def _error_summary(errors: list[Any]) -> list[dict[str, Any]]:
    summary: list[dict[str, Any]] = []
    for error in errors:
        if not isinstance(error, dict):
            continue
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        summary.append({"field": ".".join(loc) or None, "message": error.get("msg")})
    return summary


def create_app() -> FastAPI:
    cfg = gateway_config()
    credentials = FileCredentialStore(cfg.auth_data_path)
    manager = SessionLifecycleManager(
        cfg,
        build_adapter_factory(cfg, credentials),
        credentials,
    )

    app = FastAPI(title="wagateway", version=__version__)
    app.state.session_manager = manager
    app.state.config = cfg

    @app.on_event("startup")
    async def _startup() -> None:
        logger.info(
            "stage=startup adapter=%s max_sessions=%s idle_timeout_ms=%s auth_data_path=%s",
            cfg.adapter,
            cfg.max_sessions,
            cfg.idle_timeout_ms,
            cfg.auth_data_path,
        )
        await manager.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await manager.shutdown()

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return _json(
            {
                "success": False,
                "message": "Invalid request payload.",
                "errors": _error_summary(list(exc.errors())),
            },
            status_code=400,
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _json(
                {"success": False, "message": "Route not found.", "routes": KNOWN_ROUTES},
                status_code=404,
            )
        return _json(
            {"success": False, "message": str(exc.detail)},
            status_code=exc.status_code,
        )

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception):
        logger.exception(
            "event=unhandled_error method=%s path=%s", request.method, request.url.path
        )
        return _json(
            {"success": False, "message": "Internal server error."},
            status_code=500,
        )

    def _check_tenant(tenant_id: str) -> Optional[JSONResponse]:
        if is_valid_tenant_id(tenant_id):
            return None
        logger.warning("event=invalid_tenant_id tenant=%r", tenant_id[:80])
        return _json(
            {"success": False, "message": "Invalid tenant id."},
            status_code=400,
        )

    def _capacity_response() -> JSONResponse:
        return _json(
            {
                "success": False,
                "status": STATUS_DISCONNECTED,
                "message": CAPACITY_MESSAGE,
            },
            status_code=503,
        )

    def _safe_stats_snapshot() -> dict[str, Any]:
        try:
            snapshot = manager.stats_snapshot()
            if isinstance(snapshot, dict):
                return snapshot
        except Exception:
            logger.warning("event=stats_snapshot_failed", exc_info=True)
        return {"sessions": 0, "max_sessions": cfg.max_sessions, "by_status": {}}

    @app.get("/session/{tenant_id}/status")
    async def session_status(tenant_id: str):
        invalid = _check_tenant(tenant_id)
        if invalid is not None:
            return invalid
        status = manager.get_status(tenant_id)
        body: dict[str, Any] = {"success": True, "status": status}
        if status == STATUS_ERROR:
            record = manager.get_record(tenant_id)
            if record is not None and record.error_detail:
                body["message"] = record.error_detail
        return _json(body)

    @app.get("/session/{tenant_id}/qr")
    async def session_qr(tenant_id: str):
        invalid = _check_tenant(tenant_id)
        if invalid is not None:
            return invalid
        try:
            outcome = await manager.get_qr_or_initialize(tenant_id)
        except CapacityError:
            return _capacity_response()

        if outcome.kind == OUTCOME_CONNECTED:
            return _json(
                {
                    "success": True,
                    "status": outcome.status,
                    "message": "Client is already connected.",
                }
            )
        if outcome.kind == OUTCOME_QR:
            return _json({"success": True, "status": outcome.status, "qr": outcome.qr})
        if outcome.kind == OUTCOME_BACKOFF:
            retry_after = max(1, math.ceil(outcome.retry_after or 0))
            return _json(
                {
                    "success": False,
                    "status": outcome.status,
                    "message": "Session failed recently. Please retry later.",
                    "retry_after": retry_after,
                },
                status_code=202,
                **{"Retry-After": str(retry_after)},
            )
        return _json(
            {
                "success": True,
                "status": outcome.status or STATUS_INITIALIZING,
                "message": INITIALIZING_MESSAGE,
            },
            status_code=202,
        )

    @app.get("/session/{tenant_id}/info")
    async def session_info(tenant_id: str):
        invalid = _check_tenant(tenant_id)
        if invalid is not None:
            return invalid
        try:
            info = await manager.get_info(tenant_id)
        except SessionConflictError as exc:
            return _json(
                {"success": False, "status": exc.status, "message": "Client is not ready."},
                status_code=409,
            )
        except InfoPendingError:
            return _json(
                {
                    "success": False,
                    "message": "Client info not available yet. Please try again.",
                },
                status_code=202,
            )
        return _json({"success": True, "info": info})

    @app.get("/session/{tenant_id}/profile-pic")
    async def session_profile_pic(tenant_id: str):
        invalid = _check_tenant(tenant_id)
        if invalid is not None:
            return invalid
        try:
            url = await manager.get_profile_pic(tenant_id)
        except SessionConflictError as exc:
            return _json(
                {"success": False, "status": exc.status, "message": "Client is not ready."},
                status_code=409,
            )
        except InfoPendingError:
            return _json(
                {"success": False, "message": "Client info not available yet."},
                status_code=202,
            )
        except DispatchError as exc:
            return _json(
                {
                    "success": False,
                    "message": "Failed to get profile picture.",
                    "error": exc.detail,
                },
                status_code=500,
            )
        return _json({"success": True, "url": url})

    @app.post("/session/{tenant_id}/send")
    async def session_send(tenant_id: str, raw_payload: dict[str, Any] = Body(...)):
        invalid = _check_tenant(tenant_id)
        if invalid is not None:
            return invalid
        try:
            payload = SendRequest.model_validate(raw_payload)
        except ValidationError as exc:
            logger.info(
                "event=send_rejected tenant_id=%s reason=validation errors=%s",
                tenant_id,
                exc.error_count(),
            )
            return _json(
                {
                    "success": False,
                    "message": 'The "destination" and "body" fields are required and must be valid.',
                    "errors": _error_summary(exc.errors()),
                },
                status_code=400,
            )

        try:
            message_id = await manager.send_message(
                tenant_id, payload.destination, payload.body
            )
        except SessionConflictError as exc:
            return _json(
                {
                    "success": False,
                    "status": exc.status,
                    "message": "Client is not ready. Cannot send message.",
                },
                status_code=409,
            )
        except DispatchError as exc:
            return _json(
                {
                    "success": False,
                    "message": "Failed to send message.",
                    "error": exc.detail,
                },
                status_code=500,
            )
        body: dict[str, Any] = {"success": True, "message": "Message sent successfully."}
        if message_id is not None:
            body["id"] = message_id
        return _json(body)

    @app.post("/session/{tenant_id}/reconnect")
    async def session_reconnect(tenant_id: str):
        invalid = _check_tenant(tenant_id)
        if invalid is not None:
            return invalid
        logger.info("event=reconnect_requested tenant_id=%s", tenant_id)
        try:
            record = await manager.reconnect(tenant_id)
        except CapacityError:
            return _capacity_response()
        return _json(
            {
                "success": True,
                "status": record.status,
                "message": "Reconnection process initiated.",
            }
        )

    @app.delete("/session/{tenant_id}/logout")
    async def session_logout(tenant_id: str):
        invalid = _check_tenant(tenant_id)
        if invalid is not None:
            return invalid
        logger.info("event=logout_requested tenant_id=%s", tenant_id)
        await manager.logout(tenant_id)
        return _json(
            {
                "success": True,
                "message": "Logout process initiated and session is being cleaned up.",
            }
        )

    @app.get("/health")
    async def health():
        stats = _safe_stats_snapshot()
        return {
            "ok": True,
            "sessions": int(stats.get("sessions", 0) or 0),
            "max_sessions": int(stats.get("max_sessions", cfg.max_sessions) or 0),
            "by_status": dict(stats.get("by_status") or {}),
        }

    @app.get("/info")
    async def service_info():
        return {
            "name": "wa-session-gateway",
            "version": __version__,
            "adapter": cfg.adapter,
            "max_sessions": cfg.max_sessions,
            "idle_timeout_ms": cfg.idle_timeout_ms,
            "routes": KNOWN_ROUTES,
        }

    @app.get("/metrics")
    async def metrics():
        data = generate_latest()
        return PlainTextResponse(data.decode("utf-8"), media_type=CONTENT_TYPE_LATEST)

    return app


__all__ = ["KNOWN_ROUTES", "SendRequest", "create_app"]
