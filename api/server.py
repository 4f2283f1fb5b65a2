"""
StateLab — API Server

FastAPI application serving:
  POST /api/work-orders                    — create a work order (DRAFT)
  GET  /api/work-orders?state=             — list, optionally by state
  GET  /api/work-orders/stats              — dashboard statistics
  GET  /api/work-orders/{id}               — fetch one (ETag / If-None-Match)
  POST /api/work-orders/{id}/transition    — apply an action (If-Match)
  GET  /api/work-orders/{id}/events        — audit history, newest first
  GET  /health                             — liveness

The entity version doubles as the ETag. A stale If-Match is a 409, the
same outcome as losing the race inside the service.

Usage:
    uvicorn api.server:app --host 0.0.0.0 --port 8080
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from api.models import (
    CreateWorkOrderRequest,
    TransitionRequest,
    WorkOrderResponse,
    format_etag,
    parse_etag,
)
from statelab.exceptions import (
    ConcurrencyConflict,
    InvalidOperationError,
    NotFoundError,
)
from statelab.service import WorkOrderService, build_service
from statelab.types import WorkOrder

logger = logging.getLogger("statelab.api")


def _work_order_response(wo: WorkOrder, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=WorkOrderResponse.from_work_order(wo).to_dict(),
        headers={"ETag": format_etag(wo.version)},
    )


async def _read_body(request: Request) -> dict[str, Any] | None:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


def create_app(service: WorkOrderService | None = None, config: Any = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    The service is built lazily from config on first use, so tests can
    inject one and importing this module stays side-effect free.
    """
    app = FastAPI(
        title="StateLab API",
        version="0.1.0",
        description="Work order lifecycle with optimistic concurrency",
    )

    _service: WorkOrderService | None = service

    def get_service() -> WorkOrderService:
        nonlocal _service
        if _service is None:
            if config is None:
                from statelab.config_loader import get_config
                _service = build_service(get_config())
            else:
                _service = build_service(config)
        return _service

    # ── Error mapping ─────────────────────────────────────────

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={
            "error": "Not Found", "message": str(exc),
        })

    @app.exception_handler(InvalidOperationError)
    async def invalid_operation(request: Request, exc: InvalidOperationError):
        return JSONResponse(status_code=400, content={
            "error": "Invalid Transition or Guard Violation", "message": str(exc),
        })

    @app.exception_handler(ConcurrencyConflict)
    async def conflict(request: Request, exc: ConcurrencyConflict):
        return JSONResponse(status_code=409, content={
            "error": "Conflict",
            "message": "The work order has been modified by another request. "
                       "Please refresh and try again.",
        })

    # ── Work orders ───────────────────────────────────────────

    @app.post("/api/work-orders")
    async def create_work_order(request: Request):
        body = await _read_body(request)
        if body is None:
            return JSONResponse(status_code=422, content={"errors": ["request body must be a JSON object"]})
        req = CreateWorkOrderRequest(
            title=body.get("title"),
            description=body.get("description", ""),
        )
        errors = req.validate()
        if errors:
            return JSONResponse(status_code=422, content={"errors": errors})

        wo = get_service().create(req.title, req.description)
        return _work_order_response(wo, status_code=201)

    @app.get("/api/work-orders")
    async def list_work_orders(state: str | None = None):
        try:
            work_orders = get_service().list_by_state(state)
        except ValueError:
            return JSONResponse(status_code=422, content={"errors": [f"unknown state: {state}"]})
        return JSONResponse(content=[
            WorkOrderResponse.from_work_order(wo).to_dict() for wo in work_orders
        ])

    # Declared before /{work_order_id} so "stats" is not taken as an id
    @app.get("/api/work-orders/stats")
    async def get_stats():
        return JSONResponse(content=get_service().get_dashboard_stats().to_dict())

    @app.get("/api/work-orders/{work_order_id}")
    async def get_work_order(work_order_id: str, request: Request):
        wo = get_service().get_by_id(work_order_id)
        if_none_match = request.headers.get("if-none-match")
        if if_none_match:
            try:
                if parse_etag(if_none_match) in (None, wo.version):
                    return Response(status_code=304, headers={"ETag": format_etag(wo.version)})
            except ValueError:
                pass
        return _work_order_response(wo)

    @app.post("/api/work-orders/{work_order_id}/transition")
    async def transition_work_order(work_order_id: str, request: Request):
        body = await _read_body(request)
        if body is None:
            return JSONResponse(status_code=422, content={"errors": ["request body must be a JSON object"]})
        req = TransitionRequest(action=body.get("action"), notes=body.get("notes"))
        errors = req.validate()
        if errors:
            return JSONResponse(status_code=422, content={"errors": errors})

        service = get_service()
        expected_version = None
        if_match = request.headers.get("if-match")
        if if_match:
            try:
                expected_version = parse_etag(if_match)
            except ValueError:
                current = service.get_by_id(work_order_id)
                raise ConcurrencyConflict(work_order_id, -1, current.version)

        wo = service.transition(
            work_order_id, req.action, notes=req.notes,
            expected_version=expected_version,
        )
        return _work_order_response(wo)

    @app.get("/api/work-orders/{work_order_id}/events")
    async def get_events(work_order_id: str):
        events = get_service().get_history(work_order_id)
        return JSONResponse(content=[e.to_dict() for e in events])

    # ── Health ────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return JSONResponse(content={"status": "ok", "timestamp": time.time()})

    return app


# ── Module-level app for uvicorn ──────────────────────────────

app = create_app()
