# storefront/http_problem_handlers.py
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from storefront.api.problem import make_problem
from storefront.services.inventory_errors import (
    ConcurrencyConflictError,
    InsufficientStockError,
    NotFoundError,
    StoreUnavailableError,
)

logger = logging.getLogger("storefront")

_RETRY = [{"action": "retry", "label": "Try again"}]


def _new_trace_id() -> str:
    return f"t_{uuid.uuid4().hex[:12]}"


def _request_ctx(req: Request, **extra: Any) -> Dict[str, Any]:
    return {"path": req.url.path, "method": req.method, **extra}


def _respond(req: Request, status_code: int, error_code: str, message: str, **kw: Any) -> JSONResponse:
    kw.setdefault("trace_id", _new_trace_id())
    kw["context"] = _request_ctx(req, **(kw.get("context") or {}))
    body = make_problem(status_code=status_code, error_code=error_code, message=message, **kw)
    return JSONResponse(status_code=status_code, content=body)


def _validation_details(errors) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for e in errors:
        if not isinstance(e, dict):
            continue
        loc = [str(p) for p in e.get("loc", ()) if p != "body"]
        out.append(
            {
                "type": "validation",
                "path": ".".join(loc) or None,
                "reason": str(e.get("msg") or e.get("type") or "invalid"),
            }
        )
    return out


def register_exception_handlers(app: FastAPI) -> None:
    """
    Domain errors → Problem JSON:

      InsufficientStockError   409 insufficient_stock (details carry available_qty)
      ConcurrencyConflictError 409 concurrency_conflict (retry suggested)
      NotFoundError            404 not_found
      StoreUnavailableError    503 store_unavailable
    """

    @app.exception_handler(InsufficientStockError)
    async def _insufficient_stock(req: Request, exc: InsufficientStockError):
        return _respond(
            req,
            409,
            "insufficient_stock",
            f"Only {exc.available} items available",
            details=[
                {
                    "type": "shortage",
                    "variant_id": exc.variant_id,
                    "required_qty": exc.requested,
                    "available_qty": exc.available,
                }
            ],
        )

    @app.exception_handler(ConcurrencyConflictError)
    async def _concurrency_conflict(req: Request, exc: ConcurrencyConflictError):
        logger.info("concurrency conflict on %s %s: %s", req.method, req.url.path, exc)
        return _respond(
            req,
            409,
            "concurrency_conflict",
            "The cart changed while we were updating it, please try again",
            details=[{"type": "conflict", "variant_id": exc.variant_id, "reason": str(exc)}],
            next_actions=_RETRY,
        )

    @app.exception_handler(NotFoundError)
    async def _not_found(req: Request, exc: NotFoundError):
        return _respond(req, 404, "not_found", str(exc), context={"entity": exc.entity, "key": str(exc.key)})

    @app.exception_handler(StoreUnavailableError)
    async def _store_unavailable(req: Request, exc: StoreUnavailableError):
        trace_id = _new_trace_id()
        logger.warning("STORE_UNAVAILABLE[%s]: %s", trace_id, exc)
        return _respond(
            req,
            503,
            "store_unavailable",
            "Inventory is temporarily unavailable, please try again",
            next_actions=_RETRY,
            trace_id=trace_id,
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_exc(req: Request, exc: RequestValidationError):
        return _respond(
            req,
            422,
            "request_validation_error",
            "Invalid request parameters",
            details=_validation_details(exc.errors()),
        )

    @app.exception_handler(HTTPException)
    async def _http_exc(req: Request, exc: HTTPException):
        d = exc.detail
        if isinstance(d, dict) and "error_code" in d and "message" in d:
            # raised through raise_problem: keep its fields, add request context
            body = dict(d)
            body.setdefault("trace_id", _new_trace_id())
            body["http_status"] = int(exc.status_code)
            body["context"] = _request_ctx(req, **(body.get("context") or {}))
            return JSONResponse(status_code=int(exc.status_code), content=body)

        msg = str(d) if d is not None else "request rejected"
        return _respond(req, int(exc.status_code), "http_error", msg, details=[{"type": "state", "reason": msg}])

    @app.exception_handler(Exception)
    async def _unhandled_exc(req: Request, exc: Exception):
        trace_id = _new_trace_id()
        logger.exception("UNHANDLED_EXC[%s]: %s", trace_id, exc)
        return _respond(req, 500, "internal_error", "Internal error, please retry later", trace_id=trace_id)
