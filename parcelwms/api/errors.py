# parcelwms/api/errors.py
from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from parcelwms.api.problem import make_problem, new_trace_id
from parcelwms.services.errors import WmsError

logger = logging.getLogger("parcelwms")

_HTTP_CODES = {
    400: "INVALID_INPUT",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    423: "INVENTORY_ACTIVE",
}


def _validation_details(exc: RequestValidationError) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p != "body"]
        out.append({"type": "validation", "path": ".".join(loc), "reason": str(err.get("msg", ""))})
    return out


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(WmsError)
    async def _wms_exc(_req: Request, exc: WmsError):
        trace_id = new_trace_id()
        if exc.status >= 500:
            logger.error("[%s] %s: %s", trace_id, exc.code, exc.message)
        else:
            logger.info("[%s] %s %s: %s", trace_id, exc.status, exc.code, exc.message)
        return JSONResponse(
            status_code=exc.status,
            content=make_problem(
                status_code=exc.status,
                error_code=exc.code,
                message=exc.message,
                extra=exc.extra,
                trace_id=trace_id,
            ),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_exc(_req: Request, exc: RequestValidationError):
        details = _validation_details(exc)
        first = details[0]["path"] if details else ""
        return JSONResponse(
            status_code=400,
            content=make_problem(
                status_code=400,
                error_code="INVALID_INPUT",
                message=f"Invalid request: {first}" if first else "Invalid request",
                details=details,
            ),
        )

    @app.exception_handler(HTTPException)
    async def _http_exc(_req: Request, exc: HTTPException):
        code = _HTTP_CODES.get(exc.status_code, "HTTP_ERROR")
        message = exc.detail
        if isinstance(exc.detail, dict):
            code = str(exc.detail.get("error_code") or code)
            message = exc.detail.get("message") or exc.detail.get("error") or code
        return JSONResponse(
            status_code=exc.status_code,
            content=make_problem(status_code=exc.status_code, error_code=code, message=str(message)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def _unhandled_exc(_req: Request, exc: Exception):
        trace_id = new_trace_id()
        logger.exception("[%s] UNHANDLED_EXC: %s", trace_id, exc)
        return JSONResponse(
            status_code=500,
            content=make_problem(
                status_code=500,
                error_code="INTERNAL_ERROR",
                message=str(exc) or type(exc).__name__,
                trace_id=trace_id,
            ),
        )
