"""FastAPI application for the source reputation engine.

- Token authentication with explicit role allow-lists per endpoint
- Request-id propagation and structured access logs
- Safe failure modes: database outages answer 503, never partial data
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from reputation.api.router import router as api_router
import reputation.models as _models  # noqa: F401  (register all ORM models deterministically)


logger = logging.getLogger("reputation")
logger.setLevel(logging.INFO)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Source Reputation API",
        version="1.0.0",
        openapi_url="/openapi.json",
        docs_url=None,
        redoc_url=None,
        description="Community ratings, cross-reference verdicts and reliability scores for content sources.",
    )

    app.include_router(api_router)

    @app.middleware("http")
    async def request_id_and_access_log(request: Request, call_next: Callable):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        start = time.time()
        try:
            response = await call_next(request)
        except OperationalError:
            logger.warning(json.dumps({"event": "db_unavailable", "request_id": request_id}))
            return JSONResponse(
                status_code=503,
                content={"detail": "Service temporarily unavailable."},
                headers={"x-request-id": request_id},
            )
        except Exception:  # noqa: BLE001
            logger.exception("Unhandled error", extra={"request_id": request_id})
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal error."},
                headers={"x-request-id": request_id},
            )

        duration_ms = int((time.time() - start) * 1000)
        response.headers["x-request-id"] = request_id

        # No bodies or tokens in access logs.
        logger.info(
            json.dumps(
                {
                    "event": "access",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": getattr(response, "status_code", None),
                    "duration_ms": duration_ms,
                }
            )
        )
        return response

    return app


app = create_app()
