"""HTTP surface for the dashboard.

the response shapes here are what the react app already parses, so they're
deliberately plain dicts rather than response models - a field rename here
breaks the ui.
"""

import asyncio
import json
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from weeklybrief.auth import AuthenticatedUser, TokenVerifier, extract_bearer
from weeklybrief.errors import (
    AuthError,
    CostExceededError,
    EstimationFailedError,
    ExecutionError,
    RefreshFailedError,
    SnapshotVersionError,
    WeeklyBriefError,
)
from weeklybrief.log_utils import get_logger
from weeklybrief.service import BriefService
from weeklybrief.validation.params import build_request, validate_parameters

logger = get_logger(__name__)

# what the caller sees for each failure kind. the real error only goes to the log
_GENERIC_MESSAGES = {
    EstimationFailedError: "Query cost estimation failed",
    ExecutionError: "Query execution failed",
    RefreshFailedError: "Data refresh failed",
}


def _failure(error: Exception) -> JSONResponse:
    message = "An unexpected error occurred"
    for error_type, text in _GENERIC_MESSAGES.items():
        if isinstance(error, error_type):
            message = text
    if isinstance(error, ExecutionError) and error.kind == "timeout":
        message = "Query timed out"
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error", "message": message},
    )


def create_app(service: BriefService, verifier: TokenVerifier) -> FastAPI:
    app = FastAPI(title="Weekly Brief API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.state.service = service

    @app.exception_handler(AuthError)
    async def unauthorized(request: Request, exc: AuthError) -> JSONResponse:
        # same body for every auth failure
        logger.info("Unauthorized %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=401, content={"success": False, "error": "Unauthorized"})

    def authenticate(request: Request) -> AuthenticatedUser:
        token = extract_bearer(request.headers.get("Authorization"))
        return verifier.verify(token)

    @app.get("/health")
    def health(warehouse: bool = False) -> dict[str, str]:
        body = service.health()
        if warehouse:
            # opt-in, it costs a (tiny) query
            body["warehouse"] = "ok" if service.warehouse_health() else "unavailable"
        return body

    @app.post("/run-kpi")
    async def run_kpi(request: Request) -> JSONResponse:
        user = authenticate(request)

        try:
            body: Any = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            body = None
        if not isinstance(body, dict):
            return JSONResponse(
                status_code=400,
                content={
                    "success": False,
                    "error": "Parameter validation failed",
                    "details": ["request body must be a JSON object"],
                },
            )

        start, end, bu = body.get("start"), body.get("end"), body.get("bu")
        errors = validate_parameters(start, end, bu)
        if errors:
            logger.info("run-kpi rejected: %s", errors)
            return JSONResponse(
                status_code=400,
                content={"success": False, "error": "Parameter validation failed", "details": errors},
            )

        query_request = build_request(start, end, bu)
        try:
            run = await asyncio.to_thread(service.run_kpi, query_request, user.subject)
        except CostExceededError as e:
            return JSONResponse(
                status_code=413,
                content={
                    "success": False,
                    "error": f"Query exceeds maximum scan limit ({e.limit_gb:g}GB)",
                    "estimated_gb": e.estimate.display_gb,
                    "limit_gb": e.limit_gb,
                },
            )
        except Exception as e:  # the contract is a json 500 for anything else
            logger.exception("run-kpi failed for %s: %s", user.subject, e)
            return _failure(e)

        return JSONResponse(content={"success": True, "data": run.rows, "metadata": run.metadata()})

    @app.api_route("/run-kpi", methods=["GET", "PUT", "PATCH", "DELETE"])
    def run_kpi_wrong_method() -> JSONResponse:
        return JSONResponse(status_code=405, content={"success": False, "error": "Method not allowed"})

    @app.post("/refresh-series")
    async def refresh_series(request: Request, persist: bool = True) -> JSONResponse:
        user = authenticate(request)
        try:
            result = await service.refresh_series(user=user.subject, persist=persist)
        except WeeklyBriefError as e:
            logger.error("refresh-series failed: %s", e)
            return _failure(e)
        return JSONResponse(content={"success": True, **result.to_dict()})

    @app.get("/table-data")
    async def table_data(request: Request, persist: bool = False) -> JSONResponse:
        user = authenticate(request)
        try:
            data = await service.fetch_table_data(user=user.subject, persist=persist)
        except CostExceededError as e:
            return JSONResponse(
                status_code=413,
                content={
                    "success": False,
                    "error": f"Query exceeds maximum scan limit ({e.limit_gb:g}GB)",
                    "estimated_gb": e.estimate.display_gb,
                    "limit_gb": e.limit_gb,
                },
            )
        except WeeklyBriefError as e:
            logger.error("table-data failed: %s", e)
            return _failure(e)
        return JSONResponse(content={"success": True, "data": data})

    @app.get("/cache/{family}")
    def cache(family: str, request: Request) -> JSONResponse:
        authenticate(request)
        try:
            status, data = service.read_cache(family)
        except SnapshotVersionError as e:
            logger.error("cache read for %s failed: %s", family, e)
            return _failure(e)
        if not status.exists:
            return JSONResponse(
                status_code=404,
                content={"success": False, "error": "No cached data", "status": status.model_dump(mode="json")},
            )
        return JSONResponse(content={"success": True, "status": status.model_dump(mode="json"), "data": data})

    return app
