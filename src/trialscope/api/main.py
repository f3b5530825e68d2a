"""FastAPI application."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Header, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from trialscope import __version__
from trialscope.config import Settings, get_settings
from trialscope.data_sources.base_client import DataSourceError, TrialNotFoundError
from trialscope.data_sources.clinical_trials import ClinicalTrialsClient
from trialscope.models.model_clinical_trials import PageResult, Trial
from trialscope.services.analytics import AnalyticsService
from trialscope.services.query_translator import FilterContext, TrialQueryError
from trialscope.services.sequencer import StaleRequestError
from trialscope.services.trials import TrialsService

logger = logging.getLogger("trialscope.api")


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


def _request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    return str(request_id) if request_id else "unknown_request"


def _error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Any | None = None,
) -> JSONResponse:
    payload = {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "request_id": _request_id(request),
        },
    }
    response = JSONResponse(status_code=status_code, content=payload)
    response.headers["X-Request-ID"] = _request_id(request)
    return response


def trial_payload(trial: Trial) -> dict[str, Any]:
    """Trial as the UI consumes it: camelCase keys plus `id`."""
    return {
        "id": trial.nct_id,
        "nctId": trial.nct_id,
        "title": trial.title,
        "officialTitle": trial.official_title,
        "status": trial.status,
        "phase": trial.phase,
        "phases": list(trial.phases),
        "condition": trial.condition,
        "conditions": list(trial.conditions),
        "country": trial.country,
        "countries": list(trial.countries),
        "sponsor": trial.sponsor,
        "enrollmentCount": trial.enrollment_count,
        "studyType": trial.study_type,
        "startDate": trial.start_date,
        "completionDate": trial.completion_date,
        "lastUpdateDate": trial.last_update_date,
        "briefSummary": trial.brief_summary,
        "detailedDescription": trial.detailed_description,
        "locations": [loc.model_dump() for loc in trial.locations],
        "eligibilityCriteria": trial.eligibility_criteria,
        "minimumAge": trial.minimum_age,
        "maximumAge": trial.maximum_age,
        "sex": trial.sex,
    }


def page_payload(result: PageResult) -> dict[str, Any]:
    return {
        "success": True,
        "data": [trial_payload(t) for t in result.trials],
        "pagination": {
            "page": result.page,
            "limit": result.limit,
            "total": result.total,
            "totalPages": result.total_pages,
            "hasNextPage": result.has_next_page,
            "hasPrevPage": result.has_prev_page,
            "nextPageToken": result.next_page_token,
            "prevPageToken": result.prev_page_token,
            "totalIsLowerBound": result.total_is_lower_bound,
            "source": result.source,
        },
    }


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    trials_service: TrialsService | None = None,
    analytics_service: AnalyticsService | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Build the app; services are created in the lifespan unless injected."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client: ClinicalTrialsClient | None = None
        if getattr(app.state, "trials_service", None) is None:
            client = ClinicalTrialsClient(settings=settings)
            app.state.trials_service = TrialsService.create(client, settings)
            app.state.analytics_service = AnalyticsService(
                client, app.state.trials_service
            )
            logger.info("Services ready against %s", settings.api_base_url)
        try:
            yield
        finally:
            if client is not None:
                await client.close()

    app = FastAPI(
        title="TrialScope API",
        description="Clinical-trials search and analytics over ClinicalTrials.gov",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.trials_service = trials_service
    app.state.analytics_service = analytics_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    # -- Error mapping -------------------------------------------------------

    @app.exception_handler(TrialNotFoundError)
    async def not_found_handler(request: Request, exc: TrialNotFoundError) -> JSONResponse:
        return _error_response(
            request,
            status.HTTP_404_NOT_FOUND,
            "TRIAL_NOT_FOUND",
            "Trial not found",
            {"nctId": exc.nct_id},
        )

    @app.exception_handler(DataSourceError)
    async def upstream_handler(request: Request, exc: DataSourceError) -> JSONResponse:
        logger.error("Upstream failure on %s: %s", request.url.path, exc)
        return _error_response(
            request,
            status.HTTP_502_BAD_GATEWAY,
            "UPSTREAM_UNAVAILABLE",
            "Could not query the clinical trials registry",
            {"source": exc.source, "status_code": exc.status_code},
        )

    @app.exception_handler(TrialQueryError)
    async def query_error_handler(request: Request, exc: TrialQueryError) -> JSONResponse:
        status_code = (
            status.HTTP_409_CONFLICT
            if isinstance(exc, StaleRequestError)
            else status.HTTP_400_BAD_REQUEST
        )
        return _error_response(request, status_code, exc.code, exc.message, exc.details)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error_response(request, exc.status_code, "HTTP_ERROR", str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "VALIDATION_ERROR",
            "Request validation failed",
            jsonable_errors(exc),
        )

    # -- Routes --------------------------------------------------------------

    def trials(request: Request) -> TrialsService:
        return request.app.state.trials_service

    def analytics(request: Request) -> AnalyticsService:
        return request.app.state.analytics_service

    def filter_context(
        search_term: str | None,
        condition: list[str] | None,
        country: list[str] | None,
        status_: str | None,
        phase: str | None,
        limit: int,
    ) -> FilterContext:
        return FilterContext(
            search_term=search_term,
            conditions=condition or (),
            countries=country or (),
            status=status_,
            phase=phase,
            page_size=min(limit, settings.max_page_size),
        )

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    @app.get("/api/trials")
    async def list_trials(
        request: Request,
        search_term: str | None = Query(None, alias="searchTerm"),
        condition: list[str] | None = Query(None),
        country: list[str] | None = Query(None),
        status_: str | None = Query(None, alias="status"),
        phase: str | None = Query(None),
        page: int = Query(1, ge=1),
        limit: int = Query(settings.default_page_size, ge=1),
        page_token: str | None = Query(None, alias="pageToken"),
        client_session: str | None = Header(None, alias="X-Client-Session"),
    ) -> dict[str, Any]:
        context = filter_context(search_term, condition, country, status_, phase, limit)
        result = await trials(request).get_trials(
            context, page=page, page_token=page_token, channel=client_session
        )
        return page_payload(result)

    @app.get("/api/trials/count")
    async def count_trials(
        request: Request,
        search_term: str | None = Query(None, alias="searchTerm"),
        condition: list[str] | None = Query(None),
        country: list[str] | None = Query(None),
        status_: str | None = Query(None, alias="status"),
        phase: str | None = Query(None),
    ) -> dict[str, Any]:
        context = filter_context(
            search_term, condition, country, status_, phase, settings.default_page_size
        )
        count = await trials(request).get_total_count(context)
        return {"success": True, "data": count.model_dump()}

    @app.get("/api/trials/{nct_id}")
    async def get_trial(nct_id: str, request: Request) -> dict[str, Any]:
        trial = await trials(request).get_trial(nct_id)
        return {"success": True, "data": trial_payload(trial)}

    @app.get("/api/analytics/countries")
    async def country_analytics(request: Request) -> dict[str, Any]:
        result = await analytics(request).get_country_analytics()
        return analytics_payload(result)

    @app.get("/api/analytics/statuses")
    async def status_analytics(request: Request) -> dict[str, Any]:
        result = await analytics(request).get_status_analytics()
        return analytics_payload(result)

    @app.get("/api/analytics/phases")
    async def phase_analytics(request: Request) -> dict[str, Any]:
        result = await analytics(request).get_phase_analytics()
        return analytics_payload(result)

    @app.get("/api/analytics/phase-distribution")
    async def phase_distribution(request: Request) -> dict[str, Any]:
        distribution = await analytics(request).get_phase_distribution()
        return {"success": True, "data": distribution.model_dump()}

    return app


def analytics_payload(result) -> dict[str, Any]:
    return {
        "success": True,
        "data": [row.model_dump() for row in result.data],
        "complete": result.is_complete,
        "fallback": result.fallback,
        "errors": result.errors,
    }


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


app = create_app()
