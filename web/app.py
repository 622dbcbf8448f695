"""
FastAPI application for the comparable-sales estimator.

Production deployment configuration via environment variables.
"""

import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.estimator import (
    AggregateRollup,
    AnthropicTextClient,
    DataAccessError,
    GeographyLevel,
    InMemoryTenantSettingsStore,
    InMemoryTransactionStore,
    InsightAugmenter,
    InvalidSpecError,
    JsonAdjustmentOverrideStore,
    JsonTransactionStore,
    SummaryStore,
    ValuationEngine,
    __version__,
)
from utils.config import Config

logger = logging.getLogger(__name__)

# =============================================================================
# Environment Configuration
# =============================================================================

IS_PRODUCTION = os.getenv("PRODUCTION", "").lower() == "true"

ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "").split(",") if os.getenv("ALLOWED_ORIGINS") else []
if not ALLOWED_ORIGINS and not IS_PRODUCTION:
    ALLOWED_ORIGINS = ["http://localhost:8000", "http://127.0.0.1:8000"]


# =============================================================================
# Request Models
# =============================================================================

class ComparablesRequest(BaseModel):
    """Subject unit and request context."""
    subject: Dict[str, Any]
    direction: Optional[str] = None
    tenant_id: Optional[str] = None

    def subject_with_direction(self) -> Dict[str, Any]:
        if self.direction:
            return {**self.subject, "direction": self.direction}
        return dict(self.subject)


class EstimateRequest(ComparablesRequest):
    """Estimate request. Narrative is opt-in."""
    include_narrative: bool = False


class RefreshRequest(BaseModel):
    """PSF rollup scope. Empty means every level."""
    levels: Optional[List[str]] = None


def _parse_level(value: str) -> GeographyLevel:
    level = GeographyLevel.from_string(value)
    if level is None:
        raise HTTPException(status_code=404, detail=f"Unknown geography level: {value}")
    return level


def build_engine(config: Config) -> ValuationEngine:
    """Wire the engine from configuration."""
    if config.transactions_file:
        store = JsonTransactionStore(config.transactions_file)
    else:
        logger.warning("TRANSACTIONS_FILE not set; starting with an empty transaction store")
        store = InMemoryTransactionStore()

    overrides = JsonAdjustmentOverrideStore(config.adjustments_file) if config.adjustments_file else None

    augmenter = InsightAugmenter(
        AnthropicTextClient(api_url=config.insights_api_url, model=config.insights_model),
        timeout=config.insights_timeout,
    )
    return ValuationEngine(
        store,
        settings_store=InMemoryTenantSettingsStore(),
        config=config.engine_config(),
        augmenter=augmenter,
        override_store=overrides,
    )


def create_app(
    engine: Optional[ValuationEngine] = None,
    rollup: Optional[AggregateRollup] = None,
    config: Optional[Config] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        engine: Pre-built engine (default: wired from configuration)
        rollup: Pre-built PSF rollup sharing the engine's store
        config: Application configuration (default: from environment)
    """
    config = config or Config.load()

    app = FastAPI(
        title="Comparable-Sales Estimator",
        description="Price and rent estimates from recent comparable transactions",
        version=__version__,
        docs_url=None if IS_PRODUCTION else "/docs",
        redoc_url=None if IS_PRODUCTION else "/redoc",
        openapi_url=None if IS_PRODUCTION else "/openapi.json",
        debug=config.debug and not IS_PRODUCTION,
    )

    # Healthcheck endpoints first: no dependencies, no IO
    @app.get("/", include_in_schema=False)
    def root():
        return {"status": "ok"}

    @app.get("/health", include_in_schema=False)
    def health():
        return {"status": "healthy", "version": __version__}

    if ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

    @app.exception_handler(InvalidSpecError)
    async def invalid_spec_handler(request, exc: InvalidSpecError):
        return JSONResponse(status_code=422, content={"detail": "Invalid subject", "errors": exc.errors})

    @app.exception_handler(DataAccessError)
    async def data_access_handler(request, exc: DataAccessError):
        logger.error("Data access failure: %s", exc)
        return JSONResponse(status_code=503, content={"detail": "Transaction data unavailable"})

    if engine is None:
        engine = build_engine(config)
    if rollup is None:
        rollup = AggregateRollup(engine.store, SummaryStore())

    # =========================================================================
    # Estimator API
    # =========================================================================

    @app.post("/api/estimate")
    def estimate(request: EstimateRequest):
        """Estimate sale price or monthly rent for a subject unit."""
        result = engine.estimate(
            request.subject_with_direction(),
            tenant_id=request.tenant_id,
            include_narrative=request.include_narrative,
        )
        return result.to_dict()

    @app.post("/api/comparables")
    def comparables(request: ComparablesRequest):
        """Comparable selection only, for auditing the search."""
        match = engine.match_comparables(
            request.subject_with_direction(),
            tenant_id=request.tenant_id,
        )
        return match.to_dict()

    # =========================================================================
    # PSF Summaries
    # =========================================================================

    @app.get("/api/psf/{level}/{geography_id}")
    def psf_summary(level: str, geography_id: str):
        """Latest PSF summary for one geography."""
        summary = rollup.summaries.get(_parse_level(level), geography_id)
        if summary is None:
            raise HTTPException(status_code=404, detail="No summary for this geography")
        return summary.to_dict()

    @app.post("/api/psf/refresh")
    def psf_refresh(request: Optional[RefreshRequest] = None):
        """Recompute PSF summaries. Blocks while a run for the same scope is in flight."""
        levels = None
        if request is not None and request.levels:
            levels = [_parse_level(value) for value in request.levels]
        report = rollup.run(levels)
        return report.to_dict()

    return app


# Create app instance for uvicorn
app = create_app()
