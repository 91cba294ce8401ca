"""
Main FastAPI application bootstrap.
Configures logging, builds the pricing client and includes routers.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from awscost.core.config import config
from awscost.api.costs import router as costs_router
from awscost.pricing.pricing_client import PricingClient


logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Validate configuration and attach the process-wide pricing client.

    Indices are built lazily on first use; a build failure surfaces as 503
    on the requests that need pricing.
    """
    try:
        config.validate()
    except ValueError as error:
        # Fail fast with a clear message
        raise RuntimeError(f"Configuration error: {error}") from error

    logger.info(
        "Pricing region=%s, catalog=%s",
        config.PRICING_REGION,
        config.PRICING_CATALOG_FILE or config.PRICING_CACHE_DIR,
    )
    app.state.pricing_client = PricingClient.from_config()
    yield


app = FastAPI(
    title="AWS Public Pricing",
    description="Cost estimation and recommendations from AWS public on-demand pricing",
    lifespan=lifespan,
)

app.include_router(costs_router)


@app.get("/health")
async def health() -> dict:
    """Liveness check."""
    return {"status": "ok"}
