"""
API routes for cost estimation and recommendations.
"""
from typing import Dict, Any, Optional
from datetime import datetime
from fastapi import APIRouter, Request, HTTPException
from pydantic import BaseModel, Field
import logging

from awscost.core.config import config
from awscost.core.errors import (
    CostEngineError,
    PricingInitializationError,
    RegionMismatchError,
    UnsupportedResourceError,
)
from awscost.domain.recommendation_models import RecommendationFilter
from awscost.domain.resource_models import ResourceDescriptor, ResourceRequest
from awscost.pricing.aws_region_map import get_aws_pricing_location
from awscost.pricing.pricing_client import PricingClient
from awscost.services.cost_estimator import CostEstimator
from awscost.services.recommendations import RecommendationEngine


logger = logging.getLogger(__name__)
router = APIRouter()


class ResourceDescriptorModel(BaseModel):
    """Canonical resource descriptor."""
    provider: str = Field(..., description="Cloud provider (must be 'aws')")
    resource_type: str = Field(..., description="Resource type, e.g. 'ec2' or 'aws:ec2/instance:Instance'")
    sku: str = Field(..., description="Instance type, volume type, storage class, ...")
    region: str = Field(..., description="AWS region code")
    tags: Dict[str, str] = Field(default_factory=dict, description="Usage and configuration tags")

    def to_descriptor(self) -> ResourceDescriptor:
        return ResourceDescriptor(
            provider=self.provider,
            resource_type=self.resource_type,
            sku=self.sku,
            region=self.region,
            tags=dict(self.tags),
        )


class ResourceRequestModel(BaseModel):
    """Request model for projected cost and support checks."""
    resource: ResourceDescriptorModel = Field(..., description="Resource to price")


class ActualCostRequest(BaseModel):
    """Request model for windowed (actual) cost estimation."""
    resource: Optional[ResourceDescriptorModel] = Field(None, description="Explicit descriptor")
    arn: str = Field(default="", description="AWS ARN; requires a 'sku' tag")
    resource_id: str = Field(default="", description="Opaque id or JSON-encoded descriptor")
    tags: Dict[str, str] = Field(default_factory=dict, description="Resource tags")
    start: datetime = Field(..., description="Window start (ISO 8601)")
    end: datetime = Field(..., description="Window end (ISO 8601)")


class RecommendationFilterModel(BaseModel):
    """Filter selecting the resource to analyze."""
    sku: str = Field(default="", description="Instance or volume type")
    resource_type: str = Field(default="", description="Resource type (ec2, ebs)")
    region: str = Field(default="", description="Region (defaults to the plugin region)")
    tags: Dict[str, str] = Field(default_factory=dict, description="Resource tags")


class RecommendationsRequest(BaseModel):
    """Request model for recommendations."""
    filter: Optional[RecommendationFilterModel] = Field(None, description="Optional resource filter")


def get_pricing_client(request: Request) -> PricingClient:
    """
    Get the process-wide pricing client from application state.

    Raises:
        HTTPException: If the application has no pricing client
    """
    client = getattr(request.app.state, "pricing_client", None)
    if client is None:
        raise HTTPException(
            status_code=503,
            detail=PricingInitializationError("pricing client not initialized").to_dict()
        )
    return client


def to_http_exception(error: CostEngineError) -> HTTPException:
    """Map an engine error to an HTTP error carrying code, message and details."""
    if isinstance(error, PricingInitializationError):
        status_code = 503
    elif isinstance(error, RegionMismatchError):
        status_code = 412
    elif isinstance(error, UnsupportedResourceError):
        status_code = 422
    else:
        status_code = 400
    return HTTPException(status_code=status_code, detail=error.to_dict())


@router.get("/api/plugin/info")
async def get_plugin_info(request: Request) -> Dict[str, Any]:
    """
    Describe the plugin: name, served region, currency and build diagnostics.

    Building the indices here surfaces initialization failures as 503.
    """
    pricing = get_pricing_client(request)
    try:
        stats = pricing.build_stats()
    except CostEngineError as error:
        raise to_http_exception(error) from error

    return {
        "status": "success",
        "name": config.PLUGIN_NAME,
        "region": pricing.region(),
        "location": get_aws_pricing_location(pricing.region()),
        "currency": pricing.currency(),
        "publication_date": pricing.publication_date(),
        "build_stats": stats,
    }


@router.post("/api/cost/supports")
async def supports_resource(
    request: Request,
    supports_request: ResourceRequestModel
) -> Dict[str, Any]:
    """
    Report whether a resource type can be priced.

    Returns:
        JSON response with supported flag and reason
    """
    estimator = CostEstimator(get_pricing_client(request))
    result = estimator.supports(supports_request.resource.to_descriptor())
    return {"status": "success", **result.to_dict()}


@router.post("/api/cost/projected")
async def estimate_projected_cost(
    request: Request,
    projected_request: ResourceRequestModel
) -> Dict[str, Any]:
    """
    Estimate steady-state monthly cost for one resource.

    Raises:
        HTTPException: 412 on region mismatch, 422 for unsupported resources,
                       503 when pricing could not be initialized
    """
    descriptor = projected_request.resource.to_descriptor()
    try:
        estimator = CostEstimator(get_pricing_client(request))
        estimate = estimator.estimate_projected(descriptor)
    except CostEngineError as error:
        logger.warning(
            f"Projected cost failed for {descriptor.resource_type}/{descriptor.sku}: {error.message}"
        )
        raise to_http_exception(error) from error
    except HTTPException:
        raise
    except Exception as error:
        logger.error(f"Unexpected error in projected cost: {error}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Unexpected error: {str(error)}"
        ) from error

    return {"status": "success", "estimate": estimate.to_dict()}


@router.post("/api/cost/actual")
async def estimate_actual_cost(
    request: Request,
    actual_request: ActualCostRequest
) -> Dict[str, Any]:
    """
    Estimate cost over a time window from the projected monthly cost.

    The resource may be given as a descriptor, an ARN plus tags, a JSON
    descriptor in resource_id, or provider/resource_type/sku/region tags.

    Raises:
        HTTPException: 400 for unusable input, 412 on region mismatch,
                       422 for unsupported resources, 503 when pricing is unavailable
    """
    resource_request = ResourceRequest(
        descriptor=actual_request.resource.to_descriptor() if actual_request.resource else None,
        arn=actual_request.arn,
        resource_id=actual_request.resource_id,
        tags=dict(actual_request.tags),
    )
    try:
        estimator = CostEstimator(get_pricing_client(request))
        result = estimator.estimate_actual(resource_request, actual_request.start, actual_request.end)
    except CostEngineError as error:
        logger.warning(f"Actual cost failed: {error.message}")
        raise to_http_exception(error) from error
    except HTTPException:
        raise
    except Exception as error:
        logger.error(f"Unexpected error in actual cost: {error}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Unexpected error: {str(error)}"
        ) from error

    return {"status": "success", "result": result.to_dict()}


@router.post("/api/recommendations")
async def get_recommendations(
    request: Request,
    recommendations_request: RecommendationsRequest
) -> Dict[str, Any]:
    """
    Generate cost optimization recommendations for the filtered resource.

    Returns:
        JSON response with recommendations and summary
    """
    resource_filter = None
    if recommendations_request.filter is not None:
        model = recommendations_request.filter
        resource_filter = RecommendationFilter(
            sku=model.sku,
            resource_type=model.resource_type,
            region=model.region,
            tags=dict(model.tags),
        )

    try:
        engine = RecommendationEngine(get_pricing_client(request))
        recommendations, summary = engine.get_recommendations(resource_filter)
    except CostEngineError as error:
        raise to_http_exception(error) from error
    except HTTPException:
        raise
    except Exception as error:
        logger.error(f"Unexpected error generating recommendations: {error}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Unexpected error: {str(error)}"
        ) from error

    return {
        "status": "success",
        "recommendations": [rec.to_dict() for rec in recommendations],
        "summary": summary.to_dict(),
    }
