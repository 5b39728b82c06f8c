"""
FastAPI router module for the ASO analytics data gateway.

Key Endpoints:
- POST /aso-data - Metrics (or traffic source discovery) for an organization
- GET /aso-data/traffic-sources - Display vocabulary of known traffic sources

Response Contract:
- Success: { success: true, data: [...], meta: {...} }
- Failure: { success: false, error: "...", timestamp: "..." } with the status
  code of the GatewayError raised (400/403/404/429/500/502)
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from aso_gateway.core.dependencies import AsoDataGatewayDep, NormalizerDep
from aso_gateway.core.errors import GatewayError
from aso_gateway.models.schemas import AsoDataRequest, AsoDataResponse, ErrorResponse
from aso_gateway.services.aso_data import RequestContext


# =============================================================================
# Module Configuration
# =============================================================================

logger = logging.getLogger(__name__)

router = APIRouter()


def error_response(status_code: int, message: str) -> JSONResponse:
    """Render the standard failure envelope."""
    envelope = ErrorResponse(error=message, timestamp=datetime.now(timezone.utc))
    return JSONResponse(
        status_code=status_code,
        content=envelope.model_dump(mode="json", by_alias=True),
    )


def _request_context(request: Request) -> RequestContext:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        ip_address = forwarded_for.split(',')[0].strip()
    else:
        ip_address = request.client.host if request.client else None
    return RequestContext(
        user_agent=request.headers.get('user-agent'),
        ip_address=ip_address,
    )


# =============================================================================
# POST /aso-data
# =============================================================================


@router.post("", response_model=AsoDataResponse)
async def get_aso_data(
    body: AsoDataRequest,
    request: Request,
    gateway: AsoDataGatewayDep,
):
    """
    Fetch ASO metrics for the organization's approved apps.

    When the organization has no approved apps the fallback scope is queried
    and every app observed in the result is auto-approved; the response meta
    then reports emergencyBypass and autoApprovalTriggered.

    Example Request:
        POST /aso-data
        {
            "organizationId": "org-123",
            "dateRange": {"from": "2025-01-01", "to": "2025-01-31"},
            "trafficSources": "Apple_Search_Ads",
            "limit": 50
        }

    Example Response:
        {
            "success": true,
            "data": [
                {
                    "date": "2025-01-31",
                    "entityIdentifier": "yodel_pimsleur",
                    "trafficSourceDisplay": "Apple Search Ads",
                    "trafficSourceRaw": "Apple_Search_Ads",
                    "impressions": 1200,
                    "downloads": 40,
                    "pageViews": 400,
                    "conversionRate": 10.0
                }
            ],
            "meta": {"rowCount": 1, "totalRows": 1, ...}
        }
    """
    try:
        logger.info(
            f"ASO data request received for organization {body.organization_id} "
            f"(discovery={body.discovery_only}, has_date_range={body.date_range is not None})"
        )
        return await gateway.fetch(body, _request_context(request))

    except GatewayError as e:
        logger.warning(f"ASO data request failed ({e.status_code}): {e.message}")
        return error_response(e.status_code, e.message)
    except Exception as e:
        logger.error(f"Unexpected error serving ASO data: {str(e)}", exc_info=True)
        return error_response(500, str(e) or "Internal server error")


# =============================================================================
# GET /aso-data/traffic-sources
# =============================================================================


@router.get("/traffic-sources", response_model=dict)
async def list_traffic_sources(normalizer: NormalizerDep) -> dict:
    """Return the display vocabulary of known traffic sources."""
    return {"trafficSources": normalizer.display_vocabulary}
