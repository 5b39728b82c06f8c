"""
Pydantic schemas for the ASO data gateway.

Python attributes are snake_case; the wire format is camelCase through an alias
generator, so request bodies such as {"organizationId": ..., "dateRange": ...}
validate directly and responses serialize back to camelCase.

Model groups:
- Credentials and tokens: ServiceAccountCredential, BearerToken
- Query input: DateRange, QueryFilter
- Warehouse output: CanonicalRecord
- Persistence: ApprovalRecord
- Security: SecurityCheck, RiskAssessment
- HTTP envelope: AsoDataRequest, AppliedFilters, ResponseMeta, AsoDataResponse,
  ErrorResponse
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from aso_gateway.models.enums import ApprovalStatus


class CamelModel(BaseModel):
    """Base model exposing camelCase aliases while accepting field names too."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# =============================================================================
# Credentials and Tokens
# =============================================================================


class ServiceAccountCredential(BaseModel):
    """
    Warehouse service-account credential.

    Loaded once at startup and never persisted. The private key is excluded
    from repr so it cannot leak through logging of the model.
    """
    model_config = ConfigDict(frozen=True)

    client_email: str = Field(..., min_length=1)
    private_key_pem: str = Field(..., min_length=1, repr=False)
    token_uri: str = Field(..., min_length=1)
    project_id: Optional[str] = None


class BearerToken(BaseModel):
    """Short-lived OAuth access token. Minted per request and never cached."""
    model_config = ConfigDict(frozen=True)

    access_token: str = Field(..., min_length=1, repr=False)
    expiry_seconds: int = Field(default=3600, ge=0)


# =============================================================================
# Query Input
# =============================================================================


class DateRange(CamelModel):
    """Inclusive calendar date range. Invariant: from <= to."""

    from_: date = Field(..., alias='from')
    to: date

    @model_validator(mode='after')
    def _check_order(self) -> 'DateRange':
        if self.from_ > self.to:
            raise ValueError("dateRange.from must be on or before dateRange.to")
        return self


class QueryFilter(CamelModel):
    """
    Filter applied to a metrics query.

    The entity scope is passed to the builder separately, already resolved
    and narrowed server-side. traffic_sources holds already normalized
    values. limit is capped against configuration by the builder.
    """

    date_range: Optional[DateRange] = None
    traffic_sources: List[str] = Field(default_factory=list)
    limit: int = Field(default=100, gt=0)


# =============================================================================
# Warehouse Output
# =============================================================================


class CanonicalRecord(CamelModel):
    """
    Normalized metrics row.

    conversion_rate is downloads / page_views * 100, and exactly 0 when
    page_views is 0.
    """

    date: Optional[str] = None
    entity_identifier: str = ''
    traffic_source_display: str = ''
    traffic_source_raw: str = ''
    impressions: int = Field(default=0, ge=0)
    downloads: int = Field(default=0, ge=0)
    page_views: int = Field(default=0, ge=0)
    conversion_rate: float = Field(default=0.0, ge=0.0, le=100.0)


# =============================================================================
# Persistence
# =============================================================================


class ApprovalRecord(CamelModel):
    """
    Entity approval keyed by (organization_id, entity_identifier, data_source).
    """

    organization_id: str
    entity_identifier: str
    data_source: str
    approval_status: ApprovalStatus = ApprovalStatus.APPROVED
    approved_at: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> tuple:
        return (self.organization_id, self.entity_identifier, self.data_source)


# =============================================================================
# Security
# =============================================================================


class SecurityCheck(BaseModel):
    """Inputs the security gate inspects before any warehouse call."""

    organization_id: str
    search_term: str = ''
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    security_context: Optional[Dict[str, Any]] = None


class RiskAssessment(CamelModel):
    """Outcome of a passed security gate. risk_score is advisory only."""

    risk_score: int = Field(default=0, ge=0, le=10)
    country: str = 'us'
    allowed: bool = True


# =============================================================================
# HTTP Envelope
# =============================================================================


class AsoDataRequest(CamelModel):
    """
    Body of POST /aso-data.

    traffic_sources is deliberately untyped: strings, arrays, null and other
    shapes are all accepted and coerced by the traffic source normalizer.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "organizationId": "org-123",
                "client": "yodel_pimsleur",
                "dateRange": {"from": "2025-01-01", "to": "2025-01-31"},
                "trafficSources": ["Apple Search Ads", "App Store Search"],
                "limit": 500,
            }
        },
    )

    organization_id: str = Field(..., min_length=1)
    client: Optional[str] = None
    selected_apps: Optional[List[str]] = None
    date_range: Optional[DateRange] = None
    traffic_sources: Any = None
    limit: Optional[int] = Field(default=None, gt=0)
    search_term: Optional[str] = None
    security_context: Optional[Dict[str, Any]] = None
    discovery_only: bool = False


class AppliedFilters(CamelModel):
    entity_scope: List[str]
    date_range: DateRange
    traffic_sources: List[str]
    limit: int


class ResponseMeta(CamelModel):
    row_count: int
    total_rows: int
    execution_time_ms: int
    applied_filters: AppliedFilters
    available_traffic_sources: List[str]
    emergency_bypass: bool = False
    auto_approval_triggered: bool = False


class AsoDataResponse(CamelModel):
    success: bool = True
    data: List[CanonicalRecord]
    meta: ResponseMeta


class ErrorResponse(CamelModel):
    success: bool = False
    error: str
    timestamp: datetime
