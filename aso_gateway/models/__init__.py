"""
Package initialization file for gateway models.

This module exports all Pydantic schemas and enumerations from schemas.py and
enums.py, making them importable from aso_gateway.models directly.

Usage:
    from aso_gateway.models import (
        CanonicalRecord,
        QueryFilter,
        ApprovalStatus,
    )
"""

# =============================================================================
# Enums
# =============================================================================

from aso_gateway.models.enums import (
    ApprovalStatus,
    SubscriptionStatus,
    BigQueryParameterType,
)

# =============================================================================
# Schemas
# =============================================================================

from aso_gateway.models.schemas import (
    CamelModel,
    ServiceAccountCredential,
    BearerToken,
    DateRange,
    QueryFilter,
    CanonicalRecord,
    ApprovalRecord,
    SecurityCheck,
    RiskAssessment,
    AsoDataRequest,
    AppliedFilters,
    ResponseMeta,
    AsoDataResponse,
    ErrorResponse,
)

__all__ = [
    # Enums
    'ApprovalStatus',
    'SubscriptionStatus',
    'BigQueryParameterType',
    # Schemas
    'CamelModel',
    'ServiceAccountCredential',
    'BearerToken',
    'DateRange',
    'QueryFilter',
    'CanonicalRecord',
    'ApprovalRecord',
    'SecurityCheck',
    'RiskAssessment',
    'AsoDataRequest',
    'AppliedFilters',
    'ResponseMeta',
    'AsoDataResponse',
    'ErrorResponse',
]
