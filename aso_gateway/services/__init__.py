"""
Gateway services.

Modules:
    traffic_sources: Display <-> warehouse traffic source vocabulary
    credentials: Service-account JWT assertion and bearer token minting
    security_gate: Injection check, rate limit, organization validity, risk score
    warehouse: Warehouse query execution and positional row transformation
    auto_approval: Fallback scope and best-effort approval of discovered entities
    stores: asyncpg-backed approval store, audit log and organization store
    aso_data: Request orchestration

Usage:
    from aso_gateway.services import AsoDataGateway, TrafficSourceNormalizer
"""

from aso_gateway.services.traffic_sources import (
    TrafficSourceNormalizer,
    DEFAULT_TRAFFIC_SOURCE_MAPPING,
)
from aso_gateway.services.credentials import CredentialService
from aso_gateway.services.security_gate import SecurityGate
from aso_gateway.services.warehouse import RawResultSet, ResultTransformer, WarehouseClient
from aso_gateway.services.auto_approval import (
    AutoApprovalCoordinator,
    AutoApprovalOutcome,
    ScopeResolution,
)
from aso_gateway.services.stores import ApprovalStore, AuditLog, OrganizationStore
from aso_gateway.services.aso_data import AsoDataGateway, RequestContext

__all__ = [
    'TrafficSourceNormalizer',
    'DEFAULT_TRAFFIC_SOURCE_MAPPING',
    'CredentialService',
    'SecurityGate',
    'RawResultSet',
    'ResultTransformer',
    'WarehouseClient',
    'AutoApprovalCoordinator',
    'AutoApprovalOutcome',
    'ScopeResolution',
    'ApprovalStore',
    'AuditLog',
    'OrganizationStore',
    'AsoDataGateway',
    'RequestContext',
]
