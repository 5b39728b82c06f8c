"""
FastAPI dependency injection module for the ASO data gateway.

Provides reusable dependencies for configuration, the database pool, the
immutable process-lifetime objects (service-account credential, traffic
source vocabulary) and the per-request gateway assembled from them.

Usage Examples:
    @router.post("/aso-data")
    async def get_aso_data(
        body: AsoDataRequest,
        gateway: AsoDataGatewayDep,
    ) -> AsoDataResponse:
        return await gateway.fetch(body)

Testing:
    app.dependency_overrides[get_aso_data_gateway] = lambda: fake_gateway
"""

from datetime import timedelta
from functools import lru_cache
from typing import Annotated

from asyncpg import Pool
from fastapi import Depends

from aso_gateway.core.config import (
    Settings,
    get_settings,
    load_service_account_credential,
    resolve_project_id,
)
from aso_gateway.core.database import get_db_pool
from aso_gateway.models.schemas import ServiceAccountCredential
from aso_gateway.services.aso_data import AsoDataGateway
from aso_gateway.services.auto_approval import AutoApprovalCoordinator
from aso_gateway.services.credentials import CredentialService
from aso_gateway.services.security_gate import SecurityGate
from aso_gateway.services.stores import ApprovalStore, AuditLog, OrganizationStore
from aso_gateway.services.traffic_sources import TrafficSourceNormalizer
from aso_gateway.services.warehouse import ResultTransformer, WarehouseClient
from aso_gateway.sql.aso_queries import QueryBuilder, table_reference


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """Thin wrapper around get_settings() so tests can override it."""
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]


# =============================================================================
# Database Pool Dependency
# =============================================================================

async def get_pool() -> Pool:
    return await get_db_pool()


PoolDep = Annotated[Pool, Depends(get_pool)]


# =============================================================================
# Process-lifetime Configuration
# =============================================================================

@lru_cache()
def get_service_account_credential() -> ServiceAccountCredential:
    """
    Load the warehouse credential once per process.

    Raises:
        ConfigurationError: If credentials are not configured or malformed.
            Failures are not cached, so a fixed environment recovers.
    """
    return load_service_account_credential(get_settings())


@lru_cache()
def get_traffic_source_normalizer() -> TrafficSourceNormalizer:
    return TrafficSourceNormalizer()


# =============================================================================
# Gateway Assembly
# =============================================================================

def build_gateway(
    settings: Settings,
    pool: Pool,
    credential: ServiceAccountCredential,
    normalizer: TrafficSourceNormalizer,
) -> AsoDataGateway:
    """Wire the gateway and its collaborators from configuration."""
    project_id = resolve_project_id(settings, credential)

    audit_log = AuditLog(pool)
    approval_store = ApprovalStore(pool, data_source=settings.approval_data_source)

    return AsoDataGateway(
        credential=credential,
        security_gate=SecurityGate(
            audit_log=audit_log,
            organizations=OrganizationStore(pool),
            action=settings.rate_limit_action,
            max_requests=settings.rate_limit_max_requests,
            window=timedelta(seconds=settings.rate_limit_window_seconds),
        ),
        approval_store=approval_store,
        audit_log=audit_log,
        coordinator=AutoApprovalCoordinator(
            approval_store,
            fallback_entity_ids=settings.fallback_entity_ids,
            data_source=settings.approval_data_source,
        ),
        query_builder=QueryBuilder(
            table_reference(project_id, settings.bigquery_dataset, settings.bigquery_table),
            normalizer,
            max_limit=settings.max_query_limit,
            default_window_days=settings.default_window_days,
        ),
        credential_service=CredentialService(timeout=settings.token_timeout_seconds),
        warehouse_client=WarehouseClient(
            project_id,
            api_base_url=settings.bigquery_api_base_url,
            timeout=settings.warehouse_timeout_seconds,
        ),
        normalizer=normalizer,
        transformer=ResultTransformer(normalizer),
        audit_action=settings.rate_limit_action,
        default_limit=min(settings.default_query_limit, settings.max_query_limit),
    )


async def get_aso_data_gateway(settings: SettingsDep, pool: PoolDep) -> AsoDataGateway:
    return build_gateway(
        settings,
        pool,
        get_service_account_credential(),
        get_traffic_source_normalizer(),
    )


AsoDataGatewayDep = Annotated[AsoDataGateway, Depends(get_aso_data_gateway)]

NormalizerDep = Annotated[TrafficSourceNormalizer, Depends(get_traffic_source_normalizer)]
