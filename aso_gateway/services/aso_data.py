"""
ASO Data Gateway Service

Orchestrates one analytics request end to end:

1. Security gate (injection check, rate limit, organization validity)
2. Audit event for the request (best-effort, feeds the rate limit)
3. Approved entity scope lookup; fallback scope when nothing is approved
4. Optional narrowing to the caller's selected apps
5. Query build (metrics, or distinct traffic sources in discovery mode)
6. Bearer token mint
7. Warehouse query
8. Row transformation into canonical records
9. Auto-approval of discovered entities when the fallback scope was used
10. Response assembly

Requests are independent; the only shared state is immutable configuration
held by the collaborators. External calls run sequentially except for the
auto-approval fan-out.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from aso_gateway.core.errors import EmptyScopeError
from aso_gateway.models.schemas import (
    AppliedFilters,
    AsoDataRequest,
    AsoDataResponse,
    CanonicalRecord,
    DateRange,
    QueryFilter,
    ResponseMeta,
    RiskAssessment,
    SecurityCheck,
    ServiceAccountCredential,
)
from aso_gateway.services.auto_approval import AutoApprovalCoordinator
from aso_gateway.services.credentials import CredentialService
from aso_gateway.services.security_gate import SecurityGate
from aso_gateway.services.traffic_sources import TrafficSourceNormalizer
from aso_gateway.services.warehouse import RawResultSet, ResultTransformer, WarehouseClient
from aso_gateway.sql.aso_queries import QueryBuilder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """Transport-level facts about the caller that the body does not carry."""
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


class AsoDataGateway:
    """
    Analytics data gateway for one deployment.

    Args:
        credential: Warehouse service-account credential.
        security_gate: Request gate.
        approval_store: Collaborator exposing `async get_approved_entities(org_id)`.
        audit_log: Collaborator exposing `async record_event(org_id, action, details)`.
        coordinator: Auto-approval coordinator.
        query_builder: Query builder bound to the metrics table.
        credential_service: Bearer token minting.
        warehouse_client: Warehouse query execution.
        normalizer: Traffic source vocabulary.
        transformer: Positional row transformer.
        audit_action: Audit action recorded per request.
        default_limit: Row cap when the request omits one.
    """

    def __init__(
        self,
        *,
        credential: ServiceAccountCredential,
        security_gate: SecurityGate,
        approval_store,
        audit_log,
        coordinator: AutoApprovalCoordinator,
        query_builder: QueryBuilder,
        credential_service: CredentialService,
        warehouse_client: WarehouseClient,
        normalizer: TrafficSourceNormalizer,
        transformer: Optional[ResultTransformer] = None,
        audit_action: str = 'aso_data_request',
        default_limit: int = 100,
    ):
        self._credential = credential
        self._security_gate = security_gate
        self._approval_store = approval_store
        self._audit_log = audit_log
        self._coordinator = coordinator
        self._query_builder = query_builder
        self._credential_service = credential_service
        self._warehouse_client = warehouse_client
        self._normalizer = normalizer
        self._transformer = transformer or ResultTransformer(normalizer)
        self._audit_action = audit_action
        self._default_limit = default_limit

    async def fetch(
        self,
        request: AsoDataRequest,
        context: Optional[RequestContext] = None,
    ) -> AsoDataResponse:
        """
        Serve one analytics request.

        Raises:
            SecurityError: The security gate rejected the request.
            EmptyScopeError: No entity left to query.
            AuthError: Token mint failed.
            WarehouseError: Warehouse query failed.
        """
        started = time.perf_counter()
        context = context or RequestContext()
        organization_id = request.organization_id

        assessment = await self._security_gate.authorize(SecurityCheck(
            organization_id=organization_id,
            search_term=request.search_term or '',
            user_agent=context.user_agent,
            ip_address=context.ip_address,
            security_context=request.security_context,
        ))
        await self._record_audit(request, assessment, context)

        approved = await self._approval_store.get_approved_entities(organization_id)
        resolution = self._coordinator.resolve_scope(approved)
        requested = self._requested_entities(request)
        scope = self._narrow_scope(resolution.entity_ids, requested)

        traffic_sources = self._normalizer.normalize_input_array(request.traffic_sources)
        query_filter = QueryFilter(
            date_range=request.date_range,
            traffic_sources=traffic_sources,
            limit=request.limit or self._default_limit,
        )

        if request.discovery_only:
            built = self._query_builder.build_discovery(query_filter, scope)
        else:
            built = self._query_builder.build(query_filter, scope)

        token = await self._credential_service.mint_access_token(self._credential)
        raw = await self._warehouse_client.execute(
            built.query_text, built.parameters, token, built.limit
        )

        if request.discovery_only:
            records: List[CanonicalRecord] = []
            available = self._discovered_sources(raw)
            total_rows = len(available)
        else:
            records = self._transformer.transform(raw.rows)[:built.limit]
            available = sorted({
                record.traffic_source_display
                for record in records
                if record.traffic_source_display
            })
            total_rows = raw.total_rows
            if resolution.should_auto_approve:
                await self._coordinator.persist_discovered(organization_id, records)

        execution_time_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"Served {len(records)} rows for organization {organization_id} "
            f"in {execution_time_ms}ms (discovery={request.discovery_only}, "
            f"auto_approval={resolution.should_auto_approve})"
        )

        return AsoDataResponse(
            success=True,
            data=records,
            meta=ResponseMeta(
                row_count=len(records),
                total_rows=total_rows,
                execution_time_ms=execution_time_ms,
                applied_filters=AppliedFilters(
                    entity_scope=built.entity_ids,
                    date_range=DateRange(from_=built.date_from, to=built.date_to),
                    traffic_sources=traffic_sources,
                    limit=built.limit,
                ),
                available_traffic_sources=available,
                emergency_bypass=resolution.should_auto_approve,
                auto_approval_triggered=resolution.should_auto_approve,
            ),
        )

    def _requested_entities(self, request: AsoDataRequest) -> List[str]:
        requested = list(request.selected_apps or [])
        if request.client:
            requested.append(request.client)
        return self._normalizer.normalize_input_array(requested)

    @staticmethod
    def _narrow_scope(resolved: Sequence[str], requested: Sequence[str]) -> List[str]:
        if not requested:
            return list(resolved)
        narrowed = [entity_id for entity_id in resolved if entity_id in requested]
        if not narrowed:
            raise EmptyScopeError("None of the selected apps are approved for this organization")
        return narrowed

    def _discovered_sources(self, raw: RawResultSet) -> List[str]:
        sources = set()
        for row in raw.rows:
            if row and isinstance(row[0], str) and row[0].strip():
                sources.add(self._normalizer.to_display(row[0].strip()))
        return sorted(sources)

    async def _record_audit(
        self,
        request: AsoDataRequest,
        assessment: RiskAssessment,
        context: RequestContext,
    ) -> None:
        try:
            await self._audit_log.record_event(
                request.organization_id,
                self._audit_action,
                {
                    'risk_score': assessment.risk_score,
                    'country': assessment.country,
                    'ip_address': context.ip_address,
                    'discovery_only': request.discovery_only,
                },
            )
        except Exception as e:
            logger.warning(f"Failed to record audit event for {request.organization_id}: {e}")
