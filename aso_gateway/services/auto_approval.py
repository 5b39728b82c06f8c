"""
Auto-approval (emergency bypass) coordination.

When an organization has no approved entities, the gateway still serves data
for a fixed fallback set of known entities and then records every entity it
actually observed in the results as approved, so later requests resolve a
real scope.

Persistence is best-effort: one upsert per discovered entity runs
concurrently, all are awaited, and individual failures are logged without
cancelling siblings or failing the response.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Sequence

from aso_gateway.models.enums import ApprovalStatus
from aso_gateway.models.schemas import ApprovalRecord, CanonicalRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScopeResolution:
    entity_ids: List[str]
    should_auto_approve: bool = False


@dataclass
class AutoApprovalOutcome:
    approved: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class AutoApprovalCoordinator:
    """
    Substitutes the fallback scope and persists discovered entities.

    Args:
        approval_store: Collaborator exposing `async upsert_approval(record)`.
        fallback_entity_ids: Scope used when nothing is approved.
        data_source: Data source component of the approval key.
        clock: Callable returning the current UTC datetime.
    """

    def __init__(
        self,
        approval_store,
        fallback_entity_ids: Sequence[str],
        data_source: str = 'bigquery_aso',
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._approval_store = approval_store
        self._fallback_entity_ids = tuple(fallback_entity_ids)
        self._data_source = data_source
        self._clock = clock

    @property
    def fallback_entity_ids(self) -> List[str]:
        return list(self._fallback_entity_ids)

    def resolve_scope(self, approved_entity_ids: Sequence[str]) -> ScopeResolution:
        if approved_entity_ids:
            return ScopeResolution(entity_ids=list(approved_entity_ids))
        logger.warning(
            f"No approved entities; using fallback scope {list(self._fallback_entity_ids)}"
        )
        return ScopeResolution(
            entity_ids=list(self._fallback_entity_ids),
            should_auto_approve=True,
        )

    @staticmethod
    def discovered_entities(records: Iterable[CanonicalRecord]) -> List[str]:
        """Distinct, non-empty entity identifiers in first-seen order."""
        seen: List[str] = []
        for record in records:
            if record.entity_identifier and record.entity_identifier not in seen:
                seen.append(record.entity_identifier)
        return seen

    def build_record(self, organization_id: str, entity_identifier: str) -> ApprovalRecord:
        approved_at = self._clock()
        return ApprovalRecord(
            organization_id=organization_id,
            entity_identifier=entity_identifier,
            data_source=self._data_source,
            approval_status=ApprovalStatus.APPROVED,
            approved_at=approved_at,
            metadata={
                'auto_approved': True,
                'approved_via': 'emergency_bypass',
                'discovered_at': approved_at.isoformat(),
            },
        )

    async def persist_discovered(
        self,
        organization_id: str,
        records: Iterable[CanonicalRecord],
    ) -> AutoApprovalOutcome:
        """
        Upsert an approval for every entity observed in `records`.

        Never raises for per-entity failures; they are reported in the outcome.
        """
        entity_ids = self.discovered_entities(records)
        outcome = AutoApprovalOutcome()
        if not entity_ids:
            return outcome

        async def _upsert(entity_id: str) -> None:
            await self._approval_store.upsert_approval(
                self.build_record(organization_id, entity_id)
            )

        results = await asyncio.gather(
            *(_upsert(entity_id) for entity_id in entity_ids),
            return_exceptions=True,
        )

        for entity_id, result in zip(entity_ids, results):
            if isinstance(result, BaseException):
                logger.warning(
                    f"Auto-approval failed for {entity_id} in organization "
                    f"{organization_id}: {result}"
                )
                outcome.failed.append(entity_id)
            else:
                outcome.approved.append(entity_id)

        logger.info(
            f"Auto-approved {len(outcome.approved)} entities for organization "
            f"{organization_id} ({len(outcome.failed)} failed)"
        )
        return outcome
