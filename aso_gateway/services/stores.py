"""
PostgreSQL-backed collaborators for the gateway.

- ApprovalStore: approved entity lookup and idempotent approval upserts
- AuditLog: request audit events and the windowed counts used for rate limiting
- OrganizationStore: organization subscription lookup

All stores take an asyncpg pool and acquire a connection per call, so one
instance can serve concurrent tasks (the auto-approval fan-out relies on this).

Expected tables:

    CREATE TABLE organization_client_approvals (
        organization_id   TEXT NOT NULL,
        entity_identifier TEXT NOT NULL,
        data_source       TEXT NOT NULL,
        approval_status   TEXT NOT NULL,
        approved_at       TIMESTAMPTZ,
        metadata          JSONB NOT NULL DEFAULT '{}'::jsonb,
        updated_at        TIMESTAMPTZ NOT NULL DEFAULT now(),
        UNIQUE (organization_id, entity_identifier, data_source)
    );

    CREATE TABLE audit_logs (
        id              BIGSERIAL PRIMARY KEY,
        organization_id TEXT NOT NULL,
        action          TEXT NOT NULL,
        details         JSONB NOT NULL DEFAULT '{}'::jsonb,
        created_at      TIMESTAMPTZ NOT NULL DEFAULT now()
    );

    CREATE TABLE organizations (
        id                  TEXT PRIMARY KEY,
        subscription_status TEXT NOT NULL
    );
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from asyncpg import Pool

from aso_gateway.models.enums import ApprovalStatus
from aso_gateway.models.schemas import ApprovalRecord

logger = logging.getLogger(__name__)


class ApprovalStore:
    """Approval records keyed by (organization_id, entity_identifier, data_source)."""

    def __init__(self, pool: Pool, data_source: str = 'bigquery_aso'):
        self._pool = pool
        self._data_source = data_source

    async def get_approved_entities(self, organization_id: str) -> List[str]:
        query = """
            SELECT entity_identifier
            FROM organization_client_approvals
            WHERE organization_id = $1
              AND data_source = $2
              AND approval_status = $3
            ORDER BY entity_identifier
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                query,
                organization_id,
                self._data_source,
                ApprovalStatus.APPROVED.value,
            )
        return [row['entity_identifier'] for row in rows]

    async def upsert_approval(self, record: ApprovalRecord) -> None:
        """
        Insert or update an approval in a single statement.

        ON CONFLICT on the composite key makes concurrent discovery of the same
        entity converge on one row.
        """
        query = """
            INSERT INTO organization_client_approvals (
                organization_id, entity_identifier, data_source,
                approval_status, approved_at, metadata, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6::jsonb, now())
            ON CONFLICT (organization_id, entity_identifier, data_source)
            DO UPDATE SET approval_status = EXCLUDED.approval_status,
                          approved_at = EXCLUDED.approved_at,
                          metadata = EXCLUDED.metadata,
                          updated_at = now()
        """
        async with self._pool.acquire() as conn:
            await conn.execute(
                query,
                record.organization_id,
                record.entity_identifier,
                record.data_source,
                record.approval_status.value,
                record.approved_at,
                json.dumps(record.metadata, default=str),
            )


class AuditLog:
    """Append-only audit events."""

    def __init__(self, pool: Pool):
        self._pool = pool

    async def count_events(self, organization_id: str, action: str, since: datetime) -> int:
        query = """
            SELECT COUNT(*)
            FROM audit_logs
            WHERE organization_id = $1
              AND action = $2
              AND created_at >= $3
        """
        async with self._pool.acquire() as conn:
            count = await conn.fetchval(query, organization_id, action, since)
        return int(count or 0)

    async def record_event(
        self,
        organization_id: str,
        action: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        query = """
            INSERT INTO audit_logs (organization_id, action, details)
            VALUES ($1, $2, $3::jsonb)
        """
        async with self._pool.acquire() as conn:
            await conn.execute(query, organization_id, action, json.dumps(details or {}, default=str))


class OrganizationStore:
    def __init__(self, pool: Pool):
        self._pool = pool

    async def get_organization(self, organization_id: str) -> Optional[Dict[str, Any]]:
        query = """
            SELECT id, subscription_status
            FROM organizations
            WHERE id = $1
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, organization_id)
        return dict(row) if row else None
