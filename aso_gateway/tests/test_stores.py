"""
Tests for the PostgreSQL-backed stores using a mock asyncpg pool.
"""

import json

import pytest

from aso_gateway.models.enums import ApprovalStatus
from aso_gateway.models.schemas import ApprovalRecord
from aso_gateway.services.stores import ApprovalStore, AuditLog, OrganizationStore
from aso_gateway.tests.conftest import FIXED_NOW


def _conn(pool):
    return pool.acquire.return_value.__aenter__.return_value


@pytest.mark.asyncio
class TestApprovalStore:

    async def test_get_approved_entities(self, mock_db_pool):
        conn = _conn(mock_db_pool)
        conn.fetch.return_value = [
            {'entity_identifier': 'yodel_babbel'},
            {'entity_identifier': 'yodel_pimsleur'},
        ]

        result = await ApprovalStore(mock_db_pool).get_approved_entities('org-1')

        assert result == ['yodel_babbel', 'yodel_pimsleur']
        query, *args = conn.fetch.call_args.args
        assert 'FROM organization_client_approvals' in query
        assert args == ['org-1', 'bigquery_aso', 'approved']

    async def test_upsert_uses_composite_conflict_key(self, mock_db_pool):
        conn = _conn(mock_db_pool)
        record = ApprovalRecord(
            organization_id='org-1',
            entity_identifier='yodel_pimsleur',
            data_source='bigquery_aso',
            approval_status=ApprovalStatus.APPROVED,
            approved_at=FIXED_NOW,
            metadata={'auto_approved': True, 'approved_via': 'emergency_bypass'},
        )

        await ApprovalStore(mock_db_pool).upsert_approval(record)

        conn.execute.assert_awaited_once()
        query, *args = conn.execute.call_args.args
        assert 'ON CONFLICT (organization_id, entity_identifier, data_source)' in query
        assert 'DO UPDATE' in query
        assert args[:5] == ['org-1', 'yodel_pimsleur', 'bigquery_aso', 'approved', FIXED_NOW]
        assert json.loads(args[5]) == {'auto_approved': True, 'approved_via': 'emergency_bypass'}


@pytest.mark.asyncio
class TestAuditLog:

    async def test_count_events(self, mock_db_pool):
        conn = _conn(mock_db_pool)
        conn.fetchval.return_value = 7

        count = await AuditLog(mock_db_pool).count_events('org-1', 'aso_data_request', FIXED_NOW)

        assert count == 7
        query, *args = conn.fetchval.call_args.args
        assert 'FROM audit_logs' in query
        assert args == ['org-1', 'aso_data_request', FIXED_NOW]

    async def test_count_events_none_is_zero(self, mock_db_pool):
        _conn(mock_db_pool).fetchval.return_value = None
        assert await AuditLog(mock_db_pool).count_events('org-1', 'x', FIXED_NOW) == 0

    async def test_record_event(self, mock_db_pool):
        conn = _conn(mock_db_pool)

        await AuditLog(mock_db_pool).record_event('org-1', 'aso_data_request', {'risk_score': 2})

        query, *args = conn.execute.call_args.args
        assert 'INSERT INTO audit_logs' in query
        assert args[:2] == ['org-1', 'aso_data_request']
        assert json.loads(args[2]) == {'risk_score': 2}


@pytest.mark.asyncio
class TestOrganizationStore:

    async def test_found(self, mock_db_pool):
        _conn(mock_db_pool).fetchrow.return_value = {
            'id': 'org-1',
            'subscription_status': 'active',
        }
        organization = await OrganizationStore(mock_db_pool).get_organization('org-1')
        assert organization == {'id': 'org-1', 'subscription_status': 'active'}

    async def test_missing(self, mock_db_pool):
        assert await OrganizationStore(mock_db_pool).get_organization('nope') is None
