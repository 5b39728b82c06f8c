"""
Pytest Configuration and Shared Fixtures for ASO Data Gateway Tests.

This module provides fixtures and fakes for all gateway tests, supporting:
- Async test execution with pytest-asyncio
- Throwaway RSA service-account keys generated with `cryptography`
- In-memory fakes for the approval store, audit log and organization store
- Mock asyncpg pools for testing the PostgreSQL-backed stores
- httpx.MockTransport handlers for the OAuth token and warehouse endpoints
- Warehouse wire-format row builders
"""

import json
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from aso_gateway.models.schemas import ApprovalRecord, ServiceAccountCredential
from aso_gateway.services.aso_data import AsoDataGateway
from aso_gateway.services.auto_approval import AutoApprovalCoordinator
from aso_gateway.services.credentials import CredentialService
from aso_gateway.services.security_gate import SecurityGate
from aso_gateway.services.traffic_sources import TrafficSourceNormalizer
from aso_gateway.services.warehouse import WarehouseClient
from aso_gateway.sql.aso_queries import QueryBuilder, table_reference


TOKEN_URI = 'https://oauth2.example.test/token'
PROJECT_ID = 'aso-test-project'
QUERY_URL = f'https://bigquery.googleapis.com/bigquery/v2/projects/{PROJECT_ID}/queries'
FIXED_TODAY = date(2025, 3, 31)
FIXED_NOW = datetime(2025, 3, 31, 12, 0, tzinfo=timezone.utc)


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        'markers',
        'integration: marks tests requiring external service connectivity'
    )


# ============================================================
# CREDENTIAL FIXTURES
# ============================================================

@pytest.fixture(scope='session')
def rsa_private_key() -> rsa.RSAPrivateKey:
    """Session-scoped throwaway RSA key; generation is slow."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope='session')
def private_key_pem(rsa_private_key: rsa.RSAPrivateKey) -> str:
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode('ascii')


@pytest.fixture
def service_account_credential(private_key_pem: str) -> ServiceAccountCredential:
    return ServiceAccountCredential(
        client_email='aso-reader@aso-test-project.iam.gserviceaccount.com',
        private_key_pem=private_key_pem,
        token_uri=TOKEN_URI,
        project_id=PROJECT_ID,
    )


@pytest.fixture
def service_account_json(private_key_pem: str) -> str:
    """Service-account document as stored in an environment variable."""
    return json.dumps({
        'type': 'service_account',
        'project_id': PROJECT_ID,
        'private_key_id': 'abc123',
        'private_key': private_key_pem.replace('\n', '\\n'),
        'client_email': 'aso-reader@aso-test-project.iam.gserviceaccount.com',
        'client_id': '1234567890',
        'token_uri': TOKEN_URI,
    })


# ============================================================
# IN-MEMORY COLLABORATORS
# ============================================================

class FakeApprovalStore:
    """Approval store keyed by (organization_id, entity_identifier, data_source)."""

    def __init__(
        self,
        approved: Optional[Dict[str, List[str]]] = None,
        failing: Optional[set] = None,
    ):
        self.approved = approved or {}
        self.failing = failing or set()
        self.records: Dict[tuple, ApprovalRecord] = {}
        self.upsert_calls = 0

    async def get_approved_entities(self, organization_id: str) -> List[str]:
        return list(self.approved.get(organization_id, []))

    async def upsert_approval(self, record: ApprovalRecord) -> None:
        self.upsert_calls += 1
        if record.entity_identifier in self.failing:
            raise RuntimeError(f"upsert failed for {record.entity_identifier}")
        self.records[record.key] = record


class FakeAuditLog:
    def __init__(self, count: int = 0, count_error: Optional[Exception] = None):
        self.count = count
        self.count_error = count_error
        self.count_calls: List[tuple] = []
        self.events: List[tuple] = []

    async def count_events(self, organization_id: str, action: str, since: datetime) -> int:
        self.count_calls.append((organization_id, action, since))
        if self.count_error is not None:
            raise self.count_error
        return self.count

    async def record_event(self, organization_id: str, action: str, details=None) -> None:
        self.events.append((organization_id, action, details))


class FakeOrganizationStore:
    def __init__(self, organizations: Optional[Dict[str, Dict[str, Any]]] = None):
        self.organizations = organizations if organizations is not None else {
            'org-active': {'id': 'org-active', 'subscription_status': 'active'},
        }
        self.calls: List[str] = []

    async def get_organization(self, organization_id: str) -> Optional[Dict[str, Any]]:
        self.calls.append(organization_id)
        return self.organizations.get(organization_id)


@pytest.fixture
def normalizer() -> TrafficSourceNormalizer:
    return TrafficSourceNormalizer()


@pytest.fixture
def approval_store() -> FakeApprovalStore:
    return FakeApprovalStore()


@pytest.fixture
def audit_log() -> FakeAuditLog:
    return FakeAuditLog()


@pytest.fixture
def organization_store() -> FakeOrganizationStore:
    return FakeOrganizationStore()


# ============================================================
# DATABASE MOCK FIXTURES
# ============================================================

@pytest.fixture
def mock_db_pool() -> AsyncMock:
    """
    Mock asyncpg pool whose acquire() yields a mock connection.

    Usage:
        conn = mock_db_pool.acquire.return_value.__aenter__.return_value
        conn.fetch.return_value = [{'entity_identifier': 'app'}]
    """
    pool = AsyncMock()

    conn = AsyncMock()
    conn.execute = AsyncMock(return_value=None)
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=None)

    acquire_context = AsyncMock()
    acquire_context.__aenter__ = AsyncMock(return_value=conn)
    acquire_context.__aexit__ = AsyncMock(return_value=None)
    pool.acquire = Mock(return_value=acquire_context)

    pool.close = AsyncMock(return_value=None)
    return pool


# ============================================================
# WAREHOUSE WIRE HELPERS
# ============================================================

def wire_row(*values: Any) -> Dict[str, Any]:
    """Build a warehouse wire row {"f": [{"v": ...}, ...]}."""
    return {'f': [{'v': value} for value in values]}


def warehouse_payload(rows: List[Dict[str, Any]], total_rows: Optional[int] = None) -> Dict[str, Any]:
    return {
        'kind': 'bigquery#queryResponse',
        'rows': rows,
        'totalRows': str(len(rows) if total_rows is None else total_rows),
        'jobComplete': True,
    }


class RecordingTransport:
    """
    httpx handler routing token and query endpoints to canned responses and
    recording every request it sees.
    """

    def __init__(
        self,
        query_payload: Optional[Dict[str, Any]] = None,
        token_status: int = 200,
        query_status: int = 200,
    ):
        self.query_payload = query_payload if query_payload is not None else warehouse_payload([])
        self.token_status = token_status
        self.query_status = query_status
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if str(request.url) == TOKEN_URI:
            if self.token_status != 200:
                return httpx.Response(self.token_status, text='{"error": "invalid_grant"}')
            return httpx.Response(200, json={
                'access_token': 'ya29.test-token',
                'expires_in': 3599,
                'token_type': 'Bearer',
            })
        if self.query_status != 200:
            return httpx.Response(self.query_status, text='{"error": {"message": "boom"}}')
        return httpx.Response(200, json=self.query_payload)

    def requests_to(self, url: str) -> List[httpx.Request]:
        return [request for request in self.requests if str(request.url) == url]


@pytest.fixture
def recording_transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def make_gateway(
    service_account_credential: ServiceAccountCredential,
    normalizer: TrafficSourceNormalizer,
    approval_store: FakeApprovalStore,
    audit_log: FakeAuditLog,
    organization_store: FakeOrganizationStore,
) -> Callable[..., AsoDataGateway]:
    """Factory building a gateway wired to fakes and a recording transport."""

    def _make(transport: RecordingTransport, fallback=('yodel_pimsleur',)) -> AsoDataGateway:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(transport))
        return AsoDataGateway(
            credential=service_account_credential,
            security_gate=SecurityGate(
                audit_log=audit_log,
                organizations=organization_store,
                clock=lambda: FIXED_NOW,
            ),
            approval_store=approval_store,
            audit_log=audit_log,
            coordinator=AutoApprovalCoordinator(
                approval_store,
                fallback_entity_ids=fallback,
                clock=lambda: FIXED_NOW,
            ),
            query_builder=QueryBuilder(
                table_reference(PROJECT_ID, 'aso_dataset', 'aso_metrics'),
                normalizer,
                max_limit=1000,
                today=lambda: FIXED_TODAY,
            ),
            credential_service=CredentialService(http_client=http_client),
            warehouse_client=WarehouseClient(PROJECT_ID, http_client=http_client),
            normalizer=normalizer,
        )

    return _make
