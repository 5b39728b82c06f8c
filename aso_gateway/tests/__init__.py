'''
ASO Data Gateway Test Suite

Test Modules:
-------------
- test_traffic_sources.py: Vocabulary mapping and input coercion
- test_credentials.py: JWT assertion shape, signature and token exchange
- test_security_gate.py: Ordered gates, fail-open rate limit, risk score
- test_query_builder.py: Parameter binding, scope enforcement, row caps
- test_warehouse.py: Warehouse client wire contract and row transformation
- test_auto_approval.py: Fallback scope, idempotent best-effort upserts
- test_stores.py: PostgreSQL-backed collaborators against a mock pool
- test_config.py: Settings and service-account credential loading
- test_database.py: Store pool lifecycle
- test_dependencies.py: Gateway assembly from settings
- test_aso_data.py: End-to-end gateway scenarios
- test_api.py: HTTP contract and error status mapping

Running Tests:
--------------
    pip install -e ".[test]"
    pytest aso_gateway/tests -v
'''

__all__ = []
