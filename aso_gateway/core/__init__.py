"""
Core infrastructure package for the ASO data gateway.

Provides:
- Configuration management via pydantic-settings
- Async PostgreSQL database connectivity via asyncpg
- The gateway error taxonomy

FastAPI dependency providers live in aso_gateway.core.dependencies and are
imported from there directly, since they assemble the service layer:

    from aso_gateway.core import get_settings, get_db_pool, GatewayError
    from aso_gateway.core.dependencies import AsoDataGatewayDep
"""

from aso_gateway.core.config import (
    Settings,
    get_settings,
    load_service_account_credential,
    resolve_project_id,
)
from aso_gateway.core.database import init_db, close_db, get_db_pool
from aso_gateway.core.errors import (
    GatewayError,
    ValidationError,
    SecurityError,
    InvalidRequestError,
    RateLimitedError,
    OrgInactiveError,
    EmptyScopeError,
    AuthError,
    ConfigurationError,
    WarehouseError,
)

__all__ = [
    # Configuration
    'Settings',
    'get_settings',
    'load_service_account_credential',
    'resolve_project_id',
    # Database pool lifecycle
    'init_db',
    'close_db',
    'get_db_pool',
    # Errors
    'GatewayError',
    'ValidationError',
    'SecurityError',
    'InvalidRequestError',
    'RateLimitedError',
    'OrgInactiveError',
    'EmptyScopeError',
    'AuthError',
    'ConfigurationError',
    'WarehouseError',
]
