"""
ASO Data Gateway Package.

FastAPI service that serves app-store-optimization metrics from the analytics
warehouse to the dashboard.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, database pool, dependencies and errors
    - models: Pydantic schemas and enums
    - services: Credentials, security gate, warehouse client, auto-approval
    - sql: Parameterized warehouse queries
"""

__version__ = "1.0.0"
