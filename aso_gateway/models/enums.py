"""
Enumeration definitions for the ASO data gateway.

All enums inherit from both `str` and `Enum` to ensure JSON serialization
compatibility with Pydantic models, enabling automatic serialization in API
responses and as asyncpg query arguments.
"""

from enum import Enum


class ApprovalStatus(str, Enum):
    """
    Approval state of an entity (app/client) within an organization's scope.

    Only APPROVED entities are queried; the gateway itself only ever writes
    APPROVED through auto-approval.
    """
    APPROVED = "approved"
    PENDING = "pending"
    REJECTED = "rejected"


class SubscriptionStatus(str, Enum):
    """
    Organization subscription lifecycle state.

    Anything other than ACTIVE fails the security gate.
    """
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INACTIVE = "inactive"


class BigQueryParameterType(str, Enum):
    """Named-parameter types used by the metrics queries."""
    DATE = "DATE"
    STRING = "STRING"
    ARRAY = "ARRAY"
