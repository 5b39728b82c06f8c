"""
Request security gate.

Runs ordered, short-circuiting checks before any warehouse call:

1. Search term must not match script/markup injection patterns.
2. Organization must be under its hourly request allowance, counted from the
   audit log. If the count lookup itself fails the gate fails open and logs.
3. Organization must exist with an active subscription.

Then computes an advisory risk score (0-10) and the request country. Only the
first three checks can reject a request.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Pattern

from aso_gateway.core.errors import InvalidRequestError, OrgInactiveError, RateLimitedError
from aso_gateway.models.enums import SubscriptionStatus
from aso_gateway.models.schemas import RiskAssessment, SecurityCheck

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

MALICIOUS_PATTERNS: List[Pattern[str]] = [
    re.compile(r'<script', re.IGNORECASE),
    re.compile(r'javascript:', re.IGNORECASE),
    re.compile(r'data:text/html', re.IGNORECASE),
    re.compile(r'vbscript:', re.IGNORECASE),
]

SUSPICIOUS_CHARACTERS: Pattern[str] = re.compile(r"[<>'\"]")

DEFAULT_RATE_LIMIT: int = 100
DEFAULT_RATE_LIMIT_WINDOW: timedelta = timedelta(hours=1)
DEFAULT_COUNTRY: str = 'us'
MAX_RISK_SCORE: int = 10


def is_valid_search_term(search_term: str) -> bool:
    return not any(pattern.search(search_term) for pattern in MALICIOUS_PATTERNS)


def calculate_risk_score(search_term: str, user_agent: Optional[str]) -> int:
    """
    Additive advisory risk score, capped at 10.

    +2 term longer than 200 characters
    +3 term contains '..'
    +1 term contains any of < > ' "
    +2 user agent missing or shorter than 10 characters
    """
    score = 0
    if len(search_term) > 200:
        score += 2
    if '..' in search_term:
        score += 3
    if SUSPICIOUS_CHARACTERS.search(search_term):
        score += 1
    if not user_agent or len(user_agent) < 10:
        score += 2
    return min(score, MAX_RISK_SCORE)


def extract_country(security_context: Optional[Dict[str, Any]]) -> str:
    if security_context:
        country = security_context.get('country')
        if isinstance(country, str) and country.strip():
            return country.strip().lower()
    return DEFAULT_COUNTRY


class SecurityGate:
    """
    Validates, rate-limits and risk-scores a request.

    Args:
        audit_log: Collaborator exposing
            `async count_events(organization_id, action, since) -> int`.
        organizations: Collaborator exposing
            `async get_organization(organization_id) -> Optional[dict]`
            where the dict carries 'subscription_status'.
        action: Audit action counted by the rate limit.
        max_requests: Requests allowed within the window.
        window: Trailing rate limit window.
        clock: Callable returning the current UTC datetime.
    """

    def __init__(
        self,
        audit_log,
        organizations,
        action: str = 'aso_data_request',
        max_requests: int = DEFAULT_RATE_LIMIT,
        window: timedelta = DEFAULT_RATE_LIMIT_WINDOW,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._audit_log = audit_log
        self._organizations = organizations
        self._action = action
        self._max_requests = max_requests
        self._window = window
        self._clock = clock

    async def authorize(self, check: SecurityCheck) -> RiskAssessment:
        """
        Run the security checks for one request.

        Raises:
            InvalidRequestError: Search term matched an injection pattern.
            RateLimitedError: Organization is at or over its allowance.
            OrgInactiveError: Organization missing or not active.
        """
        search_term = check.search_term or ''

        if not is_valid_search_term(search_term):
            logger.warning(
                f"Rejected request for organization {check.organization_id}: "
                f"search term matched an injection pattern"
            )
            raise InvalidRequestError("Invalid search term format")

        if not await self._within_rate_limit(check.organization_id):
            logger.warning(f"Rate limit exceeded for organization {check.organization_id}")
            raise RateLimitedError("Rate limit exceeded")

        organization = await self._organizations.get_organization(check.organization_id)
        if not organization:
            raise OrgInactiveError("Organization not found")
        if organization.get('subscription_status') != SubscriptionStatus.ACTIVE.value:
            raise OrgInactiveError("Organization subscription is not active")

        assessment = RiskAssessment(
            risk_score=calculate_risk_score(search_term, check.user_agent),
            country=extract_country(check.security_context),
            allowed=True,
        )
        logger.debug(
            f"Security gate passed for organization {check.organization_id} "
            f"(risk_score={assessment.risk_score}, country={assessment.country})"
        )
        return assessment

    async def _within_rate_limit(self, organization_id: str) -> bool:
        since = self._clock() - self._window
        try:
            count = await self._audit_log.count_events(organization_id, self._action, since)
        except Exception as e:
            # Fail open on lookup errors
            logger.warning(f"Rate limit check failed, allowing request: {e}")
            return True
        return (count or 0) < self._max_requests
