"""
ASO Metrics Query Module.

Builds BigQuery Standard SQL for the daily ASO metrics table with named
parameters (parameterMode=NAMED on the REST API).

Binding rules:
- Entity identifiers are inlined as quoted literals. They only ever come from
  the server-resolved approval or fallback scope, never straight from a
  request body.
- Date bounds are bound as DATE parameters (@date_from, @date_to).
- Traffic sources are bound as an ARRAY<STRING> parameter (@traffic_sources)
  and the clause is emitted only when at least one source is requested.
- The row cap is an integer clamped to the configured ceiling.

Result column order is fixed and read positionally by the result transformer:
    0 date, 1 client, 2 traffic_source, 3 impressions, 4 downloads,
    5 product_page_views
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence

from aso_gateway.core.errors import ConfigurationError, EmptyScopeError, ValidationError
from aso_gateway.models.enums import BigQueryParameterType
from aso_gateway.models.schemas import QueryFilter

if TYPE_CHECKING:
    from aso_gateway.services.traffic_sources import TrafficSourceNormalizer

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_WINDOW_DAYS: int = 30
DEFAULT_MAX_LIMIT: int = 10000

METRIC_COLUMNS: List[str] = [
    'date',
    'client',
    'traffic_source',
    'impressions',
    'downloads',
    'product_page_views',
]

_PROJECT_ID_PATTERN = re.compile(r'^[A-Za-z0-9_\-.:]+$')
_DATASET_PATTERN = re.compile(r'^[A-Za-z0-9_]+$')


# =============================================================================
# PARAMETER HELPERS
# =============================================================================

def date_parameter(name: str, value: date) -> Dict[str, Any]:
    return {
        'name': name,
        'parameterType': {'type': BigQueryParameterType.DATE.value},
        'parameterValue': {'value': value.isoformat()},
    }


def string_array_parameter(name: str, values: Sequence[str]) -> Dict[str, Any]:
    return {
        'name': name,
        'parameterType': {
            'type': BigQueryParameterType.ARRAY.value,
            'arrayType': {'type': BigQueryParameterType.STRING.value},
        },
        'parameterValue': {'arrayValues': [{'value': value} for value in values]},
    }


def quote_literal(value: str) -> str:
    """Quote a string as a Standard SQL literal, escaping backslashes and quotes."""
    escaped = value.replace('\\', '\\\\').replace("'", "\\'")
    return f"'{escaped}'"


def table_reference(project_id: str, dataset: str, table: str) -> str:
    """
    Build a backtick-quoted table reference from trusted configuration.

    Raises:
        ConfigurationError: If any component contains unexpected characters.
    """
    if not _PROJECT_ID_PATTERN.match(project_id or ''):
        raise ConfigurationError(f"Invalid warehouse project id: {project_id!r}")
    for part in (dataset, table):
        if not _DATASET_PATTERN.match(part or ''):
            raise ConfigurationError(f"Invalid warehouse dataset or table name: {part!r}")
    return f"`{project_id}.{dataset}.{table}`"


# =============================================================================
# BUILT QUERY
# =============================================================================

@dataclass(frozen=True)
class BuiltQuery:
    """Query text, named parameters and the values the query was built from."""
    query_text: str
    parameters: List[Dict[str, Any]]
    limit: int
    entity_ids: List[str] = field(default_factory=list)
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    traffic_sources: List[str] = field(default_factory=list)


# =============================================================================
# QUERY BUILDER
# =============================================================================

class QueryBuilder:
    """
    Turns a QueryFilter and a resolved entity scope into a parameterized query.

    Args:
        table_ref: Backtick-quoted table reference (see table_reference()).
        normalizer: Traffic source normalizer for display -> warehouse mapping.
        max_limit: Ceiling for the row cap.
        default_window_days: Trailing window used when no date range is given.
        today: Callable returning the current date.
    """

    def __init__(
        self,
        table_ref: str,
        normalizer: "TrafficSourceNormalizer",
        max_limit: int = DEFAULT_MAX_LIMIT,
        default_window_days: int = DEFAULT_WINDOW_DAYS,
        today: Callable[[], date] = date.today,
    ):
        self._table_ref = table_ref
        self._normalizer = normalizer
        self._max_limit = max_limit
        self._default_window_days = default_window_days
        self._today = today

    def resolve_date_window(self, query_filter: QueryFilter) -> tuple:
        """Return (date_from, date_to); defaults to the trailing window ending today."""
        if query_filter.date_range is not None:
            return query_filter.date_range.from_, query_filter.date_range.to
        date_to = self._today()
        return date_to - timedelta(days=self._default_window_days), date_to

    def effective_limit(self, requested: int) -> int:
        if requested <= 0:
            raise ValidationError("limit must be a positive integer")
        return min(int(requested), self._max_limit)

    def build(self, query_filter: QueryFilter, resolved_entity_ids: Sequence[str]) -> BuiltQuery:
        """
        Build the daily metrics query.

        Raises:
            EmptyScopeError: If resolved_entity_ids is empty.
            ValidationError: If the limit is not positive.
        """
        entity_ids = self._check_scope(resolved_entity_ids)
        limit = self.effective_limit(query_filter.limit)
        date_from, date_to = self.resolve_date_window(query_filter)
        traffic_sources = self._normalizer.to_warehouse_list(query_filter.traffic_sources)

        parameters = [
            date_parameter('date_from', date_from),
            date_parameter('date_to', date_to),
        ]
        traffic_clause = ''
        if traffic_sources:
            traffic_clause = '\n      AND traffic_source IN UNNEST(@traffic_sources)'
            parameters.append(string_array_parameter('traffic_sources', traffic_sources))

        query_text = f"""
    SELECT
        {', '.join(METRIC_COLUMNS)}
    FROM {self._table_ref}
    WHERE client IN ({self._entity_literals(entity_ids)})
      AND date BETWEEN @date_from AND @date_to{traffic_clause}
    ORDER BY date DESC
    LIMIT {limit}
    """

        logger.debug(
            f"Built metrics query for {len(entity_ids)} entities, "
            f"{date_from}..{date_to}, {len(traffic_sources)} traffic sources, limit {limit}"
        )
        return BuiltQuery(
            query_text=query_text,
            parameters=parameters,
            limit=limit,
            entity_ids=entity_ids,
            date_from=date_from,
            date_to=date_to,
            traffic_sources=traffic_sources,
        )

    def build_discovery(
        self,
        query_filter: QueryFilter,
        resolved_entity_ids: Sequence[str],
    ) -> BuiltQuery:
        """
        Build a query listing the distinct traffic sources present in scope.

        The traffic source filter is ignored so that every source is discovered.

        Raises:
            EmptyScopeError: If resolved_entity_ids is empty.
        """
        entity_ids = self._check_scope(resolved_entity_ids)
        date_from, date_to = self.resolve_date_window(query_filter)
        parameters = [
            date_parameter('date_from', date_from),
            date_parameter('date_to', date_to),
        ]

        query_text = f"""
    SELECT DISTINCT
        traffic_source
    FROM {self._table_ref}
    WHERE client IN ({self._entity_literals(entity_ids)})
      AND date BETWEEN @date_from AND @date_to
    ORDER BY traffic_source
    LIMIT {self._max_limit}
    """
        return BuiltQuery(
            query_text=query_text,
            parameters=parameters,
            limit=self._max_limit,
            entity_ids=entity_ids,
            date_from=date_from,
            date_to=date_to,
        )

    @staticmethod
    def _check_scope(resolved_entity_ids: Sequence[str]) -> List[str]:
        entity_ids = []
        for entity_id in resolved_entity_ids or []:
            if isinstance(entity_id, str) and entity_id and entity_id not in entity_ids:
                entity_ids.append(entity_id)
        if not entity_ids:
            raise EmptyScopeError("No approved apps found for this organization")
        return entity_ids

    @staticmethod
    def _entity_literals(entity_ids: Sequence[str]) -> str:
        return ', '.join(quote_literal(entity_id) for entity_id in entity_ids)
