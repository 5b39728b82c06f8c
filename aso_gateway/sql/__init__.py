"""
SQL Query Module for the ASO data gateway.

Provides parameterized BigQuery Standard SQL for the ASO metrics warehouse:
- Daily metrics per client and traffic source (QueryBuilder.build)
- Distinct traffic source discovery (QueryBuilder.build_discovery)

Example usage:
    from aso_gateway.sql import QueryBuilder, table_reference

    builder = QueryBuilder(
        table_reference('my-project', 'aso_dataset', 'aso_metrics'),
        TrafficSourceNormalizer(),
    )
    built = builder.build(QueryFilter(limit=50), ['yodel_pimsleur'])
"""

from aso_gateway.sql.aso_queries import (
    BuiltQuery,
    QueryBuilder,
    date_parameter,
    string_array_parameter,
    quote_literal,
    table_reference,
    METRIC_COLUMNS,
    DEFAULT_WINDOW_DAYS,
    DEFAULT_MAX_LIMIT,
)

__all__ = [
    'BuiltQuery',
    'QueryBuilder',
    'date_parameter',
    'string_array_parameter',
    'quote_literal',
    'table_reference',
    'METRIC_COLUMNS',
    'DEFAULT_WINDOW_DAYS',
    'DEFAULT_MAX_LIMIT',
]
