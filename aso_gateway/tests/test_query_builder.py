"""
Tests for the metrics query builder.
"""

from datetime import date

import pytest

from aso_gateway.core.errors import ConfigurationError, EmptyScopeError, ValidationError
from aso_gateway.models.schemas import DateRange, QueryFilter
from aso_gateway.sql.aso_queries import (
    METRIC_COLUMNS,
    QueryBuilder,
    quote_literal,
    table_reference,
)
from aso_gateway.tests.conftest import FIXED_TODAY

TABLE = '`aso-test-project.aso_dataset.aso_metrics`'


@pytest.fixture
def builder(normalizer) -> QueryBuilder:
    return QueryBuilder(TABLE, normalizer, max_limit=1000, today=lambda: FIXED_TODAY)


def _params(built) -> dict:
    return {parameter['name']: parameter for parameter in built.parameters}


class TestTableReference:

    def test_valid_reference(self):
        assert table_reference('my-project', 'aso_dataset', 'aso_metrics') == TABLE.replace(
            'aso-test-project', 'my-project'
        )

    @pytest.mark.parametrize('project, dataset, table', [
        ('proj`; DROP', 'aso_dataset', 'aso_metrics'),
        ('proj', 'aso-dataset', 'aso_metrics'),
        ('proj', 'aso_dataset', 'metrics x'),
        ('', 'aso_dataset', 'aso_metrics'),
    ])
    def test_invalid_components_rejected(self, project, dataset, table):
        with pytest.raises(ConfigurationError):
            table_reference(project, dataset, table)


class TestQuoteLiteral:

    def test_plain(self):
        assert quote_literal('yodel_pimsleur') == "'yodel_pimsleur'"

    def test_quotes_and_backslashes_escaped(self):
        assert quote_literal("o'brien\\") == "'o\\'brien\\\\'"


class TestBuild:

    def test_scope_dates_and_limit(self, builder):
        built = builder.build(
            QueryFilter(
                date_range=DateRange(from_=date(2025, 1, 1), to=date(2025, 1, 31)),
                limit=50,
            ),
            ['yodel_pimsleur', 'yodel_babbel'],
        )

        assert f"FROM {TABLE}" in built.query_text
        assert "WHERE client IN ('yodel_pimsleur', 'yodel_babbel')" in built.query_text
        assert 'date BETWEEN @date_from AND @date_to' in built.query_text
        assert 'ORDER BY date DESC' in built.query_text
        assert 'LIMIT 50' in built.query_text
        assert ', '.join(METRIC_COLUMNS) in built.query_text

        params = _params(built)
        assert params['date_from']['parameterType'] == {'type': 'DATE'}
        assert params['date_from']['parameterValue'] == {'value': '2025-01-01'}
        assert params['date_to']['parameterValue'] == {'value': '2025-01-31'}

        assert built.limit == 50
        assert built.entity_ids == ['yodel_pimsleur', 'yodel_babbel']

    def test_no_traffic_clause_without_sources(self, builder):
        built = builder.build(QueryFilter(), ['app'])

        assert 'traffic_source IN' not in built.query_text
        assert 'traffic_sources' not in _params(built)
        assert built.traffic_sources == []

    def test_traffic_sources_bound_as_string_array(self, builder):
        built = builder.build(
            QueryFilter(traffic_sources=['Apple Search Ads', 'App_Store_Search']),
            ['app'],
        )

        assert 'AND traffic_source IN UNNEST(@traffic_sources)' in built.query_text
        param = _params(built)['traffic_sources']
        assert param['parameterType'] == {'type': 'ARRAY', 'arrayType': {'type': 'STRING'}}
        assert param['parameterValue'] == {
            'arrayValues': [{'value': 'Apple_Search_Ads'}, {'value': 'App_Store_Search'}]
        }
        # Values never appear in the query text
        assert 'Apple_Search_Ads' not in built.query_text

    def test_default_window_is_trailing_thirty_days(self, builder):
        built = builder.build(QueryFilter(), ['app'])

        assert built.date_to == FIXED_TODAY
        assert built.date_from == date(2025, 3, 1)
        params = _params(built)
        assert params['date_from']['parameterValue'] == {'value': '2025-03-01'}
        assert params['date_to']['parameterValue'] == {'value': '2025-03-31'}

    def test_limit_capped_at_maximum(self, builder):
        built = builder.build(QueryFilter(limit=50_000), ['app'])
        assert built.limit == 1000
        assert 'LIMIT 1000' in built.query_text

    def test_non_positive_limit_rejected(self, builder):
        with pytest.raises(ValidationError):
            builder.effective_limit(0)

    @pytest.mark.parametrize('scope', [[], None, ['', None]])
    def test_empty_scope_rejected(self, builder, scope):
        with pytest.raises(EmptyScopeError) as exc_info:
            builder.build(QueryFilter(), scope)
        assert exc_info.value.status_code == 404

    def test_scope_comes_only_from_resolved_entities(self, builder):
        assert 'entity_scope' not in QueryFilter.model_fields

        built = builder.build(QueryFilter.model_validate({'entityScope': ['other']}), ['app'])

        assert built.entity_ids == ['app']
        assert 'other' not in built.query_text

    def test_scope_deduplicated(self, builder):
        built = builder.build(QueryFilter(), ['a', 'b', 'a'])
        assert built.entity_ids == ['a', 'b']

    def test_hostile_entity_identifier_stays_inside_literal(self, builder):
        built = builder.build(QueryFilter(), ["x') OR 1=1 --"])
        assert "client IN ('x\\') OR 1=1 --')" in built.query_text


class TestBuildDiscovery:

    def test_selects_distinct_sources_and_ignores_filter(self, builder):
        built = builder.build_discovery(
            QueryFilter(traffic_sources=['Apple_Search_Ads'], limit=10),
            ['yodel_pimsleur'],
        )

        assert 'SELECT DISTINCT' in built.query_text
        assert 'traffic_source' in built.query_text
        assert 'UNNEST' not in built.query_text
        assert 'LIMIT 1000' in built.query_text
        assert built.limit == 1000
        assert set(_params(built)) == {'date_from', 'date_to'}

    def test_empty_scope_rejected(self, builder):
        with pytest.raises(EmptyScopeError):
            builder.build_discovery(QueryFilter(), [])
