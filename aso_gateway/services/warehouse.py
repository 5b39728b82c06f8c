"""
Warehouse query execution and result transformation.

WarehouseClient posts a parameterized query to the BigQuery REST `queries`
endpoint with the minted bearer token and returns the raw positional rows.

ResultTransformer turns those rows into CanonicalRecords. Rows are read by
fixed index:

    0 date, 1 entity, 2 traffic source (warehouse token), 3 impressions,
    4 downloads, 5 product page views

Transformation is total: short rows, non-list rows and non-numeric values
degrade to defaulted fields instead of failing the batch.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx
import numpy as np
import pandas as pd

from aso_gateway.core.errors import WarehouseError
from aso_gateway.models.schemas import BearerToken, CanonicalRecord
from aso_gateway.services.traffic_sources import TrafficSourceNormalizer

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_API_BASE_URL: str = 'https://bigquery.googleapis.com/bigquery/v2'
DEFAULT_WAREHOUSE_TIMEOUT: float = 30.0

RAW_COLUMNS: List[str] = [
    'date',
    'entity',
    'traffic_source',
    'impressions',
    'downloads',
    'page_views',
]

COUNT_COLUMNS: List[str] = ['impressions', 'downloads', 'page_views']

# Upper bound keeps float -> int64 conversion exact
MAX_COUNT: int = 2 ** 53


# =============================================================================
# WAREHOUSE CLIENT
# =============================================================================

@dataclass
class RawResultSet:
    """Positional rows as returned by the warehouse, flattened from {f:[{v}]}."""
    rows: List[List[Any]] = field(default_factory=list)
    total_rows: int = 0
    job_complete: bool = True


def flatten_row(row: Any) -> List[Any]:
    """Flatten a wire row {"f": [{"v": ...}, ...]} into a list of values."""
    if not isinstance(row, dict):
        return []
    cells = row.get('f')
    if not isinstance(cells, list):
        return []
    return [cell.get('v') if isinstance(cell, dict) else None for cell in cells]


def _parse_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class WarehouseClient:
    """
    Executes one query per call against the warehouse REST API. No retries.

    Args:
        project_id: Warehouse project the query runs in.
        api_base_url: REST API base URL.
        http_client: Optional shared httpx.AsyncClient.
        timeout: Deadline in seconds for the query call.
    """

    def __init__(
        self,
        project_id: str,
        api_base_url: str = DEFAULT_API_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_WAREHOUSE_TIMEOUT,
    ):
        self._project_id = project_id
        self._api_base_url = api_base_url.rstrip('/')
        self._http_client = http_client
        self._timeout = timeout

    @property
    def query_url(self) -> str:
        return f"{self._api_base_url}/projects/{self._project_id}/queries"

    async def execute(
        self,
        query_text: str,
        parameters: Sequence[Dict[str, Any]],
        token: BearerToken,
        max_results: int,
    ) -> RawResultSet:
        """
        Run `query_text` with named `parameters`.

        Raises:
            WarehouseError: On transport failure or any non-success response,
                carrying the upstream status and body where available.
        """
        body = {
            'query': query_text,
            'parameterMode': 'NAMED',
            'queryParameters': list(parameters),
            'useLegacySql': False,
            'maxResults': max_results,
        }
        headers = {
            'Authorization': f"Bearer {token.access_token}",
            'Content-Type': 'application/json',
        }

        logger.info(f"Executing warehouse query in project {self._project_id}")
        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self.query_url, json=body, headers=headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self.query_url, json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Warehouse request failed: {type(e).__name__}")
            raise WarehouseError(f"Warehouse request failed: {type(e).__name__}") from e

        if not response.is_success:
            logger.error(f"Warehouse API error: {response.status_code}")
            raise WarehouseError(
                f"BigQuery API error: {response.status_code} - {response.text}",
                upstream_status=response.status_code,
                upstream_body=response.text,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise WarehouseError(
                "Warehouse response was not valid JSON",
                upstream_status=response.status_code,
                upstream_body=response.text,
            ) from e
        if not isinstance(payload, dict):
            payload = {}

        raw_rows = payload.get('rows') or []
        result = RawResultSet(
            rows=[flatten_row(row) for row in raw_rows] if isinstance(raw_rows, list) else [],
            total_rows=_parse_int(payload.get('totalRows')),
            job_complete=bool(payload.get('jobComplete', True)),
        )
        logger.info(
            f"Warehouse query successful, rows returned: {len(result.rows)} "
            f"(total {result.total_rows})"
        )
        return result


# =============================================================================
# RESULT TRANSFORMER
# =============================================================================

def _scalar_or_none(value: Any) -> Any:
    if isinstance(value, bool):
        return None
    if isinstance(value, (str, int, float)):
        return value
    return None


def _text(value: Any) -> str:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return ''
    return str(value)


class ResultTransformer:
    """Maps positional warehouse rows into CanonicalRecords."""

    def __init__(self, normalizer: TrafficSourceNormalizer):
        self._normalizer = normalizer

    def to_frame(self, raw_rows: Sequence[Any]) -> pd.DataFrame:
        """
        Load rows into a DataFrame with RAW_COLUMNS, coercing counts.

        Rows that are not lists are treated as empty. Missing, non-numeric,
        negative or non-finite counts become 0.
        """
        padded = []
        for row in raw_rows or []:
            values = list(row) if isinstance(row, (list, tuple)) else []
            values = (values + [None] * len(RAW_COLUMNS))[:len(RAW_COLUMNS)]
            padded.append([_scalar_or_none(value) for value in values])

        frame = pd.DataFrame(padded, columns=RAW_COLUMNS, dtype=object)
        for column in COUNT_COLUMNS:
            numeric = pd.to_numeric(frame[column], errors='coerce')
            numeric = numeric.replace([np.inf, -np.inf], np.nan).fillna(0)
            frame[column] = numeric.clip(lower=0, upper=MAX_COUNT).astype('int64')

        frame['conversion_rate'] = np.where(
            frame['page_views'] > 0,
            frame['downloads'] / frame['page_views'].where(frame['page_views'] > 0, 1) * 100,
            0.0,
        )
        frame['conversion_rate'] = frame['conversion_rate'].clip(lower=0.0, upper=100.0).round(2)
        return frame

    def transform(self, raw_rows: Sequence[Any]) -> List[CanonicalRecord]:
        frame = self.to_frame(raw_rows)
        records = []
        for row in frame.itertuples(index=False):
            traffic_source_raw = _text(row.traffic_source)
            records.append(CanonicalRecord(
                date=_text(row.date) or None,
                entity_identifier=_text(row.entity),
                traffic_source_display=self._normalizer.to_display(traffic_source_raw),
                traffic_source_raw=traffic_source_raw,
                impressions=int(row.impressions),
                downloads=int(row.downloads),
                page_views=int(row.page_views),
                conversion_rate=float(row.conversion_rate),
            ))
        return records
