"""
Traffic source vocabulary normalization.

The warehouse stores traffic sources as underscore tokens (Apple_Search_Ads)
while the dashboard displays human-readable labels (Apple Search Ads). This
module owns the bidirectional mapping between the two vocabularies and the
coercion of loosely-typed request input into a clean list of tokens.

Lookups never fail: a value missing from the table passes through unchanged,
so newly introduced warehouse sources still reach the dashboard.
"""

import logging
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)


# Warehouse token -> display label
DEFAULT_TRAFFIC_SOURCE_MAPPING: Mapping[str, str] = MappingProxyType({
    'App_Store_Search': 'App Store Search',
    'App_Store_Browse': 'App Store Browse',
    'Apple_Search_Ads': 'Apple Search Ads',
    'App_Referrer': 'App Referrer',
    'Web_Referrer': 'Web Referrer',
    'Institutional_Purchase': 'Institutional Purchase',
    'Event_Notification': 'Event Notification',
    'Other': 'Other',
})


class TrafficSourceNormalizer:
    """
    Bidirectional traffic source mapping plus loose input coercion.

    The mapping is copied into read-only views at construction; instances are
    safe to share across concurrent requests.
    """

    def __init__(self, mapping: Optional[Mapping[str, str]] = None):
        source = DEFAULT_TRAFFIC_SOURCE_MAPPING if mapping is None else mapping
        to_display: Dict[str, str] = dict(source)
        to_warehouse: Dict[str, str] = {}
        for warehouse_token, display in to_display.items():
            if display in to_warehouse:
                raise ValueError(
                    f"Traffic source mapping is not injective: '{display}' is "
                    f"mapped from both '{to_warehouse[display]}' and '{warehouse_token}'"
                )
            to_warehouse[display] = warehouse_token

        self._to_display = MappingProxyType(to_display)
        self._to_warehouse = MappingProxyType(to_warehouse)

    @property
    def display_vocabulary(self) -> List[str]:
        return list(self._to_display.values())

    @property
    def warehouse_vocabulary(self) -> List[str]:
        return list(self._to_display.keys())

    def to_display(self, warehouse_token: str) -> str:
        return self._to_display.get(warehouse_token, warehouse_token)

    def to_warehouse(self, display: str) -> str:
        return self._to_warehouse.get(display, display)

    def to_warehouse_list(self, values: Iterable[str]) -> List[str]:
        """Map values to warehouse vocabulary, keeping first-seen order."""
        return _dedupe(self.to_warehouse(value) for value in values)

    @staticmethod
    def normalize_input_array(raw: Any) -> List[str]:
        """
        Coerce request input into a deduplicated list of trimmed strings.

        Accepts None, a single string, or a list/tuple. Non-string members and
        blank strings are dropped. Any other shape yields an empty list.

        Examples:
            >>> TrafficSourceNormalizer.normalize_input_array("  x  ")
            ['x']
            >>> TrafficSourceNormalizer.normalize_input_array(["x", "y", "x"])
            ['x', 'y']
            >>> TrafficSourceNormalizer.normalize_input_array(None)
            []
        """
        if raw is None:
            return []
        if isinstance(raw, str):
            candidates: Iterable[Any] = [raw]
        elif isinstance(raw, (list, tuple)):
            candidates = raw
        else:
            logger.debug(f"Ignoring traffic source input of type {type(raw).__name__}")
            return []

        return _dedupe(
            item.strip()
            for item in candidates
            if isinstance(item, str) and item.strip()
        )


def _dedupe(values: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result
