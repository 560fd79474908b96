from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests

from ..tracking.types import Number

logger = logging.getLogger(__name__)

__all__ = ["HttpCountSource", "HttpPageSource"]


def _upper_bound(max_value: Number, inclusive_upper: bool) -> Number:
    # Inclusive APIs get [min, max - 1] for integer bounds
    if inclusive_upper and isinstance(max_value, int):
        return max_value - 1
    return max_value


class HttpCountSource:
    """
    Count records in a value range through a feed's HTTP count endpoint.

    Failures are raised to the caller; the density scanner owns the retry
    policy so that every retry reuses identical bounds.
    """

    def __init__(
        self,
        url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        base_params: Optional[Mapping[str, Any]] = None,
        count_field: str = "count",
        min_param: str = "min",
        max_param: str = "max",
        inclusive_upper: bool = True,
    ):
        self.url = url
        self.session = session or requests.Session()
        self.timeout = timeout
        self.base_params: Dict[str, Any] = dict(base_params or {})
        self.count_field = count_field
        self.min_param = min_param
        self.max_param = max_param
        self.inclusive_upper = inclusive_upper

    def get_count(self, min_value: Number, max_value: Number) -> int:
        params = dict(self.base_params)
        params[self.min_param] = min_value
        params[self.max_param] = _upper_bound(max_value, self.inclusive_upper)

        resp = self.session.get(self.url, params=params, timeout=self.timeout)
        resp.raise_for_status()

        payload = resp.json()
        try:
            return int(payload[self.count_field])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(
                f"Count response from {self.url} has no integer '{self.count_field}' field"
            ) from exc


class HttpPageSource:
    """Fetch one page of records in a value range from a feed's HTTP search endpoint."""

    def __init__(
        self,
        url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        base_params: Optional[Mapping[str, Any]] = None,
        items_field: str = "items",
        min_param: str = "min",
        max_param: str = "max",
        inclusive_upper: bool = True,
    ):
        self.url = url
        self.session = session or requests.Session()
        self.timeout = timeout
        self.base_params: Dict[str, Any] = dict(base_params or {})
        self.items_field = items_field
        self.min_param = min_param
        self.max_param = max_param
        self.inclusive_upper = inclusive_upper

    def fetch_page(
        self,
        min_value: Number,
        max_value: Number,
        offset: int,
        limit: int,
    ) -> Sequence[Any]:
        params = dict(self.base_params)
        params.update({
            self.min_param: min_value,
            self.max_param: _upper_bound(max_value, self.inclusive_upper),
            "offset": offset,
            "limit": limit,
        })

        logger.debug("Fetching page [%s, %s) offset=%d limit=%d", min_value, max_value, offset, limit)
        resp = self.session.get(self.url, params=params, timeout=self.timeout)
        resp.raise_for_status()

        payload = resp.json()
        items = payload.get(self.items_field) if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise ValueError(f"Page response from {self.url} has no '{self.items_field}' list")
        return items
