"""
Fallback Aggregator

Recomputes an aggregate directly from raw post snapshots when the
precomputed slice is missing, empty or unreadable. The raw query gets
the definition's ordering and bound pushed down, and the result goes
through the same reducer, ordering and bound as the precomputed path.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, List, Optional
from zoneinfo import ZoneInfo

from socialpulse.aggregation.definitions import AggregateDefinition, Row
from socialpulse.aggregation.query import QuerySpec, spec_date_range
from socialpulse.utils import run_io
from socialpulse.errors import FallbackComputationFailed


logger = logging.getLogger(__name__)


class FallbackAggregator:
    """Computes aggregate rows from raw records for exactly one QuerySpec."""

    def __init__(
        self,
        source: Any,
        definition: AggregateDefinition,
        tz: ZoneInfo,
        clock: Optional[Callable[[], datetime]] = None,
        timeout: Optional[float] = None,
    ):
        self._source = source
        self.definition = definition
        self._tz = tz
        self._clock = clock or (lambda: datetime.now(tz))
        self._timeout = timeout

    async def compute(self, spec: QuerySpec) -> List[Row]:
        date_range = spec_date_range(spec, self._clock(), self._tz)

        logger.debug(
            f"Fallback {self.definition.name} for client={spec.client_id} "
            f"platform={spec.platform.value} period={spec.period.value}"
        )

        try:
            raw_rows = await run_io(
                self._source.query_raw,
                spec.client_id,
                spec.platform,
                date_range,
                spec.filters,
                self.definition.raw_order_by,
                self.definition.raw_limit,
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise FallbackComputationFailed(
                f"raw query for {self.definition.name} timed out after {self._timeout}s"
            ) from e
        except Exception as e:
            raise FallbackComputationFailed(
                f"raw query for {self.definition.name} failed: {e}"
            ) from e

        rows = list(raw_rows or [])
        try:
            if self.definition.reducer is not None:
                rows = self.definition.reducer(rows, self._tz)
            return self.definition.finalize(rows, self._tz)
        except (KeyError, TypeError, ValueError) as e:
            raise FallbackComputationFailed(
                f"malformed raw rows for {self.definition.name}: {e}"
            ) from e
