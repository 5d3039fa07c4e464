"""
Aggregate Reader

Thin async facade over the precomputed store. Store methods may be
plain functions (SQLAlchemy sessions) or coroutines; plain functions
run in a worker thread so they never block the event loop.

An absent or empty slice is not an error here. Only failures and
timeouts raise PrecomputedReadFailed, which the orchestrator treats as
"try the fallback".
"""

import asyncio
import logging
from typing import Any, List, Optional

from socialpulse.aggregation.query import QuerySpec
from socialpulse.errors import PrecomputedReadFailed
from socialpulse.utils import run_io


logger = logging.getLogger(__name__)


class AggregateReader:
    """Reads precomputed slices by (client, platform, period)."""

    def __init__(self, store: Any, timeout: Optional[float] = None):
        self._store = store
        self._timeout = timeout

    async def read_slice(self, spec: QuerySpec) -> List[Any]:
        try:
            rows = await run_io(
                self._store.read_slice,
                spec.client_id,
                spec.platform,
                spec.slice_period,
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise PrecomputedReadFailed(
                f"precomputed read timed out after {self._timeout}s"
            ) from e
        except Exception as e:
            raise PrecomputedReadFailed(f"precomputed read failed: {e}") from e

        return list(rows or [])

    async def current_period_available(self, spec: QuerySpec) -> bool:
        """Probe whether the precomputed store already holds the current period."""
        try:
            exists = await run_io(
                self._store.row_exists_for_current_period,
                spec.client_id,
                spec.period,
                platform=spec.platform,
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise PrecomputedReadFailed(
                f"current-period probe timed out after {self._timeout}s"
            ) from e
        except Exception as e:
            raise PrecomputedReadFailed(f"current-period probe failed: {e}") from e

        return bool(exists)
