"""
Refresh Coordinator

Asks the precomputed store to rebuild each of its views out of band.
Reads never wait on this: they only benefit from fresher slices on the
next request.

Per target:
    never_run -> success | error | simulated

- One target failing never aborts its siblings.
- A store without a rebuild capability does not fail the pass: every
  target is reported as "simulated" so operators can tell a real
  refresh from a pretended one.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from socialpulse.cache.config import RefreshConfig, get_refresh_config
from socialpulse.errors import RebuildTargetFailed, RebuildUnsupported
from socialpulse.utils import run_io


logger = logging.getLogger(__name__)


class RefreshStatus(str, Enum):
    NEVER_RUN = "never_run"
    SUCCESS = "success"
    ERROR = "error"
    SIMULATED = "simulated"


@dataclass
class RefreshTarget:
    """Latest known state of one precomputed view."""
    name: str
    status: RefreshStatus = RefreshStatus.NEVER_RUN
    last_refreshed_at: Optional[datetime] = None
    message: Optional[str] = None
    duration_ms: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "last_refreshed_at": self.last_refreshed_at.isoformat() if self.last_refreshed_at else None,
            "message": self.message,
            "duration_ms": round(self.duration_ms, 2),
        }


@dataclass
class RefreshReport:
    """Outcome of one refresh_all() pass."""
    targets: List[RefreshTarget] = field(default_factory=list)
    overall_success: bool = True
    duration_ms: float = 0.0

    @property
    def simulated(self) -> bool:
        return bool(self.targets) and all(
            t.status == RefreshStatus.SIMULATED for t in self.targets
        )

    def succeeded(self) -> List[str]:
        return [t.name for t in self.targets if t.status == RefreshStatus.SUCCESS]

    def failed(self) -> List[str]:
        return [t.name for t in self.targets if t.status == RefreshStatus.ERROR]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "targets": [t.as_dict() for t in self.targets],
            "overall_success": self.overall_success,
            "simulated": self.simulated,
            "duration_ms": round(self.duration_ms, 2),
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RefreshCoordinator:
    """
    Rebuilds a fixed list of precomputed targets and tracks their status.

    The store may expose rebuild(target_name) as a plain or async
    function. Returning False (or raising) marks the target as failed;
    raising RebuildUnsupported marks it simulated. A store with no
    rebuild attribute at all is simulated wholesale.

    At most one pass per process is expected at a time.
    """

    def __init__(
        self,
        store: Any,
        config: Optional[RefreshConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self.config = config or get_refresh_config()
        self._clock = clock
        self._targets: Dict[str, RefreshTarget] = {
            name: RefreshTarget(name=name) for name in self.config.targets
        }
        self.last_report: Optional[RefreshReport] = None

    @property
    def rebuild_supported(self) -> bool:
        return callable(getattr(self._store, "rebuild", None))

    def targets(self) -> List[RefreshTarget]:
        """Snapshot of every target's latest state, in configured order."""
        return [replace(self._targets[name]) for name in self.config.targets]

    async def refresh_all(self) -> RefreshReport:
        start_time = time.perf_counter()
        names = list(self.config.targets)

        logger.info(
            f"Refreshing {len(names)} precomputed targets "
            f"({'concurrent' if self.config.concurrent else 'sequential'})"
        )

        if not self.rebuild_supported:
            logger.warning("Precomputed store has no rebuild capability, simulating refresh")
            results = [self._simulated(name, "rebuild capability not available") for name in names]
        elif self.config.concurrent:
            # Each task returns its own target; nothing is shared between them
            results = list(await asyncio.gather(*(self._refresh_one(name) for name in names)))
        else:
            results = []
            for name in names:
                results.append(await self._refresh_one(name))

        for result in results:
            self._targets[result.name] = result

        duration = (time.perf_counter() - start_time) * 1000
        report = RefreshReport(
            targets=[replace(r) for r in results],
            overall_success=all(r.status != RefreshStatus.ERROR for r in results),
            duration_ms=duration,
        )
        self.last_report = report

        logger.info(
            f"Refresh complete in {duration:.2f}ms: "
            f"{len(report.succeeded())} succeeded, {len(report.failed())} failed"
            + (" (simulated)" if report.simulated else "")
        )
        return report

    def _simulated(self, name: str, reason: str) -> RefreshTarget:
        previous = self._targets.get(name)
        return RefreshTarget(
            name=name,
            status=RefreshStatus.SIMULATED,
            last_refreshed_at=previous.last_refreshed_at if previous else None,
            message=f"Simulated: {reason}",
        )

    async def _refresh_one(self, name: str) -> RefreshTarget:
        start_time = time.perf_counter()

        try:
            await self._rebuild(name)
        except RebuildUnsupported as e:
            logger.warning(f"Rebuild of {name} unsupported, simulating: {e}")
            return self._simulated(name, str(e))
        except RebuildTargetFailed as e:
            logger.error(f"Rebuild failed for {e}")
            return self._failed(name, e.reason, start_time)
        except Exception as e:
            logger.error(f"Unexpected error rebuilding {name}: {e}")
            return self._failed(name, str(e), start_time)

        duration = (time.perf_counter() - start_time) * 1000
        logger.info(f"Refreshed {name} in {duration:.2f}ms")
        return RefreshTarget(
            name=name,
            status=RefreshStatus.SUCCESS,
            last_refreshed_at=self._clock(),
            message="Refreshed",
            duration_ms=duration,
        )

    async def _rebuild(self, name: str):
        """Run the store's rebuild for one target, raising RebuildTargetFailed on failure."""
        try:
            outcome = await run_io(
                self._store.rebuild,
                name,
                timeout=self.config.rebuild_timeout,
            )
        except asyncio.TimeoutError as e:
            raise RebuildTargetFailed(
                name, f"timed out after {self.config.rebuild_timeout}s"
            ) from e

        if outcome is False:
            raise RebuildTargetFailed(name, "store reported failure")

    def _failed(self, name: str, reason: str, start_time: float) -> RefreshTarget:
        previous = self._targets.get(name)
        return RefreshTarget(
            name=name,
            status=RefreshStatus.ERROR,
            last_refreshed_at=previous.last_refreshed_at if previous else None,
            message=reason,
            duration_ms=(time.perf_counter() - start_time) * 1000,
        )
