"""
needlebot/session.py - Per-run state: which anchors we found and where.

Uninitialized -> Resolving -> Ready -> (Locating | Clicking) -> Ready
                           `-> Failed  (terminal, somebody has to go fix the needles)
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .errors import NeedlebotError, UnresolvedAnchorError
from .locator import Locator
from .mapper import LocatedRegion, LogicalPoint, check_scale, grid_point, region_center
from .needles import Needle

ANCHOR_NEXT_FRAME = "next_frame"
ANCHOR_MAP = "map"
ANCHOR_TILE = "tile"


class SessionState(Enum):
    UNINITIALIZED = "uninitialized"
    RESOLVING = "resolving"
    READY = "ready"
    LOCATING = "locating"
    CLICKING = "clicking"
    FAILED = "failed"


_ACTIVE = (SessionState.READY, SessionState.LOCATING, SessionState.CLICKING)


class SessionError(NeedlebotError):
    # Illegal state transition
    pass


class SessionContext:

    def __init__(
        self,
        scale_factor: float = 1.0,
        log_fn: Optional[Callable[[str, str], None]] = None
    ) -> None:
        self.scale_factor = check_scale(scale_factor)
        self.state = SessionState.UNINITIALIZED
        self.failure: Optional[str] = None
        self._anchors: Dict[str, LocatedRegion] = {}
        self._regions: Dict[str, LocatedRegion] = {}
        self._log = log_fn or (lambda m, l: None)

    @property
    def ready(self) -> bool:
        return self.state in _ACTIVE

    @property
    def anchors(self) -> Dict[str, LocatedRegion]:
        return dict(self._anchors)

    def _require_live(self) -> None:
        if self.state is SessionState.FAILED:
            raise SessionError(f"Session has failed: {self.failure}")

    def resolve_anchors(
        self,
        locator: Locator,
        anchors: Sequence[Tuple[str, Needle]],
        threshold: float,
        attempts: int = 5,
        interval: float = 1.0
    ) -> Dict[str, LocatedRegion]:
        """
        Find every anchor, in order. One that stays missing after `attempts`
        polls kills the session.
        """
        self._require_live()
        if self.state is not SessionState.UNINITIALIZED:
            raise SessionError(f"Anchors already resolved (state={self.state.value})")

        self.state = SessionState.RESOLVING
        try:
            for role, needle in anchors:
                region = locator.wait_for(needle, threshold, attempts=attempts, interval=interval)
                if region is None:
                    last = locator.last_score(needle)
                    err = UnresolvedAnchorError(
                        role, last, f"needle '{needle.name}' below {threshold:.3f} after {attempts} attempts"
                    )
                    self.fail(str(err))
                    raise err
                self._anchors[role] = region
                self._log(f"Anchor '{role}' @ {region.x},{region.y} ({region.score:.3f})", "SUCCESS")
        except UnresolvedAnchorError:
            raise
        except Exception as e:
            self.fail(f"{type(e).__name__}: {e}")
            raise

        self.state = SessionState.READY
        return self.anchors

    def set_region(self, role: str, region: LocatedRegion) -> None:
        # Fixed regions from config (e.g. a coin counter that never moves)
        self._regions[role] = region

    def region(self, role: str) -> Optional[LocatedRegion]:
        return self._regions.get(role) or self._anchors.get(role)

    def anchor(self, role: str) -> LocatedRegion:
        if not self.ready:
            raise UnresolvedAnchorError(role, detail=f"session is {self.state.value}")
        try:
            return self._anchors[role]
        except KeyError:
            raise UnresolvedAnchorError(role, detail="not part of this session") from None

    def grid_point(self, column: int, row: int) -> LogicalPoint:
        if not self.ready:
            raise UnresolvedAnchorError(ANCHOR_MAP, detail=f"session is {self.state.value}")
        return grid_point(
            self._anchors.get(ANCHOR_MAP), self._anchors.get(ANCHOR_TILE),
            column, row, self.scale_factor
        )

    def center_of(self, region: LocatedRegion) -> LogicalPoint:
        return region_center(region, self.scale_factor)

    def begin(self, state: SessionState) -> None:
        self._require_live()
        if state not in (SessionState.LOCATING, SessionState.CLICKING):
            raise SessionError(f"Not a per-action state: {state.value}")
        if not self.ready:
            raise SessionError(f"Cannot start {state.value} from {self.state.value}")
        self.state = state

    def finish(self) -> None:
        self._require_live()
        if self.state in (SessionState.LOCATING, SessionState.CLICKING):
            self.state = SessionState.READY

    def fail(self, reason: str) -> None:
        self.state = SessionState.FAILED
        self.failure = reason
        self._log(f"Session failed: {reason}", "ERROR")

    def summary(self) -> List[str]:
        lines = [f"state={self.state.value}", f"scale={self.scale_factor}"]
        for role, r in self._anchors.items():
            lines.append(f"{role}: ({r.x},{r.y}) {r.width}x{r.height} score={r.score:.3f}")
        return lines
