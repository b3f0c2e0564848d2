"""
needlebot/errors.py - Everything that can go wrong, in one place.

Not finding a needle is NOT in here. That's a normal Tuesday.
"""

from typing import Optional


class NeedlebotError(Exception):
    """Base for all needlebot errors."""


class ConfigError(NeedlebotError):
    # Bad values in config.yaml
    pass


class AssetNotFoundError(NeedlebotError):
    def __init__(self, path: str) -> None:
        super().__init__(f"Needle image not found: {path}")
        self.path = path


class DecodeError(NeedlebotError):
    # Image or save-file bytes we couldn't make sense of
    pass


class InvalidDimensionsError(NeedlebotError):
    """Needle is bigger than the frame it's supposed to be found in.

    Usually means the needles were cropped at a different resolution
    than the one being captured.
    """

    def __init__(self, frame_size: tuple, needle_size: tuple, name: str = "") -> None:
        fw, fh = frame_size
        nw, nh = needle_size
        label = f" '{name}'" if name else ""
        super().__init__(
            f"Needle{label} ({nw}x{nh}) does not fit in frame ({fw}x{fh})"
        )
        self.frame_size = frame_size
        self.needle_size = needle_size


class CaptureError(NeedlebotError):
    # Screen grab failed (no display, permission denied, ...)
    pass


class FrameReleasedError(NeedlebotError):
    pass


class UnresolvedAnchorError(NeedlebotError):
    """An anchor needle could not be located, or was used before it was."""

    def __init__(self, anchor: str, last_score: Optional[float] = None, detail: str = "") -> None:
        msg = f"Anchor '{anchor}' is not resolved"
        if last_score is not None:
            msg += f" (last score {last_score:.3f})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
        self.anchor = anchor
        self.last_score = last_score
