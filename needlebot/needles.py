"""
needlebot/needles.py - Reference images we go looking for on screen.

Loaded once at startup, grayscale, read-only. Nothing mutates a needle
after it's in the registry.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

import numpy as np

from .errors import AssetNotFoundError
from .vision import decode_gray


@dataclass(frozen=True, eq=False)
class Needle:
    name: str
    gray: np.ndarray
    width: int
    height: int

    @classmethod
    def from_gray(cls, name: str, gray: np.ndarray) -> "Needle":
        gray.flags.writeable = False
        h, w = gray.shape[:2]
        return cls(name=name, gray=gray, width=w, height=h)


class NeedleRegistry:
    # Owns every Needle. Everyone else just borrows.

    def __init__(
        self,
        base_dir: Optional[Path] = None,
        max_workers: int = 4,
        log_fn: Optional[Callable[[str, str], None]] = None
    ) -> None:
        self._base = Path(base_dir) if base_dir else None
        self._workers = max(1, max_workers)
        self._needles: Dict[str, Needle] = {}
        self._log = log_fn or (lambda m, l: None)

    def _resolve(self, identifier: str) -> Path:
        path = Path(identifier)
        if not path.is_absolute() and self._base is not None and not path.exists():
            path = self._base / path
        return path

    def _read(self, identifier: str) -> Needle:
        path = self._resolve(identifier)
        if not path.is_file():
            raise AssetNotFoundError(str(path))
        gray = decode_gray(path.read_bytes())
        return Needle.from_gray(identifier, gray)

    def load(self, identifier: str) -> Needle:
        if identifier in self._needles:
            return self._needles[identifier]
        needle = self._read(identifier)
        self._needles[identifier] = needle
        self._log(f"Needle loaded: {identifier} ({needle.width}x{needle.height})", "DEBUG")
        return needle

    def load_all(self, identifiers: Iterable[str]) -> Dict[str, Needle]:
        """
        Load several needles in parallel. First failure wins and nothing
        from this batch is kept.
        """
        wanted: List[str] = list(dict.fromkeys(identifiers))
        pending = [i for i in wanted if i not in self._needles]
        loaded: Dict[str, Needle] = {}

        if pending:
            with ThreadPoolExecutor(max_workers=min(self._workers, len(pending))) as pool:
                futures = {pool.submit(self._read, ident): ident for ident in pending}
                try:
                    for fut in as_completed(futures):
                        loaded[futures[fut]] = fut.result()
                except Exception:
                    for f in futures:
                        f.cancel()
                    loaded.clear()
                    raise

        self._needles.update(loaded)
        if loaded:
            self._log(f"Needles loaded: {len(loaded)}", "INFO")
        return {ident: self._needles[ident] for ident in wanted}

    def load_directory(self, directory: Path, pattern: str = "*.png") -> Dict[str, Needle]:
        # Every image in a folder, keyed by file stem
        directory = Path(directory)
        if not directory.is_dir():
            raise AssetNotFoundError(str(directory))
        paths = sorted(directory.glob(pattern))
        by_path = self.load_all(str(p) for p in paths)
        by_stem = {}
        for p in paths:
            self._needles.pop(str(p), None)
            needle = by_path[str(p)]
            by_stem[p.stem] = Needle(name=p.stem, gray=needle.gray, width=needle.width, height=needle.height)
        self._needles.update(by_stem)
        return by_stem

    def get(self, identifier: str) -> Needle:
        try:
            return self._needles[identifier]
        except KeyError:
            raise AssetNotFoundError(identifier) from None

    def names(self) -> List[str]:
        return sorted(self._needles)

    def release_all(self) -> None:
        self._needles.clear()

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._needles

    def __len__(self) -> int:
        return len(self._needles)
