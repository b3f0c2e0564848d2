"""
needlebot/savefile.py - Peek inside the game's progress.sav.

The save is raw DEFLATE (no zlib/gzip header) wrapped around mostly-text
data with JSON blobs embedded in it. This inflates it, dumps the bytes
next to the input and pulls out whatever JSON it can find.

    needlebot-decode ./progress.sav --out progress.bin --preview 2000
"""

from __future__ import annotations

import argparse
import json
import sys
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .errors import DecodeError

MAX_CANDIDATE_LEN = 2_000_000


@dataclass(frozen=True)
class JsonHit:
    index: int
    length: int
    text: str


def inflate_save(data: bytes) -> bytes:
    try:
        return zlib.decompress(data, -zlib.MAX_WBITS)
    except zlib.error as e:
        raise DecodeError(
            "Failed to inflate raw DEFLATE data. If the file has a zlib or gzip "
            f"header it is not a raw stream. Original error: {e}"
        ) from e


def _balanced_end(text: str, start: int) -> Optional[int]:
    # Index of the bracket closing text[start], skipping over JSON strings
    open_ch = text[start]
    close_ch = "}" if open_ch == "{" else "]"
    depth = 0
    in_str = False
    esc = False
    limit = min(len(text), start + MAX_CANDIDATE_LEN)

    for end in range(start, limit):
        c = text[end]
        if in_str:
            if esc:
                esc = False
            elif c == "\\":
                esc = True
            elif c == '"':
                in_str = False
            continue
        if c == '"':
            in_str = True
        elif c == open_ch:
            depth += 1
        elif c == close_ch:
            depth -= 1
            if depth == 0:
                return end
    return None


def find_embedded_json(text: str, max_hits: int = 20) -> List[JsonHit]:
    """
    Heuristic scan for JSON objects/arrays buried in arbitrary text.

    Every `{` or `[` is a candidate start; the first balanced close wins
    and is kept only if it actually parses. Nested hits are reported too.
    """
    hits = {}
    for start, ch in enumerate(text):
        if len(hits) >= max_hits:
            break
        if ch not in "{[":
            continue
        end = _balanced_end(text, start)
        if end is None:
            continue
        candidate = text[start:end + 1]
        try:
            json.loads(candidate)
        except ValueError:
            continue
        hits.setdefault(start, JsonHit(start, len(candidate), candidate))
    return [hits[i] for i in sorted(hits)]


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="needlebot-decode", description="Inflate a raw-DEFLATE save file")
    p.add_argument("input", help="path to the .sav file")
    p.add_argument("--out", help="where to write inflated bytes (default: <input>.inflated.bin)")
    p.add_argument("--preview", type=int, default=1200, help="latin-1 preview length (default: 1200)")
    p.add_argument("--no-json", dest="extract_json", action="store_false",
                   help="skip the embedded JSON scan")
    args = p.parse_args(argv)
    if args.preview < 0:
        p.error(f"invalid --preview: {args.preview}")
    return args


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    in_path = Path(args.input).resolve()
    if not in_path.is_file():
        print(f"Input not found: {in_path}", file=sys.stderr)
        return 1

    compressed = in_path.read_bytes()
    try:
        inflated = inflate_save(compressed)
    except DecodeError as e:
        print(str(e), file=sys.stderr)
        return 1

    out = Path(args.out).resolve() if args.out else in_path.with_name(f"{in_path.name}.inflated.bin")
    out.write_bytes(inflated)

    # latin-1 maps bytes 1:1 onto chars, so nothing blows up on binary junk
    text = inflated.decode("latin-1")
    print(f"Input:  {in_path}")
    print(f"Output: {out}")
    print(f"Compressed bytes:   {len(compressed)}")
    print(f"Decompressed bytes: {len(inflated)}")
    print(f"\n--- Preview (latin1, first {args.preview} chars max) ---\n{text[:args.preview]}\n")

    if not args.extract_json:
        return 0

    hits = find_embedded_json(text)
    if not hits:
        print("No embedded JSON objects found (heuristic scan).")
        return 0

    print(f"Found {len(hits)} JSON hit(s):")
    for i, h in enumerate(hits, 1):
        print(f"\n[{i}] @ index {h.index}, length {h.length}")
        print(json.dumps(json.loads(h.text), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
