"""
Path builders and index arithmetic for Live Object Model paths.

Full paths are space-delimited (``live_set tracks 0 devices 2 chains 0 devices 1``).
Device locations are also written in a simplified slash form used by callers:

- ``t<N>``  regular track N
- ``r<N>``  return track N
- ``mt``    master track
- ``d<N>``  device N inside the current track or chain
- ``c<N>``  chain N inside the current rack device

so the example above is ``t0/d2/c0/d1``.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple


LIVE_SET = "live_set"
LIVE_APP_VIEW = "live_app view"

_TRACK_PATH_RE = re.compile(r"^live_set tracks (\d+)(?:\s|$)")
_SCENE_PATH_RE = re.compile(r"^live_set scenes (\d+)(?:\s|$)")
_CLIP_SLOT_PATH_RE = re.compile(r"^live_set tracks \d+ clip_slots (\d+)(?:\s|$)")
_SIMPLE_SEGMENT_RE = re.compile(r"^(t|r|d|c)(\d+)$")

_FULL_TO_SIMPLE = {
    "tracks": "t",
    "return_tracks": "r",
    "devices": "d",
    "chains": "c",
}
_SIMPLE_TO_FULL = {value: key for key, value in _FULL_TO_SIMPLE.items()}


class LivePath:
    """Builders for the handful of full paths the duplication code addresses."""

    @staticmethod
    def track(track_index: int) -> str:
        return f"live_set tracks {int(track_index)}"

    @staticmethod
    def clip_slot(track_index: int, scene_index: int) -> str:
        return f"live_set tracks {int(track_index)} clip_slots {int(scene_index)}"

    @staticmethod
    def session_clip(track_index: int, scene_index: int) -> str:
        return LivePath.clip_slot(track_index, scene_index) + " clip"

    @staticmethod
    def scene(scene_index: int) -> str:
        return f"live_set scenes {int(scene_index)}"


def track_index_from_path(path: Optional[str]) -> Optional[int]:
    """Index of the regular track a path lives under, or None (return/master/other)."""
    if not isinstance(path, str):
        return None
    match = _TRACK_PATH_RE.match(path)
    return int(match.group(1)) if match else None


def scene_index_from_path(path: Optional[str]) -> Optional[int]:
    """Scene row for a scene path or a session clip (slot) path."""
    if not isinstance(path, str):
        return None
    match = _SCENE_PATH_RE.match(path) or _CLIP_SLOT_PATH_RE.match(path)
    return int(match.group(1)) if match else None


def is_return_or_master_path(path: Optional[str]) -> bool:
    if not isinstance(path, str):
        return False
    return path.startswith("live_set return_tracks ") or path.startswith("live_set master_track")


def simplify_device_path(path: str) -> str:
    """``live_set tracks 0 devices 2 chains 0`` -> ``t0/d2/c0``."""
    tokens = path.split()
    if not tokens or tokens[0] != LIVE_SET:
        raise ValueError(f'cannot extract device path from "{path}"')

    segments: List[str] = []
    index = 1
    while index < len(tokens):
        token = tokens[index]
        if token == "master_track":
            segments.append("mt")
            index += 1
            continue
        prefix = _FULL_TO_SIMPLE.get(token)
        if prefix is None or index + 1 >= len(tokens) or not tokens[index + 1].isdigit():
            raise ValueError(f'cannot extract device path from "{path}"')
        segments.append(f"{prefix}{tokens[index + 1]}")
        index += 2

    if not any(segment.startswith("d") for segment in segments):
        raise ValueError(f'cannot extract device path from "{path}": no device segment')
    return "/".join(segments)


def expand_device_path(simplified: str) -> str:
    """``t0/d2/c0`` -> ``live_set tracks 0 devices 2 chains 0``."""
    tokens = [LIVE_SET]
    for segment in _split_simplified(simplified):
        if segment == "mt":
            tokens.append("master_track")
            continue
        match = _SIMPLE_SEGMENT_RE.match(segment)
        if match is None:
            raise ValueError(f'invalid device path segment "{segment}" in "{simplified}"')
        tokens.extend([_SIMPLE_TO_FULL[match.group(1)], match.group(2)])
    return " ".join(tokens)


def _split_simplified(simplified: str) -> List[str]:
    segments = [segment.strip() for segment in str(simplified).strip().split("/") if segment.strip()]
    if not segments:
        raise ValueError("device path is empty")
    if segments[0] != "mt" and not re.match(r"^[tr]\d+$", segments[0]):
        raise ValueError(f'device path must start with a track segment (tN, rN or mt), got "{simplified}"')
    return segments


def device_position_after(simplified: str) -> str:
    """
    Destination right after a device: ``t0/d2`` -> ``t0/d3``.

    Paths that do not end on a device segment are returned unchanged.
    """
    segments = _split_simplified(simplified)
    match = _SIMPLE_SEGMENT_RE.match(segments[-1])
    if match is None or match.group(1) != "d":
        return "/".join(segments)
    segments[-1] = f"d{int(match.group(2)) + 1}"
    return "/".join(segments)


def shift_track_index(simplified: str, inserted_at: int) -> str:
    """
    Account for a track inserted at ``inserted_at``.

    Regular-track paths at or after the insertion point move up by one; return
    and master paths are unaffected.
    """
    segments = _split_simplified(simplified)
    match = _SIMPLE_SEGMENT_RE.match(segments[0])
    if match is None or match.group(1) != "t":
        return "/".join(segments)
    track_index = int(match.group(2))
    if track_index >= inserted_at:
        segments[0] = f"t{track_index + 1}"
    return "/".join(segments)


def split_device_destination(simplified: str) -> Tuple[str, Optional[int]]:
    """
    Split a destination into (container full path, insert position).

    ``t3/d0`` -> (``live_set tracks 3``, 0). A destination ending on a track or
    chain segment yields position None (append at the end of that container).
    """
    segments = _split_simplified(simplified)
    match = _SIMPLE_SEGMENT_RE.match(segments[-1])
    if match is not None and match.group(1) == "d" and len(segments) > 1:
        return expand_device_path("/".join(segments[:-1])), int(match.group(2))
    return expand_device_path("/".join(segments)), None
