"""Arrangement locators (cue points) and arrangement-position resolution."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from DuplicateMCP_Server.barbeat import ableton_beats_to_bar_beat, bar_beat_to_ableton_beats
from DuplicateMCP_Server.errors import DuplicateResolutionError, DuplicateValidationError

logger = logging.getLogger("AbletonMCPServer.locators")

LOCATOR_ID_PREFIX = "locator-"


@dataclass(frozen=True)
class Locator:
    id: str
    name: str
    time: float

    def to_dict(self, numerator: int = 4, denominator: int = 4) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "time": ableton_beats_to_bar_beat(self.time, numerator, denominator),
            "time_beats": self.time,
        }


def read_locators(live_set) -> List[Locator]:
    """Read every cue point and number them by arrangement time."""
    entries = []
    for cue_point in live_set.children("cue_points"):
        entries.append((float(cue_point.get("time") or 0.0), str(cue_point.get("name") or "")))
    entries.sort(key=lambda entry: entry[0])
    return [
        Locator(id=f"{LOCATOR_ID_PREFIX}{index}", name=name, time=time)
        for index, (time, name) in enumerate(entries)
    ]


def find_locator(live_set, locator_id: str) -> Optional[Locator]:
    for locator in read_locators(live_set):
        if locator.id == locator_id:
            return locator
    return None


def find_locators_by_name(live_set, name: str) -> List[Locator]:
    return [locator for locator in read_locators(live_set) if locator.name == name]


def validate_arrangement_target(
    arrangement_start: Optional[str],
    arrangement_locator_id: Optional[str],
    arrangement_locator_name: Optional[str],
) -> None:
    provided = [
        value
        for value in (arrangement_start, arrangement_locator_id, arrangement_locator_name)
        if value is not None
    ]
    if not provided:
        raise DuplicateValidationError(
            "arrangementStart, arrangementLocatorId, or arrangementLocatorName is required "
            "when destination is 'arrangement'"
        )
    if len(provided) > 1:
        raise DuplicateValidationError(
            "arrangementStart, arrangementLocatorId, and arrangementLocatorName are mutually exclusive"
        )


def resolve_arrangement_position(
    live_set,
    arrangement_start: Optional[str],
    arrangement_locator_id: Optional[str],
    arrangement_locator_name: Optional[str],
    numerator: int,
    denominator: int,
) -> float:
    """Return the target position in beats from a bar|beat string, a locator id or a locator name."""
    validate_arrangement_target(arrangement_start, arrangement_locator_id, arrangement_locator_name)

    if arrangement_locator_id is not None:
        locator = find_locator(live_set, arrangement_locator_id)
        if locator is None:
            raise DuplicateResolutionError(f"locator not found: {arrangement_locator_id}")
        return locator.time

    if arrangement_locator_name is not None:
        matches = find_locators_by_name(live_set, arrangement_locator_name)
        if not matches:
            raise DuplicateResolutionError(f'no locator found with name "{arrangement_locator_name}"')
        if len(matches) > 1:
            logger.warning(
                f'{len(matches)} locators are named "{arrangement_locator_name}", '
                f"using the first one at beat {matches[0].time}"
            )
        return matches[0].time

    try:
        return bar_beat_to_ableton_beats(arrangement_start, numerator, denominator)
    except ValueError as exc:
        raise DuplicateValidationError(str(exc)) from exc
