"""Single-device duplication through a temporary copy of the device's track."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from DuplicateMCP_Server.errors import DuplicateOperationError, DuplicateResolutionError, DuplicateValidationError
from DuplicateMCP_Server.live_object import LiveObject
from DuplicateMCP_Server.live_paths import (
    LivePath,
    device_position_after,
    is_return_or_master_path,
    shift_track_index,
    simplify_device_path,
    split_device_destination,
    track_index_from_path,
)

logger = logging.getLogger("AbletonMCPServer.duplicate")


@contextmanager
def temporary_track_copy(live_set: LiveObject, track_index: int) -> Iterator[int]:
    """Duplicate a track and yield the copy's index; the copy is deleted on exit."""
    live_set.call("duplicate_track", track_index)
    temp_index = track_index + 1
    try:
        yield temp_index
    finally:
        live_set.call("delete_track", temp_index)
        logger.info(f"Deleted temporary track {temp_index}")


def duplicate_device(
    connection,
    live_set: LiveObject,
    device: LiveObject,
    to_path: Optional[str] = None,
    name: Optional[str] = None,
    count: int = 1,
) -> Dict[str, Any]:
    """
    Copy one device to ``to_path`` (simplified form, e.g. ``t2/d0``).

    Live can only duplicate whole tracks, so the device's track is duplicated,
    the device copy is moved out of it, and the temporary track is deleted.
    Without ``to_path`` the copy lands right after the original.
    """
    if count > 1:
        logger.warning("count parameter ignored for device duplication (only single copy supported)")

    path = device.path
    if is_return_or_master_path(path):
        raise DuplicateResolutionError("cannot duplicate devices on return/master tracks")

    track_index = track_index_from_path(path)
    try:
        simplified = simplify_device_path(path)
    except ValueError as exc:
        raise DuplicateResolutionError(str(exc)) from exc
    if track_index is None:
        raise DuplicateResolutionError(f'cannot extract device path from "{path}"')

    destination = to_path.strip() if to_path else device_position_after(simplified)
    try:
        split_device_destination(destination)
    except ValueError as exc:
        raise DuplicateValidationError(f"invalid toPath: {exc}") from exc

    track_prefix = LivePath.track(track_index)
    with temporary_track_copy(live_set, track_index) as temp_index:
        temp_device = LiveObject.from_path(connection, LivePath.track(temp_index) + path[len(track_prefix):])
        if not temp_device.exists():
            raise DuplicateOperationError("device not found in duplicated track")
        temp_device = temp_device.resolved()

        if name is not None:
            temp_device.set("name", name)

        adjusted = shift_track_index(destination, temp_index)
        container_path, position = split_device_destination(adjusted)
        container = LiveObject.from_path(connection, container_path)
        if not container.exists():
            raise DuplicateOperationError(f'destination "{destination}" does not exist')
        container = container.resolved()
        if position is None:
            position = len(container.children("devices"))

        logger.info(f"Moving device copy to {adjusted} (requested {destination})")
        live_set.call("move_device", temp_device, container, position)

    return {"id": temp_device.id}
