"""Client-side handle for one object in Live's object tree, addressed over the socket bridge."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from DuplicateMCP_Server.errors import HostCallError
from DuplicateMCP_Server.live_paths import scene_index_from_path, track_index_from_path


def _normalize_id(object_id: Any) -> str:
    text = str(object_id).strip()
    if text.startswith("id "):
        text = text[3:].strip()
    return text


class LiveObject:
    """
    A reference to a node in the Live Object Model.

    Objects built from an id keep addressing that object even when its index
    path changes; objects built from a path address whatever currently lives at
    that path. Nothing is fetched until a property or method is used.
    """

    def __init__(self, connection, path: Optional[str] = None, object_id: Any = None):
        if path is None and object_id is None:
            raise ValueError("LiveObject needs a path or an id")
        self._connection = connection
        self._path = path.strip() if isinstance(path, str) else None
        self._id = _normalize_id(object_id) if object_id is not None else None

    @classmethod
    def from_path(cls, connection, path: str) -> "LiveObject":
        return cls(connection, path=path)

    @classmethod
    def from_id(cls, connection, object_id: Any) -> "LiveObject":
        return cls(connection, object_id=object_id)

    @property
    def connection(self):
        return self._connection

    def __repr__(self) -> str:
        if self._id is not None:
            return f"LiveObject(id={self._id!r})"
        return f"LiveObject(path={self._path!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LiveObject):
            return NotImplemented
        if self._id is not None and other._id is not None:
            return self._id == other._id
        return self._id == other._id and self._path == other._path

    def __hash__(self) -> int:
        return hash((self._id, self._path if self._id is None else None))

    def _target(self) -> Dict[str, Any]:
        if self._id is not None:
            return {"id": self._id}
        return {"path": self._path}

    def _send(self, command_type: str, **params: Any) -> Dict[str, Any]:
        payload = self._target()
        payload.update(params)
        result = self._connection.send_command(command_type, payload)
        return result if isinstance(result, dict) else {}

    def describe(self) -> Dict[str, Any]:
        """Return ``{exists, id, path, type}`` for the addressed object."""
        return self._send("lom_describe")

    def exists(self) -> bool:
        try:
            return bool(self.describe().get("exists"))
        except HostCallError:
            return False

    @property
    def id(self) -> Optional[str]:
        if self._id is not None:
            return self._id
        info = self.describe()
        if not info.get("exists"):
            return None
        return _normalize_id(info.get("id"))

    @property
    def path(self) -> Optional[str]:
        """Current canonical path (re-read, since sibling inserts shift indices)."""
        info = self.describe()
        if not info.get("exists"):
            return self._path
        return info.get("path")

    def resolved(self) -> "LiveObject":
        """Pin the reference to the current object's id."""
        if self._id is not None:
            return self
        object_id = self.id
        if object_id is None:
            raise HostCallError(f"no object at path {self._path!r}")
        return LiveObject(self._connection, object_id=object_id)

    def get(self, prop: str) -> Any:
        result = self._send("lom_get", property=prop)
        return self._wrap(result.get("value"))

    def set(self, prop: str, value: Any) -> Any:
        result = self._send("lom_set", property=prop, value=self._unwrap(value))
        return self._wrap(result.get("value"))

    def call(self, method: str, *args: Any) -> Any:
        result = self._send("lom_call", method=method, args=[self._unwrap(arg) for arg in args])
        return self._wrap(result.get("value"))

    def children(self, name: str) -> List["LiveObject"]:
        result = self._send("lom_children", child=name)
        return [self._wrap(child) for child in result.get("children", []) or []]

    @property
    def track_index(self) -> Optional[int]:
        return track_index_from_path(self.path)

    @property
    def scene_index(self) -> Optional[int]:
        return scene_index_from_path(self.path)

    def _wrap(self, value: Any) -> Any:
        if isinstance(value, dict) and set(value.keys()) == {"id", "path"}:
            return LiveObject(self._connection, path=value.get("path"), object_id=value.get("id"))
        if isinstance(value, list):
            return [self._wrap(item) for item in value]
        return value

    @staticmethod
    def _unwrap(value: Any) -> Any:
        if isinstance(value, LiveObject):
            return value._target() if value._id is None else {"id": value._id}
        if isinstance(value, (list, tuple)):
            return [LiveObject._unwrap(item) for item in value]
        return value
