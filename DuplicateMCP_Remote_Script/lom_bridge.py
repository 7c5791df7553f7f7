# DuplicateMCP_Remote_Script/lom_bridge.py
"""
Path-addressed access to the Live Object Model for the socket server.

Nothing here imports Live or the _Framework package; the bridge only walks the
objects handed to it by ``song_provider`` and ``app_provider``, so it runs the
same against Live's API objects and against plain Python stand-ins.
"""

SESSION_COMMANDS = ("get_session_info",)
READ_COMMANDS = ("lom_describe", "lom_get", "lom_children")
MUTATING_COMMANDS = ("lom_set", "lom_call")

# child lists addressed by index ("tracks 2", "clip_slots 0", ...)
_INDEXED_CHILDREN = (
    "tracks",
    "return_tracks",
    "scenes",
    "clip_slots",
    "arrangement_clips",
    "devices",
    "chains",
    "cue_points",
)
# single child objects ("master_track", "clip", "view")
_SINGLE_CHILDREN = ("master_track", "clip", "view", "mixer_device")


class LomBridgeError(Exception):
    """A command could not be applied to the Live set."""


def _is_live_object(value):
    return hasattr(value, "_live_ptr")


def _object_id(value):
    return str(value._live_ptr)


def _available_property_for(prop):
    # output_routing_type -> available_output_routing_types
    return "available_" + prop + "s"


class LomBridge(object):
    """Executes the lom_* socket commands against a Live set."""

    def __init__(self, song_provider, app_provider=None):
        self._song_provider = song_provider
        self._app_provider = app_provider

    def handles(self, command_type):
        return command_type in SESSION_COMMANDS + READ_COMMANDS + MUTATING_COMMANDS

    def is_mutating(self, command_type):
        return command_type in MUTATING_COMMANDS

    def handle(self, command_type, params):
        params = params or {}
        if command_type == "get_session_info":
            return self.get_session_info()
        if command_type == "lom_describe":
            return self.describe(params)
        if command_type == "lom_get":
            return self.get(params)
        if command_type == "lom_set":
            return self.set(params)
        if command_type == "lom_call":
            return self.call(params)
        if command_type == "lom_children":
            return self.children(params)
        raise LomBridgeError("Unknown command: " + str(command_type))

    # Commands

    def get_session_info(self):
        song = self._song()
        return {
            "tempo": float(song.tempo),
            "signature_numerator": int(song.signature_numerator),
            "signature_denominator": int(song.signature_denominator),
            "track_count": len(song.tracks),
            "return_track_count": len(song.return_tracks),
            "scene_count": len(song.scenes),
            "cue_point_count": len(song.cue_points),
        }

    def describe(self, params):
        target, path = self._lookup(params)
        if target is None:
            return {"exists": False, "id": None, "path": path, "type": None}
        return {
            "exists": True,
            "id": _object_id(target) if _is_live_object(target) else None,
            "path": self._canonical_path(target) or path,
            "type": type(target).__name__,
        }

    def get(self, params):
        target = self._require(params)
        prop = self._property_name(params)
        if not hasattr(target, prop):
            raise LomBridgeError(
                "'%s' has no property '%s'" % (type(target).__name__, prop)
            )
        return {"value": self._serialize(getattr(target, prop), owner=target, prop=prop)}

    def set(self, params):
        target = self._require(params)
        prop = self._property_name(params)
        if not hasattr(target, prop):
            raise LomBridgeError(
                "'%s' has no property '%s'" % (type(target).__name__, prop)
            )
        value = self._resolve_value(params.get("value"), owner=target, prop=prop)
        setattr(target, prop, value)
        return {"value": self._serialize(getattr(target, prop), owner=target, prop=prop)}

    def call(self, params):
        target = self._require(params)
        method_name = params.get("method")
        method = getattr(target, str(method_name), None) if method_name else None
        if method is None or not callable(method):
            raise LomBridgeError(
                "'%s' has no method '%s'" % (type(target).__name__, method_name)
            )
        args = [self._resolve_value(arg) for arg in (params.get("args") or [])]
        return {"value": self._serialize(method(*args))}

    def children(self, params):
        target = self._require(params)
        child_name = params.get("child")
        if child_name not in _INDEXED_CHILDREN:
            raise LomBridgeError("Unsupported child list: " + str(child_name))
        items = list(getattr(target, child_name, None) or [])
        return {"children": [self._serialize(item) for item in items]}

    # Object lookup

    def _song(self):
        return self._song_provider()

    def _app(self):
        if self._app_provider is None:
            raise LomBridgeError("live_app is not available")
        return self._app_provider()

    def _property_name(self, params):
        prop = params.get("property")
        if not prop:
            raise LomBridgeError("property is required")
        return str(prop)

    def _lookup(self, params):
        """Return (object or None, requested path)."""
        if params.get("id") is not None:
            return self._find_by_id(params.get("id")), None
        path = params.get("path")
        if path is None:
            raise LomBridgeError("id or path is required")
        path = " ".join(str(path).split())
        return self._resolve_path(path), path

    def _require(self, params):
        target, path = self._lookup(params)
        if target is None:
            if params.get("id") is not None:
                raise LomBridgeError("No object with id " + str(params.get("id")))
            raise LomBridgeError("No object at path " + str(path))
        return target

    def _resolve_path(self, path):
        tokens = path.split()
        if not tokens:
            return None
        if tokens[0] == "live_set":
            current = self._song()
        elif tokens[0] == "live_app":
            current = self._app()
        else:
            raise LomBridgeError("Path must start with live_set or live_app: " + path)

        index = 1
        while index < len(tokens):
            token = tokens[index]
            if token in _INDEXED_CHILDREN:
                if index + 1 >= len(tokens) or not tokens[index + 1].isdigit():
                    raise LomBridgeError("Missing index after '%s' in path: %s" % (token, path))
                items = list(getattr(current, token, None) or [])
                position = int(tokens[index + 1])
                if position >= len(items):
                    return None
                current = items[position]
                index += 2
            elif token in _SINGLE_CHILDREN:
                current = getattr(current, token, None)
                index += 1
            else:
                raise LomBridgeError("Unsupported path token '%s' in path: %s" % (token, path))
            if current is None:
                return None
        return current

    def _find_by_id(self, object_id):
        text = str(object_id).strip()
        if text.startswith("id "):
            text = text[3:].strip()
        for live_object, _path in self._walk():
            if _object_id(live_object) == text:
                return live_object
        return None

    def _canonical_path(self, target):
        if not _is_live_object(target):
            return None
        target_id = _object_id(target)
        for live_object, path in self._walk():
            if _object_id(live_object) == target_id:
                return path
        return None

    def _walk(self):
        """Yield (object, canonical path) for every addressable object in the set."""
        song = self._song()
        yield song, "live_set"
        for track_index, track in enumerate(song.tracks):
            for entry in self._walk_track(track, "live_set tracks %d" % track_index):
                yield entry
        for track_index, track in enumerate(song.return_tracks):
            for entry in self._walk_track(track, "live_set return_tracks %d" % track_index):
                yield entry
        master = getattr(song, "master_track", None)
        if master is not None:
            for entry in self._walk_track(master, "live_set master_track"):
                yield entry
        for scene_index, scene in enumerate(song.scenes):
            yield scene, "live_set scenes %d" % scene_index
        for cue_index, cue_point in enumerate(song.cue_points):
            yield cue_point, "live_set cue_points %d" % cue_index

    def _walk_track(self, track, path):
        yield track, path
        for slot_index, slot in enumerate(getattr(track, "clip_slots", None) or []):
            slot_path = "%s clip_slots %d" % (path, slot_index)
            yield slot, slot_path
            if getattr(slot, "has_clip", False) and slot.clip is not None:
                yield slot.clip, slot_path + " clip"
        for clip_index, clip in enumerate(getattr(track, "arrangement_clips", None) or []):
            yield clip, "%s arrangement_clips %d" % (path, clip_index)
        for entry in self._walk_devices(track, path):
            yield entry

    def _walk_devices(self, container, path):
        for device_index, device in enumerate(getattr(container, "devices", None) or []):
            device_path = "%s devices %d" % (path, device_index)
            yield device, device_path
            if not getattr(device, "can_have_chains", False):
                continue
            for chain_index, chain in enumerate(getattr(device, "chains", None) or []):
                chain_path = "%s chains %d" % (device_path, chain_index)
                yield chain, chain_path
                for entry in self._walk_devices(chain, chain_path):
                    yield entry

    # Value conversion

    def _serialize(self, value, owner=None, prop=None):
        if value is None or isinstance(value, (bool, int, float, str)):
            return value
        if _is_live_object(value):
            return {"id": _object_id(value), "path": self._canonical_path(value)}
        if hasattr(value, "display_name"):
            return self._serialize_routing_type(value, owner, prop)
        if isinstance(value, (list, tuple)) or hasattr(value, "__iter__"):
            items = list(value)
            if prop and prop.startswith("available_") and prop.endswith("_routing_types"):
                return [
                    {"display_name": str(item.display_name), "identifier": item_index}
                    for item_index, item in enumerate(items)
                ]
            return [self._serialize(item) for item in items]
        return str(value)

    def _serialize_routing_type(self, value, owner, prop):
        identifier = None
        if owner is not None and prop:
            options = list(getattr(owner, _available_property_for(prop), None) or [])
            for option_index, option in enumerate(options):
                if option == value or option.display_name == value.display_name:
                    identifier = option_index
                    break
        return {"display_name": str(value.display_name), "identifier": identifier}

    def _resolve_value(self, value, owner=None, prop=None):
        if isinstance(value, dict):
            if "identifier" in value and owner is not None and prop and prop.endswith("_routing_type"):
                options = list(getattr(owner, _available_property_for(prop), None) or [])
                identifier = value.get("identifier")
                if not isinstance(identifier, int) or not 0 <= identifier < len(options):
                    raise LomBridgeError("Unknown routing identifier for %s: %s" % (prop, identifier))
                return options[identifier]
            if "id" in value or "path" in value:
                return self._require(value)
        if isinstance(value, list):
            return [self._resolve_value(item) for item in value]
        return value
