"""In-memory stand-in for the parts of Live's Python API the duplication code touches."""

import copy
import itertools
import json

from DuplicateMCP_Remote_Script.lom_bridge import LomBridge
from DuplicateMCP_Server.errors import HostCallError

_pointers = itertools.count(1000)
_EPSILON = 1e-9


def _next_ptr():
    return next(_pointers)


class _LiveNode(object):
    def __init__(self):
        self._live_ptr = _next_ptr()

    def _renew(self):
        self._live_ptr = _next_ptr()


class RoutingType(object):
    def __init__(self, display_name, attached_object=None):
        self.display_name = display_name
        self.attached_object = attached_object

    def __eq__(self, other):
        return isinstance(other, RoutingType) and other.display_name == self.display_name

    def __hash__(self):
        return hash(self.display_name)


class CuePoint(_LiveNode):
    def __init__(self, name, time):
        super().__init__()
        self.name = name
        self.time = float(time)


class Scene(_LiveNode):
    def __init__(self, name=""):
        super().__init__()
        self.name = name


class Clip(_LiveNode):
    def __init__(
        self,
        name="",
        length=4.0,
        is_midi=True,
        looping=False,
        loop_start=0.0,
        loop_end=None,
        start_marker=0.0,
        end_marker=None,
        signature=(4, 4),
        color=0,
    ):
        super().__init__()
        self.name = name
        self.color = color
        self.is_midi_clip = is_midi
        self.is_audio_clip = not is_midi
        self.looping = 1 if looping else 0
        self.loop_start = float(loop_start)
        self.loop_end = float(loop_start + length if loop_end is None else loop_end)
        self.start_marker = float(start_marker)
        self.end_marker = float(start_marker + length if end_marker is None else end_marker)
        self.signature_numerator, self.signature_denominator = signature
        self.warping = 1
        self.is_arrangement_clip = False
        self.start_time = 0.0
        self.end_time = 0.0
        self.file_path = None

    @property
    def length(self):
        if self.is_arrangement_clip:
            return self.end_time - self.start_time
        if self.looping:
            return self.loop_end - self.loop_start
        return self.end_marker - self.start_marker

    def clone(self):
        duplicate = copy.copy(self)
        duplicate._renew()
        return duplicate


class ClipSlot(_LiveNode):
    def __init__(self, track, clip=None):
        super().__init__()
        self.canonical_parent = track
        self.clip = clip

    @property
    def has_clip(self):
        return self.clip is not None

    def duplicate_clip_to(self, target_slot):
        if self.clip is None:
            raise RuntimeError("No clip in source slot")
        target_slot.clip = self.clip.clone()

    def delete_clip(self):
        self.clip = None

    def create_clip(self, length):
        if self.canonical_parent.is_audio_track:
            raise RuntimeError("MIDI clips can only be created on MIDI tracks")
        self.clip = Clip(length=length, is_midi=True)
        return self.clip

    def create_audio_clip(self, file_path):
        if not self.canonical_parent.is_audio_track:
            raise RuntimeError("Audio clips can only be created on audio tracks")
        if self.clip is not None:
            raise RuntimeError("Clip slot is not empty")
        clip = Clip(length=2.0, is_midi=False)
        clip.file_path = file_path
        self.clip = clip
        return clip

    def clone(self, track):
        duplicate = ClipSlot(track, self.clip.clone() if self.clip is not None else None)
        return duplicate


class Device(_LiveNode):
    can_have_chains = False

    def __init__(self, name, class_name="Device"):
        super().__init__()
        self.name = name
        self.class_name = class_name

    def clone(self):
        duplicate = copy.copy(self)
        duplicate._renew()
        return duplicate


class Chain(_LiveNode):
    def __init__(self, name="", devices=None):
        super().__init__()
        self.name = name
        self.devices = list(devices or [])

    def clone(self):
        return Chain(self.name, [device.clone() for device in self.devices])


class RackDevice(Device):
    can_have_chains = True

    def __init__(self, name, chains=None, class_name="InstrumentGroupDevice"):
        super().__init__(name, class_name)
        self.chains = list(chains or [])

    def clone(self):
        return RackDevice(self.name, [chain.clone() for chain in self.chains], self.class_name)


class Track(_LiveNode):
    def __init__(self, song, name, is_midi=True, devices=None, can_be_armed=True):
        super().__init__()
        self._song = song
        self.name = name
        self.has_midi_input = is_midi
        self.has_audio_input = not is_midi
        self.is_audio_track = not is_midi
        self.can_be_armed = can_be_armed
        self.arm = 0
        self.current_monitoring_state = 1
        self.output_routing_type = RoutingType("Master")
        self.clip_slots = []
        self.arrangement_clips = []
        self.devices = list(devices or [])

    @property
    def available_output_routing_types(self):
        options = [RoutingType("Master")]
        options.extend(RoutingType(track.name, track) for track in self._song.tracks if track is not self)
        options.append(RoutingType("Sends Only"))
        return options

    def _truncate_region(self, start, end):
        """Creating a clip over [start, end) cuts whatever it overlaps."""
        for clip in list(self.arrangement_clips):
            if clip.end_time <= start + _EPSILON or clip.start_time >= end - _EPSILON:
                continue
            if clip.start_time < start:
                clip.end_time = start
            elif clip.end_time <= end + _EPSILON:
                self.arrangement_clips.remove(clip)
            else:
                clip.start_marker += end - clip.start_time
                clip.start_time = end

    def _place(self, clip, start, length):
        self._truncate_region(start, start + length)
        clip.is_arrangement_clip = True
        clip.start_time = float(start)
        clip.end_time = float(start + length)
        self.arrangement_clips.append(clip)
        self.arrangement_clips.sort(key=lambda item: item.start_time)
        return clip

    def duplicate_clip_to_arrangement(self, clip, destination_time):
        if clip.is_midi_clip == self.is_audio_track:
            raise RuntimeError("Clip type does not match track type")
        length = clip.length
        return self._place(clip.clone(), destination_time, length)

    def create_midi_clip(self, start_time, length):
        if self.is_audio_track:
            raise RuntimeError("MIDI clips can only be created on MIDI tracks")
        return self._place(Clip(length=length, is_midi=True), start_time, length)

    def delete_clip(self, clip):
        if clip not in self.arrangement_clips:
            raise RuntimeError("Clip is not on this track")
        self.arrangement_clips.remove(clip)

    def delete_device(self, index):
        del self.devices[index]

    def clone(self):
        duplicate = Track(self._song, self.name, self.has_midi_input, can_be_armed=self.can_be_armed)
        duplicate.arm = 0
        duplicate.current_monitoring_state = self.current_monitoring_state
        duplicate.output_routing_type = self.output_routing_type
        duplicate.clip_slots = [slot.clone(duplicate) for slot in self.clip_slots]
        duplicate.arrangement_clips = [clip.clone() for clip in self.arrangement_clips]
        duplicate.devices = [device.clone() for device in self.devices]
        return duplicate


class Song(_LiveNode):
    def __init__(self, numerator=4, denominator=4, tempo=120.0):
        super().__init__()
        self.tempo = tempo
        self.signature_numerator = numerator
        self.signature_denominator = denominator
        self.tracks = []
        self.return_tracks = []
        self.master_track = Track(self, "Master", is_midi=False, can_be_armed=False)
        self.scenes = []
        self.cue_points = []

    # building helpers

    def add_scene(self, name=""):
        self.scenes.append(Scene(name))
        for track in self.tracks:
            track.clip_slots.append(ClipSlot(track))
        return self.scenes[-1]

    def add_track(self, name, is_midi=True, devices=None, can_be_armed=True):
        track = Track(self, name, is_midi, devices, can_be_armed)
        track.clip_slots = [ClipSlot(track) for _ in self.scenes]
        self.tracks.append(track)
        return track

    def add_return_track(self, name, devices=None):
        track = Track(self, name, is_midi=False, devices=devices, can_be_armed=False)
        self.return_tracks.append(track)
        return track

    def add_cue_point(self, name, time):
        self.cue_points.append(CuePoint(name, time))
        return self.cue_points[-1]

    def add_arrangement_clip(self, track, start, clip):
        return track._place(clip, start, clip.length)

    # Live API

    def duplicate_track(self, index):
        self.tracks.insert(index + 1, self.tracks[index].clone())

    def delete_track(self, index):
        del self.tracks[index]

    def create_scene(self, index):
        scene = Scene()
        position = len(self.scenes) if index == -1 else index
        self.scenes.insert(position, scene)
        for track in self.tracks:
            track.clip_slots.insert(position, ClipSlot(track))
        return scene

    def delete_scene(self, index):
        del self.scenes[index]
        for track in self.tracks:
            del track.clip_slots[index]

    def duplicate_scene(self, index):
        self.scenes.insert(index + 1, Scene(self.scenes[index].name))
        for track in self.tracks:
            track.clip_slots.insert(index + 1, track.clip_slots[index].clone(track))

    def move_device(self, device, target, target_position):
        owner = self._device_owner(device)
        if owner is None:
            raise RuntimeError("Device is not in this set")
        owner.devices.remove(device)
        target.devices.insert(target_position, device)
        return target_position

    def _device_owner(self, device):
        containers = list(self.tracks) + list(self.return_tracks) + [self.master_track]
        while containers:
            container = containers.pop()
            if device in container.devices:
                return container
            for candidate in container.devices:
                if candidate.can_have_chains:
                    containers.extend(candidate.chains)
        return None


class ApplicationView(_LiveNode):
    def __init__(self):
        super().__init__()
        self.shown_views = []

    def show_view(self, view_name):
        self.shown_views.append(view_name)


class Application(_LiveNode):
    def __init__(self):
        super().__init__()
        self.view = ApplicationView()


class BridgeConnection(object):
    """
    Server-side connection that runs commands through a real LomBridge.

    Payloads take a JSON round trip both ways, like they do over the socket.
    """

    def __init__(self, song, app=None):
        self.song = song
        self.app = app or Application()
        self.bridge = LomBridge(lambda: self.song, lambda: self.app)
        self.calls = []

    def send_command(self, command_type, params=None):
        payload = json.loads(json.dumps(params or {}))
        self.calls.append((command_type, payload))
        try:
            result = self.bridge.handle(command_type, payload)
        except Exception as exc:
            raise HostCallError(str(exc))
        return json.loads(json.dumps(result))

    def live_calls(self):
        """(method, args) of every lom_call issued so far."""
        return [(params["method"], params.get("args", [])) for command, params in self.calls if command == "lom_call"]
