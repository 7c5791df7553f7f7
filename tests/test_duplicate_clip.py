import os
import tempfile
import unittest
from unittest import mock

from fake_live_set import BridgeConnection, Clip, ClipSlot, Song

from DuplicateMCP_Server.duplicate import duplicate
from DuplicateMCP_Server.errors import DuplicateResolutionError, DuplicateValidationError, HostCallError
from DuplicateMCP_Server.settings import Settings
from DuplicateMCP_Server.silence import write_silence_wav


def _id(live_object):
    return str(live_object._live_ptr)


def _extents(track):
    return [(clip.start_time, clip.end_time) for clip in track.arrangement_clips]


class SessionClipTests(unittest.TestCase):
    def setUp(self):
        self.song = Song()
        for name in ("A", "B", "C", "D"):
            self.song.add_scene(name)
        self.drums = self.song.add_track("Drums")
        self.perc = self.song.add_track("Perc")
        self.clip = Clip("Beat", length=4.0)
        self.drums.clip_slots[0].clip = self.clip
        self.connection = BridgeConnection(self.song)
        self.settings = Settings()

    def test_copies_into_target_slot(self):
        result = duplicate(
            {"type": "clip", "id": _id(self.clip), "destination": "session", "toTrackIndex": 1, "toSceneIndex": 2},
            self.connection,
            self.settings,
        )

        new_clip = self.perc.clip_slots[2].clip
        self.assertIsNotNone(new_clip)
        self.assertEqual(result, {"id": _id(new_clip), "trackIndex": 1, "sceneIndex": 2})

    def test_to_slot_is_track_slash_scene(self):
        result = duplicate(
            {"type": "clip", "id": _id(self.clip), "destination": "session", "toSlot": "1/3"},
            self.connection,
            self.settings,
        )

        self.assertEqual(result, {"id": _id(self.perc.clip_slots[3].clip), "trackIndex": 1, "sceneIndex": 3})

    def test_scene_list_creates_one_copy_per_scene(self):
        result = duplicate(
            {
                "type": "clip",
                "id": _id(self.clip),
                "destination": "session",
                "toTrackIndex": 0,
                "toSceneIndex": "1, 3",
                "name": "Beat Copy",
            },
            self.connection,
            self.settings,
        )

        self.assertEqual([entry["sceneIndex"] for entry in result], [1, 3])
        self.assertEqual(self.drums.clip_slots[1].clip.name, "Beat Copy")
        self.assertEqual(self.drums.clip_slots[3].clip.name, "Beat Copy 2")
        self.assertFalse(self.drums.clip_slots[2].has_clip)

    def test_missing_target_slot(self):
        with self.assertRaises(DuplicateResolutionError) as ctx:
            duplicate(
                {"type": "clip", "id": _id(self.clip), "destination": "session", "toTrackIndex": 5, "toSceneIndex": 0},
                self.connection,
                self.settings,
            )
        self.assertIn("destination clip slot at track 5, scene 0 does not exist", ctx.exception.message)

    def test_arrangement_clip_cannot_go_to_session(self):
        arrangement_clip = self.song.add_arrangement_clip(self.drums, 0.0, Clip("Take", length=4.0))

        with self.assertRaises(DuplicateValidationError) as ctx:
            duplicate(
                {
                    "type": "clip",
                    "id": _id(arrangement_clip),
                    "destination": "session",
                    "toTrackIndex": 0,
                    "toSceneIndex": 1,
                },
                self.connection,
                self.settings,
            )
        self.assertIn("cannot duplicate arrangement clips to the session", ctx.exception.message)
        self.assertEqual(self.connection.live_calls(), [])


class ArrangementClipTests(unittest.TestCase):
    def setUp(self):
        self.song = Song()
        self.song.add_scene()
        self.keys = self.song.add_track("Keys")
        self.source = self.song.add_arrangement_clip(self.keys, 0.0, Clip("Riff", length=8.0))
        self.connection = BridgeConnection(self.song)
        self.settings = Settings()

    def _duplicate(self, **params):
        request = {"type": "clip", "id": _id(self.source), "destination": "arrangement"}
        request.update(params)
        return duplicate(request, self.connection, self.settings)

    def test_default_length_matches_source(self):
        result = self._duplicate(arrangementStart="5|1")

        self.assertEqual(_extents(self.keys), [(0.0, 8.0), (16.0, 24.0)])
        self.assertEqual(result, {"id": _id(self.keys.arrangement_clips[1]), "trackIndex": 0, "arrangementStart": "5|1"})

    def test_shorter_length_leaves_source_untouched(self):
        self._duplicate(arrangementStart="5|1", arrangementLength="1:0")

        self.assertEqual(_extents(self.keys), [(0.0, 8.0), (16.0, 20.0)])
        self.assertEqual(self.source.end_marker, 8.0)
        # holding copy and temp clips are gone
        self.assertTrue(all(clip.start_time < 100.0 for clip in self.keys.arrangement_clips))

    def test_length_follows_clip_meter(self):
        waltz = self.song.add_arrangement_clip(self.keys, 32.0, Clip("Waltz", length=6.0, signature=(6, 8)))

        duplicate(
            {
                "type": "clip",
                "id": _id(waltz),
                "destination": "arrangement",
                "arrangementStart": "17|1",
                "arrangementLength": "1:0",
            },
            self.connection,
            self.settings,
        )

        self.assertEqual(self.keys.arrangement_clips[-1].start_time, 64.0)
        self.assertEqual(self.keys.arrangement_clips[-1].end_time, 67.0)

    def test_longer_length_reveals_following_content(self):
        result = self._duplicate(arrangementStart="5|1", arrangementLength="4:0")

        self.assertEqual(_extents(self.keys), [(0.0, 8.0), (16.0, 24.0), (24.0, 32.0)])
        tile = self.keys.arrangement_clips[2]
        self.assertEqual((tile.start_marker, tile.end_marker), (8.0, 16.0))
        self.assertEqual(result["trackIndex"], 0)
        self.assertEqual([clip["arrangementStart"] for clip in result["clips"]], ["5|1", "7|1"])

    def test_longer_looped_clip_tiles_with_partial_tail(self):
        self.source.looping = 1
        self.source.loop_start = 0.0
        self.source.loop_end = 8.0

        self._duplicate(arrangementStart="5|1", arrangementLength="5:0")

        self.assertEqual(_extents(self.keys), [(0.0, 8.0), (16.0, 24.0), (24.0, 32.0), (32.0, 36.0)])
        self.assertEqual(self.source.loop_end, 8.0)

    def test_positions_list_and_names(self):
        result = self._duplicate(arrangementStart="5|1, 9|1", name="Riff B")

        self.assertEqual([entry["arrangementStart"] for entry in result], ["5|1", "9|1"])
        self.assertEqual([clip.name for clip in self.keys.arrangement_clips], ["Riff", "Riff B", "Riff B 2"])

    def test_locator_target(self):
        self.song.add_cue_point("Intro", 0.0)
        self.song.add_cue_point("Verse", 16.0)
        self.song.add_cue_point("Chorus", 32.0)

        result = self._duplicate(arrangementLocatorName="Chorus")

        self.assertEqual(result["arrangementStart"], "9|1")
        self.assertEqual(_extents(self.keys)[-1], (32.0, 40.0))

    def test_overlapping_clips_at_target_are_cleared(self):
        self.song.add_arrangement_clip(self.keys, 12.0, Clip("Left", length=8.0))
        self.song.add_arrangement_clip(self.keys, 22.0, Clip("Right", length=6.0))

        self._duplicate(arrangementStart="5|1")

        self.assertEqual(
            [(clip.name, clip.start_time, clip.end_time) for clip in self.keys.arrangement_clips],
            [("Riff", 0.0, 8.0), ("Left", 12.0, 16.0), ("Riff", 16.0, 24.0), ("Right", 24.0, 28.0)],
        )

    def test_invalid_length_is_rejected_before_any_copy(self):
        with self.assertRaises(DuplicateValidationError):
            self._duplicate(arrangementStart="5|1", arrangementLength="0:0")
        self.assertEqual(self.connection.live_calls(), [])

    def test_target_overlapping_source_is_rejected(self):
        with self.assertRaises(DuplicateResolutionError) as ctx:
            self._duplicate(arrangementStart="2|1")

        self.assertIn("target overlaps the source clip", ctx.exception.message)
        self.assertEqual(_extents(self.keys), [(0.0, 8.0)])
        self.assertEqual(self.connection.live_calls(), [])

    def test_position_list_is_checked_before_the_first_copy(self):
        with self.assertRaises(DuplicateResolutionError):
            self._duplicate(arrangementStart="5|1, 1|3", arrangementLength="1:0")

        self.assertEqual(_extents(self.keys), [(0.0, 8.0)])
        self.assertEqual(self.connection.live_calls(), [])

    def test_holding_copy_is_removed_when_relocation_fails(self):
        real_duplicate = self.keys.duplicate_clip_to_arrangement

        def fail_outside_holding_area(clip, destination_time):
            if destination_time < 100.0:
                raise RuntimeError("arrangement is locked")
            return real_duplicate(clip, destination_time)

        with mock.patch.object(self.keys, "duplicate_clip_to_arrangement", side_effect=fail_outside_holding_area):
            with self.assertRaises(HostCallError):
                self._duplicate(arrangementStart="5|1", arrangementLength="1:0")

        self.assertEqual(_extents(self.keys), [(0.0, 8.0)])
        self.assertEqual(self.source.end_marker, 8.0)
        methods = [method for method, _args in self.connection.live_calls()]
        self.assertEqual(methods.count("duplicate_clip_to_arrangement"), 2)


class AudioArrangementClipTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.silence_path = write_silence_wav(os.path.join(self.tmp.name, "silence.wav"))
        self.settings = Settings(silence_wav_path=self.silence_path)
        self.song = Song()
        self.song.add_scene()
        self.vocals = self.song.add_track("Vocals", is_midi=False)
        self.source = self.song.add_arrangement_clip(
            self.vocals, 0.0, Clip("Take", length=8.0, is_midi=False, looping=True)
        )
        self.connection = BridgeConnection(self.song)

    def tearDown(self):
        self.tmp.cleanup()

    def test_audio_clip_is_truncated_with_silent_clip(self):
        duplicate(
            {
                "type": "clip",
                "id": _id(self.source),
                "destination": "arrangement",
                "arrangementStart": "5|1",
                "arrangementLength": "1:0",
            },
            self.connection,
            self.settings,
        )

        self.assertEqual(_extents(self.vocals), [(0.0, 8.0), (16.0, 20.0)])
        methods = [method for method, _args in self.connection.live_calls()]
        self.assertIn("create_audio_clip", methods)
        self.assertNotIn("create_midi_clip", methods)
        # the session slot used for the silent clip is emptied again
        self.assertFalse(self.vocals.clip_slots[0].has_clip)
        self.assertEqual(len(self.song.scenes), 1)

    def test_full_session_row_gets_a_temporary_scene(self):
        self.vocals.clip_slots[0].clip = Clip("Keep", length=4.0, is_midi=False)

        duplicate(
            {
                "type": "clip",
                "id": _id(self.source),
                "destination": "arrangement",
                "arrangementStart": "5|1",
                "arrangementLength": "1:0",
            },
            self.connection,
            self.settings,
        )

        self.assertEqual(_extents(self.vocals), [(0.0, 8.0), (16.0, 20.0)])
        self.assertEqual(len(self.song.scenes), 1)
        self.assertEqual(self.vocals.clip_slots[0].clip.name, "Keep")

    def test_temporary_audio_clip_and_scene_are_removed_when_creation_fails(self):
        self.vocals.clip_slots[0].clip = Clip("Keep", length=4.0, is_midi=False)

        with mock.patch.object(ClipSlot, "create_audio_clip", side_effect=RuntimeError("cannot read file")):
            with self.assertRaises(HostCallError):
                duplicate(
                    {
                        "type": "clip",
                        "id": _id(self.source),
                        "destination": "arrangement",
                        "arrangementStart": "5|1",
                        "arrangementLength": "1:0",
                    },
                    self.connection,
                    self.settings,
                )

        self.assertEqual(len(self.song.scenes), 1)
        self.assertEqual(self.vocals.clip_slots[0].clip.name, "Keep")
        # the holding copy is gone too
        self.assertEqual(_extents(self.vocals), [(0.0, 8.0)])
        methods = [method for method, _args in self.connection.live_calls()]
        self.assertEqual(methods[-2:], ["delete_scene", "delete_clip"])


if __name__ == "__main__":
    unittest.main()
