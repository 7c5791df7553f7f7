import asyncio
import json
import unittest
from unittest import mock

from fake_live_set import BridgeConnection, Song

from DuplicateMCP_Server import server
from DuplicateMCP_Server.errors import HostCallError
from DuplicateMCP_Server.settings import Settings


class _FailingConnection:
    def send_command(self, command_type, params=None):
        raise RuntimeError("socket down")


class ServerToolsTests(unittest.TestCase):
    def setUp(self):
        self.song = Song(numerator=3, denominator=4)
        self.song.add_scene("Intro")
        self.drums = self.song.add_track("Drums")
        self.song.add_cue_point("Drop", 24.0)
        self.song.add_cue_point("Intro", 0.0)
        self.connection = BridgeConnection(self.song)
        patcher = mock.patch.object(server, "load_settings", return_value=Settings())
        patcher.start()
        self.addCleanup(patcher.stop)

    def _connected(self, connection=None):
        return mock.patch.object(server, "get_ableton_connection", return_value=connection or self.connection)

    def test_get_session_info(self):
        with self._connected():
            result = server.get_session_info(None)

        self.assertEqual(result["track_count"], 1)
        self.assertEqual(result["signature_numerator"], 3)

    def test_get_session_info_reports_connection_errors(self):
        with mock.patch.object(server, "get_ableton_connection", side_effect=ConnectionError("Could not connect")):
            result = server.get_session_info(None)

        self.assertEqual(result, {"ok": False, "error": "session_info_failed", "message": "Could not connect"})

    def test_get_time_locators(self):
        with self._connected():
            result = server.get_time_locators(None)

        self.assertTrue(result["ok"])
        self.assertEqual(result["time_signature"], "3/4")
        self.assertEqual(result["locator_count"], 2)
        self.assertEqual(
            [(row["id"], row["name"], row["time"]) for row in result["locators"]],
            [("locator-0", "Intro", "1|1"), ("locator-1", "Drop", "9|1")],
        )

    def test_get_time_locators_failure(self):
        with self._connected(_FailingConnection()):
            result = server.get_time_locators(None)

        self.assertFalse(result["ok"])
        self.assertEqual(result["error"], "get_time_locators_failed")
        self.assertEqual(result["message"], "socket down")

    def test_duplicate_track(self):
        with self._connected():
            result = server.duplicate(None, type="track", id=str(self.drums._live_ptr), name="Drums 2")

        self.assertEqual(result["trackIndex"], 1)
        self.assertEqual([track.name for track in self.song.tracks], ["Drums", "Drums 2"])

    def test_duplicate_validation_error_payload(self):
        with self._connected():
            result = server.duplicate(None, type="track", id=str(self.drums._live_ptr), count=0)

        self.assertEqual(
            result,
            {"ok": False, "error": "invalid_request", "message": "duplicate failed: count must be at least 1"},
        )
        self.assertEqual(self.connection.calls, [])

    def test_duplicate_unexpected_error_payload(self):
        with self._connected(_FailingConnection()):
            result = server.duplicate(None, type="track", id="1")

        self.assertEqual(result, {"ok": False, "error": "duplicate_failed", "message": "socket down"})

    def test_tools_are_registered(self):
        tool_names = {tool.name for tool in asyncio.run(server.mcp.list_tools())}
        self.assertTrue({"duplicate", "get_time_locators", "get_session_info"} <= tool_names)


class AbletonConnectionTests(unittest.TestCase):
    def _connection(self, response):
        sock = mock.Mock()
        sock.recv.side_effect = [json.dumps(response).encode("utf-8"), b""]
        return server.AbletonConnection(host="localhost", port=9877, sock=sock), sock

    def test_send_command_returns_result(self):
        connection, sock = self._connection({"status": "success", "result": {"tempo": 120.0}})

        self.assertEqual(connection.send_command("get_session_info"), {"tempo": 120.0})
        sent = json.loads(sock.sendall.call_args[0][0].decode("utf-8"))
        self.assertEqual(sent, {"type": "get_session_info", "params": {}})

    def test_error_status_raises_host_call_error(self):
        connection, _sock = self._connection({"status": "error", "message": "No object at path live_set tracks 4"})

        with self.assertRaises(HostCallError) as ctx:
            connection.send_command("lom_get", {"path": "live_set tracks 4", "property": "name"})
        self.assertEqual(str(ctx.exception), "No object at path live_set tracks 4")

    def test_modifying_commands_pause_after_success(self):
        connection, _sock = self._connection({"status": "success", "result": {"value": None}})

        with mock.patch.object(server.time, "sleep") as sleep:
            connection.send_command("lom_call", {"path": "live_set", "method": "create_scene", "args": [-1]})
        sleep.assert_called_once_with(0.05)

    def test_closed_socket_drops_connection(self):
        sock = mock.Mock()
        sock.recv.return_value = b""
        connection = server.AbletonConnection(host="localhost", port=9877, sock=sock)

        with self.assertRaises(ConnectionError):
            connection.send_command("get_session_info")
        self.assertIsNone(connection.sock)


if __name__ == "__main__":
    unittest.main()
