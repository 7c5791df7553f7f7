# ableton_mcp_duplicate_server.py
from mcp.server.fastmcp import FastMCP, Context
import socket
import json
import logging
import time
from dataclasses import dataclass
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Any, Optional, Union
from DuplicateMCP_Server.duplicate import DuplicationRequest, duplicate as run_duplicate
from DuplicateMCP_Server.duplicate_clip import song_meter
from DuplicateMCP_Server.errors import DuplicateError, HostCallError
from DuplicateMCP_Server.live_object import LiveObject
from DuplicateMCP_Server.live_paths import LIVE_SET
from DuplicateMCP_Server.locators import read_locators
from DuplicateMCP_Server.settings import load_settings

# Configure logging
logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger("AbletonMCPServer")

# Commands that change the Live set; Ableton gets a moment to settle around them
_MODIFYING_COMMANDS = ("lom_set", "lom_call")


@dataclass
class AbletonConnection:
    host: str
    port: int
    sock: socket.socket = None

    def connect(self) -> bool:
        """Connect to the Ableton Remote Script socket server"""
        if self.sock:
            return True

        try:
            self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self.sock.connect((self.host, self.port))
            logger.info(f"Connected to Ableton at {self.host}:{self.port}")
            return True
        except Exception as e:
            logger.error(f"Failed to connect to Ableton: {str(e)}")
            self.sock = None
            return False

    def disconnect(self):
        """Disconnect from the Ableton Remote Script"""
        if self.sock:
            try:
                self.sock.close()
            except Exception as e:
                logger.error(f"Error disconnecting from Ableton: {str(e)}")
            finally:
                self.sock = None

    def receive_full_response(self, sock, buffer_size=8192):
        """Receive the complete response, potentially in multiple chunks"""
        chunks = []
        sock.settimeout(15.0)

        while True:
            try:
                chunk = sock.recv(buffer_size)
            except socket.timeout:
                logger.warning("Socket timeout during chunked receive")
                break
            if not chunk:
                if not chunks:
                    raise ConnectionError("Connection closed before receiving any data")
                break

            chunks.append(chunk)

            # Stop as soon as the buffered bytes form a complete JSON object
            try:
                data = b''.join(chunks)
                json.loads(data.decode('utf-8'))
                return data
            except json.JSONDecodeError:
                continue

        if not chunks:
            raise ConnectionError("No data received")
        data = b''.join(chunks)
        try:
            json.loads(data.decode('utf-8'))
        except json.JSONDecodeError:
            raise ConnectionError("Incomplete JSON response received")
        return data

    def send_command(self, command_type: str, params: Dict[str, Any] = None) -> Any:
        """Send a command to Ableton and return the response's result"""
        if not self.sock and not self.connect():
            raise ConnectionError("Not connected to Ableton")

        command = {
            "type": command_type,
            "params": params or {}
        }
        is_modifying_command = command_type in _MODIFYING_COMMANDS

        try:
            logger.debug(f"Sending command: {command_type} with params: {params}")
            self.sock.sendall(json.dumps(command).encode('utf-8'))

            self.sock.settimeout(15.0 if is_modifying_command else 10.0)
            response_data = self.receive_full_response(self.sock)
            response = json.loads(response_data.decode('utf-8'))
        except socket.timeout:
            logger.error("Socket timeout while waiting for response from Ableton")
            self.sock = None
            raise ConnectionError("Timeout waiting for Ableton response")
        except (ConnectionError, BrokenPipeError, ConnectionResetError) as e:
            logger.error(f"Socket connection error: {str(e)}")
            self.sock = None
            raise ConnectionError(f"Connection to Ableton lost: {str(e)}")
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON response from Ableton: {str(e)}")
            self.sock = None
            raise ConnectionError(f"Invalid response from Ableton: {str(e)}")

        if response.get("status") == "error":
            message = response.get("message", "Unknown error from Ableton")
            logger.error(f"Ableton error: {message}")
            raise HostCallError(message)

        if is_modifying_command:
            time.sleep(0.05)

        return response.get("result", {})


@asynccontextmanager
async def server_lifespan(server: FastMCP) -> AsyncIterator[Dict[str, Any]]:
    """Manage server startup and shutdown lifecycle"""
    try:
        logger.info("AbletonMCP duplicate server starting up")
        try:
            get_ableton_connection()
            logger.info("Successfully connected to Ableton on startup")
        except Exception as e:
            logger.warning(f"Could not connect to Ableton on startup: {str(e)}")
            logger.warning("Make sure the Ableton Remote Script is running")

        yield {}
    finally:
        global _ableton_connection
        if _ableton_connection:
            logger.info("Disconnecting from Ableton on shutdown")
            _ableton_connection.disconnect()
            _ableton_connection = None
        logger.info("AbletonMCP duplicate server shut down")


# Create the MCP server with lifespan support
mcp = FastMCP(
    "AbletonMCPDuplicate",
    lifespan=server_lifespan
)

# Global connection for resources
_ableton_connection = None


def get_ableton_connection():
    """Get or create a persistent Ableton connection"""
    global _ableton_connection

    if _ableton_connection is not None:
        try:
            # An empty send fails on a dead socket without reaching Ableton
            _ableton_connection.sock.settimeout(1.0)
            _ableton_connection.sock.sendall(b'')
            return _ableton_connection
        except Exception as e:
            logger.warning(f"Existing connection is no longer valid: {str(e)}")
            try:
                _ableton_connection.disconnect()
            except Exception:
                pass
            _ableton_connection = None

    settings = load_settings()
    max_attempts = 3
    for attempt in range(1, max_attempts + 1):
        try:
            logger.info(f"Connecting to Ableton (attempt {attempt}/{max_attempts})...")
            _ableton_connection = AbletonConnection(host=settings.host, port=settings.port)
            if _ableton_connection.connect():
                try:
                    _ableton_connection.send_command("get_session_info")
                    logger.info("Connection validated successfully")
                    return _ableton_connection
                except Exception as e:
                    logger.error(f"Connection validation failed: {str(e)}")
                    _ableton_connection.disconnect()
            _ableton_connection = None
        except Exception as e:
            logger.error(f"Connection attempt {attempt} failed: {str(e)}")
            if _ableton_connection:
                _ableton_connection.disconnect()
                _ableton_connection = None

        if attempt < max_attempts:
            time.sleep(1.0)

    logger.error("Failed to connect to Ableton after multiple attempts")
    raise ConnectionError("Could not connect to Ableton. Make sure the Remote Script is running.")


@mcp.tool()
def get_session_info(ctx: Context) -> Dict[str, Any]:
    """Get tempo, time signature and track/scene counts of the current Ableton session"""
    try:
        ableton = get_ableton_connection()
        return ableton.send_command("get_session_info")
    except Exception as e:
        logger.error(f"Error getting session info from Ableton: {str(e)}")
        return {
            "ok": False,
            "error": "session_info_failed",
            "message": str(e)
        }


@mcp.tool()
def get_time_locators(ctx: Context) -> Dict[str, Any]:
    """
    List the arrangement locators (cue points) ordered by time.

    Each locator has a synthetic id (``locator-0``, ``locator-1``...) usable as
    ``arrangement_locator_id`` in ``duplicate``, its name, and its position in
    bar|beat (song meter) and in beats.
    """
    try:
        ableton = get_ableton_connection()
        live_set = LiveObject.from_path(ableton, LIVE_SET)
        numerator, denominator = song_meter(live_set)
        locators = [locator.to_dict(numerator, denominator) for locator in read_locators(live_set)]
        return {
            "ok": True,
            "time_signature": f"{numerator}/{denominator}",
            "locator_count": len(locators),
            "locators": locators
        }
    except Exception as e:
        logger.error(f"Error reading time locators: {str(e)}")
        return {
            "ok": False,
            "error": "get_time_locators_failed",
            "message": str(e)
        }


@mcp.tool()
def duplicate(
    ctx: Context,
    type: str,
    id: str,
    count: int = 1,
    name: Optional[str] = None,
    destination: Optional[str] = None,
    without_clips: Optional[bool] = None,
    without_devices: Optional[bool] = None,
    route_to_source: Optional[bool] = None,
    switch_view: Optional[bool] = None,
    to_slot: Optional[str] = None,
    to_track_index: Optional[int] = None,
    to_scene_index: Optional[Union[int, str]] = None,
    to_path: Optional[str] = None,
    arrangement_start: Optional[str] = None,
    arrangement_locator_id: Optional[str] = None,
    arrangement_locator_name: Optional[str] = None,
    arrangement_length: Optional[str] = None,
) -> Union[Dict[str, Any], list]:
    """
    Duplicate a track, scene, clip or device.

    Parameters:
    - type: "track", "scene", "clip" or "device"
    - id: Live object id of the source
    - count: number of copies (tracks and scenes; ignored for devices)
    - name: base name for the copies ("Name", "Name 2", ...)
    - destination: "session" or "arrangement" (clips, scenes)
    - without_clips / without_devices: strip the copied track or scene
    - route_to_source: route the new track's output into the source track (tracks only)
    - switch_view: show the Session or Arrangement view afterwards
    - to_slot: session target for clips as "trackIndex/sceneIndex", e.g. "2/3"
    - to_track_index / to_scene_index: alternative to to_slot; to_scene_index may be "1,3,5"
    - to_path: device destination such as "t2/d0" or "t0/d1/c0/d0"
    - arrangement_start: bar|beat position(s) such as "5|1" or "1|1,9|1"
    - arrangement_locator_id / arrangement_locator_name: place at a locator instead
    - arrangement_length: bar:beat duration in the clip's own meter, e.g. "2:0"

    Returns the new object's id and index (plus any clips it carries), or a list
    when several objects were created.
    """
    try:
        request = DuplicationRequest(
            type=type,
            id=id,
            count=count,
            name=name,
            destination=destination,
            without_clips=without_clips,
            without_devices=without_devices,
            route_to_source=route_to_source,
            switch_view=switch_view,
            to_slot=to_slot,
            to_track_index=to_track_index,
            to_scene_index=to_scene_index,
            to_path=to_path,
            arrangement_start=arrangement_start,
            arrangement_locator_id=arrangement_locator_id,
            arrangement_locator_name=arrangement_locator_name,
            arrangement_length=arrangement_length,
        )
        ableton = get_ableton_connection()
        return run_duplicate(request, ableton, load_settings())
    except DuplicateError as e:
        logger.error(f"Duplicate rejected: {e.message}")
        return {
            "ok": False,
            "error": e.code,
            "message": e.message
        }
    except Exception as e:
        logger.error(f"Error duplicating {type} {id}: {str(e)}")
        return {
            "ok": False,
            "error": "duplicate_failed",
            "message": str(e)
        }


# Main execution
def main():
    """Run the MCP server"""
    mcp.run()


if __name__ == "__main__":
    main()
