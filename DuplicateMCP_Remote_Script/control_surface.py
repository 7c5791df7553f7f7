# DuplicateMCP_Remote_Script/control_surface.py
from _Framework.ControlSurface import ControlSurface
import Live
import socket
import json
import threading
import time
import traceback
import queue

from .lom_bridge import LomBridge

# Constants for socket communication
DEFAULT_PORT = 9877
HOST = "localhost"


class AbletonMCPDuplicate(ControlSurface):
    """Remote Script exposing the Live Object Model to the duplication server"""

    def __init__(self, c_instance):
        """Initialize the control surface"""
        ControlSurface.__init__(self, c_instance)
        self.log_message("AbletonMCP Duplicate Remote Script initializing...")

        # Socket server for communication
        self.server = None
        self.client_threads = []
        self.server_thread = None
        self.running = False

        # Cache the song reference for easier access
        self._song = self.song()
        self._bridge = LomBridge(
            song_provider=lambda: self._song,
            app_provider=Live.Application.get_application,
        )

        self.start_server()

        self.log_message("AbletonMCP Duplicate initialized")
        self.show_message("AbletonMCP: Listening for commands on port " + str(DEFAULT_PORT))

    def disconnect(self):
        """Called when Ableton closes or the control surface is removed"""
        self.log_message("AbletonMCP Duplicate disconnecting...")
        self.running = False

        if self.server:
            try:
                self.server.close()
            except OSError:
                pass

        if self.server_thread and self.server_thread.is_alive():
            self.server_thread.join(1.0)

        for client_thread in self.client_threads[:]:
            if client_thread.is_alive():
                # not joined, they may be blocked in recv
                self.log_message("Client thread still alive during disconnect")

        ControlSurface.disconnect(self)
        self.log_message("AbletonMCP Duplicate disconnected")

    def start_server(self):
        """Start the socket server in a separate thread"""
        try:
            self.server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self.server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self.server.bind((HOST, DEFAULT_PORT))
            self.server.listen(5)

            self.running = True
            self.server_thread = threading.Thread(target=self._server_thread)
            self.server_thread.daemon = True
            self.server_thread.start()

            self.log_message("Server started on port " + str(DEFAULT_PORT))
        except Exception as e:
            self.log_message("Error starting server: " + str(e))
            self.show_message("AbletonMCP: Error starting server - " + str(e))

    def _server_thread(self):
        """Server thread implementation - handles client connections"""
        try:
            self.log_message("Server thread started")
            # Timeout so the running flag is checked regularly
            self.server.settimeout(1.0)

            while self.running:
                try:
                    client, address = self.server.accept()
                    self.log_message("Connection accepted from " + str(address))
                    self.show_message("AbletonMCP: Client connected")

                    client_thread = threading.Thread(
                        target=self._handle_client,
                        args=(client,)
                    )
                    client_thread.daemon = True
                    client_thread.start()

                    self.client_threads.append(client_thread)
                    self.client_threads = [t for t in self.client_threads if t.is_alive()]

                except socket.timeout:
                    continue
                except Exception as e:
                    if self.running:
                        self.log_message("Server accept error: " + str(e))
                    time.sleep(0.5)

            self.log_message("Server thread stopped")
        except Exception as e:
            self.log_message("Server thread error: " + str(e))

    def _handle_client(self, client):
        """Handle communication with a connected client"""
        self.log_message("Client handler started")
        client.settimeout(None)
        buffer = ''

        try:
            while self.running:
                try:
                    data = client.recv(8192)

                    if not data:
                        self.log_message("Client disconnected")
                        break

                    buffer += data.decode('utf-8')

                    try:
                        command = json.loads(buffer)
                    except ValueError:
                        # Incomplete data, wait for more
                        continue
                    buffer = ''

                    response = self._process_command(command)
                    client.sendall(json.dumps(response).encode('utf-8'))

                except Exception as e:
                    self.log_message("Error handling client data: " + str(e))
                    self.log_message(traceback.format_exc())

                    error_response = {
                        "status": "error",
                        "message": str(e)
                    }
                    try:
                        client.sendall(json.dumps(error_response).encode('utf-8'))
                    except OSError:
                        break
                    if not isinstance(e, ValueError):
                        break
        except Exception as e:
            self.log_message("Error in client handler: " + str(e))
        finally:
            try:
                client.close()
            except OSError:
                pass
            self.log_message("Client handler stopped")

    def _process_command(self, command):
        """Process a command from the client and return a response"""
        command_type = command.get("type", "")
        params = command.get("params", {})

        response = {
            "status": "success",
            "result": {}
        }

        try:
            if not self._bridge.handles(command_type):
                response["status"] = "error"
                response["message"] = "Unknown command: " + str(command_type)
            elif self._bridge.is_mutating(command_type):
                # Commands that modify Live's state run on the main thread
                response = self._run_on_main_thread(command_type, params)
            else:
                response["result"] = self._bridge.handle(command_type, params)
        except Exception as e:
            self.log_message("Error processing command " + str(command_type) + ": " + str(e))
            response["status"] = "error"
            response["message"] = str(e)

        return response

    def _run_on_main_thread(self, command_type, params):
        response_queue = queue.Queue()

        def main_thread_task():
            try:
                result = self._bridge.handle(command_type, params)
                response_queue.put({"status": "success", "result": result})
            except Exception as e:
                self.log_message("Error in main thread task: " + str(e))
                self.log_message(traceback.format_exc())
                response_queue.put({"status": "error", "message": str(e)})

        try:
            self.schedule_message(0, main_thread_task)
        except AssertionError:
            # Already on the main thread
            main_thread_task()

        try:
            return response_queue.get(timeout=10.0)
        except queue.Empty:
            return {
                "status": "error",
                "message": "Timeout waiting for operation to complete"
            }
