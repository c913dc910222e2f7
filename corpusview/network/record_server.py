import os
import socket
import json
import logging
import threading
import time
from typing import List

from ..core.file_database import FileDatabase
from ..core.records import ViewIdentity
from . import protocol
from ._framing import recv_frame, send_frame

_ValidationErrors = (ValueError, TypeError, KeyError)


class RecordSocketServer:
    """Serves count/page/aggregate requests for a FileDatabase over a Unix domain socket."""

    def __init__(self, socket_path: str, database: FileDatabase, client_timeout: float = 10.0):
        self.socket_path = socket_path
        self.database = database
        self.client_timeout = client_timeout
        self.running = True
        self.client_threads: List[threading.Thread] = []
        self.server_socket = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)

        if os.path.exists(self.socket_path):
            os.remove(self.socket_path)
        self.server_socket.bind(self.socket_path)
        self.server_socket.listen(5)
        logging.info(f"Socket bound at {self.socket_path}")

    def run_forever(self):
        """Accept and handle connections until shutdown() is called."""
        logging.info(f"Record server accepting connections on {self.socket_path}")
        try:
            while self.running:
                try:
                    conn, _ = self.server_socket.accept()
                except OSError as e:
                    if self.running:
                        logging.error(f"Error accepting connection: {e}")
                        time.sleep(0.1)  # Avoid busy-loop if the socket is in a bad state
                    continue
                client_thread = threading.Thread(target=self.handle_client, args=(conn,), daemon=True)
                self.client_threads.append(client_thread)
                client_thread.start()
        finally:
            self.shutdown()

    def start(self) -> threading.Thread:
        """Run the accept loop on a background thread."""
        thread = threading.Thread(target=self.run_forever, name="RecordSocketServer", daemon=True)
        thread.start()
        return thread

    def handle_client(self, conn: socket.socket):
        """Serve framed requests on one connection until the client disconnects."""
        try:
            conn.settimeout(self.client_timeout)
            while self.running:
                try:
                    message_data = recv_frame(conn)
                    if message_data is None:
                        break

                    response = self.handle_request(message_data)
                    send_frame(conn, response.encode())

                except socket.timeout:
                    continue
                except (ConnectionError, OSError) as e:
                    logging.error(f"Error handling client: {e}")
                    break
        finally:
            conn.close()

    def handle_request(self, message_data: bytes) -> str:
        """
        Decode one request, run it, and return the JSON response body.
        Every failure becomes an ErrorResponse; nothing escapes to the connection loop.
        """
        try:
            request_data = json.loads(message_data.decode())
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            return protocol.ErrorResponse(message=f"Malformed request: {e}").model_dump_json()
        if not isinstance(request_data, dict):
            return protocol.ErrorResponse(message="Request must be a JSON object.").model_dump_json()

        command = request_data.get("command")
        if not command:
            return protocol.ErrorResponse(message="Request missing 'command' field.").model_dump_json()

        logging.debug(f"Server received command: '{command}'")
        try:
            return self._dispatch_command(command, request_data).model_dump_json()
        except _ValidationErrors as e:
            return protocol.ErrorResponse(message=f"Validation Error: {e}").model_dump_json()
        except Exception as e:  # why: any unhandled error from handler dispatch must not crash the server
            logging.error(f"Error processing request: {e}", exc_info=True)
            return protocol.ErrorResponse(message=f"Internal Server Error: {str(e)}").model_dump_json()

    def _dispatch_command(self, command: str, request_data: dict) -> protocol.Response:
        """Dispatches commands to the appropriate handler."""
        if command == "ping":
            return protocol.Response(message="pong")

        elif command == "count":
            req = protocol.CountRequest.model_validate(request_data)
            identity = ViewIdentity.from_dict(req.view.model_dump())
            return protocol.CountResponse(count=self.database.count(identity))

        elif command == "fetch_records":
            req = protocol.FetchRecordsRequest.model_validate(request_data)
            identity = ViewIdentity.from_dict(req.view.model_dump())
            records = self.database.fetch(identity, req.offset, req.limit)
            logging.debug(f"Serving {len(records)} records at {req.offset} for view {identity.key()[:8]}")
            return protocol.FetchRecordsResponse(records=[r.to_dict() for r in records])

        elif command == "aggregate":
            req = protocol.AggregateRequest.model_validate(request_data)
            summary = self.database.aggregate([entry.model_dump() for entry in req.selection])
            return protocol.AggregateResponse(count=summary["count"], size=summary["size"])

        return protocol.ErrorResponse(message=f"Unknown command: {command}")

    def shutdown(self) -> None:
        """Stop the server and clean up resources."""
        if not self.running:
            return

        logging.info("RecordSocketServer shutting down.")
        self.running = False
        try:
            # Unblock accept() on platforms where close() alone does not.
            self.server_socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            self.server_socket.close()
            if os.path.exists(self.socket_path):
                os.remove(self.socket_path)
        except OSError as e:
            logging.error(f"Error during shutdown: {e}")
