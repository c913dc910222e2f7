import asyncio
import socket
import json
import logging
import threading
import queue
import time
import uuid
from typing import Any, Dict, List, Optional

from ..core.record_source import RecordSource, RecordSourceError
from ..core.records import FileRecord, ViewIdentity
from . import protocol
from ._framing import recv_frame, send_frame

_ValidationErrors = (ValueError, TypeError, KeyError)


class SocketConnection:
    """Represents a single socket connection with retry logic"""
    def __init__(self, socket_path: str, timeout: float = 20.0):
        self.socket_path = socket_path
        self.timeout = timeout
        self.sock: Optional[socket.socket] = None
        self.lock = threading.Lock()
        self.connected = False

    def ensure_connected(self) -> bool:
        with self.lock:
            if self.connected and self.sock:
                return True
            return self._connect()

    def _connect(self) -> bool:
        try:
            if self.sock:
                self.sock.close()

            self.sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            self.sock.settimeout(self.timeout)
            self.sock.connect(self.socket_path)
            self.connected = True
            return True
        except OSError as e:  # why: ConnectionRefusedError and FileNotFoundError are expected while the daemon is down
            logging.debug(f"Connection failed: {e}")
            self.connected = False
            return False

    def send_receive(self, data: dict, max_retries: int = 2) -> Optional[dict]:
        retries = 0
        while retries <= max_retries:
            try:
                if not self.ensure_connected():
                    retries += 1
                    if retries <= max_retries:
                        time.sleep(0.1 * (2 ** retries))  # Exponential backoff: 0.2s, 0.4s
                    continue

                with self.lock:
                    send_frame(self.sock, json.dumps(data).encode())
                    message_data = recv_frame(self.sock)
                    if message_data is None:
                        raise ConnectionError("Connection closed before a response arrived")
                    return json.loads(message_data.decode())

            except (ConnectionError, socket.error) as e:
                logging.debug(f"Communication error (attempt {retries + 1}): {e}")
                with self.lock:
                    self.connected = False
                retries += 1
                if retries <= max_retries:
                    time.sleep(0.1 * (2 ** retries))  # Exponential backoff: 0.2s, 0.4s

        logging.error(f"Failed to communicate with {self.socket_path} after retries")
        return None

    def close(self):
        with self.lock:
            if self.sock:
                try:
                    self.sock.close()
                except OSError:
                    pass
                self.sock = None
            self.connected = False

class ConnectionPool:
    """Manages a pool of socket connections"""
    def __init__(self, socket_path: str, pool_size: int = 3, timeout: float = 20.0):
        self.socket_path = socket_path
        self.pool_size = pool_size
        self.connections: List[SocketConnection] = []
        self.available = queue.Queue()
        self.lock = threading.Lock()
        with self.lock:
            for _ in range(self.pool_size):
                conn = SocketConnection(self.socket_path, timeout=timeout)
                self.connections.append(conn)
                self.available.put(conn)

    def get_connection(self, timeout: float = 1.0) -> Optional[SocketConnection]:
        try:
            return self.available.get(timeout=timeout)
        except queue.Empty:
            return None

    def return_connection(self, conn: SocketConnection):
        self.available.put(conn)

    def close_all(self):
        with self.lock:
            for conn in self.connections:
                conn.close()
            self.connections.clear()
            while not self.available.empty():
                try:
                    self.available.get_nowait()
                except queue.Empty:
                    break

class SocketRecordSource(RecordSource):
    """RecordSource backed by a corpus daemon reachable over a Unix domain socket.

    Blocking socket round-trips run in worker threads so callers stay on the
    event loop. Any transport failure or error response raises RecordSourceError.
    """
    def __init__(self, socket_path: str, pool_size: int = 3, timeout: float = 20.0, max_retries: int = 2):
        self.socket_path = socket_path
        self.max_retries = max_retries
        # Waiting longer than this for a pooled connection means every connection is stuck.
        self.connection_pool_timeout = 5.0
        self.connection_pool = ConnectionPool(socket_path, pool_size=pool_size, timeout=timeout)
        self.session_id = str(uuid.uuid4())

    def _send_request(self, request: protocol.Request, response_model: type) -> protocol.Response:
        """Send a request using a connection from the pool and validate the response."""
        conn = self.connection_pool.get_connection(timeout=self.connection_pool_timeout)
        if not conn:
            raise RecordSourceError(f"No free connection to {self.socket_path}")

        try:
            request.session_id = self.session_id
            response_dict = conn.send_receive(request.model_dump(), max_retries=self.max_retries)
            if response_dict is None:
                raise RecordSourceError(f"Corpus daemon at {self.socket_path} is unreachable")

            if response_dict.get("status") == "error":
                error = protocol.ErrorResponse.model_validate(response_dict)
                raise RecordSourceError(f"'{request.command}' failed: {error.message}")
            return response_model.model_validate(response_dict)

        except _ValidationErrors as e:
            logging.error(f"Invalid response for command '{request.command}': {e}")
            conn.close()
            raise RecordSourceError(f"Invalid response for '{request.command}': {e}") from e
        finally:
            self.connection_pool.return_connection(conn)

    async def _request(self, request: protocol.Request, response_model: type) -> protocol.Response:
        return await asyncio.to_thread(self._send_request, request, response_model)

    async def ping(self) -> bool:
        try:
            await self._request(protocol.PingRequest(), protocol.Response)
            return True
        except RecordSourceError:
            return False

    async def count(self, identity: ViewIdentity) -> int:
        view = protocol.ViewModel.model_validate(identity.to_dict())
        response = await self._request(protocol.CountRequest(view=view), protocol.CountResponse)
        return response.count

    async def fetch(self, identity: ViewIdentity, offset: int, limit: int) -> List[FileRecord]:
        view = protocol.ViewModel.model_validate(identity.to_dict())
        logging.debug(f"SocketRecordSource: fetching {limit} rows at {offset} for {identity.key()[:8]}")
        response = await self._request(
            protocol.FetchRecordsRequest(view=view, offset=offset, limit=limit),
            protocol.FetchRecordsResponse,
        )
        try:
            return [FileRecord.from_dict(r) for r in response.records]
        except _ValidationErrors as e:
            raise RecordSourceError(f"Malformed record in response: {e}") from e

    async def aggregate(self, compact_ranges: List[Dict[str, Any]]) -> Dict[str, Optional[int]]:
        request = protocol.AggregateRequest.model_validate({"selection": compact_ranges})
        response = await self._request(request, protocol.AggregateResponse)
        return {"count": response.count, "size": response.size}

    def close(self):
        self.connection_pool.close_all()
