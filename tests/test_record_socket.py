"""End-to-end tests for network/record_server.py and network/socket_client.py."""

import asyncio
import json
import socket

import pytest

from conftest import make_records
from corpusview.core.interval import Interval
from corpusview.core.record_source import RecordSourceError
from corpusview.core.records import FileFilter, FileSort, SortOrder
from corpusview.core.selection import Selection
from corpusview.core.view import View
from corpusview.network import protocol
from corpusview.network._framing import recv_frame, send_frame
from corpusview.network.record_server import RecordSocketServer
from corpusview.network.socket_client import ConnectionPool, SocketConnection, SocketRecordSource


@pytest.fixture()
def server(file_db, sock_path):
    file_db.add_records(make_records(60))
    srv = RecordSocketServer(sock_path, file_db, client_timeout=1.0)
    thread = srv.start()
    yield srv
    srv.shutdown()
    thread.join(timeout=2)


@pytest.fixture()
def client(server, sock_path):
    src = SocketRecordSource(sock_path, timeout=2.0, max_retries=0)
    yield src
    src.close()


def _raw_request(sock_path: str, body: bytes) -> dict:
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
        sock.settimeout(2.0)
        sock.connect(sock_path)
        send_frame(sock, body)
        return json.loads(recv_frame(sock).decode())


class TestSocketRecordSource:
    def test_ping(self, client):
        assert asyncio.run(client.ping()) is True

    def test_count_and_page_through_view(self, client):
        async def scenario():
            view = View(client, [FileFilter("split", "test")], FileSort("file_size", SortOrder.DESC), page_size=7)
            assert await view.total_count() == 30
            records = await view.records_for([Interval(0, 2), Interval(28, 40)])
            return [r.file_id for r in records]

        assert asyncio.run(scenario()) == ["f0059", "f0057", "f0055", "f0003", "f0001"]

    def test_records_keep_annotations(self, client):
        async def scenario():
            return await View(client).ensure_record(4)

        record = asyncio.run(scenario())
        assert record.annotations == {"split": ["train"]}
        assert record.file_size == 50

    def test_selection_aggregate_is_computed_by_the_daemon(self, client):
        async def scenario():
            view = View(client, page_size=10)
            sel = Selection().select(view, Interval(0, 9)).select(view, 20, update_existing=True)
            result = await sel.aggregate()
            # Aggregation never populated the client cache.
            assert view.cached_count == 0
            return result

        assert asyncio.run(scenario()) == {"count": 11, "size": sum((i + 1) * 10 for i in range(10)) + 210}

    def test_unreachable_daemon_raises(self):
        src = SocketRecordSource("/tmp/cv_test_missing.sock", timeout=0.1, max_retries=0)
        try:
            with pytest.raises(RecordSourceError):
                asyncio.run(View(src).total_count())
            assert asyncio.run(src.ping()) is False
        finally:
            src.close()


class TestServerErrors:
    def test_unknown_command(self, server, sock_path):
        response = _raw_request(sock_path, b'{"command": "explode"}')
        assert response["status"] == "error"
        assert "Unknown command" in response["message"]

    def test_missing_command(self, server, sock_path):
        assert _raw_request(sock_path, b'{}')["status"] == "error"

    def test_malformed_json(self, server, sock_path):
        response = _raw_request(sock_path, b'{not json')
        assert response["status"] == "error"
        assert "Malformed" in response["message"]

    def test_invalid_paging_is_a_validation_error(self, server, sock_path):
        body = json.dumps({"command": "fetch_records", "view": {"filters": [], "sort": None}, "offset": -3, "limit": 5})
        response = _raw_request(sock_path, body.encode())
        assert response["status"] == "error"
        assert "Validation Error" in response["message"]

    def test_server_survives_errors(self, server, sock_path, client):
        _raw_request(sock_path, b'{not json')
        assert asyncio.run(client.ping()) is True

    def test_error_response_raises_on_client(self, client):
        async def scenario():
            await client._request(protocol.Request(command="explode"), protocol.Response)

        with pytest.raises(RecordSourceError, match="Unknown command"):
            asyncio.run(scenario())


class TestConnectionPool:
    def test_connections_are_reused(self, server, sock_path):
        pool = ConnectionPool(sock_path, pool_size=1, timeout=2.0)
        try:
            conn = pool.get_connection()
            assert conn.send_receive({"command": "ping"})["message"] == "pong"
            pool.return_connection(conn)
            assert pool.get_connection() is conn
        finally:
            pool.close_all()

    def test_exhausted_pool_returns_none(self, sock_path):
        pool = ConnectionPool(sock_path, pool_size=1)
        try:
            assert pool.get_connection() is not None
            assert pool.get_connection(timeout=0.05) is None
        finally:
            pool.close_all()

    def test_send_receive_to_missing_socket_returns_none(self):
        conn = SocketConnection("/tmp/cv_test_missing.sock", timeout=0.1)
        assert conn.send_receive({"command": "ping"}, max_retries=0) is None
        conn.close()
