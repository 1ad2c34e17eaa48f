import socketserver
import threading

import pytest

from node_agent.errors import DeliveryError, TransportError
from node_agent.submission import SubmissionOptions, failure_counter, send
from node_agent.transport import UrllibTransport


def serve(reply):
    class Handler(socketserver.BaseRequestHandler):
        def handle(self):
            self.request.recv(65536)
            self.request.sendall(reply)

    server = socketserver.TCPServer(("127.0.0.1", 0), Handler)
    threading.Thread(target=server.serve_forever, daemon=True).start()
    return server


@pytest.fixture
def raw_peer():
    servers = []

    def _start(reply):
        server = serve(reply)
        servers.append(server)
        host, port = server.server_address
        return f"http://{host}:{port}/nodeAgentCollector/"

    yield _start
    for server in servers:
        server.shutdown()
        server.server_close()


def test_http_ok(raw_peer):
    url = raw_peer(b"HTTP/1.1 200 OK\r\nContent-Length: 8\r\nConnection: close\r\n\r\naccepted")

    result = UrllibTransport().post(url, b"{}", {"Content-Type": "application/json"}, 5)

    assert result.status == 200
    assert result.body == "accepted"


def test_http_error_status_is_a_result(raw_peer):
    url = raw_peer(b"HTTP/1.1 503 Service Unavailable\r\nContent-Length: 4\r\nConnection: close\r\n\r\nbusy")

    result = UrllibTransport().post(url, b"{}", {}, 5)

    assert result.status == 503
    assert result.body == "busy"


def test_garbage_status_line_raises_transport_error(raw_peer):
    url = raw_peer(b"NOT-HTTP garbage\r\n")

    with pytest.raises(TransportError):
        UrllibTransport().post(url, b"{}", {}, 5)


def test_truncated_body_raises_transport_error(raw_peer):
    url = raw_peer(b"HTTP/1.1 200 OK\r\nContent-Length: 100\r\nConnection: close\r\n\r\nshort")

    with pytest.raises(TransportError):
        UrllibTransport().post(url, b"{}", {}, 5)


def test_non_http_peer_is_retried_and_counted(raw_peer, context, sleeps):
    url = raw_peer(b"NOT-HTTP garbage\r\n")

    with pytest.raises(DeliveryError) as info:
        send(url, b"{}", context, SubmissionOptions(retries=2), sleep=sleeps.append)

    assert info.value.attempts == 2
    assert sleeps == [1]
    assert failure_counter(context).read() == 1
