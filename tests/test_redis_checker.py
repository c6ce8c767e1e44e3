import socket
import threading
from contextlib import contextmanager

import pytest

from samaritan.hc.atcp import CheckTimeoutError, UnexpectedResponseError
from samaritan.hc.redis_checker import PING, Checker


def _recv_exact(conn, n):
    data = b""
    while len(data) < n:
        chunk = conn.recv(n - len(data))
        if not chunk:
            break
        data += chunk
    return data


def _read_all(conn):
    data = b""
    while True:
        chunk = conn.recv(4096)
        if not chunk:
            return data
        data += chunk


@contextmanager
def serve(handler):
    lsock = socket.create_server(("127.0.0.1", 0))
    lsock.settimeout(5)
    port = lsock.getsockname()[1]

    def run():
        try:
            conn, _ = lsock.accept()
        except OSError:
            return
        with conn:
            conn.settimeout(2)
            try:
                handler(conn)
            except OSError:
                pass

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    try:
        yield f"127.0.0.1:{port}"
    finally:
        thread.join(5)
        lsock.close()


def test_send_and_recv():
    expected_request = b"*1\r\n$4\r\nPING\r\n"
    seen = {}

    def handler(conn):
        seen["request"] = _recv_exact(conn, len(expected_request))
        conn.sendall(b"+PONG\r\n")
        seen["rest"] = _read_all(conn)

    with serve(handler) as addr:
        assert Checker().check(addr, 1.0) is None
    assert seen["request"] == expected_request
    assert seen["rest"] == b""


def test_unexpected_reply():
    def handler(conn):
        _recv_exact(conn, len(PING))
        conn.sendall(b"-ERR no\r\n")
        _read_all(conn)

    with serve(handler) as addr:
        with pytest.raises(UnexpectedResponseError):
            Checker().check(addr, 1.0)


def test_no_reply_times_out():
    def handler(conn):
        _recv_exact(conn, len(PING))
        _read_all(conn)

    with serve(handler) as addr:
        with pytest.raises(CheckTimeoutError):
            Checker().check(addr, 0.3)


def test_closed_without_reply():
    def handler(conn):
        _recv_exact(conn, len(PING))

    with serve(handler) as addr:
        with pytest.raises((EOFError, OSError)):
            Checker().check(addr, 1.0)