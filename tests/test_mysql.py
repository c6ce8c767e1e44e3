import io
import socket
import threading
import time
from contextlib import contextmanager

import pytest

from samaritan.hc.atcp import CheckTimeoutError, HealthCheckError
from samaritan.hc.mysql import (
    CLIENT_PLUGIN_AUTH,
    CLIENT_PROTOCOL_41,
    COM_QUIT,
    MAX_PACKET_SIZE,
    UTF8_GENERAL_CI,
    Checker,
    HandshakeResponse,
    Header,
    build_packet,
    new_health_check_packet,
    read_header,
)

GREETING = bytes.fromhex(
    "4a0000000a352e362e333000277f1a00277e6b7d53647d6900fff70802007f801500000000000000000000"
    "763646404c3c2a5c7041306c006d7973716c5f6e61746976655f70617373776f726400"
)
RESPONSE_OK = bytes.fromhex("70000020000000200000")
HANDSHAKE_RESPONSE = bytes.fromhex(
    "2e00000100820000000000012100000000000000000000000000000000000000000000"
    "006865616c74685f636865636b0000"
)
EXPECTED_REQUEST = HANDSHAKE_RESPONSE + COM_QUIT
USERNAME = "health_check"


def _recv_exact(conn, n):
    data = b""
    while len(data) < n:
        chunk = conn.recv(n - len(data))
        if not chunk:
            break
        data += chunk
    return data


def _drain(conn):
    while conn.recv(4096):
        pass


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


def run_check(handler, timeout=1.0):
    with serve(handler) as addr:
        return Checker(USERNAME).check(addr, timeout)


def test_health_check_packet_bytes():
    assert new_health_check_packet(USERNAME) == EXPECTED_REQUEST


def test_handshake_response_payload():
    response = HandshakeResponse(
        capability_flags=CLIENT_PROTOCOL_41 | CLIENT_PLUGIN_AUTH,
        max_packet_size=MAX_PACKET_SIZE,
        character_set=UTF8_GENERAL_CI,
        username=USERNAME,
    )
    assert response.to_bytes() == HANDSHAKE_RESPONSE[4:]


def test_build_packet_com_quit():
    assert build_packet(b"\x01", 0) == COM_QUIT


def test_build_packet_rejects_oversized_payload():
    with pytest.raises(ValueError):
        build_packet(bytes(1 << 24), 0)


def test_read_header_from_greeting():
    header = read_header(io.BytesIO(GREETING))
    assert header.payload_length() == len(GREETING) - 4
    assert header.sequence_id == 0


def test_header_payload_length():
    assert Header(payload_len=bytes([0x70, 0x00, 0x00]), sequence_id=0x20).payload_length() == 0x70


def test_read_header_short_input():
    with pytest.raises(HealthCheckError):
        read_header(io.BytesIO(b"\x01\x00"))


def test_checker_requires_username():
    with pytest.raises(ValueError):
        Checker("")


def test_checker_sends_handshake_then_quit():
    received = {}

    def handler(conn):
        received["data"] = _recv_exact(conn, len(EXPECTED_REQUEST))

    with pytest.raises(HealthCheckError):
        run_check(handler)
    assert received["data"] == EXPECTED_REQUEST


def test_checker_normal():
    received = {}

    def handler(conn):
        received["data"] = _recv_exact(conn, len(EXPECTED_REQUEST))
        conn.sendall(GREETING + RESPONSE_OK)
        _drain(conn)

    assert run_check(handler) is None
    assert received["data"] == EXPECTED_REQUEST


def test_checker_greeting_once():
    def handler(conn):
        _recv_exact(conn, len(EXPECTED_REQUEST))
        conn.sendall(GREETING)

    with pytest.raises(HealthCheckError):
        run_check(handler)


def test_checker_keep_greeting():
    def handler(conn):
        _recv_exact(conn, len(EXPECTED_REQUEST))
        while True:
            conn.sendall(GREETING)

    with pytest.raises(HealthCheckError):
        run_check(handler)


def test_checker_ok_once():
    def handler(conn):
        _recv_exact(conn, len(EXPECTED_REQUEST))
        conn.sendall(RESPONSE_OK)

    with pytest.raises(HealthCheckError):
        run_check(handler)


def test_checker_no_response():
    def handler(conn):
        _recv_exact(conn, len(EXPECTED_REQUEST))
        _drain(conn)

    with pytest.raises(CheckTimeoutError):
        run_check(handler, timeout=0.3)


def test_checker_close():
    def handler(conn):
        conn.close()

    with pytest.raises(HealthCheckError):
        run_check(handler)


def test_checker_close_later():
    def handler(conn):
        _recv_exact(conn, len(EXPECTED_REQUEST))
        time.sleep(0.3)

    with pytest.raises(HealthCheckError):
        run_check(handler)