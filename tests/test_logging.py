import structlog

from ocsp_checker.logging import bytes_to_base64, check_context


def test_bytes_to_base64():
    event_dict = {"event": "Sent request", "nonce": b"\x00\x01\x02", "blob": bytearray(b"ocsp"), "size": 3}

    assert bytes_to_base64(None, "debug", event_dict) == {
        "event": "Sent request",
        "nonce": "AAEC",
        "blob": "b2NzcA==",
        "size": 3,
    }


def test_check_context():
    with check_context(hostname="leaf.example.test") as check_id:
        bound = structlog.contextvars.get_contextvars()
        assert bound == {"check_id": check_id, "hostname": "leaf.example.test"}

    assert "check_id" not in structlog.contextvars.get_contextvars()
