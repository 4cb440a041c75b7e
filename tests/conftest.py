from unittest.mock import MagicMock

import pytest
from cryptography.hazmat.primitives.serialization import Encoding

from ocsp_checker import transport

from .pki import ISSUER_URL, OCSP_URL, create_certificate, create_key
from .responder import FakeNetwork, FakeResponder


@pytest.fixture(scope="session")
def ca_key():
    return create_key()


@pytest.fixture(scope="session")
def ca_cert(ca_key):
    return create_certificate("Test CA", ca_key, ca=True, aia=False)


@pytest.fixture(scope="session")
def responder_key():
    return create_key()


@pytest.fixture(scope="session")
def responder_cert(responder_key, ca_cert, ca_key):
    return create_certificate(
        "Test OCSP Responder",
        responder_key,
        issuer_cert=ca_cert,
        issuer_key=ca_key,
        aia=False,
        ocsp_signing=True,
    )


@pytest.fixture(scope="session")
def leaf_cert(ca_cert, ca_key):
    return create_certificate("leaf.example.test", create_key(), ca_cert, ca_key)


@pytest.fixture(scope="session")
def other_ca_key():
    return create_key()


@pytest.fixture(scope="session")
def other_ca_cert(other_ca_key):
    return create_certificate("Unrelated CA", other_ca_key, ca=True, aia=False)


@pytest.fixture
def responder(ca_cert, ca_key, leaf_cert):
    return FakeResponder(ca_cert, ca_cert, ca_key).add(leaf_cert)


@pytest.fixture
def network(monkeypatch, ca_cert, responder):
    fake = FakeNetwork(ISSUER_URL, ca_cert.public_bytes(Encoding.DER), OCSP_URL, responder)
    fetch_bytes = MagicMock(side_effect=fake)
    monkeypatch.setattr(transport, "fetch_bytes", fetch_bytes)
    return fetch_bytes
