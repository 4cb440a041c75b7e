from datetime import datetime, timedelta, timezone

import pytest
from click.testing import CliRunner
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509 import ReasonFlags, ocsp

from ocsp_checker.main import main, read_certificate

from .pki import ISSUER_URL, OCSP_URL, create_certificate, create_key


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def leaf_file(tmp_path, leaf_cert):
    path = tmp_path / "leaf.pem"
    path.write_bytes(leaf_cert.public_bytes(Encoding.PEM))
    return str(path)


def test_read_certificate(leaf_cert):
    pem = leaf_cert.public_bytes(Encoding.PEM)
    der = leaf_cert.public_bytes(Encoding.DER)

    assert read_certificate(pem) == pem.decode()
    assert read_certificate(der) == der


def test_cert(runner, network, leaf_file):
    result = runner.invoke(main, ["cert", leaf_file])

    assert result.exit_code == 0, result.output
    assert "Status: good" in result.output
    assert f"OCSP URL: {OCSP_URL}" in result.output
    assert "Next update: " in result.output


def test_cert_revoked(runner, network, responder, leaf_cert, leaf_file):
    responder.add(
        leaf_cert,
        cert_status=ocsp.OCSPCertStatus.REVOKED,
        revocation_time=datetime(2023, 12, 16, 14, 37, 56),
        revocation_reason=ReasonFlags.key_compromise,
    )

    result = runner.invoke(main, ["cert", leaf_file])

    assert result.exit_code == 0, result.output
    assert "Status: revoked" in result.output
    assert "Revoked at: 2023-12-16T14:37:56+00:00" in result.output
    assert "Revocation reason: key_compromise" in result.output


def test_cert_with_options(runner, network, tmp_path, ca_cert, leaf_file):
    ca_file = tmp_path / "ca.der"
    ca_file.write_bytes(ca_cert.public_bytes(Encoding.DER))

    result = runner.invoke(main, ["cert", leaf_file, "--ca", str(ca_file), "--no-nonce", "--sha256"])

    assert result.exit_code == 0, result.output
    network.assert_called_once()
    assert network.call_args.args == (OCSP_URL,)
    request = ocsp.load_der_ocsp_request(network.call_args.kwargs["body"])
    assert request.hash_algorithm.name == "sha256"
    assert len(request.extensions) == 0


def test_cert_expired(runner, network, tmp_path, ca_cert, ca_key):
    now = datetime.now(timezone.utc)
    expired = create_certificate(
        "expired.example.test",
        create_key(),
        ca_cert,
        ca_key,
        not_before=now - timedelta(days=60),
        not_after=now - timedelta(days=1),
    )
    path = tmp_path / "expired.der"
    path.write_bytes(expired.public_bytes(Encoding.DER))

    result = runner.invoke(main, ["cert", str(path)])

    assert result.exit_code == 1
    assert "CertificateExpiredException" in result.output
    network.assert_not_called()


def test_urls(runner, leaf_file):
    result = runner.invoke(main, ["urls", leaf_file])

    assert result.exit_code == 0, result.output
    assert result.output == f"OCSP URL: {OCSP_URL}\nIssuer URL: {ISSUER_URL}\n"


def test_urls_without_aia(runner, tmp_path, ca_cert):
    path = tmp_path / "ca.pem"
    path.write_bytes(ca_cert.public_bytes(Encoding.PEM))

    result = runner.invoke(main, ["urls", str(path)])

    assert result.exit_code == 1
    assert "MissingAIAExtensionException" in result.output


def test_raw(runner, network, tmp_path, ca_cert, leaf_file):
    output = tmp_path / "response.der"

    result = runner.invoke(main, ["raw", leaf_file, "-o", str(output)])

    assert result.exit_code == 0, result.output
    assert "Nonce: " in result.output
    assert ca_cert.public_bytes(Encoding.PEM).decode() in result.output
    response = ocsp.load_der_ocsp_response(output.read_bytes())
    assert response.response_status is ocsp.OCSPResponseStatus.SUCCESSFUL


def test_raw_requires_output(runner, leaf_file):
    result = runner.invoke(main, ["raw", leaf_file])

    assert result.exit_code == 2
