from typing import Optional, Tuple

import structlog
from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509 import ocsp

from .crypto import DEFAULT_ENGINE, CryptoEngine
from .models import CertificateId

logger = structlog.get_logger()

NONCE_LENGTH = 32


def build_ocsp_request(
    certificate: x509.Certificate,
    issuer: x509.Certificate,
    hash_algorithm: str = "sha1",
    enable_nonce: bool = True,
    engine: CryptoEngine = DEFAULT_ENGINE,
) -> Tuple[bytes, Optional[bytes]]:
    """
    Builds a DER encoded OCSP request for certificate.

    :returns: the request and the nonce in it, or None when nonce is disabled.
    """
    cert_id = CertificateId.create(certificate, issuer, hash_algorithm, engine)
    log = logger.bind(serial=cert_id.serial_number, algorithm=hash_algorithm)

    req_builder = ocsp.OCSPRequestBuilder().add_certificate_by_hash(
        cert_id.issuer_name_hash,
        cert_id.issuer_key_hash,
        cert_id.serial_number,
        engine.hash_algorithm(hash_algorithm),
    )

    nonce = None
    if enable_nonce:
        nonce = engine.random_bytes(NONCE_LENGTH)
        log.debug("Adding nonce to request", nonce=nonce)
        req_builder = req_builder.add_extension(x509.OCSPNonce(nonce), critical=False)

    request_bytes = req_builder.build().public_bytes(Encoding.DER)
    log.debug("Built request", request_bytes=request_bytes)
    return request_bytes, nonce
