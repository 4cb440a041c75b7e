from datetime import datetime
from enum import IntEnum
from typing import Optional, Union

import attr
from asn1crypto import ocsp as asn1_ocsp
from cryptography import x509
from cryptography.x509.ocsp import OCSPCertStatus

from .crypto import DEFAULT_ENGINE, CryptoEngine, public_key_bits


class RevocationReason(IntEnum):
    # RFC 5280, section 5.3.1. Seven is unused.
    UNSPECIFIED = 0
    KEY_COMPROMISE = 1
    CA_COMPROMISE = 2
    AFFILIATION_CHANGED = 3
    SUPERSEDED = 4
    CESSATION_OF_OPERATION = 5
    CERTIFICATE_HOLD = 6
    REMOVE_FROM_CRL = 8
    PRIVILEGE_WITHDRAWN = 9
    AA_COMPROMISE = 10

    @classmethod
    def from_code(cls, code: int) -> Union["RevocationReason", int]:
        try:
            return cls(code)
        except ValueError:
            return code


@attr.frozen
class CertificateId:
    hash_algorithm: str
    issuer_name_hash: bytes
    issuer_key_hash: bytes
    serial_number: int

    @classmethod
    def create(
        cls,
        certificate: x509.Certificate,
        issuer: x509.Certificate,
        hash_algorithm: str = "sha1",
        engine: CryptoEngine = DEFAULT_ENGINE,
    ) -> "CertificateId":
        return cls(
            hash_algorithm,
            engine.digest(hash_algorithm, issuer.subject.public_bytes()),
            engine.digest(hash_algorithm, public_key_bits(issuer)),
            certificate.serial_number,
        )

    @classmethod
    def from_single_response(cls, single_response: asn1_ocsp.SingleResponse):
        cert_id = single_response["cert_id"]
        return cls(
            cert_id["hash_algorithm"]["algorithm"].native,
            cert_id["issuer_name_hash"].native,
            cert_id["issuer_key_hash"].native,
            cert_id["serial_number"].native,
        )


@attr.frozen
class CaInfoUrls:
    ocsp_url: str
    issuer_url: str


@attr.frozen
class CertificateStatus:
    """The validated answer of a responder about one certificate."""

    status: OCSPCertStatus
    ocsp_url: str
    revocation_time: Optional[datetime] = None
    revocation_reason: Optional[Union[RevocationReason, int]] = None
    this_update: Optional[datetime] = None
    next_update: Optional[datetime] = None
    produced_at: Optional[datetime] = None
    raw_response: Optional[bytes] = attr.field(default=None, repr=False)


@attr.frozen
class RawResponse:
    response: bytes = attr.field(repr=False)
    nonce: Optional[bytes]
    issuer_certificate: str = attr.field(repr=False)
