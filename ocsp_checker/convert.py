"""
Conversion between the certificate encodings callers hand us and the
canonical :class:`cryptography.x509.Certificate` used everywhere else.
"""
import base64
from typing import Union

from asn1crypto import pem as asn1_pem
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding
from OpenSSL import crypto

from .exceptions import (
    InvalidDerFormatException,
    InvalidPemFormatException,
    UnsupportedCertificateTypeException,
)

CertificateInput = Union[
    str, bytes, bytearray, memoryview, crypto.X509, asn1_x509.Certificate, x509.Certificate
]


def to_certificate(certificate: CertificateInput) -> x509.Certificate:
    """
    Normalizes any supported certificate input.

    :param certificate: PEM text, DER bytes, a pyOpenSSL or asn1crypto
        certificate, or an already parsed certificate.
    :returns: the parsed certificate. Parsed input is returned as is.
    """
    if isinstance(certificate, x509.Certificate):
        return certificate
    if isinstance(certificate, str):
        return pem_to_certificate(certificate)
    if isinstance(certificate, (bytes, bytearray, memoryview)):
        return der_to_certificate(certificate)
    if isinstance(certificate, crypto.X509):
        return certificate.to_cryptography()
    if isinstance(certificate, asn1_x509.Certificate):
        return der_to_certificate(certificate.dump())
    raise UnsupportedCertificateTypeException(
        "Invalid certificate type. Expected str, bytes, OpenSSL.crypto.X509, "
        f"asn1crypto or cryptography certificate, got {type(certificate).__name__}"
    )


def pem_to_certificate(pem: str) -> x509.Certificate:
    try:
        data = pem.strip().encode("ascii")
        if asn1_pem.detect(data):
            _, _, der = asn1_pem.unarmor(data)
        else:
            der = base64.b64decode(b"".join(data.split()), validate=True)
        return x509.load_der_x509_certificate(der)
    except ValueError:
        # binascii and unicode errors are ValueErrors too
        raise InvalidPemFormatException(
            "The certificate is not a valid PEM encoded X.509 certificate string"
        ) from None


def der_to_certificate(der: Union[bytes, bytearray, memoryview]) -> x509.Certificate:
    try:
        return x509.load_der_x509_certificate(bytes(der))
    except ValueError as error:
        raise InvalidDerFormatException(
            f"The certificate is not a valid DER encoded X.509 certificate: {error}"
        ) from error


def certificate_to_pem(certificate: x509.Certificate) -> str:
    return certificate.public_bytes(Encoding.PEM).decode("ascii")


def certificate_to_der(certificate: x509.Certificate) -> bytes:
    return certificate.public_bytes(Encoding.DER)
