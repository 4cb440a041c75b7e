from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlsplit

import attr
import structlog
from cryptography import x509
from cryptography.hazmat.primitives.serialization import pkcs7

from . import transport
from .ca_info import get_ca_info_urls
from .config import CheckConfig
from .convert import (
    CertificateInput,
    certificate_to_pem,
    der_to_certificate,
    pem_to_certificate,
    to_certificate,
)
from .crypto import DEFAULT_ENGINE, CryptoEngine
from .exceptions import (
    CertificateExpiredException,
    InvalidDerFormatException,
    InvalidIssuerCertificateException,
    InvalidPemFormatException,
    InvalidUrlException,
    IssuerDownloadFailedException,
    OcspRequestFailedException,
)
from .logging import check_context
from .models import CaInfoUrls, CertificateStatus, RawResponse
from .request import build_ocsp_request
from .response import parse_ocsp_response

logger = structlog.get_logger()

OCSP_REQUEST_HEADERS = {
    "Content-Type": "application/ocsp-request",
    "Accept": "application/ocsp-response",
}


@attr.frozen
class OcspExchange:
    response: bytes = attr.field(repr=False)
    certificate: x509.Certificate
    issuer: x509.Certificate
    nonce: Optional[bytes]
    ocsp_url: str


def check_certificate(
    cert: CertificateInput,
    config: Optional[CheckConfig] = None,
    engine: CryptoEngine = DEFAULT_ENGINE,
) -> CertificateStatus:
    """
    Asks the OCSP responder of cert whether it is revoked.

    :param cert: the certificate to check, in any supported encoding.
    :param config: optional settings, see :class:`CheckConfig`.
    :returns: the validated status of the certificate.
    :raises OcspException: if the status could not be determined.
    """
    config = config or CheckConfig()
    with check_context():
        exchange = _send_ocsp_request(cert, config, engine)
        return parse_ocsp_response(
            exchange.response,
            exchange.certificate,
            exchange.issuer,
            config,
            nonce=exchange.nonce,
            ocsp_url=exchange.ocsp_url,
            engine=engine,
        )


def check_domain(
    domain: str,
    config: Optional[CheckConfig] = None,
    engine: CryptoEngine = DEFAULT_ENGINE,
) -> CertificateStatus:
    """
    Checks the certificate the server for domain presents.

    :param domain: a hostname (``example.com``) or an URL.
    """
    config = config or CheckConfig()
    hostname = _hostname(domain)
    with check_context(hostname=hostname):
        certificate = download_leaf_certificate(hostname, config.timeout)
        return check_certificate(certificate, config, engine)


def get_raw_response(
    cert: CertificateInput,
    config: Optional[CheckConfig] = None,
    engine: CryptoEngine = DEFAULT_ENGINE,
) -> RawResponse:
    """Returns the OCSP response for cert without validating it."""
    config = config or CheckConfig()
    with check_context():
        exchange = _send_ocsp_request(cert, config, engine)
    return RawResponse(
        response=exchange.response,
        nonce=exchange.nonce,
        issuer_certificate=certificate_to_pem(exchange.issuer),
    )


def get_cert_urls(cert: CertificateInput) -> CaInfoUrls:
    return get_ca_info_urls(to_certificate(cert))


def download_issuer_certificate(cert: CertificateInput, timeout: int = 6000) -> x509.Certificate:
    """
    Downloads the issuer of cert from its CA Issuers URL.

    The issuer is accepted as DER, PEM or a PKCS#7 bundle, since CAs
    do not agree on one and do not label it reliably.
    """
    certificate = to_certificate(cert)
    issuer_url = get_ca_info_urls(certificate).issuer_url
    log = logger.bind(issuer_url=issuer_url)

    response = transport.fetch_bytes(
        issuer_url, timeout=timeout, step="Issuer certificate download"
    )
    if not response.ok:
        raise IssuerDownloadFailedException(
            f"Issuer certificate download failed with status "
            f"{response.status_code} {response.reason} {issuer_url}",
            response.status_code,
            response.reason,
        )

    try:
        issuer = der_to_certificate(response.content)
        log.debug("Downloaded DER encoded issuer")
        return issuer
    except InvalidDerFormatException:
        pass

    if b"BEGIN CERTIFICATE" in response.content:
        try:
            issuer = pem_to_certificate(response.content.decode("ascii", errors="replace"))
            log.debug("Downloaded PEM encoded issuer")
            return issuer
        except InvalidPemFormatException:
            pass

    try:
        bundle = pkcs7.load_der_pkcs7_certificates(response.content)
    except ValueError:
        bundle = []
    for candidate in bundle:
        if candidate.subject == certificate.issuer:
            log.debug("Downloaded PKCS#7 bundled issuer")
            return candidate

    raise InvalidIssuerCertificateException(
        "The issuer certificate is not a valid DER or PEM encoded X.509 certificate"
    )


def download_leaf_certificate(hostname: str, timeout: int = 6000) -> x509.Certificate:
    logger.debug("Downloading leaf certificate", hostname=hostname)
    return der_to_certificate(transport.fetch_leaf_certificate(hostname, timeout))


def _send_ocsp_request(cert: CertificateInput, config: CheckConfig, engine: CryptoEngine) -> OcspExchange:
    certificate = to_certificate(cert)
    log = logger.bind(serial=certificate.serial_number)

    if certificate.not_valid_after_utc < datetime.now(timezone.utc):
        raise CertificateExpiredException("The certificate is already expired")

    ocsp_url = config.ocsp_url or get_ca_info_urls(certificate).ocsp_url
    log = log.bind(ocsp_url=ocsp_url)

    if config.ca is not None:
        issuer = config.ca
    else:
        issuer = download_issuer_certificate(certificate, config.timeout)

    request_bytes, nonce = build_ocsp_request(
        certificate,
        issuer,
        hash_algorithm=config.hash_algorithm,
        enable_nonce=config.enable_nonce,
        engine=engine,
    )

    response = transport.fetch_bytes(
        ocsp_url,
        method="POST",
        headers=OCSP_REQUEST_HEADERS,
        body=request_bytes,
        timeout=config.timeout,
        step="OCSP request",
    )
    if not response.ok:
        raise OcspRequestFailedException(
            f"OCSP request failed with http status {response.status_code} {response.reason}",
            response.status_code,
            response.reason,
        )

    log.debug("Received OCSP response", response_bytes=response.content)
    return OcspExchange(response.content, certificate, issuer, nonce, ocsp_url)


def _hostname(domain: str) -> str:
    if "/" not in domain:
        return domain
    try:
        hostname = urlsplit(domain).hostname
    except ValueError as error:
        raise InvalidUrlException(f"Invalid URL: {domain}") from error
    if not hostname:
        raise InvalidUrlException(f"Invalid URL: {domain}")
    return hostname
