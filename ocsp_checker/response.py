"""
Decoding and validation of OCSP responses.

A response goes through the following checks, in order, and the first one
that fails decides the exception raised:

1. it decodes and has a successful response status
2. it is a basic response with exactly one single response
3. its signature verifies against a resolved responder certificate
   (if signature validation is enabled)
4. it echoes our nonce, if it echoes one at all
5. the single response is about the certificate we asked for
6. the certificate status is one we know
"""
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple

import attr
import structlog
from asn1crypto import core as asn1_core
from asn1crypto import crl as asn1_crl
from asn1crypto import ocsp as asn1_ocsp
from asn1crypto import parser as asn1_parser
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.x509.ocsp import OCSPCertStatus, OCSPResponseStatus
from cryptography.x509.oid import ExtendedKeyUsageOID

from .config import CheckConfig
from .crypto import DEFAULT_ENGINE, CryptoEngine, public_key_bits
from .exceptions import (
    CertificateMismatchException,
    ChainValidationFailedException,
    InvalidResponseException,
    MissingResponseBytesException,
    NonceMismatchException,
    OcspServerException,
    ResponderNotFoundException,
    SignatureVerificationFailedException,
    UnexpectedResponseCountException,
    UnknownResponseTypeException,
    UnrecognizedCertStatusException,
    UnsupportedAlgorithmException,
)
from .models import CertificateId, CertificateStatus, RevocationReason

logger = structlog.get_logger()

BASIC_RESPONSE_OID = "1.3.6.1.5.5.7.48.1.1"
NONCE_OID = "1.3.6.1.5.5.7.48.1.2"

CERT_STATUSES = {
    "good": OCSPCertStatus.GOOD,
    "revoked": OCSPCertStatus.REVOKED,
    "unknown": OCSPCertStatus.UNKNOWN,
}

# asn1crypto.parser class numbers
_UNIVERSAL = 0
_CONTEXT = 2
_UTC_TIME = 23
_GENERALIZED_TIME = 24


@attr.frozen
class ResponderCandidate:
    certificate: x509.Certificate
    # Certificates from the response itself must chain to the trust anchor
    needs_chain: bool = False


def parse_ocsp_response(
    response_data: bytes,
    certificate: x509.Certificate,
    issuer: x509.Certificate,
    config: CheckConfig,
    nonce: Optional[bytes] = None,
    ocsp_url: str = "",
    engine: CryptoEngine = DEFAULT_ENGINE,
) -> CertificateStatus:
    """
    Validates an OCSP response and returns the status it carries.

    :param issuer: the issuer of certificate, also used as trust anchor.
    :param nonce: the nonce sent in the request, if any.
    """
    log = logger.bind(ocsp_url=ocsp_url, serial=certificate.serial_number)

    ocsp_response = _decode(response_data)
    basic_response = _basic_response(ocsp_response)
    tbs_response = basic_response["tbs_response_data"]
    single_response = _single_response(tbs_response)

    if config.validate_signature:
        _verify_signature(basic_response, issuer, config, engine)
        log.debug("Response signature is valid")
        if nonce is not None:
            _verify_nonce(tbs_response, nonce)
    else:
        log.warning("Skipping signature validation of OCSP response")

    expected_id = CertificateId.from_single_response(single_response)
    try:
        actual_id = CertificateId.create(
            certificate, issuer, expected_id.hash_algorithm, engine
        )
    except UnsupportedAlgorithmException as error:
        raise CertificateMismatchException(
            f"OCSP response identifies the certificate with {expected_id.hash_algorithm}, "
            "which is not supported"
        ) from error
    if actual_id != expected_id:
        raise CertificateMismatchException(
            f"OCSP response is for another certificate: {expected_id}"
        )

    result = _certificate_status(
        single_response,
        ocsp_url=ocsp_url,
        produced_at=tbs_response["produced_at"].native,
        raw_response=response_data if config.raw_response else None,
    )
    log.info("Got certificate status", cert_status=result.status.name)
    return result


def _decode(response_data: bytes) -> asn1_ocsp.OCSPResponse:
    try:
        ocsp_response = asn1_ocsp.OCSPResponse.load(response_data, strict=True)
        response_code = int(ocsp_response["response_status"])
    except (ValueError, TypeError) as error:
        raise InvalidResponseException(f"Unable to decode OCSP response: {error}") from error

    if response_code != OCSPResponseStatus.SUCCESSFUL.value:
        raise OcspServerException.from_response_code(response_code)
    return ocsp_response


def _basic_response(ocsp_response: asn1_ocsp.OCSPResponse) -> asn1_ocsp.BasicOCSPResponse:
    response_bytes = ocsp_response["response_bytes"]
    if isinstance(response_bytes, asn1_core.Void):
        raise MissingResponseBytesException("OCSP response has no response bytes")

    response_type = response_bytes["response_type"].dotted
    if response_type != BASIC_RESPONSE_OID:
        raise UnknownResponseTypeException(f"Unknown OCSP response type: {response_type}")

    try:
        basic_response = response_bytes["response"].parsed
        basic_response["tbs_response_data"]["responses"]
    except ValueError as error:
        raise InvalidResponseException(
            f"Unable to decode basic OCSP response: {error}"
        ) from error
    return basic_response


def _single_response(tbs_response: asn1_ocsp.ResponseData) -> asn1_ocsp.SingleResponse:
    responses = tbs_response["responses"]
    if len(responses) != 1:
        raise UnexpectedResponseCountException(
            f"Expected exactly one response, got {len(responses)}"
        )
    return responses[0]


def _verify_signature(
    basic_response: asn1_ocsp.BasicOCSPResponse,
    trust_anchor: x509.Certificate,
    config: CheckConfig,
    engine: CryptoEngine,
):
    embedded = _embedded_certificates(basic_response)
    responder_id = _responder_id(basic_response["tbs_response_data"])

    candidate = None
    for resolver in RESPONDER_RESOLVERS:
        candidate = resolver(responder_id, embedded, trust_anchor, config, engine)
        if candidate is not None:
            break
    else:
        raise ResponderNotFoundException(
            f"Unable to find the OCSP responder certificate ({responder_id[0]})"
        )

    responder = candidate.certificate
    if candidate.needs_chain:
        if not _may_sign_ocsp(responder):
            raise ChainValidationFailedException(
                f"Responder {responder.subject.rfc4514_string()} "
                "is not authorized to sign OCSP responses"
            )
        engine.validate_chain(
            responder, embedded, trust_anchor, datetime.now(timezone.utc)
        )

    try:
        signature_valid = engine.verify_signature(
            responder.public_key(),
            basic_response["signature"].native,
            basic_response["tbs_response_data"].dump(),
            basic_response["signature_algorithm"],
        )
    except UnsupportedAlgorithmException as error:
        raise SignatureVerificationFailedException(
            f"Unable to verify OCSP response signature: {error}"
        ) from error
    if not signature_valid:
        raise SignatureVerificationFailedException(
            "OCSP response signature is not valid"
        )


def _responder_id(tbs_response: asn1_ocsp.ResponseData) -> Tuple[str, object]:
    try:
        responder_id = tbs_response["responder_id"]
        return responder_id.name, responder_id.chosen
    except ValueError as error:
        raise ResponderNotFoundException("Responder ID is unknown") from error


def _embedded_certificates(basic_response: asn1_ocsp.BasicOCSPResponse) -> List[x509.Certificate]:
    certs = basic_response["certs"]
    if isinstance(certs, asn1_core.Void):
        return []
    return [x509.load_der_x509_certificate(cert.dump()) for cert in certs]


def _is_responder(responder_id, certificate: x509.Certificate, engine: CryptoEngine) -> bool:
    kind, value = responder_id
    if kind == "by_name":
        return asn1_x509.Name.load(certificate.subject.public_bytes()) == value
    if kind == "by_key":
        return engine.digest("sha1", public_key_bits(certificate)) == value.native
    return False


def _may_sign_ocsp(certificate: x509.Certificate) -> bool:
    try:
        usages = certificate.extensions.get_extension_for_oid(
            x509.ExtensionOID.EXTENDED_KEY_USAGE
        ).value
    except x509.ExtensionNotFound:
        return False
    return ExtendedKeyUsageOID.OCSP_SIGNING in usages


def configured_responder(responder_id, embedded, trust_anchor, config, engine):
    if config.responder_cert is not None:
        return ResponderCandidate(config.responder_cert)
    return None


def trust_anchor_by_name(responder_id, embedded, trust_anchor, config, engine):
    if responder_id[0] == "by_name" and _is_responder(responder_id, trust_anchor, engine):
        return ResponderCandidate(trust_anchor)
    return None


def trust_anchor_by_key_hash(responder_id, embedded, trust_anchor, config, engine):
    if responder_id[0] == "by_key" and _is_responder(responder_id, trust_anchor, engine):
        return ResponderCandidate(trust_anchor)
    return None


def embedded_responder(responder_id, embedded, trust_anchor, config, engine):
    for certificate in embedded:
        if _is_responder(responder_id, certificate, engine):
            return ResponderCandidate(certificate, needs_chain=True)
    return None


Resolver = Callable[
    [Tuple[str, object], Sequence[x509.Certificate], x509.Certificate, CheckConfig, CryptoEngine],
    Optional[ResponderCandidate],
]

RESPONDER_RESOLVERS: Sequence[Resolver] = (
    configured_responder,
    trust_anchor_by_name,
    trust_anchor_by_key_hash,
    embedded_responder,
)


def _verify_nonce(tbs_response: asn1_ocsp.ResponseData, nonce: bytes):
    extensions = tbs_response["response_extensions"]
    if isinstance(extensions, asn1_core.Void):
        logger.debug("Response has no nonce")
        return

    for extension in extensions:
        if extension["extn_id"].dotted != NONCE_OID:
            continue
        extension_value = extension["extn_value"]
        try:
            response_nonce = extension_value.parsed.native
        except ValueError:
            # Some responders echo the nonce without the OCTET STRING wrapping
            response_nonce = extension_value.contents
        if response_nonce != nonce:
            raise NonceMismatchException("OCSP response nonce does not match the request")
        logger.debug("Response nonce matches", nonce=nonce)
        return

    logger.debug("Response has no nonce")


def _certificate_status(
    single_response: asn1_ocsp.SingleResponse,
    ocsp_url: str,
    produced_at: Optional[datetime],
    raw_response: Optional[bytes],
) -> CertificateStatus:
    try:
        cert_status = single_response["cert_status"]
        status = CERT_STATUSES[cert_status.name]
    except (ValueError, KeyError) as error:
        raise UnrecognizedCertStatusException(
            "OCSP response contains an unrecognized certificate status"
        ) from error

    revocation_time = revocation_reason = None
    if status is OCSPCertStatus.REVOKED:
        revocation_time, revocation_reason = _revoked_info(cert_status.chosen)

    return CertificateStatus(
        status=status,
        ocsp_url=ocsp_url,
        revocation_time=revocation_time,
        revocation_reason=revocation_reason,
        this_update=single_response["this_update"].native,
        next_update=single_response["next_update"].native,
        produced_at=produced_at,
        raw_response=raw_response,
    )


def _revoked_info(revoked_info: asn1_ocsp.RevokedInfo):
    """
    Reads revocationTime and revocationReason from RevokedInfo.

    Walked by hand since some responders encode the time as UTCTime,
    which the asn1crypto schema rejects.
    """
    revocation_time = revocation_reason = None
    data = revoked_info.contents
    while data:
        class_, _, tag, header, contents, trailer = asn1_parser.parse(data)
        data = data[len(header) + len(contents) + len(trailer):]
        if class_ == _UNIVERSAL and tag == _UTC_TIME:
            revocation_time = asn1_core.UTCTime.load(header + contents).native
        elif class_ == _UNIVERSAL and tag == _GENERALIZED_TIME:
            revocation_time = asn1_core.GeneralizedTime.load(header + contents).native
        elif class_ == _CONTEXT and tag == 0:
            # [0] EXPLICIT CRLReason
            revocation_reason = RevocationReason.from_code(
                int(asn1_crl.CRLReason.load(contents))
            )
    return revocation_time, revocation_reason
