from cryptography import x509
from cryptography.x509.oid import AuthorityInformationAccessOID, ExtensionOID

from .exceptions import (
    MissingAIAExtensionException,
    MissingIssuerUrlException,
    MissingOcspUrlException,
)
from .models import CaInfoUrls


def get_ca_info_urls(certificate: x509.Certificate) -> CaInfoUrls:
    try:
        aia = certificate.extensions.get_extension_for_oid(
            ExtensionOID.AUTHORITY_INFORMATION_ACCESS
        ).value
    except x509.ExtensionNotFound:
        raise MissingAIAExtensionException(
            "Certificate does not contain authority information access extension"
        ) from None

    ocsp_url = _find_access_location(aia, AuthorityInformationAccessOID.OCSP)
    if not ocsp_url:
        raise MissingOcspUrlException("Certificate does not contain OCSP url")

    issuer_url = _find_access_location(aia, AuthorityInformationAccessOID.CA_ISSUERS)
    if not issuer_url:
        raise MissingIssuerUrlException("Certificate does not contain issuer url")

    return CaInfoUrls(ocsp_url, issuer_url)


def _find_access_location(aia: x509.AuthorityInformationAccess, method: x509.ObjectIdentifier):
    for description in aia:
        if description.access_method != method:
            continue
        location = description.access_location
        if isinstance(location, x509.UniformResourceIdentifier) and location.value:
            return location.value
    return None
