from .checker import (
    check_certificate,
    check_domain,
    download_issuer_certificate,
    download_leaf_certificate,
    get_cert_urls,
    get_raw_response,
)
from .config import CheckConfig
from .convert import (
    certificate_to_der,
    certificate_to_pem,
    der_to_certificate,
    pem_to_certificate,
    to_certificate,
)
from .crypto import DEFAULT_ENGINE, CryptoEngine
from .exceptions import *  # noqa: F401,F403
from .models import CaInfoUrls, CertificateStatus, RawResponse, RevocationReason

__version__ = "1.0.0"
