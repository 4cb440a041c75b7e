from typing import Optional

import environ
from cryptography import x509

from .convert import to_certificate


def _optional_certificate(value) -> Optional[x509.Certificate]:
    if value is None or value == "":
        return None
    return to_certificate(value)


def _optional_str(value) -> Optional[str]:
    return value or None


@environ.config(prefix="OCSP_CHECK")
class CheckConfig:
    # The issuer, used as trust anchor. Downloaded if not set.
    ca: Optional[x509.Certificate] = environ.var(
        default=None, converter=_optional_certificate
    )
    ocsp_url: Optional[str] = environ.var(default=None, converter=_optional_str)
    responder_cert: Optional[x509.Certificate] = environ.var(
        default=None, converter=_optional_certificate
    )
    validate_signature: bool = environ.bool_var(default=True)
    # In milliseconds, applies to each network call separately
    timeout: int = environ.var(default=6000, converter=int)
    enable_nonce: bool = environ.bool_var(default=True)
    raw_response: bool = environ.bool_var(default=False)
    hash_algorithm: str = environ.var(default="sha1")
    debug_logging: bool = environ.bool_var(default=False)

    @classmethod
    def create(cls) -> "CheckConfig":
        return environ.to_config(cls)
