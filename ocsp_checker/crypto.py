import asyncio
import secrets
from datetime import datetime
from typing import Dict, Iterable, Optional, Type

import attr
import structlog
from asn1crypto import algos as asn1_algos
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, padding, rsa
from cryptography.hazmat.primitives.serialization import Encoding
from pyhanko_certvalidator import CertificateValidator, ValidationContext
from pyhanko_certvalidator.errors import (
    InvalidCertificateError,
    PathBuildingError,
    PathValidationError,
)

from .exceptions import ChainValidationFailedException, UnsupportedAlgorithmException

logger = structlog.get_logger()

SUPPORTED_HASH_ALGORITHMS: Dict[str, Type[hashes.HashAlgorithm]] = {
    "sha1": hashes.SHA1,
    "sha224": hashes.SHA224,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}


def public_key_bits(certificate: x509.Certificate) -> bytes:
    """
    The content of the subjectPublicKey BIT STRING, as hashed into
    issuerKeyHash and the by-key responder id.
    """
    public_key = _to_asn1(certificate)["tbs_certificate"]["subject_public_key_info"]["public_key"]
    # First content byte is the unused bits count, always zero for keys
    return public_key.contents[1:]


def _to_asn1(certificate: x509.Certificate) -> asn1_x509.Certificate:
    return asn1_x509.Certificate.load(certificate.public_bytes(Encoding.DER))


@attr.frozen
class CryptoEngine:
    hash_algorithms: Dict[str, Type[hashes.HashAlgorithm]] = attr.field(
        factory=lambda: dict(SUPPORTED_HASH_ALGORITHMS)
    )

    def hash_algorithm(self, name: str) -> hashes.HashAlgorithm:
        try:
            return self.hash_algorithms[name]()
        except KeyError:
            raise UnsupportedAlgorithmException(
                f"Unsupported hash algorithm: {name}"
            ) from None

    def digest(self, name: str, data: bytes) -> bytes:
        digest = hashes.Hash(self.hash_algorithm(name))
        digest.update(data)
        return digest.finalize()

    def random_bytes(self, length: int) -> bytes:
        return secrets.token_bytes(length)

    def verify_signature(
        self,
        public_key,
        signature: bytes,
        data: bytes,
        signature_algorithm: asn1_algos.SignedDigestAlgorithm,
    ) -> bool:
        """
        Verifies signature over data with public_key.

        :param signature_algorithm: the algorithm identifier as declared
            next to the signature.
        :returns: whether the signature is valid.
        :raises UnsupportedAlgorithmException: if the key type and the
            declared algorithm do not go together.
        """
        try:
            algorithm = signature_algorithm.signature_algo
        except ValueError as error:
            raise UnsupportedAlgorithmException(str(error)) from error
        try:
            if isinstance(public_key, (ed25519.Ed25519PublicKey, ed448.Ed448PublicKey)):
                if algorithm not in ("ed25519", "ed448"):
                    raise self._unsupported(algorithm, public_key)
                public_key.verify(signature, data)
            elif isinstance(public_key, rsa.RSAPublicKey):
                if algorithm == "rsassa_pss":
                    parameters = signature_algorithm["parameters"]
                    hash_algorithm = self.hash_algorithm(signature_algorithm.hash_algo)
                    signature_padding = padding.PSS(
                        mgf=padding.MGF1(hash_algorithm),
                        salt_length=parameters["salt_length"].native,
                    )
                elif algorithm == "rsassa_pkcs1v15":
                    hash_algorithm = self.hash_algorithm(signature_algorithm.hash_algo)
                    signature_padding = padding.PKCS1v15()
                else:
                    raise self._unsupported(algorithm, public_key)
                public_key.verify(signature, data, signature_padding, hash_algorithm)
            elif isinstance(public_key, ec.EllipticCurvePublicKey):
                if algorithm != "ecdsa":
                    raise self._unsupported(algorithm, public_key)
                hash_algorithm = self.hash_algorithm(signature_algorithm.hash_algo)
                public_key.verify(signature, data, ec.ECDSA(hash_algorithm))
            elif isinstance(public_key, dsa.DSAPublicKey):
                if algorithm != "dsa":
                    raise self._unsupported(algorithm, public_key)
                hash_algorithm = self.hash_algorithm(signature_algorithm.hash_algo)
                public_key.verify(signature, data, hash_algorithm)
            else:
                raise self._unsupported(algorithm, public_key)
        except InvalidSignature:
            return False
        return True

    def validate_chain(
        self,
        certificate: x509.Certificate,
        candidates: Iterable[x509.Certificate],
        trust_anchor: x509.Certificate,
        moment: datetime,
    ):
        """
        Checks that certificate chains up to trust_anchor, using candidates
        as possible intermediates, and that it may sign OCSP responses.

        Every certificate on the path must be valid at moment, and every
        certificate between the anchor and certificate must be a CA
        allowed to sign certificates.
        """
        context = ValidationContext(
            trust_roots=[_to_asn1(trust_anchor)],
            moment=moment,
            allow_fetching=False,
        )
        validator = CertificateValidator(
            _to_asn1(certificate),
            intermediate_certs=[_to_asn1(c) for c in candidates if c != certificate],
            validation_context=context,
        )
        try:
            asyncio.run(
                validator.async_validate_usage(
                    key_usage=set(), extended_key_usage={"ocsp_signing"}
                )
            )
        except (PathBuildingError, PathValidationError, InvalidCertificateError) as error:
            raise ChainValidationFailedException(
                f"Certificate {certificate.subject.rfc4514_string()} "
                f"does not chain to the trust anchor: {error}"
            ) from error
        logger.debug(
            "Responder chain is valid",
            subject=certificate.subject.rfc4514_string(),
        )

    @staticmethod
    def _unsupported(algorithm: Optional[str], public_key) -> UnsupportedAlgorithmException:
        return UnsupportedAlgorithmException(
            f"Signature algorithm {algorithm} is not supported "
            f"for {type(public_key).__name__}"
        )


DEFAULT_ENGINE = CryptoEngine()
