from typing import Optional

from cryptography.x509.ocsp import OCSPResponseStatus


class OcspException(Exception):
    pass


class InvalidPemFormatException(OcspException):
    pass


class InvalidDerFormatException(OcspException):
    pass


class UnsupportedCertificateTypeException(OcspException):
    pass


class MissingAIAExtensionException(OcspException):
    pass


class MissingOcspUrlException(OcspException):
    pass


class MissingIssuerUrlException(OcspException):
    pass


class CertificateExpiredException(OcspException):
    pass


class InvalidUrlException(OcspException):
    pass


class InvalidIssuerCertificateException(OcspException):
    pass


class UnsupportedAlgorithmException(OcspException):
    pass


class HttpStatusException(OcspException):
    def __init__(self, message: str, http_status: int, reason: str = ""):
        super().__init__(message)
        self.http_status = http_status
        self.reason = reason


class IssuerDownloadFailedException(HttpStatusException):
    pass


class OcspRequestFailedException(HttpStatusException):
    pass


class TimeoutExceededException(OcspException):
    def __init__(self, step: str, timeout: int):
        super().__init__(f"{step}: Operation timed out after {timeout}ms")
        self.step = step
        self.timeout = timeout


class TransportException(OcspException):
    pass


class NoPeerCertificateException(TransportException):
    pass


class InvalidResponseException(OcspException):
    pass


class OcspServerException(OcspException):
    ocsp_status: Optional[OCSPResponseStatus] = None

    def __init__(self, response_code: int):
        name = self.ocsp_status.name.lower() if self.ocsp_status else "unrecognized"
        super().__init__(f"OCSP server response: {name} ({response_code})")
        self.response_code = response_code

    @classmethod
    def from_response_code(cls, response_code: int) -> "OcspServerException":
        for subclass in cls.__subclasses__():
            if subclass.ocsp_status is not None and (
                subclass.ocsp_status.value == response_code
            ):
                return subclass(response_code)
        return UnrecognizedResponseStatusException(response_code)


class MalformedRequestException(OcspServerException):
    ocsp_status = OCSPResponseStatus.MALFORMED_REQUEST


class InternalErrorException(OcspServerException):
    ocsp_status = OCSPResponseStatus.INTERNAL_ERROR


class TryLaterException(OcspServerException):
    ocsp_status = OCSPResponseStatus.TRY_LATER


class SigRequiredException(OcspServerException):
    ocsp_status = OCSPResponseStatus.SIG_REQUIRED


class UnauthorizedException(OcspServerException):
    ocsp_status = OCSPResponseStatus.UNAUTHORIZED


class UnrecognizedResponseStatusException(OcspServerException):
    pass


class MissingResponseBytesException(OcspException):
    pass


class UnknownResponseTypeException(OcspException):
    pass


class UnexpectedResponseCountException(OcspException):
    pass


class ResponderNotFoundException(OcspException):
    pass


class ChainValidationFailedException(OcspException):
    pass


class SignatureVerificationFailedException(OcspException):
    pass


class NonceMismatchException(OcspException):
    pass


class CertificateMismatchException(OcspException):
    pass


class UnrecognizedCertStatusException(OcspException):
    pass
