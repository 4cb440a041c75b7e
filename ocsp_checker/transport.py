import ipaddress
import select
import socket
import time
from typing import Dict, Optional

import attr
import idna
import requests
import structlog
from cryptography.hazmat.primitives.serialization import Encoding
from OpenSSL import SSL
from urllib3.exceptions import ReadTimeoutError

from .exceptions import (
    InvalidUrlException,
    NoPeerCertificateException,
    TimeoutExceededException,
    TransportException,
)

logger = structlog.get_logger()

HTTPS_PORT = 443
CHUNK_SIZE = 8192


@attr.frozen
class HttpResponse:
    status_code: int
    reason: str
    content: bytes = attr.field(repr=False)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def fetch_bytes(
    url: str,
    method: str = "GET",
    headers: Optional[Dict[str, str]] = None,
    body: Optional[bytes] = None,
    timeout: int = 6000,
    step: str = "HTTP request",
) -> HttpResponse:
    """
    Fetches url, giving up when the whole exchange takes longer than
    timeout milliseconds. Non-2xx responses are returned, not raised.
    """
    log = logger.bind(url=url, method=method, step=step)
    if timeout <= 0:
        raise TimeoutExceededException(step, timeout)

    deadline = time.monotonic() + timeout / 1000
    try:
        with requests.request(
            method,
            url,
            headers=headers,
            data=body,
            timeout=timeout / 1000,
            stream=True,
        ) as response:
            content = bytearray()
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if time.monotonic() > deadline:
                    raise TimeoutExceededException(step, timeout)
                content.extend(chunk)
            log.debug("Received response", status_code=response.status_code)
            return HttpResponse(response.status_code, response.reason or "", bytes(content))
    except requests.exceptions.Timeout as error:
        raise TimeoutExceededException(step, timeout) from error
    except requests.exceptions.ConnectionError as error:
        # Read timeouts while streaming the body come wrapped in a ConnectionError
        if error.args and isinstance(error.args[0], ReadTimeoutError):
            raise TimeoutExceededException(step, timeout) from error
        raise TransportException(f"{step} failed: {error}") from error
    except requests.exceptions.RequestException as error:
        raise TransportException(f"{step} failed: {error}") from error


def fetch_leaf_certificate(hostname: str, timeout: int = 6000) -> bytes:
    """
    Connects to hostname on port 443 and returns the DER encoded
    certificate the server presents.
    """
    step = f"TLS connection to {hostname}"
    if timeout <= 0:
        raise TimeoutExceededException(step, timeout)

    server_name = None if _is_ip_address(hostname) else _server_name(hostname)

    deadline = time.monotonic() + timeout / 1000
    try:
        sock = socket.create_connection((hostname, HTTPS_PORT), timeout=timeout / 1000)
    except socket.timeout as error:
        raise TimeoutExceededException(step, timeout) from error
    except OSError as error:
        raise TransportException(f"Unable to connect to {hostname}: {error}") from error

    try:
        conn = SSL.Connection(SSL.Context(SSL.TLS_METHOD), sock)
        if server_name is not None:
            conn.set_tlsext_host_name(server_name)
        conn.set_connect_state()
        try:
            _do_handshake(conn, sock, deadline, step, timeout)
            handshake_error = None
        except SSL.Error as error:
            # The server may abort after sending its certificate,
            # e.g. when it requires a client certificate.
            logger.debug("Handshake failed", hostname=hostname, error=str(error))
            handshake_error = error

        cert = conn.get_peer_certificate()
        if cert is None:
            raise NoPeerCertificateException(
                f"No certificate found for host {hostname}"
            ) from handshake_error
        return cert.to_cryptography().public_bytes(Encoding.DER)
    finally:
        sock.close()


def _do_handshake(conn: SSL.Connection, sock: socket.socket, deadline: float, step: str, timeout: int):
    # The socket has a timeout, so it is non-blocking underneath and
    # OpenSSL hands the waiting back to us.
    while True:
        try:
            conn.do_handshake()
            return
        except SSL.WantReadError:
            readers, writers = [sock], []
        except SSL.WantWriteError:
            readers, writers = [], [sock]

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise TimeoutExceededException(step, timeout)
        ready_readers, ready_writers, _ = select.select(readers, writers, [], remaining)
        if not ready_readers and not ready_writers:
            raise TimeoutExceededException(step, timeout)


def _server_name(hostname: str) -> bytes:
    try:
        return idna.encode(hostname)
    except idna.IDNAError as error:
        # DNS allows names such as dev_box.example.com that IDNA rejects
        if hostname.isascii():
            return hostname.encode("ascii")
        raise InvalidUrlException(f"Invalid hostname {hostname}: {error}") from error


def _is_ip_address(hostname: str) -> bool:
    try:
        ipaddress.ip_address(hostname.strip("[]"))
    except ValueError:
        return False
    return True
