import functools

import attr
import click
from asn1crypto import pem as asn1_pem
from cryptography.x509.ocsp import OCSPCertStatus

from .checker import check_certificate, check_domain, get_cert_urls, get_raw_response
from .config import CheckConfig
from .exceptions import OcspException
from .logging import setup_logging

STATUS_COLORS = {
    OCSPCertStatus.GOOD: "green",
    OCSPCertStatus.REVOKED: "red",
    OCSPCertStatus.UNKNOWN: "yellow",
}


def read_certificate(data: bytes):
    # PEM goes to the normalizer as text, anything else as DER
    if asn1_pem.detect(data):
        return data.decode("ascii")
    return data


def check_options(func):
    @click.option("--ca", type=click.File("rb"), help="Issuer certificate (PEM or DER).")
    @click.option(
        "--responder-cert",
        type=click.File("rb"),
        help="Certificate that signs the OCSP responses.",
    )
    @click.option("--ocsp-url", help="Use this OCSP responder instead of the one in the certificate.")
    @click.option("--timeout", type=int, help="Timeout per network call, in milliseconds.")
    @click.option("--no-nonce", is_flag=True, help="Do not send a nonce.")
    @click.option("--no-verify", is_flag=True, help="Do not validate the response signature.")
    @click.option("--sha256", is_flag=True, help="Identify the certificate with SHA-256 instead of SHA-1.")
    @functools.wraps(func)
    def wrapper(ca, responder_cert, ocsp_url, timeout, no_nonce, no_verify, sha256, **kwargs):
        config = CheckConfig.create()
        changes = {}
        if ca is not None:
            changes["ca"] = read_certificate(ca.read())
        if responder_cert is not None:
            changes["responder_cert"] = read_certificate(responder_cert.read())
        if ocsp_url:
            changes["ocsp_url"] = ocsp_url
        if timeout is not None:
            changes["timeout"] = timeout
        if no_nonce:
            changes["enable_nonce"] = False
        if no_verify:
            changes["validate_signature"] = False
        if sha256:
            changes["hash_algorithm"] = "sha256"
        try:
            return func(config=attr.evolve(config, **changes), **kwargs)
        except OcspException as error:
            raise click.ClickException(f"{type(error).__name__}: {error}") from error

    return wrapper


def print_status(result):
    click.echo("Status: ", nl=False)
    click.secho(result.status.name.lower(), fg=STATUS_COLORS[result.status], bold=True)
    click.echo(f"OCSP URL: {result.ocsp_url}")
    if result.revocation_time is not None:
        click.echo(f"Revoked at: {result.revocation_time.isoformat()}")
    if result.revocation_reason is not None:
        reason = getattr(result.revocation_reason, "name", result.revocation_reason)
        click.echo(f"Revocation reason: {str(reason).lower()}")
    if result.produced_at is not None:
        click.echo(f"Produced at: {result.produced_at.isoformat()}")
    if result.this_update is not None:
        click.echo(f"This update: {result.this_update.isoformat()}")
    if result.next_update is not None:
        click.echo(f"Next update: {result.next_update.isoformat()}")


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging.")
def main(debug):
    """Checks the revocation status of certificates with OCSP."""
    setup_logging(debug or CheckConfig.create().debug_logging)


@main.command()
@click.argument("certificate", type=click.File("rb"))
@check_options
def cert(certificate, config):
    """Check the certificate in the CERTIFICATE file."""
    print_status(check_certificate(read_certificate(certificate.read()), config))


@main.command()
@click.argument("domain")
@check_options
def domain(domain, config):
    """Check the certificate served by DOMAIN."""
    print_status(check_domain(domain, config))


@main.command()
@click.argument("certificate", type=click.File("rb"))
def urls(certificate):
    """Show the OCSP and issuer URLs of a certificate."""
    try:
        result = get_cert_urls(read_certificate(certificate.read()))
    except OcspException as error:
        raise click.ClickException(f"{type(error).__name__}: {error}") from error
    click.echo(f"OCSP URL: {result.ocsp_url}")
    click.echo(f"Issuer URL: {result.issuer_url}")


@main.command()
@click.argument("certificate", type=click.File("rb"))
@click.option("--output", "-o", type=click.File("wb"), required=True, help="Where to write the DER response.")
@check_options
def raw(certificate, output, config):
    """Fetch the OCSP response for a certificate without validating it."""
    result = get_raw_response(read_certificate(certificate.read()), config)
    output.write(result.response)
    if result.nonce is not None:
        click.echo(f"Nonce: {result.nonce.hex()}")
    click.echo(result.issuer_certificate, nl=False)
