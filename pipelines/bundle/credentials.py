"""Extract signing material from a password-protected PKCS#12 bundle."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from asn1crypto import pkcs12 as asn1_pkcs12
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from app.services.packaging.errors import CredentialError, CredentialFailure

logger = logging.getLogger("pipelines.bundle.credentials")


@dataclass(frozen=True)
class Credential:
    """Signer key and certificate, held as PEM for the lifetime of one build.

    The private key PEM is encrypted with the container password whenever the
    container had one.
    """

    certificate_pem: bytes
    private_key_pem: bytes = field(repr=False)
    passphrase: bytes | None = field(default=None, repr=False)

    @property
    def subject(self) -> str:
        return self.load_certificate().subject.rfc4514_string()

    def load_certificate(self) -> x509.Certificate:
        return x509.load_pem_x509_certificate(self.certificate_pem)

    def load_private_key(self):
        return serialization.load_pem_private_key(self.private_key_pem, password=self.passphrase)


def load_pkcs12_file(path: Path | str) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise CredentialError(
            f"Unable to read PKCS#12 bundle {path}: {exc}", CredentialFailure.MALFORMED
        ) from exc


def _ensure_pfx_structure(data: bytes) -> None:
    """Reject bytes that are not a PKCS#12 PFX before attempting decryption."""
    try:
        pfx = asn1_pkcs12.Pfx.load(data, strict=True)
        pfx["version"].native
        pfx["auth_safe"]["content_type"].native
    except (ValueError, TypeError, KeyError) as exc:
        raise CredentialError(
            f"PKCS#12 container could not be parsed: {exc}", CredentialFailure.MALFORMED
        ) from exc


def extract_credential(data: bytes, password: str | bytes | None) -> Credential:
    """Decrypt a PKCS#12 container and return its key and leaf certificate."""
    if not data:
        raise CredentialError("PKCS#12 container is empty.", CredentialFailure.MALFORMED)
    _ensure_pfx_structure(data)

    passphrase = password.encode("utf-8") if isinstance(password, str) else password
    passphrase = passphrase or None
    try:
        private_key, certificate, _additional = pkcs12.load_key_and_certificates(data, passphrase)
    except ValueError as exc:
        raise CredentialError(
            "PKCS#12 container could not be decrypted with the supplied password.",
            CredentialFailure.INVALID_PASSWORD,
        ) from exc

    if private_key is None:
        raise CredentialError("PKCS#12 container has no private key.", CredentialFailure.MISSING_COMPONENT)
    if certificate is None:
        raise CredentialError(
            "PKCS#12 container has no signer certificate.", CredentialFailure.MISSING_COMPONENT
        )

    encryption = (
        serialization.BestAvailableEncryption(passphrase)
        if passphrase
        else serialization.NoEncryption()
    )
    credential = Credential(
        certificate_pem=certificate.public_bytes(serialization.Encoding.PEM),
        private_key_pem=private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=encryption,
        ),
        passphrase=passphrase,
    )
    logger.info("Extracted signer credential for %s", credential.subject)
    return credential
