"""Detached CMS signatures over pass manifests."""

from __future__ import annotations

import logging
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import pkcs7

from app.services.packaging.errors import SignatureError
from pipelines.bundle.credentials import Credential

logger = logging.getLogger("pipelines.bundle.signature")

SIGNATURE_DIGESTS: dict[str, type[hashes.HashAlgorithm]] = {
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}
DEFAULT_SIGNATURE_DIGEST = "sha256"


def load_issuer_certificate(data: bytes) -> x509.Certificate:
    """Decode the issuer (WWDR) certificate from PEM or DER."""
    try:
        if data.lstrip().startswith(b"-----BEGIN"):
            return x509.load_pem_x509_certificate(data)
        return x509.load_der_x509_certificate(data)
    except ValueError as exc:
        raise SignatureError(f"Issuer certificate could not be decoded: {exc}") from exc


def load_issuer_certificate_file(path: Path | str) -> x509.Certificate:
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise SignatureError(f"Unable to read issuer certificate {path}: {exc}") from exc
    return load_issuer_certificate(data)


def _public_bytes(key) -> bytes:
    return key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def _resolve_digest(name: str) -> hashes.HashAlgorithm:
    digest_cls = SIGNATURE_DIGESTS.get(name.lower())
    if digest_cls is None:
        raise SignatureError(
            f"Unsupported signature digest {name!r} (expected one of {sorted(SIGNATURE_DIGESTS)}).",
            code="E_SIGNATURE_UNSUPPORTED",
        )
    return digest_cls()


def sign_manifest(
    manifest: bytes,
    credential: Credential,
    issuer: x509.Certificate,
    *,
    digest: str = DEFAULT_SIGNATURE_DIGEST,
) -> bytes:
    """Return a DER-encoded detached CMS signature over the exact manifest bytes."""
    hash_algorithm = _resolve_digest(digest)
    try:
        certificate = credential.load_certificate()
        private_key = credential.load_private_key()
    except (ValueError, TypeError) as exc:
        raise SignatureError(f"Signer credential could not be loaded: {exc}") from exc

    if not isinstance(private_key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
        raise SignatureError(
            f"Unsupported signer key type {type(private_key).__name__}; CMS signing needs RSA or EC.",
            code="E_SIGNATURE_UNSUPPORTED",
        )
    if _public_bytes(private_key.public_key()) != _public_bytes(certificate.public_key()):
        raise SignatureError(
            "Private key does not match the signer certificate.",
            code="E_SIGNATURE_KEY_MISMATCH",
        )

    try:
        signature = (
            pkcs7.PKCS7SignatureBuilder()
            .set_data(manifest)
            .add_signer(certificate, private_key, hash_algorithm)
            .add_certificate(issuer)
            .sign(
                serialization.Encoding.DER,
                [pkcs7.PKCS7Options.DetachedSignature, pkcs7.PKCS7Options.Binary],
            )
        )
    except (ValueError, TypeError) as exc:
        raise SignatureError(f"CMS signing failed: {exc}") from exc

    logger.debug(
        "Signed manifest",
        extra={"manifest_size": len(manifest), "signature_size": len(signature), "digest": digest},
    )
    return signature
