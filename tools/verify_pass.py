"""Verify a pass archive's layout, manifest digests, and detached signature."""

from __future__ import annotations

import argparse
import hashlib
import io
import json
import logging
import zipfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from asn1crypto import cms
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

from pipelines.bundle.manifest import MANIFEST_FILENAME, SIGNATURE_FILENAME, digest_bytes
from pipelines.bundle.signature import load_issuer_certificate_file

logger = logging.getLogger("tools.verify_pass")

_HASHES: dict[str, type[hashes.HashAlgorithm]] = {
    "sha1": hashes.SHA1,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}


class VerificationError(RuntimeError):
    """Raised when an archive fails validation."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class SignatureInfo:
    """Facts about a verified signature."""

    digest_algorithm: str
    signer: x509.Certificate
    certificates: tuple[x509.Certificate, ...]


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Verify a signed pass archive.")
    parser.add_argument("--archive", type=Path, required=True, help="Path to the .pkpass archive.")
    parser.add_argument("--wwdr", type=Path, help="Issuer certificate the signer must chain to (PEM or DER).")
    return parser.parse_args(argv)


def read_entries(data: bytes) -> dict[str, bytes]:
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            return {
                info.filename: archive.read(info)
                for info in archive.infolist()
                if not info.is_dir()
            }
    except zipfile.BadZipFile as exc:
        raise VerificationError("E_ARCHIVE_INVALID", f"Archive is not a zip file: {exc}") from exc


def verify_manifest(entries: dict[str, bytes]) -> dict[str, str]:
    for required in (MANIFEST_FILENAME, SIGNATURE_FILENAME):
        if required not in entries:
            raise VerificationError("E_FILE_MISSING", f"Archive is missing {required}.")
    try:
        manifest = json.loads(entries[MANIFEST_FILENAME].decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise VerificationError("E_MANIFEST_INVALID", f"manifest.json is not valid JSON: {exc}") from exc
    if not isinstance(manifest, dict):
        raise VerificationError("E_MANIFEST_INVALID", "manifest.json must contain an object.")

    listed = set(manifest)
    present = set(entries) - {MANIFEST_FILENAME, SIGNATURE_FILENAME}
    if listed & {MANIFEST_FILENAME, SIGNATURE_FILENAME}:
        raise VerificationError("E_MANIFEST_INVALID", "Manifest must not list itself or the signature.")
    if present - listed:
        raise VerificationError("E_FILE_UNLISTED", f"Files missing from manifest: {sorted(present - listed)}")
    if listed - present:
        raise VerificationError("E_FILE_MISSING", f"Manifest references missing files: {sorted(listed - present)}")
    for path in sorted(listed):
        if digest_bytes(entries[path]) != manifest[path]:
            raise VerificationError("E_CHECKSUM_MISMATCH", f"Checksum mismatch for {path}")
    return manifest


def _signed_attribute(signed_attrs, name: str):
    for attribute in signed_attrs:
        if attribute["type"].native == name:
            return attribute["values"][0].native
    raise VerificationError("E_SIGNATURE_INVALID", f"Signature lacks the {name} attribute.")


def verify_signature(signature: bytes, content: bytes) -> SignatureInfo:
    """Check a detached CMS signature against content and return its signer."""
    try:
        content_info = cms.ContentInfo.load(signature)
        if content_info["content_type"].native != "signed_data":
            raise VerificationError("E_SIGNATURE_INVALID", "Signature is not CMS signed-data.")
        signed_data = content_info["content"]
        if signed_data["encap_content_info"]["content"].native is not None:
            raise VerificationError("E_SIGNATURE_INVALID", "Signature must be detached.")
        certificates = tuple(
            x509.load_der_x509_certificate(choice.chosen.dump())
            for choice in signed_data["certificates"]
        )
        signer_info = signed_data["signer_infos"][0]
        serial = signer_info["sid"].chosen["serial_number"].native
        digest_name = signer_info["digest_algorithm"]["algorithm"].native
        signed_attrs = signer_info["signed_attrs"]
        message_digest = _signed_attribute(signed_attrs, "message_digest")
        signature_value = signer_info["signature"].native
        # Signed attributes are signed as a DER SET, not with their [0] context tag.
        signed_bytes = b"\x31" + signed_attrs.dump()[1:]
    except (ValueError, TypeError, KeyError, IndexError) as exc:
        raise VerificationError("E_SIGNATURE_INVALID", f"Signature could not be parsed: {exc}") from exc

    hash_cls = _HASHES.get(digest_name)
    if hash_cls is None:
        raise VerificationError("E_SIGNATURE_INVALID", f"Unsupported digest algorithm {digest_name}.")
    if hashlib.new(digest_name, content).digest() != message_digest:
        raise VerificationError("E_SIGNATURE_MISMATCH", "Signed digest does not match the manifest.")

    signer = next((cert for cert in certificates if cert.serial_number == serial), None)
    if signer is None:
        raise VerificationError("E_SIGNATURE_INVALID", "Signer certificate is not embedded in the signature.")
    public_key = signer.public_key()
    try:
        if isinstance(public_key, rsa.RSAPublicKey):
            public_key.verify(signature_value, signed_bytes, padding.PKCS1v15(), hash_cls())
        elif isinstance(public_key, ec.EllipticCurvePublicKey):
            public_key.verify(signature_value, signed_bytes, ec.ECDSA(hash_cls()))
        else:
            raise VerificationError("E_SIGNATURE_INVALID", f"Unsupported signer key {type(public_key).__name__}.")
    except InvalidSignature as exc:
        raise VerificationError("E_SIGNATURE_MISMATCH", "Signature does not verify with the signer key.") from exc

    return SignatureInfo(digest_algorithm=digest_name, signer=signer, certificates=certificates)


def verify_issuer(info: SignatureInfo, issuer: x509.Certificate) -> None:
    if not any(cert == issuer for cert in info.certificates):
        raise VerificationError("E_CHAIN_INVALID", "Issuer certificate is not embedded in the signature.")
    try:
        info.signer.verify_directly_issued_by(issuer)
    except (ValueError, TypeError, InvalidSignature) as exc:
        raise VerificationError("E_CHAIN_INVALID", f"Signer was not issued by the supplied issuer: {exc}") from exc


def verify_archive(data: bytes, issuer: x509.Certificate | None = None) -> dict[str, str]:
    entries = read_entries(data)
    manifest = verify_manifest(entries)
    info = verify_signature(entries[SIGNATURE_FILENAME], entries[MANIFEST_FILENAME])
    if issuer is not None:
        verify_issuer(info, issuer)
    logger.info(
        "Archive verified (%s entries, signer %s, digest %s).",
        len(manifest),
        info.signer.subject.rfc4514_string(),
        info.digest_algorithm,
    )
    return manifest


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    args = parse_args(argv)
    issuer = None
    try:
        if args.wwdr:
            issuer = load_issuer_certificate_file(args.wwdr)
        verify_archive(args.archive.read_bytes(), issuer)
    except VerificationError as exc:
        logger.error("Verification failed (%s): %s", exc.code, exc)
        return 1
    except Exception as exc:  # pragma: no cover - safety net
        logger.exception("Unexpected verification failure: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
