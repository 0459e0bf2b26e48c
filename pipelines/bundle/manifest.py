"""Manifest generation for pass bundles."""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Iterable
from pathlib import Path

from app.services.packaging.errors import ManifestError

logger = logging.getLogger("pipelines.bundle.manifest")

# Wallet verifiers compare manifest entries against SHA-1 digests; changing this
# breaks installation on every device.
MANIFEST_DIGEST = "sha1"
MANIFEST_FILENAME = "manifest.json"
SIGNATURE_FILENAME = "signature"
HASH_CHUNK_SIZE = 64 * 1024


def digest_bytes(data: bytes) -> str:
    return hashlib.new(MANIFEST_DIGEST, data).hexdigest()


def digest_file(path: Path) -> str:
    hasher = hashlib.new(MANIFEST_DIGEST)
    with path.open("rb") as infile:
        for chunk in iter(lambda: infile.read(HASH_CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def iter_bundle_files(bundle_dir: Path) -> Iterable[Path]:
    """Yield regular files under bundle_dir in deterministic order."""
    for file_path in sorted(bundle_dir.rglob("*")):
        if file_path.is_file():
            yield file_path


def build_manifest(bundle_dir: Path) -> dict[str, str]:
    """Map every file under bundle_dir (relative POSIX path) to its digest."""
    if not bundle_dir.is_dir():
        raise ManifestError(f"Bundle directory not found: {bundle_dir}")
    manifest: dict[str, str] = {}
    try:
        for file_path in iter_bundle_files(bundle_dir):
            rel_path = file_path.relative_to(bundle_dir).as_posix()
            manifest[rel_path] = digest_file(file_path)
    except OSError as exc:
        raise ManifestError(f"Unable to hash bundle contents in {bundle_dir}: {exc}") from exc
    logger.debug("Built manifest for %s (%s files)", bundle_dir, len(manifest))
    return manifest


def serialize_manifest(manifest: dict[str, str]) -> bytes:
    return json.dumps(manifest, indent=2, sort_keys=True).encode("utf-8")
