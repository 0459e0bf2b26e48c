"""Per-build working directory with an explicit stage protocol."""

from __future__ import annotations

import logging
import shutil
from enum import IntEnum
from pathlib import Path
from uuid import uuid4

from app.services.packaging.errors import BundleStateError, ManifestError, SignatureError, StagingError
from pipelines.bundle.manifest import (
    MANIFEST_FILENAME,
    SIGNATURE_FILENAME,
    build_manifest,
    serialize_manifest,
)

logger = logging.getLogger("pipelines.bundle.workspace")

PASS_FILENAME = "pass.json"
ARCHIVE_FILENAME = "pass.pkpass"
BUNDLE_SUBDIR = "pass"
RESERVED_FILENAMES = (MANIFEST_FILENAME, SIGNATURE_FILENAME)


class BundleState(IntEnum):
    CREATED = 0
    STAGED = 1
    MANIFESTED = 2
    SIGNED = 3
    ASSEMBLED = 4
    REMOVED = 5


class WorkingBundle:
    """Uniquely named scratch directory owned by exactly one build.

    Use as a context manager: the directory is removed on every exit path and a
    removal failure is logged (and attached to any in-flight exception as a
    note) instead of replacing the original error.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.bundle_dir = root / BUNDLE_SUBDIR
        self.archive_path = root / ARCHIVE_FILENAME
        self.state = BundleState.CREATED
        self.cleanup_error: OSError | None = None
        self._manifest_bytes: bytes | None = None

    @classmethod
    def create(cls, work_root: Path | str) -> WorkingBundle:
        base = Path(work_root)
        try:
            base.mkdir(parents=True, exist_ok=True)
            root = base / f"pass-build-{uuid4().hex}"
            root.mkdir()
        except OSError as exc:
            raise StagingError(f"Unable to create working directory under {base}: {exc}") from exc
        logger.debug("Created working bundle %s", root)
        return cls(root)

    def __enter__(self) -> WorkingBundle:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.remove()
        if exc is not None and self.cleanup_error is not None:
            exc.add_note(f"Working directory cleanup failed: {self.cleanup_error}")

    def _require(self, expected: BundleState, action: str) -> None:
        if self.state is not expected:
            raise BundleStateError(
                f"Cannot {action} while bundle is {self.state.name.lower()} "
                f"(expected {expected.name.lower()})."
            )

    @property
    def manifest_bytes(self) -> bytes:
        if self._manifest_bytes is None:
            raise BundleStateError("Manifest has not been written yet.")
        return self._manifest_bytes

    def stage(
        self,
        document: bytes,
        template_dir: Path | None = None,
        *,
        ignore: tuple[str, ...] = (),
    ) -> None:
        """Copy template assets and write the serialized pass document."""
        self._require(BundleState.CREATED, "stage")
        try:
            if template_dir is not None:
                shutil.copytree(
                    template_dir,
                    self.bundle_dir,
                    ignore=shutil.ignore_patterns(*RESERVED_FILENAMES, *ignore),
                )
            else:
                self.bundle_dir.mkdir()
            (self.bundle_dir / PASS_FILENAME).write_bytes(document)
        except OSError as exc:
            raise StagingError(f"Unable to stage bundle in {self.bundle_dir}: {exc}") from exc
        self.state = BundleState.STAGED

    def write_manifest(self) -> dict[str, str]:
        """Hash the staged files and write manifest.json; the manifest never lists itself."""
        self._require(BundleState.STAGED, "write the manifest")
        manifest = build_manifest(self.bundle_dir)
        payload = serialize_manifest(manifest)
        try:
            (self.bundle_dir / MANIFEST_FILENAME).write_bytes(payload)
        except OSError as exc:
            raise ManifestError(f"Unable to write {MANIFEST_FILENAME}: {exc}") from exc
        self._manifest_bytes = payload
        self.state = BundleState.MANIFESTED
        return manifest

    def write_signature(self, signature: bytes) -> None:
        self._require(BundleState.MANIFESTED, "write the signature")
        try:
            (self.bundle_dir / SIGNATURE_FILENAME).write_bytes(signature)
        except OSError as exc:
            raise SignatureError(f"Unable to write {SIGNATURE_FILENAME}: {exc}") from exc
        self.state = BundleState.SIGNED

    def mark_assembled(self) -> None:
        self._require(BundleState.SIGNED, "assemble the archive")
        self.state = BundleState.ASSEMBLED

    def remove(self) -> None:
        if self.state is BundleState.REMOVED:
            return
        try:
            shutil.rmtree(self.root)
        except FileNotFoundError:
            pass
        except OSError as exc:
            self.cleanup_error = exc
            logger.warning("Failed to remove working directory %s: %s", self.root, exc)
        self.state = BundleState.REMOVED
