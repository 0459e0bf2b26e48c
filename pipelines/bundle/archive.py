"""Zip a finished bundle directory into a flat pass archive."""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path

from app.services.packaging.errors import ArchiveError
from pipelines.bundle.manifest import iter_bundle_files

logger = logging.getLogger("pipelines.bundle.archive")

COMPRESSION_METHODS = {
    "stored": zipfile.ZIP_STORED,
    "deflated": zipfile.ZIP_DEFLATED,
}


def assemble_archive(source_dir: Path, destination: Path, *, compression: str = "stored") -> Path:
    """Write every file under source_dir into destination with paths relative to source_dir."""
    method = COMPRESSION_METHODS.get(compression)
    if method is None:
        raise ArchiveError(f"Unsupported compression {compression!r}.")
    if not source_dir.is_dir():
        raise ArchiveError(f"Bundle directory not found: {source_dir}", code="E_ARCHIVE_EMPTY")

    try:
        files = list(iter_bundle_files(source_dir))
        if not files:
            raise ArchiveError(f"Bundle directory is empty: {source_dir}", code="E_ARCHIVE_EMPTY")
        destination.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(destination, "w", compression=method) as archive:
            for file_path in files:
                archive.write(file_path, arcname=file_path.relative_to(source_dir).as_posix())
    except (OSError, zipfile.BadZipFile) as exc:
        raise ArchiveError(f"Unable to write archive {destination}: {exc}") from exc

    logger.info("Assembled archive %s (%s entries)", destination, len(files))
    return destination
