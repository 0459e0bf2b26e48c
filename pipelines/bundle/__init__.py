"""Pass bundle packaging: manifest, signature and archive assembly."""

from __future__ import annotations

from pipelines.bundle.builder import PassArchive, PassBuilder, serialize_document

__all__ = ["PassArchive", "PassBuilder", "serialize_document"]
