"""Build signed pass archives from a pass document and a template directory."""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import logging
import threading
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from cryptography import x509

from app.config import Settings, settings
from app.models.pass_content import Pass
from app.observability.metrics import metrics
from app.services.packaging.errors import (
    ArchiveError,
    BuildCancelledError,
    BuildStage,
    BundleIOError,
    PassBuildError,
    StagingError,
)
from pipelines.bundle.archive import assemble_archive
from pipelines.bundle.credentials import Credential, extract_credential, load_pkcs12_file
from pipelines.bundle.signature import (
    load_issuer_certificate,
    load_issuer_certificate_file,
    sign_manifest,
)
from pipelines.bundle.workspace import WorkingBundle

logger = logging.getLogger("pipelines.bundle.builder")

PassDocument = Pass | bytes


@dataclass(frozen=True)
class PassArchive:
    """Result of a successful build."""

    data: bytes
    manifest: dict[str, str]
    path: Path | None = None
    cleanup_error: OSError | None = None


def serialize_document(document: PassDocument) -> bytes:
    """Return the pass.json bytes, rejecting anything that is not JSON text."""
    if isinstance(document, Pass):
        return document.to_json_bytes()
    if isinstance(document, (bytes, bytearray)):
        data = bytes(document)
        try:
            json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StagingError(f"Pass document is not valid JSON: {exc}", code="E_PASS_INVALID") from exc
        return data
    raise StagingError(
        f"Unsupported pass document type {type(document).__name__}.", code="E_PASS_INVALID"
    )


class PassBuilder:
    """Sequence staging, manifest, credentials, signing and zipping for each build.

    Every build owns a fresh working directory, so one builder can serve
    concurrent builds without locking. Credential extraction runs on a separate
    pool while the bundle is staged and hashed.
    """

    def __init__(
        self,
        certificate: bytes,
        password: str,
        issuer_certificate: bytes | x509.Certificate,
        template_dir: Path | str | None = None,
        *,
        work_root: Path | str | None = None,
        signature_digest: str = "sha256",
        compression: str = "stored",
        template_ignore: Sequence[str] = (),
        max_workers: int = 4,
    ) -> None:
        self._certificate = certificate
        self._password = password
        self._issuer_certificate = issuer_certificate
        self._template_dir = Path(template_dir) if template_dir else None
        self._work_root = Path(work_root or settings.pass_work_root)
        self._signature_digest = signature_digest
        self._compression = compression
        self._template_ignore = tuple(template_ignore)
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="pass-build"
        )
        self._credential_executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="pass-credentials"
        )

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> PassBuilder:
        config = config or settings
        if not config.signing_configured:
            raise ValueError(
                "PASS_CERTIFICATE_PATH and PASS_WWDR_CERTIFICATE_PATH are required to build passes."
            )
        return cls(
            certificate=load_pkcs12_file(config.pass_certificate_path),
            password=config.pass_certificate_password,
            issuer_certificate=load_issuer_certificate_file(config.pass_wwdr_certificate_path),
            template_dir=config.pass_template_dir,
            work_root=config.pass_work_root,
            signature_digest=config.pass_signature_digest,
            compression=config.pass_archive_compression,
            template_ignore=config.pass_template_ignore,
            max_workers=config.pass_build_workers,
        )

    def __enter__(self) -> PassBuilder:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        self._credential_executor.shutdown(wait=True)

    def build(
        self,
        document: PassDocument,
        destination: Path | str | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> PassArchive:
        """Build a signed archive; the working directory is gone when this returns."""
        started = time.perf_counter()
        try:
            archive = self._run(document, Path(destination) if destination else None, cancel_event)
        except PassBuildError as exc:
            stage = exc.stage.value if exc.stage else "unknown"
            metrics.increment("failed", tags={"stage": stage, "code": exc.code})
            logger.warning("Pass build failed at %s stage (%s): %s", stage, exc.code, exc)
            raise
        elapsed_ms = (time.perf_counter() - started) * 1000
        metrics.increment("completed")
        metrics.timing("duration", elapsed_ms)
        metrics.gauge("archive.bytes", len(archive.data), tags={"entries": len(archive.manifest)})
        logger.info(
            "Built pass archive (%s bytes, %s manifest entries) in %.1fms",
            len(archive.data),
            len(archive.manifest),
            elapsed_ms,
        )
        return archive

    def save(self, document: PassDocument, destination: Path | str) -> PassArchive:
        return self.build(document, destination)

    async def build_async(
        self,
        document: PassDocument,
        destination: Path | str | None = None,
    ) -> PassArchive:
        """Run build() on the worker pool without blocking the event loop.

        Cancelling the awaiting task stops the build at its next stage boundary;
        the CancelledError is re-raised only after the working directory is gone.
        """
        cancel_event = threading.Event()
        future = asyncio.wrap_future(
            self._executor.submit(self.build, document, destination, cancel_event=cancel_event)
        )
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            cancel_event.set()
            # A repeated cancel still waits for the worker to remove the working directory.
            while not future.done():
                try:
                    await asyncio.wait({future})
                except asyncio.CancelledError:
                    continue
            if not future.cancelled() and future.exception() is not None:
                logger.info("Cancelled pass build stopped: %s", future.exception())
            raise

    def _run(
        self,
        document: PassDocument,
        destination: Path | None,
        cancel_event: threading.Event | None,
    ) -> PassArchive:
        self._checkpoint(cancel_event, BuildStage.STAGE)
        credential_future = self._credential_executor.submit(
            extract_credential, self._certificate, self._password
        )
        try:
            with WorkingBundle.create(self._work_root) as bundle:
                with self._stage(BuildStage.STAGE):
                    bundle.stage(
                        serialize_document(document),
                        self._template_dir,
                        ignore=self._template_ignore,
                    )

                self._checkpoint(cancel_event, BuildStage.MANIFEST)
                with self._stage(BuildStage.MANIFEST):
                    manifest = bundle.write_manifest()

                self._checkpoint(cancel_event, BuildStage.CREDENTIALS)
                with self._stage(BuildStage.CREDENTIALS):
                    credential = credential_future.result()
                    credential_future = None

                self._checkpoint(cancel_event, BuildStage.SIGN)
                with self._stage(BuildStage.SIGN):
                    bundle.write_signature(self._sign(bundle.manifest_bytes, credential))
                del credential

                self._checkpoint(cancel_event, BuildStage.ASSEMBLE)
                with self._stage(BuildStage.ASSEMBLE):
                    data = self._assemble(bundle, destination)
        finally:
            if credential_future is not None:
                credential_future.cancel()

        return PassArchive(
            data=data,
            manifest=manifest,
            path=destination,
            cleanup_error=bundle.cleanup_error,
        )

    def _sign(self, manifest_bytes: bytes, credential: Credential) -> bytes:
        issuer = self._issuer_certificate
        if not isinstance(issuer, x509.Certificate):
            issuer = load_issuer_certificate(issuer)
        return sign_manifest(manifest_bytes, credential, issuer, digest=self._signature_digest)

    def _assemble(self, bundle: WorkingBundle, destination: Path | None) -> bytes:
        assemble_archive(bundle.bundle_dir, bundle.archive_path, compression=self._compression)
        try:
            data = bundle.archive_path.read_bytes()
            if destination is not None:
                destination.parent.mkdir(parents=True, exist_ok=True)
                destination.write_bytes(data)
        except OSError as exc:
            raise ArchiveError(f"Unable to deliver archive: {exc}") from exc
        bundle.mark_assembled()
        return data

    @staticmethod
    def _checkpoint(cancel_event: threading.Event | None, next_stage: BuildStage) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise BuildCancelledError(
                f"Build cancelled before {next_stage.value} stage.", stage=next_stage
            )

    @contextmanager
    def _stage(self, stage: BuildStage) -> Iterator[None]:
        started = time.perf_counter()
        try:
            yield
        except PassBuildError:
            raise
        except OSError as exc:
            raise BundleIOError(f"Filesystem failure during {stage.value}: {exc}", stage=stage) from exc
        finally:
            metrics.timing(
                "stage.duration",
                (time.perf_counter() - started) * 1000,
                tags={"stage": stage.value},
            )
