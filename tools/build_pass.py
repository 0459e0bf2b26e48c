"""Build a signed .pkpass archive from a pass.json document and a template directory."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence
from pathlib import Path

from app.config import settings
from app.services.packaging.errors import PassBuildError, StagingError
from pipelines.bundle import PassBuilder
from pipelines.bundle.credentials import load_pkcs12_file
from pipelines.bundle.signature import SIGNATURE_DIGESTS, load_issuer_certificate_file

logger = logging.getLogger("tools.build_pass")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build and sign a wallet pass archive.")
    parser.add_argument("--pass", dest="pass_json", type=Path, required=True, help="Path to pass.json.")
    parser.add_argument(
        "--template",
        type=Path,
        default=Path(settings.pass_template_dir) if settings.pass_template_dir else None,
        help="Directory of images and localizations copied into the bundle.",
    )
    parser.add_argument(
        "--certificate",
        type=Path,
        default=Path(settings.pass_certificate_path) if settings.pass_certificate_path else None,
        help="PKCS#12 container holding the signer key and certificate.",
    )
    parser.add_argument(
        "--password",
        default=settings.pass_certificate_password,
        help="Password for the PKCS#12 container.",
    )
    parser.add_argument(
        "--wwdr",
        type=Path,
        default=Path(settings.pass_wwdr_certificate_path) if settings.pass_wwdr_certificate_path else None,
        help="Issuer (WWDR) certificate embedded in the signature (PEM or DER).",
    )
    parser.add_argument("--out", type=Path, required=True, help="Where to write the .pkpass archive.")
    parser.add_argument("--work-root", type=Path, default=Path(settings.pass_work_root))
    parser.add_argument(
        "--digest",
        choices=sorted(SIGNATURE_DIGESTS),
        default=settings.pass_signature_digest,
        help="Digest used for the CMS signature.",
    )
    parser.add_argument(
        "--compression",
        choices=("stored", "deflated"),
        default=settings.pass_archive_compression,
    )
    args = parser.parse_args(argv)
    if args.certificate is None or args.wwdr is None:
        parser.error("--certificate and --wwdr are required (or set PASS_CERTIFICATE_PATH / PASS_WWDR_CERTIFICATE_PATH).")
    return args


def build(args: argparse.Namespace) -> Path:
    try:
        document = args.pass_json.read_bytes()
    except OSError as exc:
        raise StagingError(f"Unable to read pass document {args.pass_json}: {exc}", code="E_PASS_INVALID") from exc

    with PassBuilder(
        certificate=load_pkcs12_file(args.certificate),
        password=args.password,
        issuer_certificate=load_issuer_certificate_file(args.wwdr),
        template_dir=args.template,
        work_root=args.work_root,
        signature_digest=args.digest,
        compression=args.compression,
        template_ignore=settings.pass_template_ignore,
        max_workers=1,
    ) as builder:
        archive = builder.save(document, args.out)

    if archive.cleanup_error is not None:
        logger.warning("Working directory was not fully removed: %s", archive.cleanup_error)
    logger.info("Wrote %s (%s files signed)", args.out, len(archive.manifest))
    return args.out


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    args = parse_args(argv)
    try:
        build(args)
    except PassBuildError as exc:
        logger.error("Pass build failed (%s): %s", exc.code, exc)
        return 1
    except Exception as exc:  # pragma: no cover - safety net
        logger.exception("Unexpected pass build failure: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
