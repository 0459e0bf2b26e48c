"""Shared error classes for the pass packaging pipeline."""

from __future__ import annotations

from enum import Enum


class BuildStage(str, Enum):
    """Ordered stages of a single pass build."""

    STAGE = "stage"
    MANIFEST = "manifest"
    CREDENTIALS = "credentials"
    SIGN = "sign"
    ASSEMBLE = "assemble"
    CLEANUP = "cleanup"


class CredentialFailure(str, Enum):
    """Why a PKCS#12 container could not be turned into a credential."""

    INVALID_PASSWORD = "invalid_password"
    MALFORMED = "malformed"
    MISSING_COMPONENT = "missing_component"


class PassBuildError(RuntimeError):
    """Base exception raised by the packaging pipeline."""

    default_code = "E_PASS_BUILD"
    default_stage: BuildStage | None = None

    def __init__(
        self,
        message: str,
        code: str | None = None,
        *,
        stage: BuildStage | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code or self.default_code
        self.stage = stage or self.default_stage


class StagingError(PassBuildError):
    """Raised when the working bundle cannot be created or populated."""

    default_code = "E_STAGING_FAILED"
    default_stage = BuildStage.STAGE


class ManifestError(PassBuildError):
    """Raised when a staged file cannot be listed or read for hashing."""

    default_code = "E_MANIFEST_FAILED"
    default_stage = BuildStage.MANIFEST


class CredentialError(PassBuildError):
    """Raised when signing material cannot be extracted from a PKCS#12 bundle."""

    default_stage = BuildStage.CREDENTIALS

    def __init__(self, message: str, reason: CredentialFailure) -> None:
        super().__init__(message, code=f"E_CREDENTIAL_{reason.name}")
        self.reason = reason


class SignatureError(PassBuildError):
    """Raised when the detached manifest signature cannot be produced."""

    default_code = "E_SIGNATURE_FAILED"
    default_stage = BuildStage.SIGN


class ArchiveError(PassBuildError):
    """Raised when the bundle cannot be zipped into an archive."""

    default_code = "E_ARCHIVE_FAILED"
    default_stage = BuildStage.ASSEMBLE


class BundleIOError(PassBuildError):
    """Raised for filesystem failures that do not belong to a single stage."""

    default_code = "E_BUNDLE_IO"


class BundleStateError(PassBuildError):
    """Raised when a bundle operation is attempted out of stage order."""

    default_code = "E_BUNDLE_STATE"


class BuildCancelledError(PassBuildError):
    """Raised at a stage boundary once a build has been cancelled."""

    default_code = "E_BUILD_CANCELLED"
