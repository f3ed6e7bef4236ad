"""Orchestrate GCC cross toolchain builds for Linux targets."""

__version__ = "0.1.0"

from crossgcc.bootstrap import Bootstrap, interrupt_guard  # noqa: E402
from crossgcc.errors import (  # noqa: E402
    BuildAborted,
    DisallowedCombination,
    DiscontinuedVersion,
    ErrorCode,
    ExtractError,
    FetchError,
    HelperBuildError,
    InvalidArchitecture,
    InvalidConfiguration,
    PatchError,
    PolicyError,
    PostBuildVerificationFailure,
    StageFailure,
    ToolchainError,
    UnsupportedVersion,
    WorkspaceError,
    WorkspaceNotClean,
)
from crossgcc.models import (  # noqa: E402
    BuildConfig,
    BuildOptions,
    BuildReport,
    Overrides,
    Workspace,
)
from crossgcc.observability import StructuredLogger  # noqa: E402
from crossgcc.policy import Policy  # noqa: E402
from crossgcc.resolve import resolve  # noqa: E402
from crossgcc.runner import CommandResult, RecordingRunner, SubprocessRunner  # noqa: E402

__all__ = [
    "Bootstrap",
    "BuildAborted",
    "BuildConfig",
    "BuildOptions",
    "BuildReport",
    "CommandResult",
    "DisallowedCombination",
    "DiscontinuedVersion",
    "ErrorCode",
    "ExtractError",
    "FetchError",
    "HelperBuildError",
    "InvalidArchitecture",
    "InvalidConfiguration",
    "Overrides",
    "PatchError",
    "Policy",
    "PolicyError",
    "PostBuildVerificationFailure",
    "RecordingRunner",
    "StageFailure",
    "StructuredLogger",
    "SubprocessRunner",
    "ToolchainError",
    "UnsupportedVersion",
    "Workspace",
    "WorkspaceError",
    "WorkspaceNotClean",
    "__version__",
    "interrupt_guard",
    "resolve",
]
