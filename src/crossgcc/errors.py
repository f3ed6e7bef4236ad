"""Typed error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers used across the build pipeline."""

    INVALID_CONFIGURATION = "E_INVALID_CONFIGURATION"
    WORKSPACE_NOT_CLEAN = "E_WORKSPACE_NOT_CLEAN"
    WORKSPACE = "E_WORKSPACE"
    FETCH = "E_FETCH"
    EXTRACT = "E_EXTRACT"
    PATCH = "E_PATCH"
    HELPER_BUILD = "E_HELPER_BUILD"
    STAGE_FAILURE = "E_STAGE_FAILURE"
    VERIFICATION = "E_VERIFICATION"
    ABORTED = "E_ABORTED"
    POLICY = "E_POLICY"


class ToolchainError(Exception):
    """Base error class that carries code, optional hint, and context."""

    code: str
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})

    @property
    def message(self) -> str:
        return super().__str__()

    def __str__(self) -> str:
        parts = [self.message]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            for k, v in self.context.items():
                if v:
                    parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class InvalidConfiguration(ToolchainError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            message, code=ErrorCode.INVALID_CONFIGURATION, hint=hint, context=context
        )


class InvalidArchitecture(InvalidConfiguration):
    """The requested target architecture is not one we know how to build for."""


class UnsupportedVersion(InvalidConfiguration):
    """No table row exists for the requested (flavor, version) pair."""


class DiscontinuedVersion(InvalidConfiguration):
    """The table row exists but is an explicit sentinel with its own reason."""


class DisallowedCombination(InvalidConfiguration):
    """The architecture refuses versions known to produce a broken compiler."""


class WorkspaceNotClean(ToolchainError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.WORKSPACE_NOT_CLEAN, hint=hint, context=context)


class WorkspaceError(ToolchainError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.WORKSPACE, hint=hint, context=context)


class FetchError(ToolchainError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.FETCH, hint=hint, context=context)


class ExtractError(ToolchainError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.EXTRACT, hint=hint, context=context)


class PatchError(ToolchainError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.PATCH, hint=hint, context=context)


class HelperBuildError(ToolchainError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.HELPER_BUILD, hint=hint, context=context)


class StageFailure(ToolchainError):
    stage: str

    def __init__(
        self,
        message: str,
        *,
        stage: str,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        merged = {"stage": stage, **dict(context or {})}
        super().__init__(message, code=ErrorCode.STAGE_FAILURE, hint=hint, context=merged)
        self.stage = stage


class PostBuildVerificationFailure(ToolchainError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.VERIFICATION, hint=hint, context=context)


class BuildAborted(ToolchainError):
    signal_name: str

    def __init__(
        self,
        message: str,
        *,
        signal_name: str,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        merged = {"signal": signal_name, **dict(context or {})}
        super().__init__(message, code=ErrorCode.ABORTED, hint=hint, context=merged)
        self.signal_name = signal_name


class PolicyError(ToolchainError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.POLICY, hint=hint, context=context)


__all__ = [
    "BuildAborted",
    "DisallowedCombination",
    "DiscontinuedVersion",
    "ErrorCode",
    "ExtractError",
    "FetchError",
    "HelperBuildError",
    "InvalidArchitecture",
    "InvalidConfiguration",
    "PatchError",
    "PolicyError",
    "PostBuildVerificationFailure",
    "StageFailure",
    "ToolchainError",
    "UnsupportedVersion",
    "WorkspaceError",
    "WorkspaceNotClean",
]
