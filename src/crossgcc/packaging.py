"""Packaging of the finished install tree and the end-of-run report."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from crossgcc.errors import PostBuildVerificationFailure
from crossgcc.models import BuildConfig, BuildReport, Compression, Workspace
from crossgcc.observability import StructuredLogger
from crossgcc.runner import CommandRunner

# Compression helper and the environment knob it reads for its level.
PACKAGERS: dict[Compression, tuple[str, str]] = {
    "gz": ("pigz", "GZ_OPT"),
    "xz": ("pxz", "XZ_OPT"),
}

# Published artifact names keep the upstream project names.
FLAVOR_LABELS = {"official": "gnu", "fork": "linaro"}

SIZE_UNITS = ("B", "K", "M", "G", "T")


def package_name(config: BuildConfig, compression: Compression, now: datetime) -> str:
    stamp = now.astimezone(timezone.utc).strftime("%Y%m%d")
    label = FLAVOR_LABELS[config.flavor]
    return f"{config.target}-{config.version}.x-{label}-{stamp}.tar.{compression}"


def compiler_path(workspace: Workspace) -> Path:
    return workspace.bin_dir / f"{workspace.target}-gcc"


def verify_install(workspace: Workspace) -> Path:
    """Return the installed compiler, failing if the pipeline did not produce it."""
    compiler = compiler_path(workspace)
    if not compiler.is_file():
        raise PostBuildVerificationFailure(
            "Toolchain compiler binary is missing after the build.",
            hint="Rerun with --verbose to inspect the final gcc install step.",
            context={"operation": "verify", "expected": str(compiler)},
        )
    return compiler


def query_gcc_version(compiler: Path, runner: CommandRunner) -> str:
    result = runner.capture([str(compiler), "--version"])
    if not result.ok:
        raise PostBuildVerificationFailure(
            "Freshly built compiler does not run.",
            context={
                "operation": "verify",
                "command": result.command,
                "returncode": str(result.returncode),
                "stderr": result.stderr_excerpt(),
            },
        )
    lines = result.stdout.splitlines()
    return lines[0].strip() if lines else ""


def package_toolchain(
    workspace: Workspace,
    config: BuildConfig,
    compression: Compression,
    *,
    runner: CommandRunner,
    logger: StructuredLogger,
    now: datetime,
) -> Path:
    if compression not in PACKAGERS:
        raise ValueError(f"Unsupported compression {compression!r}.")
    tool, level_var = PACKAGERS[compression]
    package = workspace.root / package_name(config, compression, now)

    logger.header("PACKAGING TOOLCHAIN")
    logger.log(operation="package", message=f"Target file: {package.name}")
    result = runner.run(
        [
            "tar",
            "-c",
            f"--use-compress-program={tool}",
            "-f",
            str(package),
            workspace.target,
        ],
        cwd=workspace.root,
        env={level_var: "-9"},
    )
    if not result.ok or not package.is_file():
        package.unlink(missing_ok=True)
        raise PostBuildVerificationFailure(
            "Failed to package the toolchain.",
            hint=f"Check that {tool} is available under prebuilts/bin.",
            context={
                "operation": "package",
                "package": str(package),
                "returncode": str(result.returncode),
                "stderr": result.stderr_excerpt(),
            },
        )
    return package


def format_duration(seconds: int) -> str:
    """Render *seconds* the way the build banner reports it.

    >>> format_duration(3723)
    '1 HOUR, 2 MINUTES, AND 3 SECONDS'
    >>> format_duration(61)
    '1 MINUTE AND 1 SECOND'
    """
    minutes, secs = divmod(max(int(seconds), 0), 60)
    hours, minutes = divmod(minutes, 60)
    parts = []
    if hours:
        parts.append("1 HOUR" if hours == 1 else f"{hours} HOURS")
    parts.append("1 MINUTE" if minutes == 1 else f"{minutes} MINUTES")
    tail = "1 SECOND" if secs == 1 else f"{secs} SECONDS"
    joiner = ", AND " if hours else " AND "
    return ", ".join(parts) + joiner + tail


def format_size(size: int) -> str:
    """Human-readable size with one decimal below 10 units, like ``du -h``."""
    value = float(size)
    for unit in SIZE_UNITS:
        if value < 1024 or unit == SIZE_UNITS[-1]:
            break
        value /= 1024
    if unit == "B":
        return f"{int(value)}{unit}"
    if value < 10:
        return f"{value:.1f}{unit}"
    return f"{value:.0f}{unit}"


def render_report(report: BuildReport) -> list[str]:
    lines = [
        f"Script duration: {format_duration(report.duration_seconds)}",
        f"GCC version: {report.gcc_version}",
    ]
    if report.package_path is not None:
        lines.append(f"File location: {report.package_path}")
        if report.package_size is not None:
            lines.append(f"File size: {format_size(report.package_size)}")
    else:
        lines.append(f"Toolchain location: {report.install_dir}")
    return lines


def write_report(report: BuildReport, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(report.to_payload(), indent=2, sort_keys=True)
    path.write_text(payload + "\n", encoding="utf-8")
    return path
