"""Command line interface.

Usage:
    crossgcc -a arm64 -s gnu -v 10
    crossgcc -a x86_64 -s linaro -v 9 -p xz --no-tmpfs
    crossgcc -a arm -s gnu -v 11 --plan
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path

from crossgcc import __version__
from crossgcc.bootstrap import Bootstrap
from crossgcc.errors import BuildAborted, InvalidConfiguration, ToolchainError
from crossgcc.models import ARCHITECTURES, COMPRESSIONS, BuildConfig, BuildOptions, Overrides
from crossgcc.observability import StructuredLogger
from crossgcc.policy import Policy
from crossgcc.resolve import FLAVOR_ALIASES, resolve
from crossgcc.runner import SubprocessRunner
from crossgcc.stages import Stage

EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_ABORTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crossgcc",
        description="Build a GCC cross toolchain for Linux targets.",
    )
    parser.add_argument(
        "-a",
        "--arch",
        required=True,
        choices=ARCHITECTURES,
        help="Target architecture",
    )
    parser.add_argument(
        "-s",
        "--source",
        required=True,
        choices=tuple(FLAVOR_ALIASES),
        help="Where GCC comes from: gnu/official releases or linaro/fork snapshots",
    )
    parser.add_argument(
        "-v",
        "--version",
        dest="gcc_version",
        required=True,
        help="GCC major version",
    )
    parser.add_argument("-j", "--jobs", type=int, help="Parallel jobs for make (default: CPUs + 1)")
    parser.add_argument(
        "-nt",
        "--no-tmpfs",
        dest="use_tmpfs",
        action="store_false",
        help="Do not back the build directories with tmpfs",
    )
    parser.add_argument(
        "-p",
        "--package",
        choices=COMPRESSIONS,
        help="Compress the finished toolchain",
    )
    parser.add_argument("-V", "--verbose", action="store_true", help="Show build system output")
    parser.add_argument("--root", type=Path, default=Path.cwd(), help="Working directory tree")
    parser.add_argument("--patches-dir", type=Path, help="Directory holding the gcc patches")
    parser.add_argument("--report", type=Path, help="Write the final report as JSON")
    parser.add_argument(
        "--clean",
        action="store_true",
        help="Remove leftovers from an earlier run first",
    )
    parser.add_argument(
        "--plan",
        action="store_true",
        help="Print the resolved build plan and exit",
    )
    parser.add_argument("--offline", action="store_true", help="Never touch the network")
    parser.add_argument(
        "--sha256",
        action="append",
        default=[],
        metavar="COMPONENT=DIGEST",
        help="Verify a component archive against a sha256 digest",
    )
    parser.add_argument("--isl-source", type=Path, help="Use an already extracted isl tree")
    parser.add_argument("--about", action="version", version=f"%(prog)s {__version__}")
    return parser


def _parse_checksums(parser: argparse.ArgumentParser, entries: Sequence[str]) -> dict[str, str]:
    checksums: dict[str, str] = {}
    for entry in entries:
        name, sep, digest = entry.partition("=")
        if not sep or not name or not digest:
            parser.error(f"--sha256 expects COMPONENT=DIGEST, got {entry!r}")
        checksums[name] = digest.lower()
    return checksums


def _echo(line: str) -> None:
    print(line, flush=True)


def format_plan(config: BuildConfig, stages: Sequence[Stage]) -> list[str]:
    lines = [
        f"target:       {config.target}",
        f"kernel arch:  {config.kernel_arch}",
        f"gcc:          {config.gcc_release} ({config.gcc_scheme})",
        f"patch:        {config.patch}",
        f"branch:       {'native' if config.native else 'cross'}",
        f"jobs:         {config.jobs}",
        f"config:       {config.digest()}",
        "components:",
    ]
    lines.extend(f"  {pin.name:<10}{pin.version} ({pin.extension})" for pin in config.components)
    lines.append("stages:")
    for index, stage in enumerate(stages, start=1):
        lines.append(f"  {index:>2}. {stage.name} [{stage.phase}]")
        lines.append(f"      {' '.join(stage.argv)}")
    return lines


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    overrides = Overrides(
        jobs=args.jobs,
        isl_source=args.isl_source.absolute() if args.isl_source else None,
        checksums=_parse_checksums(parser, args.sha256),
    )
    try:
        config = resolve(args.arch, args.source, args.gcc_version, overrides)
    except InvalidConfiguration as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_USAGE

    options = BuildOptions(
        use_tmpfs=args.use_tmpfs,
        compression=args.package,
        verbose=args.verbose,
        patches_dir=args.patches_dir.absolute() if args.patches_dir else None,
        report_path=args.report,
        clean=args.clean,
    )
    policy = Policy(network_mode="offline" if args.offline else "online")
    logger = StructuredLogger(echo=_echo)
    bootstrap = Bootstrap(
        config=config,
        root=args.root,
        runner=SubprocessRunner(verbose=args.verbose),
        options=options,
        logger=logger,
        policy=policy,
    )

    if args.plan:
        for line in format_plan(config, bootstrap.plan()):
            print(line)
        return 0

    try:
        bootstrap.run()
    except BuildAborted as exc:
        print(f"\n{exc.message}", file=sys.stderr)
        return EXIT_ABORTED
    except ToolchainError as exc:
        logger.header("BUILD FAILED")
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FAILURE
    return 0
