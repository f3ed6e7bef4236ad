"""Declarative version table for every supported (flavor, major version) pair."""

from __future__ import annotations

from dataclasses import dataclass

from crossgcc.models import Extension, Flavor

# Pins used unless a table row overrides them.
BASE_PINS: dict[str, tuple[str, Extension]] = {
    "binutils": ("2.36.1", "lz"),
    "gmp": ("6.2.1", "lz"),
    "mpfr": ("4.1.0", "xz"),
    "mpc": ("1.2.1", "gz"),
    "isl": ("0.24", "xz"),
    "glibc": ("2.33", "xz"),
    "linux": ("5.12", "xz"),
}

# Fork releases from this major version on are published by Arm as
# source snapshots instead of Linaro git tarballs.
ARM_SRCREL_FROM = 8

# Versions at or below this floor produce a non-functional x86_64 compiler.
X86_64_VERSION_FLOOR = 5


@dataclass(frozen=True, slots=True)
class VersionRow:
    gcc: str
    gcc_extension: Extension = "xz"
    binutils: str | None = None
    glibc: str | None = None
    isl: str | None = None


@dataclass(frozen=True, slots=True)
class Unsupported:
    reason: str


VERSION_TABLE: dict[tuple[Flavor, int], VersionRow | Unsupported] = {
    ("official", 4): VersionRow(
        gcc="4.9.4", gcc_extension="gz", binutils="2.29.1", glibc="2.26", isl="0.17.1"
    ),
    ("official", 5): VersionRow(gcc="5.5.0", glibc="2.27", isl="0.17.1"),
    ("official", 6): VersionRow(gcc="6.5.0"),
    ("official", 7): VersionRow(gcc="7.5.0"),
    ("official", 8): VersionRow(gcc="8.5.0"),
    ("official", 9): VersionRow(gcc="9.3.0"),
    ("official", 10): VersionRow(gcc="10.3.0"),
    ("official", 11): VersionRow(gcc="11.1.0"),
    ("official", 12): Unsupported(
        "GCC 12.0 is currently a work in progress so there is no tarball to download."
    ),
    ("fork", 4): VersionRow(
        gcc="linaro-4.9-2017.01", gcc_extension="gz", glibc="2.27", isl="0.17.1"
    ),
    ("fork", 5): VersionRow(
        gcc="linaro-5.5-2017.10", gcc_extension="gz", glibc="2.27", isl="0.17.1"
    ),
    ("fork", 6): VersionRow(gcc="linaro-6.5-2018.12", gcc_extension="gz"),
    ("fork", 7): VersionRow(gcc="linaro-7.5-2019.12", gcc_extension="gz"),
    ("fork", 8): VersionRow(gcc="8.3-2019.03"),
    ("fork", 9): VersionRow(gcc="9.2-2019.12"),
    ("fork", 10): VersionRow(gcc="10.2-2020.11"),
    ("fork", 11): Unsupported("There is no such thing as a Linaro 11.x release."),
    ("fork", 12): Unsupported("There is no such thing as a Linaro 12.x release."),
}


def supported_versions(flavor: Flavor) -> tuple[int, ...]:
    return tuple(
        sorted(
            version
            for (row_flavor, version), row in VERSION_TABLE.items()
            if row_flavor == flavor and isinstance(row, VersionRow)
        )
    )


def select_patch(version: int) -> str:
    """Return the gcc source patch that fixes system-header visibility for *version*."""
    if version == 4:
        # asan: 'SIGSEGV' was not declared in this scope
        return "942-asan-fix-missing-include-signal-h"
    if 6 <= version <= 8:
        # 'PATH_MAX' undeclared here (not in a function)
        return "GCC_6-8"
    if version == 9:
        return "GCC_9"
    return "GCC_10_up"
