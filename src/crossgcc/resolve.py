"""Resolve an (architecture, flavor, version) request into a pinned BuildConfig."""

from __future__ import annotations

import os

from crossgcc import __version__
from crossgcc.errors import (
    DisallowedCombination,
    DiscontinuedVersion,
    InvalidArchitecture,
    InvalidConfiguration,
    UnsupportedVersion,
)
from crossgcc.models import (
    ARCHITECTURES,
    Arch,
    BuildConfig,
    ComponentPin,
    Flavor,
    GccScheme,
    Overrides,
)
from crossgcc.versions import (
    ARM_SRCREL_FROM,
    BASE_PINS,
    VERSION_TABLE,
    X86_64_VERSION_FLOOR,
    Unsupported,
    VersionRow,
    select_patch,
    supported_versions,
)

TARGET_TRIPLES: dict[Arch, str] = {
    "arm": "arm-linux-gnueabi",
    "arm64": "aarch64-linux-gnu",
    "i686": "i686-linux-gnu",
    "x86_64": "x86_64-linux-gnu",
}

FLAVOR_ALIASES: dict[str, Flavor] = {
    "official": "official",
    "gnu": "official",
    "fork": "fork",
    "linaro": "fork",
}

GENERIC_CONFIGURE_FLAGS = ("--disable-multilib", "--disable-werror")


def resolve(
    arch: str,
    flavor: str,
    version: int | str,
    overrides: Overrides | None = None,
) -> BuildConfig:
    """Validate the request and return the immutable configuration for it.

    All validation happens here, before any filesystem or network access.
    """
    overrides = overrides or Overrides()
    resolved_arch = _validate_arch(arch)
    resolved_flavor = _validate_flavor(flavor)
    major = _parse_version(version, flavor=resolved_flavor)
    _validate_jobs(overrides.jobs)

    if resolved_arch == "x86_64" and major <= X86_64_VERSION_FLOOR:
        raise DisallowedCombination(
            f"Will not build GCC {major} for x86_64; the resulting compiler does not work.",
            hint=f"Use version {X86_64_VERSION_FLOOR + 1} or newer for x86_64.",
            context={"arch": resolved_arch, "version": str(major)},
        )

    row = _lookup_row(resolved_flavor, major)
    components = _pin_components(row, overrides)

    return BuildConfig(
        arch=resolved_arch,
        kernel_arch=kernel_arch_for(resolved_arch),
        target=TARGET_TRIPLES[resolved_arch],
        flavor=resolved_flavor,
        version=major,
        gcc_release=overrides.versions.get("gcc", row.gcc),
        gcc_scheme=_gcc_scheme(resolved_flavor, major),
        components=components,
        patch=select_patch(major),
        configure_flags=_configure_flags(overrides),
        jobs=overrides.jobs if overrides.jobs is not None else default_jobs(),
        native=resolved_arch == overrides.host_arch,
        build_triple=overrides.build_triple,
        isl_source=overrides.isl_source,
        checksums=tuple(sorted(overrides.checksums.items())),
    )


def kernel_arch_for(arch: Arch) -> str:
    # i686 and x86_64 share the kernel's x86 header tree.
    if arch in ("i686", "x86_64"):
        return "x86"
    return arch


def default_jobs() -> int:
    return (os.cpu_count() or 1) + 1


def _validate_arch(arch: str) -> Arch:
    for candidate in ARCHITECTURES:
        if candidate == arch:
            return candidate
    raise InvalidArchitecture(
        "Absent or invalid architecture specified.",
        hint=f"Choose one of: {', '.join(ARCHITECTURES)}.",
        context={"arch": arch},
    )


def _validate_flavor(flavor: str) -> Flavor:
    resolved = FLAVOR_ALIASES.get(flavor)
    if resolved is None:
        raise InvalidConfiguration(
            "Absent or invalid GCC source specified.",
            hint="Choose one of: official (gnu), fork (linaro).",
            context={"flavor": flavor},
        )
    return resolved


def _validate_jobs(jobs: int | None) -> None:
    if jobs is not None and jobs < 1:
        raise InvalidConfiguration(
            "Parallel job count must be at least 1.",
            hint="Pass a positive value to -j/--jobs or omit it to use CPUs + 1.",
            context={"jobs": str(jobs)},
        )


def _parse_version(version: int | str, *, flavor: Flavor) -> int:
    try:
        return int(version)
    except (TypeError, ValueError) as exc:
        raise UnsupportedVersion(
            "Absent or invalid GCC version specified.",
            hint=_supported_hint(flavor),
            context={"flavor": flavor, "version": str(version)},
        ) from exc


def _lookup_row(flavor: Flavor, major: int) -> VersionRow:
    row = VERSION_TABLE.get((flavor, major))
    if row is None:
        raise UnsupportedVersion(
            "Absent or invalid GCC version or source specified.",
            hint=_supported_hint(flavor),
            context={"flavor": flavor, "version": str(major)},
        )
    if isinstance(row, Unsupported):
        raise DiscontinuedVersion(
            row.reason,
            context={"flavor": flavor, "version": str(major)},
        )
    return row


def _supported_hint(flavor: Flavor) -> str:
    versions = ", ".join(str(v) for v in supported_versions(flavor))
    return f"Supported {flavor} versions: {versions}."


def _pin_components(row: VersionRow, overrides: Overrides) -> tuple[ComponentPin, ...]:
    row_pins = {"binutils": row.binutils, "glibc": row.glibc, "isl": row.isl}
    pins: list[ComponentPin] = []
    for name, (base_version, extension) in BASE_PINS.items():
        version = overrides.versions.get(name) or row_pins.get(name) or base_version
        pins.append(ComponentPin(name=name, version=version, extension=extension))
    gcc_version = overrides.versions.get("gcc", row.gcc)
    pins.append(ComponentPin(name="gcc", version=gcc_version, extension=row.gcc_extension))
    return tuple(pins)


def _gcc_scheme(flavor: Flavor, major: int) -> GccScheme:
    if flavor == "official":
        return "gnu-release"
    if major >= ARM_SRCREL_FROM:
        return "arm-srcrel"
    return "linaro-snapshot"


def _configure_flags(overrides: Overrides) -> tuple[str, ...]:
    pkgversion = overrides.pkgversion or f"crossgcc {__version__}"
    flags = [*GENERIC_CONFIGURE_FLAGS, f"--with-pkgversion={pkgversion}"]
    if overrides.bugurl:
        flags.append(f"--with-bugurl={overrides.bugurl}")
    flags.extend(overrides.extra_configure_flags)
    return tuple(flags)
