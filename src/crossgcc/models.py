"""Core typed dataclasses for build configuration, workspace, and results."""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import cbor2

Arch = Literal["arm", "arm64", "i686", "x86_64"]
Flavor = Literal["official", "fork"]
Compression = Literal["gz", "xz"]
Extension = Literal["gz", "lz", "xz"]
GccScheme = Literal["gnu-release", "linaro-snapshot", "arm-srcrel"]

ARCHITECTURES: tuple[Arch, ...] = ("arm", "arm64", "i686", "x86_64")
FLAVORS: tuple[Flavor, ...] = ("official", "fork")
COMPRESSIONS: tuple[Compression, ...] = ("gz", "xz")

# Upstream components in download order; gcc is resolved separately.
COMPONENTS = ("mpfr", "gmp", "mpc", "glibc", "linux", "binutils", "isl", "gcc")

# Staged components that get a scratch build directory.
STAGED_COMPONENTS = ("binutils", "gcc", "glibc")

CONFIG_SCHEMA_VERSION = 1


@dataclass(frozen=True, slots=True)
class ComponentPin:
    name: str
    version: str
    extension: Extension


@dataclass(frozen=True, slots=True)
class Overrides:
    """Explicit caller overrides applied on top of the version table."""

    jobs: int | None = None
    versions: Mapping[str, str] = field(default_factory=dict)
    host_arch: Arch = "x86_64"
    build_triple: str | None = None
    isl_source: Path | None = None
    checksums: Mapping[str, str] = field(default_factory=dict)
    pkgversion: str | None = None
    bugurl: str | None = None
    extra_configure_flags: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class BuildConfig:
    """Fully resolved, immutable build configuration.

    Produced once by :func:`crossgcc.resolve.resolve` and threaded through
    every later component. Nothing downstream re-derives these values from
    raw inputs.
    """

    arch: Arch
    kernel_arch: str
    target: str
    flavor: Flavor
    version: int
    gcc_release: str
    gcc_scheme: GccScheme
    components: tuple[ComponentPin, ...]
    patch: str
    configure_flags: tuple[str, ...]
    jobs: int
    native: bool
    build_triple: str | None = None
    isl_source: Path | None = None
    checksums: tuple[tuple[str, str], ...] = ()

    def pin(self, name: str) -> ComponentPin:
        for component in self.components:
            if component.name == name:
                return component
        raise KeyError(name)

    def version_of(self, name: str) -> str:
        return self.pin(name).version

    def checksum_for(self, name: str) -> str | None:
        return dict(self.checksums).get(name)

    @property
    def make_jobs(self) -> str:
        return f"-j{self.jobs}"

    def to_payload(self) -> dict[str, object]:
        return {
            "schema_version": CONFIG_SCHEMA_VERSION,
            "arch": self.arch,
            "kernel_arch": self.kernel_arch,
            "target": self.target,
            "flavor": self.flavor,
            "version": self.version,
            "gcc_release": self.gcc_release,
            "gcc_scheme": self.gcc_scheme,
            "components": [
                {"name": pin.name, "version": pin.version, "extension": pin.extension}
                for pin in self.components
            ],
            "patch": self.patch,
            "configure_flags": list(self.configure_flags),
            "jobs": self.jobs,
            "native": self.native,
            "build_triple": self.build_triple,
            "isl_source": str(self.isl_source) if self.isl_source is not None else None,
            "checksums": dict(sorted(self.checksums)),
        }

    def to_cbor(self) -> bytes:
        return cbor2.dumps(self.to_payload(), canonical=True)

    def digest(self) -> str:
        return hashlib.sha256(self.to_cbor()).hexdigest()


@dataclass(frozen=True, slots=True)
class BuildOptions:
    """Run-level switches that do not change what gets built."""

    use_tmpfs: bool = True
    compression: Compression | None = None
    verbose: bool = False
    patches_dir: Path | None = None
    report_path: Path | None = None
    clean: bool = False


@dataclass(frozen=True, slots=True)
class CachedArtifact:
    """A downloaded archive and, once extracted, its source directory.

    Existence of ``archive`` on disk is the only cache key.
    """

    component: str
    version: str
    archive: Path
    source_dir: Path | None = None

    @property
    def cached(self) -> bool:
        return self.archive.is_file()


@dataclass(slots=True)
class Workspace:
    root: Path
    target: str
    sources: dict[str, Path]
    build_dirs: dict[str, Path]
    install_dir: Path
    ephemeral: bool = False

    @property
    def sysroot(self) -> Path:
        return self.install_dir / self.target

    @property
    def bin_dir(self) -> Path:
        return self.install_dir / "bin"

    def build_dir(self, component: str) -> Path:
        return self.build_dirs[component]

    def source(self, component: str) -> Path:
        return self.sources[component]


@dataclass(frozen=True, slots=True)
class BuildReport:
    duration_seconds: int
    gcc_version: str
    install_dir: Path
    config_digest: str
    stages: tuple[str, ...] = ()
    package_path: Path | None = None
    package_size: int | None = None

    def to_payload(self) -> dict[str, object]:
        return {
            "duration_seconds": self.duration_seconds,
            "gcc_version": self.gcc_version,
            "install_dir": str(self.install_dir),
            "config_digest": self.config_digest,
            "stages": list(self.stages),
            "package_path": str(self.package_path) if self.package_path is not None else None,
            "package_size": self.package_size,
        }
