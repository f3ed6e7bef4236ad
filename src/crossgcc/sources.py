"""Source archive acquisition and extraction.

Archives are cached under ``<root>/sources``; a file already present there is
never downloaded again. Extracted trees land next to the install directory
under a canonical name (``binutils``, ``gcc``, ``linux``, ``<name>-<version>``).
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path

from crossgcc.errors import ExtractError
from crossgcc.fetch.http import Downloader, fetch_url
from crossgcc.models import COMPONENTS, BuildConfig, CachedArtifact
from crossgcc.observability import StructuredLogger
from crossgcc.policy import Policy
from crossgcc.runner import CommandRunner

# Decompressors are the parallel helpers from crossgcc.helpers.
DECOMPRESSORS: dict[str, str] = {
    "gz": "pigz",
    "lz": "plzip",
    "xz": "pxz",
}

GNU_MIRROR = "https://ftp.gnu.org/gnu"

URL_TEMPLATES: dict[str, str] = {
    "mpfr": "https://www.mpfr.org/mpfr-{version}/{filename}",
    "gmp": GNU_MIRROR + "/gmp/{filename}",
    "mpc": GNU_MIRROR + "/mpc/{filename}",
    "glibc": GNU_MIRROR + "/glibc/{filename}",
    "binutils": GNU_MIRROR + "/binutils/{filename}",
    "isl": "https://libisl.sourceforge.io/{filename}",
    "linux": "https://cdn.kernel.org/pub/linux/kernel/v{major}.x/{filename}",
}

# Components extracted to an unversioned directory name.
UNVERSIONED_DIRS = ("binutils", "linux", "gcc")


@dataclass(frozen=True, slots=True)
class ArchiveSpec:
    component: str
    version: str
    filename: str
    url: str
    source_dir: str
    member: str | None = None


def decompressor_for(archive: Path) -> str:
    """Return the decompression tool bound to *archive*'s extension."""
    extension = archive.suffix.lstrip(".")
    if extension not in DECOMPRESSORS:
        raise ValueError(f"No decompressor is registered for {archive.name!r}.")
    return DECOMPRESSORS[extension]


def archive_spec(component: str, config: BuildConfig) -> ArchiveSpec:
    if component == "gcc":
        return _gcc_archive_spec(config)
    if component not in URL_TEMPLATES:
        raise ValueError(f"Unknown component {component!r}.")
    pin = config.pin(component)
    filename = f"{component}-{pin.version}.tar.{pin.extension}"
    url = URL_TEMPLATES[component].format(
        version=pin.version,
        filename=filename,
        major=pin.version.split(".")[0],
    )
    source_dir = component if component in UNVERSIONED_DIRS else f"{component}-{pin.version}"
    return ArchiveSpec(
        component=component,
        version=pin.version,
        filename=filename,
        url=url,
        source_dir=source_dir,
    )


def _gcc_archive_spec(config: BuildConfig) -> ArchiveSpec:
    # The only place that knows how each gcc source flavor is published.
    release = config.gcc_release
    extension = config.pin("gcc").extension
    if config.gcc_scheme == "gnu-release":
        filename = f"gcc-{release}.tar.{extension}"
        url = f"https://mirrors.kernel.org/gnu/gcc/gcc-{release}/{filename}"
        member = None
    elif config.gcc_scheme == "linaro-snapshot":
        filename = f"gcc-{release}.tar.{extension}"
        url = f"https://git.linaro.org/toolchain/gcc.git/snapshot/{filename}"
        member = None
    else:
        # Arm's snapshot bundles other GNU tools; only the gcc tree is extracted
        # and its top-level directory is renamed instead of stripped.
        member = f"gcc-arm-src-snapshot-{release}"
        filename = f"{member}.tar.{extension}"
        url = (
            "https://developer.arm.com/-/media/Files/downloads/gnu-a/"
            f"{release}/srcrel/{filename}"
        )
    return ArchiveSpec(
        component="gcc",
        version=release,
        filename=filename,
        url=url,
        source_dir="gcc",
        member=member,
    )


@dataclass(slots=True)
class SourceManager:
    root: Path
    runner: CommandRunner
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    policy: Policy = field(default_factory=Policy)
    downloader: Downloader = fetch_url

    @property
    def sources_dir(self) -> Path:
        return self.root / "sources"

    def required_components(self, config: BuildConfig) -> tuple[str, ...]:
        if config.isl_source is not None:
            return tuple(name for name in COMPONENTS if name != "isl")
        return COMPONENTS

    def artifact(self, component: str, config: BuildConfig) -> CachedArtifact:
        spec = archive_spec(component, config)
        return CachedArtifact(
            component=component,
            version=spec.version,
            archive=self.sources_dir / spec.filename,
        )

    def ensure(self, component: str, config: BuildConfig) -> Path:
        """Return the local archive for *component*, downloading it only if missing.

        A cached archive is still handed to the downloader when a checksum is
        pinned or the policy requires one, so it is verified before reuse.
        """
        spec = archive_spec(component, config)
        archive = self.sources_dir / spec.filename
        checksum = config.checksum_for(component)
        trusted = checksum is None and not self.policy.require_integrity
        if archive.is_file() and trusted:
            self.logger.log(
                operation="fetch",
                component=component,
                message=f"Using cached {spec.filename}.",
                extra={"cache_hit": True},
            )
            return archive
        if not archive.is_file():
            self.logger.header(f"DOWNLOADING {component.upper()} {spec.version}")
        return self.downloader(spec.url, archive, sha256=checksum, policy=self.policy)

    def ensure_all(self, config: BuildConfig) -> dict[str, CachedArtifact]:
        self.sources_dir.mkdir(parents=True, exist_ok=True)
        artifacts: dict[str, CachedArtifact] = {}
        for component in self.required_components(config):
            archive = self.ensure(component, config)
            artifacts[component] = CachedArtifact(
                component=component,
                version=archive_spec(component, config).version,
                archive=archive,
            )
        return artifacts

    def extract(self, archive: Path, destination: Path, *, member: str | None = None) -> Path:
        """Unpack *archive* into *destination*.

        Without *member* the single top-level directory is stripped. With
        *member* only that top-level directory is extracted and then renamed
        to *destination*. tar writes into a sibling staging directory that is
        renamed into place only after a complete extraction, so a failed or
        interrupted run never leaves a partial tree under *destination*.
        """
        tool = decompressor_for(archive)
        staging = destination.with_name(f".{destination.name}.partial")
        if staging.exists():
            shutil.rmtree(staging)
        staging.mkdir(parents=True)
        argv = [
            "tar",
            f"--use-compress-program={tool}",
            "-xf",
            str(archive),
            "-C",
            str(staging),
            "--strip-components=1" if member is None else member,
        ]

        try:
            result = self.runner.run(argv)
            if not result.ok:
                raise ExtractError(
                    "Failed to extract archive.",
                    hint="Delete the cached archive if it is corrupt and rerun.",
                    context={
                        "operation": "extract",
                        "archive": str(archive),
                        "returncode": str(result.returncode),
                        "stderr": result.stderr_excerpt(),
                    },
                )

            tree = staging if member is None else staging / member
            if member is not None and not tree.is_dir():
                raise ExtractError(
                    "Archive did not contain the expected top-level directory.",
                    context={"operation": "extract", "archive": str(archive), "member": member},
                )
            if not _non_empty_dir(tree):
                raise ExtractError(
                    "Extraction produced an empty source directory.",
                    context={
                        "operation": "extract",
                        "archive": str(archive),
                        "destination": str(destination),
                    },
                )
            if _non_empty_dir(destination) or destination.is_symlink():
                raise ExtractError(
                    "Refusing to replace an existing source directory.",
                    context={"operation": "extract", "destination": str(destination)},
                )
            if destination.is_dir():
                destination.rmdir()
            tree.rename(destination)
        finally:
            if staging.exists():
                shutil.rmtree(staging)
        return destination

    def extract_all(
        self,
        config: BuildConfig,
        artifacts: dict[str, CachedArtifact],
    ) -> dict[str, Path]:
        self.logger.header("EXTRACTING DOWNLOADED TARBALLS")
        sources: dict[str, Path] = {}
        for component, artifact in artifacts.items():
            spec = archive_spec(component, config)
            destination = self.root / spec.source_dir
            if spec.source_dir not in UNVERSIONED_DIRS and _non_empty_dir(destination):
                self.logger.log(
                    operation="extract",
                    component=component,
                    message=f"Reusing extracted {spec.source_dir}.",
                    extra={"cache_hit": True},
                )
                sources[component] = destination
                continue
            self.logger.log(
                operation="extract",
                component=component,
                message=f"Extracting {artifact.archive.name}.",
            )
            sources[component] = self.extract(artifact.archive, destination, member=spec.member)
        if config.isl_source is not None:
            sources["isl"] = config.isl_source
        return sources

    def source_layout(self, config: BuildConfig) -> dict[str, Path]:
        """Where extraction puts each component, without touching the disk."""
        layout = {
            name: self.root / archive_spec(name, config).source_dir
            for name in self.required_components(config)
        }
        if config.isl_source is not None:
            layout["isl"] = config.isl_source
        return layout

    def extracted_dirs(
        self,
        config: BuildConfig,
        *,
        run_local_only: bool = False,
    ) -> tuple[Path, ...]:
        """Directories extraction creates for *config*.

        Unversioned trees (``binutils``, ``gcc``, ``linux``) are run-local: their
        names do not say which version they hold, so they must never be reused.
        """
        dirs: list[Path] = []
        for name in self.required_components(config):
            spec = archive_spec(name, config)
            if run_local_only and spec.source_dir not in UNVERSIONED_DIRS:
                continue
            dirs.append(self.root / spec.source_dir)
        return tuple(dirs)


def _non_empty_dir(path: Path) -> bool:
    return path.is_dir() and any(path.iterdir())
