"""Build and cache the parallel compression helpers.

pigz, pxz and plzip (built against lzlib) are needed to unpack the source
archives quickly and to package the finished toolchain. Each one is built at
most once: the installed product under ``<root>/prebuilts`` is the cache, and
it is only written after the build succeeded.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from crossgcc.errors import HelperBuildError
from crossgcc.fetch.git import sync_checkout
from crossgcc.fetch.http import Downloader, fetch_url
from crossgcc.observability import StructuredLogger
from crossgcc.policy import Policy
from crossgcc.runner import CommandRunner

SAVANNAH_LZIP = "https://download.savannah.gnu.org/releases/lzip"


@dataclass(frozen=True, slots=True)
class HelperSpec:
    name: str
    kind: Literal["git", "tarball"]
    source: str
    product: str
    release: str | None = None
    requires: tuple[str, ...] = ()
    configure_args: tuple[str, ...] = ()


HELPERS: dict[str, HelperSpec] = {
    "pigz": HelperSpec(
        name="pigz",
        kind="git",
        source="https://github.com/madler/pigz",
        product="bin/pigz",
    ),
    "pxz": HelperSpec(
        name="pxz",
        kind="git",
        source="https://github.com/krasCGQ/pxz",
        product="bin/pxz",
    ),
    "lzlib": HelperSpec(
        name="lzlib",
        kind="tarball",
        source=f"{SAVANNAH_LZIP}/lzlib/lzlib-1.12.tar.gz",
        release="lzlib-1.12",
        product="lib/liblz.a",
    ),
    "plzip": HelperSpec(
        name="plzip",
        kind="tarball",
        source=f"{SAVANNAH_LZIP}/plzip/plzip-1.9.tar.gz",
        release="plzip-1.9",
        product="bin/plzip",
        requires=("lzlib",),
        configure_args=("CXXFLAGS=-Wall -W -O2 -I{prefix}/include -L{prefix}/lib",),
    ),
}


@dataclass(slots=True)
class HelperBootstrapper:
    root: Path
    jobs: int
    runner: CommandRunner
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    policy: Policy = field(default_factory=Policy)
    downloader: Downloader = fetch_url
    _resolved: dict[str, Path] = field(init=False, default_factory=dict, repr=False)

    @property
    def prebuilts_dir(self) -> Path:
        return self.root / "prebuilts"

    @property
    def bin_dir(self) -> Path:
        return self.prebuilts_dir / "bin"

    @property
    def sources_dir(self) -> Path:
        return self.root / "sources"

    def ensure(self, name: str) -> Path:
        """Return the cached product for helper *name*, building it on first use."""
        if name in self._resolved:
            return self._resolved[name]
        if name not in HELPERS:
            raise ValueError(f"Unknown helper tool {name!r}.")
        spec = HELPERS[name]
        for dependency in spec.requires:
            self.ensure(dependency)

        product = self.prebuilts_dir / spec.product
        if product.exists():
            self.logger.log(
                operation="helper",
                component=name,
                message=f"Using cached {spec.product}.",
                extra={"cache_hit": True},
            )
        else:
            self.logger.header(f"BUILDING {name.upper()}")
            self.bin_dir.mkdir(parents=True, exist_ok=True)
            self.sources_dir.mkdir(parents=True, exist_ok=True)
            if spec.kind == "git":
                self._build_from_git(spec)
            else:
                self._build_from_tarball(spec)
            if not product.exists():
                raise HelperBuildError(
                    f"Building {name} did not produce {spec.product}.",
                    context={"operation": "helper", "helper": name, "product": str(product)},
                )
        self._resolved[name] = product
        return product

    def ensure_all(self) -> dict[str, Path]:
        products = {name: self.ensure(name) for name in HELPERS}
        self.runner.prepend_path(self.bin_dir)
        return products

    def _build_from_git(self, spec: HelperSpec) -> None:
        checkout = sync_checkout(
            spec.source,
            self.sources_dir / spec.name,
            runner=self.runner,
            policy=self.policy,
        )
        self._run(spec, ["make", "-C", str(checkout), f"-j{self.jobs}", spec.name])
        built = checkout / spec.name
        if built.exists():
            shutil.move(str(built), self.bin_dir / spec.name)

    def _build_from_tarball(self, spec: HelperSpec) -> None:
        release = spec.release or spec.name
        archive = self.downloader(
            spec.source,
            self.sources_dir / f"{release}.tar.gz",
            policy=self.policy,
        )
        source_dir = self.sources_dir / release
        if not source_dir.exists():
            self._run(spec, ["tar", "-xf", str(archive), "-C", str(self.sources_dir)])
        prefix = str(self.prebuilts_dir)
        configure = [
            "./configure",
            f"--prefix={prefix}",
            *(arg.format(prefix=prefix) for arg in spec.configure_args),
        ]
        self._run(spec, configure, cwd=source_dir)
        self._run(spec, ["make", f"-j{self.jobs}"], cwd=source_dir)
        self._run(spec, ["make", "install", f"-j{self.jobs}"], cwd=source_dir)

    def _run(self, spec: HelperSpec, argv: list[str], *, cwd: Path | None = None) -> None:
        result = self.runner.run(argv, cwd=cwd)
        if not result.ok:
            raise HelperBuildError(
                f"Error building {spec.name}.",
                hint="Helpers cached by earlier runs are left untouched; fix and rerun.",
                context={
                    "operation": "helper",
                    "helper": spec.name,
                    "command": result.command,
                    "returncode": str(result.returncode),
                    "stderr": result.stderr_excerpt(),
                },
            )
