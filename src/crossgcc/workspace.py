"""Scratch workspace preparation and ephemeral storage lifecycle."""

from __future__ import annotations

import os
import shutil
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from crossgcc.errors import PatchError, WorkspaceError, WorkspaceNotClean
from crossgcc.models import BuildConfig, Workspace
from crossgcc.observability import StructuredLogger
from crossgcc.runner import CommandRunner

SCRATCH_DIRS: dict[str, str] = {
    "binutils": "build-binutils",
    "gcc": "build-gcc",
    "glibc": "build-glibc",
}

# Numeric libraries gcc's configure discovers as in-tree subdirectories.
LINKED_LIBRARIES = ("mpfr", "gmp", "mpc", "isl")


def find_leftovers(root: Path, config: BuildConfig, *, extra: Iterable[Path] = ()) -> list[Path]:
    """Return paths whose presence means an earlier run left state behind."""
    candidates = [root / name for name in SCRATCH_DIRS.values()]
    candidates.append(root / config.target)
    candidates.extend(extra)
    leftovers = [path for path in candidates if path.exists() or path.is_symlink()]
    if root.is_dir():
        leftovers.extend(sorted(path for path in root.glob("*.tar.*") if path.is_file()))
    return leftovers


def ensure_clean(root: Path, config: BuildConfig, *, extra: Iterable[Path] = ()) -> None:
    leftovers = find_leftovers(root, config, extra=extra)
    if leftovers:
        raise WorkspaceNotClean(
            "Workspace is not clean; refusing to mix artifacts from a previous run.",
            hint="Remove the listed paths or rerun with --clean.",
            context={
                "operation": "prepare",
                "root": str(root),
                "leftovers": ", ".join(path.name for path in leftovers),
            },
        )


def remove_paths(paths: Iterable[Path]) -> list[Path]:
    removed: list[Path] = []
    for path in paths:
        if path.is_symlink() or path.is_file():
            path.unlink()
        elif path.is_dir():
            shutil.rmtree(path)
        else:
            continue
        removed.append(path)
    return removed


def probe_privilege(runner: CommandRunner) -> bool:
    """Check once, without prompting, whether mounts can be managed."""
    if os.geteuid() == 0:
        return True
    return runner.run(["sudo", "-n", "true"]).ok


@dataclass(slots=True)
class ScratchMounts:
    """tmpfs mounts over the scratch build directories.

    :meth:`release` is idempotent; only the first call unmounts anything.
    """

    runner: CommandRunner
    directories: tuple[Path, ...]
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    mounted: list[Path] = field(default_factory=list)
    releases: int = 0

    def acquire(self) -> bool:
        for directory in self.directories:
            result = self.runner.run(
                [*_privilege_prefix(), "mount", "-t", "tmpfs", "-o", "rw", "none", str(directory)]
            )
            if result.ok:
                self.mounted.append(directory)
                continue
            self.logger.warn(
                f"Could not mount tmpfs on {directory.name}; using persistent storage.",
                operation="mount",
                extra={"returncode": result.returncode},
            )
        return bool(self.mounted) and len(self.mounted) == len(self.directories)

    def release(self) -> None:
        """Unmount everything acquired.

        Each unmount is attempted even when an earlier one is interrupted.
        """
        if self.releases:
            self.releases += 1
            return
        try:
            self._unmount(list(reversed(self.mounted)))
        finally:
            self.mounted.clear()
            self.releases += 1

    def _unmount(self, directories: list[Path]) -> None:
        if not directories:
            return
        directory, *rest = directories
        try:
            result = self.runner.run([*_privilege_prefix(), "umount", "-f", str(directory)])
            if not result.ok:
                self.logger.warn(
                    f"Failed to unmount {directory}.",
                    operation="unmount",
                    extra={"returncode": result.returncode},
                )
        finally:
            self._unmount(rest)


def _privilege_prefix() -> list[str]:
    return [] if os.geteuid() == 0 else ["sudo"]


@dataclass(slots=True)
class WorkspaceManager:
    root: Path
    runner: CommandRunner
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    patches_dir: Path | None = None

    def prepare(self, config: BuildConfig, sources: Mapping[str, Path]) -> Workspace:
        """Link the numeric libraries into the gcc tree and patch it."""
        ensure_clean(self.root, config)

        gcc_source = sources.get("gcc")
        if gcc_source is None or not gcc_source.is_dir():
            raise WorkspaceError(
                "GCC source is missing.",
                hint="Check your connection and rerun so the archive is fetched again.",
                context={"operation": "prepare", "root": str(self.root)},
            )

        self._link_libraries(gcc_source, sources)
        self.apply_patch(config, gcc_source)

        return self.layout(config, sources)

    def layout(self, config: BuildConfig, sources: Mapping[str, Path]) -> Workspace:
        return Workspace(
            root=self.root,
            target=config.target,
            sources=dict(sources),
            build_dirs={component: self.root / name for component, name in SCRATCH_DIRS.items()},
            install_dir=self.root / config.target,
        )

    def apply_patch(self, config: BuildConfig, gcc_source: Path) -> None:
        patches_dir = self.patches_dir or self.root / "patches"
        patch_path = patches_dir / f"{config.patch}.patch"
        if not patch_path.is_file():
            raise PatchError(
                "GCC source patch is missing.",
                hint="Point --patches-dir at the directory holding the header patches.",
                context={"operation": "patch", "patch": str(patch_path)},
            )
        self.logger.log(
            operation="patch",
            component="gcc",
            message=f"Applying {patch_path.name}.",
        )
        result = self.runner.run(["patch", "-Np1", "-i", str(patch_path)], cwd=gcc_source)
        if not result.ok:
            raise PatchError(
                "Failed to patch GCC source.",
                context={
                    "operation": "patch",
                    "patch": str(patch_path),
                    "returncode": str(result.returncode),
                    "stderr": result.stderr_excerpt() or result.stdout[-2000:],
                },
            )

    @contextmanager
    def scratch(self, workspace: Workspace, *, enabled: bool) -> Iterator[Workspace]:
        """Create the scratch directories for the duration of the block.

        With *enabled* they are backed by tmpfs. Mounts are released and the
        directories removed on every exit path, exactly once.
        """
        mounts = ScratchMounts(
            runner=self.runner,
            directories=tuple(workspace.build_dirs.values()),
            logger=self.logger,
        )
        try:
            for path in workspace.build_dirs.values():
                path.mkdir(parents=True, exist_ok=True)
            if enabled:
                workspace.ephemeral = mounts.acquire()
            yield workspace
        finally:
            try:
                mounts.release()
            finally:
                remove_paths(workspace.build_dirs.values())
                workspace.ephemeral = False

    def _link_libraries(self, gcc_source: Path, sources: Mapping[str, Path]) -> None:
        for name in LINKED_LIBRARIES:
            target = sources.get(name)
            if target is None:
                raise WorkspaceError(
                    f"Source tree for {name} is missing.",
                    context={"operation": "link", "component": name},
                )
            link = gcc_source / name
            if link.is_symlink():
                link.unlink()
            elif link.exists():
                raise WorkspaceError(
                    f"gcc source already contains a real {name} directory.",
                    context={"operation": "link", "path": str(link)},
                )
            link.symlink_to(target.absolute(), target_is_directory=True)
