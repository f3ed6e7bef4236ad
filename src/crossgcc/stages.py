"""Declared bootstrap stages and their dependency ordering.

A cross toolchain bootstraps itself in passes: binutils first, then kernel
headers, a C-only compiler, the C runtime's headers and start files, and
finally the full runtime and compiler. For genuinely cross targets libgcc
has to be installed before glibc is built, because glibc's configure needs a
working libgcc for the target. Native (host architecture) builds get libgcc
from the bootstrap compiler pass and build glibc in one go.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from crossgcc.models import BuildConfig, Workspace

Phase = Literal[
    "AssemblerLinker",
    "KernelHeaders",
    "CompilerBootstrap",
    "RuntimeHeaders",
    "CompilerSupport",
    "RuntimeLibrary",
    "CompilerFinal",
]

PHASE_TITLES: dict[Phase, str] = {
    "AssemblerLinker": "BUILDING BINUTILS",
    "KernelHeaders": "MAKING LINUX HEADERS",
    "CompilerBootstrap": "MAKING GCC",
    "RuntimeHeaders": "MAKING GLIBC",
    "CompilerSupport": "MAKING LIBGCC",
    "RuntimeLibrary": "MAKING GLIBC",
    "CompilerFinal": "INSTALLING GCC",
}

Predicate = Callable[[BuildConfig], bool]

HARDENED_FLAGS = ("CFLAGS=-O2 -fstack-protector-strong", "CXXFLAGS=-O2 -fstack-protector-strong")


def always(config: BuildConfig) -> bool:
    return True


def native_only(config: BuildConfig) -> bool:
    return config.native


def cross_only(config: BuildConfig) -> bool:
    return not config.native


@dataclass(frozen=True, slots=True)
class Stage:
    name: str
    phase: Phase
    argv: tuple[str, ...]
    cwd: Path
    failure: str
    requires: tuple[str, ...] = ()
    applies: Predicate = always


def define_stages(config: BuildConfig, workspace: Workspace) -> tuple[Stage, ...]:
    """Return every stage for *config*, active or not, in declaration order."""
    target = config.target
    jobs = config.make_jobs
    flags = config.configure_flags
    install = workspace.install_dir
    sysroot = workspace.sysroot
    build_binutils = workspace.build_dir("binutils")
    build_gcc = workspace.build_dir("gcc")
    build_glibc = workspace.build_dir("glibc")
    build_flag = (f"--build={config.build_triple}",) if config.build_triple else ()

    return (
        Stage(
            name="binutils-configure",
            phase="AssemblerLinker",
            argv=(
                str(workspace.source("binutils") / "configure"),
                *HARDENED_FLAGS,
                f"--prefix={install}",
                f"--target={target}",
                *flags,
                "--disable-gdb",
            ),
            cwd=build_binutils,
            failure="Error while configuring binutils!",
        ),
        Stage(
            name="binutils-build",
            phase="AssemblerLinker",
            argv=("make", jobs),
            cwd=build_binutils,
            failure="Error while building binutils!",
            requires=("binutils-configure",),
        ),
        Stage(
            name="binutils-install",
            phase="AssemblerLinker",
            argv=("make", "install", jobs),
            cwd=build_binutils,
            failure="Error while installing binutils!",
            requires=("binutils-build",),
        ),
        Stage(
            name="linux-headers",
            phase="KernelHeaders",
            argv=(
                "make",
                f"ARCH={config.kernel_arch}",
                f"INSTALL_HDR_PATH={sysroot}",
                "headers_install",
                jobs,
            ),
            cwd=workspace.source("linux"),
            failure="Error while building/installing Linux headers!",
            requires=("binutils-install",),
        ),
        Stage(
            name="gcc-configure",
            phase="CompilerBootstrap",
            argv=(
                str(workspace.source("gcc") / "configure"),
                *HARDENED_FLAGS,
                f"--prefix={install}",
                f"--target={target}",
                *flags,
                "--enable-languages=c,c++",
            ),
            cwd=build_gcc,
            failure="Error while configuring gcc!",
            requires=("binutils-install", "linux-headers"),
        ),
        Stage(
            name="gcc-build-compiler",
            phase="CompilerBootstrap",
            argv=("make", "all-gcc", jobs),
            cwd=build_gcc,
            failure="Error while building gcc!",
            requires=("gcc-configure",),
        ),
        Stage(
            name="gcc-install-compiler",
            phase="CompilerBootstrap",
            argv=("make", "install-gcc", jobs),
            cwd=build_gcc,
            failure="Error while installing gcc!",
            requires=("gcc-build-compiler",),
        ),
        Stage(
            name="gcc-host-libgcc-build",
            phase="CompilerBootstrap",
            argv=("make", "all-target-libgcc", jobs),
            cwd=build_gcc,
            failure="Error while building libgcc for host!",
            requires=("gcc-install-compiler",),
            applies=native_only,
        ),
        Stage(
            name="gcc-host-libgcc-install",
            phase="CompilerBootstrap",
            argv=("make", "install-target-libgcc", jobs),
            cwd=build_gcc,
            failure="Error while installing libgcc for host!",
            requires=("gcc-host-libgcc-build",),
            applies=native_only,
        ),
        Stage(
            name="glibc-configure",
            phase="RuntimeHeaders",
            argv=(
                str(workspace.source("glibc") / "configure"),
                "CFLAGS=-O2",
                "CXXFLAGS=-O2",
                f"--prefix={sysroot}",
                *build_flag,
                f"--host={target}",
                f"--target={target}",
                f"--with-headers={sysroot / 'include'}",
                *flags,
                "--enable-stack-protector=strong",
                "libc_cv_forced_unwind=yes",
                "with_selinux=no",
            ),
            cwd=build_glibc,
            failure="Error while configuring glibc!",
            requires=("gcc-install-compiler", "gcc-host-libgcc-install", "linux-headers"),
        ),
        Stage(
            name="glibc-install-headers",
            phase="RuntimeHeaders",
            argv=("make", "install-bootstrap-headers=yes", "install-headers", jobs),
            cwd=build_glibc,
            failure="Error installing headers for glibc!",
            requires=("glibc-configure",),
        ),
        Stage(
            name="glibc-startfiles",
            phase="RuntimeHeaders",
            argv=("make", "csu/subdir_lib", jobs),
            cwd=build_glibc,
            failure="Error while making subdir_lib for glibc!",
            requires=("glibc-install-headers",),
        ),
        Stage(
            name="glibc-install-startfiles",
            phase="RuntimeHeaders",
            argv=("install", "csu/crt1.o", "csu/crti.o", "csu/crtn.o", str(sysroot / "lib")),
            cwd=build_glibc,
            failure="Error while installing glibc start files!",
            requires=("glibc-startfiles",),
        ),
        Stage(
            name="glibc-stub-libc",
            phase="RuntimeHeaders",
            argv=(
                str(install / "bin" / f"{target}-gcc"),
                "-nostdlib",
                "-nostartfiles",
                "-shared",
                "-x",
                "c",
                "/dev/null",
                "-o",
                str(sysroot / "lib" / "libc.so"),
            ),
            cwd=build_glibc,
            failure="Error while creating the stub libc.so!",
            requires=("glibc-install-startfiles",),
        ),
        Stage(
            name="glibc-stub-headers",
            phase="RuntimeHeaders",
            argv=("touch", str(sysroot / "include" / "gnu" / "stubs.h")),
            cwd=build_glibc,
            failure="Error while creating gnu/stubs.h!",
            requires=("glibc-stub-libc",),
        ),
        Stage(
            name="libgcc-cross-build",
            phase="CompilerSupport",
            argv=("make", "all-target-libgcc", jobs),
            cwd=build_gcc,
            failure="Error while building libgcc for target!",
            requires=("glibc-stub-headers",),
            applies=cross_only,
        ),
        Stage(
            name="libgcc-cross-install",
            phase="CompilerSupport",
            argv=("make", "install-target-libgcc", jobs),
            cwd=build_gcc,
            failure="Error while installing libgcc for target!",
            requires=("libgcc-cross-build",),
            applies=cross_only,
        ),
        Stage(
            name="glibc-build",
            phase="RuntimeLibrary",
            argv=("make", jobs),
            cwd=build_glibc,
            failure="Error while building glibc!",
            requires=("glibc-stub-headers", "libgcc-cross-install"),
        ),
        Stage(
            name="glibc-install",
            phase="RuntimeLibrary",
            argv=("make", "install", jobs),
            cwd=build_glibc,
            failure="Error while installing glibc!",
            requires=("glibc-build",),
        ),
        Stage(
            name="gcc-build-final",
            phase="CompilerFinal",
            argv=("make", "all", jobs),
            cwd=build_gcc,
            failure="Error while compiling final toolchain!",
            requires=("glibc-install",),
        ),
        Stage(
            name="gcc-install-final",
            phase="CompilerFinal",
            argv=("make", "install", jobs),
            cwd=build_gcc,
            failure="Error while installing final toolchain!",
            requires=("gcc-build-final",),
        ),
    )


def topological_order(stages: Iterable[Stage], config: BuildConfig) -> tuple[Stage, ...]:
    """Order the stages that apply to *config* so prerequisites run first.

    Prerequisites that do not apply to *config* are treated as satisfied.
    Ties keep declaration order, so the result is deterministic.
    """
    declared = tuple(stages)
    names = {stage.name for stage in declared}
    if len(names) != len(declared):
        raise ValueError("Stage names must be unique.")
    for stage in declared:
        unknown = [name for name in stage.requires if name not in names]
        if unknown:
            raise ValueError(f"Stage {stage.name!r} requires unknown stages: {unknown}.")

    active = [stage for stage in declared if stage.applies(config)]
    active_names = {stage.name for stage in active}
    pending = {
        stage.name: {name for name in stage.requires if name in active_names} for stage in active
    }

    ordered: list[Stage] = []
    while pending:
        ready = [stage for stage in active if stage.name in pending and not pending[stage.name]]
        if not ready:
            raise ValueError(f"Stage graph has a cycle among: {sorted(pending)}.")
        stage = ready[0]
        ordered.append(stage)
        del pending[stage.name]
        for remaining in pending.values():
            remaining.discard(stage.name)
    return tuple(ordered)


def plan(config: BuildConfig, workspace: Workspace) -> tuple[Stage, ...]:
    return topological_order(define_stages(config, workspace), config)
