"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from crossgcc.models import Overrides
from crossgcc.runner import CommandResult, RecordedCall, RecordingRunner

PATCHES = ("942-asan-fix-missing-include-signal-h", "GCC_6-8", "GCC_9", "GCC_10_up")

HELPER_PRODUCTS = ("bin/pigz", "bin/pxz", "bin/plzip", "lib/liblz.a")


class FakeHost:
    """Responder that applies the filesystem side effects of external tools.

    ``failing`` maps a substring of the command line to the exit status the
    matching command returns. ``interrupt_on`` raises KeyboardInterrupt for a
    matching command, as a terminal Ctrl-C would.
    """

    def __init__(
        self,
        target: str,
        *,
        gcc_version: str = "10.3.0",
        failing: dict[str, int] | None = None,
        interrupt_on: str | None = None,
        install_compiler: bool = True,
    ) -> None:
        self.target = target
        self.gcc_version = gcc_version
        self.failing = failing or {}
        self.interrupt_on = interrupt_on
        self.install_compiler = install_compiler

    def __call__(self, call: RecordedCall) -> CommandResult | None:
        command = call.command
        if self.interrupt_on is not None and self.interrupt_on in command:
            raise KeyboardInterrupt
        for pattern, returncode in self.failing.items():
            if pattern in command:
                return CommandResult(argv=call.argv, returncode=returncode, stderr="simulated failure")

        argv = call.argv
        if argv[0] == "tar" and "-xf" in argv:
            self._extract(argv)
        elif argv[0] == "tar" and "-c" in argv:
            Path(argv[argv.index("-f") + 1]).write_bytes(b"\x1f\x8b packaged toolchain")
        elif argv[0] == "make" and "install-gcc" in argv and self.install_compiler:
            assert call.cwd is not None
            compiler = call.cwd.parent / self.target / "bin" / f"{self.target}-gcc"
            compiler.parent.mkdir(parents=True, exist_ok=True)
            compiler.write_text("#!/bin/sh\n", encoding="utf-8")
        elif argv[0].endswith(f"{self.target}-gcc") and "--version" in argv:
            banner = f"{self.target}-gcc (crossgcc 0.1.0) {self.gcc_version}\nCopyright (C)\n"
            return CommandResult(argv=argv, returncode=0, stdout=banner)
        return None

    @staticmethod
    def _extract(argv: tuple[str, ...]) -> None:
        archive = Path(argv[argv.index("-xf") + 1])
        destination = Path(argv[argv.index("-C") + 1])
        last = argv[-1]
        if last.startswith("--strip-components"):
            tree = destination
        elif last == str(destination):
            tree = destination / archive.name.split(".tar")[0]
        else:
            tree = destination / last
        tree.mkdir(parents=True, exist_ok=True)
        (tree / "configure").write_text("#!/bin/sh\n", encoding="utf-8")


class FakeDownloader:
    """Downloader that writes placeholder archives and records every URL."""

    def __init__(self) -> None:
        self.urls: list[str] = []

    def __call__(self, url: str, destination: Path, *, sha256=None, policy=None) -> Path:
        if destination.is_file():
            return destination
        self.urls.append(url)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(f"archive from {url}".encode())
        return destination


@pytest.fixture
def build_root(tmp_path: Path) -> Path:
    """Working tree with cached helper tools, as left by an earlier run."""
    root = tmp_path / "toolchain"
    for product in HELPER_PRODUCTS:
        path = root / "prebuilts" / product
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("", encoding="utf-8")
    return root


@pytest.fixture
def patches_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "patches"
    directory.mkdir()
    for name in PATCHES:
        (directory / f"{name}.patch").write_text("--- a\n+++ b\n", encoding="utf-8")
    return directory


@pytest.fixture
def overrides() -> Overrides:
    return Overrides(jobs=4)


@pytest.fixture
def downloader() -> FakeDownloader:
    return FakeDownloader()


@pytest.fixture
def recording_runner() -> RecordingRunner:
    return RecordingRunner()
