from pathlib import Path

import pytest

from crossgcc.errors import PatchError, WorkspaceError, WorkspaceNotClean
from crossgcc.observability import StructuredLogger
from crossgcc.resolve import resolve
from crossgcc.runner import CommandResult, RecordingRunner
from crossgcc.workspace import (
    ScratchMounts,
    WorkspaceManager,
    ensure_clean,
    find_leftovers,
    probe_privilege,
)


def _sources(root: Path) -> dict[str, Path]:
    sources = {}
    for component, dirname in {
        "gcc": "gcc",
        "binutils": "binutils",
        "linux": "linux",
        "glibc": "glibc-2.33",
        "mpfr": "mpfr-4.1.0",
        "gmp": "gmp-6.2.1",
        "mpc": "mpc-1.2.1",
        "isl": "isl-0.24",
    }.items():
        path = root / dirname
        path.mkdir(parents=True)
        (path / "configure").write_text("", encoding="utf-8")
        sources[component] = path
    return sources


def _snapshot(root: Path) -> list[str]:
    return sorted(str(path.relative_to(root)) for path in root.rglob("*"))


def test_prepare_refuses_existing_build_gcc_without_mutation(tmp_path: Path, patches_dir: Path) -> None:
    config = resolve("arm64", "official", 10)
    sources = _sources(tmp_path)
    (tmp_path / "build-gcc").mkdir()
    before = _snapshot(tmp_path)
    runner = RecordingRunner()
    manager = WorkspaceManager(root=tmp_path, runner=runner, patches_dir=patches_dir)

    with pytest.raises(WorkspaceNotClean) as excinfo:
        manager.prepare(config, sources)

    assert "build-gcc" in excinfo.value.context["leftovers"]
    assert excinfo.value.code == "E_WORKSPACE_NOT_CLEAN"
    assert _snapshot(tmp_path) == before
    assert runner.calls == []


def test_prepare_links_libraries_and_patches(tmp_path: Path, patches_dir: Path) -> None:
    config = resolve("arm64", "official", 10)
    sources = _sources(tmp_path)
    runner = RecordingRunner()
    manager = WorkspaceManager(root=tmp_path, runner=runner, patches_dir=patches_dir)

    workspace = manager.prepare(config, sources)

    for name in ("build-binutils", "build-gcc", "build-glibc"):
        assert not (tmp_path / name).exists()
    for library in ("mpfr", "gmp", "mpc", "isl"):
        link = tmp_path / "gcc" / library
        assert link.is_symlink()
        assert link.resolve() == sources[library].resolve()
    assert runner.commands() == [f"patch -Np1 -i {patches_dir / 'GCC_10_up.patch'}"]
    assert runner.calls[0].cwd == tmp_path / "gcc"
    assert workspace.install_dir == tmp_path / "aarch64-linux-gnu"
    assert workspace.build_dir("glibc") == tmp_path / "build-glibc"


def test_missing_patch_aborts_before_scratch_dirs_exist(tmp_path: Path) -> None:
    config = resolve("arm64", "official", 9)
    manager = WorkspaceManager(root=tmp_path, runner=RecordingRunner(), patches_dir=tmp_path / "none")

    with pytest.raises(PatchError) as excinfo:
        manager.prepare(config, _sources(tmp_path))

    assert excinfo.value.context["patch"].endswith("GCC_9.patch")
    assert not (tmp_path / "build-gcc").exists()


def test_patch_that_does_not_apply_is_fatal(tmp_path: Path, patches_dir: Path) -> None:
    runner = RecordingRunner(
        responder=lambda call: CommandResult(argv=call.argv, returncode=1, stdout="Hunk #1 FAILED")
    )
    manager = WorkspaceManager(root=tmp_path, runner=runner, patches_dir=patches_dir)

    with pytest.raises(PatchError) as excinfo:
        manager.prepare(resolve("arm", "official", 7), _sources(tmp_path))

    assert "Hunk #1 FAILED" in excinfo.value.context["stderr"]
    assert not (tmp_path / "build-binutils").exists()


def test_missing_gcc_source(tmp_path: Path, patches_dir: Path) -> None:
    manager = WorkspaceManager(root=tmp_path, runner=RecordingRunner(), patches_dir=patches_dir)

    with pytest.raises(WorkspaceError, match="GCC source is missing"):
        manager.prepare(resolve("arm", "official", 10), {})


def test_real_library_directory_inside_gcc_is_rejected(tmp_path: Path, patches_dir: Path) -> None:
    sources = _sources(tmp_path)
    (tmp_path / "gcc" / "gmp").mkdir()
    manager = WorkspaceManager(root=tmp_path, runner=RecordingRunner(), patches_dir=patches_dir)

    with pytest.raises(WorkspaceError):
        manager.prepare(resolve("arm", "official", 10), sources)


def test_find_leftovers_sees_packages_and_install_dir(tmp_path: Path) -> None:
    config = resolve("arm", "official", 10)
    (tmp_path / "arm-linux-gnueabi").mkdir()
    (tmp_path / "arm-linux-gnueabi-10.x-gnu-20210101.tar.xz").write_bytes(b"")
    (tmp_path / "sources").mkdir()
    (tmp_path / "sources" / "gmp-6.2.1.tar.lz").write_bytes(b"")

    leftovers = find_leftovers(tmp_path, config, extra=[tmp_path / "binutils"])

    assert [path.name for path in leftovers] == [
        "arm-linux-gnueabi",
        "arm-linux-gnueabi-10.x-gnu-20210101.tar.xz",
    ]
    (tmp_path / "binutils").mkdir()
    with pytest.raises(WorkspaceNotClean, match="not clean"):
        ensure_clean(tmp_path, config, extra=[tmp_path / "binutils"])


def _prepared(tmp_path: Path, patches_dir: Path, runner: RecordingRunner, logger: StructuredLogger):
    manager = WorkspaceManager(root=tmp_path, runner=runner, logger=logger, patches_dir=patches_dir)
    workspace = manager.prepare(resolve("arm64", "official", 10), _sources(tmp_path))
    return manager, workspace


def test_scratch_mounts_and_releases_exactly_once(tmp_path: Path, patches_dir: Path) -> None:
    runner = RecordingRunner()
    manager, workspace = _prepared(tmp_path, patches_dir, runner, StructuredLogger())

    with manager.scratch(workspace, enabled=True) as scratch:
        assert scratch.ephemeral is True
        assert all(path.is_dir() for path in scratch.build_dirs.values())
        assert runner.count("mount") == 3

    assert runner.count("umount") == 3
    unmounted = [call.argv[-1] for call in runner.calls if "umount" in call.argv]
    assert unmounted == [
        str(tmp_path / "build-glibc"),
        str(tmp_path / "build-gcc"),
        str(tmp_path / "build-binutils"),
    ]
    assert workspace.ephemeral is False
    assert not (tmp_path / "build-gcc").exists()


def test_scratch_releases_on_error(tmp_path: Path, patches_dir: Path) -> None:
    runner = RecordingRunner()
    manager, workspace = _prepared(tmp_path, patches_dir, runner, StructuredLogger())

    with pytest.raises(RuntimeError):
        with manager.scratch(workspace, enabled=True):
            raise RuntimeError("stage blew up")

    assert runner.count("umount") == 3
    assert not (tmp_path / "build-binutils").exists()


def test_scratch_falls_back_when_mount_fails(tmp_path: Path, patches_dir: Path) -> None:
    def refuse_mounts(call):
        if "mount" in call.argv:
            return CommandResult(argv=call.argv, returncode=32, stderr="permission denied")
        return None

    runner = RecordingRunner(responder=refuse_mounts)
    logger = StructuredLogger()
    manager, workspace = _prepared(tmp_path, patches_dir, runner, logger)

    with manager.scratch(workspace, enabled=True) as scratch:
        assert scratch.ephemeral is False

    assert runner.count("umount") == 0
    assert len(logger.records_for_operation("mount")) == 3


def test_scratch_disabled_never_mounts(tmp_path: Path, patches_dir: Path) -> None:
    runner = RecordingRunner()
    manager, workspace = _prepared(tmp_path, patches_dir, runner, StructuredLogger())

    with manager.scratch(workspace, enabled=False):
        pass

    assert runner.count("mount") == 0
    assert runner.count("umount") == 0


def test_scratch_mounts_release_is_idempotent(tmp_path: Path) -> None:
    runner = RecordingRunner()
    mounts = ScratchMounts(runner=runner, directories=(tmp_path / "a", tmp_path / "b"))

    assert mounts.acquire() is True
    mounts.release()
    mounts.release()

    assert runner.count("umount") == 2
    assert mounts.releases == 2


def test_probe_privilege_without_root_uses_sudo_non_interactively(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr("crossgcc.workspace.os.geteuid", lambda: 1000)
    allowed = RecordingRunner()
    denied = RecordingRunner(responder=lambda call: CommandResult(argv=call.argv, returncode=1))

    assert probe_privilege(allowed) is True
    assert allowed.commands() == ["sudo -n true"]
    assert probe_privilege(denied) is False


def test_probe_privilege_as_root_runs_nothing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("crossgcc.workspace.os.geteuid", lambda: 0)
    runner = RecordingRunner()

    assert probe_privilege(runner) is True
    assert runner.calls == []


def test_release_attempts_every_unmount_when_interrupted(tmp_path: Path) -> None:
    interrupted: list[str] = []

    def interrupt_first_unmount(call):
        if "umount" in call.argv and not interrupted:
            interrupted.append(call.argv[-1])
            raise KeyboardInterrupt
        return None

    runner = RecordingRunner(responder=interrupt_first_unmount)
    directories = (tmp_path / "a", tmp_path / "b", tmp_path / "c")
    mounts = ScratchMounts(runner=runner, directories=directories)
    assert mounts.acquire() is True

    with pytest.raises(KeyboardInterrupt):
        mounts.release()
    mounts.release()

    assert interrupted == [str(tmp_path / "c")]
    assert runner.count("umount") == 3
    assert mounts.mounted == []
    assert mounts.releases == 2


def test_scratch_dirs_are_removed_when_unmount_is_interrupted(tmp_path: Path, patches_dir: Path) -> None:
    def interrupt_unmounts(call):
        if "umount" in call.argv:
            raise KeyboardInterrupt
        return None

    runner = RecordingRunner(responder=interrupt_unmounts)
    manager, workspace = _prepared(tmp_path, patches_dir, runner, StructuredLogger())

    with pytest.raises(KeyboardInterrupt):
        with manager.scratch(workspace, enabled=True):
            pass

    assert runner.count("umount") == 3
    assert not any(path.exists() for path in workspace.build_dirs.values())
