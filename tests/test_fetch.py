import hashlib
from pathlib import Path

import pytest

from crossgcc.errors import FetchError, PolicyError
from crossgcc.fetch import fetch_url, sha256_file, sync_checkout
from crossgcc.policy import Policy
from crossgcc.runner import CommandResult, RecordingRunner


def _source(tmp_path: Path, payload: bytes = b"tarball bytes") -> Path:
    source = tmp_path / "upstream" / "gmp-6.2.1.tar.lz"
    source.parent.mkdir(parents=True, exist_ok=True)
    source.write_bytes(payload)
    return source


def test_fetch_url_downloads_into_cache_path(tmp_path: Path) -> None:
    source = _source(tmp_path)
    destination = tmp_path / "sources" / "gmp-6.2.1.tar.lz"

    result = fetch_url(source.as_uri(), destination)

    assert result == destination
    assert destination.read_bytes() == b"tarball bytes"
    assert not destination.with_name(destination.name + ".part").exists()


def test_fetch_url_trusts_existing_file_without_network(tmp_path: Path) -> None:
    destination = tmp_path / "sources" / "gmp-6.2.1.tar.lz"
    destination.parent.mkdir()
    destination.write_bytes(b"cached")

    # Offline policy would refuse any network access.
    result = fetch_url(
        "https://ftp.gnu.org/gnu/gmp/gmp-6.2.1.tar.lz",
        destination,
        policy=Policy(network_mode="offline"),
    )

    assert result.read_bytes() == b"cached"


def test_fetch_url_offline_refuses_missing_archive(tmp_path: Path) -> None:
    with pytest.raises(PolicyError) as excinfo:
        fetch_url(
            "https://ftp.gnu.org/gnu/gmp/gmp-6.2.1.tar.lz",
            tmp_path / "gmp-6.2.1.tar.lz",
            policy=Policy(network_mode="offline"),
        )

    assert excinfo.value.code == "E_POLICY"


def test_fetch_url_verifies_sha256(tmp_path: Path) -> None:
    source = _source(tmp_path)
    digest = hashlib.sha256(b"tarball bytes").hexdigest()
    destination = tmp_path / "sources" / "gmp-6.2.1.tar.lz"

    fetch_url(source.as_uri(), destination, sha256=digest)

    assert sha256_file(destination) == digest


def test_fetch_url_hash_mismatch_leaves_nothing_behind(tmp_path: Path) -> None:
    source = _source(tmp_path)
    destination = tmp_path / "sources" / "gmp-6.2.1.tar.lz"

    with pytest.raises(FetchError) as excinfo:
        fetch_url(source.as_uri(), destination, sha256="0" * 64)

    assert excinfo.value.context["expected"] == "0" * 64
    assert not destination.exists()
    assert not destination.with_name(destination.name + ".part").exists()


def test_fetch_url_rechecks_cached_file_when_hash_given(tmp_path: Path) -> None:
    destination = tmp_path / "gmp-6.2.1.tar.lz"
    destination.write_bytes(b"truncated")

    with pytest.raises(FetchError):
        fetch_url("https://unused.invalid/gmp.tar.lz", destination, sha256="0" * 64)


def test_fetch_url_require_integrity_needs_a_pin(tmp_path: Path) -> None:
    source = _source(tmp_path)

    with pytest.raises(PolicyError):
        fetch_url(source.as_uri(), tmp_path / "out.tar.lz", policy=Policy(require_integrity=True))


def test_fetch_url_wraps_transport_errors(tmp_path: Path) -> None:
    missing = tmp_path / "nope.tar.xz"
    destination = tmp_path / "sources" / "nope.tar.xz"

    with pytest.raises(FetchError) as excinfo:
        fetch_url(missing.as_uri(), destination)

    assert excinfo.value.context["url"] == missing.as_uri()
    assert not destination.exists()
    assert not destination.with_name(destination.name + ".part").exists()


def test_sync_checkout_clones_cleans_and_pulls(tmp_path: Path) -> None:
    runner = RecordingRunner()
    destination = tmp_path / "sources" / "pigz"

    sync_checkout("https://github.com/madler/pigz", destination, runner=runner)

    assert runner.commands() == [
        f"git clone --depth=1 https://github.com/madler/pigz {destination}",
        f"git -C {destination} clean -fxdq",
        f"git -C {destination} pull",
    ]
    assert runner.calls[0].cwd == destination.parent


def test_sync_checkout_existing_offline_skips_network(tmp_path: Path) -> None:
    runner = RecordingRunner()
    destination = tmp_path / "pigz"
    destination.mkdir()

    sync_checkout(
        "https://github.com/madler/pigz",
        destination,
        runner=runner,
        policy=Policy(network_mode="offline"),
    )

    assert runner.commands() == [f"git -C {destination} clean -fxdq"]


def test_sync_checkout_failure_raises_fetch_error(tmp_path: Path) -> None:
    runner = RecordingRunner(
        responder=lambda call: CommandResult(argv=call.argv, returncode=128, stderr="fatal: no repo")
    )

    with pytest.raises(FetchError) as excinfo:
        sync_checkout("https://example.invalid/repo", tmp_path / "repo", runner=runner)

    assert excinfo.value.context["returncode"] == "128"
    assert "fatal" in excinfo.value.context["stderr"]
