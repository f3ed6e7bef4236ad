"""HTTP/file archive download into a local cache path."""

from __future__ import annotations

import hashlib
import os
import shutil
from pathlib import Path
from typing import Protocol
from urllib.error import URLError
from urllib.request import urlopen

from crossgcc.errors import FetchError, PolicyError
from crossgcc.policy import Policy, ensure_network_allowed

CHUNK_SIZE = 1 << 20


class Downloader(Protocol):
    def __call__(
        self,
        url: str,
        destination: Path,
        *,
        sha256: str | None = None,
        policy: Policy | None = None,
    ) -> Path:
        """Ensure *destination* holds the content of *url* and return it."""


def fetch_url(
    url: str,
    destination: Path,
    *,
    sha256: str | None = None,
    policy: Policy | None = None,
) -> Path:
    """Download *url* to *destination* unless the file is already there.

    An existing file is trusted as-is unless a sha256 is supplied. Content is
    streamed to a sibling ``.part`` file and renamed into place, so an
    interrupted download never leaves a truncated archive at *destination*.
    """
    policy = policy or Policy()
    if not sha256 and policy.require_integrity:
        raise PolicyError(
            "Integrity is required by policy but no sha256 is pinned.",
            hint="Pin a checksum for this archive or relax policy.require_integrity.",
            context={"operation": "fetch", "url": url},
        )

    if destination.is_file():
        if sha256:
            _assert_hash_matches(destination, expected_sha256=sha256, url=url)
        return destination

    ensure_network_allowed(policy=policy, operation="fetch", url=url)
    destination.parent.mkdir(parents=True, exist_ok=True)
    temp_path = destination.with_name(destination.name + ".part")
    try:
        with urlopen(url) as response, temp_path.open("wb") as handle:  # noqa: S310
            shutil.copyfileobj(response, handle, CHUNK_SIZE)
    except (URLError, OSError) as exc:
        temp_path.unlink(missing_ok=True)
        raise FetchError(
            "Failed to download archive.",
            hint="Check your connection and rerun; completed downloads are kept.",
            context={"operation": "fetch", "url": url, "error": str(exc)},
        ) from exc

    if sha256:
        actual_sha256 = sha256_file(temp_path)
        if actual_sha256 != sha256:
            temp_path.unlink(missing_ok=True)
            raise FetchError(
                "Fetched content hash mismatch.",
                hint="Update the pinned checksum or source URL to a trusted artifact.",
                context={
                    "operation": "fetch",
                    "url": url,
                    "expected": sha256,
                    "actual": actual_sha256,
                },
            )

    os.replace(temp_path, destination)
    return destination


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _assert_hash_matches(path: Path, *, expected_sha256: str, url: str) -> None:
    actual_sha256 = sha256_file(path)
    if actual_sha256 != expected_sha256:
        raise FetchError(
            "Cached archive hash mismatch.",
            hint="Delete the cached archive and rerun to refetch it.",
            context={
                "operation": "fetch",
                "url": url,
                "path": str(path),
                "expected": expected_sha256,
                "actual": actual_sha256,
            },
        )
