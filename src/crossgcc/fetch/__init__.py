"""Archive and repository retrieval."""

from .git import sync_checkout
from .http import Downloader, fetch_url, sha256_file

__all__ = ["Downloader", "fetch_url", "sha256_file", "sync_checkout"]
