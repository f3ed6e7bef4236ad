"""Shallow git checkouts for helper tools built from their repositories."""

from __future__ import annotations

from pathlib import Path

from crossgcc.errors import FetchError
from crossgcc.policy import Policy, ensure_network_allowed
from crossgcc.runner import CommandRunner


def sync_checkout(
    repo: str,
    destination: Path,
    *,
    runner: CommandRunner,
    policy: Policy | None = None,
) -> Path:
    """Clone *repo* into *destination* if absent, then clean and update it."""
    policy = policy or Policy()
    if not destination.exists():
        ensure_network_allowed(policy=policy, operation="fetch_git", url=repo)
        destination.parent.mkdir(parents=True, exist_ok=True)
        _run_git(
            ["clone", "--depth=1", repo, str(destination)],
            runner=runner,
            cwd=destination.parent,
            repo=repo,
        )
    _run_git(["-C", str(destination), "clean", "-fxdq"], runner=runner, repo=repo)
    if policy.network_mode == "online":
        _run_git(["-C", str(destination), "pull"], runner=runner, repo=repo)
    return destination


def _run_git(
    argv: list[str],
    *,
    runner: CommandRunner,
    repo: str,
    cwd: Path | None = None,
) -> None:
    result = runner.run(["git", *argv], cwd=cwd)
    if not result.ok:
        raise FetchError(
            "Git command failed.",
            hint="Inspect the repository URL and your git installation.",
            context={
                "operation": "fetch_git",
                "repo": repo,
                "argv": result.command,
                "returncode": str(result.returncode),
                "stderr": result.stderr_excerpt(),
            },
        )
