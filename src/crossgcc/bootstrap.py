"""End-to-end orchestration of a single toolchain build.

:class:`Bootstrap` wires the components together in a fixed order: clean-slate
check, helper tools, sources, workspace, stage pipeline, verification and
packaging. Scratch mounts are released exactly once on every exit path,
including SIGINT/SIGTERM, which surface as :class:`BuildAborted`.
"""

from __future__ import annotations

import signal
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from crossgcc.errors import BuildAborted, InvalidConfiguration, ToolchainError
from crossgcc.fetch.http import Downloader, fetch_url
from crossgcc.helpers import HelperBootstrapper
from crossgcc.models import COMPRESSIONS, BuildConfig, BuildOptions, BuildReport
from crossgcc.observability import StructuredLogger
from crossgcc.packaging import (
    package_toolchain,
    query_gcc_version,
    render_report,
    verify_install,
    write_report,
)
from crossgcc.pipeline import StagePipeline
from crossgcc.policy import Policy
from crossgcc.runner import CommandRunner
from crossgcc.sources import SourceManager
from crossgcc.stages import Stage, plan
from crossgcc.workspace import (
    WorkspaceManager,
    ensure_clean,
    find_leftovers,
    probe_privilege,
    remove_paths,
)

Clock = Callable[[], datetime]

ABORT_MESSAGE = "Manually aborted!"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@contextmanager
def interrupt_guard(
    signals: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM),
) -> Iterator[None]:
    """Turn termination signals into :class:`BuildAborted` for the block.

    Only the first signal raises; later ones are ignored so cleanup code in
    ``finally`` blocks can finish. Previous handlers are restored on exit.
    Signal handlers can only be installed from the main thread; elsewhere the
    block runs unguarded.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    aborting = False

    def handler(signum: int, frame: Any) -> None:
        nonlocal aborting
        if aborting:
            return
        aborting = True
        raise BuildAborted(ABORT_MESSAGE, signal_name=signal.Signals(signum).name)

    previous = {sig: signal.signal(sig, handler) for sig in signals}
    try:
        yield
    except KeyboardInterrupt as exc:
        raise BuildAborted(ABORT_MESSAGE, signal_name="SIGINT") from exc
    finally:
        for sig, old_handler in previous.items():
            signal.signal(sig, old_handler)


@dataclass(slots=True)
class Bootstrap:
    config: BuildConfig
    root: Path
    runner: CommandRunner
    options: BuildOptions = field(default_factory=BuildOptions)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    policy: Policy = field(default_factory=Policy)
    downloader: Downloader = fetch_url
    clock: Clock = utc_now
    sources: SourceManager = field(init=False, repr=False)
    helpers: HelperBootstrapper = field(init=False, repr=False)
    workspaces: WorkspaceManager = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.root = self.root.absolute()
        self.sources = SourceManager(
            root=self.root,
            runner=self.runner,
            logger=self.logger,
            policy=self.policy,
            downloader=self.downloader,
        )
        self.helpers = HelperBootstrapper(
            root=self.root,
            jobs=self.config.jobs,
            runner=self.runner,
            logger=self.logger,
            policy=self.policy,
            downloader=self.downloader,
        )
        self.workspaces = WorkspaceManager(
            root=self.root,
            runner=self.runner,
            logger=self.logger,
            patches_dir=self.options.patches_dir,
        )

    def plan(self) -> tuple[Stage, ...]:
        """Return the ordered stages this build would run, touching nothing."""
        layout = self.workspaces.layout(self.config, self.sources.source_layout(self.config))
        return plan(self.config, layout)

    def leftovers(self) -> list[Path]:
        return find_leftovers(self.root, self.config, extra=self._run_local_dirs())

    def clean(self) -> list[Path]:
        """Remove state left by an earlier run; caches are kept."""
        self.logger.header("CLEANING UP")
        removed = remove_paths(self.leftovers())
        for path in removed:
            self.logger.log(operation="clean", message=f"Removed {path.name}.")
        return removed

    def run(self) -> BuildReport:
        self._check_options()
        started = self.clock()
        with interrupt_guard():
            try:
                return self._run(started)
            except ToolchainError as exc:
                self.logger.log(
                    operation="build",
                    level="error",
                    message=exc.message,
                    extra=exc.to_dict(),
                )
                raise

    def _run(self, started: datetime) -> BuildReport:
        config = self.config
        use_tmpfs = self.options.use_tmpfs and self._probe_privilege()

        if self.options.clean:
            self.clean()
        ensure_clean(self.root, config, extra=self._run_local_dirs())

        self.helpers.ensure_all()
        artifacts = self.sources.ensure_all(config)
        source_dirs = self.sources.extract_all(config, artifacts)

        workspace = self.workspaces.prepare(config, source_dirs)
        self.runner.prepend_path(workspace.bin_dir)
        stages = plan(config, workspace)

        with self.workspaces.scratch(workspace, enabled=use_tmpfs):
            completed = StagePipeline(stages=stages, runner=self.runner, logger=self.logger).run()

        compiler = verify_install(workspace)
        gcc_version = query_gcc_version(compiler, self.runner)

        package_path: Path | None = None
        package_size: int | None = None
        if self.options.compression is not None:
            package_path = package_toolchain(
                workspace,
                config,
                self.options.compression,
                runner=self.runner,
                logger=self.logger,
                now=self.clock(),
            )
            package_size = package_path.stat().st_size

        remove_paths(self.sources.extracted_dirs(config))

        finished = self.clock()
        report = BuildReport(
            duration_seconds=int((finished - started).total_seconds()),
            gcc_version=gcc_version,
            install_dir=workspace.install_dir,
            config_digest=config.digest(),
            stages=completed,
            package_path=package_path,
            package_size=package_size,
        )
        self.logger.header("BUILD SUCCESSFUL")
        for line in render_report(report):
            self.logger.log(operation="report", message=line)
        if self.options.report_path is not None:
            write_report(report, self.options.report_path)
        return report

    def _check_options(self) -> None:
        compression = self.options.compression
        if compression is not None and compression not in COMPRESSIONS:
            raise InvalidConfiguration(
                f"Invalid compression {compression!r}.",
                hint="Use one of: " + ", ".join(COMPRESSIONS),
                context={"operation": "package"},
            )

    def _probe_privilege(self) -> bool:
        privileged = probe_privilege(self.runner)
        if not privileged:
            self.logger.warn(
                "Cannot mount tmpfs without a password prompt; using persistent storage.",
                operation="privilege",
            )
        return privileged

    def _run_local_dirs(self) -> tuple[Path, ...]:
        return self.sources.extracted_dirs(self.config, run_local_only=True)
