"""Sequential, fail-fast execution of the planned bootstrap stages."""

from __future__ import annotations

from dataclasses import dataclass, field

from crossgcc.errors import StageFailure
from crossgcc.observability import StructuredLogger
from crossgcc.runner import CommandRunner
from crossgcc.stages import PHASE_TITLES, Phase, Stage


@dataclass(slots=True)
class StagePipeline:
    stages: tuple[Stage, ...]
    runner: CommandRunner
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    completed: list[str] = field(default_factory=list)

    def run(self) -> tuple[str, ...]:
        """Run every stage in order; the first failure stops the pipeline."""
        current_phase: Phase | None = None
        for stage in self.stages:
            if stage.phase != current_phase:
                current_phase = stage.phase
                self.logger.header(PHASE_TITLES[current_phase])
            self._run_stage(stage)
        return tuple(self.completed)

    def _run_stage(self, stage: Stage) -> None:
        if not stage.cwd.is_dir():
            raise StageFailure(
                f"{stage.cwd.name} folder does not exist!",
                stage=stage.name,
                context={"cwd": str(stage.cwd)},
            )
        self.logger.log(
            operation="stage_start",
            stage=stage.name,
            message=" ".join(stage.argv),
            extra={"phase": stage.phase},
        )
        result = self.runner.run(stage.argv, cwd=stage.cwd)
        if not result.ok:
            self.logger.log(
                operation="stage_failed",
                stage=stage.name,
                level="error",
                message=stage.failure,
                extra={"returncode": result.returncode},
            )
            raise StageFailure(
                stage.failure,
                stage=stage.name,
                hint="Rerun with --verbose to see the build system output.",
                context={
                    "command": result.command,
                    "cwd": str(stage.cwd),
                    "returncode": str(result.returncode),
                    "stderr": result.stderr_excerpt(),
                },
            )
        self.completed.append(stage.name)
        self.logger.log(
            operation="stage_complete",
            stage=stage.name,
            message=f"Completed {stage.name}.",
        )
