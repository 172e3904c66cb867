"""
Pipeline Orchestrator - координатор deploy pipeline

Управляет:
- Проверкой trigger (ветка из allow-list)
- Строго последовательным выполнением шагов fetch -> toolchain -> generate -> publish
- Остановкой на первой ошибке (без retry)
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Callable, Dict, Any, List

from core.config import Config
from core.exceptions import StepError
from core.logging_config import LogContext
from .runner import CommandRunner
from .step import PipelineContext, Step, StepResult
from .steps import default_steps
from .trigger import PushEvent, TriggerGate


logger = logging.getLogger(__name__)


class PipelineStatus(str, Enum):
    """Статус pipeline"""
    IDLE = "IDLE"
    SKIPPED = "SKIPPED"
    FETCHING = "FETCHING"
    TOOLCHAIN_READY = "TOOLCHAIN_READY"
    GENERATED = "GENERATED"
    PUBLISHED = "PUBLISHED"
    ABORTED = "ABORTED"


# Статус на время выполнения шага
STATUS_DURING_STEP = {
    "fetch": PipelineStatus.FETCHING,
}

# Статус после успешного завершения шага
STATUS_AFTER_STEP = {
    "toolchain": PipelineStatus.TOOLCHAIN_READY,
    "generate": PipelineStatus.GENERATED,
    "publish": PipelineStatus.PUBLISHED,
}


@dataclass
class PipelineState:
    """Состояние одного запуска"""
    run_id: str = ""
    status: PipelineStatus = PipelineStatus.IDLE
    ref: str = ""
    sha: str = ""
    completed_steps: List[StepResult] = field(default_factory=list)
    failed_step: Optional[str] = None
    error: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        """Skipped runs are not failures"""
        return self.status in (PipelineStatus.PUBLISHED, PipelineStatus.SKIPPED)

    @property
    def step_names(self) -> List[str]:
        return [r.name for r in self.completed_steps]


class PipelineOrchestrator:
    """Оркестратор deploy pipeline"""

    def __init__(
        self,
        config: Config,
        runner: Optional[CommandRunner] = None,
        steps: Optional[List[Step]] = None,
        workspace: Optional[Path] = None
    ):
        self.config = config
        self.runner = runner or CommandRunner(
            timeout=config.command_timeout,
            dry_run=config.dry_run
        )
        self.steps = steps if steps is not None else default_steps()
        self.gate = TriggerGate(config.branches)
        self.workspace = Path(workspace) if workspace else config.workspace_path

        self.state = PipelineState()

        # Callbacks
        self._on_step_start: Optional[Callable[[int, Step], None]] = None
        self._on_step_complete: Optional[Callable[[int, StepResult], None]] = None
        self._on_progress: Optional[Callable[[str], None]] = None

    def set_callbacks(
        self,
        on_step_start: Callable[[int, Step], None] = None,
        on_step_complete: Callable[[int, StepResult], None] = None,
        on_progress: Callable[[str], None] = None
    ):
        """Установить callbacks"""
        self._on_step_start = on_step_start
        self._on_step_complete = on_step_complete
        self._on_progress = on_progress

    def context(self, event: PushEvent) -> PipelineContext:
        return PipelineContext(
            event=event,
            config=self.config,
            runner=self.runner,
            workspace=self.workspace
        )

    def plan(self, event: PushEvent) -> List[List[str]]:
        """Commands a run would execute, empty if the event does not trigger"""
        if not self.gate.matches(event):
            return []
        ctx = self.context(event)
        commands = []
        for step in self.steps:
            commands.extend(step.plan(ctx))
        return commands

    def run(self, event: PushEvent) -> PipelineState:
        """Запустить pipeline для push события

        Never raises for step failures: the returned state carries the
        failed step and error, and status ABORTED.
        """
        self.state = PipelineState(
            run_id=datetime.now().strftime("%Y%m%d_%H%M%S"),
            ref=event.ref,
            sha=event.sha,
            started_at=datetime.now(timezone.utc).isoformat()
        )

        if not self.gate.matches(event):
            self.state.status = PipelineStatus.SKIPPED
            self._log_progress(f"Push to {event.ref or '<no ref>'} does not trigger a deploy")
            self.state.finished_at = datetime.now(timezone.utc).isoformat()
            return self.state

        ctx = self.context(event)
        total = len(self.steps)
        self._log_progress(f"Deploying {event.repository}@{event.sha[:12] or 'HEAD'} from {event.ref}")

        for index, step in enumerate(self.steps, start=1):
            self._log_progress(f"Step {index}/{total}: {step.description or step.name}")
            self.state.status = STATUS_DURING_STEP.get(step.name, self.state.status)
            if self._on_step_start:
                self._on_step_start(index, step)

            started = time.monotonic()
            try:
                with LogContext(logger, step=step.name, run_id=self.state.run_id):
                    result = step.run(ctx)
            except StepError as e:
                self._abort(step, str(e))
                break
            except Exception as e:
                logger.exception(f"Unexpected error in step {step.name}")
                self._abort(step, f"{type(e).__name__}: {e}")
                break

            result.duration_ms = (time.monotonic() - started) * 1000
            self.state.completed_steps.append(result)
            self.state.status = STATUS_AFTER_STEP.get(step.name, self.state.status)
            logger.info(f"{step.name}: {result.message} ({result.duration_ms:.0f}ms)")

            if self._on_step_complete:
                self._on_step_complete(index, result)

        self.state.finished_at = datetime.now(timezone.utc).isoformat()
        if self.state.status != PipelineStatus.ABORTED:
            self._log_progress("Pipeline completed!")
        return self.state

    def _abort(self, step: Step, error: str):
        self.state.status = PipelineStatus.ABORTED
        self.state.failed_step = step.name
        self.state.error = error
        logger.error(f"Step {step.name} failed, aborting: {error}")
        self._log_progress(f"Aborted at {step.name}")

    def _log_progress(self, message: str):
        """Логировать прогресс"""
        logger.info(message)
        if self._on_progress:
            self._on_progress(message)

    def get_state(self) -> PipelineState:
        """Получить текущее состояние"""
        return self.state

    def get_stats(self) -> Dict[str, Any]:
        """Получить статистику"""
        return {
            "status": self.state.status.value,
            "ref": self.state.ref,
            "sha": self.state.sha,
            "completed_steps": self.state.step_names,
            "failed_step": self.state.failed_step,
            "error": self.state.error,
            "total_ms": round(sum(r.duration_ms for r in self.state.completed_steps)),
        }
