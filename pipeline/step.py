"""
Step Definition - структура шагов pipeline и общий контекст запуска
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from core.config import Config
from .runner import CommandRunner
from .trigger import PushEvent


@dataclass
class PipelineContext:
    """Состояние файловой системы воркера для одного запуска"""
    event: PushEvent
    config: Config
    runner: CommandRunner
    workspace: Path

    @property
    def source_dir(self) -> Path:
        return self.workspace

    @property
    def output_dir(self) -> Path:
        return self.source_dir / self.config.publish_dir


@dataclass
class StepResult:
    """Результат одного шага"""
    name: str
    message: str = ""
    commands: List[List[str]] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)
    duration_ms: float = 0.0


class Step(ABC):
    """One stage of the deploy pipeline

    Subclasses raise a StepError subclass on failure; returning means success.
    """

    name: str = "step"
    description: str = ""

    @abstractmethod
    def run(self, ctx: PipelineContext) -> StepResult:
        ...

    def plan(self, ctx: PipelineContext) -> List[List[str]]:
        """Commands this step would run, for `docdeploy plan`"""
        return []

    def __repr__(self) -> str:
        return f"<Step:{self.name}>"
