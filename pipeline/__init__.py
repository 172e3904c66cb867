"""Pipeline module"""

from .orchestrator import PipelineOrchestrator, PipelineState, PipelineStatus
from .publisher import Publisher, PublishResult, sync_tree, tree_digest
from .runner import CommandRunner, CommandResult
from .step import PipelineContext, Step, StepResult
from .steps import (
    FetchSourceStep,
    InstallToolchainStep,
    GenerateDocsStep,
    PublishStep,
    default_steps,
)
from .trigger import PushEvent, TriggerGate

__all__ = [
    "PipelineOrchestrator",
    "PipelineState",
    "PipelineStatus",
    "Publisher",
    "PublishResult",
    "sync_tree",
    "tree_digest",
    "CommandRunner",
    "CommandResult",
    "PipelineContext",
    "Step",
    "StepResult",
    "FetchSourceStep",
    "InstallToolchainStep",
    "GenerateDocsStep",
    "PublishStep",
    "default_steps",
    "PushEvent",
    "TriggerGate",
]
