"""
Custom exceptions for docdeploy
"""

from typing import Optional, Sequence


class DocDeployError(Exception):
    """Base exception for all docdeploy errors"""
    pass


# Config exceptions
class ConfigError(DocDeployError):
    """Configuration error"""
    pass


# Command exceptions
class CommandError(DocDeployError):
    """External command exited non-zero, timed out or was not found"""
    def __init__(
        self,
        message: str,
        command: Sequence[str] = (),
        returncode: Optional[int] = None,
        stderr: str = ""
    ):
        super().__init__(message)
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr


# Pipeline exceptions
class PipelineError(DocDeployError):
    """Base exception for pipeline errors"""
    pass


class StepError(PipelineError):
    """Error during step execution"""
    step_name = "step"


class FetchError(StepError):
    """Checkout of the triggering commit failed"""
    step_name = "fetch"


class ToolchainError(StepError):
    """Toolchain installation failed"""
    step_name = "toolchain"


class GenerationError(StepError):
    """Documentation generation failed"""
    step_name = "generate"


class PublishError(StepError):
    """Upload to the pages branch failed"""
    step_name = "publish"


class PublishAuthError(PublishError):
    """Credential missing or rejected by the remote"""
    pass
