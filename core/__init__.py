"""docdeploy core"""

from .config import Config, load_config
from .exceptions import (
    DocDeployError,
    ConfigError,
    CommandError,
    PipelineError,
    StepError,
    FetchError,
    ToolchainError,
    GenerationError,
    PublishError,
    PublishAuthError,
)
from .logging_config import setup_logging, LogContext, register_secret, mask_secrets

__all__ = [
    "Config",
    "load_config",
    "DocDeployError",
    "ConfigError",
    "CommandError",
    "PipelineError",
    "StepError",
    "FetchError",
    "ToolchainError",
    "GenerationError",
    "PublishError",
    "PublishAuthError",
    "setup_logging",
    "LogContext",
    "register_secret",
    "mask_secrets",
]
