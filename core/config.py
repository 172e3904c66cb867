"""
Configuration System - Pydantic Settings с .env поддержкой

Values come from DOCDEPLOY_* environment variables (or a .env file),
optionally overridden by a YAML deploy file. The publish credential is
only ever read from the environment (PUBLISH_TOKEN, falling back to
GITHUB_TOKEN).
"""

import shutil
from pathlib import Path, PurePosixPath
from typing import Annotated, Optional, Literal, List, Any, Dict

import yaml
from pydantic import AliasChoices, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .exceptions import ConfigError
from .logging_config import register_secret


# Configurable timeouts
COMMAND_TIMEOUT = 1800  # 30 minutes: toolchain install and doc build can be slow
PUSH_TIMEOUT = 300      # 5 minutes for push (large doc trees, slow networks)


class Config(BaseSettings):
    """Конфигурация docdeploy"""

    model_config = SettingsConfigDict(
        env_prefix='DOCDEPLOY_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        populate_by_name=True
    )

    # Trigger
    branches: Annotated[List[str], NoDecode] = ["main"]

    # Source
    server_url: str = "https://github.com"
    workspace_dir: str = "."
    use_local_checkout: bool = True
    fetch_depth: int = 1

    # Toolchain
    toolchain: str = "stable"
    toolchain_profile: Literal["minimal", "default", "complete"] = "minimal"
    toolchain_override: bool = True

    # Doc generation
    doc_no_deps: bool = True
    doc_args: Annotated[List[str], NoDecode] = []
    publish_dir: str = "target/doc"

    # Publishing
    publish_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("PUBLISH_TOKEN", "GITHUB_TOKEN")
    )
    publish_branch: str = "gh-pages"
    external_repository: Optional[str] = None
    keep_files: bool = False
    enable_jekyll: bool = False
    cname: Optional[str] = None
    exclude_assets: Annotated[List[str], NoDecode] = [".github"]
    force_orphan: bool = False
    allow_empty_commit: bool = False
    commit_message: Optional[str] = None
    user_name: str = "github-actions[bot]"
    user_email: str = "41898282+github-actions[bot]@users.noreply.github.com"

    # Execution
    command_timeout: int = COMMAND_TIMEOUT
    push_timeout: int = PUSH_TIMEOUT
    dry_run: bool = False

    # Директории
    log_dir: Optional[str] = None

    @field_validator('branches', 'doc_args', 'exclude_assets', mode='before')
    @classmethod
    def split_comma_list(cls, v: Any) -> Any:
        """Accept "a,b" as well as a list"""
        if isinstance(v, str):
            return [item.strip() for item in v.split(',') if item.strip()]
        return v

    @field_validator('branches')
    @classmethod
    def validate_branches(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("at least one branch must be configured")
        return v

    @field_validator('publish_dir')
    @classmethod
    def validate_publish_dir(cls, v: str) -> str:
        """publish_dir must stay inside the source tree"""
        path = PurePosixPath(v.replace('\\', '/'))
        if path.is_absolute():
            raise ValueError(f"publish_dir must be relative, got {v}")
        if '..' in path.parts:
            raise ValueError(f"publish_dir must not leave the source tree: {v}")
        if str(path) in ('', '.'):
            raise ValueError("publish_dir must name a subdirectory")
        return str(path)

    @field_validator('fetch_depth')
    @classmethod
    def validate_fetch_depth(cls, v: int) -> int:
        if v < 0:
            raise ValueError("fetch_depth must be >= 0 (0 means full history)")
        return v

    @field_validator('command_timeout', 'push_timeout')
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        if v < 1:
            raise ValueError("timeouts must be at least 1 second")
        return v

    @property
    def workspace_path(self) -> Path:
        return Path(self.workspace_dir).expanduser().resolve()

    def get_validation_errors(self) -> List[str]:
        """Get list of validation warnings (non-fatal issues)"""
        warnings = []

        for binary in ('git', 'rustup', 'cargo'):
            if shutil.which(binary) is None:
                warnings.append(f"{binary} is not installed or not in PATH")

        if not self.publish_token:
            warnings.append("PUBLISH_TOKEN is not set, publish step will fail")

        return warnings


def _read_yaml(yaml_path: str) -> Dict[str, Any]:
    path = Path(yaml_path)
    if not path.exists():
        raise ConfigError(f"Deploy config not found: {yaml_path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {yaml_path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Deploy config must be a mapping: {yaml_path}")

    for key in ('publish_token', 'github_token'):
        if key in data:
            raise ConfigError(
                f"'{key}' must not be stored in {yaml_path}, use the PUBLISH_TOKEN environment variable"
            )

    unknown = sorted(set(data) - set(Config.model_fields))
    if unknown:
        raise ConfigError(f"Unknown keys in {yaml_path}: {', '.join(unknown)}")
    return data


def load_config(
    env_file: Optional[str] = None,
    yaml_file: Optional[str] = None,
    **overrides
) -> Config:
    """Загрузить конфигурацию

    Args:
        env_file: .env file to read instead of ./.env
        yaml_file: YAML deploy file; its keys override environment values
        **overrides: explicit values (e.g. from CLI flags), highest priority

    Raises:
        ConfigError: If the YAML file or any value is invalid
    """
    values: Dict[str, Any] = {}
    if yaml_file:
        values.update(_read_yaml(yaml_file))
    values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        if env_file:
            config = Config(_env_file=env_file, **values)
        else:
            config = Config(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}")

    register_secret(config.publish_token)
    return config
