"""
Shared fixtures: a recording command runner and an isolated config
"""

import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from unittest.mock import patch

import pytest

from core.config import Config
from pipeline.runner import CommandRunner, CommandResult
from pipeline.trigger import PushEvent


class FakeRunner(CommandRunner):
    """Records commands instead of executing them

    fail_on: {prefix: stderr} - matching commands exit 1
    responses: {prefix: stdout} - matching commands succeed with this stdout
    hooks: {prefix: fn(args, cwd)} - side effects, e.g. creating files
    """

    def __init__(
        self,
        fail_on: Optional[Dict[Tuple[str, ...], str]] = None,
        responses: Optional[Dict[Tuple[str, ...], str]] = None,
        hooks: Optional[Dict[Tuple[str, ...], Callable]] = None,
        dry_run: bool = False
    ):
        super().__init__(dry_run=dry_run)
        self.fail_on = fail_on or {}
        self.responses = responses or {}
        self.hooks = hooks or {}
        self.calls: List[List[str]] = []
        self.cwds: List[Optional[Path]] = []

    @staticmethod
    def _match(args: List[str], prefix: Sequence[str]) -> bool:
        return args[:len(prefix)] == list(prefix)

    def run(self, args, cwd=None, timeout=None, env=None, mutating=True) -> CommandResult:
        args = [str(a) for a in args]
        if self.dry_run and mutating:
            self.calls.append(args)
            self.cwds.append(Path(cwd) if cwd else None)
            return CommandResult(args=args, returncode=0, skipped=True)

        self.calls.append(args)
        self.cwds.append(Path(cwd) if cwd else None)

        for prefix, hook in self.hooks.items():
            if self._match(args, prefix):
                hook(args, Path(cwd) if cwd else None)

        for prefix, stderr in self.fail_on.items():
            if self._match(args, prefix):
                return CommandResult(args=args, returncode=1, stderr=stderr)

        for prefix, stdout in self.responses.items():
            if self._match(args, prefix):
                return CommandResult(args=args, returncode=0, stdout=stdout)

        return CommandResult(args=args, returncode=0)

    def called(self, *prefix: str) -> bool:
        return any(self._match(args, prefix) for args in self.calls)

    def index_of(self, *prefix: str) -> int:
        for i, args in enumerate(self.calls):
            if self._match(args, prefix):
                return i
        return -1


def make_config(**values) -> Config:
    """Config isolated from the host environment and any .env file"""
    with patch.dict(os.environ, {}, clear=True):
        return Config(_env_file=None, **values)


@pytest.fixture
def workspace(tmp_path):
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def event():
    return PushEvent(ref="refs/heads/main", sha="abc123def456", repository="octo/crate")


def write_site(root: Path, files: Dict[str, str]):
    """Create files (relative path -> content) under root"""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding='utf-8')


def list_files(root: Path) -> set:
    """Relative posix paths of all files under root, excluding .git"""
    return {
        p.relative_to(root).as_posix()
        for p in root.rglob('*')
        if p.is_file() and '.git' not in p.relative_to(root).parts
    }
