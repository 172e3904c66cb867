"""
Command Runner - запуск внешних процессов (git, rustup, cargo)

Every step talks to the outside world through this class, so tests can
swap it for a recorder and dry runs can skip execution.
"""

import logging
import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from core.exceptions import CommandError
from core.logging_config import mask_secrets


logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT = 1800


@dataclass
class CommandResult:
    """Результат внешней команды"""
    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: float = 0.0
    skipped: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0


def format_command(args: Sequence[str]) -> str:
    """Command line for logs, with secrets masked"""
    return mask_secrets(" ".join(str(a) for a in args))


class CommandRunner:
    """Sequential subprocess runner"""

    def __init__(
        self,
        timeout: int = DEFAULT_TIMEOUT,
        dry_run: bool = False,
        env: Optional[Dict[str, str]] = None
    ):
        self.timeout = timeout
        self.dry_run = dry_run
        self.env = env or {}

    def run(
        self,
        args: Sequence[str],
        cwd: Optional[Union[str, Path]] = None,
        timeout: Optional[int] = None,
        env: Optional[Dict[str, str]] = None,
        mutating: bool = True
    ) -> CommandResult:
        """Run a command, never raising on failure

        Args:
            args: argv list
            cwd: working directory
            timeout: seconds, defaults to runner timeout
            env: extra environment variables
            mutating: in dry-run mode commands with side effects are
                logged and skipped; read-only ones still run

        Returns:
            CommandResult (returncode -1 on timeout or missing binary)
        """
        args = [str(a) for a in args]
        if timeout is None:
            timeout = self.timeout
        command = format_command(args)

        if self.dry_run and mutating:
            logger.info(f"[DRY RUN] Would run: {command}")
            return CommandResult(args=args, returncode=0, skipped=True)

        full_env = None
        if self.env or env:
            full_env = {**os.environ, **self.env, **(env or {})}

        logger.debug(f"$ {command}", extra={"command": command})
        started = time.monotonic()
        try:
            result = subprocess.run(
                args,
                cwd=str(cwd) if cwd is not None else None,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=full_env
            )
        except subprocess.TimeoutExpired:
            return CommandResult(
                args=args,
                returncode=-1,
                stderr=f"Command timed out after {timeout}s",
                duration_ms=(time.monotonic() - started) * 1000
            )
        except OSError as e:
            return CommandResult(
                args=args,
                returncode=-1,
                stderr=str(e),
                duration_ms=(time.monotonic() - started) * 1000
            )

        duration_ms = (time.monotonic() - started) * 1000
        logger.debug(
            f"exit {result.returncode} in {duration_ms:.0f}ms: {command}",
            extra={"command": command, "returncode": result.returncode, "duration_ms": duration_ms}
        )
        return CommandResult(
            args=args,
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
            duration_ms=duration_ms
        )

    def check(self, args: Sequence[str], **kwargs) -> CommandResult:
        """Run a command and raise CommandError if it fails"""
        result = self.run(args, **kwargs)
        if not result.success:
            raise CommandError(
                f"Command failed ({result.returncode}): {format_command(result.args)}: "
                f"{mask_secrets(result.stderr.strip())}",
                command=[mask_secrets(a) for a in result.args],
                returncode=result.returncode,
                stderr=mask_secrets(result.stderr)
            )
        return result
