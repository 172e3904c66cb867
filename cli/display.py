"""
Display - вывод хода deploy в терминал

Verbose: каждая команда шага и детали
Quiet: только прогресс и результат
"""

import logging
import sys
from enum import Enum
from typing import Any, Dict, List, Sequence

from core.logging_config import mask_secrets


class DisplayMode(str, Enum):
    VERBOSE = "verbose"
    QUIET = "quiet"


class Colors:
    """ANSI цвета для терминала"""
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"


class Display:
    """Класс для вывода информации в терминал с интеграцией logging"""

    def __init__(self, mode: DisplayMode = DisplayMode.VERBOSE, use_colors: bool = True):
        self.mode = mode
        self.use_colors = use_colors and sys.stdout.isatty()
        self._logger = logging.getLogger("docdeploy.display")

    def _color(self, text: str, color: str) -> str:
        if not self.use_colors:
            return text
        return f"{color}{text}{Colors.RESET}"

    def _print(self, text: str, color: str):
        print(self._color(mask_secrets(text), color))

    def header(self, text: str):
        line = "=" * 60
        print()
        self._print(line, Colors.CYAN)
        self._print(f"  {text}", Colors.BOLD + Colors.CYAN)
        self._print(line, Colors.CYAN)
        print()

    def separator(self):
        self._print("-" * 60, Colors.DIM)

    def info(self, text: str):
        self._print(f"  {text}", Colors.WHITE)

    def success(self, text: str):
        self._print(f"  ✓ {text}", Colors.GREEN)

    def warning(self, text: str):
        self._print(f"  ⚠ {text}", Colors.YELLOW)

    def error(self, text: str):
        self._print(f"  ✗ {text}", Colors.RED)
        self._logger.debug(f"ERROR: {text}")

    def progress(self, text: str):
        """Прогресс (показывается в обоих режимах)"""
        if self.mode == DisplayMode.QUIET:
            self._print(f"→ {text}", Colors.DIM)
        else:
            self._print(f"  → {text}", Colors.BLUE)

    def step_start(self, index: int, total: int, name: str):
        if self.mode != DisplayMode.VERBOSE:
            return
        print()
        self._print(f"  Step {index}/{total}: {name}", Colors.BOLD + Colors.MAGENTA)
        self._print("  " + "-" * 40, Colors.DIM)

    def step_complete(self, name: str, message: str, duration_ms: float):
        self._print(f"  ✓ {name}: {message} ({duration_ms / 1000:.1f}s)", Colors.GREEN)

    def commands(self, commands: Sequence[Sequence[str]]):
        """Команды шага (только в verbose режиме)"""
        if self.mode != DisplayMode.VERBOSE:
            return
        for args in commands:
            self._print(f"    $ {' '.join(args)}", Colors.DIM)

    def plan(self, commands: List[List[str]]):
        for index, args in enumerate(commands, start=1):
            self._print(f"  {index:2d}. {' '.join(args)}", Colors.WHITE)

    def final_report(self, stats: Dict[str, Any]):
        print()
        self.separator()
        self._print("  FINAL REPORT", Colors.BOLD)
        self.separator()

        for key, value in stats.items():
            if value in (None, [], ""):
                continue
            self._print(f"  {key}: {value}", Colors.WHITE)

        self.separator()
