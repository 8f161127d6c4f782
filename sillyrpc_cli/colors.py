"""ANSI color helpers for CLI output."""

import os
import sys


class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"


def _use_color() -> bool:
    if os.getenv("NO_COLOR"):
        return False
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def color(text: str, *codes: str) -> str:
    """Wrap text in ANSI codes when stdout is a terminal."""
    if not codes or not _use_color():
        return text
    return "".join(codes) + text + Colors.RESET
