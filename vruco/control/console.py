"""Line-oriented control surface: exit / centre / calibrate."""

from __future__ import annotations

import logging
from typing import Iterable, TextIO

from .flags import ControlFlags

logger = logging.getLogger(__name__)

COMMANDS = ("exit", "centre", "calibrate")


def handle_command(token: str, flags: ControlFlags) -> bool:
    """Apply one command token. Returns False for unrecognized input."""
    if token == "exit":
        flags.request_exit()
    elif token == "centre":
        flags.request_centre()
    elif token == "calibrate":
        flags.request_calibration()
    else:
        logger.warning("[CONSOLE] Invalid Input: %r (expected one of %s)", token, "|".join(COMMANDS))
        return False
    logger.info("[CONSOLE] %s requested", token)
    return True


def _tokens(stream: Iterable[str]) -> Iterable[str]:
    for line in stream:
        yield from line.split()


def run_console(stream: TextIO, flags: ControlFlags) -> None:
    """Read whitespace-separated commands until 'exit' or end of input."""
    for token in _tokens(stream):
        handle_command(token, flags)
        if flags.exit_requested():
            return
    # Input closed: nobody can send 'exit' anymore.
    flags.request_exit()
