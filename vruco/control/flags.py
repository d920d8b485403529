"""Cross-thread control flags shared by the console and the tracker."""

from __future__ import annotations

import threading


class ControlFlags:
    """Single-writer / single-reader request flags.

    The console thread sets requests; the tracking thread polls and
    clears them. Each flag is a threading.Event so a set() is visible to
    the other thread as soon as it returns.
    """

    def __init__(self) -> None:
        self._centre = threading.Event()
        self._calibrate = threading.Event()
        self._exit = threading.Event()

    def request_centre(self) -> None:
        self._centre.set()

    def request_calibration(self) -> None:
        self._calibrate.set()

    def request_exit(self) -> None:
        self._exit.set()

    def centre_requested(self) -> bool:
        return self._centre.is_set()

    def calibration_requested(self) -> bool:
        return self._calibrate.is_set()

    def exit_requested(self) -> bool:
        return self._exit.is_set()

    def consume_centre(self) -> bool:
        """Test-and-clear for the centre request."""
        if not self._centre.is_set():
            return False
        self._centre.clear()
        return True

    def consume_calibration(self) -> bool:
        if not self._calibrate.is_set():
            return False
        self._calibrate.clear()
        return True
