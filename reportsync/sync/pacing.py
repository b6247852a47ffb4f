"""Pacing between consecutive upstream calls"""

import time
from abc import ABC, abstractmethod
from typing import Callable


class Pacer(ABC):
    """Admission control between pages, segments and dimensions"""

    @abstractmethod
    def pause(self, reason: str = "") -> None:
        pass


class FixedDelayPacer(Pacer):
    """Sleep a fixed number of seconds before the next call"""

    def __init__(self, delay_seconds: float = 0.5, sleep: Callable[[float], None] = time.sleep):
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    def pause(self, reason: str = "") -> None:
        if self.delay_seconds > 0:
            self._sleep(self.delay_seconds)


class NoPacer(Pacer):
    def pause(self, reason: str = "") -> None:
        return None
