"""
Player abstraction driven by the synchronizer.

Real front-ends wrap their video element; ``ClockedPlayer`` is a headless
player whose position advances with a clock, used by the simulation script
and tests.
"""

import time
from typing import Callable, Optional, Protocol


class Player(Protocol):
    def current_time(self) -> float:
        ...

    def seek(self, seconds: float) -> None:
        ...

    def play(self) -> None:
        ...

    def pause(self) -> None:
        ...

    def set_seekable(self, seekable: bool) -> None:
        ...

    @property
    def finished(self) -> bool:
        ...


class ClockedPlayer:
    def __init__(self, duration: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.duration = duration or 0
        self.clock = clock
        self.seekable = True
        self.playing = False
        self.seeks = 0
        self._position = 0.0
        self._resumed_at: Optional[float] = None

    def _clamp(self, seconds: float) -> float:
        seconds = max(0.0, seconds)
        if self.duration:
            seconds = min(seconds, float(self.duration))
        return seconds

    def current_time(self) -> float:
        position = self._position
        if self.playing and self._resumed_at is not None:
            position += self.clock() - self._resumed_at
        return self._clamp(position)

    def seek(self, seconds: float) -> None:
        self._position = self._clamp(seconds)
        if self.playing:
            self._resumed_at = self.clock()
        self.seeks += 1

    def play(self) -> None:
        if not self.playing:
            self._resumed_at = self.clock()
            self.playing = True

    def pause(self) -> None:
        if self.playing:
            self._position = self.current_time()
            self._resumed_at = None
            self.playing = False

    def set_seekable(self, seekable: bool) -> None:
        self.seekable = seekable

    @property
    def finished(self) -> bool:
        return bool(self.duration) and self.current_time() >= self.duration
