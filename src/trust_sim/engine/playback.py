from __future__ import annotations

import time
from typing import Callable, Generic, Sequence, TypeVar

T = TypeVar("T")


class Playback(Generic[T]):
    """Cursor over a precomputed frame sequence.

    Frames are finished data, so pausing only stops scheduling the next one;
    nothing in flight needs to be aborted.
    """

    def __init__(self, frames: Sequence[T]) -> None:
        self.frames = frames
        self.position = 0
        self.playing = False

    @property
    def current(self) -> T | None:
        if not self.frames:
            return None
        return self.frames[self.position]

    @property
    def at_end(self) -> bool:
        return not self.frames or self.position >= len(self.frames) - 1

    def step(self) -> T | None:
        if self.at_end:
            self.playing = False
            return None
        self.position += 1
        return self.frames[self.position]

    def seek(self, position: int) -> T | None:
        if not self.frames:
            return None
        self.position = max(0, min(len(self.frames) - 1, position))
        return self.frames[self.position]

    def reset(self) -> None:
        self.position = 0
        self.playing = False

    def pause(self) -> None:
        self.playing = False

    def visited(self) -> Sequence[T]:
        """Frames up to and including the cursor."""
        return self.frames[: self.position + 1]

    def play(
        self,
        on_frame: Callable[[T], None],
        delay_s: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> int:
        """Advance until the end or until pause() is called. Returns frames shown."""
        shown = 0
        self.playing = True
        while self.playing:
            frame = self.step()
            if frame is None:
                break
            on_frame(frame)
            shown += 1
            if self.playing and delay_s > 0:
                sleep(delay_s)
        self.playing = False
        return shown
