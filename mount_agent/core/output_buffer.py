from collections import deque
from typing import Deque


class OutputBuffer:
    """
    Append-only text buffer for helper output, capped at max_chars.

    When the cap is exceeded the oldest characters are dropped, so a chatty or
    long-lived helper cannot grow the agent's memory without bound.
    """

    def __init__(self, max_chars: int = 64 * 1024):
        if max_chars <= 0:
            raise ValueError("max_chars must be positive")
        self._max_chars = max_chars
        self._chunks: Deque[str] = deque()
        self._size = 0
        self._truncated = False

    def append(self, text: str) -> None:
        if not text:
            return
        self._chunks.append(text)
        self._size += len(text)

        while self._size > self._max_chars:
            excess = self._size - self._max_chars
            oldest = self._chunks[0]
            if len(oldest) <= excess:
                self._chunks.popleft()
                self._size -= len(oldest)
            else:
                self._chunks[0] = oldest[excess:]
                self._size -= excess
            self._truncated = True

    @property
    def text(self) -> str:
        if len(self._chunks) > 1:
            # Collapse so repeated reads stay cheap
            joined = "".join(self._chunks)
            self._chunks.clear()
            self._chunks.append(joined)
        return self._chunks[0] if self._chunks else ""

    @property
    def truncated(self) -> bool:
        return self._truncated

    @property
    def max_chars(self) -> int:
        return self._max_chars

    def __len__(self) -> int:
        return self._size

    def __str__(self) -> str:
        return self.text
