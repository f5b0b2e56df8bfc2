"""Batching of streamed tokens before they reach observers."""

import asyncio
from typing import Callable


class TokenBuffer:
    """Coalesce tokens, flushing after ``batch_size`` tokens or ``flush_interval_ms``.

    The timer runs on the current event loop; without a running loop tokens
    are only flushed by size or by an explicit ``flush``.
    """

    def __init__(
        self,
        on_token: Callable[[str], None],
        batch_size: int = 10,
        flush_interval_ms: int = 50,
    ):
        self._on_token = on_token
        self.batch_size = max(1, batch_size)
        self.flush_interval = flush_interval_ms / 1000.0
        self._buffer: list[str] = []
        self._timer: asyncio.TimerHandle | None = None

    def add(self, token: str) -> None:
        if not token:
            return
        self._buffer.append(token)
        if len(self._buffer) >= self.batch_size:
            self.flush()
            return
        if self._timer is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                return
            self._timer = loop.call_later(self.flush_interval, self.flush)

    def flush(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._buffer:
            combined = "".join(self._buffer)
            self._buffer = []
            self._on_token(combined)

    def close(self) -> None:
        """Flush what is left and drop the pending timer."""
        self.flush()

    @property
    def pending(self) -> int:
        return len(self._buffer)
