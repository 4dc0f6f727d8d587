# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Savepoint frame bookkeeping for one transaction scope.

Frames are kept in creation order.  Several frames may share a caller
name; lookups scan from the most recent frame backwards, so rollback and
release always target the newest live frame with that name.  Every frame
gets a unique backend name (``sp_<name>_<sequence>``) so that repeated
caller names never collide at the SQL level.
"""

from __future__ import annotations

import itertools
import re
from dataclasses import dataclass

from unidb.core.exceptions import ErrorCode, TransactionError

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_]")


@dataclass(frozen=True, slots=True)
class SavepointFrame:
    """One live rollback point.

    ``requested_name`` is ``None`` for frames created by a nested
    ``transaction()`` call; those cannot be addressed by name.
    """

    requested_name: str | None
    internal_name: str
    created_at_sequence: int


class SavepointStack:
    """Ordered stack of live savepoint frames for one scope."""

    def __init__(self) -> None:
        self._frames: list[SavepointFrame] = []
        self._sequence = itertools.count(1)

    def __len__(self) -> int:
        return len(self._frames)

    @property
    def frames(self) -> tuple[SavepointFrame, ...]:
        return tuple(self._frames)

    def push(self, name: str | None) -> SavepointFrame:
        """Create a frame on top of the stack and return it."""
        sequence = next(self._sequence)
        label = _UNSAFE_CHARS.sub("_", name)[:40] if name else "nested"
        frame = SavepointFrame(
            requested_name=name,
            internal_name=f"sp_{label}_{sequence}",
            created_at_sequence=sequence,
        )
        self._frames.append(frame)
        return frame

    def resolve(self, name: str) -> SavepointFrame:
        """Return the most recent live frame named *name*.

        Raises:
            TransactionError: If no live frame carries that name.
        """
        for frame in reversed(self._frames):
            if frame.requested_name == name:
                return frame
        msg = f"Savepoint {name!r} does not exist or has been released or rolled back"
        raise TransactionError(msg, code=ErrorCode.SAVEPOINT_FAILED)

    def is_live(self, frame: SavepointFrame) -> bool:
        return frame in self._frames

    def rollback_to(self, frame: SavepointFrame) -> list[SavepointFrame]:
        """Destroy every frame created after *frame*; *frame* stays live."""
        index = self._index(frame)
        destroyed = self._frames[index + 1 :]
        del self._frames[index + 1 :]
        return destroyed

    def release(self, frame: SavepointFrame) -> list[SavepointFrame]:
        """Destroy *frame* and every frame created after it."""
        index = self._index(frame)
        destroyed = self._frames[index:]
        del self._frames[index:]
        return destroyed

    def discard(self, frame: SavepointFrame) -> None:
        """Forget *frame* and its successors if still live, without raising."""
        if frame in self._frames:
            del self._frames[self._frames.index(frame) :]

    def clear(self) -> None:
        self._frames.clear()

    def _index(self, frame: SavepointFrame) -> int:
        try:
            return self._frames.index(frame)
        except ValueError:
            msg = f"Savepoint {frame.internal_name!r} is no longer live"
            raise TransactionError(msg, code=ErrorCode.SAVEPOINT_FAILED) from None
