"""
=============================================================================
CONTENT BLOB
=============================================================================

A ContentBlob is one file's bytes, held in memory for the life of the
process.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        BLOB LIFECYCLE                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   create(size)      zero-filled bytearray of exactly `size` bytes    │
    │        │                                                             │
    │        ▼                                                             │
    │   writable()        mutable view; scanner reads the file into it     │
    │        │                                                             │
    │        ▼                                                             │
    │   seal()            from here on only read-only views exist          │
    │        │                                                             │
    │        ▼                                                             │
    │   data              shared by every worker, never copied             │
    │                                                                      │
    │   release()         only on scan error paths                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Workers send `blob.data` straight to the socket. A read-only memoryview
over the bytearray means no copy is made per response, and no worker can
modify what another worker is sending.
=============================================================================
"""

from typing import Optional

from ..errors import ExitCode, ScanError


class ContentBlob:
    """Immutable, fixed-length, in-memory copy of a file's contents."""

    __slots__ = ("_buffer", "_view", "_sealed")

    def __init__(self, size: int):
        if size < 0:
            raise ValueError(f"Blob size must be >= 0, got {size}")
        try:
            self._buffer: Optional[bytearray] = bytearray(size)
        except MemoryError as e:
            raise ScanError(
                f"Could not allocate {size} bytes for file contents",
                exit_code=ExitCode.MALLOC_FAILED,
            ) from e
        self._view: Optional[memoryview] = None
        self._sealed = False

    @classmethod
    def create(cls, size: int) -> "ContentBlob":
        """Allocate a zero-filled blob of exactly `size` bytes."""
        return cls(size)

    @classmethod
    def from_bytes(cls, data: bytes) -> "ContentBlob":
        """Build an already-sealed blob from existing bytes."""
        blob = cls(len(data))
        blob.writable()[:] = data
        blob.seal()
        return blob

    @property
    def length(self) -> int:
        if self._buffer is None:
            return 0
        return len(self._buffer)

    def __len__(self) -> int:
        return self.length

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def released(self) -> bool:
        return self._buffer is None

    def writable(self) -> memoryview:
        """
        Mutable view for the fill phase.

        Raises:
            RuntimeError: If the blob is already sealed or released.
        """
        if self._buffer is None:
            raise RuntimeError("Blob has been released")
        if self._sealed:
            raise RuntimeError("Blob is sealed; contents are read-only")
        return memoryview(self._buffer)

    def seal(self) -> None:
        """End the fill phase. Idempotent."""
        if self._buffer is None:
            raise RuntimeError("Blob has been released")
        if not self._sealed:
            self._view = memoryview(self._buffer).toreadonly()
            self._sealed = True

    @property
    def data(self) -> memoryview:
        """Read-only view of the contents (seals the blob if needed)."""
        if self._view is None:
            self.seal()
        return self._view

    def release(self) -> None:
        """Drop the buffer. Safe to call more than once."""
        if self._view is not None:
            self._view.release()
            self._view = None
        self._buffer = None

    def __repr__(self) -> str:
        state = "released" if self.released else ("sealed" if self._sealed else "filling")
        return f"ContentBlob(length={self.length}, {state})"


def blob_length(blob: Optional[ContentBlob]) -> int:
    """Length of `blob`, zero for None."""
    if blob is None:
        return 0
    return blob.length


def release_blob(blob: Optional[ContentBlob]) -> None:
    """Release `blob`; does nothing for None."""
    if blob is not None:
        blob.release()
