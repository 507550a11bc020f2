"""Chunk planning for resumable uploads."""

from typing import List, NamedTuple

CHUNK_SIZE = 1024 * 1024


class ChunkRange(NamedTuple):
    """Half-open byte range ``[start, end)`` of one chunk."""

    index: int
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start


def _check(file_size: int, chunk_size: int) -> None:
    if file_size < 0:
        raise ValueError(f"file_size must be non-negative, got {file_size}")
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")


def count_chunks(file_size: int, chunk_size: int = CHUNK_SIZE) -> int:
    """Return ``ceil(file_size / chunk_size)``; an empty file has no chunks."""
    _check(file_size, chunk_size)
    return (file_size + chunk_size - 1) // chunk_size


def chunk_range(index: int, file_size: int, chunk_size: int = CHUNK_SIZE) -> ChunkRange:
    """Return the byte range of chunk ``index``.

    Raises:
        IndexError: If ``index`` is outside ``[0, count_chunks(...))``.
    """
    total = count_chunks(file_size, chunk_size)
    if not 0 <= index < total:
        raise IndexError(f"Chunk index {index} out of range for {total} chunks")
    start = index * chunk_size
    return ChunkRange(index, start, min(start + chunk_size, file_size))


def plan_chunks(file_size: int, chunk_size: int = CHUNK_SIZE) -> List[ChunkRange]:
    """Return every chunk range of a file, in order."""
    return [
        chunk_range(index, file_size, chunk_size)
        for index in range(count_chunks(file_size, chunk_size))
    ]
