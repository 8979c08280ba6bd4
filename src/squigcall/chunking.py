"""Splitting of reads into overlapping chunks for the network
"""

import threading
from dataclasses import dataclass

import numpy as np

from .errors import ConfigError


@dataclass(frozen = True)
class Chunk:
    """A window over the signal of a read

    Chunks do not hold any data, they are resolved through the
    SignalArena that owns the signal of the read.

    Attributes:
        owner (int): arena id of the read the chunk belongs to
        index (int): position of the chunk within the read
        start (int): offset of the first sample in the read signal
        length (int): number of real (unpadded) samples
        size (int): length of the window after zero padding
        overlap (int): samples shared with the previous chunk
    """
    owner: int
    index: int
    start: int
    length: int
    size: int
    overlap: int

    @property
    def end(self):
        return self.start + self.length

    @property
    def padding(self):
        return self.size - self.length


def check_chunk_params(chunk_size, overlap):
    if chunk_size < 1:
        raise ConfigError('Chunk size should be larger than 0, given: ' + str(chunk_size))
    if overlap < 0 or overlap >= chunk_size:
        raise ConfigError('The overlap between chunks ({0}) must be non-negative and smaller than the chunk size ({1})'.format(overlap, chunk_size))


def num_chunks(length, chunk_size, overlap):
    """Number of chunks a signal of a given length is split into"""
    step = chunk_size - overlap
    n = -(-(length - overlap) // step)
    return max(1, n)


class ChunkSequence():
    """The chunks of a signal, built on demand

    Every iteration starts again from the first chunk, so the same object
    can be walked as many times as needed.
    """

    def __init__(self, length, chunk_size, overlap, owner = 0):
        check_chunk_params(chunk_size, overlap)
        self.length = length
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.owner = owner

    def __len__(self):
        return num_chunks(self.length, self.chunk_size, self.overlap)

    def __iter__(self):
        step = self.chunk_size - self.overlap
        for i in range(len(self)):
            start = i * step
            yield Chunk(
                owner = self.owner,
                index = i,
                start = start,
                length = min(self.chunk_size, self.length - start) if self.length > start else 0,
                size = self.chunk_size,
                overlap = self.overlap if i > 0 else 0,
            )


def chunk_signal(signal, chunk_size, overlap, owner = 0):
    """Convert a read into overlapping chunks before calling

    Windows start at the beginning of the read and advance by
    chunk_size - overlap samples; the last one is shorter than chunk_size
    and gets zero padded when resolved. A read shorter than chunk_size
    (even an empty one) gives a single chunk.

    Args:
        signal (np.array): signal of the read, only its length is used
        chunk_size (int): length of the windows
        overlap (int): samples shared by consecutive windows
        owner (int): arena id of the read

    Returns:
        A ChunkSequence, iterating it gives the Chunk objects ordered by start

    Raises:
        ConfigError: if the chunk size or the overlap are not valid
    """
    return ChunkSequence(len(signal), chunk_size, overlap, owner = owner)


class SignalArena():
    """Owns the signals of the reads that are in flight

    Chunks refer to a signal by its owner id, so batches can mix reads
    from several threads without holding references to the arrays.
    """

    def __init__(self):
        self._signals = dict()
        self._read_ids = dict()
        self._next_owner = 0
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._signals)

    def add(self, read_id, signal):
        with self._lock:
            owner = self._next_owner
            self._next_owner += 1
            self._signals[owner] = signal
            self._read_ids[owner] = read_id
        return owner

    def signal(self, owner):
        with self._lock:
            return self._signals[owner]

    def read_id(self, owner):
        with self._lock:
            return self._read_ids[owner]

    def window(self, chunk):
        """Data of a chunk, zero padded at the end to the chunk size

        Returns:
            np.array: float32 array of length chunk.size
        """
        signal = self.signal(chunk.owner)
        out = np.zeros(chunk.size, dtype = np.float32)
        out[:chunk.length] = signal[chunk.start:chunk.end]
        return out

    def release(self, owner):
        with self._lock:
            self._signals.pop(owner, None)
            self._read_ids.pop(owner, None)
