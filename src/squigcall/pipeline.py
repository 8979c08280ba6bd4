"""Basecalling of complete reads: trim, scale, chunk, infer, decode, stitch, write
"""

import time
import logging
from collections import defaultdict, deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum

from tqdm import tqdm

from .chunking import SignalArena, chunk_signal, num_chunks
from .errors import SquigcallError, SourceReadError
from .normalization import to_picoamps, trim_signal, scale_signal
from .stitching import stitch_chunks
from .utils import PerfCounters

LOGGER = logging.getLogger(__name__)


class ReadState(Enum):
    READ = 'read'
    PREPROCESSED = 'preprocessed'
    CHUNKED = 'chunked'
    INFERRED = 'inferred'
    STITCHED = 'stitched'
    EMITTED = 'emitted'
    FAILED = 'failed'


TRANSITIONS = {
    ReadState.READ: ReadState.PREPROCESSED,
    ReadState.PREPROCESSED: ReadState.CHUNKED,
    ReadState.CHUNKED: ReadState.INFERRED,
    ReadState.INFERRED: ReadState.STITCHED,
    ReadState.STITCHED: ReadState.EMITTED,
}


@dataclass
class ReadResult:
    """Basecalls of a read

    Attributes:
        read_id (str): id of the read
        sequence (str): called bases
        qstring (str): phred+33 quality of each base
        num_samples (int): samples of the raw signal
        low_confidence (bool): the chunks could not be stitched consistently
    """
    read_id: str
    sequence: str
    qstring: str
    num_samples: int = 0
    low_confidence: bool = False


class ReadTask():
    """A read on its way through the pipeline

    The state only moves forward one step at a time, or to FAILED.
    """

    def __init__(self, record):
        self.record = record
        self.state = ReadState.READ
        self.reason = None
        self.owner = None
        self.chunks = list()
        self.decoded = list()
        self.result = None
        self.counters = PerfCounters()

    @property
    def read_id(self):
        return self.record.read_id

    def advance(self, state):
        if self.state in (ReadState.EMITTED, ReadState.FAILED):
            raise RuntimeError('Read {0} is already {1}'.format(self.read_id, self.state.value))
        if TRANSITIONS[self.state] != state:
            raise RuntimeError('Read {0} cannot go from {1} to {2}'.format(self.read_id, self.state.value, state.value))
        self.state = state

    def fail(self, reason):
        self.state = ReadState.FAILED
        self.reason = str(reason)


class BasecallPipeline():
    """Drives the reads of a signal source through the runners

    Reads are grouped so that a group fills about one batch of a runner.
    Preprocessing and stitching run on a pool of `num_threads` threads,
    inference of different groups runs concurrently on the runners. At most
    2 * num_runners groups are in flight and they are emitted in the order
    they were read, so the output follows the order of the source.
    """

    def __init__(self, options, runners):
        """
        Args:
            options (RunOptions): run configuration
            runners (RunnerPool): runners for the inference
        """
        self.options = options
        self.runners = runners
        self.arena = SignalArena()

    @property
    def max_in_flight(self):
        if self.options.profile:
            return 1
        return 2 * len(self.runners)

    def preprocess(self, task):
        """Convert, trim, scale and chunk a read"""
        options = self.options
        counters = task.counters
        record = task.record
        try:
            with counters.timed('tensor'):
                signal = to_picoamps(record.raw, record.offset, record.range, record.digitisation)
            counters.num_samples += len(signal)

            with counters.timed('trim'):
                if options.trim:
                    signal = signal[trim_signal(signal):]

            with counters.timed('scale'):
                signal = scale_signal(signal, method = options.norm_method)
            task.advance(ReadState.PREPROCESSED)

            with counters.timed('chunk'):
                task.owner = self.arena.add(record.read_id, signal)
                task.chunks = list(chunk_signal(signal, options.chunk_size, options.overlap, owner = task.owner))
            task.advance(ReadState.CHUNKED)
        except Exception as err:
            task.fail(err)
            raise
        return task

    def infer(self, tasks, counters):
        """Basecall all the chunks of a group of reads in one go"""
        chunks = [c for task in tasks for c in task.chunks]
        try:
            with self.runners.acquire() as runner:
                decoded = runner.submit(chunks, self.arena, counters)
        except Exception as err:
            for task in tasks:
                task.fail(err)
            raise

        by_owner = defaultdict(list)
        for d in decoded:
            by_owner[d.chunk.owner].append(d)
        for task in tasks:
            task.decoded = by_owner[task.owner]
            task.advance(ReadState.INFERRED)
        return tasks

    def stitch(self, task):
        """Stitch the decoded chunks of a read and free its signal"""
        with task.counters.timed('stitch'):
            stitched = stitch_chunks(task.decoded, policy = self.options.stitch_policy)
        read_id = self.arena.read_id(task.owner)
        if not stitched.consistent:
            LOGGER.warning('read %s flagged as low confidence', read_id)
        task.result = ReadResult(
            read_id = read_id,
            sequence = stitched.sequence,
            qstring = stitched.qstring,
            num_samples = task.counters.num_samples,
            low_confidence = not stitched.consistent,
        )
        self.arena.release(task.owner)
        task.chunks, task.decoded = list(), list()
        task.advance(ReadState.STITCHED)
        return task

    def process_group(self, preprocessed, cpu_pool):
        """Wait for the preprocessing of a group, infer it and stitch its reads

        Returns:
            (list, PerfCounters): the tasks, stitched, and the inference times
        """
        counters = PerfCounters()
        tasks = [f.result() for f in preprocessed]
        self.infer(tasks, counters)
        tasks = list(cpu_pool.map(self.stitch, tasks))
        return tasks, counters

    def groups(self, source, counters):
        """Pull records from the source and group them into batches

        The number of chunks of a read is estimated from its untrimmed
        length, a group is closed when it would fill the smallest runner.

        Raises:
            SourceReadError: if the source fails for any reason other than
                reaching its end
        """
        slots = self.runners.max_slots
        iterator = iter(source)
        group, group_chunks = list(), 0
        while True:
            with counters.timed('read'):
                try:
                    record = next(iterator)
                except StopIteration:
                    break
                except SquigcallError:
                    raise
                except Exception as err:
                    raise SourceReadError('Could not read the next record after {0} reads: {1}'.format(counters.num_reads, err), reads_processed = counters.num_reads) from err

            n = num_chunks(len(record.raw), self.options.chunk_size, self.options.overlap)
            if group and group_chunks + n > slots:
                yield group
                group, group_chunks = list(), 0
            group.append(ReadTask(record))
            group_chunks += n
        if group:
            yield group

    def results(self, source, counters = None):
        """Basecall all the reads of a source

        Args:
            source (iterable): yields ReadRecord
            counters (PerfCounters): where the stage times are accumulated

        Returns:
            A generator of stitched ReadTask, in the order of the source
        """
        if counters is None:
            counters = PerfCounters()
        debug_break = self.options.debug_break
        in_flight = deque()
        num_batches = 0

        with ThreadPoolExecutor(self.options.num_threads) as cpu_pool, \
             ThreadPoolExecutor(self.max_in_flight) as group_pool:
            try:
                for group in self.groups(source, counters):
                    preprocessed = [cpu_pool.submit(self.preprocess, task) for task in group]
                    in_flight.append(group_pool.submit(self.process_group, preprocessed, cpu_pool))
                    num_batches += 1

                    while len(in_flight) >= self.max_in_flight:
                        yield from self._collect(in_flight.popleft(), counters)

                    if debug_break is not None and num_batches >= debug_break:
                        LOGGER.info('debug break after %d batches', num_batches)
                        break

                while in_flight:
                    yield from self._collect(in_flight.popleft(), counters)
            finally:
                for future in in_flight:
                    future.cancel()

    def _collect(self, future, counters):
        tasks, group_counters = future.result()
        counters.merge(group_counters)
        for task in tasks:
            counters.merge(task.counters)
            yield task

    def run(self, source, writer, verbose = False):
        """Basecall a source and write the reads

        Args:
            source (iterable): yields ReadRecord
            writer (OutputWriter): where the reads are written
            verbose (bool): show a progress bar

        Returns:
            PerfCounters of the run, also logged at the end (or on failure)
        """
        self.options.validate()
        counters = PerfCounters()
        t0 = time.perf_counter()
        try:
            with tqdm(disable = not verbose, unit = ' reads') as progress:
                for task in self.results(source, counters):
                    result = task.result
                    with counters.timed('write'):
                        writer.write(result.read_id, result.sequence, result.qstring, emit_fastq = self.options.emit_fastq)
                    task.advance(ReadState.EMITTED)
                    counters.num_reads += 1
                    progress.update(1)
        except SquigcallError as err:
            LOGGER.error('run aborted after %d reads: %s', counters.num_reads, err)
            raise
        finally:
            counters.total_time = time.perf_counter() - t0
            counters.report()
        return counters
