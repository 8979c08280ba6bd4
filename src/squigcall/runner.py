"""Batched inference of chunks through the network
"""

import copy
import queue
import logging
from contextlib import contextmanager

import numpy as np
import torch

from .constants import DEFAULT_STRIDE, SAMPLE_BYTES
from .decoding import build_decoder
from .errors import InferenceError
from .utils import PerfCounters

LOGGER = logging.getLogger(__name__)


def get_stride(model, default = DEFAULT_STRIDE):
    """Total stride of a model, number of input samples per output timestep
    """
    stride = getattr(model, 'stride', None)
    if stride is None:
        return default
    return stride if isinstance(stride, int) else int(stride[0])


class ModelRunner():
    """Owns a model on a device and basecalls chunks in batches

    Chunks are copied into a fixed [slots, 1, chunk_size] input tensor; a
    batch is run when all the slots are used, when one more chunk would go
    over the byte budget, or when flushed. Reads can be mixed within a batch,
    every decoded chunk carries its Chunk back.
    """

    def __init__(self, model, decoder, device = 'cpu', chunk_size = 8000, batch_size = 512,
                 max_bytes = None, stride = None, half = False):
        """
        Args:
            model (nn.Module): network with input [batch, 1, len] and
                output log probabilities [len', batch, classes]
            decoder (Decoder): CPUDecoder or GPUDecoder, decodes the network output
            device (str): device for the forward pass
            chunk_size (int): length of the chunks
            batch_size (int): max number of chunks in a batch
            max_bytes (int): max number of bytes of input data in a batch
            stride (int): stride of the model, taken from the model if not given
            half (bool): run the forward pass in fp16 (only on cuda)
        """
        self.device = torch.device(device)
        self.model = model.to(self.device)
        self.model.eval()
        self.decoder = decoder
        self.chunk_size = chunk_size
        self.batch_size = batch_size
        self.max_bytes = max_bytes if max_bytes is not None else batch_size * chunk_size * SAMPLE_BYTES
        self.stride = stride if stride is not None else get_stride(model)
        self.half = half and self.device.type == 'cuda'

        chunk_bytes = chunk_size * SAMPLE_BYTES
        self.max_slots = max(1, min(self.batch_size, self.max_bytes // chunk_bytes))
        self._input = torch.zeros((self.max_slots, 1, chunk_size), dtype = torch.float32)
        if self.device.type == 'cuda':
            self._input = self._input.pin_memory()

        self._slots = list()
        self._decoded = list()

    def __repr__(self):
        return 'ModelRunner(device={0}, slots={1}, stride={2}, decoder={3})'.format(
            self.device, self.max_slots, self.stride, type(self.decoder).__name__)

    @property
    def pending(self):
        return len(self._slots)

    def accept_chunk(self, chunk, data):
        """Put a chunk in the next free slot of the batch

        Args:
            chunk (Chunk): the chunk
            data (np.array): its zero padded samples

        Returns:
            (bool): whether the batch is full and should be run
        """
        if chunk.size != self.chunk_size:
            raise ValueError('Chunk of size {0} given to a runner of size {1}'.format(chunk.size, self.chunk_size))
        slot = len(self._slots)
        self._input[slot, 0, :] = torch.from_numpy(np.asarray(data, dtype = np.float32))
        self._slots.append(chunk)
        return len(self._slots) >= self.max_slots

    def predict_step(self, x):
        """Forward a batch through the network

        Args:
            x (tensor): [batch, 1, len] on the host

        Returns:
            (tensor): [len', batch, classes] log probabilities
        """
        with torch.no_grad():
            x = x.to(self.device, non_blocking = True)
            with torch.autocast(device_type = self.device.type, dtype = torch.float16, enabled = self.half):
                return self.model(x)

    def run_batch(self, counters = None):
        """Run inference and decoding on the chunks in the slots
        """
        if counters is None:
            counters = PerfCounters()
        n = len(self._slots)
        if n == 0:
            return list()
        chunks, self._slots = self._slots, list()

        with counters.timed('basecall'):
            try:
                scores = self.predict_step(self._input[:n])
                if self.device.type == 'cuda':
                    torch.cuda.synchronize(self.device)
            except RuntimeError as err:
                raise InferenceError('Forward pass of a batch of {0} chunks failed on {1}: {2}'.format(n, self.device, err)) from err

        if scores.dim() != 3 or scores.shape[1] != n:
            raise InferenceError('Unexpected network output shape {0} for a batch of {1} chunks'.format(tuple(scores.shape), n))

        with counters.timed('decode'):
            decoded = self.decoder.decode(scores, chunks, self.stride)
        LOGGER.debug('basecalled batch of %d chunks on %s', n, self.device)
        return decoded

    def flush(self, counters = None):
        """Run the partial batch and return everything decoded since the
        last flush, in the order the chunks were accepted
        """
        self._decoded.extend(self.run_batch(counters))
        decoded, self._decoded = self._decoded, list()
        return decoded

    def submit(self, chunks, arena, counters = None):
        """Basecall chunks of one or more reads

        Args:
            chunks (iterable): Chunk objects
            arena (SignalArena): owner of the signals of the chunks
            counters (PerfCounters): where to add the basecall/decode times

        Returns:
            A (list) of DecodedChunk, one per chunk and in the same order
        """
        self._slots = list()
        self._decoded = list()
        for chunk in chunks:
            if self.accept_chunk(chunk, arena.window(chunk)):
                self._decoded.extend(self.run_batch(counters))
        return self.flush(counters)


class RunnerPool():
    """A fixed set of runners, each one used by a single thread at a time
    """

    def __init__(self, runners):
        if len(runners) < 1:
            raise ValueError('A runner pool needs at least one runner')
        self.runners = list(runners)
        self._idle = queue.Queue()
        for runner in self.runners:
            self._idle.put(runner)

    def __len__(self):
        return len(self.runners)

    @property
    def max_slots(self):
        return min(r.max_slots for r in self.runners)

    @contextmanager
    def acquire(self):
        """Block until a runner is idle and hold it for the block"""
        runner = self._idle.get()
        try:
            yield runner
        finally:
            self._idle.put(runner)


def build_runners(model, options):
    """Create the runners for a run, each with its own copy of the model

    Args:
        model (nn.Module): loaded model
        options (RunOptions): run configuration

    Returns:
        RunnerPool
    """
    runners = list()
    for i in range(options.num_runners):
        replica = model if i == 0 else copy.deepcopy(model)
        decoder = build_decoder(
            options.device,
            accel = options.accel,
            qscale = options.qscale,
            qbias = options.qbias,
            beam_size = options.beam_size,
            beam_threshold = options.beam_threshold,
        )
        runners.append(ModelRunner(
            model = replica,
            decoder = decoder,
            device = options.device,
            chunk_size = options.chunk_size,
            batch_size = options.batch_size,
            max_bytes = options.max_bytes,
            stride = options.model_stride,
            half = options.half,
        ))
        LOGGER.debug('created runner %d: %s', i, runners[-1])
    return RunnerPool(runners)
