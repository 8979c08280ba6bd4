"""Run configuration
"""

from dataclasses import dataclass
from typing import Optional

import torch

from .constants import DEFAULT_THREADS, DEFAULT_BATCH_SIZE, DEFAULT_MAX_BYTES, DEFAULT_CHUNK_SIZE, DEFAULT_OVERLAP
from .constants import DEFAULT_DEVICE, DEFAULT_RUNNERS, STITCH_POLICIES, NORM_METHODS
from .errors import ConfigError
from .utils import parse_num


@dataclass(frozen = True)
class RunOptions:
    """Immutable snapshot of the options of a basecalling run

    The values are validated when the object is created, an invalid one
    raises ConfigError.

    Attributes:
        num_threads (int): worker threads for preprocessing and stitching
        batch_size (int): max chunks per inference batch
        max_bytes (int): max bytes of chunk data per inference batch
        chunk_size (int): samples per chunk
        overlap (int): samples shared by consecutive chunks
        device (str): 'cpu', 'cuda' or 'cuda:N'
        num_runners (int): model runners doing inference concurrently
        output (str): output file, None for stdout
        debug_break (int): stop after this many batches
        profile (bool): run the stages one after the other, no overlap
        accel (bool): decode with tensor operations on the runner device
        emit_fastq (bool): write fastq instead of fasta
        qscale (float): scale applied to the qscores
        qbias (float): bias added to the qscores
        beam_size (int): beam size of the cpu decoder, 1 is greedy
        beam_threshold (float): beam cut threshold of the cpu decoder
        stitch_policy (str): 'midpoint' or 'confidence'
        norm_method (str): 'all' or 'noisiest'
        trim (bool): trim the adapter at the start of the reads
        model_stride (int): stride of the model if it does not say
        half (bool): fp16 inference on cuda
    """
    num_threads: int = DEFAULT_THREADS
    batch_size: int = DEFAULT_BATCH_SIZE
    max_bytes: int = DEFAULT_MAX_BYTES
    chunk_size: int = DEFAULT_CHUNK_SIZE
    overlap: int = DEFAULT_OVERLAP
    device: str = DEFAULT_DEVICE
    num_runners: int = DEFAULT_RUNNERS
    output: Optional[str] = None
    debug_break: Optional[int] = None
    profile: bool = False
    accel: bool = False
    emit_fastq: bool = False
    qscale: float = 1.0
    qbias: float = 0.0
    beam_size: int = 1
    beam_threshold: float = 0.1
    stitch_policy: str = 'midpoint'
    norm_method: str = 'all'
    trim: bool = True
    model_stride: Optional[int] = None
    half: bool = False

    def __post_init__(self):
        # accept byte budgets such as '20M'
        object.__setattr__(self, 'max_bytes', parse_num(self.max_bytes))
        self.validate()

    def validate(self):
        if self.num_threads < 1:
            raise ConfigError('Number of threads should be larger than 0. You entered {0}'.format(self.num_threads))
        if self.batch_size < 1:
            raise ConfigError('Batch size should be larger than 0. You entered {0}'.format(self.batch_size))
        if self.max_bytes <= 0:
            raise ConfigError('Maximum number of bytes should be larger than 0. You entered {0}'.format(self.max_bytes))
        if self.chunk_size < 1:
            raise ConfigError('Chunk size should be larger than 0. You entered {0}'.format(self.chunk_size))
        if self.overlap < 1:
            raise ConfigError('Overlap should be larger than 0. You entered {0}'.format(self.overlap))
        if self.overlap >= self.chunk_size:
            raise ConfigError('The overlap between chunks ({0}) cannot be larger or equal to the chunk size ({1})'.format(self.overlap, self.chunk_size))
        if self.num_runners < 1:
            raise ConfigError('Number of runners should be larger than 0. You entered {0}'.format(self.num_runners))
        if self.debug_break is not None and self.debug_break < 1:
            raise ConfigError('Debug break should be larger than 0. You entered {0}'.format(self.debug_break))
        if self.beam_size < 1:
            raise ConfigError('Beam size should be larger than 0. You entered {0}'.format(self.beam_size))
        if self.model_stride is not None and self.model_stride < 1:
            raise ConfigError('Model stride should be larger than 0. You entered {0}'.format(self.model_stride))
        if self.stitch_policy not in STITCH_POLICIES:
            raise ConfigError('Stitch policy should be one of {0}. You entered {1}'.format(STITCH_POLICIES, self.stitch_policy))
        if self.norm_method not in NORM_METHODS:
            raise ConfigError('Normalization method should be one of {0}. You entered {1}'.format(NORM_METHODS, self.norm_method))
        self.torch_device()

    def torch_device(self):
        """The device as a torch.device, checking that it can be used"""
        try:
            device = torch.device(self.device)
        except RuntimeError as err:
            raise ConfigError('Invalid device: {0}'.format(self.device)) from err
        if device.type not in ('cpu', 'cuda'):
            raise ConfigError('Device should be cpu or cuda. You entered {0}'.format(self.device))
        if device.type == 'cuda':
            if not torch.cuda.is_available():
                raise ConfigError('Device {0} requested but cuda is not available'.format(self.device))
            if device.index is not None and device.index >= torch.cuda.device_count():
                raise ConfigError('Device {0} requested but there are only {1} cuda devices'.format(self.device, torch.cuda.device_count()))
        return device

    def summary(self):
        lines = [
            'output path:        {0}'.format(self.output if self.output else '-'),
            'device:             {0}'.format(self.device),
            'chunk size:         {0}'.format(self.chunk_size),
            'batch size:         {0}'.format(self.batch_size),
            'max bytes:          {0:.1f}M'.format(self.max_bytes / 1e6),
            'no. threads:        {0}'.format(self.num_threads),
            'no. runners:        {0}'.format(self.num_runners),
            'overlap:            {0}'.format(self.overlap),
        ]
        return '\n'.join(lines)
