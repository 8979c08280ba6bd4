"""Contains general utilities
"""
import re
import time
import logging
from contextlib import contextmanager

from .errors import ConfigError

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
LOG_LEVELS = [logging.ERROR, logging.WARNING, logging.INFO, logging.DEBUG]

STAGES = ('read', 'tensor', 'trim', 'scale', 'chunk', 'basecall', 'decode', 'stitch', 'write')

LOGGER = logging.getLogger(__name__)


def configure_logging(verbosity = 1, log_file = None):
    """Configure the root logger

    Args:
        verbosity (int): 0 errors only, 1 warnings, 2 info, 3 or more debug
        log_file (str): optional file to also write the log to
    """
    level = LOG_LEVELS[max(0, min(verbosity, len(LOG_LEVELS) - 1))]
    handlers = [logging.StreamHandler()]
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(level = level, format = LOG_FORMAT, handlers = handlers, force = True)


def parse_num(value):
    """Parse a number with an optional K/M/G suffix

    Args:
        value (str, int, float): e.g. '20M', '1.5G', 4096

    Returns:
        (int): the number of units

    Example:
        >>> parse_num('2.5K')
        2500
    """
    if isinstance(value, (int, float)):
        return int(value)

    match = re.fullmatch(r'\s*([0-9]*\.?[0-9]+)\s*([kKmMgG]?)\s*', str(value))
    if match is None:
        raise ConfigError('Could not parse number: ' + str(value))
    number, suffix = match.groups()
    multiplier = {'': 1, 'k': 1e3, 'm': 1e6, 'g': 1e9}[suffix.lower()]
    return int(float(number) * multiplier)


class PerfCounters():
    """Cumulative wall time per pipeline stage

    Each stage call gets its own counters and the driver merges them, so
    several pipelines can run side by side without sharing state.
    """

    def __init__(self):
        self.times = {stage: 0.0 for stage in STAGES}
        self.num_samples = 0
        self.num_reads = 0
        self.total_time = 0.0

    @contextmanager
    def timed(self, stage):
        """Add the time spent inside the block to a stage

        Example:
            with counters.timed('trim'):
                start = trim_signal(signal)
        """
        t0 = time.perf_counter()
        try:
            yield
        finally:
            self.times[stage] += time.perf_counter() - t0

    def merge(self, other):
        for stage, value in other.times.items():
            self.times[stage] += value
        self.num_samples += other.num_samples
        self.num_reads += other.num_reads
        return self

    @property
    def samples_per_second(self):
        if self.total_time <= 0:
            return 0.0
        return self.num_samples / self.total_time

    def summary(self):
        lines = ['performance summary']
        for stage in STAGES:
            lines.append('{0:<18} {1:f}'.format(stage + ':', self.times[stage]))
        lines.append('{0:<18} {1:d}'.format('reads:', self.num_reads))
        lines.append('{0:<18} {1:f}'.format('samples/s:', self.samples_per_second))
        return '\n'.join(lines)

    def report(self, logger = LOGGER):
        logger.info(self.summary())
