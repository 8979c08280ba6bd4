"""Writing of the basecalls to fasta/fastq
"""

import sys
import threading

from .errors import ConfigError


def format_record(read_id, sequence, qstring, emit_fastq = False):
    if emit_fastq:
        fastq_string = '@' + str(read_id) + '\n'
        fastq_string += sequence + '\n'
        fastq_string += '+\n'
        fastq_string += qstring + '\n'
        return fastq_string
    return '>' + str(read_id) + '\n' + sequence + '\n'


class OutputWriter():
    """Single shared output, writes from several threads are serialized

    Args:
        output (str): file to write to, stdout if None
    """

    def __init__(self, output = None):
        self.output = output
        self._lock = threading.Lock()
        self.num_written = 0
        if output is None:
            self._handle = sys.stdout
            self._owns_handle = False
        else:
            try:
                self._handle = open(output, 'w')
            except OSError as err:
                raise ConfigError('Error in opening output file: ' + str(output)) from err
            self._owns_handle = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def write(self, read_id, sequence, qstring, emit_fastq = False):
        if len(sequence) != len(qstring):
            raise ValueError('Read {0} has {1} bases and {2} qualities'.format(read_id, len(sequence), len(qstring)))
        record = format_record(read_id, sequence, qstring, emit_fastq)
        with self._lock:
            self._handle.write(record)
            self.num_written += 1

    def close(self):
        with self._lock:
            self._handle.flush()
            if self._owns_handle and not self._handle.closed:
                self._handle.close()
