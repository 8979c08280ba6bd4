"""
Functions and classes to read data.
"""

import os
from pathlib import Path
from typing import NamedTuple, Optional

import numpy as np
from ont_fast5_api.fast5_interface import get_fast5_file

from .errors import SourceReadError


class ReadRecord(NamedTuple):
    """Raw data of a read as it comes from a signal source

    Attributes:
        read_id (str): id of the read
        raw (np.array::int): raw signal
        offset (int): offset of the read signal
        range (float): range of the raw data
        digitisation (float): digitisation
    """
    read_id: str
    raw: np.ndarray
    offset: int = 0
    range: Optional[float] = None
    digitisation: Optional[float] = None


def record_from_fast5_read(read):
    """Build a ReadRecord from an ont_fast5_api read
    """
    channel_info = read.handle[read.global_key + 'channel_id'].attrs
    return ReadRecord(
        read_id = read.read_id,
        raw = read.handle[read.raw_dataset_name][:],
        offset = int(channel_info['offset']),
        range = float(channel_info['range']),
        digitisation = float(channel_info['digitisation']),
    )


class Fast5Source():
    """Iterates over all the reads of a set of fast5 files

    Files are opened one at a time, in the order they are given or, for a
    directory, in sorted path order.
    """

    def __init__(self, data_dir = None, fast5_list = None, recursive = True):
        """
        Args:
            data_dir (str): dir (or single file) with the fast5 files
            fast5_list (str): file with a list of files to be processed
            recursive (bool): if the data_dir should be searched recursively

        data_dir and fast5_list are exclusive
        """
        if (data_dir is None) == (fast5_list is None):
            raise ValueError('Either data_dir or fast5_list must be given')

        self.data_dir = data_dir
        self.recursive = recursive
        if fast5_list is None:
            self.data_files = self.find_all_fast5_files()
        else:
            self.data_files = self.read_fast5_list(fast5_list)

    def __len__(self):
        return len(self.data_files)

    def __iter__(self):
        for fast5_file in self.data_files:
            with get_fast5_file(fast5_file, 'r') as f5_fh:
                for read in f5_fh.get_reads():
                    yield record_from_fast5_read(read)

    def find_all_fast5_files(self):
        """Find all fast5 files in a dir
        """
        if os.path.isfile(self.data_dir):
            return [str(self.data_dir)]
        if not os.path.isdir(self.data_dir):
            raise SourceReadError('No such file or directory: ' + str(self.data_dir))

        if self.recursive:
            files = Path(self.data_dir).rglob('*.fast5')
        else:
            files = Path(self.data_dir).glob('*.fast5')
        return sorted(str(f) for f in files)

    def read_fast5_list(self, fast5_list):
        """Read a text file with the files to be processed
        """

        files_list = list()
        with open(fast5_list, 'r') as f:
            for line in f:
                line = line.strip('\n')
                if line:
                    files_list.append(line)
        return files_list


class ArraySource():
    """Reads that are already in memory, or in a .npz file with one array
    per read id
    """

    def __init__(self, reads):
        """
        Args:
            reads (dict, list, str): read_id -> signal dict, list of
                (read_id, signal) tuples or path to a .npz file
        """
        if isinstance(reads, (str, os.PathLike)):
            with np.load(reads) as npz:
                reads = {k: npz[k] for k in npz.files}
        if isinstance(reads, dict):
            reads = list(reads.items())
        self.reads = reads

    def __len__(self):
        return len(self.reads)

    def __iter__(self):
        for read_id, signal in self.reads:
            yield ReadRecord(read_id = str(read_id), raw = np.asarray(signal))

