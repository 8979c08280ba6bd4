"""Small deterministic networks for the tests
"""

import numpy as np
import torch
from torch import nn


class StepModel(nn.Module):
    """Emits a base wherever the mean level of a stride window changes
    bucket, blank elsewhere. Each output only depends on its own window and
    the previous one, so chunked and whole read basecalls must agree.

    Output [len // stride, batch, 5] log probabilities.
    """

    def __init__(self, stride = 5):
        super(StepModel, self).__init__()
        self.stride = stride
        self.calls = 0

    def forward(self, x):
        self.calls += 1
        b, _, l = x.shape
        t = l // self.stride
        w = x[:, 0, :t * self.stride].reshape(b, t, self.stride).mean(-1)
        codes = torch.clamp(torch.floor(w + 2), 0, 3).long()
        change = torch.ones_like(codes, dtype = torch.bool)
        change[:, 1:] = codes[:, 1:] != codes[:, :-1]
        classes = torch.where(change, codes + 1, torch.zeros_like(codes))
        logits = nn.functional.one_hot(classes, 5).float() * 10
        return nn.functional.log_softmax(logits, -1).permute(1, 0, 2)


class FailingModel(nn.Module):
    """Fails like a device running out of memory"""

    stride = 5

    def forward(self, x):
        raise RuntimeError('CUDA out of memory')


def step_signal(num_bases, samples_per_base = 10, seed = 0):
    """Random piecewise constant signal, consecutive levels always differ
    """
    rng = np.random.default_rng(seed)
    levels = [-1.5, -0.5, 0.5, 1.5]
    codes = [int(rng.integers(4))]
    while len(codes) < num_bases:
        c = int(rng.integers(4))
        if c != codes[-1]:
            codes.append(c)
    signal = np.repeat(np.array([levels[c] for c in codes], dtype = np.float32), samples_per_base)
    return signal + rng.normal(0, 0.01, signal.shape[0]).astype(np.float32)


def read_fasta(fasta_file):
    """Read a fasta file
    """

    fasta_dict = dict()
    with open(fasta_file, 'r') as handle:
        for line in handle:
            if line.startswith('>'):
                k = line[1:].strip('\n')
                fasta_dict[k] = ''
            else:
                fasta_dict[k] += line.strip('\n')
    return fasta_dict


def read_fastq(fastq_file):
    """Read a fastq file

    Returns:
        A dict with the read ids as keys and [sequence, '+', qstring] as values
    """

    fastq_dict = dict()
    with open(fastq_file, 'r') as handle:
        lines = [line.strip('\n') for line in handle]
    for i in range(0, len(lines) - 3, 4):
        k = lines[i][1:].split(' ')[0]
        fastq_dict[k] = lines[i+1:i+4]
    return fastq_dict
