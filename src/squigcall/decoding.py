"""Decoding of network outputs into called bases and quality strings

Two interchangeable decoders are available: CPUDecoder runs fast-ctc-decode
on host memory, GPUDecoder does a greedy decode with tensor operations on
the device of the runner and only copies the compact results back. Which one
is used is decided at startup by `build_decoder`.
"""

from dataclasses import dataclass
from typing import List, Protocol

import numpy as np
import torch
from fast_ctc_decode import beam_search, viterbi_search

from .chunking import Chunk
from .constants import BASES_CRF, CTC_BLANK, PHRED_OFFSET, MIN_QSCORE, MAX_QSCORE


@dataclass
class DecodedChunk:
    """Decoded output of one chunk

    Attributes:
        chunk (Chunk): chunk the output comes from
        sequence (str): called bases
        qstring (str): phred+33 quality of each base
        positions (np.array): sample, relative to the chunk start, where
            each base was emitted
    """
    chunk: Chunk
    sequence: str
    qstring: str
    positions: np.ndarray

    def __len__(self):
        return len(self.sequence)


class Decoder(Protocol):
    """What a runner needs from a decoder"""

    def decode(self, scores: torch.Tensor, chunks: List[Chunk], stride: int) -> List[DecodedChunk]:
        ...


def phred_qstring(probs, qscale = 1.0, qbias = 0.0):
    """Quality string from the probabilities of the called bases

    Args:
        probs (np.array): probability of each called base
        qscale (float): scale applied to the phred score
        qbias (float): bias added to the phred score

    Returns:
        (str): phred+33 encoded qualities, same length as probs
    """
    probs = np.asarray(probs, dtype = np.float64)
    q = -10 * np.log10(np.clip(1.0 - probs, 1e-5, 1.0)) * qscale + qbias
    q = np.clip(np.rint(q), MIN_QSCORE, MAX_QSCORE).astype(np.uint8) + PHRED_OFFSET
    return q.tobytes().decode('ascii')


class CPUDecoder():
    """Decoder based on fast-ctc-decode, works on host memory

    Greedy (viterbi) decoding is used when beam_size is 1, beam search
    otherwise.
    """

    def __init__(self, alphabet = BASES_CRF, qscale = 1.0, qbias = 0.0, beam_size = 1, beam_threshold = 0.1):
        """
        Args:
            alphabet (str): symbols for each output class, blank first
            qscale (float): scale applied to the qscores
            qbias (float): bias added to the qscores
            beam_size (int): beams kept during the search
            beam_threshold (float): probability under which classes are not expanded
        """
        self.alphabet = alphabet
        self.qscale = qscale
        self.qbias = qbias
        self.beam_size = beam_size
        self.beam_threshold = beam_threshold

    def decode(self, scores, chunks, stride = 1):
        """Decode the predictions

        Args:
            scores (tensor): log probabilities with shape [timesteps, batch, classes]
            chunks (list): one Chunk per batch slot that has to be decoded
            stride (int): samples per output timestep

        Returns:
            A (list) with one DecodedChunk per chunk
        """
        probs = scores.detach().float().exp().cpu().numpy()

        decoded = list()
        for i, chunk in enumerate(chunks):
            p = np.ascontiguousarray(probs[:, i, :], dtype = np.float32)
            if self.beam_size == 1:
                seq, path = viterbi_search(p, self.alphabet, qstring = True, qscale = self.qscale, qbias = self.qbias, collapse_repeats = True)
                sequence, qstring = seq[:len(path)], seq[len(path):]
            else:
                sequence, path = beam_search(p, self.alphabet, beam_size = self.beam_size, beam_cut_threshold = self.beam_threshold, collapse_repeats = True)
                qstring = phred_qstring(p[np.asarray(path, dtype = np.int64)].max(axis = 1), self.qscale, self.qbias)
            positions = np.asarray(path, dtype = np.int64) * stride
            decoded.append(DecodedChunk(chunk, sequence, qstring, positions))

        return decoded


class GPUDecoder():
    """Greedy CTC decoder made of tensor operations

    It runs wherever the scores are, the per timestep argmax, repeat
    collapsing and qscores are computed on the device and only the emitted
    positions are copied to the host.
    """

    def __init__(self, alphabet = BASES_CRF, qscale = 1.0, qbias = 0.0, blank = CTC_BLANK):
        self.alphabet = alphabet
        self.qscale = qscale
        self.qbias = qbias
        self.blank = blank
        self._symbols = np.frombuffer(alphabet.encode('ascii'), dtype = np.uint8)

    def _device_decode(self, scores):
        with torch.no_grad():
            probs = scores.detach().float().exp()
            maxp, best = probs.max(dim = -1)
            prev = torch.cat([torch.full_like(best[:1], -1), best[:-1]])
            emit = (best != self.blank) & (best != prev)

            q = -10 * torch.log10(torch.clamp(1.0 - maxp, min = 1e-5)) * self.qscale + self.qbias
            q = torch.clamp(torch.round(q), MIN_QSCORE, MAX_QSCORE).to(torch.uint8) + PHRED_OFFSET

        return best.cpu().numpy(), emit.cpu().numpy(), q.cpu().numpy()

    def decode(self, scores, chunks, stride = 1):
        """Decode the predictions

        Args:
            scores (tensor): log probabilities with shape [timesteps, batch, classes]
            chunks (list): one Chunk per batch slot that has to be decoded
            stride (int): samples per output timestep

        Returns:
            A (list) with one DecodedChunk per chunk
        """
        best, emit, q = self._device_decode(scores[:, :len(chunks)])

        decoded = list()
        for i, chunk in enumerate(chunks):
            idx = np.flatnonzero(emit[:, i])
            sequence = self._symbols[best[idx, i]].tobytes().decode('ascii')
            qstring = q[idx, i].tobytes().decode('ascii')
            decoded.append(DecodedChunk(chunk, sequence, qstring, idx.astype(np.int64) * stride))

        return decoded


def build_decoder(device, accel = False, qscale = 1.0, qbias = 0.0, beam_size = 1, beam_threshold = 0.1):
    """Choose the decoder for a device

    Args:
        device (torch.device): device where the runner does inference
        accel (bool): force decoding with tensor operations on any device

    Returns:
        CPUDecoder or GPUDecoder
    """
    device = torch.device(device)
    if device.type == 'cuda' or accel:
        return GPUDecoder(qscale = qscale, qbias = qbias)
    return CPUDecoder(qscale = qscale, qbias = qbias, beam_size = beam_size, beam_threshold = beam_threshold)
