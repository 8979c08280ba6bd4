"""Stitching of decoded chunks back into complete reads
"""

import logging
from typing import NamedTuple

import numpy as np

from .constants import PHRED_OFFSET, STITCH_POLICIES
from .errors import StitchInconsistency

LOGGER = logging.getLogger(__name__)


class StitchResult(NamedTuple):
    sequence: str
    qstring: str
    dropped: int
    consistent: bool


def overlap_quality(decoded, lo, hi):
    """Mean phred score of the bases of a chunk emitted within [lo, hi)"""
    q = np.frombuffer(decoded.qstring.encode('ascii'), dtype = np.uint8)[_symbols_in(decoded, lo, hi)]
    if len(q) == 0:
        return -1.0
    return float(q.mean()) - PHRED_OFFSET


def check_decoded(decoded):
    """Check that the bases of a chunk can be placed in the signal

    Raises:
        StitchInconsistency: if the bases, qualities and positions differ
            in length or the positions go backwards
    """
    n = len(decoded.sequence)
    if len(decoded.qstring) != n or len(decoded.positions) != n:
        raise StitchInconsistency(
            'chunk {0} has {1} bases, {2} qualities and {3} positions'.format(
                decoded.chunk.index, n, len(decoded.qstring), len(decoded.positions)),
            chunk_index = decoded.chunk.index)
    if n > 1 and np.any(np.diff(decoded.positions) < 0):
        raise StitchInconsistency('chunk {0} has unordered positions'.format(decoded.chunk.index), chunk_index = decoded.chunk.index)


def check_neighbours(decoded):
    """Raise if a chunk with signal produced no bases next to others that did"""
    if len(decoded) < 2:
        return
    for d in decoded:
        if d.chunk.length > 0 and len(d.sequence) == 0:
            raise StitchInconsistency('chunk {0} produced no bases'.format(d.chunk.index), chunk_index = d.chunk.index)


def _symbols_in(decoded, lo, hi):
    pos = decoded.chunk.start + decoded.positions
    return (pos >= lo) & (pos < hi)


def find_boundaries(decoded, policy = 'midpoint'):
    """Sample ranges of the read that each chunk is responsible for

    The overlap of two consecutive chunks goes from the start of the second
    to the end of the first. With the midpoint policy it is split in half;
    with the confidence policy it is given whole to the chunk whose bases
    in it have the highest mean quality (the first one on ties).

    Args:
        decoded (list): DecodedChunk ordered by chunk start
        policy (str): 'midpoint' or 'confidence'

    Returns:
        A (list) of (lo, hi) tuples, consecutive ranges that do not overlap
    """
    ranges = list()
    lo = decoded[0].chunk.start
    for cur, nxt in zip(decoded[:-1], decoded[1:]):
        ov_start, ov_end = nxt.chunk.start, cur.chunk.end
        if ov_end <= ov_start:
            boundary = ov_start
        elif policy == 'midpoint':
            boundary = ov_start + (ov_end - ov_start) // 2
        else:
            boundary = ov_end if overlap_quality(cur, ov_start, ov_end) >= overlap_quality(nxt, ov_start, ov_end) else ov_start
        boundary = max(boundary, lo)
        ranges.append((lo, boundary))
        lo = boundary
    ranges.append((lo, max(lo, decoded[-1].chunk.end)))
    return ranges


def _keep_by_position(decoded, lo, hi):
    idx = np.flatnonzero(_symbols_in(decoded, lo, hi))
    if len(idx) == 0:
        return '', ''
    # positions are sorted so the kept bases are a contiguous run
    a, b = idx[0], idx[-1] + 1
    return decoded.sequence[a:b], decoded.qstring[a:b]


def _keep_by_proportion(decoded, lo, hi):
    n = min(len(decoded.sequence), len(decoded.qstring))
    length = decoded.chunk.length
    if n == 0 or length == 0:
        return '', ''
    a = int(round(n * (lo - decoded.chunk.start) / length))
    b = int(round(n * (hi - decoded.chunk.start) / length))
    a, b = max(0, min(a, n)), max(0, min(b, n))
    return decoded.sequence[a:b], decoded.qstring[a:b]


def stitch_chunks(decoded, policy = 'midpoint'):
    """Stitch the decoded chunks of a read into a single sequence

    The redundant bases of each overlap are resolved in base space: each
    base is placed in the read by the sample it was emitted at, and the
    bases outside the range of their chunk (see `find_boundaries`) are
    discarded, as are bases emitted in the zero padding of the last chunk.

    Chunk1: AAAAAAAAAAAAAABBBBBCCCCC
    Chunk2:               DDDDDEEEEEFFFFFFFFFFFFFF
    Result: AAAAAAAAAAAAAABBBBBEEEEEFFFFFFFFFFFFFF

    If the chunks cannot be aligned the read is still stitched, splitting
    the bases of each chunk proportionally to its samples, and flagged as
    not consistent.

    Args:
        decoded (list): DecodedChunk of a single read
        policy (str): overlap resolution, 'midpoint' or 'confidence'

    Returns:
        StitchResult
    """
    if policy not in STITCH_POLICIES:
        raise ValueError('policy should be one of ' + str(STITCH_POLICIES) + ', given: ' + str(policy))
    if len(decoded) == 0:
        return StitchResult('', '', 0, True)

    decoded = sorted(decoded, key = lambda d: d.chunk.start)
    consistent = True

    try:
        check_neighbours(decoded)
    except StitchInconsistency as err:
        LOGGER.warning('read stitched with a gap: %s', err)
        consistent = False

    keep = _keep_by_position
    try:
        for d in decoded:
            check_decoded(d)
    except StitchInconsistency as err:
        LOGGER.warning('falling back to proportional stitching: %s', err)
        consistent = False
        keep = _keep_by_proportion
        policy = 'midpoint'

    seqs, quals = list(), list()
    for d, (lo, hi) in zip(decoded, find_boundaries(decoded, policy)):
        s, q = keep(d, lo, hi)
        seqs.append(s)
        quals.append(q)

    sequence, qstring = ''.join(seqs), ''.join(quals)
    total = sum(len(d.sequence) for d in decoded)
    return StitchResult(sequence, qstring, total - len(sequence), consistent)
