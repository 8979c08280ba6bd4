"""Functions for signal trimming and normalization
"""

import numpy as np
from scipy.signal import find_peaks

from .constants import TRIM_LOOKAHEAD, TRIM_WINDOW_SIZE, TRIM_THRESHOLD_FACTOR, TRIM_MIN_ELEMENTS, TRIM_MAX_FRACTION
from .constants import MAD_FACTOR, MIN_MAD, NOISIEST_SAMPLES, NOISIEST_THRESHOLD, NORM_METHODS


def med_mad(signal, factor=MAD_FACTOR):
    """
    Calculate signal median and median absolute deviation

    Args:
        signal (np.array): array of data to calculate med and mad
        factor (float): factor to scale the mad

    Returns:
        float, float : med and mad values
    """
    med = np.median(signal)
    mad = np.median(np.absolute(signal - med)) * factor
    return med, mad


def find_noisiest_section(signal, samples=NOISIEST_SAMPLES, threshold=NOISIEST_THRESHOLD):
    """Find the noisiest section of a signal.

    Args:
        signal (np.array): raw nanopore signal
        samples (int): defaults to 100
        threshold (float): defaults to 6.0

    Returns:
        np.array : with a section (or all) the input signal that has the noisiest section
    """

    if signal.shape[0] < 3:
        return signal

    threshold = signal.std() / threshold
    noise = np.ones(signal.shape)

    for idx in np.arange(signal.shape[0] // samples):
        window = slice(idx * samples, (idx + 1) * samples)
        noise[window] = np.where(signal[window].std() > threshold, 1, 0)

    # start and end low for peak finding
    noise[0] = 0; noise[-1] = 0
    peaks, info = find_peaks(noise, width=(None, None))

    if len(peaks):
        widest = np.argmax(info['widths'])
        tonorm = signal[info['left_bases'][widest]: info['right_bases'][widest]]
    else:
        tonorm = signal

    return tonorm


def to_picoamps(raw, offset = 0, range = None, digitisation = None):
    """Convert the raw DAQ values of a read into a float32 signal in pA

    If the calibration is not known the values are only converted to float.

    Args:
        raw (np.array): raw integer signal
        offset (int): offset as indicated in the attributes of the read
        range (float): range as indicated in the attributes of the read
        digitisation (float): as indicated in the attributes of the read

    Returns:
        np.array : float32 signal
    """

    signal = np.asarray(raw, dtype = np.float32)
    if range is None or digitisation is None:
        return signal.copy() if signal is raw else signal
    return ((signal + offset) * (range / digitisation)).astype(np.float32)


def trim_signal(signal, lookahead = TRIM_LOOKAHEAD, window_size = TRIM_WINDOW_SIZE,
                threshold_factor = TRIM_THRESHOLD_FACTOR, min_elements = TRIM_MIN_ELEMENTS,
                max_trim = TRIM_MAX_FRACTION):
    """Find where the adapter/open pore section at the start of a read ends

    Only the first `lookahead` samples are inspected. A threshold is set at
    med + mad * threshold_factor of the tail of that prefix; the first window
    with more than `min_elements` samples over it is the adapter peak, and
    the read starts after the first following window that ends below it.

    Based on: https://github.com/nanoporetech/bonito/blob/master/bonito/fast5.py

    Args:
        signal (np.array): signal of the read
        lookahead (int): number of samples from the start to inspect
        window_size (int): size of the scanned windows
        threshold_factor (float): number of mads over the median
        min_elements (int): samples over the threshold to call a peak
        max_trim (float): max fraction of the read that can be trimmed

    Returns:
        (int): index of the first sample to keep, 0 if no cutoff was found
    """

    prefix = np.asarray(signal[:lookahead])
    if prefix.shape[0] < window_size:
        return 0

    med, mad = med_mad(prefix[-(window_size * 100):])
    threshold = med + mad * threshold_factor
    num_windows = prefix.shape[0] // window_size
    max_trim_samples = int(max_trim * len(signal))

    seen_peak = False
    for pos in range(num_windows):
        start = pos * window_size
        end = start + window_size
        window = prefix[start:end]
        if np.count_nonzero(window > threshold) > min_elements or seen_peak:
            seen_peak = True
            if window[-1] > threshold:
                continue
            if end >= prefix.shape[0] or end > max_trim_samples:
                return 0
            return end

    return 0


def scale_signal(signal, method = 'all', factor = MAD_FACTOR, min_mad = MIN_MAD):
    """Median center and mad scale a signal in place

    Args:
        signal (np.array): float signal to be rescaled, it is overwritten
        method (str): which values define the med and the mad. Can be "all"
            (the whole signal) or "noisiest" (the noisiest section).
        factor (float): mad scaler, defaults to 1.4826
        min_mad (float): floor for the mad so flat signals stay finite

    Returns:
        np.array with the normalized signal (the same array if it was float)
    """

    if method not in NORM_METHODS:
        raise ValueError('Method should be "noisiest" or "all", given: ' + str(method))

    if not np.issubdtype(signal.dtype, np.floating):
        signal = signal.astype(np.float32)
    if signal.shape[0] == 0:
        return signal

    if method == 'noisiest':
        med, mad = med_mad(find_noisiest_section(signal), factor = factor)
    else:
        med, mad = med_mad(signal, factor = factor)

    signal -= med
    signal /= max(mad, min_mad)
    return signal
