import unittest
import os
import sys
import numpy as np
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../src')))
from squigcall.normalization import med_mad, scale_signal, to_picoamps, trim_signal


def adapter_read(adapter_len = 400, read_len = 10000, seed = 1):
    rng = np.random.default_rng(seed)
    adapter = np.full(adapter_len, 200.0)
    body = 100.0 + rng.normal(0, 1, read_len - adapter_len)
    return np.concatenate([adapter, body]).astype(np.float32)


class TrimTest(unittest.TestCase):

    def test_adapter(self):

        signal = adapter_read()
        start = trim_signal(signal)
        self.assertGreaterEqual(start, 400)
        self.assertLessEqual(start, 600)
        self.assertEqual(start % 40, 0)

    def test_only_prefix_inspected(self):

        signal = adapter_read()
        # whatever happens after the lookahead does not change the result
        other = signal.copy()
        other[8000:] = 1000
        self.assertEqual(trim_signal(signal), trim_signal(other))

    def test_no_cutoff(self):

        self.assertEqual(trim_signal(np.full(5000, 80.0, dtype = np.float32)), 0)

    def test_short_signal(self):

        self.assertEqual(trim_signal(np.zeros(0, dtype = np.float32)), 0)
        self.assertEqual(trim_signal(np.ones(10, dtype = np.float32)), 0)
        short = adapter_read(adapter_len = 200, read_len = 3000)
        self.assertGreaterEqual(trim_signal(short), 200)

    def test_max_trim(self):

        # the adapter takes most of the read, so it is not trimmed
        signal = adapter_read(adapter_len = 700, read_len = 2000)
        self.assertEqual(trim_signal(signal), 0)


class ScaleTest(unittest.TestCase):

    def test_med_mad(self):

        med, mad = med_mad(np.array([1, 2, 3, 4, 100], dtype = np.float32))
        self.assertEqual(med, 3)
        self.assertAlmostEqual(float(mad), 1.4826, places = 5)

    def test_scale(self):

        rng = np.random.default_rng(2)
        signal = (80 + 10 * rng.normal(size = 5000)).astype(np.float32)
        scaled = scale_signal(signal)
        self.assertIs(scaled, signal)
        med, mad = med_mad(scaled)
        self.assertAlmostEqual(float(med), 0.0, places = 5)
        self.assertAlmostEqual(float(mad), 1.0, places = 4)

    def test_idempotent(self):

        rng = np.random.default_rng(3)
        signal = (80 + 10 * rng.normal(size = 5000)).astype(np.float32)
        once = scale_signal(signal).copy()
        twice = scale_signal(signal)
        self.assertLess(np.max(np.abs(once - twice)), 1e-4)

    def test_flat_signal(self):

        signal = np.full(1000, 42.0, dtype = np.float32)
        scaled = scale_signal(signal)
        self.assertTrue(np.all(np.isfinite(scaled)))
        np.testing.assert_array_equal(scaled, 0)

    def test_empty_signal(self):

        scaled = scale_signal(np.zeros(0, dtype = np.float32))
        self.assertEqual(scaled.shape[0], 0)

    def test_integer_signal(self):

        scaled = scale_signal(np.arange(100, dtype = np.int16))
        self.assertTrue(np.issubdtype(scaled.dtype, np.floating))
        self.assertTrue(np.all(np.isfinite(scaled)))

    def test_noisiest(self):

        rng = np.random.default_rng(4)
        signal = np.concatenate([np.full(1000, 50.0), 90 + 8 * rng.normal(size = 4000)]).astype(np.float32)
        scaled = scale_signal(signal, method = 'noisiest')
        self.assertTrue(np.all(np.isfinite(scaled)))

    def test_wrong_method(self):

        with self.assertRaises(ValueError):
            scale_signal(np.zeros(10, dtype = np.float32), method = 'mean')


class PicoampsTest(unittest.TestCase):

    def test_calibration(self):

        raw = np.array([0, 10, 20], dtype = np.int16)
        pa = to_picoamps(raw, offset = 10, range = 100.0, digitisation = 50.0)
        self.assertEqual(pa.dtype, np.float32)
        np.testing.assert_allclose(pa, [20, 40, 60])

    def test_no_calibration(self):

        raw = np.array([1.0, 2.0], dtype = np.float32)
        pa = to_picoamps(raw)
        np.testing.assert_array_equal(pa, raw)
        self.assertIsNot(pa, raw)
