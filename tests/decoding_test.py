import unittest
import os
import sys
import numpy as np
import torch
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../src')))
from squigcall.chunking import Chunk
from squigcall.decoding import CPUDecoder, GPUDecoder, build_decoder, phred_qstring


def scores_from_classes(classes, confidence = 10.0):
    """[T, B, 5] log probabilities peaked at the given classes"""
    classes = torch.tensor(classes, dtype = torch.long)
    logits = torch.nn.functional.one_hot(classes, 5).float() * confidence
    return torch.nn.functional.log_softmax(logits, -1)


class DecoderTest(unittest.TestCase):

    def setUp(self):
        # two chunks: A A - C C G and T - - T G G
        self.scores = scores_from_classes([[1, 4], [1, 0], [0, 0], [2, 4], [2, 3], [3, 3]])
        self.chunks = [Chunk(0, 0, 0, 30, 30, 0), Chunk(1, 0, 0, 30, 30, 0)]

    def check(self, decoder):
        decoded = decoder.decode(self.scores, self.chunks, stride = 5)

        self.assertEqual(len(decoded), 2)
        self.assertIs(decoded[0].chunk, self.chunks[0])
        self.assertIs(decoded[1].chunk, self.chunks[1])

        self.assertEqual(decoded[0].sequence, 'ACG')
        np.testing.assert_array_equal(decoded[0].positions, [0, 15, 25])
        self.assertEqual(decoded[1].sequence, 'TTG')
        np.testing.assert_array_equal(decoded[1].positions, [0, 15, 20])

        for d in decoded:
            self.assertEqual(len(d.qstring), len(d.sequence))
            self.assertTrue(all(ord(c) >= 33 for c in d.qstring))

    def test_cpu(self):
        self.check(CPUDecoder())

    def test_gpu(self):
        self.check(GPUDecoder())

    def test_cpu_beam_search(self):
        decoded = CPUDecoder(beam_size = 5).decode(self.scores, self.chunks, stride = 5)
        self.assertEqual(decoded[0].sequence, 'ACG')
        self.assertEqual(len(decoded[0].qstring), 3)
        self.assertEqual(len(decoded[0].positions), 3)

    def test_padded_slots(self):
        # a batch with more slots than chunks only decodes the chunks
        decoded = GPUDecoder().decode(self.scores, self.chunks[:1], stride = 1)
        self.assertEqual(len(decoded), 1)
        np.testing.assert_array_equal(decoded[0].positions, [0, 3, 5])

    def test_all_blank(self):
        scores = scores_from_classes([[0], [0], [0]])
        for decoder in [CPUDecoder(), GPUDecoder()]:
            decoded = decoder.decode(scores, self.chunks[:1], stride = 5)
            self.assertEqual(decoded[0].sequence, '')
            self.assertEqual(decoded[0].qstring, '')
            self.assertEqual(len(decoded[0].positions), 0)

    def test_quality(self):
        confident = GPUDecoder().decode(scores_from_classes([[1]], 10.0), self.chunks[:1])[0]
        unsure = GPUDecoder().decode(scores_from_classes([[1]], 1.0), self.chunks[:1])[0]
        self.assertGreater(ord(confident.qstring), ord(unsure.qstring))

    def test_phred_qstring(self):
        self.assertEqual(phred_qstring([0.9, 0.99]), chr(10 + 33) + chr(20 + 33))
        self.assertEqual(phred_qstring([]), '')
        self.assertEqual(phred_qstring([0.0]), chr(1 + 33))
        self.assertEqual(phred_qstring([1.0]), chr(50 + 33))

    def test_build_decoder(self):
        self.assertIsInstance(build_decoder('cpu'), CPUDecoder)
        self.assertIsInstance(build_decoder('cpu', accel = True), GPUDecoder)
        self.assertIsInstance(build_decoder(torch.device('cuda')), GPUDecoder)
