import unittest
import os
import sys
import tempfile
import numpy as np
import torch
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../scripts')))
from basecall import build_parser, main, options_from_args
from squigcall.models import CTCModel
from toy import step_signal, read_fasta, read_fastq


class CliTest(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.model = os.path.join(self.tmp.name, 'model.pt')
        model = CTCModel(hidden_size = 8, num_rnn = 2)
        torch.save({'model_state': model.state_dict(), 'config': {'hidden_size': 8, 'num_rnn': 2}}, self.model)
        self.data = os.path.join(self.tmp.name, 'reads.npz')
        np.savez(self.data, **{'read_' + str(i): step_signal(100 + 50 * i, seed = i) for i in range(4)})
        self.output = os.path.join(self.tmp.name, 'calls')

    def tearDown(self):
        self.tmp.cleanup()

    def test_options(self):
        args = build_parser().parse_args(['m', 'd', '-t', '2', '-K', '64', '-B', '1M', '-c', '500', '-p', '50',
                                          '--emit-fastq', 'yes', '--debug-break', '3', '--no-trim'])
        options = options_from_args(args)
        self.assertEqual(options.num_threads, 2)
        self.assertEqual(options.batch_size, 64)
        self.assertEqual(options.max_bytes, 1000000)
        self.assertEqual(options.chunk_size, 500)
        self.assertEqual(options.overlap, 50)
        self.assertEqual(options.debug_break, 3)
        self.assertTrue(options.emit_fastq)
        self.assertFalse(options.trim)
        self.assertFalse(options.accel)

    def test_yes_or_no(self):
        with self.assertRaises(SystemExit):
            build_parser().parse_args(['m', 'd', '--accel', 'maybe'])

    def test_fasta(self):
        self.assertEqual(main([self.model, self.data, '-o', self.output, '-c', '500', '-p', '100', '-t', '2', '-v', '0']), 0)
        fasta = read_fasta(self.output)
        self.assertEqual(sorted(fasta.keys()), ['read_' + str(i) for i in range(4)])

    def test_fastq(self):
        argv = [self.model, self.data, '-o', self.output, '-c', '500', '-p', '100', '-v', '0',
                '--emit-fastq', 'yes', '--accel', 'yes', '-r', '2']
        self.assertEqual(main(argv), 0)
        for seq, _, qstring in read_fastq(self.output).values():
            self.assertEqual(len(seq), len(qstring))

    def test_invalid_options(self):
        # the options are checked before the model is loaded
        missing = os.path.join(self.tmp.name, 'missing.pt')
        self.assertEqual(main([missing, self.data, '-c', '100', '-p', '100', '-v', '0']), 1)
        self.assertFalse(os.path.exists(self.output))

    def test_bad_model(self):
        model = os.path.join(self.tmp.name, 'model.txt')
        with open(model, 'w') as f:
            f.write('not a model\n')
        self.assertEqual(main([model, self.data, '-o', self.output, '-v', '0']), 1)
        missing = os.path.join(self.tmp.name, 'missing.pt')
        self.assertEqual(main([missing, self.data, '-o', self.output, '-v', '0']), 1)

    def test_missing_data(self):
        argv = [self.model, os.path.join(self.tmp.name, 'missing'), '-o', self.output, '-v', '0']
        self.assertEqual(main(argv), 1)
