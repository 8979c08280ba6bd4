"""This script can be used to basecall a set of fast5 (or npz) files given a
model, it will produce a fasta or fastq file with the basecalls
"""

import os
import sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../src')))
import argparse
import logging

from squigcall import __version__
from squigcall.constants import DEFAULT_THREADS, DEFAULT_BATCH_SIZE, DEFAULT_MAX_BYTES, DEFAULT_CHUNK_SIZE
from squigcall.constants import DEFAULT_OVERLAP, DEFAULT_DEVICE, DEFAULT_RUNNERS, STITCH_POLICIES, NORM_METHODS
from squigcall.errors import SquigcallError, SourceReadError
from squigcall.models import load_model
from squigcall.options import RunOptions
from squigcall.pipeline import BasecallPipeline
from squigcall.read import ArraySource, Fast5Source
from squigcall.runner import build_runners
from squigcall.utils import configure_logging
from squigcall.writer import OutputWriter

LOGGER = logging.getLogger('squigcall')


def yes_or_no(value):
    value = value.lower()
    if value in ('yes', 'y'):
        return True
    if value in ('no', 'n'):
        return False
    raise argparse.ArgumentTypeError('expected yes or no, given: ' + value)


def build_parser():
    parser = argparse.ArgumentParser(prog = 'basecall', description = 'Basecall nanopore reads')
    parser.add_argument("model", type=str, help='the basecaller model to run')
    parser.add_argument("data", type=str, help='fast5 file or directory (searched recursively), or a npz file')
    parser.add_argument("-t", "--threads", type=int, default = DEFAULT_THREADS, help='number of processing threads')
    parser.add_argument("-K", "--batch-size", type=int, default = DEFAULT_BATCH_SIZE, help='max number of chunks in a batch')
    parser.add_argument("-B", "--max-bytes", type=str, default = str(DEFAULT_MAX_BYTES), help='max number of bytes in a batch, FLOAT[K/M/G]')
    parser.add_argument("-o", "--output", type=str, default = None, help='output file, stdout if not given')
    parser.add_argument("-c", "--chunk-size", type=int, default = DEFAULT_CHUNK_SIZE)
    parser.add_argument("-p", "--overlap", type=int, default = DEFAULT_OVERLAP, help='overlap between chunks of a read')
    parser.add_argument("-x", "--device", type=str, default = DEFAULT_DEVICE, help='cpu, cuda or cuda:N')
    parser.add_argument("-r", "--num-runners", type=int, default = DEFAULT_RUNNERS, help='number of model runners')
    parser.add_argument("-v", "--verbose", type=int, default = 1, help='verbosity level, 0 to 3')
    parser.add_argument("-V", "--version", action='version', version='%(prog)s ' + __version__)
    parser.add_argument("--debug-break", type=int, default = None, help='break after processing the specified no. of batches')
    parser.add_argument("--profile-cpu", type=yes_or_no, default = False, help='yes|no, process section by section')
    parser.add_argument("--accel", type=yes_or_no, default = False, help='yes|no, decode with tensor operations on the device')
    parser.add_argument("--emit-fastq", type=yes_or_no, default = False, help='yes|no, emit fastq instead of fasta')
    parser.add_argument("--beam-size", type=int, default = 1)
    parser.add_argument("--beam-threshold", type=float, default = 0.1)
    parser.add_argument("--qscale", type=float, default = 1.0)
    parser.add_argument("--qbias", type=float, default = 0.0)
    parser.add_argument("--stitch-policy", type=str, choices=STITCH_POLICIES, default = 'midpoint')
    parser.add_argument("--norm-method", type=str, choices=NORM_METHODS, default = 'all')
    parser.add_argument("--no-trim", action='store_true', help='do not trim the start of the reads')
    parser.add_argument("--model-stride", type=int, default = None, help='stride of the model if it does not define it')
    parser.add_argument("--half", action='store_true', help='fp16 inference, only on cuda')
    parser.add_argument("--file-list", action='store_true', help='data is a text file with a list of fast5 files')
    return parser


def options_from_args(args):
    return RunOptions(
        num_threads = args.threads,
        batch_size = args.batch_size,
        max_bytes = args.max_bytes,
        chunk_size = args.chunk_size,
        overlap = args.overlap,
        device = args.device,
        num_runners = args.num_runners,
        output = args.output,
        debug_break = args.debug_break,
        profile = args.profile_cpu,
        accel = args.accel,
        emit_fastq = args.emit_fastq,
        qscale = args.qscale,
        qbias = args.qbias,
        beam_size = args.beam_size,
        beam_threshold = args.beam_threshold,
        stitch_policy = args.stitch_policy,
        norm_method = args.norm_method,
        trim = not args.no_trim,
        model_stride = args.model_stride,
        half = args.half,
    )


def open_source(data, file_list = False):
    if file_list:
        return Fast5Source(fast5_list = data)
    if data.endswith('.npz'):
        return ArraySource(data)
    return Fast5Source(data_dir = data)


def main(argv = None):
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        options = options_from_args(args)
        LOGGER.info('basecaller version %s\nmodel path:         %s\ninput path:         %s\n%s',
                    __version__, args.model, args.data, options.summary())

        with OutputWriter(options.output) as writer:
            model = load_model(args.model, device = options.device)
            runners = build_runners(model, options)
            source = open_source(args.data, args.file_list)
            pipeline = BasecallPipeline(options, runners)
            pipeline.run(source, writer, verbose = args.verbose > 1)
    except SourceReadError as err:
        LOGGER.error('%s (%d reads processed)', err, err.reads_processed)
        return 1
    except (SquigcallError, OSError) as err:
        LOGGER.error(str(err))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
