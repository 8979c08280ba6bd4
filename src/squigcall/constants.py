"""Contains constants used 
"""

BASES = ['A', 'C', 'G', 'T']
BASES_CRF = 'N' + ''.join(BASES)

# networks
CTC_BLANK = 0
DEFAULT_STRIDE = 1

# signal trimming
TRIM_LOOKAHEAD = 8000
TRIM_WINDOW_SIZE = 40
TRIM_THRESHOLD_FACTOR = 2.4
TRIM_MIN_ELEMENTS = 3
TRIM_MAX_FRACTION = 0.3

# signal scaling
MAD_FACTOR = 1.4826
MIN_MAD = 1e-6
NOISIEST_SAMPLES = 100
NOISIEST_THRESHOLD = 6.0

# quality scores
PHRED_OFFSET = 33
MIN_QSCORE = 1
MAX_QSCORE = 50

# run defaults
DEFAULT_THREADS = 8
DEFAULT_BATCH_SIZE = 512
DEFAULT_MAX_BYTES = 20 * 1000 * 1000
DEFAULT_CHUNK_SIZE = 8000
DEFAULT_OVERLAP = 150
DEFAULT_DEVICE = 'cpu'
DEFAULT_RUNNERS = 1

# bytes per sample of a batched chunk (float32)
SAMPLE_BYTES = 4

STITCH_POLICIES = ('midpoint', 'confidence')
NORM_METHODS = ('all', 'noisiest')
