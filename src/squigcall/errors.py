"""Exceptions raised by the basecalling pipeline
"""


class SquigcallError(Exception):
    """Base class for all the errors of the basecaller"""


class ConfigError(SquigcallError, ValueError):
    """An option has an invalid value, raised before any read is processed
    """


class SourceReadError(SquigcallError):
    """The signal source failed for a reason other than end of stream

    Attributes:
        reads_processed (int): reads that were fully processed before the failure
    """

    def __init__(self, message, reads_processed = 0):
        super(SourceReadError, self).__init__(message)
        self.reads_processed = reads_processed


class InferenceError(SquigcallError):
    """The compute backend failed during a forward pass"""


class StitchInconsistency(SquigcallError):
    """Two adjacent decoded chunks could not be aligned

    This is never fatal, the stitcher catches it and flags the read.
    """

    def __init__(self, message, chunk_index = None):
        super(StitchInconsistency, self).__init__(message)
        self.chunk_index = chunk_index


class ModelLoadError(SquigcallError):
    """The model file is missing or is neither TorchScript nor a checkpoint"""
