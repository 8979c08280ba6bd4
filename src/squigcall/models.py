"""Default basecalling network and model loading

Based on:
https://github.com/nanoporetech/bonito
"""

import os
import pickle
import logging

import numpy as np
import torch
from torch import nn

from .constants import BASES
from .errors import ModelLoadError

LOGGER = logging.getLogger(__name__)


class BonitoLSTM(nn.Module):
    """Single LSTM RNN layer that can be reversed.
    Useful to stack forward and reverse layers one after the other.
    The default in pytorch is to have the forward and reverse in
    parallel.

    Copied from https://github.com/nanoporetech/bonito
    """
    def __init__(self, in_channels, out_channels, reverse = False):
        """
        Args:
            in_channels (int): number of input channels
            out_channels (int): number of output channels
            reverse (bool): whether to the rnn direction is reversed
        """
        super(BonitoLSTM, self).__init__()

        self.rnn = nn.LSTM(in_channels, out_channels, num_layers = 1, bidirectional = False, bias = True)
        self.reverse = reverse

    def forward(self, x):
        if self.reverse: x = x.flip(0)
        y, h = self.rnn(x)
        if self.reverse: y = y.flip(0)
        return y


def module_stride(m):
    """Get the stride parameter if it has from a layer
    """
    if hasattr(m, 'stride'):
        return m.stride if isinstance(m.stride, int) else m.stride[0]
    if isinstance(m, nn.Sequential):
        return int(np.prod([module_stride(x) for x in m]))
    return 1


class CTCModel(nn.Module):
    """Bonito-like CTC network

    Input [batch, 1, len] signal, output [len / stride, batch, classes] log
    probabilities, class 0 being the blank.
    """
    def __init__(self, convolution = None, rnn = None, decoder = None, hidden_size = 384, num_rnn = 5):
        """
        Args:
            convolution (nn.Module): module with: in [batch, channel, len]; out [batch, channel, len]
            rnn (nn.Module): module with: in [len, batch, channel]; out [len, batch, channel]
            decoder (nn.Module): module with: in [len, batch, channel]; out [len, batch, channel]
            hidden_size (int): channels of the default modules
            num_rnn (int): number of lstm layers of the default rnn
        """
        super(CTCModel, self).__init__()

        self.hidden_size = hidden_size
        self.num_rnn = num_rnn
        self.convolution = convolution
        self.rnn = rnn
        self.decoder = decoder
        self.load_default_configuration()
        self.stride = module_stride(self.convolution)

    def forward(self, x):
        """Forward pass of a batch

        Args:
            x (tensor) : [batch, channels (1), len]
        """

        x = self.convolution(x)
        x = x.permute(2, 0, 1) # [len, batch, channels]
        x = self.rnn(x)
        x = self.decoder(x)
        return x

    def load_default_configuration(self, default_all = False):
        """Sets the default configuration for one or more
        modules of the network
        """
        h = self.hidden_size
        if self.convolution is None or default_all:
            self.convolution = nn.Sequential(nn.Conv1d(1, 4,
                                                       kernel_size = 5, stride= 1, padding=5//2, bias=True),
                                             nn.SiLU(),
                                             nn.Conv1d(4, 16,
                                                       kernel_size = 5, stride= 1, padding=5//2, bias=True),
                                             nn.SiLU(),
                                             nn.Conv1d(16, h,
                                                       kernel_size = 19, stride= 5, padding=19//2, bias=True),
                                             nn.SiLU())
        if self.rnn is None or default_all:
            self.rnn = nn.Sequential(*[BonitoLSTM(h, h, reverse = (i % 2 == 0)) for i in range(self.num_rnn)])
        if self.decoder is None or default_all:
            self.decoder = nn.Sequential(nn.Linear(h, len(BASES) + 1), nn.LogSoftmax(-1))


def load_model(model_file, device = 'cpu'):
    """Load a model for basecalling

    TorchScript files are loaded as they are; otherwise the file must be a
    checkpoint with a 'model_state' dict (and optionally a 'config' dict
    with the CTCModel arguments).

    Args:
        model_file (str): file with the model
        device (str): device where the weights are loaded

    Returns:
        nn.Module in eval mode

    Raises:
        ModelLoadError: if the file does not exist or cannot be loaded
    """
    if not os.path.isfile(model_file):
        raise ModelLoadError('Model file not found: ' + str(model_file))

    try:
        model = torch.jit.load(model_file, map_location = device)
        LOGGER.info('loaded torchscript model from %s', model_file)
    except RuntimeError:
        try:
            checkpoint = torch.load(model_file, map_location = torch.device(device), weights_only = True)
            model = CTCModel(**checkpoint.get('config', dict()))
            model.load_state_dict(checkpoint['model_state'])
        except (RuntimeError, ValueError, KeyError, TypeError, AttributeError, EOFError, pickle.UnpicklingError) as err:
            raise ModelLoadError('Could not load model from {0}: {1}'.format(model_file, err)) from err
        model = model.to(device)
        LOGGER.info('loaded checkpoint from %s', model_file)
    model.eval()
    return model
