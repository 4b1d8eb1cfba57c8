# ----------------------------------------------------------------------------
# Copyright 2014 Nervana Systems Inc.
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ----------------------------------------------------------------------------
"""
Run wide settings threaded through the network graph and its layers.
"""
from copy import deepcopy
import logging
import yaml

from ccnet.backends import gen_backend
from ccnet.util.param import ensure_dtype

logger = logging.getLogger(__name__)


class RunConfig(object):
    """
    Settings of one training run.

    Arguments:
        backend (str): backend to generate, 'cpu'.
        batch_size (int): images per step, only used to validate data.
        datatype (dtype or str): default element type.
        rng_seed (int): seed of the backend random number generator.
        learning_rate (float): default epsilon of weight sets that do not
                               configure their own.
        conserve_mem (bool): release backward scratch buffers as soon as a
                             layer has finished its backward pass.
        save_acts (bool): keep a host copy of every layer's activations
                          after each forward pass.
        checking_grads (bool): set while a finite difference check runs,
                               overrides conserve_mem.
        max_threads_per_block (int): device limit.
        max_shared_bytes (int): device limit.
    """
    defaults = {'backend': 'cpu',
                'batch_size': None,
                'datatype': 'float32',
                'rng_seed': None,
                'learning_rate': 0.01,
                'conserve_mem': False,
                'save_acts': False,
                'checking_grads': False,
                'max_threads_per_block': 1024,
                'max_shared_bytes': 48 * 1024}

    def __init__(self, **kwargs):
        unknown = set(kwargs) - set(self.defaults)
        if unknown:
            raise ValueError("unknown run config settings: %s" %
                             ", ".join(sorted(unknown)))
        self.__dict__.update(deepcopy(self.defaults))
        self.__dict__.update(kwargs)
        self.datatype = ensure_dtype(self.datatype)

    @classmethod
    def from_yaml(cls, stream):
        """
        Build a RunConfig from a YAML mapping, given as a file name, an
        open file or a string of YAML text.
        """
        if isinstance(stream, str) and not stream.lstrip().startswith('{') \
                and '\n' not in stream and stream.endswith(('.yaml', '.yml')):
            with open(stream, 'r') as fid:
                settings = yaml.safe_load(fid.read())
        else:
            settings = yaml.safe_load(stream)
        if settings is None:
            settings = {}
        if not isinstance(settings, dict):
            raise ValueError("run config must be a mapping, got %s" %
                             type(settings).__name__)
        logger.debug("run config loaded: %s", settings)
        return cls(**settings)

    def gen_backend(self):
        return gen_backend(backend=self.backend, rng_seed=self.rng_seed,
                           datatype=self.datatype,
                           max_threads_per_block=self.max_threads_per_block,
                           max_shared_bytes=self.max_shared_bytes)

    def __repr__(self):
        return "%s(%s)" % (self.__class__.__name__,
                           ", ".join("%s=%r" % (k, getattr(self, k))
                                     for k in sorted(self.defaults)))
