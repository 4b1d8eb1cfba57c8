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
Defines gen_backend function
"""
import logging
import numpy as np

from ccnet.backends.backend import Backend
from ccnet.backends.cpu import CPU
from ccnet.backends.device import Device

logger = logging.getLogger(__name__)


def gen_backend(backend='cpu', rng_seed=None, datatype=np.float32,
                max_threads_per_block=1024, max_shared_bytes=48 * 1024):
    """
    Construct and return a backend instance of the appropriate type based on
    the arguments given.  With no parameters, a float32 CPU backend running
    its kernels on a default emulated device is returned.

    Arguments:
        backend (string, optional): only 'cpu' is available.
        rng_seed (numeric, optional): Set this to a numeric value which can be
                                      used to seed the random number generator
                                      of the instantiated backend.  Defaults
                                      to None, which doesn't explicitly seed
                                      (so each run will be different)
        datatype (dtype): Default tensor data type, np.float32 or np.float64.
        max_threads_per_block (int): device limit on the block size.
        max_shared_bytes (int): device limit on scratch memory per block.

    Returns:
        Backend: newly constructed backend instance of the specifed type.
    """
    if backend not in Backend.backend_choices():
        raise ValueError("backend must be one of %s, got %s" %
                         (Backend.backend_choices(), backend))

    device = Device(max_threads_per_block=max_threads_per_block,
                    max_shared_bytes=max_shared_bytes)
    be = CPU(rng_seed=rng_seed, datatype=datatype, device=device)
    logger.info("Backend: %s, RNG seed: %s, datatype: %s", backend, rng_seed,
                np.dtype(be.default_dtype).name)
    return be
