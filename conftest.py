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
'''
General functions for running the unit tests via pytest.
'''

import numpy as np
import pytest

from ccnet.backends import gen_backend


def pytest_addoption(parser):
    '''
    Add a --all option to run the full range of parameters for tests generated using the
    pytest test generators
    '''
    parser.addoption("--all", action="store_true",
                     help="run all tests")
    return


@pytest.fixture(scope='module')
def backend_cpu(request):
    '''
    Fixture to setup a float32 cpu backend before running a test.  This has
    module scope, so this will be run once for each test file (module).
    '''
    be = gen_backend(backend='cpu',
                     datatype=np.float32,
                     rng_seed=0)
    return be


@pytest.fixture(scope='module')
def backend_cpu64(request):
    '''
    Fixture that returns a cpu backend using 64 bit dtype.
    For use in tests like gradient checking which need higher
    precision
    '''
    be = gen_backend(backend='cpu',
                     datatype=np.float64,
                     rng_seed=0)
    return be


@pytest.fixture(scope='function', params=[np.float32, np.float64],
                ids=['f32', 'f64'])
def backend_tests(request):
    '''
    Fixture that returns cpu backends for 32 and 64 bit, reseeded for every
    test.
    '''
    be = gen_backend(backend='cpu',
                     datatype=request.param,
                     rng_seed=0)
    return be
