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
# pylint: skip-file

"""
Kernel benchmark tool and the command line parser it is built on
"""
import logging
import numpy as np
import pytest

from ccnet.backends import kernel_bench
from ccnet.backends.kernel_bench import bench_weight_acts, main
from ccnet.backends.layer_cpu import ConvGeometry
from ccnet.util.argparser import CCNetArgparser
from ccnet.util.error import DeviceError


@pytest.fixture
def restore_logging():
    ccnet_logger = logging.getLogger('ccnet')
    handlers = list(ccnet_logger.handlers)
    level, propagate = ccnet_logger.level, ccnet_logger.propagate
    yield
    ccnet_logger.handlers = handlers
    ccnet_logger.setLevel(level)
    ccnet_logger.propagate = propagate


def test_bench_variants_agree(backend_cpu64):
    geom = ConvGeometry(20, 4, 16, 6, 3, -1, 1)
    results = bench_weight_acts(backend_cpu64, geom, repeat=1)
    configs = [config for config, _, _ in results]
    assert len(configs) == len(set(configs))
    assert results[0][2] == 0
    for config, elapsed, max_abs in results:
        assert elapsed >= 0
        assert max_abs < 1e-10
        assert config.bounds_checked


def test_bench_module_sum_subset(backend_cpu64):
    geom = ConvGeometry(32, 3, 32, 6, 5, -2, 1)
    results = bench_weight_acts(backend_cpu64, geom, module_sum=4, repeat=2,
                                configs=[])
    assert len(results) == 1
    assert results[0][0].kernel == 'few_colors'


def test_main(restore_logging):
    assert main(['-N', '16', '-C', '4', '-K', '16', '--img_size', '5',
                 '-d', 'f64', '--repeat', '1']) == 0


def test_main_skips_tilings_over_shared_memory(restore_logging, mocker):
    spy = mocker.spy(kernel_bench, 'bench_weight_acts')
    assert main(['-N', '16', '-C', '3', '-K', '32', '--img_size', '5',
                 '-d', 'f64', '--repeat', '1']) == 0
    limit = 48 * 1024
    configs = [config for config, _, _ in spy.spy_return]
    assert configs
    assert all(config.shared_bytes(8) <= limit for config in configs)


def test_main_reports_resource_errors(restore_logging):
    with pytest.raises(DeviceError):
        main(['-N', '16', '--img_size', '5', '--max_shared_bytes', '64'])


def test_argparser(restore_logging, tmpdir):
    cfg = tmpdir.join('bench.cfg')
    cfg.write("rng_seed = 3\ndatatype = f64\n")
    parser = CCNetArgparser(description='test')
    args = parser.parse_args(['-c', str(cfg), '-vv'])
    assert args.rng_seed == 3
    assert args.datatype is np.float64
    assert args.log_thresh == 10
    assert args.be.default_dtype is np.float64
    assert args.be.rng_seed == 3

    args = CCNetArgparser().parse_args([], gen_be=False)
    assert args.be is None
    assert args.datatype is np.float32
    assert args.log_thresh == 30
