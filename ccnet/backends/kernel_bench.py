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
Benchmark every tiling of the convolution weight gradient kernels for a
problem shape, and check that they all agree with the one the dispatcher
selects.
"""
import logging
import numpy as np
import time

from ccnet.backends import kernel_specs
from ccnet.backends.convolution import UpdateTiled
from ccnet.backends.layer_cpu import ConvGeometry
from ccnet.util.argparser import CCNetArgparser
from ccnet.util.testing import max_errors

logger = logging.getLogger(__name__)


def bench_weight_acts(be, geom, module_sum=None, repeat=3, configs=None):
    """
    Time every applicable tiling of the weight gradient for ``geom`` on
    random operands.

    Arguments:
        be (Backend): backend whose device runs the kernels.
        geom (ConvGeometry): problem shape.
        module_sum (int, optional): modules folded per output chunk.
        repeat (int): launches timed per tiling.
        configs (list, optional): tilings to run, by default every applicable
                                  one that fits the device scratch memory.

    Returns:
        list: (config, seconds per launch, max abs difference from the
              selected tiling) tuples, selected tiling first.
    """
    images = be.uniform(-1.0, 1.0, geom.dimI2)
    hid_acts = be.uniform(-1.0, 1.0, geom.dimO2)

    selected = kernel_specs.select_weight_acts_config(
        geom.K, geom.filter_colors, geom.N, geom.groups)
    if configs is None:
        configs = kernel_specs.applicable_weight_acts_configs(
            geom.K, geom.filter_colors, geom.N, geom.groups,
            itemsize=images.dtype.itemsize,
            max_shared_bytes=be.device.max_shared_bytes)
    configs = [selected] + [c for c in configs if c != selected]

    results = []
    reference = None
    for config in configs:
        targets = be.empty((0, 0))
        kernel = UpdateTiled(be, images.dtype, geom, module_sum, config)
        kernel.bind_params(images, hid_acts, targets)
        start = time.time()
        kernel.execute(repeat=repeat)
        be.device.synchronize()
        elapsed = (time.time() - start) / repeat

        result = np.array(targets.asnumpyarray())
        if reference is None:
            reference = result
        max_abs, _ = max_errors(result, reference)
        logger.debug("%s: %.6f s, max abs diff %g", config, elapsed, max_abs)
        results.append((config, elapsed, max_abs))
    return results


def main(argv=None):
    parser = CCNetArgparser(description=__doc__)
    prob = parser.add_argument_group('problem')
    prob.add_argument('-N', '--num_images', type=int, default=32,
                      help='images in the batch')
    prob.add_argument('-C', '--colors', type=int, default=4,
                      help='image colors')
    prob.add_argument('-K', '--filters', type=int, default=16,
                      help='number of filters')
    prob.add_argument('--img_size', type=int, default=8,
                      help='side of the square images')
    prob.add_argument('--filter_size', type=int, default=3,
                      help='side of the square filters')
    prob.add_argument('--padding', type=int, default=-1,
                      help='offset of the first module, <= 0')
    prob.add_argument('--stride', type=int, default=1,
                      help='distance between modules')
    prob.add_argument('--groups', type=int, default=1,
                      help='filter groups')
    prob.add_argument('--module_sum', type=int, default=None,
                      help='modules folded per output chunk, all by default')
    prob.add_argument('--repeat', type=int, default=3,
                      help='launches timed per tiling')
    prob.add_argument('--tolerance', type=float, default=1e-4,
                      help='largest difference accepted between tilings')
    args = parser.parse_args(argv)

    geom = ConvGeometry(args.num_images, args.colors, args.filters,
                        args.img_size, args.filter_size, args.padding,
                        args.stride, args.groups)
    results = bench_weight_acts(args.be, geom, args.module_sum, args.repeat)

    logger.display("%-48s %12s %12s", "tiling", "sec/launch", "max diff")
    failed = 0
    for config, elapsed, max_abs in results:
        logger.display("%-48s %12.6f %12.3e", config, elapsed, max_abs)
        if max_abs > args.tolerance:
            logger.error("%s differs from the selected tiling by %g", config,
                         max_abs)
            failed += 1
    return 1 if failed else 0
