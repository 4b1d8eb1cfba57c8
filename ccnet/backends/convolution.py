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
Python code to wrap convolution kernels
"""
import logging
import numpy as np

from ccnet.backends import kernel_specs
from ccnet.backends.device import Dim3
from ccnet.backends.weight_acts import WeightActsArgs, get_kernel
from ccnet.util.error import PreconditionError

logger = logging.getLogger(__name__)


class KernelGroup(object):
    def __init__(self, lib, dtype, geom):
        self.lib = lib
        self.dtype = np.dtype(dtype)
        self.geom = geom
        self.kernel_name = None
        self.launch_args = None

        if self.dtype.type not in (np.float32, np.float64):
            raise TypeError("dtype not supported.")

    def bind_params(self, *args):
        raise TypeError("bind_params not implemented.")

    def execute(self, repeat=1, unbind=True):
        raise TypeError("execute not implemented.")

    def _fail(self, msg, *args):
        msg = "%s: %s" % (self.kernel_name, msg % args)
        logger.error(msg)
        raise PreconditionError(msg)

    def __str__(self):
        return "%s %s" % (self.__class__.__name__, self.kernel_name)


class UpdateTiled(KernelGroup):
    """
    Weight gradient of a convolution, computed by the tiled kernels.

    Arguments:
        lib (Backend): backend owning the device to launch on.
        dtype (numpy.dtype): element type of all operands.
        geom (ConvGeometry): convolution geometry.
        module_sum (int, optional): consecutive modules folded into each row
                                    block of the output.  Defaults to all of
                                    them.
        config (TileConfig, optional): tiling to use instead of the one
                                       chosen for the problem shape.
    """
    def __init__(self, lib, dtype, geom, module_sum=None, config=None):
        super(UpdateTiled, self).__init__(lib, dtype, geom)

        if module_sum is None:
            module_sum = geom.num_modules
        self.module_sum = module_sum
        self.dimU2 = geom.dimU2(module_sum)

        if config is None:
            config = kernel_specs.select_weight_acts_config(
                geom.K, geom.filter_colors, geom.N, geom.groups)
        kernel_specs.check_weight_acts_config(config, geom)

        self.config = config
        self.kernel_name = str(config)
        self.kernel = get_kernel(config.kernel)
        self.grid = Dim3(*config.grid(geom, module_sum))
        self.block = Dim3(*config.block)
        self.shared_bytes = config.shared_bytes(self.dtype.itemsize)

    def bind_params(self, I, E, U, scale_targets=0.0, scale_output=1.0):
        """
        Bind images ``I``, hidden activation gradients ``E`` and targets
        ``U``.  With ``scale_targets == 0`` and ``scale_output == 1`` the
        targets are resized and overwritten, otherwise they must already
        have the output shape and are blended.
        """
        geom = self.geom
        geom.check_images(I)
        geom.check_hid_acts(E)
        for tsr in (I, E, U):
            if np.dtype(tsr.dtype) != self.dtype:
                self._fail("operand dtype %s, expected %s", tsr.dtype,
                           self.dtype)

        if scale_targets == 0 and scale_output == 1:
            U.resize(*self.dimU2)
        elif U.shape != self.dimU2:
            self._fail("blending into targets of shape %s, expected %s",
                       str(U.shape), str(self.dimU2))
        if U.is_trans() or not U.is_contiguous():
            self._fail("targets must be contiguous and not transposed")

        self.launch_args = (WeightActsArgs(I.raw, E.raw, U.raw, geom,
                                           self.config, self.module_sum,
                                           scale_targets, scale_output),)

    def execute(self, repeat=1, unbind=True):
        if self.launch_args is None:
            self._fail("execute called before bind_params")
        for r in range(repeat):
            self.lib.device.launch(self.kernel, self.grid, self.block,
                                   self.shared_bytes, *self.launch_args)
        if unbind:
            self.launch_args = None
