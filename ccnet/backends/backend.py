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
Defines Tensor and Backend class.
"""
import logging

logger = logging.getLogger(__name__)


class Tensor(object):
    """
    Dense two dimensional buffer with an explicit leading dimension stride.

    Rows index features (colors x pixels, filters x modules, ...) and columns
    index the examples of a batch.  A tensor may be a view on a wider buffer,
    in which case it is not contiguous and may only be read through its
    stride; it may also be a transposed view.

    Attributes:
        shape (tuple): (rows, cols) of the logical view.
        dtype (numpy.dtype): element type.
    """
    shape = None
    dtype = None

    def get_num_rows(self):
        return self.shape[0]

    def get_num_cols(self):
        return self.shape[1]

    def get_num_elements(self):
        return self.shape[0] * self.shape[1]

    def get_stride(self):
        """
        Distance, in elements, between the starts of consecutive rows (or of
        consecutive columns for a transposed view).
        """
        raise NotImplementedError()

    def is_trans(self):
        raise NotImplementedError()

    def is_contiguous(self):
        raise NotImplementedError()

    @property
    def raw(self):
        """
        Handle to the underlying device buffer.
        """
        raise NotImplementedError()

    def asnumpyarray(self):
        raise NotImplementedError()

    def resize(self, rows, cols):
        """
        Ensure the tensor has the given shape, reallocating (and discarding
        contents) only when the shape changes.
        """
        raise NotImplementedError()

    def truncate(self):
        """
        Release the tensor storage, leaving a 0x0 tensor.
        """
        raise NotImplementedError()

    def reshape(self, rows, cols):
        raise NotImplementedError()

    def transpose(self):
        raise NotImplementedError()

    def fill(self, value):
        raise NotImplementedError()

    def copy(self):
        raise NotImplementedError()


class Backend(object):
    """
    Generic backend used to manipulate data.  This abstract
    base class defines what operations each concrete backend must support.

    Notes:
        Unless noted otherwise, operations taking an ``out`` tensor write
        their result there.  Operations taking a ``beta`` argument blend
        the result as ``out = beta * out + result`` and, when ``beta`` is 0,
        resize ``out`` rather than read it.
    """
    @staticmethod
    def backend_choices():
        return ['cpu']

    def empty(self, shape, dtype=None):
        raise NotImplementedError()

    def zeros(self, shape, dtype=None):
        raise NotImplementedError()

    def ones(self, shape, dtype=None):
        raise NotImplementedError()

    def array(self, obj, dtype=None):
        raise NotImplementedError()

    def uniform(self, low=0.0, high=1.0, shape=1, dtype=None):
        raise NotImplementedError()

    def add(self, left, right, out):
        raise NotImplementedError()

    def subtract(self, left, right, out):
        raise NotImplementedError()

    def multiply(self, left, right, out):
        raise NotImplementedError()

    def dot(self, left, right, out, alpha=1.0, beta=0.0):
        raise NotImplementedError()

    def sum(self, tsr, axes, out, beta=0.0):
        raise NotImplementedError()

    def logistic(self, x, out):
        raise NotImplementedError()

    def rectlin(self, x, out):
        raise NotImplementedError()

    def tanh(self, x, out):
        raise NotImplementedError()

    def fprop_fc(self, out, inputs, weights, beta=0.0):
        raise NotImplementedError()

    def bprop_fc(self, out, weights, deltas, beta=0.0):
        raise NotImplementedError()

    def update_fc(self, out, inputs, deltas, beta=0.0):
        raise NotImplementedError()

    def fprop_conv(self, out, inputs, weights, geom):
        raise NotImplementedError()

    def bprop_conv(self, out, weights, deltas, geom, beta=0.0):
        raise NotImplementedError()

    def update_conv(self, out, inputs, deltas, geom, module_sum=None,
                    scale_targets=0.0, scale_output=1.0, config=None):
        raise NotImplementedError()

    def fprop_pool(self, out, inputs, geom, argmax=None):
        raise NotImplementedError()

    def bprop_pool(self, out, deltas, geom, argmax=None, beta=0.0):
        raise NotImplementedError()

    def fprop_rnorm(self, out, inputs, denoms, geom, meandiffs=None):
        raise NotImplementedError()

    def bprop_rnorm(self, out, inputs, deltas, denoms, geom, meandiffs=None,
                    beta=0.0):
        raise NotImplementedError()
