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
Geometry parameter objects shared by the CPU layer operations and the tiled
kernels.

All image-like tensors are laid out with one example per column:
images are (colors * imgSize * imgSize, N), filter responses are
(filters * modulesY * modulesX, N) and convolution weights are
(filterColors * filterSize * filterSize, filters).
"""
import logging

from ccnet.util.error import PreconditionError

logger = logging.getLogger(__name__)


def ceil_div(x, y):
    """
    same as int(ceil(float(x)/y)), so no need to import math lib
    """
    return -(-x // y)


def _fail(msg, *args):
    msg = msg % args
    logger.error(msg)
    raise PreconditionError(msg)


class ConvGeometry(object):

    """
    Convolution geometry value object.  Recomputed for every call that needs
    it and passed to all the convolution operations.

    N: Number of images in mini-batch
    C: Number of image colors (input feature maps)
    K: Number of filters (output feature maps)

    img_size: side of the (square) input image
    filter_size: side of the (square) filter
    padding: offset of the first module's receptive field, <= 0
    stride: distance between neighbouring modules
    groups: number of color groups; filters of group g only see colors of
            group g
    modules_x: modules per side, derived from the rest if not given
    """

    def __init__(self, N, C, K, img_size, filter_size, padding=0, stride=1,
                 groups=1, modules_x=None):
        if modules_x is None:
            modules_x = self.output_dim(img_size, filter_size, padding, stride)

        self.N = N
        self.C = C
        self.K = K
        self.img_size = img_size
        self.filter_size = filter_size
        self.padding = padding
        self.stride = stride
        self.groups = groups
        self.modules_x = modules_x

        self.img_pixels = img_size * img_size
        self.num_modules = modules_x * modules_x
        self.filter_pixels = filter_size * filter_size
        self.filter_colors = C // groups if groups else 0
        self.filters_per_group = K // groups if groups else 0

        self.dimI = (C, img_size, img_size, N)
        self.dimF = (self.filter_colors, filter_size, filter_size, K)
        self.dimO = (K, modules_x, modules_x, N)
        self.dimI2 = (C * self.img_pixels, N)
        self.dimF2 = (self.filter_colors * self.filter_pixels, K)
        self.dimO2 = (K * self.num_modules, N)
        self.nOut = K * self.num_modules

        self.check()

        self.mSlice = [self.fprop_slice(m) for m in range(modules_x)]

    @staticmethod
    def output_dim(img_size, filter_size, padding, stride):
        """
        Number of modules per side for a square convolution whose first
        receptive field starts at ``padding`` (<= 0) and that pads the far
        edge symmetrically.
        """
        return 1 + ceil_div(img_size - 2 * padding - filter_size, stride)

    def check(self):
        """
        Enforce the geometric invariants of a supported convolution.

        Raises:
            PreconditionError: if any invariant does not hold.
        """
        if self.padding > 0:
            _fail("padding start must be <= 0, got %d", self.padding)
        if self.stride < 1 or self.stride > self.filter_size:
            _fail("module stride %d must be in [1, filter size %d]",
                  self.stride, self.filter_size)
        if self.modules_x < 1:
            _fail("convolution has no modules")
        if (self.padding + (self.modules_x - 1) * self.stride +
                self.filter_size < self.img_size):
            _fail("convolution with padding %d, %d modules, stride %d and "
                  "filter size %d does not cover an image of size %d",
                  self.padding, self.modules_x, self.stride,
                  self.filter_size, self.img_size)
        if self.groups < 1 or self.K % self.groups != 0:
            _fail("%d filters not divisible into %d groups", self.K,
                  self.groups)
        if self.C % self.groups != 0:
            _fail("%d image colors not divisible into %d groups", self.C,
                  self.groups)

    def check_images(self, images):
        if images.is_trans():
            _fail("images must not be transposed")
        if images.shape[0] != self.C * self.img_pixels:
            _fail("images have %d rows, expected %d colors x %d pixels",
                  images.shape[0], self.C, self.img_pixels)
        if images.shape[1] != self.N:
            _fail("images have %d columns, expected %d", images.shape[1],
                  self.N)

    def check_hid_acts(self, hid_acts):
        if hid_acts.is_trans():
            _fail("hidden activations must not be transposed")
        if not hid_acts.is_contiguous():
            _fail("hidden activations must be contiguous")
        if hid_acts.shape != self.dimO2:
            _fail("hidden activations have shape %s, expected %s",
                  str(hid_acts.shape), str(self.dimO2))

    def check_filters(self, filters):
        if filters.is_trans():
            _fail("filters must not be transposed")
        if filters.shape != self.dimF2:
            _fail("filters have shape %s, expected %s", str(filters.shape),
                  str(self.dimF2))

    def dimU2(self, module_sum):
        """
        Shape of the weight gradient targets when ``module_sum`` consecutive
        modules are folded into each output chunk.
        """
        if module_sum < 1 or self.num_modules % module_sum != 0:
            _fail("module sum %d does not divide %d modules", module_sum,
                  self.num_modules)
        chunks = self.num_modules // module_sum
        return (chunks * self.filter_colors * self.filter_pixels, self.K)

    def fprop_slice(self, q):
        """
        Filter taps and image positions touched by module ``q`` along one
        axis, clipped to the image.

        Returns:
            tuple: (slice of filter taps, slice of image positions, count)
        """
        f1 = None
        qs = q * self.stride + self.padding
        for s in range(self.filter_size):
            x = qs + s
            if f1 is None and x >= 0 and x < self.img_size:
                x1 = x
                f1 = s
            if x < self.img_size:
                x2 = x
                f2 = s
        if f1 is None:
            return (slice(0, 0, 1), slice(0, 0, 1), 0)
        return (slice(f1, f2 + 1), slice(x1, x2 + 1), f2 - f1 + 1)


class PoolGeometry(object):

    """
    PoolGeometry parameter object.
    This then is passed as an argument to all pooling operations.

    op: max or avg pooling
    N: Number of images in mini-batch
    C: Number of feature maps
    img_size: side of each (square) feature map
    size: side of the pooling window
    start: offset of the first window, <= 0
    stride: distance between windows (overlap allowed)
    """

    def __init__(self, op, N, C, img_size, size, start=0, stride=None,
                 outputs_x=None):
        if stride is None:
            stride = size
        if op not in ('max', 'avg'):
            _fail("unknown pooling op %s", op)
        if start > 0:
            _fail("pooling start must be <= 0, got %d", start)
        if outputs_x is None:
            outputs_x = ceil_div(img_size - start - size, stride) + 1

        self.op = op
        self.N = N
        self.C = C
        self.img_size = img_size
        self.size = size
        self.start = start
        self.stride = stride
        self.outputs_x = outputs_x

        self.dimI = (C, img_size, img_size, N)
        self.dimO = (C, outputs_x, outputs_x, N)
        self.dimI2 = (C * img_size * img_size, N)
        self.dimO2 = (C * outputs_x * outputs_x, N)
        self.nOut = C * outputs_x * outputs_x

        self.pSlice = [self.pool_slice(p) for p in range(outputs_x)]
        for sl, cnt in self.pSlice:
            if cnt == 0:
                _fail("pooling window lies entirely outside the image")

    def pool_slice(self, q):
        first = max(q * self.stride + self.start, 0)
        last = min(q * self.stride + self.start + self.size, self.img_size)
        if last <= first:
            return (slice(0, 0), 0)
        return (slice(first, last), last - first)


class NormGeometry(object):

    """
    Within-map normalization parameter object.

    N: Number of images in mini-batch
    C: Number of feature maps
    img_size: side of each (square) feature map
    size: side of the normalization window, centred on each pixel
    add_scale: multiplier of the windowed sum of squares
    pow_scale: exponent applied to the denominator
    """

    def __init__(self, N, C, img_size, size, add_scale, pow_scale):
        if size < 1 or size > img_size:
            _fail("normalization window %d invalid for map size %d", size,
                  img_size)
        self.N = N
        self.C = C
        self.img_size = img_size
        self.size = size
        self.add_scale = add_scale
        self.pow_scale = pow_scale
        self.offset = -(size // 2)

        self.dimI = (C, img_size, img_size, N)
        self.dimI2 = (C * img_size * img_size, N)
        self.nOut = C * img_size * img_size
