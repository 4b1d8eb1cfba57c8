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
Within-map normalization layers.
"""
import logging

from ccnet.backends.layer_cpu import NormGeometry
from ccnet.layers.convolutional import image_shape
from ccnet.layers.layer import Layer
from ccnet.util.param import opt_param, req_param

logger = logging.getLogger(__name__)


class ResponseNormLayer(Layer):
    """
    Response normalization over a square window around every pixel of each
    map: ``out = x * (1 + scale / size**2 * sum_window(x ** 2)) ** -pow``.

    Attributes:
        size (int): side of the window.
        scale (float): multiplier of the windowed sum of squares, spread
                       over the window area.
        pow (float): exponent of the denominator.
    """
    def __init__(self, **kwargs):
        super(ResponseNormLayer, self).__init__(**kwargs)
        req_param(self, ['size'])
        opt_param(self, ['scale'], 0.001)
        opt_param(self, ['pow'], 0.75)
        self._geoms = {}

    def configure(self):
        if len(self.prev_idx) != 1:
            raise ValueError("normalization layer %s needs exactly one input"
                             % self.name)
        self.num_channels, self.img_size = image_shape(self, self.prevs[0])
        self.nout = self.geometry(1).nOut
        self.denoms = self.backend.empty((0, 0))

    def geometry(self, num_images):
        geom = self._geoms.get(num_images)
        if geom is None:
            geom = NormGeometry(num_images, self.num_channels, self.img_size,
                                self.size, self.scale / (self.size ** 2),
                                self.pow)
            self._geoms[num_images] = geom
        return geom

    def fprop_layer(self, inputs):
        geom = self.geometry(inputs[0].shape[1])
        self.backend.fprop_rnorm(self.acts, inputs[0], self.denoms, geom)

    def bprop_acts(self, idx, prev, beta):
        geom = self.geometry(self.acts_grad.shape[1])
        self.backend.bprop_rnorm(prev.acts_grad, prev.acts, self.acts_grad,
                                 self.denoms, geom, beta=beta)


class ContrastNormLayer(ResponseNormLayer):
    """
    Contrast normalization: as response normalization, with the windowed
    sum of squares taken over differences from the windowed mean.
    """
    def configure(self):
        super(ContrastNormLayer, self).configure()
        self.meandiffs = self.backend.empty((0, 0))

    def fprop_layer(self, inputs):
        geom = self.geometry(inputs[0].shape[1])
        self.backend.fprop_rnorm(self.acts, inputs[0], self.denoms, geom,
                                 meandiffs=self.meandiffs)

    def bprop_acts(self, idx, prev, beta):
        geom = self.geometry(self.acts_grad.shape[1])
        self.backend.bprop_rnorm(prev.acts_grad, prev.acts, self.acts_grad,
                                 self.denoms, geom, meandiffs=self.meandiffs,
                                 beta=beta)
