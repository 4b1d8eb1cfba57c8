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
Pooling layer.
"""
import logging
import numpy as np

from ccnet.backends.layer_cpu import PoolGeometry
from ccnet.layers.convolutional import image_shape
from ccnet.layers.layer import Layer
from ccnet.util.param import opt_param, req_param

logger = logging.getLogger(__name__)


class PoolingLayer(Layer):
    """
    Max or average pooling over square windows of every map.

    Attributes:
        pool_size (int): side of the pooling window.
        op (str): 'max' or 'avg'.
        start (int): offset of the first window, <= 0.
        stride (int): distance between windows, pool_size by default.
    """
    def __init__(self, **kwargs):
        super(PoolingLayer, self).__init__(**kwargs)
        req_param(self, ['pool_size'])
        opt_param(self, ['op'], 'max')
        opt_param(self, ['start'], 0)
        opt_param(self, ['stride'], self.pool_size)
        self._geoms = {}

    def configure(self):
        if len(self.prev_idx) != 1:
            raise ValueError("pooling layer %s needs exactly one input" %
                             self.name)
        self.num_channels, self.in_size = image_shape(self, self.prevs[0])
        geom = self.geometry(1)
        self.img_size = geom.outputs_x
        self.nout = geom.nOut
        self.argmax = self.backend.empty((0, 0), dtype=np.int64)

    def geometry(self, num_images):
        geom = self._geoms.get(num_images)
        if geom is None:
            geom = PoolGeometry(self.op, num_images, self.num_channels,
                                self.in_size, self.pool_size, self.start,
                                self.stride)
            self._geoms[num_images] = geom
        return geom

    def fprop_layer(self, inputs):
        geom = self.geometry(inputs[0].shape[1])
        self.backend.fprop_pool(self.acts, inputs[0], geom,
                                argmax=self.argmax)

    def bprop_acts(self, idx, prev, beta):
        geom = self.geometry(self.acts_grad.shape[1])
        self.backend.bprop_pool(prev.acts_grad, self.acts_grad, geom,
                                argmax=self.argmax, beta=beta)
