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
Convolution layer.
"""
import logging

from ccnet.backends.layer_cpu import ConvGeometry
from ccnet.layers.layer import WeightLayer
from ccnet.util.param import opt_param, req_param

logger = logging.getLogger(__name__)


def image_shape(layer, prev):
    """
    (channels, side) of the image-like activations of ``prev``.
    """
    channels = getattr(prev, 'num_channels', None)
    img_size = getattr(prev, 'img_size', None)
    if channels is None or img_size is None:
        raise ValueError("%s needs image input, %s does not give its "
                         "channels and image size" % (layer.name, prev.name))
    return channels, img_size


class ConvLayer(WeightLayer):
    """
    Convolutional layer with optional filter groups.

    Attributes:
        filter_size (int): side of the square filters.
        num_filters (int): filters over all groups.
        padding (int): offset of the first module, <= 0.
        stride (int): distance between modules.
        num_groups (int): filter groups, each sees its share of the colors.
        partial_sum (int): modules whose weight gradients are summed by the
                           kernel before the chunks are added up, all of them
                           by default.
        shared_biases (bool): one bias per filter instead of one per output.
    """
    def __init__(self, **kwargs):
        super(ConvLayer, self).__init__(**kwargs)
        req_param(self, ['filter_size', 'num_filters'])
        opt_param(self, ['padding'], 0)
        opt_param(self, ['stride'], 1)
        opt_param(self, ['num_groups'], 1)
        opt_param(self, ['partial_sum'], None)
        opt_param(self, ['shared_biases'], True)
        self._geoms = {}

    def configure(self):
        if len(self.prev_idx) != 1:
            raise ValueError("conv layer %s needs exactly one input, got %d" %
                             (self.name, len(self.prev_idx)))
        self.in_channels, self.in_size = image_shape(self, self.prevs[0])

        # validates the geometry once for a batch of one
        geom = ConvGeometry(1, self.in_channels, self.num_filters,
                            self.in_size, self.filter_size, self.padding,
                            self.stride, self.num_groups)
        self.num_channels = self.num_filters
        self.img_size = geom.modules_x
        self.num_modules = geom.num_modules
        self.nout = geom.nOut
        if self.partial_sum is None:
            self.partial_sum = self.num_modules
        geom.dimU2(self.partial_sum)

        self.weights = self.init_weights(geom.dimF2)
        self.biases = self.init_biases(
            self.num_filters if self.shared_biases else self.nout)
        self.weight_scratch = self.backend.empty((0, 0))
        logger.info("%s: %dx%d filters over %d colors in %d groups, "
                    "%d modules per side, partial sum %d", self.name,
                    self.filter_size, self.filter_size, self.in_channels,
                    self.num_groups, self.img_size, self.partial_sum)

    def geometry(self, num_images):
        geom = self._geoms.get(num_images)
        if geom is None:
            geom = ConvGeometry(num_images, self.in_channels,
                                self.num_filters, self.in_size,
                                self.filter_size, self.padding, self.stride,
                                self.num_groups)
            self._geoms[num_images] = geom
        return geom

    def weight_sets(self):
        return [self.weights, self.biases]

    def _bias_view(self, tsr):
        if self.shared_biases:
            return tsr.reshape(self.num_filters,
                               self.num_modules * tsr.shape[1])
        return tsr

    def fprop_layer(self, inputs):
        geom = self.geometry(inputs[0].shape[1])
        self.backend.fprop_conv(self.pre_acts, inputs[0],
                                self.weights.values, geom)
        pre = self._bias_view(self.pre_acts)
        self.backend.add(pre, self.biases.values, pre)
        self.activate()

    def bprop_acts(self, idx, prev, beta):
        geom = self.geometry(self.acts_grad.shape[1])
        self.backend.bprop_conv(prev.acts_grad, self.weights.values,
                                self.acts_grad, geom, beta=beta)

    def bprop_weights(self):
        inputs = self.prevs[0].acts
        geom = self.geometry(inputs.shape[1])
        weights = self.weights
        chunks = self.num_modules // self.partial_sum
        if chunks == 1:
            self.backend.update_conv(weights.grads, inputs, self.acts_grad,
                                     geom, module_sum=self.partial_sum,
                                     scale_targets=weights.grad_scale_targets())
        else:
            self.backend.update_conv(self.weight_scratch, inputs,
                                     self.acts_grad, geom,
                                     module_sum=self.partial_sum)
            self.backend.fold_modules(weights.grads, self.weight_scratch,
                                      chunks,
                                      beta=weights.grad_scale_targets())
        weights.inc_num_updates()

        self.backend.sum(self._bias_view(self.acts_grad), axes=1,
                         out=self.biases.grads,
                         beta=self.biases.grad_scale_targets())
        self.biases.inc_num_updates()

    def trunc_bwd_acts(self):
        super(ConvLayer, self).trunc_bwd_acts()
        if self.run_config.conserve_mem and not self.run_config.checking_grads:
            self.weight_scratch.truncate()
