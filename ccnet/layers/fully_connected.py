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
Fully connected layer.
"""
import logging

from ccnet.layers.layer import WeightLayer
from ccnet.util.param import req_param

logger = logging.getLogger(__name__)


class FCLayer(WeightLayer):
    """
    Fully connected feed-forward neural network layer, with one weight
    matrix per input: ``pre = sum_i W_i x_i + b``.

    Attributes:
        nout (integer): number of output units.
    """
    def __init__(self, **kwargs):
        super(FCLayer, self).__init__(**kwargs)
        req_param(self, ['nout'])

    def configure(self):
        self.weights = [self.init_weights((self.nout, prev.nout))
                        for prev in self.prevs]
        self.biases = self.init_biases(self.nout)
        logger.info("%s: %s weights, biases %s", self.name,
                    [w.shape for w in self.weights], self.biases.shape)

    def weight_sets(self):
        return self.weights + [self.biases]

    def fprop_layer(self, inputs):
        for i, (inputs_i, weights) in enumerate(zip(inputs, self.weights)):
            self.backend.fprop_fc(self.pre_acts, inputs_i, weights.values,
                                  beta=0.0 if i == 0 else 1.0)
        self.backend.add(self.pre_acts, self.biases.values, self.pre_acts)
        self.activate()

    def bprop_acts(self, idx, prev, beta):
        self.backend.bprop_fc(prev.acts_grad, self.weights[idx].values,
                              self.acts_grad, beta=beta)

    def bprop_weights(self):
        for prev, weights in zip(self.prevs, self.weights):
            self.backend.update_fc(weights.grads, prev.acts, self.acts_grad,
                                   beta=weights.grad_scale_targets())
            weights.inc_num_updates()
        self.backend.sum(self.acts_grad, axes=1, out=self.biases.grads,
                         beta=self.biases.grad_scale_targets())
        self.biases.inc_num_updates()
