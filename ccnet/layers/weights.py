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
Trainable parameter sets owned by weight layers.
"""
import logging

logger = logging.getLogger(__name__)


class Weights(object):
    """
    Values and gradients of one parameter set.

    ``grads`` is overwritten by the first gradient computation of a step and
    accumulated into by every later one, which ``num_updates`` tracks.

    Arguments:
        backend (Backend): owner of the tensors.
        values (Tensor): initial parameter values.
        epsilon (float): gradient descent step size.
    """
    def __init__(self, backend, values, epsilon):
        self.backend = backend
        self.values = values
        self.epsilon = epsilon
        self.grads = backend.zeros(values.shape, values.dtype)
        self._step = backend.empty(values.shape, values.dtype)
        self.num_updates = 0

    @property
    def shape(self):
        return self.values.shape

    def grad_scale_targets(self):
        """
        Blend factor for the next gradient written into ``grads``.
        """
        return 0.0 if self.num_updates == 0 else 1.0

    def inc_num_updates(self):
        self.num_updates += 1

    def update(self):
        """
        Apply ``values -= epsilon * grads`` if any gradient was computed
        since the last update.
        """
        if self.num_updates > 0:
            self.backend.multiply(self.grads, self.epsilon, out=self._step)
            self.backend.subtract(self.values, self._step, out=self.values)
        self.num_updates = 0
