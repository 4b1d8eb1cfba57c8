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
Terminal layers computing a cost and seeding the backward pass.
"""
import logging

from ccnet.layers.layer import Layer
from ccnet.util.param import opt_param

logger = logging.getLogger(__name__)


class CostLayer(Layer):
    """
    Generic cost layer.  Its activations are the (1, N) per example costs;
    the backward pass writes ``coeff * dcost / dinput`` into the
    predecessors.

    Attributes:
        coeff (float): weight of this cost in the objective.  A cost with a
                       zero coefficient is evaluated but produces no
                       gradients.
    """
    def __init__(self, **kwargs):
        super(CostLayer, self).__init__(**kwargs)
        opt_param(self, ['coeff'], 1.0)
        self.nout = 1
        self.cost = 0.0

    def is_cost(self):
        return True

    def is_grad_producer(self):
        return self.coeff != 0

    def configure(self):
        if len(self.prev_idx) != 2:
            raise ValueError("cost layer %s needs predictions and targets as "
                             "inputs, got %d inputs" % (self.name,
                                                        len(self.prev_idx)))
        nouts = [prev.nout for prev in self.prevs]
        if nouts[0] != nouts[1]:
            raise ValueError("cost layer %s: predictions have %d rows, "
                             "targets %d" % (self.name, nouts[0], nouts[1]))

    def get_cost(self):
        """
        Sum of the per example costs of the last forward pass, not scaled
        by ``coeff``.
        """
        return self.cost

    def fprop_layer(self, inputs):
        self.cost_vector(inputs[0], inputs[1], self.acts)
        self.cost = float(self.acts.asnumpyarray().sum())

    def cost_vector(self, outputs, targets, out):
        raise NotImplementedError()

    def grad_outputs(self, outputs, targets, out):
        """
        Gradient of the summed cost with respect to the predictions.
        """
        raise NotImplementedError()

    def bprop_acts(self, idx, prev, beta):
        outputs, targets = [p.acts for p in self.prevs]
        grad = self.get_buffer('grad', outputs.shape)
        if idx == 0:
            self.grad_outputs(outputs, targets, grad)
            self.backend.multiply(grad, self.coeff, out=grad)
        else:
            grad.fill(0.0)
        self.deliver_grad(prev, grad, beta)

    def trunc_bwd_acts(self):
        pass


class LogisticCostLayer(CostLayer):
    """
    Cross-entropy of the logistic of the scores against binary labels,
    summed over the rows:
    ``-(t * log(p) + (1 - t) * log(1 - p))`` with ``p = logistic(scores)``.
    """
    def __init__(self, **kwargs):
        super(LogisticCostLayer, self).__init__(**kwargs)
        opt_param(self, ['clip_epsilon'], 2 ** -23)

    def cost_vector(self, outputs, targets, out):
        be = self.backend
        probs = self.get_buffer('probs', outputs.shape)
        log_p = self.get_buffer('log_p', outputs.shape)
        log_q = self.get_buffer('log_q', outputs.shape)

        be.logistic(outputs, probs)
        be.clip(probs, self.clip_epsilon, 1.0 - self.clip_epsilon, out=log_q)
        be.log(log_q, out=log_p)
        be.subtract(1.0, log_q, out=log_q)
        be.log(log_q, out=log_q)

        # log(1 - p) + t * (log(p) - log(1 - p))
        be.subtract(log_p, log_q, out=log_p)
        be.multiply(targets, log_p, out=log_p)
        be.add(log_p, log_q, out=log_p)
        be.sum(log_p, axes=0, out=out)
        be.multiply(out, -1.0, out=out)

    def grad_outputs(self, outputs, targets, out):
        self.backend.logistic(outputs, out)
        self.backend.subtract(out, targets, out=out)


class SumSquaredCostLayer(CostLayer):
    """
    Half the summed squared difference between predictions and targets.
    """
    def cost_vector(self, outputs, targets, out):
        diff = self.get_buffer('diff', outputs.shape)
        self.backend.subtract(outputs, targets, out=diff)
        self.backend.multiply(diff, diff, out=diff)
        self.backend.sum(diff, axes=0, out=out)
        self.backend.multiply(out, 0.5, out=out)

    def grad_outputs(self, outputs, targets, out):
        self.backend.subtract(outputs, targets, out=out)

    def bprop_acts(self, idx, prev, beta):
        if idx == 0:
            super(SumSquaredCostLayer, self).bprop_acts(idx, prev, beta)
            return
        outputs, targets = [p.acts for p in self.prevs]
        grad = self.get_buffer('grad', outputs.shape)
        self.backend.subtract(targets, outputs, out=grad)
        self.backend.multiply(grad, self.coeff, out=grad)
        self.deliver_grad(prev, grad, beta)
