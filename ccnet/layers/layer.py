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
Generic single neural network layer built to handle data from a particular
backend, and its place in a network graph.

Every layer counts the activations delivered by its predecessors and the
activation gradients delivered by its successors.  It runs its forward pass
once every predecessor has delivered, and its backward pass once every
gradient producing successor has delivered, exactly once per step.
"""

import logging

from ccnet.layers.weights import Weights
from ccnet.transforms.linear import Linear
from ccnet.util.error import GraphProtocolError, PreconditionError
from ccnet.util.param import opt_param, req_param

logger = logging.getLogger(__name__)

# per step states
IDLE = 'idle'
AWAITING_FPROP = 'awaiting_fprop'
FPROP_DONE = 'fprop_done'
AWAITING_BPROP = 'awaiting_bprop'
BPROP_DONE = 'bprop_done'


class Layer(object):
    """
    Single NNet layer built to handle data from a particular backend

    Attributes:
        name (str): Used to identify this layer when logging, and to refer to
                    it from the ``inputs`` of other layers.
        inputs (list): names of the predecessor layers, in the order their
                       activations are consumed.
        backend (ccnet.backends.backend.Backend): underlying type for stored
                                                  data parameters like
                                                  weights.
        nout (int): rows of the activations, set by configure.
    """

    def __init__(self, **kwargs):
        self.__dict__.update(kwargs)
        req_param(self, ['name'])
        opt_param(self, ['inputs'], [])
        if isinstance(self.inputs, str):
            self.inputs = [self.inputs]
        self.inputs = list(self.inputs)

        self.prev_idx = []
        self.next_idx = []
        self.graph = None
        self.grad_consumer = False
        self.num_grad_producers_next = 0
        self.rcvd_f = 0
        self.rcvd_b = 0
        self.state = IDLE
        self.acts = None
        self.acts_grad = None
        self._buffers = {}

    def __str__(self):
        return ("%s '%s': inputs %s, nout %s" %
                (self.__class__.__name__, self.name, self.inputs,
                 getattr(self, 'nout', None)))

    def initialize(self, kwargs):
        """
        Bind the layer to its backend, run settings and graph.  Called once
        by the graph, in topological order, before ``configure``.
        """
        self.__dict__.update(kwargs)
        req_param(self, ['backend', 'run_config', 'graph'])
        self.acts = self.backend.empty((0, 0))
        self.acts_grad = self.backend.empty((0, 0))

    def configure(self):
        """
        Derive output dimensions (and allocate parameters) from the
        predecessors, which are already configured.
        """
        raise NotImplementedError()

    @property
    def prevs(self):
        return [self.graph.layers[idx] for idx in self.prev_idx]

    @property
    def nexts(self):
        return [self.graph.layers[idx] for idx in self.next_idx]

    def has_weights(self):
        return False

    def weight_sets(self):
        return []

    def is_grad_producer(self):
        """
        Whether the backward pass of this layer emits gradients to its
        predecessors.
        """
        return True

    def is_cost(self):
        return False

    def is_data(self):
        return False

    def get_buffer(self, key, shape, dtype=None):
        """
        Scratch tensor owned by this layer, reallocated only when the
        requested shape changes.
        """
        buf = self._buffers.get(key)
        if buf is None:
            buf = self.backend.empty(shape, dtype)
            self._buffers[key] = buf
        return buf.resize(*shape)

    def reset(self):
        self.rcvd_f = 0
        self.rcvd_b = 0
        self.state = AWAITING_FPROP

    def _protocol_error(self, msg, *args):
        msg = "layer %s: %s" % (self.name, msg % args)
        logger.error(msg)
        raise GraphProtocolError(msg)

    def fprop_input(self):
        """
        One predecessor has its activations ready.
        """
        if self.state != AWAITING_FPROP:
            self._protocol_error("received forward input in state %s",
                                 self.state)
        self.rcvd_f += 1
        if self.rcvd_f > len(self.prev_idx):
            self._protocol_error("received %d forward inputs, has %d "
                                 "predecessors", self.rcvd_f,
                                 len(self.prev_idx))
        if self.rcvd_f == len(self.prev_idx):
            self.fprop()

    def fprop(self):
        if self.state != AWAITING_FPROP:
            self._protocol_error("forward pass requested in state %s",
                                 self.state)
        if self.rcvd_f != len(self.prev_idx):
            self._protocol_error("forward pass with %d of %d inputs",
                                 self.rcvd_f, len(self.prev_idx))
        self.fprop_layer([prev.acts for prev in self.prevs])
        self.state = FPROP_DONE
        logger.debug("%s fprop done, acts %s", self.name, self.acts.shape)
        self.graph.fprop_done(self)
        for nxt in self.nexts:
            nxt.fprop_input()

    def fprop_layer(self, inputs):
        raise NotImplementedError()

    def bprop_input(self):
        """
        One gradient producing successor has written into ``acts_grad``.
        """
        if not self.grad_consumer:
            self._protocol_error("does not consume gradients")
        if self.state not in (FPROP_DONE, AWAITING_BPROP):
            self._protocol_error("received backward input in state %s",
                                 self.state)
        self.rcvd_b += 1
        self.state = AWAITING_BPROP
        if self.rcvd_b > self.num_grad_producers_next:
            self._protocol_error("received %d backward inputs, expected %d",
                                 self.rcvd_b, self.num_grad_producers_next)
        if self.rcvd_b == self.num_grad_producers_next:
            self.bprop()

    def bprop(self):
        if self.state not in (FPROP_DONE, AWAITING_BPROP):
            self._protocol_error("backward pass requested in state %s",
                                 self.state)
        if self.rcvd_b != self.num_grad_producers_next:
            self._protocol_error("backward pass with %d of %d gradients",
                                 self.rcvd_b, self.num_grad_producers_next)
        self.bprop_layer()
        self.state = BPROP_DONE
        logger.debug("%s bprop done", self.name)
        if self.is_grad_producer():
            for prev in self.prevs:
                if prev.grad_consumer:
                    prev.bprop_input()

    def bprop_layer(self):
        """
        Write gradients into every gradient consuming predecessor, then
        compute the weight gradients.  The first writer of a predecessor's
        ``acts_grad`` in a step overwrites it, later writers accumulate.
        """
        if self.is_grad_producer():
            written = set()
            for i, prev in enumerate(self.prevs):
                if not prev.grad_consumer:
                    continue
                first = prev.rcvd_b == 0 and id(prev) not in written
                self.bprop_acts(i, prev, 0.0 if first else 1.0)
                written.add(id(prev))
        self.bprop_weights()
        self.trunc_bwd_acts()

    def bprop_acts(self, idx, prev, beta):
        """
        Gradient with respect to the ``idx``-th input, blended into
        ``prev.acts_grad`` as ``beta * prev.acts_grad + gradient``.
        """
        raise NotImplementedError()

    def bprop_weights(self):
        pass

    def update_weights(self):
        pass

    def deliver_grad(self, prev, grad, beta):
        if beta == 0:
            prev.acts_grad.resize(*grad.shape)
            prev.acts_grad.copy_from(grad)
        else:
            self.backend.add(prev.acts_grad, grad, prev.acts_grad)

    def trunc_bwd_acts(self):
        """
        Release backward buffers no longer needed in this step.
        """
        if self.run_config.conserve_mem and not self.run_config.checking_grads:
            self.acts_grad.truncate()


class DataLayer(Layer):
    """
    Entry point of the graph.  Passes through the tensor at ``data_idx`` of
    the data handed to the graph.

    Attributes:
        data_idx (int): position of this layer's tensor in the data list.
        nout (int): rows of the data.
        num_channels (int, optional): image colors, for image data.
        img_size (int, optional): image side, for image data.
    """

    def __init__(self, **kwargs):
        super(DataLayer, self).__init__(**kwargs)
        req_param(self, ['data_idx'])
        opt_param(self, ['num_channels', 'img_size'])
        if self.num_channels is not None and self.img_size is not None:
            opt_param(self, ['nout'],
                      self.num_channels * self.img_size * self.img_size)
        req_param(self, ['nout'])
        if self.inputs:
            raise ValueError("data layer %s cannot have inputs" % self.name)
        self.data = None

    def is_data(self):
        return True

    def configure(self):
        pass

    def set_data(self, data):
        if data.shape[0] != self.nout:
            raise PreconditionError("data layer %s expects %d rows, got %d" %
                             (self.name, self.nout, data.shape[0]))
        self.data = data

    def fprop_layer(self, inputs):
        self.acts = self.data


class WeightLayer(Layer):
    """
    Layer owning weight sets, followed by an activation function.

    Attributes:
        activation (Activation): applied to the pre-activations.
        epsilon (float): learning rate of the weight sets, the run's learning
                         rate if not given.
        weight_init_scale (float): weights are drawn uniformly from
                                   [-scale, scale).
    """

    def __init__(self, **kwargs):
        super(WeightLayer, self).__init__(**kwargs)
        opt_param(self, ['activation'], None)
        opt_param(self, ['epsilon'], None)
        opt_param(self, ['weight_init_scale'], 0.01)
        opt_param(self, ['bias_init'], 0.0)
        if self.activation is None:
            self.activation = Linear()

    def initialize(self, kwargs):
        super(WeightLayer, self).initialize(kwargs)
        if self.epsilon is None:
            self.epsilon = self.run_config.learning_rate
        self.pre_acts = self.backend.empty((0, 0))

    def has_weights(self):
        return True

    def init_weights(self, shape):
        scale = self.weight_init_scale
        return Weights(self.backend,
                       self.backend.uniform(-scale, scale, shape),
                       self.epsilon)

    def init_biases(self, rows):
        values = self.backend.zeros((rows, 1))
        values.fill(self.bias_init)
        return Weights(self.backend, values, self.epsilon)

    def activate(self):
        self.acts.resize(*self.pre_acts.shape)
        self.activation.fprop_func(self.backend, self.pre_acts, self.acts)

    def bprop_layer(self):
        # turn acts_grad into deltas with respect to the pre-activations
        self.activation.bprop_func(self.backend, self.pre_acts, self.acts_grad)
        super(WeightLayer, self).bprop_layer()

    def update_weights(self):
        for weights in self.weight_sets():
            weights.update()
