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
Network graph: owns the layers of a network and drives forward and backward
propagation over them.
"""
from collections import OrderedDict
import logging

from ccnet.backends.backend import Tensor
from ccnet.experiments.check_grad import check_graph_gradients
from ccnet.layers.layer import BPROP_DONE, FPROP_DONE
from ccnet.util.error import GraphProtocolError, PreconditionError
from ccnet.util.runconfig import RunConfig

logger = logging.getLogger(__name__)


class NetworkGraph(object):
    """
    Arena of layers connected by their ``inputs`` names.

    Layers are addressed by their index in ``layers``; every layer holds the
    indices of its predecessors (``prev_idx``, in input order) and of its
    successors (``next_idx``).

    Arguments:
        layers (list): Layer objects, in any order.
        run_config (RunConfig, optional): run settings, defaults if omitted.
        backend (Backend, optional): backend to use instead of generating
                                     one from run_config.
    """
    def __init__(self, layers, run_config=None, backend=None):
        self.layers = list(layers)
        self.run_config = run_config if run_config is not None else RunConfig()
        self.backend = backend
        self.saved_acts = OrderedDict()
        self.initialized = False

        self.layer_idx = OrderedDict()
        for idx, layer in enumerate(self.layers):
            if layer.name in self.layer_idx:
                raise ValueError("duplicate layer name %s" % layer.name)
            self.layer_idx[layer.name] = idx
        self._connect()
        self.order = self._topological_order()
        self._mark_gradient_flow()

        self.data_layers = sorted([l for l in self.layers if l.is_data()],
                                  key=lambda l: l.data_idx)
        self.cost_layers = [l for l in self.ordered_layers if l.is_cost()]
        if not self.data_layers:
            raise ValueError("network has no data layers")
        idxs = [l.data_idx for l in self.data_layers]
        if idxs != list(range(len(idxs))):
            raise ValueError("data layer indices must be 0..%d, got %s" %
                             (len(idxs) - 1, idxs))

    def __getitem__(self, name):
        return self.layers[self.layer_idx[name]]

    @property
    def ordered_layers(self):
        return [self.layers[idx] for idx in self.order]

    def _connect(self):
        for idx, layer in enumerate(self.layers):
            layer.graph = self
            layer.prev_idx = []
            layer.next_idx = []
        for idx, layer in enumerate(self.layers):
            if not layer.inputs and not layer.is_data():
                raise ValueError("layer %s has no inputs" % layer.name)
            for name in layer.inputs:
                if name not in self.layer_idx:
                    raise ValueError("layer %s: unknown input %s" %
                                     (layer.name, name))
                prev = self.layer_idx[name]
                layer.prev_idx.append(prev)
                self.layers[prev].next_idx.append(idx)
        for layer in self.layers:
            if layer.is_cost() and layer.next_idx:
                raise ValueError("cost layer %s cannot feed other layers" %
                                 layer.name)
            if not layer.next_idx and not (layer.is_cost() or
                                           layer.is_data()):
                raise ValueError("layer %s feeds no other layer and is not "
                                 "a cost" % layer.name)

    def _topological_order(self):
        pending = [len(layer.prev_idx) for layer in self.layers]
        ready = [idx for idx, cnt in enumerate(pending) if cnt == 0]
        order = []
        while ready:
            idx = ready.pop(0)
            order.append(idx)
            for nxt in self.layers[idx].next_idx:
                pending[nxt] -= 1
                if pending[nxt] == 0:
                    ready.append(nxt)
        if len(order) != len(self.layers):
            cyclic = [self.layers[idx].name for idx, cnt in enumerate(pending)
                      if cnt > 0]
            raise ValueError("network graph has a cycle through %s" %
                             ", ".join(cyclic))
        return order

    def _mark_gradient_flow(self):
        """
        Decide which layers take part in the backward pass.

        A layer can consume gradients if it has weights or feeds from a
        layer that can.  Walking back from the costs, a successor is counted
        in ``num_grad_producers_next`` only if it will actually send a
        gradient: it produces gradients and is either a cost or receives
        gradients itself.  Consumers nothing sends a gradient to are then
        dropped, so branches ending in zero coefficient costs stay out of
        the backward pass.
        """
        for layer in self.ordered_layers:
            layer.grad_consumer = not layer.is_data() and (
                layer.has_weights() or
                any(prev.grad_consumer for prev in layer.prevs))
        for layer in reversed(self.ordered_layers):
            layer.num_grad_producers_next = sum(
                1 for nxt in layer.nexts if self._sends_grad(nxt))
            if layer.num_grad_producers_next == 0:
                layer.grad_consumer = False

    @staticmethod
    def _sends_grad(layer):
        if not layer.is_grad_producer():
            return False
        return layer.is_cost() or layer.grad_consumer

    def initialize(self):
        """
        Bind every layer to the backend and configure it, predecessors
        first.
        """
        if self.initialized:
            return
        if self.backend is None:
            self.backend = self.run_config.gen_backend()
        for layer in self.ordered_layers:
            layer.initialize({'backend': self.backend,
                              'run_config': self.run_config,
                              'graph': self})
            layer.configure()
            logger.info("%s", layer)
        self.initialized = True

    def reset(self):
        for layer in self.layers:
            layer.reset()

    def fprop(self, data):
        """
        Forward propagate ``data``, one tensor per data layer in
        ``data_idx`` order, through the whole graph.
        """
        self.initialize()
        if len(data) != len(self.data_layers):
            raise PreconditionError("got %d data tensors for %d data layers" %
                                    (len(data), len(self.data_layers)))
        data = [d if isinstance(d, Tensor) else self.backend.array(d)
                for d in data]
        batch_sizes = set(d.shape[1] for d in data)
        if len(batch_sizes) != 1:
            raise PreconditionError("data tensors disagree on the batch "
                                    "size: %s" % sorted(batch_sizes))
        expected = self.run_config.batch_size
        if expected is not None and expected not in batch_sizes:
            raise PreconditionError("batch size %d, run configured for %d" %
                                    (batch_sizes.pop(), expected))

        self.reset()
        self.saved_acts.clear()
        for layer, tsr in zip(self.data_layers, data):
            layer.set_data(tsr)
            layer.fprop()
        for layer in self.layers:
            if layer.state != FPROP_DONE:
                raise GraphProtocolError("layer %s did not run its forward "
                                         "pass" % layer.name)

    def fprop_done(self, layer):
        if self.run_config.save_acts:
            self.saved_acts[layer.name] = layer.acts.asnumpyarray().copy()

    def bprop(self):
        """
        Backward propagate from every cost layer.
        """
        for layer in self.cost_layers:
            layer.bprop()
        for layer in self.layers:
            expected = layer.is_cost() or (layer.grad_consumer and
                                           layer.num_grad_producers_next > 0)
            if expected and layer.state != BPROP_DONE:
                raise GraphProtocolError("layer %s did not run its backward "
                                         "pass" % layer.name)

    def update(self):
        for layer in self.ordered_layers:
            layer.update_weights()

    def get_costs(self):
        """
        Summed cost of every cost layer in the last forward pass.
        """
        return OrderedDict((layer.name, layer.get_cost())
                           for layer in self.cost_layers)

    def get_cost(self):
        """
        Objective minimized by training: the coefficient weighted sum of
        the costs.
        """
        return sum(layer.coeff * layer.get_cost()
                   for layer in self.cost_layers)

    def train_step(self, data):
        """
        One gradient descent step over a batch.

        Returns:
            float: objective of the batch before the update.
        """
        self.fprop(data)
        cost = self.get_cost()
        self.bprop()
        self.update()
        logger.info("train step cost %.6f %s", cost,
                    dict(self.get_costs()))
        return cost

    def check_gradients(self, data, **kwargs):
        return check_graph_gradients(self, data, **kwargs)
