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
# pylint: skip-file

"""
Training a data -> convolution -> logistic cost network end to end
"""
import numpy as np
import pytest

from ccnet.layers import ConvLayer, DataLayer, LogisticCostLayer
from ccnet.models import NetworkGraph
from ccnet.util.runconfig import RunConfig


def network(padding, num_modules, **config):
    layers = [DataLayer(name='images', data_idx=0, num_channels=1,
                        img_size=5),
              DataLayer(name='labels', data_idx=1, nout=2 * num_modules),
              ConvLayer(name='conv', inputs=['images'], filter_size=3,
                        num_filters=2, padding=padding, stride=1,
                        weight_init_scale=0.1),
              LogisticCostLayer(name='cost', inputs=['conv', 'labels'])]
    return NetworkGraph(layers, RunConfig(**config))


def synthetic_batch(num_modules, seed=0):
    rng = np.random.RandomState(seed)
    images = rng.uniform(0, 1, (25, 4))
    labels = (rng.uniform(0, 1, (2 * num_modules, 4)) > 0.5)
    return [images, labels.astype(np.float32)]


@pytest.mark.parametrize('padding,num_modules', [(0, 9), (-1, 25)])
def test_one_training_step(padding, num_modules):
    graph = network(padding, num_modules, rng_seed=0, batch_size=4,
                    learning_rate=0.01)
    data = synthetic_batch(num_modules)

    graph.fprop(data)
    conv = graph['conv']
    assert conv.acts.shape == (2 * num_modules, 4)
    images = graph['images'].acts.asnumpyarray().copy()

    cost = graph.train_step(data)
    assert cost == pytest.approx(graph.get_cost())
    assert np.array_equal(graph['images'].acts.asnumpyarray(), images)
    assert not graph['images'].grad_consumer
    assert graph['images'].acts_grad.shape == (0, 0)

    graph.fprop(data)
    assert graph.get_cost() < cost
    assert np.array_equal(graph['images'].acts.asnumpyarray(), data[0]
                          .astype(np.float32))


def test_weight_gradient_kernel_choice():
    graph = network(0, 9, rng_seed=0)
    data = synthetic_batch(9)
    graph.fprop(data)
    graph.bprop()
    conv = graph['conv']
    assert conv.weights.grads.shape == (9, 2)
    assert conv.weights.num_updates == 1
    assert np.any(conv.weights.grads.asnumpyarray() != 0)


def test_repeated_steps_keep_improving():
    graph = network(-1, 25, rng_seed=0, learning_rate=0.01)
    data = synthetic_batch(25)
    costs = [graph.train_step(data) for step in range(5)]
    assert all(b < a for a, b in zip(costs, costs[1:]))
