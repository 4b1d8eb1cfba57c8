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
Network graph construction, readiness protocol and gradient accumulation
"""
import numpy as np
import pytest

from ccnet.layers import (DataLayer, FCLayer, LogisticCostLayer,
                          SumSquaredCostLayer)
from ccnet.layers.layer import AWAITING_FPROP, BPROP_DONE, FPROP_DONE
from ccnet.models import NetworkGraph
from ccnet.transforms import Tanh
from ccnet.util.error import GraphProtocolError, PreconditionError
from ccnet.util.runconfig import RunConfig
from ccnet.util.testing import assert_tensor_near_equal


def diamond(be, **config):
    """
    data -> fc1 -> (fc2, fc3) -> fc4 -> cost, fc4 taking both branches
    """
    layers = [DataLayer(name='data', data_idx=0, nout=5),
              DataLayer(name='targets', data_idx=1, nout=2),
              FCLayer(name='fc1', inputs=['data'], nout=4,
                      activation=Tanh(), weight_init_scale=0.5),
              FCLayer(name='fc2', inputs=['fc1'], nout=3,
                      activation=Tanh(), weight_init_scale=0.5),
              FCLayer(name='fc3', inputs=['fc1'], nout=3,
                      weight_init_scale=0.5),
              FCLayer(name='fc4', inputs=['fc2', 'fc3'], nout=2,
                      weight_init_scale=0.5),
              SumSquaredCostLayer(name='cost', inputs=['fc4', 'targets'])]
    return NetworkGraph(layers, RunConfig(**config), backend=be)


def batch(rows=(5, 2), num=4, seed=0):
    rng = np.random.RandomState(seed)
    return [rng.uniform(-1, 1, (r, num)) for r in rows]


def test_wiring(backend_cpu64):
    graph = diamond(backend_cpu64)
    assert graph['fc4'].prev_idx == [graph.layer_idx['fc2'],
                                     graph.layer_idx['fc3']]
    assert [l.name for l in graph['fc1'].nexts] == ['fc2', 'fc3']
    order = [l.name for l in graph.ordered_layers]
    for name in ('fc2', 'fc3'):
        assert order.index('fc1') < order.index(name) < order.index('fc4')
    assert [l.name for l in graph.data_layers] == ['data', 'targets']
    assert [l.name for l in graph.cost_layers] == ['cost']

    assert not graph['data'].grad_consumer
    assert all(graph[n].grad_consumer for n in ('fc1', 'fc2', 'fc3', 'fc4'))
    assert graph['fc1'].num_grad_producers_next == 2
    assert graph['fc4'].num_grad_producers_next == 1
    assert graph['data'].num_grad_producers_next == 1


def test_each_layer_runs_once_per_step(backend_cpu64, mocker):
    graph = diamond(backend_cpu64)
    graph.initialize()
    names = ('fc1', 'fc2', 'fc3', 'fc4', 'cost')
    fprops = dict((n, mocker.spy(graph[n], 'fprop_layer')) for n in names)
    bprops = dict((n, mocker.spy(graph[n], 'bprop_layer')) for n in names)

    for step in range(2):
        graph.fprop(batch(seed=step))
        assert all(graph[n].state == FPROP_DONE for n in names)
        graph.bprop()
        assert all(graph[n].state == BPROP_DONE for n in names)
        graph.update()
        for n in names:
            assert fprops[n].call_count == step + 1
            assert bprops[n].call_count == step + 1

    assert graph['fc1'].rcvd_f == 1
    assert graph['fc4'].rcvd_f == 2
    assert graph['fc1'].rcvd_b == 2


def test_passes_follow_dependencies(backend_cpu64, mocker):
    graph = diamond(backend_cpu64)
    graph.initialize()
    calls = []

    def recorder(layer, method):
        wrapped = getattr(layer, method)

        def record(*args, **kwargs):
            calls.append((method, layer.name))
            return wrapped(*args, **kwargs)
        return record

    for layer in graph.layers:
        for method in ('fprop_layer', 'bprop_layer'):
            mocker.patch.object(layer, method,
                                side_effect=recorder(layer, method))

    for step in range(2):
        del calls[:]
        graph.fprop(batch(seed=step))
        graph.bprop()
        graph.update()

        fprops = [name for method, name in calls if method == 'fprop_layer']
        bprops = [name for method, name in calls if method == 'bprop_layer']
        assert sorted(fprops) == sorted(l.name for l in graph.layers)
        assert sorted(bprops) == ['cost', 'fc1', 'fc2', 'fc3', 'fc4']
        assert calls.index(('bprop_layer', 'cost')) == len(fprops)

        for layer in graph.layers:
            for prev in layer.prevs:
                assert fprops.index(prev.name) < fprops.index(layer.name)
            if layer.name not in bprops:
                continue
            for nxt in layer.nexts:
                if nxt.name in bprops:
                    assert bprops.index(nxt.name) < bprops.index(layer.name)
        assert bprops.index('fc2') < bprops.index('fc1')
        assert bprops.index('fc3') < bprops.index('fc1')


def multitask(be, probe_coeff=0.0):
    """
    data -> trunk -> (main -> cost, probe -> monitor)
    """
    layers = [DataLayer(name='data', data_idx=0, nout=3),
              DataLayer(name='targets', data_idx=1, nout=2),
              FCLayer(name='trunk', inputs=['data'], nout=4,
                      activation=Tanh(), weight_init_scale=0.5),
              FCLayer(name='main', inputs=['trunk'], nout=2,
                      weight_init_scale=0.5),
              FCLayer(name='probe', inputs=['trunk'], nout=2,
                      weight_init_scale=0.5),
              SumSquaredCostLayer(name='cost', inputs=['main', 'targets']),
              LogisticCostLayer(name='monitor', inputs=['probe', 'targets'],
                                coeff=probe_coeff)]
    return NetworkGraph(layers, backend=be)


def multitask_batch():
    data = batch(rows=(3, 2))
    data[1] = (data[1] > 0).astype(np.float64)
    return data


def test_zero_coefficient_head_behind_shared_layer(backend_cpu64):
    graph = multitask(backend_cpu64)
    assert graph['trunk'].num_grad_producers_next == 1
    assert graph['trunk'].grad_consumer
    assert graph['probe'].num_grad_producers_next == 0
    assert not graph['probe'].grad_consumer

    graph.fprop(multitask_batch())
    trunk_before = graph['trunk'].weights[0].values.asnumpyarray().copy()
    probe_before = graph['probe'].weights[0].values.asnumpyarray().copy()
    graph.bprop()
    assert graph['trunk'].state == BPROP_DONE
    assert graph['main'].state == BPROP_DONE
    assert graph['probe'].state == FPROP_DONE
    assert graph['trunk'].rcvd_b == 1
    graph.update()

    assert not np.allclose(graph['trunk'].weights[0].values.asnumpyarray(),
                           trunk_before)
    assert_tensor_near_equal(graph['probe'].weights[0].values, probe_before)


def test_zero_coefficient_head_gradients(backend_cpu64):
    graph = multitask(backend_cpu64)
    results = graph.check_gradients(multitask_batch(), eps=1e-5)
    for name in ('trunk', 'main', 'probe'):
        for max_abs, max_rel in results[name]:
            assert max_rel < 1e-4


def test_weighted_head_joins_backward_pass(backend_cpu64):
    graph = multitask(backend_cpu64, probe_coeff=0.5)
    assert graph['trunk'].num_grad_producers_next == 2
    assert graph['probe'].grad_consumer
    graph.fprop(multitask_batch())
    graph.bprop()
    assert graph['probe'].state == BPROP_DONE
    assert graph['trunk'].rcvd_b == 2


def test_branch_gradients_accumulate(backend_cpu64):
    be = backend_cpu64
    graph = diamond(be)
    data = batch()
    graph.fprop(data)
    graph.bprop()

    fc2, fc3, fc4 = graph['fc2'], graph['fc3'], graph['fc4']
    deltas = fc4.acts_grad.asnumpyarray()
    # fc2 and fc3 hold deltas with respect to their pre-activations now
    via2 = fc2.weights[0].values.asnumpyarray().T.dot(
        fc2.acts_grad.asnumpyarray())
    via3 = fc3.weights[0].values.asnumpyarray().T.dot(
        fc3.acts_grad.asnumpyarray())
    expected = via2 + via3
    # fc1 has applied its tanh derivative to the summed gradient
    deriv = 1 - graph['fc1'].acts.asnumpyarray() ** 2
    assert_tensor_near_equal(graph['fc1'].acts_grad, expected * deriv,
                             1e-12)
    assert deltas.shape == (2, 4)


def test_state_after_reset(backend_cpu64):
    graph = diamond(backend_cpu64)
    graph.initialize()
    graph.reset()
    assert all(l.state == AWAITING_FPROP and l.rcvd_f == 0 and
               l.rcvd_b == 0 for l in graph.layers)


def test_protocol_violations(backend_cpu64):
    graph = diamond(backend_cpu64)
    graph.initialize()
    graph.reset()
    with pytest.raises(GraphProtocolError):
        graph['fc2'].fprop()
    with pytest.raises(GraphProtocolError):
        graph['cost'].bprop()

    graph.fprop(batch())
    with pytest.raises(GraphProtocolError):
        graph['fc2'].fprop_input()
    with pytest.raises(GraphProtocolError):
        graph['data'].bprop_input()
    with pytest.raises(GraphProtocolError):
        graph['fc1'].bprop()

    graph.bprop()
    with pytest.raises(GraphProtocolError):
        graph['fc4'].bprop_input()


def test_bprop_before_fprop(backend_cpu64):
    graph = diamond(backend_cpu64)
    graph.initialize()
    with pytest.raises(GraphProtocolError):
        graph.bprop()


def test_data_validation(backend_cpu64):
    graph = diamond(backend_cpu64, batch_size=4)
    with pytest.raises(PreconditionError):
        graph.fprop(batch()[:1])
    with pytest.raises(PreconditionError):
        graph.fprop(batch(num=3))
    with pytest.raises(PreconditionError):
        graph.fprop(batch(rows=(6, 2)))
    data = batch()
    with pytest.raises(PreconditionError):
        graph.fprop([data[0], data[1][:, :3]])


def test_construction_errors():
    data = DataLayer(name='data', data_idx=0, nout=3)
    with pytest.raises(ValueError):
        NetworkGraph([data, FCLayer(name='data', inputs=['data'], nout=2)])
    with pytest.raises(ValueError):
        NetworkGraph([data, FCLayer(name='fc', inputs=['nope'], nout=2)])
    with pytest.raises(ValueError):
        NetworkGraph([data, FCLayer(name='fc', nout=2)])
    with pytest.raises(ValueError):
        # fc is a dead end
        NetworkGraph([data, FCLayer(name='fc', inputs=['data'], nout=2)])
    with pytest.raises(ValueError):
        NetworkGraph([data,
                      DataLayer(name='t', data_idx=1, nout=3),
                      SumSquaredCostLayer(name='cost', inputs=['data', 't']),
                      FCLayer(name='fc', inputs=['cost'], nout=1),
                      SumSquaredCostLayer(name='c2', inputs=['fc', 't'])])
    with pytest.raises(ValueError):
        NetworkGraph([data,
                      DataLayer(name='t', data_idx=1, nout=2),
                      FCLayer(name='a', inputs=['data', 'b'], nout=2),
                      FCLayer(name='b', inputs=['a'], nout=2),
                      SumSquaredCostLayer(name='cost', inputs=['b', 't'])])
    with pytest.raises(ValueError):
        NetworkGraph([data,
                      DataLayer(name='t', data_idx=2, nout=3),
                      SumSquaredCostLayer(name='cost', inputs=['data', 't'])])
    with pytest.raises(ValueError):
        DataLayer(name='d', data_idx=0, nout=3, inputs=['x'])
    with pytest.raises(ValueError):
        FCLayer(name='fc', inputs=['data'])


def test_cost_input_count(backend_cpu64):
    layers = [DataLayer(name='data', data_idx=0, nout=3),
              FCLayer(name='fc', inputs=['data'], nout=3),
              SumSquaredCostLayer(name='cost', inputs=['fc'])]
    graph = NetworkGraph(layers, backend=backend_cpu64)
    with pytest.raises(ValueError):
        graph.initialize()


def test_zero_coefficient_cost(backend_cpu64):
    be = backend_cpu64
    layers = [DataLayer(name='data', data_idx=0, nout=3),
              DataLayer(name='targets', data_idx=1, nout=2),
              FCLayer(name='main', inputs=['data'], nout=2),
              FCLayer(name='probe', inputs=['data'], nout=2),
              SumSquaredCostLayer(name='cost', inputs=['main', 'targets']),
              LogisticCostLayer(name='monitor', inputs=['probe', 'targets'],
                                coeff=0.0)]
    graph = NetworkGraph(layers, backend=be)
    assert not graph['monitor'].is_grad_producer()
    assert graph['probe'].num_grad_producers_next == 0

    data = batch(rows=(3, 2))
    data[1] = (data[1] > 0).astype(np.float64)
    graph.fprop(data)
    before = graph['probe'].weights[0].values.asnumpyarray().copy()
    costs = graph.get_costs()
    assert list(costs) == ['cost', 'monitor']
    assert costs['monitor'] > 0
    assert graph.get_cost() == pytest.approx(costs['cost'])

    graph.bprop()
    assert graph['monitor'].state == BPROP_DONE
    assert graph['probe'].state == FPROP_DONE
    graph.update()
    assert_tensor_near_equal(graph['probe'].weights[0].values, before)


def test_save_acts(backend_cpu64):
    graph = diamond(backend_cpu64, save_acts=True)
    graph.fprop(batch())
    assert set(graph.saved_acts) == set(l.name for l in graph.layers)
    for name, acts in graph.saved_acts.items():
        assert_tensor_near_equal(acts, graph[name].acts)
    # saved copies do not alias the live activations
    graph['fc4'].acts.fill(0)
    assert np.any(graph.saved_acts['fc4'] != 0)


@pytest.mark.parametrize('conserve_mem', [False, True])
def test_conserve_mem(backend_cpu64, conserve_mem):
    graph = diamond(backend_cpu64, conserve_mem=conserve_mem)
    graph.fprop(batch())
    graph.bprop()
    shape = graph['fc2'].acts_grad.shape
    if conserve_mem:
        assert shape == (0, 0)
    else:
        assert shape == (3, 4)
    # weight gradients survive the release
    assert graph['fc2'].weights[0].grads.shape == (3, 4)
    graph.update()
    graph.fprop(batch(seed=1))
    graph.bprop()


def test_train_step_reduces_cost(backend_cpu64):
    graph = diamond(backend_cpu64, learning_rate=0.05)
    data = batch()
    first = graph.train_step(data)
    for step in range(20):
        cost = graph.train_step(data)
    assert cost < first
