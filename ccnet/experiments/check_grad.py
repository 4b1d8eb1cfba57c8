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
Numerical gradient checking to validate backprop code.
"""

import logging
import numpy as np

from ccnet.util.testing import max_errors

logger = logging.getLogger(__name__)


def _analytic_grads(graph, data):
    graph.fprop(data)
    graph.bprop()
    grads = {}
    for layer in graph.layers:
        for i, weights in enumerate(layer.weight_sets()):
            if weights.num_updates > 0:
                grads[(layer.name, i)] = np.array(
                    weights.grads.asnumpyarray())
            else:
                grads[(layer.name, i)] = np.zeros(weights.shape)
            # the check never applies an update
            weights.num_updates = 0
    return grads


def _numeric_grad(graph, data, values, inds, eps):
    flat = values.asnumpyarray().reshape(-1)
    grads = np.zeros(len(inds))
    for n, ind in enumerate(inds):
        saved = flat[ind]
        flat[ind] = saved + eps
        graph.fprop(data)
        cost1 = graph.get_cost()

        flat[ind] = saved - eps
        graph.fprop(data)
        cost2 = graph.get_cost()

        flat[ind] = saved
        grads[n] = (cost1 - cost2) / (2 * eps)
    return grads


def check_layer_gradients(graph, layer, data, eps=1e-4, nmax=30,
                          tolerance=1e-3, rng=None, grads=None):
    """
    Compare the weight gradients computed by backprop for ``layer`` with
    central finite differences of the graph objective, on at most ``nmax``
    randomly chosen entries of each weight set.

    Arguments:
        graph (NetworkGraph): initialized or not, it is run on ``data``.
        layer (Layer or str): weight layer to check.
        data (list): one tensor per data layer.
        eps (float): perturbation size.
        tolerance (float): largest relative error reported as passing.
        rng (numpy.random.RandomState, optional): picks the entries.
        grads (dict, optional): precomputed analytic gradients.

    Returns:
        list: (max absolute error, max relative error) per weight set.
    """
    if isinstance(layer, str):
        layer = graph[layer]
    if rng is None:
        rng = np.random.RandomState(0)

    run_config = graph.run_config
    checking = run_config.checking_grads
    run_config.checking_grads = True
    try:
        if grads is None:
            grads = _analytic_grads(graph, data)
        results = []
        for i, weights in enumerate(layer.weight_sets()):
            size = int(np.prod(weights.shape))
            inds = rng.choice(np.arange(size), min(size, nmax),
                              replace=False)
            numeric = _numeric_grad(graph, data, weights.values, inds, eps)
            analytic = grads[(layer.name, i)].reshape(-1)[inds]
            max_abs, max_rel = max_errors(analytic, numeric)
            if max_rel <= tolerance:
                logger.info('layer %s weights %d: max abs diff %g, max rel '
                            'diff %g. OK.', layer.name, i, max_abs, max_rel)
            else:
                logger.error('layer %s weights %d: max abs diff %g, max rel '
                             'diff %g. gradient check failed.', layer.name, i,
                             max_abs, max_rel)
            results.append((max_abs, max_rel))
    finally:
        run_config.checking_grads = checking
    return results


def check_graph_gradients(graph, data, eps=1e-4, nmax=30, tolerance=1e-3,
                          rng=None):
    """
    Run :func:`check_layer_gradients` on every weight layer of ``graph``.

    Returns:
        dict: layer name to the per weight set (max abs, max rel) errors.
    """
    run_config = graph.run_config
    checking = run_config.checking_grads
    run_config.checking_grads = True
    try:
        grads = _analytic_grads(graph, data)
    finally:
        run_config.checking_grads = checking

    results = {}
    for layer in graph.ordered_layers:
        if not layer.has_weights():
            continue
        results[layer.name] = check_layer_gradients(
            graph, layer, data, eps=eps, nmax=nmax, tolerance=tolerance,
            rng=rng, grads=grads)

    worst = max([rel for errs in results.values() for _, rel in errs] or
                [0.0])
    logger.display('gradient check over %d layers, worst relative error %e',
                   len(results), worst)
    return results
