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
Layer kinds a network graph is built from.
"""
from ccnet.layers.layer import Layer, DataLayer, WeightLayer  # noqa
from ccnet.layers.convolutional import ConvLayer  # noqa
from ccnet.layers.cost import (CostLayer, LogisticCostLayer,  # noqa
                               SumSquaredCostLayer)
from ccnet.layers.fully_connected import FCLayer  # noqa
from ccnet.layers.normalizing import (ResponseNormLayer,  # noqa
                                      ContrastNormLayer)
from ccnet.layers.pooling import PoolingLayer  # noqa
from ccnet.layers.weights import Weights  # noqa
