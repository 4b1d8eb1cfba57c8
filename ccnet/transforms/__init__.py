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
Activation functions applied by weight layers.
"""
from ccnet.transforms.activation import Activation  # noqa
from ccnet.transforms.linear import Linear  # noqa
from ccnet.transforms.logistic import Logistic  # noqa
from ccnet.transforms.rectified import RectLin  # noqa
from ccnet.transforms.tanh import Tanh  # noqa
