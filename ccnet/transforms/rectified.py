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
Rectified linear (ReLU) transform functions and classes.
"""

from ccnet.transforms.activation import Activation


class RectLin(Activation):
    """
    Embodiment of a rectified linear activation function.
    """

    def apply_function(self, backend, inputs, outputs):
        backend.rectlin(inputs, outputs)

    def fprop_func(self, backend, pre_act, outputs):
        backend.rectlin(pre_act, outputs)
        backend.greater(pre_act, 0, out=pre_act)
