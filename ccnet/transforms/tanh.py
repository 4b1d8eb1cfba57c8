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
Tanh transform functions and classes.
"""

from ccnet.transforms.activation import Activation


class Tanh(Activation):

    """
    Embodiment of a tanh activation function.
    """
    def apply_function(self, backend, inputs, outputs):
        """
        Applies the hyperbolic tangent transform to the dataset passed.

        Arguments:
            inputs (Tensor): Input data to be transformed
            outputs (Tensor): Storage for the transformed output.
        """
        backend.tanh(inputs, outputs)

    def fprop_func(self, backend, pre_act, outputs):
        backend.tanh(pre_act, outputs)
        backend.multiply(outputs, outputs, pre_act)
        backend.subtract(1.0, pre_act, pre_act)
