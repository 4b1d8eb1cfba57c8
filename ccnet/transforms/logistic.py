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
Logistic transform functions and classes.
"""

from ccnet.transforms.activation import Activation


class Logistic(Activation):

    """
    Embodiment of a logistic activation function.
    """
    def apply_function(self, backend, inputs, outputs):
        """
        Applies logistic transform to the dataset passed.

        Arguments:
            backend (Backend): The backend class to use for computation.
            inputs (Tensor): Input data to be transformed
            outputs (Tensor): Storage for the transformed output.
        """
        backend.logistic(inputs, outputs)

    def fprop_func(self, backend, pre_act, outputs):
        """
        Applies logistic function and its derivative to the dataset passed.

        Arguments:
            backend (Backend): The backend class to use for computation.
            pre_act (Tensor): Input data to be transformed. This also
                              acts as storage for the output of the
                              derivative function.
            outputs (Tensor): Storage for the transformed output.
        """
        backend.logistic(pre_act, outputs)

        # derivative y * (1 - y), stored in pre_act
        backend.subtract(1.0, outputs, out=pre_act)
        backend.multiply(pre_act, outputs, out=pre_act)
