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
Linear transform functions and classes.
"""

from ccnet.transforms.activation import Activation


class Linear(Activation):
    """
    Embodiment of a linear activation function.
    """

    def apply_function(self, backend, inputs, outputs):
        outputs.copy_from(inputs)

    def fprop_func(self, backend, pre_act, outputs):
        outputs.copy_from(pre_act)

    def bprop_func(self, backend, pre_act, error, skip_act=False):
        """
        Derivative is one everywhere, the error passes through unchanged.
        """
        return
