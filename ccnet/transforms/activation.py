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
Generic activation function interface.
"""


class Activation(object):
    """
    Abstract activation function.

    Weight layers call ``fprop_func`` on their pre-activations once per
    forward pass.  It fills the outputs and leaves the derivative of the
    function, evaluated at the pre-activations, in the pre-activation buffer
    so that ``bprop_func`` only has to scale the incoming error by it.
    """

    def __init__(self, **kwargs):
        self.__dict__.update(kwargs)

    def apply_function(self, backend, inputs, outputs):
        """
        Computes the activation function value without touching inputs.

        Arguments:
            backend (Backend): The backend class to use for computation.
            inputs (Tensor): Input data to be transformed
            outputs (Tensor): Storage for the transformed output.
        """
        raise NotImplementedError("apply_function not implemented")

    def fprop_func(self, backend, pre_act, outputs):
        """
        Function to apply during fprop

        Arguments:
            backend (Backend): The backend class to use for computation.
            pre_act (Tensor): Input data to be transformed. This also acts
                              as storage for the output of the derivative
                              function.
            outputs (Tensor): Storage for the transformed output.
        """
        raise NotImplementedError("fprop_func not implemented")

    def bprop_func(self, backend, pre_act, error, skip_act=False):
        """
        Function to perform during the bprop

        Arguments:
            backend (Backend): The backend class to use for computation.
            pre_act (Tensor): derivative left behind by fprop_func
            error (Tensor): error buffer, scaled in place
            skip_act (Boolean): whether to skip the multiplication
        """
        if not skip_act:
            backend.multiply(error, pre_act, out=error)

    def __str__(self):
        return self.__class__.__name__
