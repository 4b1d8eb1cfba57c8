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
Utility functions which help with running tests and gradient checks.
"""

import numpy as np

from ccnet.backends.backend import Tensor


def _host(value):
    if isinstance(value, Tensor):
        return value.asnumpyarray()
    return np.asarray(value)


def assert_tensor_equal(actual, desired):
    """
    Ensures that Tensor array contents are identical in shape and each element.

    Raises:
        AssertionError: if any of the elements or shapes differ.
    """
    assert_tensor_near_equal(actual, desired, tolerance=0)


def assert_tensor_near_equal(actual, desired, tolerance=1e-7, rtol=0):
    """
    Ensures that Tensor array contents are equal (up to the specified
    tolerance).

    Arguments:
        actual (object): The first value for comparison, Tensor or array.
        desired (object): The expected value to be compared against.
        tolerance (float, optional): Absolute threshold.  Items are considered
                                     equal if their absolute difference does
                                     not exceed this value (plus the relative
                                     part).
        rtol (float, optional): Relative threshold, scaled by desired.

    Raises:
        AssertionError: if the objects differ.
    """
    np.testing.assert_allclose(_host(actual), _host(desired), atol=tolerance,
                               rtol=rtol)


def max_errors(actual, desired, floor=1e-6):
    """
    Largest absolute and relative difference between two values, the
    relative one taken against the larger magnitude of each pair (never
    less than ``floor``).

    Returns:
        tuple: (max absolute error, max relative error)
    """
    actual, desired = _host(actual), _host(desired)
    diff = np.abs(actual - desired)
    scale = np.maximum(np.maximum(np.abs(actual), np.abs(desired)), floor)
    if diff.size == 0:
        return 0.0, 0.0
    return float(diff.max()), float((diff / scale).max())
