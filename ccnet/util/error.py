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
Exception types raised by the backends, kernels and the layer graph.

None of these are recovered from inside the library: each signals either a
caller bug or an internal consistency failure and aborts the call.
"""


class PreconditionError(ValueError):
    """
    A shape, divisibility or geometry requirement of an operation was not
    met.  Raised before any kernel launch.
    """
    pass


class DeviceError(RuntimeError):
    """
    A kernel launch was rejected by the device (too many threads per block,
    scratch memory exhausted, bad grid).
    """
    pass


class GraphProtocolError(RuntimeError):
    """
    A layer received forward or backward notifications out of order, or more
    of them than it has producers for.
    """
    pass
