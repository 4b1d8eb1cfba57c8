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
# pylint: skip-file

"""
Tests of the emulated device: launch limits, block enumeration and shared
memory accounting
"""
import numpy as np
import pytest

from ccnet.backends.device import Device, Dim3
from ccnet.util.error import DeviceError


def test_dim3_defaults():
    d = Dim3(4)
    assert (d.x, d.y, d.z) == (4, 1, 1)
    assert d.size == 4
    assert Dim3(2, 3, 4).size == 24


def test_launch_visits_every_block_once():
    dev = Device()
    seen = []

    def kernel(ctx, out):
        out.append((ctx.block_idx.x, ctx.block_idx.y, ctx.block_idx.z))
        assert ctx.num_threads == 32
        assert np.array_equal(ctx.thread_x[:16], np.arange(16))
        assert np.array_equal(ctx.thread_y[16:], np.ones(16))

    dev.launch(kernel, Dim3(3, 2), Dim3(16, 2), 0, seen)
    assert sorted(seen) == [(x, y, 0) for x in range(3) for y in range(2)]
    assert dev.num_launches == 1
    assert dev.num_blocks == 6


def test_shared_memory_budget():
    dev = Device()

    def kernel(ctx):
        ctx.shared((8, 16), np.float32)
        ctx.shared((8, 16), np.float32)
        ctx.sync_threads()
        assert ctx.barriers == 1

    dev.launch(kernel, Dim3(1), Dim3(32), 2 * 8 * 16 * 4)
    with pytest.raises(DeviceError):
        dev.launch(kernel, Dim3(1), Dim3(32), 8 * 16 * 4)


def test_launch_limits():
    dev = Device(max_threads_per_block=256, max_shared_bytes=1024)

    def kernel(ctx):
        pass

    with pytest.raises(DeviceError):
        dev.launch(kernel, Dim3(1), Dim3(32, 16), 0)
    with pytest.raises(DeviceError):
        dev.launch(kernel, Dim3(1), Dim3(32), 2048)
    with pytest.raises(DeviceError):
        dev.launch(kernel, Dim3(0), Dim3(32), 0)
    assert dev.num_launches == 0
