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
Host emulation of a parallel device executing cooperative thread blocks.

A kernel is a python callable ``kernel(ctx, *args)`` run once per block of
the launch grid.  Threads of a block are not run one at a time: ``ctx``
exposes the thread indices of the whole block as numpy vectors, and per
thread registers are numpy arrays whose leading axes are the block
dimensions.  Blocks only communicate with the rest of the grid through the
tensors they write, and only synchronize internally through
``ctx.sync_threads()``.
"""
from collections import namedtuple
import logging
import numpy as np

from ccnet.util.error import DeviceError

logger = logging.getLogger(__name__)


class Dim3(namedtuple('Dim3', ['x', 'y', 'z'])):
    """
    Launch grid or block extent.
    """
    __slots__ = ()

    def __new__(cls, x, y=1, z=1):
        return super(Dim3, cls).__new__(cls, x, y, z)

    @property
    def size(self):
        return self.x * self.y * self.z


class BlockContext(object):
    """
    Execution state of one thread block.

    Attributes:
        block_idx (Dim3): position of the block in the grid.
        block_dim (Dim3): extent of the block.
        thread_idx (numpy.ndarray): flattened thread ids, ``ty * bx + tx``.
        thread_x, thread_y (numpy.ndarray): per thread coordinates, aligned
                                            with ``thread_idx``.
        barriers (int): number of ``sync_threads`` calls made so far.
    """
    def __init__(self, block_idx, block_dim, shared_bytes):
        self.block_idx = block_idx
        self.block_dim = block_dim
        self.num_threads = block_dim.size
        self.thread_idx = np.arange(self.num_threads)
        self.thread_y, self.thread_x = np.divmod(self.thread_idx, block_dim.x)
        self.barriers = 0
        self._shared_bytes = shared_bytes
        self._shared_used = 0

    def shared(self, shape, dtype):
        """
        Allocate zeroed scratch memory out of the block's shared budget.
        """
        buf = np.zeros(shape, dtype)
        self._shared_used += buf.nbytes
        if self._shared_used > self._shared_bytes:
            msg = ("block requested %d bytes of shared memory, launch "
                   "reserved %d" % (self._shared_used, self._shared_bytes))
            logger.error(msg)
            raise DeviceError(msg)
        return buf

    def sync_threads(self):
        self.barriers += 1


class Device(object):
    """
    Single in-order execution stream.  Launches complete in the order they
    are issued, so a launch always observes the writes of earlier ones.

    Arguments:
        max_threads_per_block (int): largest block size accepted.
        max_shared_bytes (int): scratch memory available to one block.
        name (str): used in log messages.
    """
    def __init__(self, max_threads_per_block=1024, max_shared_bytes=48 * 1024,
                 name='cpu-emulated'):
        self.max_threads_per_block = max_threads_per_block
        self.max_shared_bytes = max_shared_bytes
        self.name = name
        self.num_launches = 0
        self.num_blocks = 0

    def _reject(self, msg):
        msg = "%s: %s" % (self.name, msg)
        logger.error(msg)
        raise DeviceError(msg)

    def launch(self, kernel, grid, block, shared_bytes, *args):
        """
        Run ``kernel`` over every block of ``grid``.

        Arguments:
            kernel (callable): invoked as ``kernel(ctx, *args)``.
            grid (Dim3): number of blocks along each axis.
            block (Dim3): number of threads along each axis.
            shared_bytes (int): scratch memory reserved per block.

        Raises:
            DeviceError: if the launch exceeds a device limit.
        """
        if min(grid) < 1 or min(block) < 1:
            self._reject("empty launch grid %s block %s" % (str(tuple(grid)),
                                                            str(tuple(block))))
        if block.size > self.max_threads_per_block:
            self._reject("too many resources requested for launch: %d "
                         "threads per block, limit %d" %
                         (block.size, self.max_threads_per_block))
        if shared_bytes > self.max_shared_bytes:
            self._reject("too many resources requested for launch: %d bytes "
                         "of shared memory, limit %d" %
                         (shared_bytes, self.max_shared_bytes))

        logger.debug("launch %s grid=%s block=%s shared=%d",
                     getattr(kernel, '__name__', str(kernel)), tuple(grid),
                     tuple(block), shared_bytes)
        for bz in range(grid.z):
            for by in range(grid.y):
                for bx in range(grid.x):
                    ctx = BlockContext(Dim3(bx, by, bz), block, shared_bytes)
                    kernel(ctx, *args)
        self.num_launches += 1
        self.num_blocks += grid.size

    def synchronize(self):
        """
        Launches run to completion before returning, so there is never
        outstanding work.
        """
        return
