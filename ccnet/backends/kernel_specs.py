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
Tiling configurations for the weight gradient kernels.

Every configuration is a record consumed by one of the generic kernels in
:mod:`ccnet.backends.weight_acts`.  There is one kernel per scratch memory
layout, listed in ``kernels``; everything else (tile shape, work per
thread, batch tile, bounds checking) is a field of :class:`TileConfig`.
"""
from collections import namedtuple
import logging

from ccnet.backends.layer_cpu import ceil_div
from ccnet.util.error import PreconditionError

logger = logging.getLogger(__name__)

# images per inner iteration, largest first
BATCH_TILES = (32, 16)

# filter colors up to this use the few color layout
MAX_FEW_COLORS = 3

kernels = {
    # one thread per (filter, group of filter pixels), all colors per thread
    "few_colors":   {"shared_images": "colors * B_Y * pixels_per_thread",
                     "shared_hid": "B_X"},
    # one block per filter pixel, colors spread over ty, one filter per tx
    "many_colors":  {"shared_images": "B_Y * colors_per_thread",
                     "shared_hid": "B_X"},
    # as many_colors with two filters per thread
    "many_filters": {"shared_images": "B_Y * colors_per_thread",
                     "shared_hid": "B_X * filters_per_thread"},
}


class TileConfig(namedtuple('TileConfig', ['kernel', 'tile_height',
                                           'tile_width', 'pixels_per_thread',
                                           'colors_per_thread',
                                           'filters_per_thread', 'batch_tile',
                                           'bounds_checked'])):
    """
    Tiling of the weight gradient reduction.

    Attributes:
        kernel (str): one of ``kernels``.
        tile_height (int): B_Y, threads along the pixel/color axis.
        tile_width (int): B_X, threads along the filter axis.
        pixels_per_thread (int): filter pixels per thread (few colors only).
        colors_per_thread (int): colors per thread.
        filters_per_thread (int): filters per thread.
        batch_tile (int): images staged in scratch memory per iteration.
        bounds_checked (bool): check the image index of every load.
    """
    __slots__ = ()

    @property
    def threads(self):
        return self.tile_width * self.tile_height

    @property
    def block(self):
        return (self.tile_width, self.tile_height)

    def shared_rows(self):
        """
        Rows of the scratch image and hidden activation tiles.
        """
        if self.kernel == "few_colors":
            img_rows = (self.colors_per_thread * self.tile_height *
                        self.pixels_per_thread)
        else:
            img_rows = self.tile_height * self.colors_per_thread
        return img_rows, self.tile_width * self.filters_per_thread

    def shared_bytes(self, itemsize):
        img_rows, hid_rows = self.shared_rows()
        return (img_rows + hid_rows) * self.batch_tile * itemsize

    def grid(self, geom, module_sum):
        """
        Launch grid covering ``(modules / module_sum) x filters`` along x and
        the filter pixels (times color blocks) along y.
        """
        chunks = geom.num_modules // module_sum
        filter_blocks = geom.K // (self.tile_width * self.filters_per_thread)
        if self.kernel == "few_colors":
            pixel_blocks = ceil_div(geom.filter_pixels,
                                    self.tile_height * self.pixels_per_thread)
        else:
            pixel_blocks = (geom.filter_pixels * geom.filter_colors //
                            (self.tile_height * self.colors_per_thread))
        return (chunks * filter_blocks, pixel_blocks)

    def __str__(self):
        return ("%s_%dx%d_ppt%d_cpt%d_fpt%d_b%d%s" %
                (self.kernel, self.tile_height, self.tile_width,
                 self.pixels_per_thread, self.colors_per_thread,
                 self.filters_per_thread, self.batch_tile,
                 "_checked" if self.bounds_checked else ""))


def _fail(msg, *args):
    msg = msg % args
    logger.error(msg)
    raise PreconditionError(msg)


def _few_color_width(num_filters):
    for width in (32, 16, 8, 4, 2, 1):
        if num_filters % width == 0:
            return width


def _few_color_height(tile_width):
    # keep at least 16 threads per block so a batch tile load is covered
    return {32: 4, 1: 16}.get(tile_width, 8)


def _batch_tiles(threads, num_images):
    """
    Batch tiles a block of ``threads`` can load, paired with whether each
    needs bounds checking.
    """
    for batch_tile in BATCH_TILES:
        if threads % batch_tile == 0:
            yield batch_tile, num_images % batch_tile != 0


def _check_shape(num_filters, num_filter_colors, num_groups):
    if num_groups < 1 or num_filters % num_groups != 0:
        _fail("%d filters not divisible into %d groups", num_filters,
              num_groups)
    if num_filter_colors <= MAX_FEW_COLORS:
        if num_filter_colors < 1:
            _fail("need at least one filter color")
        if num_groups != 1:
            _fail("grouped convolution needs more than %d colors per group, "
                  "got %d", MAX_FEW_COLORS, num_filter_colors)
    else:
        if num_filter_colors % 4 != 0:
            _fail("%d filter colors is not a multiple of 4",
                  num_filter_colors)
        if (num_filters // num_groups) % 16 != 0:
            _fail("%d filters per group is not a multiple of 16",
                  num_filters // num_groups)


def select_weight_acts_config(num_filters, num_filter_colors, num_images,
                              num_groups=1):
    """
    Pick the tiling for a weight gradient problem.

    Arguments:
        num_filters (int): total filters over all groups.
        num_filter_colors (int): colors seen by each filter.
        num_images (int): batch size.
        num_groups (int): number of filter groups.

    Returns:
        TileConfig

    Raises:
        PreconditionError: if no kernel supports the shape.
    """
    _check_shape(num_filters, num_filter_colors, num_groups)

    if num_filter_colors <= MAX_FEW_COLORS:
        tile_width = _few_color_width(num_filters)
        tile_height = _few_color_height(tile_width)
        if num_filters % 32 == 0:
            ppt = 8 if num_filter_colors == 1 else 5
        else:
            ppt = 5 if num_filter_colors == 1 else 2
        kernel, cpt, fpt = "few_colors", num_filter_colors, 1
    else:
        filters_per_group = num_filters // num_groups
        cpt = 8 if num_filter_colors % 8 == 0 else 4
        for tile_height in (8, 4, 2, 1):
            if num_filter_colors % (tile_height * cpt) == 0:
                break
        tile_width = 16
        ppt = 1
        if filters_per_group > 32 and filters_per_group % 32 == 0:
            kernel, fpt = "many_filters", 2
        else:
            kernel, fpt = "many_colors", 1

    threads = tile_width * tile_height
    batch_tile, checked = next(_batch_tiles(threads, num_images))
    if checked and threads % 16 == 0 and num_images % 16 == 0:
        # a smaller tile that divides the batch avoids the checked loads
        batch_tile, checked = 16, False

    config = TileConfig(kernel, tile_height, tile_width, ppt, cpt, fpt,
                        batch_tile, checked)
    logger.debug("weight acts config for F=%d C=%d N=%d G=%d: %s",
                 num_filters, num_filter_colors, num_images, num_groups,
                 config)
    return config


def applicable_weight_acts_configs(num_filters, num_filter_colors, num_images,
                                   num_groups=1, itemsize=None,
                                   max_shared_bytes=None):
    """
    Enumerate every tiling valid for a weight gradient problem, the one
    returned by :func:`select_weight_acts_config` included.

    When ``itemsize`` and ``max_shared_bytes`` are both given, tilings that
    need more scratch memory than that are left out.
    """
    _check_shape(num_filters, num_filter_colors, num_groups)

    configs = []
    if num_filter_colors <= MAX_FEW_COLORS:
        widths = [w for w in (32, 16) if num_filters % w == 0]
        widths = widths or [_few_color_width(num_filters)]
        for tile_width in widths:
            tile_height = _few_color_height(tile_width)
            for ppt in (2, 5, 8):
                for batch_tile, needs_check in _batch_tiles(
                        tile_width * tile_height, num_images):
                    for checked in sorted({needs_check, True}):
                        configs.append(TileConfig(
                            "few_colors", tile_height, tile_width, ppt,
                            num_filter_colors, 1, batch_tile, checked))
    else:
        filters_per_group = num_filters // num_groups
        for cpt in (4, 8):
            if num_filter_colors % cpt:
                continue
            for tile_height in (1, 2, 4, 8):
                if num_filter_colors % (tile_height * cpt):
                    continue
                for tile_width in (16, 32):
                    for fpt in (1, 2):
                        if filters_per_group % (tile_width * fpt):
                            continue
                        kernel = "many_filters" if fpt == 2 else "many_colors"
                        for batch_tile, needs_check in _batch_tiles(
                                tile_width * tile_height, num_images):
                            for checked in sorted({needs_check, True}):
                                configs.append(TileConfig(
                                    kernel, tile_height, tile_width, 1, cpt,
                                    fpt, batch_tile, checked))
    if itemsize is not None and max_shared_bytes is not None:
        configs = [c for c in configs
                   if c.shared_bytes(itemsize) <= max_shared_bytes]
    return configs


def check_weight_acts_config(config, geom):
    """
    Verify that ``config`` can run the problem described by ``geom``.

    Raises:
        PreconditionError: if it cannot.
    """
    if config.kernel not in kernels:
        _fail("unknown weight acts kernel %s", config.kernel)
    if config.threads % config.batch_tile != 0:
        _fail("%s: %d threads cannot load a batch tile of %d", config,
              config.threads, config.batch_tile)
    if not config.bounds_checked and geom.N % config.batch_tile != 0:
        _fail("%s: %d images is not a multiple of the batch tile, bounds "
              "checking is required", config, geom.N)
    few = geom.filter_colors <= MAX_FEW_COLORS
    if few != (config.kernel == "few_colors"):
        _fail("%s cannot handle %d filter colors", config, geom.filter_colors)
    if few:
        if config.colors_per_thread != geom.filter_colors:
            _fail("%s: few color kernel must own all %d colors", config,
                  geom.filter_colors)
    elif geom.filter_colors % (config.tile_height *
                               config.colors_per_thread) != 0:
        _fail("%s: %d filter colors not covered by color blocks", config,
              geom.filter_colors)
    if geom.filters_per_group % (config.tile_width *
                                 config.filters_per_thread) != 0:
        _fail("%s: %d filters per group not covered by filter blocks",
              config, geom.filters_per_group)
