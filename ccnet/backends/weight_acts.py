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
Tiled weight gradient kernels for convolution.

Computes, for every (module chunk, filter color, filter pixel, filter)

    targets = scale_targets * targets
              + scale_output * sum_{module in chunk, n} image[color, px, n] *
                                                         hid[filter, module, n]

where ``px`` is the image pixel under the filter pixel for that module.
Each block stages a batch tile of image pixels and hidden activations in
shared memory, accumulates out of shared memory into per thread registers
and, once all of its modules are done, writes its registers out.

Two scratch layouts exist:

few_colors
    block = (B_Y, B_X).  Thread (ty, tx) owns filter ``f0 + tx`` and filter
    pixels ``pix0 + ty + p * B_Y`` for every color.
many_colors / many_filters
    block = (B_Y, B_X), one filter pixel per block.  Thread (ty, tx) owns
    colors ``c0 + ty + c * B_Y`` and filters ``f0 + tx + f * B_X``.
"""
import logging
import numpy as np

logger = logging.getLogger(__name__)


class WeightActsArgs(object):
    """
    Arguments bound to a weight gradient launch.
    """
    def __init__(self, images, hid_acts, targets, geom, config, module_sum,
                 scale_targets, scale_output):
        self.images = images
        self.hid_acts = hid_acts
        self.targets = targets
        self.geom = geom
        self.config = config
        self.module_sum = module_sum
        self.scale_targets = scale_targets
        self.scale_output = scale_output
        self.dtype = targets.dtype


def load_tile(ctx, shared, src, src_rows, row_valid, n0, num_images, checked):
    """
    Cooperative load of a batch tile into shared memory.

    Thread ``t`` loads column ``t % tile`` of rows ``t // tile``,
    ``t // tile + threads / tile``, ...  Rows whose ``row_valid`` entry is
    False, and images past the end of the batch when ``checked``, are
    loaded as zero.

    Arguments:
        shared (numpy.ndarray): (rows, tile) scratch buffer.
        src (numpy.ndarray): strided source view, one image per column.
        src_rows (numpy.ndarray): source row of every scratch row.
        row_valid (numpy.ndarray): mask over scratch rows, or None.
        n0 (int): first image of the tile.
    """
    num_rows, tile = shared.shape
    load_y, load_x = np.divmod(ctx.thread_idx, tile)
    step = ctx.num_threads // tile
    cols = n0 + load_x
    for r0 in range(0, num_rows, step):
        rows = r0 + load_y
        live = rows < num_rows
        rows, xs, ns = rows[live], load_x[live], cols[live]
        if row_valid is None:
            ok = np.ones(rows.shape, dtype=bool)
        else:
            ok = row_valid[rows]
        if checked:
            ok &= ns < num_images
        vals = np.zeros(rows.shape, dtype=shared.dtype)
        vals[ok] = src[src_rows[rows[ok]], ns[ok]]
        shared[rows, xs] = vals


def store_targets(args, rows, cols, vals):
    targets = args.targets
    if args.scale_targets == 0:
        targets[rows, cols] = args.scale_output * vals
    else:
        targets[rows, cols] = (args.scale_targets * targets[rows, cols] +
                               args.scale_output * vals)


def weight_acts_few_colors(ctx, args):
    geom, cfg = args.geom, args.config
    B_X, B_Y = cfg.tile_width, cfg.tile_height
    ppt, colors, tile = (cfg.pixels_per_thread, cfg.colors_per_thread,
                         cfg.batch_tile)
    fs, fp = geom.filter_size, geom.filter_pixels

    chunk, filter_block = divmod(ctx.block_idx.x, geom.K // B_X)
    f0 = filter_block * B_X
    pix0 = ctx.block_idx.y * B_Y * ppt

    img_rows = colors * B_Y * ppt
    sh_images = ctx.shared((img_rows, tile), args.dtype)
    sh_hid = ctx.shared((B_X, tile), args.dtype)
    prod = np.zeros((B_Y, B_X, colors, ppt), dtype=args.dtype)

    # scratch row c * B_Y * ppt + p * B_Y + y holds color c, pixel pix0 + p * B_Y + y
    row_color, row_pix = np.divmod(np.arange(img_rows), B_Y * ppt)
    row_pix += pix0
    row_fy, row_fx = np.divmod(row_pix, fs)
    hid_filters = f0 + np.arange(B_X)

    first = chunk * args.module_sum
    for module in range(first, first + args.module_sum):
        my, mx = divmod(module, geom.modules_x)
        iy = geom.padding + my * geom.stride + row_fy
        ix = geom.padding + mx * geom.stride + row_fx
        row_valid = ((row_pix < fp) & (iy >= 0) & (iy < geom.img_size) &
                     (ix >= 0) & (ix < geom.img_size))
        img_src = (row_color * geom.img_pixels + iy * geom.img_size + ix)
        hid_src = hid_filters * geom.num_modules + module

        for n0 in range(0, geom.N, tile):
            load_tile(ctx, sh_images, args.images, img_src, row_valid, n0,
                      geom.N, cfg.bounds_checked)
            load_tile(ctx, sh_hid, args.hid_acts, hid_src, None, n0, geom.N,
                      cfg.bounds_checked)
            ctx.sync_threads()
            prod += np.einsum('cpyi,xi->yxcp',
                              sh_images.reshape(colors, ppt, B_Y, tile),
                              sh_hid)
            ctx.sync_threads()

    ty = np.arange(B_Y)[:, None, None, None]
    tx = np.arange(B_X)[None, :, None, None]
    c = np.arange(colors)[None, None, :, None]
    p = np.arange(ppt)[None, None, None, :]
    shape = prod.shape
    pix = np.broadcast_to(pix0 + p * B_Y + ty, shape)
    rows = (chunk * geom.filter_colors + c) * fp + pix
    cols = np.broadcast_to(f0 + tx, shape)
    # zero padded filter pixels past the end of the filter are not written
    inside = pix < fp
    store_targets(args, rows[inside], cols[inside], prod[inside])


def weight_acts_many_colors(ctx, args):
    geom, cfg = args.geom, args.config
    B_X, B_Y = cfg.tile_width, cfg.tile_height
    cpt, fpt, tile = (cfg.colors_per_thread, cfg.filters_per_thread,
                      cfg.batch_tile)
    fs, fp = geom.filter_size, geom.filter_pixels

    chunk, filter_block = divmod(ctx.block_idx.x, geom.K // (B_X * fpt))
    f0 = filter_block * B_X * fpt
    pix, color_block = divmod(ctx.block_idx.y,
                              geom.filter_colors // (B_Y * cpt))
    c0 = color_block * B_Y * cpt
    group = f0 // geom.filters_per_group
    fy, fx = divmod(pix, fs)

    img_rows, hid_rows = B_Y * cpt, B_X * fpt
    sh_images = ctx.shared((img_rows, tile), args.dtype)
    sh_hid = ctx.shared((hid_rows, tile), args.dtype)
    prod = np.zeros((B_Y, B_X, cpt, fpt), dtype=args.dtype)

    color_src = ((group * geom.filter_colors + c0 + np.arange(img_rows)) *
                 geom.img_pixels)
    filter_src = (f0 + np.arange(hid_rows)) * geom.num_modules

    first = chunk * args.module_sum
    for module in range(first, first + args.module_sum):
        my, mx = divmod(module, geom.modules_x)
        iy = geom.padding + my * geom.stride + fy
        ix = geom.padding + mx * geom.stride + fx
        if iy < 0 or iy >= geom.img_size or ix < 0 or ix >= geom.img_size:
            continue
        img_src = color_src + iy * geom.img_size + ix
        hid_src = filter_src + module

        for n0 in range(0, geom.N, tile):
            load_tile(ctx, sh_images, args.images, img_src, None, n0, geom.N,
                      cfg.bounds_checked)
            load_tile(ctx, sh_hid, args.hid_acts, hid_src, None, n0, geom.N,
                      cfg.bounds_checked)
            ctx.sync_threads()
            prod += np.einsum('cyi,fxi->yxcf',
                              sh_images.reshape(cpt, B_Y, tile),
                              sh_hid.reshape(fpt, B_X, tile))
            ctx.sync_threads()

    ty = np.arange(B_Y)[:, None, None, None]
    tx = np.arange(B_X)[None, :, None, None]
    c = np.arange(cpt)[None, None, :, None]
    f = np.arange(fpt)[None, None, None, :]
    shape = prod.shape
    rows = np.broadcast_to((chunk * geom.filter_colors + c0 + c * B_Y + ty) *
                           fp + pix, shape)
    cols = np.broadcast_to(f0 + f * B_X + tx, shape)
    store_targets(args, rows.ravel(), cols.ravel(), prod.ravel())


def get_kernel(name):
    """
    Kernel implementing the scratch layout ``name``.
    """
    return {"few_colors": weight_acts_few_colors,
            "many_colors": weight_acts_many_colors,
            "many_filters": weight_acts_many_colors}[name]
