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
Our CPU based backend interface and tensor data structure.  Our implementation
wraps :mod:`numpy` ndarray and related operations.  Convolution weight
gradients are computed by the tiled kernels, run on an emulated device.
"""

import logging
import numpy as np

from ccnet.backends.backend import Backend, Tensor
from ccnet.backends.convolution import UpdateTiled
from ccnet.backends.device import Device
from ccnet.util.error import PreconditionError
from ccnet.util.param import ensure_dtype

logger = logging.getLogger(__name__)


class CPUTensor(Tensor):
    """
    Our basic 2-dimensional array data structure that resides in host memory,
    and is meant to be manipulated on the CPU.  wrapped `numpy.ndarray` tensor.

    Arguments:
        obj (numpy.ndarray): the actual data values.  Python built-in
                             types like lists and tuples are also supported.
        dtype (numpy.ndtype, optional): underlying data type of the elements.
                                        If None will use float32.
        trans (bool, optional): whether this is a transposed view.

    Notes:
        Unlike numpy, in this implementation we never collapse dimensions, and
        the minimal number of dimensions will be _min_dims (currently set to
        2).  So a wrapped scalar will have dimension 1x1.
    """
    _tensor = None
    _min_dims = 2

    def __init__(self, obj, dtype=None, trans=False):
        if dtype is None:
            dtype = np.float32
        if type(obj) != np.ndarray:
            self._tensor = np.array(obj, dtype)
        elif obj.dtype != dtype:
            self._tensor = obj.astype(dtype)
        else:
            self._tensor = obj
        while self._tensor.ndim < self._min_dims:
            self._tensor = self._tensor.reshape(self._tensor.shape + (1, ))
        if self._tensor.ndim != self._min_dims:
            raise PreconditionError("CPUTensor must be 2 dimensional, got "
                                    "shape %s" % str(self._tensor.shape))
        self._trans = trans

    @property
    def shape(self):
        return self._tensor.shape

    @property
    def dtype(self):
        return self._tensor.dtype

    @property
    def raw(self):
        return self._tensor

    def __str__(self):
        """
        Display a suitable representation of this Tensor.

        Returns:
            str: the representation.
        """
        return str(self._tensor)

    def __repr__(self):
        return ("%s(%s)" % (self.__class__.__name__, str(self)))

    def _clean(self, val):
        """
        Replaces any CPUTensor indices with `numpy` arrays.

        Arguments:
            val (int, array_like, CPUTensor): the items to index by.

        Returns:
            int, array_like, CPUTensor: Transformed val
        """
        if isinstance(val, tuple):
            val = tuple(x._tensor.squeeze() if isinstance(x, self.__class__)
                        else x for x in val)
        if isinstance(val, self.__class__):
            val = val._tensor
        return val

    def asnumpyarray(self):
        """
        Convert the CPUTensor to an in host memory `numpy.ndarray`.  A copy of
        the data may be made depending on where the CPUTensor normally resides.

        Returns:
            numpy.ndarray view or copy of the CPUTensor data.
        """
        return self._tensor

    def get_stride(self):
        axis = 1 if self._trans else 0
        if self._tensor.size == 0:
            return self._tensor.shape[1 - axis]
        return self._tensor.strides[axis] // self._tensor.itemsize

    def is_trans(self):
        return self._trans

    def is_contiguous(self):
        if self._trans:
            return self._tensor.flags['F_CONTIGUOUS']
        return self._tensor.flags['C_CONTIGUOUS']

    def __getitem__(self, key):
        """
        Extract a subset view of the items via slice style indexing
        along each dimension. e.g. A[5:10, :].  A column slice of a wider
        tensor is a non-contiguous view sharing its stride.

        Arguments:
            key (int, slice, tuple): indices of each dimension's slice.

        Returns:
            CPUTensor: view of self corresponding to the subset items.
        """
        return self.__class__(self._tensor[self._clean(key)],
                              dtype=self._tensor.dtype, trans=self._trans)

    def __setitem__(self, key, value):
        self._tensor[self._clean(key)] = self._clean(value)

    def copy_from(self, src):
        if isinstance(src, Tensor):
            src = src.asnumpyarray()
        self._tensor[:] = src

    def copy(self):
        return self.__class__(np.array(self._tensor), dtype=self.dtype)

    def transpose(self):
        return self.__class__(self._tensor.transpose(),
                              dtype=self._tensor.dtype, trans=not self._trans)

    def reshape(self, rows, cols):
        """
        Return a view with a different shape over the same elements.

        Raises:
            PreconditionError: if the tensor is not contiguous, since its
                               elements are then not packed.
        """
        if self._trans or not self.is_contiguous():
            raise PreconditionError("cannot reshape a non-contiguous tensor "
                                    "of shape %s" % str(self.shape))
        return self.__class__(self._tensor.reshape(rows, cols),
                              dtype=self._tensor.dtype)

    def resize(self, rows, cols):
        if self._tensor.shape != (rows, cols) or self._trans:
            self._tensor = np.empty((rows, cols), dtype=self._tensor.dtype)
            self._trans = False
        return self

    def truncate(self):
        self._tensor = np.empty((0, 0), dtype=self._tensor.dtype)
        self._trans = False
        return self

    def fill(self, value):
        """
        Assign specified value to each element of this CPUTensor.

        Arguments:
            value (numeric): The value to be assigned to each element.

        Return:
            CPUTensor: updated view of the data.
        """
        self._tensor.fill(value)
        return self


class CPU(Backend):

    """
    Sets up a :mod:`numpy` based backend for matrix ops.  By default, we use
    32-bit element data types for any arrays constructed.

    Arguments:
        rng_seed (int, optional): seed of the random number generator.
        datatype (dtype, optional): default element type.
        device (Device, optional): device the tiled kernels run on.

    Attributes:
        default_dtype (dtype): default element data type.
        device (Device): execution stream for kernel launches.
    See also:
        CPUTensor
    """
    default_dtype = np.float32
    tensor_cls = CPUTensor

    def __init__(self, rng_seed=None, datatype=np.float32, device=None,
                 **kwargs):
        self.__dict__.update(kwargs)
        self.default_dtype = ensure_dtype(datatype)
        self.rng_seed = rng_seed
        self.device = device if device is not None else Device()
        self.rng_init()

    def rng_init(self):
        if self.rng_seed is not None:
            logger.info("Seeding random number generator with: %s",
                        str(self.rng_seed))
        self.rng = np.random.RandomState(self.rng_seed)

    def rng_reset(self):
        self.rng_init()

    def default_dtype_if_missing(self, in_dtype):
        if in_dtype is None:
            in_dtype = self.default_dtype
        return in_dtype

    def empty(self, shape, dtype=None):
        """
        Instantiate a new instance of the CPUTensor class without initializing
        individual element values.

        Arguments:
            shape (int, list): The size of each dimension of the Tensor.
            dtype (dtype, optional): Element data type.  If not specified we
                                     use default_dtype value.

        Returns:
            CPUTensor: newly created data structure reference
        """
        dtype = self.default_dtype_if_missing(dtype)
        return self.tensor_cls(np.empty(shape, dtype), dtype)

    def zeros(self, shape, dtype=None):
        dtype = self.default_dtype_if_missing(dtype)
        return self.tensor_cls(np.zeros(shape, dtype), dtype)

    def ones(self, shape, dtype=None):
        dtype = self.default_dtype_if_missing(dtype)
        return self.tensor_cls(np.ones(shape, dtype), dtype)

    def array(self, obj, dtype=None):
        """
        Instantiate a new instance of the CPUTensor class based on the values
        and shape of obj passed.  A copy is always made.
        """
        dtype = self.default_dtype_if_missing(dtype)
        return self.tensor_cls(np.array(obj, dtype), dtype)

    def uniform(self, low=0.0, high=1.0, shape=1, dtype=None):
        dtype = self.default_dtype_if_missing(dtype)
        return self.tensor_cls(self.rng.uniform(low, high, shape), dtype)

    def _unwrap(self, obj):
        """
        Helper that extracts and returns the raw data underlying obj (if it is
        a CPUTensor), otherwise returns the existing structure.
        """
        if isinstance(obj, self.tensor_cls):
            return obj._tensor
        else:
            return obj

    def _blend(self, out, value, beta):
        """
        ``out = beta * out + value``.  With ``beta == 0`` out is resized to
        the shape of value and never read.
        """
        if beta == 0:
            out.resize(*value.shape)
            out._tensor[:] = value
        else:
            if out.shape != value.shape:
                raise PreconditionError("accumulating %s into tensor of "
                                        "shape %s" % (str(value.shape),
                                                      str(out.shape)))
            if beta != 1:
                np.multiply(out._tensor, beta, out._tensor)
            np.add(out._tensor, value, out._tensor)
        return out

    def add(self, left, right, out):
        np.add(self._unwrap(left), self._unwrap(right), out._tensor)
        return out

    def subtract(self, left, right, out):
        np.subtract(self._unwrap(left), self._unwrap(right), out._tensor)
        return out

    def multiply(self, left, right, out):
        np.multiply(self._unwrap(left), self._unwrap(right), out._tensor)
        return out

    def clip(self, a, a_min, a_max, out):
        np.clip(a._tensor, a_min, a_max, out._tensor)
        return out

    def log(self, x, out):
        np.log(x._tensor, out=out._tensor)
        return out

    def greater(self, left, right, out):
        np.greater(self._unwrap(left), self._unwrap(right), out._tensor)
        return out

    def dot(self, left, right, out, alpha=1.0, beta=0.0):
        """
        Perform sum product between the last axis of left and the second last
        axis of right, storing the result in out.  The general form of the
        multiply is: out <- alpha * left * right + beta * out.  With beta 0
        out is resized to the product shape.

        Arguments:
            left (CPUTensor): left-hand side operand.
            right (CPUTensor): right-hand side operand.
            out (CPUTensor): where the result will be stored.  Note that this
                             object should differ from left and right.
            alpha (numeric, optional): scalar to multiply the resultant sum
                                       product by.  Defaults to 1.
            beta (numeric, optional): scalar to pre-multiply out values by
                                      prior to adding to sum product.

        Returns:
            CPUTensor: reference to out
        """
        prod = np.dot(left._tensor, right._tensor)
        if alpha != 1:
            prod *= alpha
        return self._blend(out, prod, beta)

    def sum(self, tsr, axes, out, beta=0.0):
        """
        Calculates the summation of the elements along the specified axes,
        keeping dimensions.

        Arguments:
            tsr (CPUTensor): the Tensor on which to perform the sum
            axes (int, optional): the dimension along which to sum.  If set
                                  to None, we will sum over all dimensions.
            out (CPUTensor): where the result will be stored.
            beta (numeric, optional): blend factor of the prior out values.

        Returns:
            CPUTensor: reference to out
        """
        return self._blend(out, np.sum(tsr._tensor, axis=axes, keepdims=True),
                           beta)

    def logistic(self, x, out):
        np.multiply(x._tensor, -1.0, out._tensor)
        np.exp(out._tensor, out._tensor)
        np.add(out._tensor, 1.0, out._tensor)
        np.divide(1.0, out._tensor, out._tensor)
        return out

    def tanh(self, x, out):
        np.tanh(x._tensor, out=out._tensor)
        return out

    def rectlin(self, x, out):
        np.maximum(x._tensor, 0., out._tensor)
        return out

    def fprop_fc(self, out, inputs, weights, beta=0.0):
        """
        Forward propagate the inputs of a fully connected network layer to
        produce output pre-activations (ready for transformation by an
        activation function).

        Arguments:
            out (CPUTensor): Where to store the forward propagated results.
            inputs (CPUTensor): Will be either the dataset input values (first
                                layer), or the outputs from the previous layer.
            weights (CPUTensor): The weight coefficient values for this layer.
            beta (numeric, optional): 1 to add to out instead of overwriting.
        """
        return self.dot(weights, inputs, out, beta=beta)

    def bprop_fc(self, out, weights, deltas, beta=0.0):
        """
        Backward propagate the error through a fully connected network layer.

        Arguments:
            out (CPUTensor): Where to store the backward propagated errors.
            weights (CPUTensor): The weight coefficient values for this layer.
            deltas (CPUTensor): The error values for this layer
            beta (numeric, optional): 1 to add to out instead of overwriting.
        """
        return self.dot(weights.transpose(), deltas, out, beta=beta)

    def update_fc(self, out, inputs, deltas, beta=0.0):
        """
        Compute the weight gradient for a fully connected network layer,
        a reduction over the batch.

        Arguments:
            out (CPUTensor): Where to store the gradient value.
            inputs (CPUTensor): Will be either the dataset input values (first
                                layer), or the outputs from the previous layer.
            deltas (CPUTensor): The error values for this layer
            beta (numeric, optional): 1 to add to out instead of overwriting.
        """
        return self.dot(deltas, inputs.transpose(), out, beta=beta)

    def fprop_conv(self, out, inputs, weights, geom):
        """
        Forward propagate the inputs of a convolutional network layer to
        produce output pre-activations.

        Arguments:
            out (CPUTensor): (filters * modules, N) results, resized.
            inputs (CPUTensor): (colors * pixels, N) images, may be strided.
            weights (CPUTensor): (filter colors * filter pixels, filters).
            geom (ConvGeometry): convolution geometry.
        """
        geom.check_images(inputs)
        geom.check_filters(weights)
        out.resize(*geom.dimO2)

        I = inputs._tensor.reshape(geom.dimI)
        F = weights._tensor.reshape(geom.dimF)
        O = out._tensor.reshape(geom.dimO)
        fc, fpg = geom.filter_colors, geom.filters_per_group

        for m in range(geom.modules_x):
            sliceR, sliceY, _ = geom.mSlice[m]
            for n in range(geom.modules_x):
                sliceS, sliceX, _ = geom.mSlice[n]
                for g in range(geom.groups):
                    c = slice(g * fc, (g + 1) * fc)
                    k = slice(g * fpg, (g + 1) * fpg)
                    slicedF = F[:, sliceR, sliceS, k].reshape((-1, fpg))
                    slicedI = I[c, sliceY, sliceX, :].reshape((-1, geom.N))
                    O[k, m, n, :] = np.dot(slicedF.T, slicedI)
        return out

    def bprop_conv(self, out, weights, deltas, geom, beta=0.0):
        """
        Backward propagate the error through a convolutional network layer
        (the transpose of :meth:`fprop_conv`).

        Arguments:
            out (CPUTensor): (colors * pixels, N) image gradients.
            weights (CPUTensor): (filter colors * filter pixels, filters).
            deltas (CPUTensor): (filters * modules, N) output gradients.
            geom (ConvGeometry): convolution geometry.
            beta (numeric, optional): 1 to accumulate into out.
        """
        geom.check_filters(weights)
        geom.check_hid_acts(deltas)

        grad = np.zeros(geom.dimI, dtype=deltas.dtype)
        F = weights._tensor.reshape(geom.dimF)
        E = deltas._tensor.reshape(geom.dimO)
        fc, fpg = geom.filter_colors, geom.filters_per_group

        for m in range(geom.modules_x):
            sliceR, sliceY, cntY = geom.mSlice[m]
            for n in range(geom.modules_x):
                sliceS, sliceX, cntX = geom.mSlice[n]
                for g in range(geom.groups):
                    c = slice(g * fc, (g + 1) * fc)
                    k = slice(g * fpg, (g + 1) * fpg)
                    slicedF = F[:, sliceR, sliceS, k].reshape((-1, fpg))
                    grad[c, sliceY, sliceX, :] += np.dot(
                        slicedF, E[k, m, n, :]).reshape((fc, cntY, cntX,
                                                         geom.N))
        return self._blend(out, grad.reshape(geom.dimI2), beta)

    def update_conv(self, out, inputs, deltas, geom, module_sum=None,
                    scale_targets=0.0, scale_output=1.0, config=None):
        """
        Compute the weight gradient of a convolutional layer with the tiled
        kernels:  out = scale_targets * out + scale_output * gradient.

        Arguments:
            out (CPUTensor): ((modules / module_sum) * filter colors *
                             filter pixels, filters) targets.
            inputs (CPUTensor): (colors * pixels, N) images, may be strided.
            deltas (CPUTensor): (filters * modules, N) output gradients,
                                contiguous.
            geom (ConvGeometry): convolution geometry.
            module_sum (int, optional): modules folded into each output
                                        chunk, all of them by default.
            scale_targets (numeric): blend factor of the prior targets. With
                                     0 (and scale_output 1) out is resized.
            scale_output (numeric): scale of the computed gradient.
            config (TileConfig, optional): override the selected tiling.

        Returns:
            UpdateTiled: the kernel group that ran.
        """
        kernel = UpdateTiled(self, inputs.dtype, geom, module_sum, config)
        kernel.bind_params(inputs, deltas, out, scale_targets, scale_output)
        kernel.execute()
        return kernel

    def fold_modules(self, out, targets, num_chunks, beta=0.0):
        """
        Sum the ``num_chunks`` row blocks of folded weight gradient targets
        into ``out``.
        """
        rows = targets.shape[0] // num_chunks
        flat = targets.reshape(num_chunks, rows * targets.shape[1])
        summed = np.sum(flat._tensor, axis=0).reshape(rows, targets.shape[1])
        return self._blend(out, summed, beta)

    def fprop_pool(self, out, inputs, geom, argmax=None):
        """
        Forward propagate through a pooling layer.

        Arguments:
            out (CPUTensor): (maps * outputs, N) results, resized.
            inputs (CPUTensor): (maps * pixels, N) inputs.
            geom (PoolGeometry): pooling geometry.
            argmax (CPUTensor, optional): receives, for max pooling, the
                                          pixel of each map that won.
        """
        out.resize(*geom.dimO2)
        I = inputs._tensor.reshape(geom.dimI)
        O = out._tensor.reshape(geom.dimO)
        if geom.op == 'max':
            argmax.resize(*geom.dimO2)
            A = argmax._tensor.reshape(geom.dimO)

        for p in range(geom.outputs_x):
            sliceY, cntY = geom.pSlice[p]
            for q in range(geom.outputs_x):
                sliceX, cntX = geom.pSlice[q]
                window = I[:, sliceY, sliceX, :]
                if geom.op == 'max':
                    flat = window.reshape((geom.C, cntY * cntX, geom.N))
                    idx = flat.argmax(axis=1)
                    O[:, p, q, :] = np.take_along_axis(
                        flat, idx[:, None, :], axis=1)[:, 0, :]
                    A[:, p, q, :] = ((sliceY.start + idx // cntX) *
                                     geom.img_size + sliceX.start +
                                     idx % cntX)
                else:
                    O[:, p, q, :] = window.mean(axis=(1, 2))
        return out

    def bprop_pool(self, out, deltas, geom, argmax=None, beta=0.0):
        """
        Backward propagate through a pooling layer: max pooling routes each
        error to the winning pixel, average pooling spreads it evenly over
        the window pixels inside the image.
        """
        grad = np.zeros(geom.dimI, dtype=deltas.dtype)
        E = deltas._tensor.reshape(geom.dimO)
        if geom.op == 'max':
            A = argmax._tensor.reshape(geom.dimO)
            flat = grad.reshape((geom.C, -1, geom.N))
            c_idx = np.arange(geom.C)[:, None]
            n_idx = np.arange(geom.N)[None, :]

        for p in range(geom.outputs_x):
            sliceY, cntY = geom.pSlice[p]
            for q in range(geom.outputs_x):
                sliceX, cntX = geom.pSlice[q]
                if geom.op == 'max':
                    np.add.at(flat, (c_idx, A[:, p, q, :], n_idx),
                              E[:, p, q, :])
                else:
                    grad[:, sliceY, sliceX, :] += (
                        E[:, p, q, None, None, :] / float(cntY * cntX))
        return self._blend(out, grad.reshape(geom.dimI2), beta)

    def _window_sum(self, arr, geom, adjoint=False):
        """
        Sum over the normalization window around every pixel, zero outside
        the map.  ``adjoint`` gives the transposed operator.
        """
        res = np.zeros_like(arr)
        size = geom.img_size
        for dy in range(geom.size):
            oy = geom.offset + dy
            oy = -oy if adjoint else oy
            dst_y = slice(max(0, -oy), min(size, size - oy))
            src_y = slice(max(0, oy), min(size, size + oy))
            for dx in range(geom.size):
                ox = geom.offset + dx
                ox = -ox if adjoint else ox
                dst_x = slice(max(0, -ox), min(size, size - ox))
                src_x = slice(max(0, ox), min(size, size + ox))
                res[:, dst_y, dst_x, :] += arr[:, src_y, src_x, :]
        return res

    def fprop_rnorm(self, out, inputs, denoms, geom, meandiffs=None):
        """
        Within-map response normalization
        ``out = x * (1 + add_scale * sum_window(m ** 2)) ** -pow_scale``
        with ``m = x``, or contrast normalization when ``meandiffs`` is
        given, with ``m = x - mean_window(x)`` cached in ``meandiffs``.
        The denominators are cached in ``denoms`` for the backward pass.
        """
        x = inputs._tensor.reshape(geom.dimI)
        if meandiffs is not None:
            counts = self._window_sum(np.ones_like(x), geom)
            m = x - self._window_sum(x, geom) / counts
            self._blend(meandiffs, m.reshape(geom.dimI2), 0.0)
        else:
            m = x
        d = 1.0 + geom.add_scale * self._window_sum(m * m, geom)
        self._blend(denoms, d.reshape(geom.dimI2), 0.0)
        return self._blend(out, (x * d ** -geom.pow_scale).reshape(geom.dimI2),
                           0.0)

    def bprop_rnorm(self, out, inputs, deltas, denoms, geom, meandiffs=None,
                    beta=0.0):
        """
        Exact gradient of :meth:`fprop_rnorm` with respect to its inputs.
        """
        x = inputs._tensor.reshape(geom.dimI)
        g = deltas._tensor.reshape(geom.dimI)
        d = denoms._tensor.reshape(geom.dimI)

        scaled = d ** -geom.pow_scale
        u = g * x * (-geom.pow_scale * geom.add_scale) * scaled / d
        if meandiffs is None:
            grad = g * scaled + 2.0 * x * self._window_sum(u, geom, True)
        else:
            m = meandiffs._tensor.reshape(geom.dimI)
            counts = self._window_sum(np.ones_like(x), geom)
            gm = 2.0 * m * self._window_sum(u, geom, True)
            grad = (g * scaled + gm -
                    self._window_sum(gm / counts, geom, True))
        return self._blend(out, grad.reshape(geom.dimI2), beta)
