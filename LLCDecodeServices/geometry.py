"""
Index-space geometry: extents (boxes) and the strided sampling grids that
realize them under power-of-two downsampling.

All coordinates are in [x,y,t] order.
"""
import numpy as np

from LLCDecodeServices.errors import InvalidRangeError

def _as_v3i(v, name):
    v = np.array(v, dtype=np.int64).reshape(-1)
    if v.shape != (3,):
        raise InvalidRangeError(f"{name} must have exactly 3 components, not {v.tolist()}")
    return v

class Extent:
    """
    An axis-aligned, inclusive box given by its first corner and its size.
    
    An extent whose dims are all zero is the 'unspecified' sentinel,
    which callers use to mean 'the whole volume'.
    """
    def __init__(self, first=(0,0,0), dims=(0,0,0)):
        self.first = _as_v3i(first, "Extent first")
        self.dims = _as_v3i(dims, "Extent dims")
        if (self.dims < 0).any():
            raise InvalidRangeError(f"Extent dims must be non-negative: {self.dims.tolist()}")

    @classmethod
    def from_first_last(cls, first, last):
        first = _as_v3i(first, "Extent first")
        last = _as_v3i(last, "Extent last")
        return cls(first, np.maximum(last - first + 1, 0))

    @classmethod
    def whole(cls, volume_dims):
        return cls((0,0,0), volume_dims)

    @property
    def last(self):
        return self.first + self.dims - 1

    @property
    def is_unspecified(self):
        return not self.dims.any()

    @property
    def is_empty(self):
        return not self.dims.all()

    def crop(self, other):
        """
        Return the intersection of this extent with another.
        If they don't intersect, the result is empty.
        """
        first = np.maximum(self.first, other.first)
        last = np.minimum(self.last, other.last)
        return Extent.from_first_last(first, last)

    def bounding_box(self, other):
        """
        Return the smallest extent that contains both extents.
        Empty extents contribute nothing.
        """
        if other.is_empty:
            return self
        if self.is_empty:
            return other
        first = np.minimum(self.first, other.first)
        last = np.maximum(self.last, other.last)
        return Extent.from_first_last(first, last)

    def contains(self, other):
        return (self.first <= other.first).all() and (other.last <= self.last).all()

    def __eq__(self, other):
        return (isinstance(other, Extent)
                and (self.first == other.first).all()
                and (self.dims == other.dims).all())

    def __repr__(self):
        return f"Extent(first={self.first.tolist()}, dims={self.dims.tolist()})"


class Grid:
    """
    A concrete sampling pattern: a first corner, the number of samples
    per axis, and the (power-of-two) spacing between samples.
    
    Invariant: last == first + (dims-1)*stride
    """
    def __init__(self, first, dims, stride=(1,1,1)):
        self.first = _as_v3i(first, "Grid first")
        self.dims = _as_v3i(dims, "Grid dims")
        self.stride = _as_v3i(stride, "Grid stride")
        if (self.stride <= 0).any() or (self.stride & (self.stride - 1)).any():
            raise InvalidRangeError(f"Grid strides must be powers of two: {self.stride.tolist()}")

    @classmethod
    def empty(cls, stride=(1,1,1)):
        return cls((0,0,0), (0,0,0), stride)

    @property
    def last(self):
        return self.first + (self.dims - 1) * self.stride

    @property
    def is_empty(self):
        return not self.dims.all()

    @property
    def num_samples(self):
        return int(np.prod(self.dims))

    @property
    def shape_zyx(self):
        """The numpy shape of an array holding this grid's samples."""
        return tuple(self.dims[::-1].tolist())

    @property
    def extent(self):
        """The index-space box spanned by this grid's samples."""
        if self.is_empty:
            return Extent()
        return Extent.from_first_last(self.first, self.last)

    def with_axis(self, axis, first, dims):
        """Return a copy of this grid with one axis replaced."""
        new_first = self.first.copy()
        new_dims = self.dims.copy()
        new_first[axis] = first
        new_dims[axis] = dims
        return Grid(new_first, new_dims, self.stride)

    def relative_to(self, outer, allow_overhang=False):
        """
        Locate this grid's samples within another grid's sample array.

        Returns (start, stop, step) in [x,y,t] order, expressed in the
        outer grid's sample indices.  The outer stride must evenly divide
        this grid's stride, and the outer grid must contain every sample
        of this grid.  With allow_overhang, stop may exceed the outer dims
        (start may not).
        """
        if (self.stride % outer.stride).any():
            raise InvalidRangeError(
                f"Grid stride {self.stride.tolist()} is not a multiple of the covering stride {outer.stride.tolist()}")
        offset = self.first - outer.first
        if (offset % outer.stride).any():
            raise InvalidRangeError(
                f"Grid {self} is not aligned with covering grid {outer}")
        step = self.stride // outer.stride
        start = offset // outer.stride
        stop = start + (self.dims - 1) * step + 1
        if (start < 0).any() or (not allow_overhang and (stop > outer.dims).any()):
            raise InvalidRangeError(f"Grid {self} is not contained in covering grid {outer}")
        return start, stop, step

    def __eq__(self, other):
        return (isinstance(other, Grid)
                and (self.first == other.first).all()
                and (self.dims == other.dims).all()
                and (self.stride == other.stride).all())

    def __repr__(self):
        return f"Grid(first={self.first.tolist()}, dims={self.dims.tolist()}, stride={self.stride.tolist()})"


def downsampling_strides(downsampling_factors):
    """
    Per-axis sample spacing for the given downsampling factors,
    i.e. 2**factor (factor 0 means full resolution).
    """
    factors = _as_v3i(downsampling_factors, "Downsampling factors")
    if (factors < 0).any():
        raise InvalidRangeError(f"Downsampling factors must be non-negative: {factors.tolist()}")
    return np.left_shift(np.ones(3, dtype=np.int64), factors)


def compute_grid(volume_dims, downsampling_factors, extent):
    """
    Compute the sampling grid that covers the requested extent
    at the given downsampling level.

    The extent is first cropped to the volume.  Then, its first
    coordinate is moved down to the previous multiple of the stride,
    and its last coordinate is moved up to the next multiple, so the
    grid may cover more than was requested.
    
    For example, with stride 2, the 1-wide extent [3,3] produces
    the 2-sample grid {2, 4}, which brackets the requested position.
    
    If the cropped extent is empty, an empty grid is returned.
    """
    volume_dims = _as_v3i(volume_dims, "Volume dims")
    stride = downsampling_strides(downsampling_factors)

    cropped = extent.crop(Extent.whole(volume_dims))
    if cropped.is_empty:
        return Grid.empty(stride)

    first = (cropped.first // stride) * stride # move first to the left
    last = ((cropped.last + stride - 1) // stride) * stride # move last to the right
    return Grid(first, (last - first) // stride + 1, stride)
