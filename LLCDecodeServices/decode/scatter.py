"""
Redistribution of one covering decode into its members' output records.
"""
import numpy as np

from LLCDecodeServices.errors import InvalidRangeError
from LLCDecodeServices.util import box_to_slicing, xyz_to_zyx
from LLCDecodeServices.volume import (allocate_buffer, as_byte_buffer, buffer_volume,
                                      check_buffer_size, collapse_by_interpolation, required_bytes)
from LLCDecodeServices.decode.coalescer import compute_output_grid

class OutputRecord:
    """
    The result of one logical query.

    Members:
        grid: The Grid the buffer's samples lie on.  After a slice collapse,
              this is exactly the requested position, with dims 1.
        buffer: Flat uint8 ndarray holding the samples (x fastest), or None
                if nothing has been decoded into this record (yet).
                May be pre-allocated by the caller, in which case it is
                filled in place and never replaced.
        dtype: The sample type stored in the buffer.
    """
    def __init__(self, buffer=None):
        self.grid = None
        self.buffer = None if buffer is None else as_byte_buffer(buffer)
        self.dtype = None

    @property
    def volume(self):
        """
        A (t,y,x) view of the samples, or None if the record is unpopulated.
        """
        if self.buffer is None or self.grid is None or self.grid.is_empty:
            return None
        return buffer_volume(self.buffer, self.grid, self.dtype)

    def __repr__(self):
        nbytes = None if self.buffer is None else self.buffer.nbytes
        return f"OutputRecord(grid={self.grid}, dtype={self.dtype}, buffer bytes={nbytes})"


def scatter(volume_dims, covering_grid, covering_volume, members, outputs):
    """
    Copy each member's region out of the covering decode and into its own record.

    Args:
        volume_dims:
            The full dims of the decoded file, [x,y,t]
        covering_grid:
            The Grid that covering_volume was decoded on.
        covering_volume:
            (t,y,x) ndarray with covering_grid's shape.
        members:
            list of (original_index, LogicalQuery)
        outputs:
            list of OutputRecord, indexed by original_index.
            Only the members' slots are written.

    Every member's placement and buffer size is checked before any
    record is modified, so if this raises, none of the members'
    records have been touched.
    """
    dtype = covering_volume.dtype

    pieces = []
    for index, query in members:
        output = outputs[index]
        grid = compute_output_grid(volume_dims, query)
        if grid.is_empty:
            pieces.append( (output, query, grid, None) )
            continue

        if output.buffer is not None:
            # Pre-allocated by the caller
            check_buffer_size(output.buffer, required_bytes(grid, dtype))
        samples = _extract(volume_dims, covering_grid, covering_volume, grid)
        pieces.append( (output, query, grid, samples) )

    for output, query, grid, samples in pieces:
        output.dtype = dtype
        if samples is None:
            output.grid = grid
            continue

        if output.buffer is None:
            output.buffer = allocate_buffer(required_bytes(grid, dtype))

        vol = buffer_volume(output.buffer, grid, dtype)
        vol[:] = samples
        output.grid = _collapse_slices(query, grid, vol, output)


def _extract(volume_dims, covering_grid, covering_volume, grid):
    """
    Return the samples of grid from the covering volume.

    When a member is coarser than its group's covering decode, its last
    sample may be snapped past the end of the file, beyond the covering
    grid.  Such samples repeat the last sample of the file, just as a
    codec does for its own out-of-volume samples.
    """
    start, stop, step = grid.relative_to(covering_grid, allow_overhang=True)
    if (stop <= covering_grid.dims).all():
        return covering_volume[box_to_slicing(xyz_to_zyx(start), xyz_to_zyx(stop), xyz_to_zyx(step))]

    overhang = (stop > covering_grid.dims)
    if (covering_grid.last[overhang] < np.asarray(volume_dims)[overhang] - 1).any():
        raise InvalidRangeError(f"Grid {grid} is not contained in covering grid {covering_grid}")

    x, y, t = ( np.minimum(start[a] + np.arange(grid.dims[a]) * step[a], covering_grid.dims[a] - 1)
                for a in range(3) )
    return covering_volume[np.ix_(t, y, x)]


def _collapse_slices(query, grid, vol, output):
    """
    For each axis on which the query asked for a single sample but the
    snapped grid has two, interpolate down to the requested position.
    The collapsed samples are written to the front of the output buffer.
    
    Returns the final grid of the record.
    """
    requested = query.extent
    if requested.is_unspecified:
        return grid

    collapsed = vol
    for axis in (2, 1, 0):
        if requested.dims[axis] == 1 and grid.dims[axis] == 2:
            weight = float(requested.first[axis] - grid.first[axis]) / (grid.last[axis] - grid.first[axis])
            collapsed = collapse_by_interpolation(collapsed, axis, weight)
            grid = grid.with_axis(axis, requested.first[axis], 1)

    if collapsed is not vol:
        buffer_volume(output.buffer, grid, output.dtype)[:] = collapsed
    return grid
