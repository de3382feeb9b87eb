"""
Typed views over linear sample buffers, and the slice collapser.

A 'volume' here is just a numpy array of shape (t,y,x) whose memory is
a linear buffer with x varying fastest.  Output buffers are kept as flat
uint8 arrays so callers can pre-allocate them without knowing the dtype.
"""
import numpy as np

from LLCDecodeServices.errors import InvalidRangeError, SizeTooSmallError

def as_byte_buffer(buffer):
    """
    Return a flat uint8 ndarray that shares memory with the given buffer
    (an ndarray, a bytearray, or anything else exposing the buffer protocol).
    """
    if not isinstance(buffer, np.ndarray):
        buffer = np.frombuffer(buffer, dtype=np.uint8)
    if not buffer.flags.c_contiguous:
        raise InvalidRangeError("Output buffers must be C-contiguous")
    return buffer.reshape(-1).view(np.uint8)

def required_bytes(grid, dtype):
    return np.dtype(dtype).itemsize * grid.num_samples

def allocate_buffer(nbytes):
    return np.empty(nbytes, dtype=np.uint8)

def check_buffer_size(buffer, nbytes):
    if buffer.nbytes < nbytes:
        raise SizeTooSmallError(f"Output buffer is too small: {buffer.nbytes} bytes < {nbytes} bytes")

def buffer_volume(buffer, grid, dtype):
    """
    Return a (t,y,x) array that views the front of the given flat buffer.
    No data is copied.
    """
    dtype = np.dtype(dtype)
    nbytes = required_bytes(grid, dtype)
    buffer = as_byte_buffer(buffer)
    check_buffer_size(buffer, nbytes)
    flat = buffer[:nbytes]
    return flat.view(dtype).reshape(grid.shape_zyx)


def collapse_by_interpolation(vol, axis, weight):
    """
    Collapse one axis of the given volume from 2 samples down to 1,
    by linear interpolation between the two samples.

    Args:
        vol:
            ndarray, indexed (t,y,x)
        axis:
            The axis to collapse, in [x,y,t] numbering (0 means x).
        weight:
            Fractional position of the requested sample between the
            low-side sample (weight 0) and the high-side sample (weight 1).

    Returns:
        A new ndarray of the same dtype, with size 1 along the given axis.
    """
    if not (0.0 <= weight <= 1.0):
        raise InvalidRangeError(f"Interpolation weight must be in [0,1], not {weight}")

    array_axis = vol.ndim - 1 - axis
    if vol.shape[array_axis] != 2:
        raise InvalidRangeError(f"Can't collapse axis {axis} of a volume with shape {vol.shape}")

    low = np.take(vol, [0], axis=array_axis).astype(np.float64)
    high = np.take(vol, [1], axis=array_axis).astype(np.float64)
    collapsed = low * (1.0 - weight) + high * weight

    if np.issubdtype(vol.dtype, np.integer):
        collapsed = np.rint(collapsed)
    return collapsed.astype(vol.dtype)
