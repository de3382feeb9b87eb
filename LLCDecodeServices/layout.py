"""
Ordering of output records over (face, depth, time).
"""
from enum import Enum

class Order(Enum):
    """
    Each ordering lists its axes from slowest-varying to fastest-varying.
    For example, DepthFaceTime means time varies fastest, then face, then depth.
    """
    DepthFaceTime = ('depth', 'face', 'time')
    DepthTimeFace = ('depth', 'time', 'face')
    FaceTimeDepth = ('face', 'time', 'depth')
    FaceDepthTime = ('face', 'depth', 'time')
    TimeDepthFace = ('time', 'depth', 'face')
    TimeFaceDepth = ('time', 'face', 'depth')

    @classmethod
    def from_name(cls, name):
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"Unknown output order: '{name}'.  Choices are: {[o.name for o in cls]}")


def compute_strides(num_faces, num_depths, num_times, order):
    """
    Return the (face_stride, depth_stride, time_stride) of a flat list of
    records laid out in the given order, so that the record for
    (face, depth, time) lives at:

        face*face_stride + depth*depth_stride + time*time_stride

    Example:

        >>> compute_strides(5, 2, 3, Order.DepthFaceTime)
        (3, 15, 1)
    """
    if isinstance(order, str):
        order = Order.from_name(order)

    counts = {'face': num_faces, 'depth': num_depths, 'time': num_times}
    slowest, middle, fastest = order.value

    strides = {}
    strides[fastest] = 1
    strides[middle] = counts[fastest]
    strides[slowest] = counts[middle] * counts[fastest]
    return (strides['face'], strides['depth'], strides['time'])
