import time
import json
import logging
import contextlib
from itertools import starmap
from datetime import timedelta

import numpy as np
import psutil

logger = logging.getLogger(__name__)

def default_max_workers():
    """
    The number of decode tasks allowed to run at once when
    the config doesn't say otherwise: the hardware parallelism.
    """
    return psutil.cpu_count() or 1

@contextlib.contextmanager
def Timer(msg=None, logger=None):
    if msg:
        logger = logger or logging.getLogger(__name__)
        logger.info(msg + '...')
    result = _TimerResult()
    start = time.time()
    yield result
    result.seconds = time.time() - start
    result.timedelta = timedelta(seconds=result.seconds)
    if msg:
        logger.info(msg + f' took {result.timedelta}')

class _TimerResult(object):
    seconds = -1.0

class NumpyConvertingEncoder(json.JSONEncoder):
    """
    Encoder that converts numpy arrays and scalars
    into their pure-python counterparts.
    
    (No attempt is made to preserve bit-width information.)
    
    Usage:
    
        >>> d = {"a": np.arange(3, dtype=np.uint32)}
        >>> json.dumps(d, cls=NumpyConvertingEncoder)
        '{"a": [0, 1, 2]}'
    """
    def default(self, o):
        if isinstance(o, (np.ndarray, np.number)):
            return o.tolist()
        return super().default(o)

def bb_to_slicing(start, stop, step=None):
    """
    For the given bounding box (start, stop),
    return the corresponding slicing tuple.

    Example:
    
        >>> assert bb_to_slicing([1,2,3], [4,5,6]) == np.s_[1:4, 2:5, 3:6]
        >>> assert bb_to_slicing([0,0], [4,8], [1,2]) == np.s_[0:4, 0:8:2]
    """
    if step is None:
        step = (None,)*len(start)
    return tuple( starmap( slice, zip(start, stop, step) ) )

# Alias
box_to_slicing = bb_to_slicing

def xyz_to_zyx(v):
    """
    Geometry is expressed in [x,y,t] order (x varies fastest),
    but numpy arrays are indexed [t,y,x].
    """
    return tuple(np.asarray(v)[::-1].tolist())
