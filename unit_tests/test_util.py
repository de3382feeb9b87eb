import json
import logging

import numpy as np

from LLCDecodeServices.util import Timer, NumpyConvertingEncoder, bb_to_slicing, xyz_to_zyx, default_max_workers

def test_bb_to_slicing():
    assert bb_to_slicing([1,2,3], [4,5,6]) == np.s_[1:4, 2:5, 3:6]
    assert bb_to_slicing([0,0], [4,8], [1,2]) == np.s_[0:4, 0:8:2]

def test_xyz_to_zyx():
    assert xyz_to_zyx(np.array([1,2,3])) == (3,2,1)

def test_numpy_converting_encoder():
    d = {"a": np.arange(3, dtype=np.uint32), "b": np.float32(1.5)}
    assert json.loads(json.dumps(d, cls=NumpyConvertingEncoder)) == {"a": [0,1,2], "b": 1.5}

def test_timer(caplog):
    logger = logging.getLogger('test_timer')
    with caplog.at_level(logging.INFO):
        with Timer("Doing nothing", logger) as timer:
            pass
    assert timer.seconds >= 0.0
    assert "Doing nothing..." in caplog.text
    assert "Doing nothing took" in caplog.text

def test_default_max_workers():
    assert default_max_workers() >= 1
