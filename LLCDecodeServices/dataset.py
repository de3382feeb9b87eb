"""
Geometry of the known LLC (lat-lon-cap) datasets.

Each dataset is split into faces.  Each face file holds one depth level
and a block of time steps, so its volume dims are [face_x, face_y, time_group].
Faces 3 and 4 are stored rotated relative to faces 0 and 1.
"""
from collections import namedtuple

from LLCDecodeServices.errors import InvalidRangeError

DatasetDescriptor = namedtuple('DatasetDescriptor', 'name num_faces face_dims num_depths rotated_faces')

def _llc_descriptor(name, n, num_depths):
    face_dims = ( (n, 3*n),
                  (n, 3*n),
                  (n,   n),
                  (3*n, n),
                  (3*n, n) )
    return DatasetDescriptor(name, 5, face_dims, num_depths, frozenset([3, 4]))

DATASETS = {
    'llc2160': _llc_descriptor('llc2160', 2160, 90),
    'llc4320': _llc_descriptor('llc4320', 4320, 90),
}

def get_dataset(name):
    try:
        return DATASETS[name]
    except KeyError:
        raise InvalidRangeError(f"Unknown dataset: '{name}'.  Known datasets are: {sorted(DATASETS.keys())}")

def register_dataset(descriptor):
    """
    Add a dataset to the table (e.g. a small test dataset).
    """
    assert len(descriptor.face_dims) == descriptor.num_faces
    DATASETS[descriptor.name] = descriptor
