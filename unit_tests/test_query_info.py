import os
import json
import textwrap

import numpy as np
import pytest
from jsonschema import ValidationError

from LLCDecodeServices.errors import InvalidRangeError
from LLCDecodeServices.dataset import DatasetDescriptor, register_dataset, get_dataset
from LLCDecodeServices.layout import Order
from LLCDecodeServices.query_info import QueryInfo, SliceType, OutputMetadata, execute_query
from LLCDecodeServices import launchquery

# A miniature LLC dataset: faces of 4x12, 4x12, 4x4, 12x4, 12x4, with 3 depths
TINY = DatasetDescriptor('tiny', 5, ((4,12), (4,12), (4,4), (12,4), (12,4)), 3, frozenset([3,4]))
register_dataset(TINY)

def _write_face_files(base_dir, face, depths, time_group=4):
    """
    Write one file per depth for the first time block of the given face.
    Values encode their coordinates: 1000*depth + 100*t + 10*y + x (for small x,y).
    """
    dim_x, dim_y = TINY.face_dims[face]
    t, y, x = np.meshgrid(np.arange(time_group), np.arange(dim_y), np.arange(dim_x), indexing='ij')
    os.makedirs(os.path.join(base_dir, 'tiny'), exist_ok=True)
    arrays = {}
    for depth in depths:
        a = (1000*depth + 100*t + 10*y + x).astype(np.float32)
        np.save(os.path.join(base_dir, f'tiny/u-face-{face}-depth-{depth}-time-0-{time_group}.npy'), a)
        arrays[depth] = a
    return arrays

def test_known_datasets():
    llc = get_dataset('llc4320')
    assert llc.num_faces == 5
    assert llc.face_dims[0] == (4320, 3*4320)
    assert llc.face_dims[3] == (3*4320, 4320)
    assert llc.rotated_faces == {3, 4}
    with pytest.raises(InvalidRangeError):
        get_dataset('llc9999')

def test_defaults():
    query_info = QueryInfo({"dataset": "tiny"})
    config = query_info.config
    assert config["order"] == "DepthFaceTime"
    assert config["downsampling"] == [0,0,0]
    assert config["time-group"] == 1024
    assert config["codec"] == {"npy": {"memory-map": True}}

    with pytest.raises(ValidationError):
        QueryInfo({"dataset": "tiny", "no-such-setting": 1})
    with pytest.raises(ValidationError):
        QueryInfo({"dataset": "tiny", "order": "FaceFaceTime"})

def test_format_file_id():
    query_info = QueryInfo({"dataset": "tiny", "time-group": 4})
    assert query_info.format_file_id(2, 1, 5) == "tiny/u-face-2-depth-1-time-4-8.npy"
    assert query_info.format_file_id(0, 0, 3) == "tiny/u-face-0-depth-0-time-0-4.npy"

    query_info.set_name_format("{field}_{face}_{depth}_{time_begin}.idx")
    assert query_info.format_file_id(4, 2, 9) == "u_4_2_8.idx"

    with pytest.raises(InvalidRangeError):
        query_info.format_file_id(5, 0, 0)
    with pytest.raises(InvalidRangeError):
        query_info.format_file_id(0, 3, 0)
    with pytest.raises(InvalidRangeError):
        query_info.format_file_id(0, 0, -1)

    query_info.set_name_format("{not_a_field}.npy")
    with pytest.raises(InvalidRangeError):
        query_info.format_file_id(0, 0, 0)

def test_verify():
    query_info = QueryInfo({"dataset": "tiny"})
    with pytest.raises(InvalidRangeError):
        query_info.verify() # no ranges

    query_info.add_spatial_range(0, 0, 5, 0, 12) # face 0 is only 4 wide
    with pytest.raises(InvalidRangeError):
        query_info.verify()

    query_info = QueryInfo({"dataset": "tiny"})
    query_info.add_face(1)
    query_info.verify()

    query_info.set_time_range(3, 3)
    with pytest.raises(InvalidRangeError):
        query_info.verify()

    query_info.set_time_range(0, 1)
    query_info.set_depth_range(0, 4)
    with pytest.raises(InvalidRangeError):
        query_info.verify()

    with pytest.raises(InvalidRangeError):
        query_info.add_face(5)

def test_whole_face_ranges():
    query_info = QueryInfo({"dataset": "tiny", "spatial-ranges": [{"face": 3}]})
    assert query_info.spatial_ranges == [(3, (0,12), (0,4))]

def test_face_slices():
    query_info = QueryInfo({"dataset": "tiny"})
    query_info.add_face_slice(0, SliceType.AlongX, 2)
    query_info.add_face_slice(0, SliceType.AlongY, 1)
    query_info.add_face_slice(3, SliceType.RotatedAlongX, 0)
    query_info.add_face_slice(3, SliceType.RotatedAlongY, 2)

    assert query_info.spatial_ranges == [ (0, (0,4), (2,3)),
                                          (0, (1,2), (0,12)),
                                          (3, (11,12), (0,4)),
                                          (3, (0,12), (2,3)) ]
    query_info.verify()

def test_build_queries_order():
    query_info = QueryInfo({"dataset": "tiny"})
    query_info.set_time_group(4)
    query_info.add_face(0)
    query_info.add_face(2)
    query_info.set_depth_range(0, 2)
    query_info.set_time_range(3, 6)
    query_info.set_order(Order.DepthFaceTime)

    queries, metadata = query_info.build_queries()
    assert len(queries) == len(metadata) == 2*2*3

    assert metadata[0] == OutputMetadata(0, 0, 3)
    assert metadata[1] == OutputMetadata(0, 0, 4)
    assert metadata[3] == OutputMetadata(2, 0, 3)
    assert metadata[6] == OutputMetadata(0, 1, 3)

    # Times are relative to the start of their file's time block
    assert queries[0].file_id == "tiny/u-face-0-depth-0-time-0-4.npy"
    assert queries[0].extent.first.tolist() == [0,0,3]
    assert queries[1].file_id == "tiny/u-face-0-depth-0-time-4-8.npy"
    assert queries[1].extent.first.tolist() == [0,0,0]
    assert queries[3].extent.dims.tolist() == [4,4,1]

    query_info.set_order('TimeFaceDepth')
    _queries, metadata = query_info.build_queries()
    assert metadata[:3] == [OutputMetadata(0, 0, 3), OutputMetadata(0, 1, 3), OutputMetadata(2, 0, 3)]

def test_rotated_faces_swap_downsampling():
    query_info = QueryInfo({"dataset": "tiny"})
    query_info.add_face(0)
    query_info.add_face(3)
    query_info.set_downsampling_factor(1, 0, 2)
    query_info.set_accuracy(0.5)

    queries, metadata = query_info.build_queries()
    by_face = { m.face: q for q, m in zip(queries, metadata) }
    assert by_face[0].downsampling == (1,0,2)
    assert by_face[3].downsampling == (0,1,2)
    assert by_face[3].accuracy == 0.5

def test_execute_query(tmp_path):
    arrays = _write_face_files(str(tmp_path), 0, depths=[0,1])

    query_info = QueryInfo({"dataset": "tiny", "time-group": 4, "max-workers": 2})
    query_info.set_input_directory(str(tmp_path))
    query_info.add_face_slice(0, SliceType.AlongX, 5)
    query_info.set_depth_range(0, 2)
    query_info.set_time_range(1, 3)

    outputs, metadata = execute_query(query_info)
    assert len(outputs) == 4
    for output, meta in zip(outputs, metadata):
        assert output.volume.shape == (1,1,4)
        expected = arrays[meta.depth][meta.time, 5, :]
        assert (output.volume[0,0,:] == expected).all()

def test_query_from_yaml(tmp_path):
    config_path = tmp_path / 'query.yaml'
    config_path.write_text(textwrap.dedent("""\
        dataset: tiny
        field: theta
        time-group: 8
        spatial-ranges:
          - face: 2
            x-range: [1, 3]
        depth-range: [1, 3]
        downsampling: [1, 1, 0]
        order: FaceTimeDepth
    """))
    query_info = QueryInfo.from_file(str(config_path))
    assert query_info.spatial_ranges == [(2, (1,3), (0,4))]
    assert query_info.format_file_id(2, 1, 9) == "tiny/theta-face-2-depth-1-time-8-16.npy"

    queries, _metadata = query_info.build_queries()
    assert len(queries) == 2
    assert queries[0].downsampling == (1,1,0)

def test_launchquery(tmp_path, monkeypatch):
    _write_face_files(str(tmp_path), 2, depths=[0])
    config_path = tmp_path / 'query.json'
    config_path.write_text(json.dumps({ "dataset": "tiny",
                                        "input-dir": str(tmp_path),
                                        "time-group": 4,
                                        "spatial-ranges": [{"face": 2}],
                                        "time-range": [0, 2] }))
    output_dir = tmp_path / 'out'

    monkeypatch.setattr('sys.argv', ['launchquery', '-c', str(config_path), '-o', str(output_dir)])
    assert launchquery.main() == 0

    with open(output_dir / 'metadata.json') as f:
        listing = json.load(f)
    assert [entry["time"] for entry in listing] == [0, 1]
    assert listing[1]["dims"] == [4,4,1]
    assert listing[1]["dtype"] == "float32"

    data = np.fromfile(output_dir / listing[1]["file"], dtype=np.float32).reshape(4,4)
    assert data[2,3] == 100*1 + 10*2 + 3

if __name__ == "__main__":
    import sys
    sys.exit(pytest.main(['-s', __file__]))
