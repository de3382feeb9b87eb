"""
Query configuration for a whole LLC dataset: which faces (and which
regions of them), which depths and time steps, at what resolution,
and in what order the resulting records should be listed.

A QueryInfo expands into one LogicalQuery per (face range, depth, time),
each addressed to the file that stores that face/depth/time-block.
"""
import os
import copy
import json
import logging
from enum import Enum
from collections import namedtuple

from ruamel.yaml import YAML

from LLCDecodeServices.errors import InvalidRangeError
from LLCDecodeServices.json_util import validate_and_inject_defaults
from LLCDecodeServices.dataset import get_dataset
from LLCDecodeServices.layout import Order, compute_strides
from LLCDecodeServices.geometry import Extent
from LLCDecodeServices.codec_service import CodecService, CodecServiceSchema
from LLCDecodeServices.decode import LogicalQuery, decode_multiple_files

logger = logging.getLogger(__name__)

yaml = YAML(typ='rt')
yaml.default_flow_style = False

OutputMetadata = namedtuple('OutputMetadata', 'face depth time')

class SliceType(Enum):
    AlongX = 'along-x'
    AlongY = 'along-y'
    RotatedAlongX = 'rotated-along-x'
    RotatedAlongY = 'rotated-along-y'

RangeSchema = \
{
    "description": "A half-open range [begin, end)",
    "type": "array",
    "items": { "type": "integer" },
    "minItems": 2,
    "maxItems": 2
}

SpatialRangeSchema = \
{
    "description": "A face, and the X and Y ranges to read within it.\n"
                   "A range of [-1,-1] means the whole face along that axis.",
    "type": "object",
    "required": ["face"],
    "additionalProperties": False,
    "properties": {
        "face": {
            "type": "integer",
            "minimum": 0
        },
        "x-range": { **RangeSchema, "default": [-1,-1] },
        "y-range": { **RangeSchema, "default": [-1,-1] }
    }
}

QueryInfoSchema = \
{
    "description": "Describes a multi-face, multi-depth, multi-time query of an LLC dataset",
    "type": "object",
    "default": {},
    "additionalProperties": False,
    "properties": {
        "dataset": {
            "description": "Name of the dataset (determines face count and face dimensions)",
            "type": "string",
            "default": "llc2160"
        },
        "field": {
            "description": "Name of the field to read, e.g. 'u'",
            "type": "string",
            "default": "u"
        },
        "input-dir": {
            "description": "Directory that the formatted file names are relative to.",
            "type": "string",
            "default": "."
        },
        "name-format": {
            "description": "File name template.  Available fields:\n"
                           "{dataset}, {field}, {face}, {depth}, {time_begin}, {time_end}",
            "type": "string",
            "minLength": 1,
            "default": "{dataset}/{field}-face-{face}-depth-{depth}-time-{time_begin}-{time_end}.npy"
        },
        "time-group": {
            "description": "Number of consecutive time steps stored in each file.",
            "type": "integer",
            "minimum": 1,
            "default": 1024
        },
        "spatial-ranges": {
            "description": "The faces (and regions within them) to read.",
            "type": "array",
            "items": SpatialRangeSchema,
            "default": []
        },
        "time-range": { **RangeSchema, "default": [0,1] },
        "depth-range": { **RangeSchema, "default": [0,1] },
        "order": {
            "description": "Order of the output records, from slowest- to fastest-varying axis.",
            "type": "string",
            "enum": [o.name for o in Order],
            "default": Order.DepthFaceTime.name
        },
        "downsampling": {
            "description": "Downsampling factors [x,y,t].  Each axis keeps every 2^k-th sample.",
            "type": "array",
            "items": { "type": "integer", "minimum": 0 },
            "minItems": 3,
            "maxItems": 3,
            "default": [0,0,0]
        },
        "accuracy": {
            "description": "Error tolerance (0 means near-lossless).",
            "type": "number",
            "minimum": 0,
            "default": 0.01
        },
        "max-workers": {
            "description": "Maximum number of files decoded at once (0: one per CPU).",
            "type": "integer",
            "minimum": 0,
            "default": 0
        },
        "mixed-settings": {
            "description": "What to do if queries for the same file ask for different\n"
                           "downsampling or accuracy: decode at the finest settings, or reject the batch.",
            "type": "string",
            "enum": ["finest", "reject"],
            "default": "finest"
        },
        "codec": CodecServiceSchema
    }
}

class QueryInfo:
    """
    A validated query config, plus the dataset descriptor it refers to.
    """
    def __init__(self, config=None):
        config = copy.deepcopy(config) if config is not None else {}
        validate_and_inject_defaults(config, QueryInfoSchema)
        self.config = config
        self.dataset = get_dataset(config["dataset"])

    @classmethod
    def from_file(cls, path):
        ext = os.path.splitext(path)[1]
        with open(path, 'r') as f:
            if ext == '.json':
                config = json.load(f)
            elif ext in ('.yml', '.yaml'):
                config = yaml.load(f)
            else:
                raise RuntimeError(f"Unknown config file extension: {ext}")
        return cls(config)

    def set_name_format(self, name_format):
        self.config["name-format"] = name_format

    def set_input_directory(self, in_dir):
        self.config["input-dir"] = in_dir

    def set_time_group(self, time_group):
        self.config["time-group"] = time_group

    def set_time_range(self, time_begin, time_end):
        self.config["time-range"] = [time_begin, time_end]

    def set_depth_range(self, depth_begin, depth_end):
        self.config["depth-range"] = [depth_begin, depth_end]

    def set_order(self, order):
        if isinstance(order, str):
            order = Order.from_name(order)
        self.config["order"] = order.name

    def set_downsampling_factor(self, downsampling_x, downsampling_y, downsampling_time):
        self.config["downsampling"] = [downsampling_x, downsampling_y, downsampling_time]

    def set_accuracy(self, accuracy):
        self.config["accuracy"] = accuracy

    def add_spatial_range(self, face, x_begin, x_end, y_begin, y_end):
        self.config["spatial-ranges"].append({ "face": face,
                                               "x-range": [x_begin, x_end],
                                               "y-range": [y_begin, y_end] })

    def add_face(self, face):
        self._check_face(face)
        dim_x, dim_y = self.dataset.face_dims[face]
        self.add_spatial_range(face, 0, dim_x, 0, dim_y)

    def add_face_slice(self, face, slice_type, position):
        """
        Add a 1-sample-wide slice through a face.

        AlongX: the row at Y == position
        AlongY: the column at X == position
        RotatedAlongX/RotatedAlongY: the same slices, for faces stored rotated
        (their X axis runs opposite to the unrotated faces' Y axis).
        """
        self._check_face(face)
        dim_x, dim_y = self.dataset.face_dims[face]
        if slice_type == SliceType.AlongX:
            self.add_spatial_range(face, 0, dim_x, position, position+1)
        elif slice_type == SliceType.AlongY:
            self.add_spatial_range(face, position, position+1, 0, dim_y)
        elif slice_type == SliceType.RotatedAlongX:
            self.add_face_slice(face, SliceType.AlongY, dim_x - 1 - position)
        elif slice_type == SliceType.RotatedAlongY:
            self.add_face_slice(face, SliceType.AlongX, position)
        else:
            raise InvalidRangeError(f"Unknown slice type: {slice_type}")

    @property
    def spatial_ranges(self):
        """
        The configured spatial ranges, with [-1,-1] entries
        replaced by the full face extent.

        Returns: list of (face, (x_begin, x_end), (y_begin, y_end))
        """
        ranges = []
        for r in self.config["spatial-ranges"]:
            face = r["face"]
            self._check_face(face)
            dim_x, dim_y = self.dataset.face_dims[face]
            x_range = tuple(r["x-range"]) if list(r["x-range"]) != [-1,-1] else (0, dim_x)
            y_range = tuple(r["y-range"]) if list(r["y-range"]) != [-1,-1] else (0, dim_y)
            ranges.append( (face, x_range, y_range) )
        return ranges

    def verify(self):
        """
        Check that every range is non-empty and lies within the dataset.
        Raises InvalidRangeError otherwise.
        """
        validate_and_inject_defaults(self.config, QueryInfoSchema)

        if not self.config["spatial-ranges"]:
            raise InvalidRangeError("No spatial ranges were given")

        for face, (x_begin, x_end), (y_begin, y_end) in self.spatial_ranges:
            dim_x, dim_y = self.dataset.face_dims[face]
            if not (0 <= x_begin < x_end <= dim_x):
                raise InvalidRangeError(f"X range: [{x_begin} {x_end}) is invalid for face {face} (width {dim_x})")
            if not (0 <= y_begin < y_end <= dim_y):
                raise InvalidRangeError(f"Y range: [{y_begin} {y_end}) is invalid for face {face} (height {dim_y})")

        time_begin, time_end = self.config["time-range"]
        if not (0 <= time_begin < time_end):
            raise InvalidRangeError(f"Time range: [{time_begin} {time_end}) is invalid")

        depth_begin, depth_end = self.config["depth-range"]
        if not (0 <= depth_begin < depth_end <= self.dataset.num_depths):
            raise InvalidRangeError(f"Depth range: [{depth_begin} {depth_end}) is invalid "
                                    f"(dataset has {self.dataset.num_depths} depths)")

    def time_block(self, time):
        """
        The [begin, end) range of time steps stored in the file containing the given time step.
        """
        time_group = self.config["time-group"]
        time_begin = (time // time_group) * time_group
        return time_begin, time_begin + time_group

    def format_file_id(self, face, depth, time):
        self._check_face(face)
        if not (0 <= depth < self.dataset.num_depths):
            raise InvalidRangeError(f"Depth {depth} is out of range for {self.dataset.name}")
        if time < 0:
            raise InvalidRangeError(f"Time {time} is negative")

        time_begin, time_end = self.time_block(time)
        try:
            return self.config["name-format"].format( dataset=self.dataset.name,
                                                      field=self.config["field"],
                                                      face=face,
                                                      depth=depth,
                                                      time_begin=time_begin,
                                                      time_end=time_end )
        except (KeyError, IndexError, ValueError) as ex:
            raise InvalidRangeError(f"Bad name-format '{self.config['name-format']}': {ex}") from ex

    def build_queries(self):
        """
        Expand this query into one LogicalQuery per (face range, depth, time),
        listed in the configured order.

        Returns:
            (queries, metadata), two lists of equal length.
        """
        self.verify()

        spatial_ranges = self.spatial_ranges
        depth_begin, depth_end = self.config["depth-range"]
        time_begin, time_end = self.config["time-range"]
        num_faces = len(spatial_ranges)
        num_depths = depth_end - depth_begin
        num_times = time_end - time_begin

        face_stride, depth_stride, time_stride = \
            compute_strides(num_faces, num_depths, num_times, self.config["order"])

        downsampling = tuple(self.config["downsampling"])
        accuracy = self.config["accuracy"]

        queries = [None] * (num_faces * num_depths * num_times)
        metadata = [None] * len(queries)
        for d, depth in enumerate(range(depth_begin, depth_end)):
            for f, (face, (x_begin, x_end), (y_begin, y_end)) in enumerate(spatial_ranges):
                # Rotated faces have their x and y axes swapped
                face_downsampling = downsampling
                if face in self.dataset.rotated_faces:
                    face_downsampling = (downsampling[1], downsampling[0], downsampling[2])

                for t, time in enumerate(range(time_begin, time_end)):
                    index = f*face_stride + d*depth_stride + t*time_stride
                    block_begin, _ = self.time_block(time)
                    extent = Extent( (x_begin, y_begin, time - block_begin),
                                     (x_end - x_begin, y_end - y_begin, 1) )
                    queries[index] = LogicalQuery( self.format_file_id(face, depth, time),
                                                   extent, face_downsampling, accuracy )
                    metadata[index] = OutputMetadata(face, depth, time)

        return queries, metadata

    def _check_face(self, face):
        if not (0 <= face < self.dataset.num_faces):
            raise InvalidRangeError(f"Face {face} is out of range for {self.dataset.name} "
                                    f"({self.dataset.num_faces} faces)")


def execute_query(query_info, codec=None, outputs=None):
    """
    Run the given QueryInfo.

    Returns:
        (outputs, metadata): list of OutputRecord and a parallel list
        of OutputMetadata, in the order given by the query's 'order' setting.
    """
    queries, metadata = query_info.build_queries()
    config = query_info.config

    if codec is None:
        codec = CodecService.create_from_config(config["codec"])

    logger.info(f"Executing query of {len(queries)} records from {config['dataset']}")
    outputs = decode_multiple_files( config["input-dir"],
                                     queries,
                                     codec,
                                     outputs,
                                     config["max-workers"],
                                     config["mixed-settings"] )
    return outputs, metadata
