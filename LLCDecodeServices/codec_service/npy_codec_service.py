import os
import logging

import numpy as np

from LLCDecodeServices.errors import CodecError
from LLCDecodeServices.json_util import validate_and_inject_defaults

from .codec_service import CodecService, CodecHandle

logger = logging.getLogger(__name__)

NpyCodecSchema = \
{
    "description": "Read each face file as a raw .npy array of shape (t,y,x).\n"
                   "Lossless: the accuracy setting is accepted but has no effect.",
    "type": "object",
    "default": {},
    "properties": {
        "memory-map": {
            "description": "Memory-map the files instead of reading them fully into RAM.",
            "type": "boolean",
            "default": True
        }
    }
}

CodecServiceSchema = \
{
    "description": "Which codec decodes the dataset files",
    "type": "object",
    "default": {"npy": {}},
    "properties": {
        "npy": NpyCodecSchema
    }
}

class NpyCodecService(CodecService):
    """
    Reference codec backed by plain .npy files.
    
    Downsampling is honored by strided sampling.  Grid samples that
    lie beyond the end of the volume (which can happen when the last
    coordinate is snapped up to a coarse grid) read the nearest
    in-volume sample.
    """
    def __init__(self, codec_config=None):
        codec_config = codec_config if codec_config is not None else {"npy": {}}
        validate_and_inject_defaults(codec_config, CodecServiceSchema)
        self._memory_map = codec_config["npy"]["memory-map"]

    def init(self, file_id, base_dir, params):
        path = os.path.join(base_dir, file_id)
        mmap_mode = 'r' if self._memory_map else None
        try:
            array = np.load(path, mmap_mode=mmap_mode, allow_pickle=False)
        except (OSError, ValueError) as ex:
            raise CodecError(f"Could not open {path}: {ex}") from ex

        if array.ndim != 3:
            raise CodecError(f"Expected a 3D (t,y,x) array in {path}, not shape {array.shape}")

        handle = CodecHandle(file_id, array.shape[::-1], array.dtype)
        handle.array = array
        return handle

    def decode(self, handle, params, out):
        grid = self.compute_output_grid(handle, params)
        if out.shape != grid.shape_zyx:
            raise CodecError(f"Output array has shape {out.shape}, but the grid needs {grid.shape_zyx}")
        if grid.is_empty:
            return

        # Sample coordinates per axis, clamped to the volume.
        x, y, t = ( np.minimum(grid.first[a] + np.arange(grid.dims[a]) * grid.stride[a], handle.dims[a] - 1)
                    for a in range(3) )
        try:
            out[:] = handle.array[np.ix_(t, y, x)]
        except OSError as ex:
            raise CodecError(f"Could not read {handle.file_id}: {ex}") from ex

    def release(self, handle):
        # Drop our reference to the memmap so the file can be closed.
        handle.array = None
