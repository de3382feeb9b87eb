"""
An in-memory CodecService for exercising the orchestrator,
with hooks for counting concurrent decodes and injecting failures.
"""
import time
import threading

import numpy as np

from LLCDecodeServices.errors import CodecError
from LLCDecodeServices.codec_service import CodecService, CodecHandle

def synthetic_volume(grid):
    """
    Sample values that encode their own coordinates: x + 100*y + 10000*t
    """
    t, y, x = np.meshgrid( *[grid.first[a] + np.arange(grid.dims[a]) * grid.stride[a] for a in (2,1,0)],
                           indexing='ij' )
    return (x + 100*y + 10000*t).astype(np.float32)

class FakeCodec(CodecService):
    def __init__(self, dims=(16,16,4), failing_files=(), delay=0.0):
        self.dims = dims
        self.failing_files = set(failing_files)
        self.delay = delay

        self.lock = threading.Lock()
        self.active = 0
        self.peak_active = 0
        self.opened = []
        self.decoded = []
        self.released = []

    def init(self, file_id, base_dir, params):
        with self.lock:
            self.opened.append(file_id)
        if file_id in self.failing_files:
            raise CodecError(f"Can't open {file_id}")
        return CodecHandle(file_id, self.dims, np.float32)

    def decode(self, handle, params, out):
        with self.lock:
            self.active += 1
            self.peak_active = max(self.peak_active, self.active)
            self.decoded.append( (handle.file_id, params.extent) )
        try:
            time.sleep(self.delay)
            out[:] = synthetic_volume(self.compute_output_grid(handle, params))
        finally:
            with self.lock:
                self.active -= 1

    def release(self, handle):
        with self.lock:
            self.released.append(handle.file_id)
