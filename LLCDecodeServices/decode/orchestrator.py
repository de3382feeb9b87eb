"""
Runs one decode per QueryGroup, with a bounded number of decodes in flight.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait

import numpy as np

from LLCDecodeServices.util import Timer, default_max_workers
from LLCDecodeServices.errors import ErrorCode, DecodeError, CodecError
from LLCDecodeServices.codec_service import DecodeParams
from LLCDecodeServices.decode.scatter import scatter

logger = logging.getLogger(__name__)

class GroupOutcome:
    """
    The final status of one group's decode + scatter.

    Members:
        file_id: The group's file.
        original_indexes: The output slots that belong to this group.
        code: ErrorCode.NoError on success.
        error: The exception that ended the task, or None.
    """
    def __init__(self, file_id, original_indexes, error=None):
        self.file_id = file_id
        self.original_indexes = original_indexes
        self.error = error
        if error is None:
            self.code = ErrorCode.NoError
        elif isinstance(error, DecodeError):
            self.code = error.code
        else:
            self.code = ErrorCode.CodecError

    @property
    def ok(self):
        return self.code == ErrorCode.NoError

    def __repr__(self):
        return f"GroupOutcome({self.file_id!r}, {self.code.name})"


class DecodeOrchestrator:
    """
    Executes QueryGroups concurrently.

    A group is admitted only when one of max_workers slots is free.
    Admission (acquiring a slot) happens before the task is submitted,
    and the slot is released when the task finishes, whether it
    succeeded or not, so at most max_workers decodes are ever active.
    
    Every group gets a GroupOutcome, in the same order as the groups.
    """
    def __init__(self, codec, max_workers=0):
        self.codec = codec
        self.max_workers = max_workers or default_max_workers()

        self._slots = threading.BoundedSemaphore(self.max_workers)
        self._lock = threading.Lock()
        self._in_flight = 0
        self.peak_in_flight = 0

    @property
    def in_flight(self):
        with self._lock:
            return self._in_flight

    def run_all(self, groups, in_dir, outputs):
        """
        Decode every group and scatter the results into outputs.
        Returns a list of GroupOutcome, one per group.
        Does not return until every task has finished.
        """
        outcomes = [None] * len(groups)

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = []
            for i, group in enumerate(groups):
                self._slots.acquire()
                self._enter()
                try:
                    futures.append( executor.submit(self._run_task, i, group, in_dir, outputs, outcomes) )
                except BaseException:
                    self._exit()
                    raise
            wait(futures)

        assert self.in_flight == 0
        return outcomes

    def _run_task(self, i, group, in_dir, outputs, outcomes):
        try:
            self.decode_group(group, in_dir, outputs)
        except Exception as ex:
            logger.error(f"Decoding {group.file_id} failed: {ex}")
            outcomes[i] = GroupOutcome(group.file_id, group.original_indexes, ex)
        else:
            outcomes[i] = GroupOutcome(group.file_id, group.original_indexes)
        finally:
            if outcomes[i] is None:
                # Interrupted by something other than an Exception
                error = CodecError(f"Decoding {group.file_id} was interrupted")
                outcomes[i] = GroupOutcome(group.file_id, group.original_indexes, error)
            self._exit()

    def decode_group(self, group, in_dir, outputs):
        """
        Decode the group's covering extent from its file,
        then scatter it into the members' output records.
        """
        params = DecodeParams(group.downsampling, group.accuracy)
        handle = self.codec.init(group.file_id, in_dir, params)
        try:
            params.extent = group.covering_extent(handle.dims)
            grid = self.codec.compute_output_grid(handle, params)

            covering_volume = np.empty(grid.shape_zyx, dtype=handle.dtype)
            if not grid.is_empty:
                with Timer(f"Decoding {group.file_id}", logger):
                    self.codec.decode(handle, params, covering_volume)

            scatter(handle.dims, grid, covering_volume, group.members, outputs)
        finally:
            self.codec.release(handle)

    def _enter(self):
        with self._lock:
            self._in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
            assert self._in_flight <= self.max_workers

    def _exit(self):
        with self._lock:
            self._in_flight -= 1
        self._slots.release()
