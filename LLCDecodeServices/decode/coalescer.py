"""
Grouping of logical queries by the physical file they read.
"""
import logging

import numpy as np

from LLCDecodeServices.errors import InvalidRangeError
from LLCDecodeServices.geometry import Extent, compute_grid

logger = logging.getLogger(__name__)

MIXED_SETTINGS_POLICIES = ('finest', 'reject')

class LogicalQuery:
    """
    One caller request: a region of one file, at some resolution and accuracy.

    Members:
        file_id: Path of the file, relative to the batch's input directory.
        extent: The requested Extent in [x,y,t] file coordinates.
                An unspecified (all-zero) Extent means the whole file.
        downsampling: Per-axis downsampling factors [x,y,t]
        accuracy: Error tolerance passed to the codec.
    """
    def __init__(self, file_id, extent=None, downsampling=(0,0,0), accuracy=0.0):
        if not isinstance(file_id, str) or not file_id:
            raise InvalidRangeError(f"Invalid file identifier: {file_id!r}")
        self.file_id = file_id
        self.extent = extent if extent is not None else Extent()
        self.downsampling = tuple(int(d) for d in downsampling)
        self.accuracy = float(accuracy)

        if len(self.downsampling) != 3 or min(self.downsampling) < 0:
            raise InvalidRangeError(f"Invalid downsampling factors: {downsampling}")
        if self.accuracy < 0:
            raise InvalidRangeError(f"Accuracy must be non-negative, not {accuracy}")

    def __repr__(self):
        return f"LogicalQuery({self.file_id!r}, {self.extent}, downsampling={self.downsampling}, accuracy={self.accuracy})"


def compute_output_grid(volume_dims, query):
    """
    The grid of samples the given query receives from a file with the given dims,
    before any slice collapsing.  Use this to size pre-allocated output buffers.
    """
    extent = query.extent
    if extent.is_unspecified:
        extent = Extent.whole(volume_dims)
    return compute_grid(volume_dims, query.downsampling, extent)


class QueryGroup:
    """
    A run of queries that read the same file, served by one decode.

    Members:
        file_id: The file all members read.
        members: list of (original_index, LogicalQuery)
        extent: The union of the members' requested extents
                (unspecified if any member asked for the whole file).
        downsampling: The factors the covering decode runs at.
        accuracy: The tolerance the covering decode runs at.
    """
    def __init__(self, file_id, members, extent, downsampling, accuracy):
        self.file_id = file_id
        self.members = members
        self.extent = extent
        self.downsampling = downsampling
        self.accuracy = accuracy

    @property
    def original_indexes(self):
        return [i for i, _ in self.members]

    def covering_extent(self, volume_dims):
        """
        The extent to decode for this group, once the file's dims are known:
        the members' union, widened to include every member's snapped grid.
        (When all members share one downsampling level, the widening has
        no effect on the decoded grid.)
        """
        if self.extent.is_unspecified:
            return Extent.whole(volume_dims)

        extent = self.extent
        for _, query in self.members:
            extent = extent.bounding_box(compute_output_grid(volume_dims, query).extent)
        return extent

    def __repr__(self):
        return f"QueryGroup({self.file_id!r}, {len(self.members)} members, {self.extent})"


def coalesce(queries, mixed_settings='finest'):
    """
    Group the given queries by file.

    The queries are stable-sorted by file identifier (remembering each
    one's position in the input list), and each maximal run of equal
    identifiers becomes one QueryGroup whose extent is the union of its
    members' extents.
    
    If members of a group disagree on downsampling or accuracy, the
    mixed_settings policy decides:
        'finest': decode at the smallest factor (per axis) and the smallest accuracy.
        'reject': raise InvalidRangeError.
    
    Returns:
        list of QueryGroup, in file-identifier order.
        Each original index appears in exactly one group.
    """
    if mixed_settings not in MIXED_SETTINGS_POLICIES:
        raise InvalidRangeError(f"Unknown mixed-settings policy: '{mixed_settings}'")
    if len(queries) == 0:
        raise InvalidRangeError("Query list cannot be empty")

    sorted_queries = sorted(enumerate(queries), key=lambda i_q: i_q[1].file_id)

    groups = []
    begin = 0
    for end in range(1, len(sorted_queries)+1):
        if end < len(sorted_queries) and sorted_queries[end][1].file_id == sorted_queries[end-1][1].file_id:
            continue
        groups.append(_make_group(sorted_queries[begin:end], mixed_settings))
        begin = end

    logger.debug(f"Coalesced {len(queries)} queries into {len(groups)} file decodes")
    return groups


def _make_group(members, mixed_settings):
    first = members[0][1]

    extent = first.extent
    for _, query in members[1:]:
        if extent.is_unspecified or query.extent.is_unspecified:
            extent = Extent()
        else:
            extent = extent.bounding_box(query.extent)

    all_downsampling = np.array([q.downsampling for _, q in members])
    all_accuracy = np.array([q.accuracy for _, q in members])
    mixed = (all_downsampling != all_downsampling[0]).any() or (all_accuracy != all_accuracy[0]).any()

    if not mixed:
        downsampling, accuracy = first.downsampling, first.accuracy
    elif mixed_settings == 'reject':
        raise InvalidRangeError(f"Queries for {first.file_id} request different downsampling or accuracy settings")
    else:
        downsampling = tuple(all_downsampling.min(axis=0).tolist())
        accuracy = float(all_accuracy.min())
        logger.debug(f"Queries for {first.file_id} disagree on settings; decoding at {downsampling}, accuracy {accuracy}")

    return QueryGroup(first.file_id, list(members), extent, downsampling, accuracy)
