import logging

from LLCDecodeServices.util import Timer
from LLCDecodeServices.errors import InvalidRangeError, BatchDecodeError
from LLCDecodeServices.codec_service import NpyCodecService
from LLCDecodeServices.decode.coalescer import coalesce
from LLCDecodeServices.decode.orchestrator import DecodeOrchestrator
from LLCDecodeServices.decode.scatter import OutputRecord

logger = logging.getLogger(__name__)

def decode_multiple_files(in_dir, queries, codec=None, outputs=None, max_workers=0, mixed_settings='finest'):
    """
    Decode a batch of logical queries, reading each file only once.

    Args:
        in_dir:
            Directory that the queries' file identifiers are relative to.
        queries:
            list of LogicalQuery
        codec:
            CodecService.  Defaults to NpyCodecService.
        outputs:
            Optional list of OutputRecord (or None entries), one per query.
            Records with a pre-allocated buffer are filled in place.
        max_workers:
            Maximum number of concurrent file decodes (0 means one per CPU).
        mixed_settings:
            What to do when queries for the same file disagree on
            downsampling or accuracy ('finest' or 'reject').

    Returns:
        list of OutputRecord, in the same order as queries.

    Raises:
        InvalidRangeError before any decoding if the batch is malformed.
        BatchDecodeError after all decodes finish, if any of them failed.
        The records of the groups that succeeded are still populated,
        and the error's 'outcomes' member lists every group's status.
    """
    if len(queries) == 0:
        raise InvalidRangeError("Input cannot be empty")
    if max_workers < 0:
        raise InvalidRangeError(f"max_workers must be non-negative, not {max_workers}")

    if outputs is None:
        outputs = [None] * len(queries)
    if len(outputs) != len(queries):
        raise InvalidRangeError(f"Got {len(outputs)} output records for {len(queries)} queries")
    for i, output in enumerate(outputs):
        if output is None:
            outputs[i] = OutputRecord()

    if codec is None:
        codec = NpyCodecService()

    groups = coalesce(queries, mixed_settings)
    orchestrator = DecodeOrchestrator(codec, max_workers)

    with Timer(f"Decoding {len(queries)} queries from {len(groups)} files", logger):
        outcomes = orchestrator.run_all(groups, in_dir, outputs)

    if not all(outcome.ok for outcome in outcomes):
        raise BatchDecodeError(outcomes)
    return outputs


def decode_one_file(in_dir, query, codec=None, output=None):
    """
    Decode a single logical query.  Returns its OutputRecord.
    """
    return decode_multiple_files(in_dir, [query], codec, [output], max_workers=1)[0]
