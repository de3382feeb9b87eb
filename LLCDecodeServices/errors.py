"""
Error taxonomy shared by the geometry, codec and decode layers.

Synchronous checks (ranges, buffer sizes, coalescing) raise immediately.
Failures inside a concurrent decode task are captured per group and
re-raised by the batch entry point as a BatchDecodeError.
"""
from enum import Enum

class ErrorCode(Enum):
    NoError = 0
    InvalidRange = 1
    SizeTooSmall = 2
    CodecError = 3

class DecodeError(Exception):
    code = None

class InvalidRangeError(DecodeError):
    code = ErrorCode.InvalidRange

class SizeTooSmallError(DecodeError):
    code = ErrorCode.SizeTooSmall

class CodecError(DecodeError):
    code = ErrorCode.CodecError

class BatchDecodeError(DecodeError):
    """
    Raised after every group of a batch has finished, if any group failed.

    Members:
        outcomes: The GroupOutcome for every group, in sorted-file order.
        code: The ErrorCode of the first failed group.
    """
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        failed = [o for o in self.outcomes if not o.ok]
        assert failed, "BatchDecodeError requires at least one failed outcome"
        self.code = failed[0].code
        msg = f"{len(failed)} of {len(self.outcomes)} file decodes failed. First failure ({failed[0].file_id}): {failed[0].error}"
        super().__init__(msg)
