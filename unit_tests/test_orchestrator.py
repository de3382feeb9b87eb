import unittest

import numpy as np

from LLCDecodeServices.errors import ErrorCode, InvalidRangeError
from LLCDecodeServices.geometry import Extent
from LLCDecodeServices.decode import (LogicalQuery, OutputRecord, DecodeOrchestrator,
                                      GroupOutcome, coalesce, compute_output_grid)

from fake_codec import FakeCodec, synthetic_volume

class TestDecodeOrchestrator(unittest.TestCase):

    def _run(self, codec, queries, max_workers):
        groups = coalesce(queries)
        outputs = [OutputRecord() for _ in queries]
        orchestrator = DecodeOrchestrator(codec, max_workers)
        outcomes = orchestrator.run_all(groups, '/unused', outputs)
        return orchestrator, groups, outcomes, outputs

    def test_concurrency_is_bounded(self):
        codec = FakeCodec(delay=0.02)
        queries = [LogicalQuery(f'file-{i:02d}', Extent((0,0,0), (4,4,1))) for i in range(12)]

        orchestrator, _groups, outcomes, _outputs = self._run(codec, queries, 3)

        assert all(o.ok for o in outcomes)
        assert 1 <= codec.peak_active <= 3
        assert 1 <= orchestrator.peak_in_flight <= 3
        assert orchestrator.in_flight == 0

    def test_one_decode_per_file(self):
        codec = FakeCodec()
        queries = [ LogicalQuery('a', Extent((0,0,0), (2,2,1))),
                    LogicalQuery('b', Extent((1,1,1), (1,1,1))),
                    LogicalQuery('a', Extent((6,6,2), (2,2,1))),
                    LogicalQuery('a', Extent((3,3,0), (1,1,1))) ]

        _orchestrator, _groups, outcomes, outputs = self._run(codec, queries, 4)

        assert [o.code for o in outcomes] == [ErrorCode.NoError, ErrorCode.NoError]
        assert sorted(codec.opened) == ['a', 'b']
        assert sorted(codec.released) == ['a', 'b']
        assert sorted(f for f, _ in codec.decoded) == ['a', 'b']

        decoded = dict(codec.decoded)
        assert decoded['a'] == Extent.from_first_last((0,0,0), (7,7,2))

        # Each record holds exactly the samples it asked for
        for query, output in zip(queries, outputs):
            grid = compute_output_grid(codec.dims, query)
            assert output.grid == grid
            assert (output.volume == synthetic_volume(grid)).all()

    def test_failures_are_reported_per_group(self):
        codec = FakeCodec(failing_files=['b'])
        queries = [ LogicalQuery('a', Extent((0,0,0), (2,2,1))),
                    LogicalQuery('b', Extent((0,0,0), (2,2,1))),
                    LogicalQuery('c', Extent((0,0,0), (2,2,1))),
                    LogicalQuery('b', Extent((1,0,0), (2,2,1))) ]

        orchestrator, groups, outcomes, outputs = self._run(codec, queries, 2)

        assert [g.file_id for g in groups] == ['a', 'b', 'c']
        assert [o.code for o in outcomes] == [ErrorCode.NoError, ErrorCode.CodecError, ErrorCode.NoError]
        assert outcomes[1].original_indexes == [1, 3]
        assert not outcomes[1].ok

        # The other groups still completed
        assert outputs[0].volume is not None
        assert outputs[2].volume is not None
        assert outputs[1].buffer is None and outputs[3].buffer is None
        assert orchestrator.in_flight == 0

    def test_scatter_failure_is_captured(self):
        # Pre-allocated buffer that is too small for its query
        codec = FakeCodec()
        queries = [LogicalQuery('a', Extent((0,0,0), (4,4,1)))]
        outputs = [OutputRecord(np.zeros(10, dtype=np.uint8))]

        outcomes = DecodeOrchestrator(codec, 1).run_all(coalesce(queries), '/unused', outputs)
        assert outcomes[0].code == ErrorCode.SizeTooSmall
        assert codec.released == ['a']

    def test_outside_volume_group_decodes_nothing(self):
        codec = FakeCodec()
        queries = [LogicalQuery('a', Extent((100,0,0), (4,4,1)))]

        _orchestrator, _groups, outcomes, outputs = self._run(codec, queries, 1)
        assert outcomes[0].ok
        assert codec.decoded == []
        assert outputs[0].grid.is_empty
        assert outputs[0].volume is None

    def test_interrupted_task_still_gets_an_outcome(self):
        class Interrupted(BaseException):
            pass

        class InterruptingCodec(FakeCodec):
            def decode(self, handle, params, out):
                if handle.file_id == 'b':
                    raise Interrupted()
                super().decode(handle, params, out)

        codec = InterruptingCodec()
        queries = [ LogicalQuery('a', Extent((0,0,0), (2,2,1))),
                    LogicalQuery('b', Extent((0,0,0), (2,2,1))) ]

        orchestrator, _groups, outcomes, outputs = self._run(codec, queries, 2)
        assert [o.code for o in outcomes] == [ErrorCode.NoError, ErrorCode.CodecError]
        assert not outcomes[1].ok
        assert outputs[1].volume is None
        assert sorted(codec.released) == ['a', 'b']
        assert orchestrator.in_flight == 0

    def test_outcome_codes(self):
        assert GroupOutcome('a', [0]).code == ErrorCode.NoError
        assert GroupOutcome('a', [0], InvalidRangeError("bad")).code == ErrorCode.InvalidRange
        assert GroupOutcome('a', [0], RuntimeError("unexpected")).code == ErrorCode.CodecError

if __name__ == "__main__":
    unittest.main()
