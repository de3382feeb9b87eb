from .coalescer import LogicalQuery, QueryGroup, coalesce, compute_output_grid
from .scatter import OutputRecord, scatter
from .orchestrator import DecodeOrchestrator, GroupOutcome
from .batch import decode_multiple_files, decode_one_file
