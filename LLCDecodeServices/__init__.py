"""
Multi-file, multi-resolution query layer for LLC ocean-simulation volumes.

A dataset is partitioned into one file per (face, depth, time-block),
each decoded through an external codec.  This package turns batches of
logical sub-region requests into the minimal set of file decodes and
scatters the decoded samples into per-request output buffers.
"""
__version__ = '0.1'
