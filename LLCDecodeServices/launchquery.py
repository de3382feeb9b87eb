import os
import sys
import json
import logging
import argparse

from ruamel.yaml import YAML

from LLCDecodeServices.util import Timer, NumpyConvertingEncoder
from LLCDecodeServices.json_util import inject_defaults
from LLCDecodeServices.query_info import QueryInfo, QueryInfoSchema, execute_query

logger = logging.getLogger(__name__)

def main():
    parser = argparse.ArgumentParser(description="Decode a multi-face, multi-depth, multi-time query of an LLC dataset")

    parser.add_argument('--config-file', '-c', default="",
            help="json or yaml query config file")

    parser.add_argument('--output-dir', '-o', default=".",
            help="Where to write the output buffers")

    parser.add_argument('--dump-schema', '-d', action="store_true",
            default=False, help="dump the config json schema")

    parser.add_argument('--dump-default-yaml', '-y', action="store_true",
            default=False, help="dump the default config as yaml, with comments")

    args = parser.parse_args()

    if args.dump_schema:
        print(json.dumps(QueryInfoSchema, indent=2))
        return 0

    if args.dump_default_yaml:
        yaml = YAML()
        yaml.default_flow_style = False
        yaml.dump(inject_defaults({}, QueryInfoSchema, include_yaml_comments=True), sys.stdout)
        return 0

    if not args.config_file:
        parser.error("Please provide a --config-file")

    logging.basicConfig(level=logging.INFO, format='%(levelname)s [%(asctime)s] %(module)s %(message)s')

    query_info = QueryInfo.from_file(args.config_file)
    with Timer("Executing query", logger):
        outputs, metadata = execute_query(query_info)

    write_outputs(args.output_dir, outputs, metadata)
    return 0


def write_outputs(output_dir, outputs, metadata):
    """
    Write each output buffer to a raw file named after its face/depth/time,
    plus a metadata.json file describing each buffer's grid and dtype.
    """
    os.makedirs(output_dir, exist_ok=True)

    listing = []
    for output, meta in zip(outputs, metadata):
        name = f"face-{meta.face}-depth-{meta.depth}-time-{meta.time}.bin"
        if output.volume is not None:
            output.volume.tofile(os.path.join(output_dir, name))
        listing.append({ "file": name,
                         "face": meta.face,
                         "depth": meta.depth,
                         "time": meta.time,
                         "dtype": str(output.dtype),
                         "first": output.grid.first,
                         "dims": output.grid.dims,
                         "stride": output.grid.stride })

    with open(os.path.join(output_dir, "metadata.json"), 'w') as f:
        json.dump(listing, f, indent=2, cls=NumpyConvertingEncoder)
    logger.info(f"Wrote {len(outputs)} outputs to {output_dir}")

if __name__ == "__main__":
    sys.exit( main() )
