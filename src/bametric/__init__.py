# Copyright (c) 2021 Leiden University Medical Center
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
import argparse
import logging
import os
import sys
from typing import Iterator, List, NamedTuple, Optional, Type

import pysam

from ._abstracts import Filter, opposite
from ._catalog import Catalog, load_catalog, save_catalog
from ._filters import (
    BoolOperator,
    CombinedFilter,
    FilterValue,
    FlagFilter,
    LengthFilter,
    MapqFilter,
    NthNucleotideFilter,
    RefNameFilter,
    TagFilter,
)
from ._serialization import filter_from_dict, filter_to_dict
from ._tags import (
    CharValue,
    FloatValue,
    IntValue,
    StringValue,
    TagType,
    TagValue,
    convert_tag_value,
)
from .errors import (
    AlignmentFileError,
    BametricError,
    CatalogIOError,
    ConversionError,
    NotFoundError,
    SerializationError,
    ValidationError,
)

__version__ = "0.1.0"

__all__ = [
    "file_to_alignment_records",
    "filter_alignments",
    "filter_alignment_files",
    "FilterStatistics",
    "Catalog",
    "load_catalog",
    "save_catalog",
    "Filter",
    "BoolOperator",
    "CombinedFilter",
    "FlagFilter",
    "LengthFilter",
    "MapqFilter",
    "NthNucleotideFilter",
    "RefNameFilter",
    "TagFilter",
    "TagType",
    "TagValue",
    "CharValue",
    "IntValue",
    "FloatValue",
    "StringValue",
    "FilterValue",
    "convert_tag_value",
    "filter_from_dict",
    "filter_to_dict",
    "opposite",
    "AlignmentFileError",
    "BametricError",
    "CatalogIOError",
    "ConversionError",
    "NotFoundError",
    "SerializationError",
    "ValidationError",
]

DEFAULT_CATALOG_PATH = "bametric.json"
DEFAULT_THREADS = 1

log = logging.getLogger("bametric")


class FilterStatistics(NamedTuple):
    total: int
    passed: int

    @property
    def failed(self) -> int:
        return self.total - self.passed


def _alignment_file_mode(filepath: str, write: bool = False) -> str:
    # SAM output needs "h" to include the header.
    if filepath == "-":
        return "wh" if write else "r"
    extension = os.path.splitext(filepath)[1].lower()
    if extension == ".bam":
        return "wb" if write else "rb"
    if extension == ".sam":
        return "wh" if write else "r"
    raise AlignmentFileError(f"{filepath} is not a BAM or SAM file. Use a "
                             f".bam or .sam extension.")


def file_to_alignment_records(filepath: str, threads: int = DEFAULT_THREADS
                              ) -> Iterator[pysam.AlignedSegment]:
    """Parse a SAM or BAM file into a generator of AlignedSegment objects"""
    with pysam.AlignmentFile(filepath, _alignment_file_mode(filepath),
                             threads=threads) as record_h:
        yield from record_h


def filter_alignments(input_file: str, output_file: str, filter: Filter,
                      threads: int = DEFAULT_THREADS) -> FilterStatistics:
    """
    Write the records of input_file that pass filter to output_file.

    The file formats are determined by the file extensions (.bam or .sam).
    ``-`` reads from stdin and writes SAM to stdout. The output gets the
    header of the input.

    :param threads: Number of threads pysam may use for (de)compression.
    :returns: The number of processed and passed records.
    """
    if threads < 1:
        raise AlignmentFileError(
            "Number of threads must be greater than 0.")
    total = 0
    passed = 0
    with pysam.AlignmentFile(input_file, _alignment_file_mode(input_file),
                             threads=threads) as reader:
        with pysam.AlignmentFile(
                output_file, _alignment_file_mode(output_file, write=True),
                template=reader, threads=threads) as writer:
            for record in reader:
                total += 1
                if filter.apply_to(record):
                    passed += 1
                    writer.write(record)
    return FilterStatistics(total, passed)


def filter_alignment_files(input_files: List[str], output_files: List[str],
                           filter: Filter, threads: int = DEFAULT_THREADS
                           ) -> FilterStatistics:
    """
    Filter each input file into the output file at the same position.

    :param input_files: SAM or BAM input filenames.
    :param output_files: SAM or BAM output filenames, one for each input.
    :returns: The summed statistics over all files.
    """
    if len(input_files) != len(output_files):
        raise AlignmentFileError(
            "Number of inputs and outputs should be equal.")
    total = 0
    passed = 0
    for input_file, output_file in zip(input_files, output_files):
        log.info(f"Applying filter {filter.name} to {input_file}, "
                 f"writing to {output_file}.")
        statistics = filter_alignments(input_file, output_file, filter,
                                       threads)
        log.debug(f"{input_file}: {statistics.total} processed, "
                  f"{statistics.passed} passed.")
        total += statistics.total
        passed += statistics.passed
    return FilterStatistics(total, passed)


def init_catalog(catalog_path: str):
    save_catalog(Catalog(), catalog_path)
    log.info(f"Initialized BAMetric session at {catalog_path}")


def create_filter(catalog_path: str, filter_type: Type[Filter],
                  name: Optional[str] = None, **fields) -> Filter:
    """
    Construct a filter and store it in the catalog at catalog_path.

    When no name is given, one is generated from the filter type.
    """
    catalog = load_catalog(catalog_path)
    if name is None:
        name = catalog.unique_name(
            filter_type.model_fields["type"].default.lower())
    filter = filter_type(name=name, **fields)
    if name in catalog:
        log.warning(f"Overwriting existing filter {name}.")
    catalog.push(name, filter)
    save_catalog(catalog, catalog_path)
    log.info(f"Created {filter!r}")
    return filter


def combine_filters(catalog_path: str, filter1: str, operator: BoolOperator,
                    filter2: str, name: Optional[str] = None
                    ) -> CombinedFilter:
    """Store the combination of two catalog filters as a new filter."""
    catalog = load_catalog(catalog_path)
    first = catalog.get(filter1)
    second = catalog.get(filter2)
    if name is None:
        name = catalog.unique_name("combined")
    combined = CombinedFilter(name=name, filter1=first, filter2=second,
                              operator=operator)
    if name in catalog:
        log.warning(f"Overwriting existing filter {name}.")
    catalog.push(name, combined)
    save_catalog(catalog, catalog_path)
    log.info(f"Created {combined!r}")
    return combined


def import_filters(import_path: str, catalog_path: str) -> Catalog:
    """Replace the catalog with the filters stored at import_path."""
    try:
        catalog = load_catalog(import_path)
    except CatalogIOError as error:
        if isinstance(error.__cause__, FileNotFoundError):
            raise CatalogIOError(
                f"Import file {import_path} does not exist.") from error
        raise
    save_catalog(catalog, catalog_path)
    log.info(f"Imported {catalog.count()} filters from {import_path}.")
    return catalog


def export_filters(catalog_path: str, export_path: Optional[str] = None
                   ) -> Optional[str]:
    """
    Write the catalog to export_path. Without an export path the catalog
    is returned as JSON text instead.
    """
    catalog = load_catalog(catalog_path)
    if export_path is None:
        return catalog.to_json()
    save_catalog(catalog, export_path)
    log.info(f"Exported {catalog.count()} filters to {export_path}.")
    return None


def view_filters(catalog_path: str) -> List[str]:
    catalog = load_catalog(catalog_path)
    return [f"{name}: {filter!r}" for name, filter in
            sorted(catalog, key=lambda item: item[0])]


def initiate_logger(verbose: int = 0, quiet: int = 0):
    log_level = logging.INFO - 10 * (verbose - quiet)
    logger = logging.getLogger("bametric")
    logger.setLevel(log_level)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    formatter = logging.Formatter(
        "{asctime}:{levelname}:{name}: {message}",
        datefmt="%m/%d/%Y %I:%M:%S",
        style="{")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)


def _create_argument_parser(subparsers) -> None:
    parser = subparsers.add_parser(
        "create", help="Create a new filter.")
    parser.add_argument("-n", "--name",
                        help="Name of the filter. Generated from the filter "
                             "type when not given.")
    parser.add_argument("-o", "--opposite", action="store_true",
                        help="Invert the filter logic.")
    filters = parser.add_subparsers(dest="filter_type", required=True)

    length = filters.add_parser(
        "length", help="Create a filter based on read length.")
    length.add_argument("min_len", type=int,
                        help="Minimum read length (inclusive).")
    length.add_argument("max_len", type=int,
                        help="Maximum read length (inclusive).")

    mapq = filters.add_parser(
        "mapq", help="Create a filter based on mapping quality.")
    mapq.add_argument("min_mapq", type=int,
                      help="Minimum mapping quality (inclusive).")
    mapq.add_argument("max_mapq", type=int,
                      help="Maximum mapping quality (inclusive).")

    ref_name = filters.add_parser(
        "ref-name", help="Create a filter based on the reference.")
    ref_name.add_argument("ref_id", type=int,
                          help="Index of the reference in the header. "
                               "-1 for unmapped reads.")

    tag = filters.add_parser(
        "tag", help="Create a filter based on a tag:value pair.")
    tag.add_argument("tag_name", help="Two character tag name.")
    tag.add_argument("tag_type", choices=[t.value.lower() for t in TagType],
                     help="Tag value type.")
    tag.add_argument("tag_value",
                     help="Tag value. Chars can be given as a character or "
                          "as a byte number.")

    nucleotide = filters.add_parser(
        "nucleotide",
        help="Create a filter based on the identity of a nucleotide at a "
             "given position (e.g. G at the 1st position).")
    nucleotide.add_argument(
        "position", type=int,
        help="Position in the read to examine, 1-based. Positive values are "
             "relative to the start of the read (5'), negative values are "
             "relative to the end of the read (3').")
    nucleotide.add_argument("nucleotide", help="One of A, C, G, T or N.")
    nucleotide.add_argument("-w", "--n-is-wildcard", action="store_true",
                            help="Treat N in the read as a match to any "
                                 "nucleotide.")

    flag = filters.add_parser(
        "flag", help="Create a filter based on the bitwise SAM flags.")
    flag.add_argument("remove_flags", type=lambda x: int(x, 0),
                      help="Bitwise SAM flags. Reads that have at least one "
                           "of these flags set are removed. Hexadecimal "
                           "values such as 0x904 are accepted.")


def argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bametric")
    parser.description = "Create, combine and apply filters for SAM and " \
                         "BAM files."
    parser.add_argument("-p", "--bametric-path",
                        default=os.environ.get("BAMETRIC_PATH",
                                               DEFAULT_CATALOG_PATH),
                        help=f"Filter catalog file. Compressed catalogs are "
                             f"handled automatically. Default: "
                             f"$BAMETRIC_PATH or {DEFAULT_CATALOG_PATH}.")
    parser.add_argument("--verbose", action="count", default=0,
                        help="Report stats on individual files.")
    parser.add_argument("--quiet", action="count", default=0,
                        help="Turn of logging output.")
    parser.add_argument("--version", action="version",
                        version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Initiate a new filter catalog.")

    _create_argument_parser(subparsers)

    combine = subparsers.add_parser(
        "combine",
        help="Combine two existing filters using a boolean operator.")
    combine.add_argument("filter1", help="Name of the first filter.")
    combine.add_argument("operator", type=str.upper,
                         choices=[op.value for op in BoolOperator],
                         help="The boolean operator used for combining.")
    combine.add_argument("filter2", help="Name of the second filter.")
    combine.add_argument("-n", "--name",
                         help="Name of the combined filter. Generated when "
                              "not given.")

    apply = subparsers.add_parser(
        "apply", help="Apply a filter to SAM or BAM files.")
    apply.add_argument("filter_name", help="Name of the filter to apply.")
    apply.add_argument("input", nargs="+",
                       help="Input SAM or BAM files. Use - for stdin.")
    apply.add_argument("-o", "--output", action="append",
                       help="Output SAM or BAM files. Format determined by "
                            "file extension. Flag can be used multiple "
                            "times. An output must be given for each input. "
                            "Default: stdout.")
    apply.add_argument("-t", "--threads", type=int, default=DEFAULT_THREADS,
                       help=f"Number of threads used for BAM compression and "
                            f"decompression. Default: {DEFAULT_THREADS}.")

    import_parser = subparsers.add_parser(
        "import", help="Replace the catalog with filters from a JSON file.")
    import_parser.add_argument("import_path",
                               help="JSON file containing the filters.")

    export = subparsers.add_parser(
        "export", help="Export the catalog to a JSON file.")
    export.add_argument("export_path", nargs="?",
                        help="Destination file. Printed to stdout when not "
                             "given.")

    subparsers.add_parser("view", help="View the list of defined filters.")
    return parser


def _create_from_args(args: argparse.Namespace, catalog_path: str) -> Filter:
    common = dict(name=args.name, opposite=args.opposite)
    if args.filter_type == "length":
        return create_filter(catalog_path, LengthFilter, min_len=args.min_len,
                             max_len=args.max_len, **common)
    if args.filter_type == "mapq":
        return create_filter(catalog_path, MapqFilter,
                             min_mapq=args.min_mapq, max_mapq=args.max_mapq,
                             **common)
    if args.filter_type == "ref-name":
        return create_filter(catalog_path, RefNameFilter,
                             ref_id=args.ref_id, **common)
    if args.filter_type == "tag":
        tag_value = convert_tag_value(args.tag_type, args.tag_value)
        return create_filter(catalog_path, TagFilter, tag_name=args.tag_name,
                             tag_value=tag_value, **common)
    if args.filter_type == "nucleotide":
        return create_filter(catalog_path, NthNucleotideFilter,
                             position=args.position,
                             nucleotide=args.nucleotide,
                             n_is_wildcard=args.n_is_wildcard, **common)
    return create_filter(catalog_path, FlagFilter,
                         remove_flags=args.remove_flags, **common)


def _apply(args: argparse.Namespace, catalog_path: str):
    output = args.output if args.output else ["-"]
    filter = load_catalog(catalog_path).get(args.filter_name)
    log.info(f"input files: {', '.join(args.input)}")
    log.info(f"output files: {', '.join(output)}")
    log.info(f"{filter.name}: {filter!r}")

    statistics = filter_alignment_files(args.input, output, filter,
                                        args.threads)

    total = statistics.total
    if total:
        log.info(f"processed {total} reads.")
        log.info(f"passed: {statistics.passed} "
                 f"({statistics.passed * 100 / total :.2f}%)")
        log.info(f"failed: {statistics.failed} "
                 f"({statistics.failed * 100 / total :.2f}%)")
    else:
        log.warning("No reads were processed.")


def main():
    args = argument_parser().parse_args()
    catalog_path = args.bametric_path

    initiate_logger(args.verbose, args.quiet)

    try:
        if args.command == "init":
            init_catalog(catalog_path)
        elif args.command == "create":
            _create_from_args(args, catalog_path)
        elif args.command == "combine":
            combine_filters(catalog_path, args.filter1,
                            BoolOperator(args.operator), args.filter2,
                            name=args.name)
        elif args.command == "apply":
            _apply(args, catalog_path)
        elif args.command == "import":
            import_filters(args.import_path, catalog_path)
        elif args.command == "export":
            exported = export_filters(catalog_path, args.export_path)
            if exported is not None:
                print(exported)
        elif args.command == "view":
            for line in view_filters(catalog_path):
                print(line)
    except BametricError as error:
        log.error(str(error))
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover
    main()
