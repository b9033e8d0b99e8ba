#!/usr/bin/env python3
import argparse
import locale
import os
import sys
from dataclasses import dataclass
from typing import List, Mapping, NamedTuple, Optional, Tuple

from csv_manifest import write_manifest

locale.setlocale(locale.LC_ALL, "")  # Use '' for auto, or force e.g. to 'en_US.UTF-8'

CSV_SUFFIX = ".csv"
INPUT_ENV = "INPUT_CSV_DIR"
OUTPUT_ENV = "OUTPUT_CSV_DIR"
DEFAULT_INPUT_DIR = "/workspace/input"
DEFAULT_OUTPUT_DIR = "/workspace/output"


@dataclass(frozen=True)
class Config:
    input_dir: str
    output_dir: str
    debug: bool = False


class FileResult(NamedTuple):
    input_path: str
    output_path: str
    newlines_flattened: int


def flatten_newlines_with_count(csv_text: str) -> Tuple[str, int]:
    """Replace newlines inside quoted fields with spaces.

    CloudWatch log exports often carry multiline messages in a single field,
    which downstream CSV readers treat as record breaks. Newlines outside
    quotes are row separators and are kept. An escaped quote (``""``) inside
    a field is copied as is and does not end the field.

    Args:
        csv_text (str): Entire text of one CSV file.

    Returns:
        Tuple[str, int]: Flattened text and number of embedded newlines replaced.
    """
    result = []
    inside_quote = False
    flattened = 0
    i = 0
    length = len(csv_text)
    while i < length:
        ch = csv_text[i]
        nxt = csv_text[i + 1] if i + 1 < length else ""
        if ch == '"':
            if inside_quote and nxt == '"':
                result.append('""')
                i += 2
                continue
            inside_quote = not inside_quote
            result.append(ch)
        elif inside_quote and ch in "\r\n":
            if ch == "\r" and nxt == "\n":
                i += 1
            result.append(" ")
            flattened += 1
        else:
            result.append(ch)
        i += 1
    return "".join(result), flattened


def flatten_newlines(csv_text: str) -> str:
    """Return csv_text with newlines inside quoted fields replaced by spaces."""
    return flatten_newlines_with_count(csv_text)[0]


def is_csv_name(name: str) -> bool:
    return name.lower().endswith(CSV_SUFFIX)


def process_directory(
    input_dir: str, output_dir: str, debug: bool = False
) -> List[FileResult]:
    """Flatten every csv under input_dir into the matching path under output_dir.

    The directory structure is mirrored and directories are created before
    anything beneath them is written. Files without a .csv suffix, symlinks and
    other special entries are skipped. Bytes that are not valid UTF-8
    are replaced with U+FFFD. Other I/O errors are not caught.

    Args:
        input_dir (str): Existing directory to read from.
        output_dir (str): Directory to write to. Created by the caller for the root.
        debug (bool, optional): Print skipped entries. Defaults to False.

    Returns:
        List[FileResult]: Processed files in processing order.
    """
    results = []
    # listed up front so no directory handle stays open across recursion
    with os.scandir(input_dir) as it:
        entries = list(it)
    for entry in entries:
        in_path = os.path.join(input_dir, entry.name)
        out_path = os.path.join(output_dir, entry.name)
        if entry.is_dir(follow_symlinks=False):
            if not os.path.isdir(out_path):
                os.makedirs(out_path, exist_ok=True)
            results.extend(process_directory(in_path, out_path, debug))
        elif entry.is_file(follow_symlinks=False) and is_csv_name(entry.name):
            print(f"Processing: {in_path}")
            # undecodable bytes become U+FFFD instead of stopping the batch
            with open(
                in_path, mode="r", encoding="utf-8", errors="replace", newline=""
            ) as infile:
                csv_raw = infile.read()
            flattened, count = flatten_newlines_with_count(csv_raw)
            with open(out_path, mode="w", encoding="utf-8", newline="") as outfile:
                outfile.write(flattened)
            print(f"Output: {out_path}")
            results.append(FileResult(in_path, out_path, count))
        elif debug:
            print(f"Skipping: {in_path}")
    return results


def process_tree(config: Config) -> List[FileResult]:
    """Run process_directory on the roots in config."""
    return process_directory(config.input_dir, config.output_dir, config.debug)


def resolve_config(
    input_dir: Optional[str] = None,
    output_dir: Optional[str] = None,
    debug: bool = False,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """Resolve input and output roots.

    Each root is taken from the explicit argument, else the INPUT_CSV_DIR or
    OUTPUT_CSV_DIR environment variable, else /workspace/input or
    /workspace/output.

    Args:
        input_dir (str, optional): Explicit input root.
        output_dir (str, optional): Explicit output root.
        debug (bool, optional): Print debug messages. Defaults to False.
        environ (Mapping[str, str], optional): Environment to consult. Defaults to os.environ.

    Returns:
        Config: Configuration with absolute paths.
    """
    if environ is None:
        environ = os.environ
    if input_dir is None:
        input_dir = environ.get(INPUT_ENV, DEFAULT_INPUT_DIR)
    if output_dir is None:
        output_dir = environ.get(OUTPUT_ENV, DEFAULT_OUTPUT_DIR)
    return Config(
        input_dir=os.path.abspath(input_dir),
        output_dir=os.path.abspath(output_dir),
        debug=debug,
    )


def run(
    input_dir: Optional[str] = None,
    output_dir: Optional[str] = None,
    debug: bool = False,
    manifest: Optional[str] = None,
) -> List[FileResult]:
    """Flatten all csv files from the input root into the output root.

    Exits with status 1 if the input root does not exist.

    Args:
        input_dir (str, optional): Input root. See resolve_config.
        output_dir (str, optional): Output root. See resolve_config.
        debug (bool, optional): Print debug messages. Defaults to False.
        manifest (str, optional): Path of a manifest csv to write. Defaults to None.

    Returns:
        List[FileResult]: Processed files.
    """
    config = resolve_config(input_dir, output_dir, debug)
    if config.debug:
        print(config)
    if not os.path.isdir(config.input_dir):
        print(f"Error: input directory not found: {config.input_dir}", file=sys.stderr)
        sys.exit(1)
    if not os.path.isdir(config.output_dir):
        os.makedirs(config.output_dir, exist_ok=True)

    results = process_tree(config)

    if manifest:
        rows = write_manifest(results, manifest)
        print(f"Wrote {rows:n} rows into {manifest}")
    print(f"Processed {len(results):n} CSV files")
    print("=== Finished ===")
    return results


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description=f"Replace newlines inside quoted csv fields with spaces. Every csv file under the input directory is written to the same relative path under the output directory. Directories default to ${INPUT_ENV} and ${OUTPUT_ENV}, then {DEFAULT_INPUT_DIR} and {DEFAULT_OUTPUT_DIR}."
    )
    parser.add_argument(
        "-i",
        "--input",
        action="store",
        help=f"Path to the input directory. Overrides ${INPUT_ENV}.",
    )
    parser.add_argument(
        "-o",
        "--output",
        action="store",
        help=f"Path to the output directory. Overrides ${OUTPUT_ENV}.",
    )
    parser.add_argument(
        "-m",
        "--manifest",
        action="store",
        help="Write a csv listing each processed file and how many newlines were flattened.",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Print debug messages.",
    )

    args = vars(parser.parse_args(argv))
    debug = args.get("debug")
    if debug:
        print(args)
    run(
        input_dir=args.get("input"),
        output_dir=args.get("output"),
        debug=debug,
        manifest=args.get("manifest"),
    )


if __name__ == "__main__":
    main()
