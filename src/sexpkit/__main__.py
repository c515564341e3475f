"""CLI entry point: `sexpkit check FILE`, `sexpkit fmt FILE` or `python -m sexpkit ...`."""

import logging
import sys
from pathlib import Path
from typing import List, Optional


def main(argv: Optional[List[str]] = None) -> int:
    import argparse
    from .sexp.parser import Parser
    from .sexp.printer import to_string, to_string_hum
    from .shared.errors import ErrorReporter, SexpError
    from .utils.config import DEFAULT_HUM_WIDTH
    from .utils.io_utils import read_source_file

    parser = argparse.ArgumentParser(prog="sexpkit", description="Check or reformat S-expression files.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    check = commands.add_parser("check", help="Parse every top-level form and report the first error")
    check.add_argument("file", type=Path, help="Path to S-expression file")

    fmt = commands.add_parser("fmt", help="Reprint every top-level form")
    fmt.add_argument("file", type=Path, help="Path to S-expression file")
    fmt.add_argument("--hum", action="store_true", help="Indented layout instead of one form per line")
    fmt.add_argument("--width", type=int, default=DEFAULT_HUM_WIDTH,
                     help=f"Line width for --hum (default: {DEFAULT_HUM_WIDTH})")
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    path = args.file.resolve()
    if not path.exists():
        sys.stderr.write(f"sexpkit: error: file not found: {path}\n")
        return 1
    if not path.is_file():
        sys.stderr.write(f"sexpkit: error: not a file: {path}\n")
        return 1

    try:
        source = read_source_file(path)
    except (OSError, UnicodeDecodeError) as e:
        sys.stderr.write(f"sexpkit: error: could not read file: {e}\n")
        return 1

    forms = []
    try:
        for sexp in Parser(str(path)).iter_parse(source):
            forms.append(sexp)
    except SexpError as e:
        reporter = ErrorReporter({str(path): source})
        reporter.report_exception(e)
        sys.stderr.write(reporter.format_all_errors() + "\n")
        return 1

    if args.command == "check":
        sys.stdout.write(f"{path.name}: {len(forms)} form{'s' if len(forms) != 1 else ''} ok\n")
        return 0

    for sexp in forms:
        text = to_string_hum(sexp, width=args.width) if args.hum else to_string(sexp)
        sys.stdout.write(text + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
