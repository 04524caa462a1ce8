"""
Command line options for mmd2excalidraw.
"""

import argparse
import math
import re
from dataclasses import dataclass, field
from typing import List, NoReturn, Optional, Sequence, Union

from conversion_errors import MissingInputError, UnknownOptionError, UsageError


DEFAULTS = {
    "font_size": 16,
    "curve": "linear",
    "max_edges": 500,
    "max_text_size": 50000,
}

CURVES = ("linear", "basis")

HELP_TEXT = f"""Usage:
  mmd2excalidraw <input> [output]

Options:
  -o, --output <path>       Output file or directory
  --font-size <number>      Mermaid font size (default: {DEFAULTS["font_size"]})
  --curve <linear|basis>    Mermaid flowchart curve (default: {DEFAULTS["curve"]})
  --max-edges <number>      Max edges (default: {DEFAULTS["max_edges"]})
  --max-text-size <number>  Max text size (default: {DEFAULTS["max_text_size"]})
  -h, --help                Show this help

Notes:
  Requires Playwright with Chromium installed:
  python scripts/setup.py

Examples:
  mmd2excalidraw docs/architecture/service-overview.mmd
  mmd2excalidraw docs/architecture -o docs/architecture
"""

Number = Union[int, float]
LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


def lenient_int(raw: str) -> Number:
    """Read the leading integer of ``raw``; NaN when there is none."""
    match = LEADING_INT_RE.match(raw or "")
    if not match:
        return float("nan")
    return int(match.group(1))


def is_positive_int(value: Number) -> bool:
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return value > 0


@dataclass(frozen=True)
class ConversionOptions:
    font_size: Number = DEFAULTS["font_size"]
    curve: str = DEFAULTS["curve"]
    max_edges: Number = DEFAULTS["max_edges"]
    max_text_size: Number = DEFAULTS["max_text_size"]

    def validate(self) -> "ConversionOptions":
        for flag, value in (
            ("--font-size", self.font_size),
            ("--max-edges", self.max_edges),
            ("--max-text-size", self.max_text_size),
        ):
            if not is_positive_int(value):
                shown = "NaN" if isinstance(value, float) and math.isnan(value) else value
                raise UsageError(f"{flag} must be a positive integer (got {shown})")
        if self.curve not in CURVES:
            raise UsageError(f"--curve must be one of {', '.join(CURVES)} (got {self.curve})")
        return self

    def to_payload(self) -> dict:
        return {
            "fontSize": self.font_size,
            "curve": self.curve,
            "maxEdges": self.max_edges,
            "maxTextSize": self.max_text_size,
        }

    def to_args(self) -> List[str]:
        return [
            "--font-size", str(self.font_size),
            "--curve", self.curve,
            "--max-edges", str(self.max_edges),
            "--max-text-size", str(self.max_text_size),
        ]


@dataclass(frozen=True)
class ParsedArgs:
    input: str
    output: Optional[str] = None
    options: ConversionOptions = field(default_factory=ConversionOptions)


class OptionParser(argparse.ArgumentParser):
    """ArgumentParser that raises UsageError instead of exiting."""

    def error(self, message: str) -> NoReturn:
        raise UsageError(message)

    def print_help(self, file=None) -> None:
        print(HELP_TEXT, file=file)


def build_parser() -> OptionParser:
    parser = OptionParser(prog="mmd2excalidraw", add_help=False, allow_abbrev=False)
    parser.add_argument("-h", "--help", action="help", default=argparse.SUPPRESS)
    parser.add_argument("-o", "--output", dest="output_flag")
    parser.add_argument("--font-size", type=lenient_int, default=DEFAULTS["font_size"])
    parser.add_argument("--curve", choices=CURVES, default=DEFAULTS["curve"])
    parser.add_argument("--max-edges", type=lenient_int, default=DEFAULTS["max_edges"])
    parser.add_argument("--max-text-size", type=lenient_int, default=DEFAULTS["max_text_size"])
    parser.add_argument("input", nargs="?")
    parser.add_argument("output", nargs="?")
    return parser


def parse_args(argv: Sequence[str]) -> ParsedArgs:
    parser = build_parser()
    args, extras = parser.parse_known_intermixed_args(list(argv))

    for token in extras:
        if token.startswith("--"):
            raise UnknownOptionError(token)
    if extras:
        raise UsageError(f"Unexpected argument: {extras[0]}")

    if args.input is None:
        parser.print_help()
        raise MissingInputError()

    options = ConversionOptions(
        font_size=args.font_size,
        curve=args.curve,
        max_edges=args.max_edges,
        max_text_size=args.max_text_size,
    )
    output = args.output_flag if args.output_flag is not None else args.output
    return ParsedArgs(input=args.input, output=output, options=options)
