"""
Replay captured CSC Measurement notifications through the decoder. Use this to check speed/cadence output
for a recorded session without a sensor in range.

Input lines look like ``<arrival ms> <payload hex>``, e.g.

    1000 03-00-00-00-00-00-00-3c-00-00-f0
"""

import argparse
import logging
import re
import sys
from typing import Iterable, Iterator, Optional, Sequence, TextIO, Tuple

from csc_measurement import DecoderConfig, MalformedPayload, Measurement, MeasurementDecoder


_HEX_SEPARATORS = re.compile(r"[\s:\-]")


def parse_line(line: str) -> Optional[Tuple[float, bytes]]:
    """Returns (now_ms, payload), or None for blank and comment lines."""
    line = line.split("#", 1)[0].strip()
    if not line:
        return None

    stamp, *rest = line.split(None, 1)
    hex_part = rest[0] if rest else ""
    payload = bytes.fromhex(_HEX_SEPARATORS.sub("", hex_part))
    return float(stamp), payload


def format_measurement(m: Measurement) -> str:
    parts = []
    if m.speed is not None:
        parts.append(f"Speed: {m.speed:6.2f} km/h")
    if m.cadence is not None:
        parts.append(f"Cadence: {m.cadence:3d} rpm")
    return " | ".join(parts) or "-"


def replay(lines: Iterable[str], decoder: MeasurementDecoder, err: Optional[TextIO] = None) -> Iterator[Measurement]:
    if err is None:
        err = sys.stderr
    for number, line in enumerate(lines, 1):
        try:
            parsed = parse_line(line)
        except ValueError as e:
            print(f"line {number}: cannot parse {line.strip()!r}: {e}", file=err)
            continue
        if parsed is None:
            continue

        now_ms, payload = parsed
        try:
            yield decoder.decode(payload, now_ms)
        except MalformedPayload as e:
            print(f"line {number}: {e}", file=err)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Decode recorded CSC Measurement notifications.")
    parser.add_argument("file", nargs="?", type=argparse.FileType("r"), default=sys.stdin)
    parser.add_argument("--wheel-circumference", type=float, default=DecoderConfig.wheel_circumference)
    parser.add_argument("--cutoff", type=int, default=DecoderConfig.cutoff)
    parser.add_argument("--max-still-time", type=float, default=DecoderConfig.max_still_time_ms)
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    decoder = MeasurementDecoder(
        DecoderConfig(
            wheel_circumference=args.wheel_circumference,
            cutoff=args.cutoff,
            max_still_time_ms=args.max_still_time,
        )
    )

    with args.file:
        for measurement in replay(args.file, decoder):
            print(format_measurement(measurement), flush=True)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
