#!/usr/bin/env python3
"""
Decode a captured InvokeAgent response body offline.

Reads the raw bytes (e.g. saved with curl --output) and prints the decoder trace
followed by the final answer. Useful when the agent's output format changes.

Run from project root:

    python scripts/decode_stream.py response.bin
    python scripts/decode_stream.py response.bin --answer-only
"""

import argparse
import sys
from pathlib import Path

# Project root on path so "chatbridge" resolves
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from chatbridge.services.eventstream import decode_response


def main() -> None:
    parser = argparse.ArgumentParser(description="Decode a captured Bedrock agent event-stream body.")
    parser.add_argument("path", type=Path, help="File holding the raw response body.")
    parser.add_argument(
        "--answer-only",
        action="store_true",
        help="Print only the decoded answer, not the trace.",
    )
    args = parser.parse_args()

    result = decode_response(args.path.read_bytes())
    if not args.answer_only:
        print(result.trace_text)
        print("-" * 40)
    print(result.answer)


if __name__ == "__main__":
    main()
