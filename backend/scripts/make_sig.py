#!/usr/bin/env python3
"""Print the x-paystack-signature for a payload, for poking the dispatcher by hand.

Usage:
    python scripts/make_sig.py <secret> '<payload json>'
"""

import json
import sys

from dispatcher.services.signature import compute_signature


def make_paystack_signature(secret: str, payload: str) -> str:
    # Sign exactly what will be sent; do not reformat the JSON.
    return compute_signature(payload.encode("utf-8"), secret)


def main(argv: list[str]) -> int:
    if len(argv) != 2:
        print("Usage: make_sig.py <secret> <payload>", file=sys.stderr)
        return 1

    secret, payload = argv
    try:
        json.loads(payload)
    except json.JSONDecodeError:
        print("Error: Payload must be valid JSON", file=sys.stderr)
        return 1

    print(make_paystack_signature(secret, payload))
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
