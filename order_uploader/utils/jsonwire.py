"""Canonical JSON encoding for request bodies.

The planner measures sizes with the same encoder the transport sends with,
so size estimates for encoded files are byte-exact.
"""
import json
from typing import Any


def dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=True)


def encode(value: Any) -> bytes:
    return dumps(value).encode("ascii")


def encoded_length(value: Any) -> int:
    return len(dumps(value))
