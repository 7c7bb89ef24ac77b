"""
Snapshot codec: RosterState <-> compact text token.

RosterState -> JSON -> UTF-8 -> URL-safe base64 (padding stripped), so the
token can be dropped into a locator fragment and shared.
"""

import base64
import binascii
import json

from pydantic import ValidationError as PydanticValidationError

from ..errors import DecodeError
from .schema import RosterState


def encode_state(state: RosterState) -> str:
    """Encode a roster snapshot into a locator-safe token."""
    payload = json.dumps(state.to_wire(), separators=(",", ":"), ensure_ascii=False)
    token = base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")
    return token.rstrip("=")


def decode_state(token: str) -> RosterState:
    """
    Decode a token produced by encode_state.

    Accepts a leading '#' (a raw locator fragment). Raises DecodeError for
    anything that is not a complete, well-shaped snapshot.
    """
    if token.startswith("#"):
        token = token[1:]
    token = token.strip()
    if not token:
        raise DecodeError("Empty snapshot token")

    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise DecodeError(f"Snapshot token is not valid encoded JSON: {e}") from e

    return parse_snapshot(data)


def parse_snapshot(data: object) -> RosterState:
    """Validate decoded JSON against the persisted shape."""
    if not isinstance(data, dict):
        raise DecodeError("Snapshot is not an object")
    if not isinstance(data.get("players"), list) or not isinstance(data.get("historyLog"), list):
        raise DecodeError("Snapshot must contain 'players' and 'historyLog' lists")

    try:
        return RosterState.model_validate(data)
    except PydanticValidationError as e:
        raise DecodeError(f"Snapshot records are malformed: {e.error_count()} error(s)") from e
