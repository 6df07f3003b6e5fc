"""Compact, URL-safe encoding of a whole exchange configuration.

A token is a single format-version character followed by URL-safe base64
(no padding) of zlib-compressed text in the form::

    names;budget;event_date;match_indices

e.g. ``Ana,Bo,Cy;25;2025-12-25;0,1,1,2,2,0``. Matches are stored as
``giver_index,receiver_index`` pairs pointing into the name list, so each
name appears once.
"""

from __future__ import annotations

import base64
import binascii
import logging
import math
import re
import zlib
from datetime import date
from typing import Dict, List, Optional

from models import Configuration, Match, Number, Participant

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1"

FIELD_SEP = ";"
ITEM_SEP = ","

COMPRESSION_LEVEL = 9

# Upper bound on inflated text; real exchanges are a few hundred bytes.
MAX_TEXT_BYTES = 64 * 1024

_TOKEN_BODY_RE = re.compile(r"[A-Za-z0-9_-]+")
_INDEX_RE = re.compile(r"[0-9]+")
_INT_RE = re.compile(r"-?[0-9]+")
_FLOAT_RE = re.compile(r"-?[0-9]+(\.[0-9]+)?(e[+-]?[0-9]+)?")


class DecodeError(ValueError):
    """The token is malformed, truncated or has been tampered with."""


# --- Encoding ---------------------------------------------------------------


def _is_iso_date(text: str) -> bool:
    try:
        date.fromisoformat(text)
    except (TypeError, ValueError):
        return False
    return True


def _pairing_problem(indices: List[int], count: int) -> Optional[str]:
    """Describe why flat giver/receiver indices are not a derangement."""
    givers = indices[0::2]
    receivers = indices[1::2]
    if sorted(givers) != list(range(count)):
        return "Every participant must give exactly once"
    if sorted(receivers) != list(range(count)):
        return "Every participant must receive exactly once"
    if any(g == r for g, r in zip(givers, receivers)):
        return "Nobody may be matched with themselves"
    return None


def _format_prize(value: Number) -> str:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Prize value must be a number, got {value!r}")
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Prize value must be finite, got {value!r}")
        return repr(value)
    return str(value)


def _to_compact_text(config: Configuration) -> str:
    names = config.names
    if not names:
        raise ValueError("A configuration needs at least one participant")

    for name in names:
        if not name:
            raise ValueError("Participant names must not be empty")
        if FIELD_SEP in name or ITEM_SEP in name:
            raise ValueError(
                f"Participant name {name!r} must not contain "
                f"{ITEM_SEP!r} or {FIELD_SEP!r}"
            )

    name_to_index: Dict[str, int] = {name: idx for idx, name in enumerate(names)}
    if len(name_to_index) != len(names):
        raise ValueError("Participant names must be unique")

    if not _is_iso_date(config.event_date):
        raise ValueError(f"Invalid event date {config.event_date!r}")

    if len(config.matches) != len(names):
        raise ValueError(
            f"Expected {len(names)} matches, got {len(config.matches)}"
        )

    indices: List[int] = []
    for match in config.matches:
        for name in (match.giver, match.receiver):
            if name not in name_to_index:
                raise ValueError(f"Match refers to unknown participant {name!r}")
            indices.append(name_to_index[name])

    problem = _pairing_problem(indices, len(names))
    if problem:
        raise ValueError(problem)

    return FIELD_SEP.join(
        [
            ITEM_SEP.join(names),
            _format_prize(config.prize_value),
            config.event_date,
            ITEM_SEP.join(str(i) for i in indices),
        ]
    )


def _to_base64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def encode_config(config: Configuration) -> str:
    """Return the URL-safe token for ``config``.

    Raises ``ValueError`` when the configuration could not be decoded back
    to an equal value (empty or duplicate names, separators inside names or
    the date, matches naming non-participants, a non-numeric budget).
    """
    text = _to_compact_text(config)
    compressed = zlib.compress(text.encode("utf-8"), COMPRESSION_LEVEL)
    token = FORMAT_VERSION + _to_base64url(compressed)
    logger.debug(
        "Encoded %d participants: %d chars of text -> %d char token",
        len(config.participants),
        len(text),
        len(token),
    )
    return token


# --- Decoding ---------------------------------------------------------------


def _from_base64url(body: str) -> bytes:
    if not _TOKEN_BODY_RE.fullmatch(body):
        raise DecodeError("Token contains characters outside the URL-safe alphabet")
    if len(body) % 4 == 1:
        raise DecodeError("Token has an impossible length")

    padded = body + "=" * (-len(body) % 4)
    try:
        data = base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError("Token is not valid base64") from exc

    # Reject tokens whose unused trailing bits were altered.
    if _to_base64url(data) != body:
        raise DecodeError("Token is not canonically encoded")
    return data


def _decompress(data: bytes) -> str:
    inflater = zlib.decompressobj()
    try:
        raw = inflater.decompress(data, MAX_TEXT_BYTES)
    except zlib.error as exc:
        raise DecodeError("Compressed payload is corrupt") from exc

    if not inflater.eof:
        if inflater.unconsumed_tail or len(raw) >= MAX_TEXT_BYTES:
            raise DecodeError("Decompressed payload is too large")
        raise DecodeError("Compressed payload is truncated")
    if inflater.unused_data:
        raise DecodeError("Unexpected data after compressed payload")

    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError("Payload is not valid UTF-8") from exc


def _parse_prize(text: str) -> Number:
    try:
        if _INT_RE.fullmatch(text):
            return int(text)
        if _FLOAT_RE.fullmatch(text):
            value = float(text)
            if math.isfinite(value):
                return value
    except ValueError as exc:
        # int() refuses very long digit strings
        raise DecodeError(f"Invalid prize value {text!r}") from exc
    raise DecodeError(f"Invalid prize value {text!r}")


def _parse_indices(text: str, count: int) -> List[int]:
    items = text.split(ITEM_SEP)
    if len(items) % 2:
        raise DecodeError("Match index list has an odd number of entries")

    indices = []
    for item in items:
        if not _INDEX_RE.fullmatch(item) or len(item) > len(str(count)):
            raise DecodeError(f"Invalid match index {item!r}")
        index = int(item)
        if index >= count:
            raise DecodeError(f"Match index {index} out of range for {count} names")
        indices.append(index)
    return indices


def _from_compact_text(text: str) -> Configuration:
    parts = text.split(FIELD_SEP)
    if len(parts) != 4:
        raise DecodeError(f"Expected 4 fields, found {len(parts)}")
    names_field, prize_field, event_date, indices_field = parts

    names = names_field.split(ITEM_SEP)
    if any(not name for name in names):
        raise DecodeError("Empty participant name")
    if len(set(names)) != len(names):
        raise DecodeError("Duplicate participant name")

    prize_value = _parse_prize(prize_field)

    if not event_date:
        raise DecodeError("Missing event date")
    try:
        date.fromisoformat(event_date)
    except ValueError as exc:
        raise DecodeError(f"Invalid event date {event_date!r}") from exc

    indices = _parse_indices(indices_field, len(names))
    if len(indices) != 2 * len(names):
        raise DecodeError(
            f"Expected {len(names)} matches, found {len(indices) // 2}"
        )

    problem = _pairing_problem(indices, len(names))
    if problem:
        raise DecodeError(problem)

    matches = [
        Match(giver=names[indices[i]], receiver=names[indices[i + 1]])
        for i in range(0, len(indices), 2)
    ]
    return Configuration(
        participants=[Participant(name) for name in names],
        prize_value=prize_value,
        event_date=event_date,
        matches=matches,
    )


def decode_config(token: str) -> Configuration:
    """Rebuild the configuration carried by ``token``.

    Raises ``DecodeError`` for anything that is not a token produced by
    ``encode_config``; the original failure is chained as ``__cause__``.
    """
    if not isinstance(token, str) or not token:
        raise DecodeError("Empty token")

    version, body = token[0], token[1:]
    if version != FORMAT_VERSION:
        raise DecodeError(f"Unsupported token format version {version!r}")

    return _from_compact_text(_decompress(_from_base64url(body)))
