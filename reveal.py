"""Participant side of a shareable link.

A participant picks their own name from the decoded configuration and is
shown who they buy for. The "already revealed" record lives in a store the
caller passes in (a browser cookie jar, a JSON file, a plain dict), keyed by
``REVEALED_KEY`` and dropped once it expires at the end of the event day.
"""

from __future__ import annotations

import json
import logging
import pathlib
from dataclasses import asdict, dataclass
from datetime import date, datetime, time
from typing import Dict, List, MutableMapping, Optional

from models import Configuration, Match

logger = logging.getLogger(__name__)

REVEALED_KEY = "secret_santa_revealed"

# Reveals stay valid until the last second of the event day.
EXPIRY_TIME = time(23, 59, 59)


class AssignmentNotFound(LookupError):
    """The chosen name has no match in the configuration."""


@dataclass(frozen=True)
class RevealedGift:
    participant: str
    receiver: str
    revealed_at: datetime
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now()) >= self.expires_at

    def to_json(self) -> str:
        record = asdict(self)
        record["revealed_at"] = self.revealed_at.isoformat()
        record["expires_at"] = self.expires_at.isoformat()
        return json.dumps(record, separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: str) -> "RevealedGift":
        record = json.loads(raw)
        return cls(
            participant=record["participant"],
            receiver=record["receiver"],
            revealed_at=datetime.fromisoformat(record["revealed_at"]),
            expires_at=datetime.fromisoformat(record["expires_at"]),
        )


def participant_choices(config: Configuration) -> List[str]:
    """Names to offer on the "who are you?" list, alphabetically."""
    return sorted(config.names)


def find_match(config: Configuration, name: str) -> Match:
    for match in config.matches:
        if match.giver == name:
            return match
    raise AssignmentNotFound(
        f"Could not find an assignment for {name!r}; please contact the organizer."
    )


def expiry_for(event_date: str) -> datetime:
    return datetime.combine(date.fromisoformat(event_date), EXPIRY_TIME)


def reveal(
    config: Configuration, name: str, now: Optional[datetime] = None
) -> RevealedGift:
    match = find_match(config, name)
    return RevealedGift(
        participant=match.giver,
        receiver=match.receiver,
        revealed_at=now or datetime.now(),
        expires_at=expiry_for(config.event_date),
    )


# --- Revealed-state store ---------------------------------------------------


def save_revealed(store: MutableMapping[str, str], revealed: RevealedGift) -> None:
    store[REVEALED_KEY] = revealed.to_json()


def clear_revealed(store: MutableMapping[str, str]) -> None:
    store.pop(REVEALED_KEY, None)


def load_revealed(
    store: MutableMapping[str, str], now: Optional[datetime] = None
) -> Optional[RevealedGift]:
    """Return the stored reveal, or ``None`` when there is none.

    Expired and unreadable records are removed from ``store``.
    """
    raw = store.get(REVEALED_KEY)
    if raw is None:
        return None

    try:
        revealed = RevealedGift.from_json(raw)
    except (ValueError, KeyError, TypeError):
        logger.warning("Discarding unreadable revealed-gift record")
        clear_revealed(store)
        return None

    if revealed.is_expired(now):
        logger.info("Revealed-gift record for %s expired", revealed.participant)
        clear_revealed(store)
        return None
    return revealed


# --- JSON file backing ------------------------------------------------------


def read_state(path: pathlib.Path) -> Dict[str, str]:
    """Load a store saved by ``write_state``; a missing file is an empty store.

    A file that is not a JSON object of strings is treated like a cleared
    cookie jar: it is reported and ignored.
    """
    if not path.exists():
        return {}

    with path.open("r", encoding="utf-8") as f:
        try:
            state = json.load(f)
        except ValueError:
            logger.warning("Ignoring unreadable state file %s", path)
            return {}

    if not isinstance(state, dict) or not all(
        isinstance(v, str) for v in state.values()
    ):
        logger.warning("Ignoring malformed state file %s", path)
        return {}
    return state


def write_state(path: pathlib.Path, store: MutableMapping[str, str]) -> None:
    with path.open("w", encoding="utf-8") as f:
        json.dump(dict(store), f, indent=2, ensure_ascii=False)
