"""Secret Santa link generator.

Add participants, a budget and an event date, then run the script. It draws
the pairings and prints one link that carries the whole exchange; each
participant opens it, picks their own name and sees who they buy for.

    python santa.py create Ana Bo Cy --budget 25 --date 2025-12-25
    python santa.py reveal "<link>" --name Ana
"""

from __future__ import annotations

import argparse
import logging
import math
import pathlib
import random
import sys
from datetime import date, timedelta
from typing import List, Optional, Sequence
from urllib.parse import parse_qs, urlparse

from codec import DecodeError, decode_config, encode_config
from models import Configuration, Match, Number, Participant
from reveal import (
    AssignmentNotFound,
    RevealedGift,
    load_revealed,
    read_state,
    reveal,
    save_revealed,
    write_state,
)

logger = logging.getLogger(__name__)

# --- Configuration ---------------------------------------------------------

# Used by ``create`` when no names are given on the command line.
PARTICIPANTS: List[str] = []

DEFAULT_PRIZE_VALUE: Number = 25

# Default event date is two weeks from today.
DEFAULT_EVENT_OFFSET_DAYS = 14

# Shuffles to try before falling back to the adjacent-swap repair.
MAX_SHUFFLE_ATTEMPTS = 100

# Reveal page; the encoded exchange goes in the ``data`` query parameter.
BASE_URL = "https://example.com/secret-santa/"
QUERY_PARAM = "data"


class InsufficientParticipants(ValueError):
    """Fewer than two people were given to the matcher."""


# --- Pairing logic ---------------------------------------------------------


def _has_fixed_point(receivers: List[int]) -> bool:
    return any(giver == receiver for giver, receiver in enumerate(receivers))


def _repair_fixed_points(receivers: List[int]) -> None:
    # Positions are distinct, so swapping with the next one frees position i
    # without giving the neighbour its own slot.
    n = len(receivers)
    for i in range(n):
        if receivers[i] == i:
            j = (i + 1) % n
            receivers[i], receivers[j] = receivers[j], receivers[i]


def create_matches(participants: Sequence[Participant]) -> List[Match]:
    """Pair every participant with someone else, each receiving exactly once."""
    n = len(participants)
    if n < 2:
        raise InsufficientParticipants(
            f"Need at least 2 participants, got {n}"
        )

    receivers = list(range(n))
    for attempt in range(MAX_SHUFFLE_ATTEMPTS):
        random.shuffle(receivers)
        if not _has_fixed_point(receivers):
            logger.debug("Found derangement after %d shuffle(s)", attempt + 1)
            break
    else:
        logger.warning(
            "No derangement after %d shuffles; repairing by adjacent swaps",
            MAX_SHUFFLE_ATTEMPTS,
        )
        _repair_fixed_points(receivers)

    return [
        Match(giver=participants[i].name, receiver=participants[r].name)
        for i, r in enumerate(receivers)
    ]


def verify_matches(matches: Sequence[Match], participants: Sequence[Participant]) -> None:
    participant_set = {p.name for p in participants}
    giver_values = [m.giver for m in matches]
    recipient_values = [m.receiver for m in matches]
    giver_set = set(giver_values)
    recipient_set = set(recipient_values)

    issues = []

    missing_givers = participant_set - giver_set
    if missing_givers:
        issues.append(f"Missing givers: {sorted(missing_givers)}")

    missing_recipients = participant_set - recipient_set
    if missing_recipients:
        issues.append(f"Missing recipients: {sorted(missing_recipients)}")

    if len(giver_values) != len(giver_set):
        issues.append("Duplicate givers detected")

    if len(recipient_values) != len(recipient_set):
        issues.append("Duplicate recipients detected")

    extra = (giver_set | recipient_set) - participant_set
    if extra:
        issues.append(f"Unexpected names: {sorted(extra)}")

    selfish = sorted(m.giver for m in matches if m.giver == m.receiver)
    if selfish:
        issues.append(f"Self-assigned: {selfish}")

    if issues:
        raise ValueError("Match verification failed; " + "; ".join(issues))

    # Print a brief summary without revealing pairings.
    print(
        f"Verification passed: {len(giver_set)} givers matched to {len(recipient_set)} recipients."
    )


# --- Organizer flow --------------------------------------------------------


def default_event_date() -> str:
    return (date.today() + timedelta(days=DEFAULT_EVENT_OFFSET_DAYS)).isoformat()


def build_config(
    names: Sequence[str], prize_value: Number, event_date: str
) -> Configuration:
    """Validate the organizer's input and draw the matches."""
    cleaned = [name.strip() for name in names if name.strip()]
    if len(set(cleaned)) != len(cleaned):
        raise ValueError("Participant names must be unique.")

    if (
        isinstance(prize_value, bool)
        or not isinstance(prize_value, (int, float))
        or not math.isfinite(prize_value)
        or prize_value <= 0
    ):
        raise ValueError(f"Budget must be a positive number, got {prize_value!r}")

    # Raises ValueError for anything that is not YYYY-MM-DD.
    date.fromisoformat(event_date)

    participants = [Participant(name) for name in cleaned]
    matches = create_matches(participants)
    verify_matches(matches, participants)
    return Configuration(
        participants=participants,
        prize_value=prize_value,
        event_date=event_date,
        matches=matches,
    )


# --- Link generation -------------------------------------------------------


def build_shareable_url(config: Configuration, base_url: str = BASE_URL) -> str:
    return f"{base_url}?{QUERY_PARAM}={encode_config(config)}"


def token_from_url(url_or_token: str) -> str:
    """Accept either a full link or the bare token from its query string."""
    if "?" not in url_or_token and "://" not in url_or_token:
        return url_or_token

    values = parse_qs(urlparse(url_or_token).query).get(QUERY_PARAM)
    if not values:
        raise DecodeError(f"Link has no {QUERY_PARAM!r} parameter")
    return values[0]


# --- Entry point -----------------------------------------------------------


def _number(text: str) -> Number:
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {text!r}")


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create and open Secret Santa links."
    )
    commands = parser.add_subparsers(dest="command", required=True)

    create = commands.add_parser("create", help="draw pairings and print the link")
    create.add_argument("names", nargs="*", help="participant names")
    create.add_argument("--budget", type=_number, default=DEFAULT_PRIZE_VALUE)
    create.add_argument("--date", dest="event_date", default=None,
                        help="event date, YYYY-MM-DD (default: two weeks out)")
    create.add_argument("--base-url", default=BASE_URL)

    reveal_cmd = commands.add_parser("reveal", help="show one participant's assignment")
    reveal_cmd.add_argument("link", help="shareable link or its data token")
    reveal_cmd.add_argument("--name", required=True, help="your name as listed")
    reveal_cmd.add_argument("--state", type=pathlib.Path, default=None,
                            help="JSON file remembering an earlier reveal")

    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def _create(args: argparse.Namespace) -> None:
    names = args.names or PARTICIPANTS
    try:
        config = build_config(names, args.budget, args.event_date or default_event_date())
        url = build_shareable_url(config, args.base_url)
    except InsufficientParticipants:
        print("Please add at least 2 participants!", file=sys.stderr)
        sys.exit(2)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)

    print(url)


def _print_revealed(revealed: RevealedGift, config: Configuration) -> None:
    print(f"Hello, {revealed.participant}! You're buying a gift for: {revealed.receiver}")
    print(f"Event date: {config.event_date}  Budget: ${config.prize_value}")


def _reveal(args: argparse.Namespace) -> None:
    try:
        config = decode_config(token_from_url(args.link))
    except DecodeError as exc:
        logger.debug("Could not decode link: %s", exc)
        print(
            "This Secret Santa link appears to be invalid or corrupted. "
            "Please contact the organizer for a new link.",
            file=sys.stderr,
        )
        sys.exit(1)

    store = read_state(args.state) if args.state else {}
    revealed = load_revealed(store)
    if revealed is not None:
        print(f"You already revealed your assignment as {revealed.participant}.")
    else:
        try:
            revealed = reveal(config, args.name)
        except AssignmentNotFound as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        save_revealed(store, revealed)

    if args.state:
        write_state(args.state, store)
    _print_revealed(revealed, config)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "create":
        _create(args)
    else:
        _reveal(args)


if __name__ == "__main__":
    main()
