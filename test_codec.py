"""Tests for codec.py."""

import base64
import random
import re
import string
import zlib

import pytest

import codec
from codec import DecodeError, decode_config, encode_config
from models import Configuration, Match, Participant

URL_SAFE = re.compile(r"[A-Za-z0-9_-]+")


def _config(names, prize=25, event_date="2025-12-25", pairs=None):
    if pairs is None:
        pairs = [(names[i], names[(i + 1) % len(names)]) for i in range(len(names))]
    return Configuration(
        participants=[Participant(n) for n in names],
        prize_value=prize,
        event_date=event_date,
        matches=[Match(g, r) for g, r in pairs],
    )


def _token(text: str, version: str = codec.FORMAT_VERSION) -> str:
    """Build a token around arbitrary compact text."""
    data = zlib.compress(text.encode("utf-8"))
    return version + base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def test_scenario_round_trip():
    config = _config(
        ["Ana", "Bo", "Cy"],
        pairs=[("Ana", "Bo"), ("Bo", "Cy"), ("Cy", "Ana")],
    )

    decoded = decode_config(encode_config(config))

    assert decoded == config
    assert decoded.names == ["Ana", "Bo", "Cy"]
    assert decoded.prize_value == 25
    assert decoded.event_date == "2025-12-25"
    assert [(m.giver, m.receiver) for m in decoded.matches] == [
        ("Ana", "Bo"),
        ("Bo", "Cy"),
        ("Cy", "Ana"),
    ]


def test_compact_text_layout():
    config = _config(["ben", "zoe", "emila"], prize=5, event_date="2025-12-14")

    assert codec._to_compact_text(config) == "ben,zoe,emila;5;2025-12-14;0,1,1,2,2,0"


def test_token_starts_with_version():
    assert encode_config(_config(["Ana", "Bo"])).startswith(codec.FORMAT_VERSION)


def test_match_order_is_preserved():
    config = _config(
        ["Ana", "Bo", "Cy"],
        pairs=[("Cy", "Bo"), ("Ana", "Cy"), ("Bo", "Ana")],
    )

    assert decode_config(encode_config(config)).matches == config.matches


@pytest.mark.parametrize("prize", [25, 0, 7.5, 25.0, 1e16, 0.1, 1234567])
def test_prize_value_keeps_type_and_value(prize):
    decoded = decode_config(encode_config(_config(["Ana", "Bo"], prize=prize)))

    assert decoded.prize_value == prize
    assert type(decoded.prize_value) is type(prize)


def test_unicode_and_spaces_in_names():
    names = ["José María", "Zoë", "李雷", "O'Brien"]
    config = _config(names)

    token = encode_config(config)

    assert URL_SAFE.fullmatch(token)
    assert decode_config(token) == config


def test_random_configs_are_url_safe_and_round_trip():
    rng = random.Random(1234)
    alphabet = string.ascii_letters + string.digits + " -_'.!?éü"
    for _ in range(100):
        size = rng.randint(2, 25)
        names = []
        while len(names) < size:
            name = "".join(rng.choice(alphabet) for _ in range(rng.randint(1, 12)))
            if name not in names:
                names.append(name)
        order = list(names)
        rng.shuffle(order)
        receiver_of = {order[i]: order[(i + 1) % size] for i in range(size)}
        config = _config(
            names,
            prize=rng.choice([rng.randint(1, 500), round(rng.uniform(1, 500), 2)]),
            event_date=f"20{rng.randint(20, 40)}-12-{rng.randint(10, 28)}",
            pairs=[(name, receiver_of[name]) for name in names],
        )

        token = encode_config(config)

        assert URL_SAFE.fullmatch(token)
        assert decode_config(token) == config


def test_compression_beats_plain_base64():
    names = [f"Participant{i}" for i in range(20)]
    config = _config(names)
    plain = base64.urlsafe_b64encode(codec._to_compact_text(config).encode())

    assert len(encode_config(config)) < len(plain)


@pytest.mark.parametrize(
    "config",
    [
        _config([]),
        _config(["Ana", ""], pairs=[("Ana", ""), ("", "Ana")]),
        _config(["Ana", "Bo,Cy"], pairs=[("Ana", "Bo,Cy"), ("Bo,Cy", "Ana")]),
        _config(["Ana", "Bo;Cy"], pairs=[("Ana", "Bo;Cy"), ("Bo;Cy", "Ana")]),
        _config(["Ana", "Ana"]),
        _config(["Ana", "Bo"], event_date=""),
        _config(["Ana", "Bo"], event_date="2025;12"),
        _config(["Ana", "Bo"], event_date="next friday"),
        _config(["Ana", "Bo"], event_date=None),
        _config(["Ana", "Bo"], pairs=[("Ana", "Ana"), ("Bo", "Bo")]),
        _config(["Ana", "Bo", "Cy"], pairs=[("Ana", "Bo"), ("Bo", "Ana"), ("Cy", "Ana")]),
        _config(["Ana", "Bo", "Cy"], pairs=[("Ana", "Bo"), ("Ana", "Cy"), ("Cy", "Ana")]),
        _config(["Ana"], pairs=[("Ana", "Ana")]),
        _config(["Ana", "Bo"], prize="25"),
        _config(["Ana", "Bo"], prize=True),
        _config(["Ana", "Bo"], prize=float("inf")),
        _config(["Ana", "Bo"], pairs=[("Ana", "Bo")]),
        _config(["Ana", "Bo"], pairs=[("Ana", "Bo"), ("Bo", "Zed")]),
    ],
)
def test_encode_rejects_configs_that_cannot_round_trip(config):
    with pytest.raises(ValueError):
        encode_config(config)


def test_truncation_always_fails():
    token = encode_config(_config(["Ana", "Bo", "Cy", "Dee"]))

    for end in range(len(token)):
        with pytest.raises(DecodeError):
            decode_config(token[:end])


def test_single_character_mutation_fails_closed():
    config = _config(["Ana", "Bo", "Cy", "Dee"])
    token = encode_config(config)
    replacements = string.ascii_letters + string.digits + "-_"

    for pos in range(len(token)):
        for char in replacements:
            if char == token[pos]:
                continue
            tampered = token[:pos] + char + token[pos + 1:]
            try:
                decoded = decode_config(tampered)
            except DecodeError:
                continue
            # Anything that still decodes must be a structurally valid exchange.
            names = decoded.names
            assert len(set(names)) == len(names)
            assert sorted(m.giver for m in decoded.matches) == sorted(names)
            assert sorted(m.receiver for m in decoded.matches) == sorted(names)
            assert all(m.giver != m.receiver for m in decoded.matches)


@pytest.mark.parametrize(
    "token",
    [
        "",
        "1",
        "2" + encode_config(_config(["Ana", "Bo"]))[1:],
        "1abc+/def",
        "1abc=",
        "1a",
        "1" + "A" * 40,
        encode_config(_config(["Ana", "Bo"])) + "AAAA",
    ],
)
def test_decode_rejects_malformed_tokens(token):
    with pytest.raises(DecodeError):
        decode_config(token)


def test_decode_rejects_non_string():
    with pytest.raises(DecodeError):
        decode_config(None)


def test_decode_rejects_unknown_version():
    with pytest.raises(DecodeError, match="version"):
        decode_config(_token("Ana,Bo;25;2025-12-25;0,1,1,0", version="9"))


def test_decode_accepts_hand_built_token():
    config = decode_config(_token("Ana,Bo;25;2025-12-25;0,1,1,0"))

    assert config == _config(["Ana", "Bo"])


@pytest.mark.parametrize(
    "text, reason",
    [
        ("Ana,Bo;25;2025-12-25", "fields"),
        ("Ana,Bo;25;2025-12-25;0,1,1,0;extra", "fields"),
        ("Ana,Bo;25;2025-12-25;0,1,1", "odd"),
        ("Ana,Bo;25;2025-12-25;0,1,1,2", "out of range"),
        ("Ana,Bo;25;2025-12-25;0,1,1,-1", "index"),
        ("Ana,Bo;25;2025-12-25;0,1,1, 0", "index"),
        ("Ana,Bo;25;2025-12-25;", "index"),
        ("Ana,Bo;25;2025-12-25;0,1", "matches"),
        ("Ana,Bo;25;2025-12-25;0,1,1,0,0,1", "matches"),
        ("Ana,,Bo;25;2025-12-25;0,1,1,0", "name"),
        ("Ana,Bo;abc;2025-12-25;0,1,1,0", "prize"),
        ("Ana,Bo;;2025-12-25;0,1,1,0", "prize"),
        ("Ana,Bo;nan;2025-12-25;0,1,1,0", "prize"),
        ("Ana,Bo;1e999;2025-12-25;0,1,1,0", "prize"),
        ("Ana,Bo;25;;0,1,1,0", "date"),
        ("Ana,Bo;25;soon;0,1,1,0", "date"),
        ("Ana,Bo;25;2025-13-40;0,1,1,0", "date"),
        ("Ana,Ana;25;2025-12-25;0,1,1,0", "Duplicate"),
        ("Ana,Bo;25;2025-12-25;0,0,1,1", "themselves"),
        ("Ana,Bo,Cy;25;2025-12-25;0,1,0,2,2,0", "give exactly once"),
        ("Ana,Bo,Cy;25;2025-12-25;0,1,1,0,2,0", "receive exactly once"),
    ],
)
def test_decode_validates_compact_fields(text, reason):
    with pytest.raises(DecodeError, match=reason):
        decode_config(_token(text))


def test_decode_rejects_non_utf8_payload():
    data = zlib.compress(b"\xff\xfe;25;2025-12-25;0,1,1,0")
    token = "1" + base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")

    with pytest.raises(DecodeError, match="UTF-8"):
        decode_config(token)


def test_decode_rejects_oversized_payload(monkeypatch):
    monkeypatch.setattr(codec, "MAX_TEXT_BYTES", 16)

    with pytest.raises(DecodeError, match="too large"):
        decode_config(_token("Ana,Bo;25;2025-12-25;0,1,1,0"))


def test_decode_error_chains_cause():
    with pytest.raises(DecodeError) as excinfo:
        decode_config("1" + "A" * 40)

    assert isinstance(excinfo.value.__cause__, zlib.error)
