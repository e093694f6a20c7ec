import re

import pytest

from catchall.eventpool import (
    ALPHA_RUNES,
    Event,
    random_alpha,
    random_domain_name,
    random_item,
    random_runes,
    spawn_event_pool,
)
from catchall.models import EventType

DOMAIN_PATTERN = re.compile(r"[A-Za-z]{14}\.(net|com|org|io|gov)")
TLDS = {"net", "com", "org", "io", "gov"}


@pytest.fixture
def pool():
    event_pool = spawn_event_pool()
    try:
        yield event_pool
    finally:
        event_pool.close()


@pytest.mark.timeout(30)
def test_get_and_recycle_events(pool):
    for _ in range(500):
        event = pool.get_event()
        assert isinstance(event, Event)
        assert event.type in (EventType.DELIVERED, EventType.BOUNCED)
        assert DOMAIN_PATTERN.fullmatch(event.domain)
        pool.recycle_event(event)


@pytest.mark.timeout(30)
def test_pool_as_context_manager():
    with spawn_event_pool() as event_pool:
        event = event_pool.get_event()
        assert event.type in ("delivered", "bounced")


def test_random_runes_uses_prefix_and_charset():
    value = random_runes("pre-", 40, "ab")
    assert value.startswith("pre-")
    assert len(value) == len("pre-") + 40
    assert set(value[4:]) <= {"a", "b"}


def test_random_runes_joins_character_groups():
    value = random_runes("", 60, "x", "y")
    assert set(value) <= {"x", "y"}


def test_random_runes_single_character():
    assert random_runes("p", 3, "x") == "pxxx"


def test_random_runes_without_characters_raises():
    with pytest.raises(ValueError):
        random_runes("", 5)


def test_random_alpha_only_letters():
    value = random_alpha("id_", 30)
    assert value.startswith("id_")
    assert len(value) == 33
    assert set(value[3:]) <= set(ALPHA_RUNES)


def test_random_item_picks_from_items():
    assert random_item("only") == "only"
    for _ in range(50):
        assert random_item("net", "com", "org") in {"net", "com", "org"}


def test_random_item_without_items_raises():
    with pytest.raises(ValueError):
        random_item()


def test_random_domain_name_format():
    for _ in range(50):
        name = random_domain_name()
        label, tld = name.split(".")
        assert len(label) == 14
        assert set(label) <= set(ALPHA_RUNES)
        assert tld in TLDS