from datetime import timedelta

import pytest

from catchall.memory_repository import InMemoryDomainRepository
from catchall.models import DomainInfo, EventType
from catchall.repository import (
    BatchDomainRepository,
    DomainRepository,
    EventBatch,
    RepositoryOptions,
    RepositoryType,
    as_batch_repository,
    default_repository_options,
)


class _PlainRepository:
    def get_domain_info(self, domain_name):
        return DomainInfo(name=domain_name)

    def increment_event_count(self, domain_name, event_type):
        pass

    def update_domain_status(self, domain_name, status):
        pass


def test_default_options_enable_caching_for_five_minutes():
    options = default_repository_options()
    assert options.enable_caching is True
    assert options.cache_ttl == timedelta(minutes=5)


def test_options_are_independent_instances():
    first = default_repository_options()
    first.enable_caching = False
    assert default_repository_options().enable_caching is True
    assert RepositoryOptions(enable_caching=False).enable_caching is False


@pytest.mark.parametrize(
    "value, expected",
    [("memory", RepositoryType.MEMORY), ("mongodb", RepositoryType.MONGODB)],
)
def test_repository_type_from_string(value, expected):
    assert RepositoryType(value) is expected
    assert str(expected) == value


def test_unknown_repository_type_raises():
    with pytest.raises(ValueError):
        RepositoryType("redis")


def test_in_memory_repository_supports_batches():
    repo = InMemoryDomainRepository()
    assert isinstance(repo, DomainRepository)
    assert as_batch_repository(repo) is repo


def test_plain_repository_is_not_batch():
    repo = _PlainRepository()
    assert isinstance(repo, DomainRepository)
    assert not isinstance(repo, BatchDomainRepository)
    assert as_batch_repository(repo) is None


def test_event_batch_holds_values():
    batch = EventBatch(domain_name="example.com", event_type=EventType.BOUNCED, count=3)
    assert batch.domain_name == "example.com"
    assert batch.event_type is EventType.BOUNCED
    assert batch.count == 3