"""Construction of the configured domain repository."""

import logging
from typing import Optional, Union

from catchall.cached_repository import CachedDomainRepository
from catchall.memory_repository import InMemoryDomainRepository
from catchall.mongo_repository import MongoDomainRepository
from catchall.repository import (
    DomainRepository,
    RepositoryOptions,
    RepositoryType,
    default_repository_options,
)

_log = logging.getLogger(__name__)


def new_domain_repository(
    repo_type: Union[RepositoryType, str],
    mongo_uri: str = "",
    db_name: str = "",
    logger: Optional[logging.Logger] = None,
    options: Optional[RepositoryOptions] = None,
) -> DomainRepository:
    """Build a repository of the given type, wrapped in a cache when enabled.

    Any type other than MongoDB gives in-memory storage.
    """
    logger = logger or _log
    opts = options if options is not None else default_repository_options()

    repo: DomainRepository
    if repo_type == RepositoryType.MONGODB:
        logger.info("Using MongoDB repository")
        repo = MongoDomainRepository.connect(mongo_uri, db_name)
    else:
        logger.info("Using in-memory repository")
        repo = InMemoryDomainRepository()

    if opts.enable_caching:
        logger.info("Adding cache layer with TTL %s", opts.cache_ttl)
        repo = CachedDomainRepository(repo, opts.cache_ttl, logger)

    return repo