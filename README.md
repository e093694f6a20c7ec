# catchall

A small HTTP service that decides whether an e-mail domain is a *catch-all*
domain, based on the delivered and bounced events recorded for it.

A domain's status is one of:

- `not-catch-all`: at least one bounced event has been recorded;
- `catch-all`: no bounces and at least 1,000 delivered events;
- `unknown`: not enough information yet.

Domain records are kept in memory by default, or in MongoDB (collection
`domains`). A read-through cache with a configurable TTL can sit in front of
either store. An optional built-in generator produces simulated delivered and
bounced events, which worker threads record one at a time or in batches.

## Installation

```
pip install .
```

## Running the server

```
catchall-server
```

Options (each may also be written with a single dash, e.g. `-workers 4`):

| Option | Default | Meaning |
| --- | --- | --- |
| `--config PATH` | none | JSON configuration file |
| `--workers N` | CPU count | number of event-processing workers |
| `--processor [BOOL]` | off | start the simulated event processor |
| `--mongodb [BOOL]` | off | store domains in MongoDB instead of memory |
| `--cache [BOOL]` | on | cache domain lookups; `--cache false` turns it off |
| `--cache-ttl DURATION` | `5m` | cache entry lifetime, e.g. `300ms`, `30s`, `1h30m` |

A boolean option given without a value means true; accepted values are
`1`, `t`, `true`, `0`, `f`, `false` and their capitalised forms.

When both `--processor` and `--mongodb` are on, the processor writes event
counts in batches. Otherwise each event is recorded on its own through the
domain service.

### Configuration

Without a file the service listens on `0.0.0.0:8081` and uses
`mongodb://localhost:27017`, database `catchall`. A JSON file can override
any setting; durations in it are integer nanoseconds:

```json
{
  "server": {"host": "127.0.0.1", "port": 9000, "shutdown_timeout": 5000000000},
  "mongodb": {"uri": "mongodb://localhost:27017", "database": "catchall"}
}
```

The environment variables `SERVER_HOST`, `SERVER_PORT`, `MONGODB_URI`,
`MONGODB_DATABASE` and `DELIVERED_THRESHOLD` override the file.

Stop the server with Ctrl-C or SIGTERM. It stops the event processor, logs
the cache hit ratio when the cache is on, and waits up to
`server.shutdown_timeout` for the HTTP server to finish.

## HTTP API

| Method | Path | Description |
| --- | --- | --- |
| GET | `/healthz` | returns `OK` |
| GET | `/metrics` | request, event and batch counters and timing figures as JSON |
| GET | `/domains/{domainName}` | `{"domain": ..., "status": ...}` |
| GET | `/domains/stats` | `catch_all`, `not_catch_all`, `unknown`, `total`, `timestamp` |
| PUT | `/events/{domainName}/delivered` | record a delivered event |
| PUT | `/events/{domainName}/bounced` | record a bounced event |

Failures are answered with a plain-text message and status 500.

## Using it as a library

```python
import logging

from catchall.memory_repository import InMemoryDomainRepository
from catchall.domain_service import DomainService
from catchall.models import EventType

repo = InMemoryDomainRepository()
service = DomainService(repo, logging.getLogger("catchall"))

service.record_event("example.com", EventType.BOUNCED)
print(service.get_domain_status("example.com").to_dict())
# {'domain': 'example.com', 'status': 'not-catch-all'}
```

Other building blocks:

- `catchall.factory.new_domain_repository` builds an in-memory or MongoDB
  repository, wrapped in `catchall.cached_repository.CachedDomainRepository`
  when caching is enabled.
- `catchall.stats_service.StatsService` counts domains by status.
- `catchall.metrics.MetricsCollector` gathers counters and timings;
  `snapshot()` returns them as a dictionary.
- `catchall.processor.EventProcessor` and
  `catchall.batch_processor.BatchEventProcessor` consume events from
  `catchall.eventpool.spawn_event_pool()`.
- `catchall.api.create_app` builds the WSGI application from a
  `DomainService`, a `StatsService`, a `MetricsCollector` and a logger, so the
  service can run under any WSGI server.

## Limitations

- The event processor only consumes simulated events from the built-in
  generator; there is no input from real mail traffic.
- The server logs `business.delivered_threshold` and `DELIVERED_THRESHOLD`
  but classifies domains with the fixed threshold of 1,000. A different
  threshold can be set only by passing a `ThresholdConfig` to `DomainService`
  in your own code.
- The MongoDB collection name and the configured MongoDB timeouts, server
  read/write/idle timeouts and metrics settings are not applied.
- The response-time samples in `/metrics` are the time elapsed since the
  collector started, not the duration of each request.
- The API has no authentication.

## Running the tests

```
pip install ".[test]"
pytest
```