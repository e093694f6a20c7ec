"""HTTP interface: domain status, event recording, statistics, health and metrics."""

import json
import logging
import time
import uuid
from typing import Any, Callable, Iterable, Optional

from werkzeug.exceptions import HTTPException, MethodNotAllowed, NotFound
from werkzeug.routing import Map, Rule
from werkzeug.wrappers import Request, Response

from catchall.domain_service import DomainService
from catchall.metrics import MetricsCollector
from catchall.models import EventType
from catchall.stats_service import StatsService

_log = logging.getLogger(__name__)

WSGIApp = Callable[[dict, Callable], Iterable[bytes]]


def _json_response(data: Any) -> Response:
    return Response(json.dumps(data) + "\n", content_type="application/json")


def _text_error(message: str, status: int) -> Response:
    response = Response(message + "\n", status=status, content_type="text/plain; charset=utf-8")
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response


def _client_ip(request: Request) -> str:
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote_addr or ""


def create_app(
    domain_service: DomainService,
    stats_service: StatsService,
    metrics_collector: MetricsCollector,
    logger: Optional[logging.Logger] = None,
) -> WSGIApp:
    """Build the WSGI application serving the API."""
    log = logger or _log

    def health(request: Request) -> Response:
        return Response("OK", content_type="text/plain; charset=utf-8")

    def metrics(request: Request) -> Response:
        return Response(metrics_collector.to_json(), content_type="application/json")

    def domain_stats(request: Request) -> Response:
        try:
            stats = stats_service.get_domain_stats()
        except Exception as exc:
            log.error("Error getting domain stats: %s", exc)
            return _text_error("Failed to get domain stats", 500)
        return _json_response(stats.to_dict())

    def domain_status(request: Request, domain_name: str) -> Response:
        if not domain_name:
            return _text_error("Domain name is required", 400)
        try:
            result = domain_service.get_domain_status(domain_name)
        except Exception as exc:
            log.error("Error getting domain status for %s: %s", domain_name, exc)
            return _text_error("Failed to get domain status", 500)
        return _json_response(result.to_dict())

    def record(event_type: EventType) -> Callable[..., Response]:
        def handler(request: Request, domain_name: str) -> Response:
            if not domain_name:
                return _text_error("Domain name is required", 400)
            try:
                domain_service.record_event(domain_name, event_type)
            except Exception as exc:
                log.error(
                    "Error recording %s event for %s: %s", event_type.value, domain_name, exc
                )
                return _text_error("Failed to record event", 500)
            return Response(status=200)

        return handler

    url_map = Map(
        [
            Rule("/healthz", endpoint=health, methods=["GET"]),
            Rule("/metrics", endpoint=metrics, methods=["GET"]),
            Rule("/domains/stats", endpoint=domain_stats, methods=["GET"]),
            Rule("/domains/<domain_name>", endpoint=domain_status, methods=["GET"]),
            Rule(
                "/events/<domain_name>/delivered",
                endpoint=record(EventType.DELIVERED),
                methods=["PUT"],
            ),
            Rule(
                "/events/<domain_name>/bounced",
                endpoint=record(EventType.BOUNCED),
                methods=["PUT"],
            ),
        ],
        merge_slashes=False,
    )

    def dispatch(request: Request) -> Response:
        adapter = url_map.bind_to_environ(request.environ)
        try:
            endpoint, values = adapter.match()
        except NotFound:
            return _text_error("404 page not found", 404)
        except MethodNotAllowed as exc:
            response = Response(status=405)
            if exc.valid_methods:
                response.headers["Allow"] = ", ".join(exc.valid_methods)
            return response
        except HTTPException as exc:
            return exc.get_response(request.environ)
        try:
            return endpoint(request, **values)
        except Exception:
            log.exception("Panic while handling %s %s", request.method, request.path)
            return Response(status=500)

    def app(environ: dict, start_response: Callable) -> Iterable[bytes]:
        request = Request(environ)
        request_id = uuid.uuid4().hex
        started = time.perf_counter()

        metrics_collector.increment_request_count()
        response = dispatch(request)
        metrics_collector.record_response_time(request.path, response.status_code, request.method)

        log.info(
            '[%s] "%s %s" from %s - %d in %.3fms',
            request_id,
            request.method,
            request.full_path.rstrip("?"),
            _client_ip(request),
            response.status_code,
            (time.perf_counter() - started) * 1000.0,
        )
        return response(environ, start_response)

    return app