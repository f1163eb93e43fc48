"""Prometheus metrics for the search service."""
from typing import Optional

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, generate_latest
from prometheus_client.core import CollectorRegistry


class Metrics:
    """
    Metric sink owned by one application instance.

    Each instance registers into its own CollectorRegistry so several
    apps (tests, workers) can coexist in one process.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        # System health
        self.http_requests = Counter(
            "oggole_http_requests_total",
            "Total HTTP requests by endpoint and status",
            ["endpoint", "status"],
            registry=self.registry,
        )
        self.service_up = Gauge(
            "oggole_service_up",
            "Service health: 1=up, 0=down",
            registry=self.registry,
        )

        # Feature health
        self.search_queries = Counter(
            "oggole_search_queries_total",
            "Total search queries",
            registry=self.registry,
        )
        self.search_zero_results = Counter(
            "oggole_search_zero_results_total",
            "Searches returning zero results",
            registry=self.registry,
        )

        # Crawler / indexing
        self.pages_indexed = Counter(
            "oggole_pages_indexed_total",
            "Total pages indexed via batch-pages API",
            registry=self.registry,
        )
        self.pages_in_database = Gauge(
            "oggole_pages_in_database",
            "Current number of pages in database",
            registry=self.registry,
        )

        # Operational
        self.database_errors = Counter(
            "oggole_database_errors_total",
            "Total database errors",
            registry=self.registry,
        )

    def record_request(self, endpoint: str, status: int) -> None:
        self.http_requests.labels(endpoint=endpoint, status=str(status)).inc()

    def render(self) -> tuple[bytes, str]:
        """Exposition payload and content type for the /metrics endpoint."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
