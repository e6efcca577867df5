"""Prometheus metrics exporter module.

This module handles:
- Defining Prometheus metrics (gauges)
- Caching one gauge per supply point, tier and metric kind
- Exposing metrics HTTP server on configurable port
"""

import logging
import time
from collections import Counter
from typing import Dict, Iterable, Mapping, Optional

from prometheus_client import Gauge, start_http_server, REGISTRY, CollectorRegistry

from ovo_exporter.readings import KIND_AGE, KIND_VALUE, MetricIdentity, SupplyPoint

# Configure module logger
logger = logging.getLogger(__name__)


class MetricCache:
    """Gauge cache keyed by MetricIdentity.

    Each identity gets exactly one gauge, created on first use with the
    labels passed at that time. Later calls return the same gauge and
    ignore the labels argument.

    Exposes:
    - ovo_reading_last{fuel,tier,mpxn,msn}: Latest meter reading
    - ovo_reading_age_seconds{fuel,mpxn,msn}: Age of the latest reading
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize the cache.

        Args:
            registry: Optional custom registry for testing. If None, uses default REGISTRY.
        """
        self._registry = registry if registry is not None else REGISTRY
        self._gauges: Dict[MetricIdentity, Gauge] = {}

        self._families = {
            KIND_VALUE: Gauge(
                'ovo_reading_last',
                'Latest meter register reading for a supply point and tier',
                ['fuel', 'tier', 'mpxn', 'msn'],
                registry=self._registry
            ),
            KIND_AGE: Gauge(
                'ovo_reading_age_seconds',
                'Seconds between the latest reading and the time it was published',
                ['fuel', 'mpxn', 'msn'],
                registry=self._registry
            ),
        }

    def __len__(self) -> int:
        return len(self._gauges)

    def __contains__(self, identity: MetricIdentity) -> bool:
        return identity in self._gauges

    def get_or_create(self, identity: MetricIdentity, labels: Mapping[str, str]) -> Gauge:
        """Return the gauge for identity, creating it on first use.

        Args:
            identity: Supply point, tier and metric kind
            labels: Constant labels for the gauge if it has to be created

        Returns:
            The gauge registered for identity
        """
        gauge = self._gauges.get(identity)
        if gauge is None:
            family = self._families[identity.kind]
            gauge = family.labels(**labels)
            self._gauges[identity] = gauge
            logger.debug(f"Created {identity.kind} gauge for {identity} with labels {dict(labels)}")
        return gauge

    def set(self, identity: MetricIdentity, value: float) -> None:
        """Overwrite the value of a previously created gauge.

        Raises:
            KeyError: If no gauge exists for identity
        """
        self._gauges[identity].set(value)


class OVOExporter:
    """Prometheus exporter for OVO meter readings.

    Owns the reading gauge cache and the operational metrics:
    - ovo_scan_success: Whether the last scan succeeded (1=success, 0=failure)
    - ovo_scan_timestamp: Unix timestamp of the last scan
    - ovo_scan_duration_seconds: Duration of the last scan
    - ovo_supply_points{fuel}: Supply points on the account per fuel, as of the last points fetch

    Attributes:
        port: HTTP server port (default 8080)
        cache: Reading gauge cache
    """

    def __init__(self, port: int = 8080, registry: Optional[CollectorRegistry] = None):
        """Initialize the exporter.

        Args:
            port: Port to run the HTTP server on
            registry: Optional custom registry for testing. If None, uses default REGISTRY.
        """
        self.port = port
        self._registry = registry if registry is not None else REGISTRY
        self._server_started = False

        self.cache = MetricCache(registry=self._registry)

        self._scan_success = Gauge(
            'ovo_scan_success',
            'Whether the last scan succeeded (1=success, 0=failure)',
            registry=self._registry
        )

        self._scan_timestamp = Gauge(
            'ovo_scan_timestamp',
            'Unix timestamp of the last scan',
            registry=self._registry
        )

        self._scan_duration = Gauge(
            'ovo_scan_duration_seconds',
            'Duration of the last scan in seconds, including retry delays',
            registry=self._registry
        )

        # Labelled by the API's fuel spelling, so unsupported fuels show up too
        self._supply_points = Gauge(
            'ovo_supply_points',
            'Number of supply points on the account by fuel',
            ['fuel'],
            registry=self._registry
        )

    def record_scan(self, success: bool, duration: float, points: Iterable[SupplyPoint] = ()) -> None:
        """Update operational metrics after a scan.

        Args:
            success: Whether the scan succeeded
            duration: How long the scan took in seconds
            points: Supply points loaded by the scan; the per-fuel counts are
                replaced, so fuels no longer on the account disappear
        """
        self._scan_success.set(1 if success else 0)
        self._scan_timestamp.set(time.time())
        self._scan_duration.set(duration)

        counts = Counter(point.fuel_label for point in points)
        if counts:
            self._supply_points.clear()
            for fuel, count in counts.items():
                self._supply_points.labels(fuel=fuel).set(count)

    def start(self) -> None:
        """Start the HTTP server to expose metrics.

        The server runs in a daemon thread and exposes metrics at:
        http://localhost:{port}/metrics
        """
        if self._server_started:
            logger.warning("Prometheus server already started")
            return

        logger.info(f"Starting Prometheus HTTP server on port {self.port}")
        start_http_server(self.port, registry=self._registry)
        self._server_started = True
