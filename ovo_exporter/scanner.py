"""Scan orchestration module.

This module handles:
- Keeping the OVO session logged in across scans
- Fetching supply points and readings with bounded retry
- Publishing normalized readings to the gauge cache
"""

import logging
import time
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from ovo_exporter.client import OVOAuthError, OVOClient, OVOError
from ovo_exporter.exporter import MetricCache
from ovo_exporter.readings import (
    KIND_AGE,
    MetricIdentity,
    NormalizedReading,
    ReadingTimeError,
    SupplyPoint,
    normalize,
    point_labels,
    reading_age_seconds,
)

# Configure module logger
logger = logging.getLogger(__name__)


class ScanState(Enum):
    NOT_LOGGED_IN = "not_logged_in"
    LOGGED_IN = "logged_in"
    SCAN_FAILED = "scan_failed"
    SCAN_OK = "scan_ok"


class Scanner:
    """Runs scan cycles against the OVO API and publishes the results.

    The scanner owns the client session and the gauge cache, both of which
    live across scans. Each scan makes up to MAX_ATTEMPTS passes:

    1. Log in if the session is not logged in (failure aborts the scan)
    2. Load the account's supply points
    3. Load, normalize and publish readings for every point, continuing
       past per-point failures

    A pass with any failure is retried after RETRY_DELAY seconds. A 401/403
    from the API clears the client's logged_in flag, so the next pass logs
    in again first.

    Attributes:
        client: OVO API client holding the session state
        cache: Gauge cache for published readings
        state: ScanState after the most recent step
        last_error: Error behind the most recent SCAN_FAILED, if any
        points: Supply points loaded by the most recent pass
    """

    MAX_ATTEMPTS = 3
    RETRY_DELAY = 3  # seconds

    def __init__(
        self,
        client: OVOClient,
        cache: MetricCache,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the scanner.

        Args:
            client: OVO API client
            cache: Gauge cache to publish into
            sleep: Delay function used between attempts
            clock: Returns the current provider-local time
        """
        self.client = client
        self.cache = cache
        self._sleep = sleep
        self._clock = clock
        self.state = ScanState.NOT_LOGGED_IN
        self.last_error: Optional[Exception] = None
        self.points: List[SupplyPoint] = []

    def scan(self) -> None:
        """Run one full scan of the account.

        Raises:
            OVOAuthError: If login is rejected
            OVOError: The last recorded error after all attempts failed
            ReadingTimeError: If the last recorded error was a bad timestamp
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            if last_error is not None:
                logger.warning(f"Retrying due to error: {last_error}")
                self._sleep(self.RETRY_DELAY)

            if not self.client.logged_in:
                self.state = ScanState.NOT_LOGGED_IN
                try:
                    self.client.login()
                except OVOAuthError as e:
                    logger.error(f"Failed to login to OVO: {e}")
                    self._fail(e)
                    raise
            self.state = ScanState.LOGGED_IN

            try:
                points = self.client.load_points()
            except OVOError as e:
                logger.warning(f"Attempt {attempt}/{self.MAX_ATTEMPTS}: failed to load points: {e}")
                last_error = e
                continue

            self.points = points
            errors = self._scan_points(points)
            if not errors:
                logger.info(f"Scan completed for {len(points)} supply points")
                self.state = ScanState.SCAN_OK
                self.last_error = None
                return

            logger.warning(f"Attempt {attempt}/{self.MAX_ATTEMPTS}: {len(errors)} of {len(points)} points failed")
            last_error = errors[-1]

        self._fail(last_error)
        raise last_error

    def _fail(self, error: Exception) -> None:
        self.state = ScanState.SCAN_FAILED
        self.last_error = error

    def _scan_points(self, points: List[SupplyPoint]) -> List[Exception]:
        """Scan each point, collecting failures instead of stopping at the first.

        Points with a fuel the API cannot serve readings for are skipped.
        """
        errors = []
        for point in points:
            if point.fuel is None:
                logger.warning(f"Skipping point {point.mpxn} with unsupported fuel {point.fuel_label!r}")
                continue
            try:
                self.scan_point(point)
            except (OVOError, ReadingTimeError) as e:
                logger.warning(f"Failed to scan point {point.mpxn}: {e}")
                errors.append(e)
        return errors

    def scan_point(self, point: SupplyPoint) -> NormalizedReading:
        """Fetch and publish the latest reading for one supply point.

        Value gauges are set before the age gauge, so a bad timestamp leaves
        the published values in place.

        Raises:
            OVOError: If the readings cannot be fetched
            ReadingTimeError: If the reading timestamp cannot be parsed
        """
        readings = self.client.load_readings(point, now=self._clock())
        normalized = normalize(point, readings)

        if not normalized.publications:
            logger.info(f"No recent readings for {point.mpxn}")

        for publication in normalized.publications:
            logger.info(f"Last reading for {publication.identity}: {publication.value}")
            self.cache.get_or_create(publication.identity, publication.labels)
            self.cache.set(publication.identity, publication.value)

        if normalized.time:
            self.publish_age(point, normalized.time)

        return normalized

    def publish_age(self, point: SupplyPoint, reading_time: str) -> float:
        """Set the reading age gauge for a supply point.

        Raises:
            ReadingTimeError: If reading_time cannot be parsed
        """
        age = reading_age_seconds(reading_time, now=self._clock())
        identity = MetricIdentity(point.mpxn, None, KIND_AGE)
        self.cache.get_or_create(identity, point_labels(point))
        self.cache.set(identity, age)
        return age
