"""OVO Energy authentication and reading download module.

This module handles:
- Authentication with the OVO Energy account API
- Session management and cookie handling
- Downloading supply points and meter readings for an account
"""

import logging
from datetime import datetime, timedelta
from typing import Any, List, Optional

import requests

from ovo_exporter.config import AccountInfo
from ovo_exporter.readings import (
    Reading,
    ReadingDecodeError,
    SupplyPoint,
    parse_readings,
    parse_supply_points,
)

# Configure module logger
logger = logging.getLogger(__name__)


class OVOError(Exception):
    """Base exception for OVO client errors."""
    pass


class OVOAuthError(OVOError):
    """Exception raised when the login request is rejected."""
    pass


class OVOSessionExpired(OVOError):
    """Exception raised when the API answers 401/403 to an authenticated request."""
    pass


class OVOFetchError(OVOError):
    """Exception raised when a data request fails."""
    pass


class OVODecodeError(OVOFetchError):
    """Exception raised when a response body cannot be decoded."""
    pass


class OVOClient:
    """Client for the OVO Energy smart meter reading API.

    Holds a single requests.Session for the lifetime of the client so the
    authentication cookies set by login() are sent with every later request.
    Any 401/403 clears the logged_in flag so the caller logs in again.

    Attributes:
        account: Account number and credentials
        logged_in: Whether the session cookies are believed to be valid
    """

    LOGIN_URL = "https://my.ovoenergy.com/api/v2/auth/login"
    API_URL = "https://smartpaymapi.ovoenergy.com"
    POINTS_URL = f"{API_URL}/orex/api/supply-points/account/{{account}}"
    READINGS_URL = f"{API_URL}/rlc/rac-public-api/api/v5/supplypoints/{{fuel}}/{{mpxn}}/meters/{{msn}}/readings"

    TIMEOUT = 60  # seconds
    READINGS_LOOKBACK = timedelta(days=64)

    def __init__(self, account: AccountInfo, session: Optional[requests.Session] = None):
        """Initialize the client.

        Args:
            account: Account number and credentials
            session: Optional pre-built session, mainly for testing
        """
        self.account = account
        self.logged_in = False
        self._session = session

    @property
    def session(self) -> requests.Session:
        """The shared HTTP session, created on first use."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({"Accept": "application/json"})
        return self._session

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Send a request on the shared session with the client timeout.

        Args:
            method: HTTP method (GET, POST)
            url: Request URL
            **kwargs: Additional arguments passed to requests

        Returns:
            Response object

        Raises:
            OVOFetchError: If the request could not be made
        """
        try:
            return self.session.request(method, url, timeout=self.TIMEOUT, **kwargs)
        except requests.RequestException as e:
            raise OVOFetchError(f"Failed to make request to {url}: {e}")

    def _check_response(self, response: requests.Response, what: str) -> None:
        """Raise for any response other than 200.

        A 401/403 also clears logged_in so the next attempt logs in again.

        Args:
            response: Response to check
            what: Description of the request for the error message

        Raises:
            OVOSessionExpired: On 401 or 403
            OVOFetchError: On any other non-200 status
        """
        if response.status_code == 200:
            return
        if response.status_code in (401, 403):
            logger.info(f"Session rejected with {response.status_code}, login required")
            self.logged_in = False
            raise OVOSessionExpired(f"{what} failed: {response.status_code} {response.text}")
        raise OVOFetchError(f"{what} failed: {response.status_code} {response.text}")

    def _decode(self, response: requests.Response, what: str) -> Any:
        """Decode a JSON response body.

        Raises:
            OVODecodeError: If the body is not valid JSON
        """
        try:
            return response.json()
        except ValueError as e:
            raise OVODecodeError(f"Failed to decode {what}: {e}")

    def login(self) -> None:
        """Authenticate with the OVO account API.

        Raises:
            OVOAuthError: If the request fails or is rejected
        """
        logger.info(f"Logging in as {self.account.username}")
        self.logged_in = False

        payload = {
            "username": self.account.username,
            "password": self.account.password,
            "rememberMe": False,
            "refreshTokenType": "",
        }
        try:
            response = self.session.post(self.LOGIN_URL, json=payload, timeout=self.TIMEOUT)
        except requests.RequestException as e:
            raise OVOAuthError(f"Failed to make login request: {e}")

        if response.status_code != 200:
            raise OVOAuthError(f"Login request failed: {response.status_code} {response.text}")

        self.logged_in = True
        logger.info("Successfully logged in")

    def load_points(self) -> List[SupplyPoint]:
        """Fetch the supply points registered on the account.

        Returns:
            List of SupplyPoint objects, possibly empty

        Raises:
            OVOSessionExpired: If the session cookies were rejected
            OVOFetchError: If the request fails
            OVODecodeError: If the body is not a list of supply points
        """
        url = self.POINTS_URL.format(account=self.account.account_number)
        response = self._request("GET", url)
        self._check_response(response, "Supply points query")

        try:
            points = parse_supply_points(self._decode(response, "supply points"))
        except ReadingDecodeError as e:
            raise OVODecodeError(f"Failed to decode supply points: {e}")

        logger.debug(f"Scanned points: {points}")
        return points

    def load_readings(
        self,
        point: SupplyPoint,
        lookback: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> List[Reading]:
        """Fetch recent meter readings for one supply point.

        Args:
            point: Supply point to query
            lookback: How far back to request readings (default: 64 days)
            now: Reference time for the lookback window (default: now)

        Returns:
            GasReading or ElectricityReading list depending on the point's fuel

        Raises:
            OVOSessionExpired: If the session cookies were rejected
            OVOFetchError: If the request fails or the fuel is unsupported
            OVODecodeError: If the body does not match the fuel's reading shape
        """
        if lookback is None:
            lookback = self.READINGS_LOOKBACK
        if now is None:
            now = datetime.now()
        if point.fuel is None:
            raise OVOFetchError(f"Unsupported fuel {point.fuel_label!r} for {point.mpxn}")

        url = self.READINGS_URL.format(fuel=point.fuel.value, mpxn=point.mpxn, msn=point.msn)
        from_date = (now - lookback).strftime("%Y-%m-%d")
        response = self._request("GET", url, params={"from": from_date})
        self._check_response(response, f"Readings query for {point.mpxn}")

        try:
            readings = parse_readings(point.fuel, self._decode(response, f"{point.fuel.value} readings"))
        except ReadingDecodeError as e:
            raise OVODecodeError(f"Failed to decode {point.fuel.value} readings for {point.mpxn}: {e}")

        logger.info(f"Received {len(readings)} recent readings for {point.mpxn}")
        logger.debug(f"Scanned readings: {readings}")
        return readings
