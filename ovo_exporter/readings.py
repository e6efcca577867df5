"""OVO supply point and meter reading module.

This module handles:
- Decoding supply point and reading JSON returned by the OVO API
- Normalizing gas and electricity readings into gauge publications
- Parsing reading timestamps for the reading age metric

Readings are returned by the API most-recent-first; only the first entry
of each list is published. Gas meters report a single volume, electricity
meters report one register reading per time-of-use tier.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

READING_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Tier label used for gas, which has no time-of-use tiers
DEFAULT_TIER = "default"

KIND_VALUE = "value"
KIND_AGE = "age"


class ReadingDecodeError(ValueError):
    """Exception raised when an API payload does not have the expected shape."""
    pass


class ReadingTimeError(ValueError):
    """Exception raised when a reading timestamp cannot be parsed."""
    pass


class Fuel(Enum):
    """Fuel type of a supply point."""
    GAS = "gas"
    ELECTRICITY = "electricity"

    @classmethod
    def lookup(cls, value: str) -> Optional["Fuel"]:
        """Return the fuel for an API spelling, or None if it is not supported."""
        try:
            return cls(value.lower())
        except (AttributeError, ValueError):
            return None


@dataclass(frozen=True)
class SupplyPoint:
    """A single meter connection on the account.

    Attributes:
        mpxn: MPAN/MPRN market identifier, unique per point
        fuel: Fuel type, None if the API reports one we cannot read
        fuel_label: Fuel as spelled by the API, used as the metric label
        start: Service start date
        msn: Meter serial number
    """
    mpxn: str
    fuel: Optional[Fuel]
    fuel_label: str
    start: str
    msn: str


@dataclass(frozen=True)
class GasReading:
    """A gas meter reading in cubic meters."""
    volume: float
    time: str = ""


@dataclass(frozen=True)
class ElectricityTier:
    """A register reading for one time-of-use tier (e.g. day/night)."""
    label: str
    reading: float


@dataclass(frozen=True)
class ElectricityReading:
    """An electricity meter reading with one entry per tariff tier."""
    tiers: List[ElectricityTier] = field(default_factory=list)
    time: str = ""


Reading = Union[GasReading, ElectricityReading]


@dataclass(frozen=True)
class MetricIdentity:
    """Stable key for one published gauge.

    Attributes:
        mpxn: Supply point identifier
        tier: Tier label, None for gas and for the age metric
        kind: KIND_VALUE or KIND_AGE
    """
    mpxn: str
    tier: Optional[str] = None
    kind: str = KIND_VALUE


@dataclass(frozen=True)
class Publication:
    """A value to publish on the gauge for identity, created with labels."""
    identity: MetricIdentity
    value: float
    labels: Dict[str, str]


@dataclass
class NormalizedReading:
    """Publications derived from the latest reading of one supply point."""
    publications: List[Publication] = field(default_factory=list)
    time: Optional[str] = None


def _require(record: Any, key: str) -> Any:
    """Return record[key], checking record is a JSON object that has the key.

    Raises:
        ReadingDecodeError: If record is not an object or key is missing
    """
    if not isinstance(record, dict):
        raise ReadingDecodeError(f"Expected JSON object, got {type(record).__name__}")
    if key not in record:
        raise ReadingDecodeError(f"Missing field {key!r}")
    return record[key]


def _require_list(payload: Any, what: str) -> list:
    """Check that payload is a JSON list.

    Args:
        payload: Decoded JSON value
        what: Description of the list items for the error message

    Raises:
        ReadingDecodeError: If payload is not a list
    """
    if not isinstance(payload, list):
        raise ReadingDecodeError(f"Expected a list of {what}, got {type(payload).__name__}")
    return payload


def _as_float(value: Any, key: str) -> float:
    """Convert a JSON number (or numeric string) to float, rejecting booleans."""
    if isinstance(value, bool):
        raise ReadingDecodeError(f"Field {key!r} is not numeric: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ReadingDecodeError(f"Field {key!r} is not numeric: {value!r}")


def parse_supply_points(payload: Any) -> List[SupplyPoint]:
    """Decode the supply points list for an account.

    Args:
        payload: Decoded JSON body of the supply points endpoint

    Returns:
        List of SupplyPoint objects, possibly empty

    Raises:
        ReadingDecodeError: If the payload is not a list of supply points
    """
    points = []
    for record in _require_list(payload, "supply points"):
        fuel_label = str(_require(record, "fuel"))
        points.append(SupplyPoint(
            mpxn=str(_require(record, "mpxn")),
            fuel=Fuel.lookup(fuel_label),
            fuel_label=fuel_label,
            start=str(record.get("start") or ""),
            msn=str(_require(record, "msn")),
        ))
    return points


def parse_gas_readings(payload: Any) -> List[GasReading]:
    """Decode a list of gas readings."""
    readings = []
    for record in _require_list(payload, "gas readings"):
        volume = _as_float(_require(record, "gasVolume"), "gasVolume")
        readings.append(GasReading(volume=volume, time=record.get("readingDateTime") or ""))
    return readings


def parse_electricity_readings(payload: Any) -> List[ElectricityReading]:
    """Decode a list of (possibly multi-rate) electricity readings."""
    readings = []
    for record in _require_list(payload, "electricity readings"):
        tiers = [
            ElectricityTier(
                label=str(_require(tier, "timeOfUseLabel")),
                reading=_as_float(_require(tier, "meterRegisterReading"), "meterRegisterReading"),
            )
            for tier in _require_list(_require(record, "tiers"), "tiers")
        ]
        readings.append(ElectricityReading(tiers=tiers, time=record.get("readingDateTime") or ""))
    return readings


def parse_readings(fuel: Fuel, payload: Any) -> List[Reading]:
    """Decode a readings payload using the shape for the given fuel.

    The fuel must be known up front; the payload is never probed to guess
    its shape.

    Raises:
        ReadingDecodeError: If the payload does not match the fuel's shape
    """
    if fuel is Fuel.GAS:
        return parse_gas_readings(payload)
    elif fuel is Fuel.ELECTRICITY:
        return parse_electricity_readings(payload)
    raise ReadingDecodeError(f"No reading decoder for fuel {fuel!r}")


def point_labels(point: SupplyPoint, tier: Optional[str] = None) -> Dict[str, str]:
    """Constant labels for a supply point gauge.

    Value gauges carry a tier label, the age gauge does not.
    """
    labels = {"fuel": point.fuel_label, "mpxn": point.mpxn, "msn": point.msn}
    if tier is not None:
        labels["tier"] = tier
    return labels


def normalize(point: SupplyPoint, readings: List[Reading]) -> NormalizedReading:
    """Convert the latest reading for a supply point into publications.

    Args:
        point: Supply point the readings belong to
        readings: Decoded readings, most recent first

    Returns:
        NormalizedReading with one publication for gas, one per tier for
        electricity, or nothing when there are no readings
    """
    if not readings:
        return NormalizedReading()

    latest = readings[0]
    result = NormalizedReading(time=latest.time or None)

    if point.fuel is Fuel.GAS:
        result.publications.append(Publication(
            identity=MetricIdentity(point.mpxn, None, KIND_VALUE),
            value=latest.volume,
            labels=point_labels(point, DEFAULT_TIER),
        ))
    elif point.fuel is Fuel.ELECTRICITY:
        for tier in latest.tiers:
            result.publications.append(Publication(
                identity=MetricIdentity(point.mpxn, tier.label, KIND_VALUE),
                value=tier.reading,
                labels=point_labels(point, tier.label),
            ))

    return result


def parse_reading_time(text: str) -> datetime:
    """Parse a reading timestamp such as 2024-01-31T07:30:00.

    The API omits the offset, so the result is a naive datetime in
    provider-local time.

    Raises:
        ReadingTimeError: If text is not in YYYY-MM-DDTHH:MM:SS form
    """
    try:
        return datetime.strptime(text, READING_TIME_FORMAT)
    except (TypeError, ValueError) as e:
        raise ReadingTimeError(f"Failed to parse reading time {text!r}: {e}") from e


def reading_age_seconds(text: str, now: Optional[datetime] = None) -> float:
    """Seconds elapsed between a reading timestamp and now."""
    if now is None:
        now = datetime.now()
    return (now - parse_reading_time(text)).total_seconds()
