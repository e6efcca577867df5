"""Shared fixtures for exporter tests."""

import pytest
from prometheus_client import CollectorRegistry

from ovo_exporter.config import AccountInfo
from ovo_exporter.readings import Fuel, SupplyPoint


@pytest.fixture
def account():
    return AccountInfo(account_number="1234567", username="user@example.com", password="secret")


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def gas_point():
    return SupplyPoint(mpxn="7654321", fuel=Fuel.GAS, fuel_label="GAS", start="2021-03-01", msn="G4A12345")


@pytest.fixture
def electricity_point():
    return SupplyPoint(
        mpxn="1900000000001", fuel=Fuel.ELECTRICITY, fuel_label="ELECTRICITY", start="2021-03-01", msn="21L0012345"
    )
