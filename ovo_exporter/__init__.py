"""OVO Energy Prometheus Exporter package.

A Docker-based exporter that logs in to OVO Energy, reads the latest gas and
electricity meter readings for an account and exposes them as Prometheus gauges.
"""

__version__ = "0.1.0"
__url__ = "https://github.com/astromechza/ovo-energy-prometheus-gauge"
