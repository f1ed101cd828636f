"""
Ceilometer Collector - metering samples to time-series points

Consumes Ceilometer pollster samples and lifecycle notifications from a
work queue, converts each into content-addressed time-series points and
publishes them to a store.
"""

__version__ = "0.1.0"
