"""
PAWS Telemetry Service

Local JSON document store and analytics engine for the PAWS smart pet
house.
"""

__version__ = "1.0.0"
