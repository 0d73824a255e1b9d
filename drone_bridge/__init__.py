"""MQTT bridge and UDP protocol client for AR.Drone 2.0 quadcopters."""

__version__ = "0.1.0"
