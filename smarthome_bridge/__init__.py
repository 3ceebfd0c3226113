"""
Smart home bridge.

Cloud-to-cloud bridge between a voice assistant's smart home protocol
and devices registered on a ThingsBoard instance.
"""

__version__ = "1.0.0"
