"""
Campaign Service Clients

Clients for external systems.
"""

from .sms_provider_client import MittoClient

__all__ = [
    "MittoClient",
]
