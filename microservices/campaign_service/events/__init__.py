"""
Campaign Service Events

Event publishers for campaign service.
"""

from .publishers import CampaignEventPublisher

__all__ = [
    "CampaignEventPublisher",
]
