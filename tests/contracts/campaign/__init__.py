"""
Campaign Service Contracts

Test data factory for campaign_service: owners, templates, contacts,
campaigns, messages, tracking ids and provider delivery reports.
"""

from .data_contract import CampaignTestDataFactory

__all__ = ["CampaignTestDataFactory"]
