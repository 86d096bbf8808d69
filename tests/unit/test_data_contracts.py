"""
Unit Tests for the test data contract packages

The contract packages load and their factories build valid models.
"""
import pytest

from microservices.campaign_service.models import CampaignStatus
from tests.contracts import campaign as campaign_contracts
from tests.contracts import credit as credit_contracts

pytestmark = pytest.mark.unit


class TestContractPackages:

    def test_credit_package_exports_factory(self):
        assert credit_contracts.__all__ == ["CreditTestDataFactory"]
        factory = credit_contracts.CreditTestDataFactory

        package = factory.make_package(units=500, price_cents=1200)

        assert package.units == 500
        assert factory.make_owner_id() != factory.make_owner_id()

    def test_campaign_package_exports_factory(self):
        assert campaign_contracts.__all__ == ["CampaignTestDataFactory"]
        factory = campaign_contracts.CampaignTestDataFactory

        campaign = factory.make_campaign(factory.make_owner_id(), factory.make_template_id())

        assert campaign.status == CampaignStatus.DRAFT
