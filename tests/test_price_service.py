"""Tests for the client-facing price lookup service."""

from decimal import Decimal

import pytest

from community_low.client.config import ClientConfig
from community_low.client.service import OfficialPrice, PriceLookupService

CONFIG = ClientConfig(base_url="http://community.test")


class StubCommunityClient:
    def __init__(self, lowest=None):
        self.lowest = lowest
        self.lookups = []

    async def fetch_lowest(self, prod_id):
        self.lookups.append(prod_id)
        return self.lowest

    async def post_batch(self, items):
        pass

    async def close(self):
        pass


class RecordingUploader:
    def __init__(self):
        self.reports = []

    def enqueue(self, report):
        self.reports.append(report)

    async def aclose(self):
        pass


def make_service(lowest=None, config=CONFIG, official_source=None):
    client = StubCommunityClient(lowest)
    uploader = RecordingUploader()
    kwargs = {"official_source": official_source} if official_source else {}
    service = PriceLookupService(config, client=client, uploader=uploader, **kwargs)
    return service, client, uploader


async def test_first_observation_is_reported():
    service, client, uploader = make_service(lowest=None)

    response = await service.get_price({"prodId": "X", "promoOverride": 450, "pageType": "product"})

    assert response == {
        "ok": True,
        "promo": None,
        "low": None,
        "communityLow": None,
        "effectiveLow": None,
        "source": None,
    }
    assert client.lookups == ["X"]
    assert len(uploader.reports) == 1
    report = uploader.reports[0]
    assert (report["prodId"], report["price"], report["pageType"]) == ("X", 450, "product")
    assert report["observedAt"].endswith("Z")


async def test_lower_observation_is_reported():
    service, _, uploader = make_service(lowest=Decimal("500"))

    response = await service.get_price({"prodId": "X", "promoOverride": "450"})

    assert response["communityLow"] == 500
    assert response["effectiveLow"] == 500
    assert response["source"] == "community"
    assert [r["price"] for r in uploader.reports] == [450]


@pytest.mark.parametrize("observed", [500, 550, None, "not a price"])
async def test_non_improving_observation_is_not_reported(observed):
    service, _, uploader = make_service(lowest=Decimal("500"))

    response = await service.get_price({"prodId": "X", "promoOverride": observed})

    assert response["ok"] is True
    assert response["effectiveLow"] == 500
    assert uploader.reports == []


async def test_community_disabled_skips_lookup_and_reporting():
    config = ClientConfig(base_url="http://community.test", use_community=False)
    service, client, uploader = make_service(lowest=Decimal("500"), config=config)

    response = await service.get_price({"prodId": "X", "promoOverride": 100})

    assert response["communityLow"] is None
    assert client.lookups == []
    assert uploader.reports == []


async def test_official_price_is_used_when_available():
    async def official(prod_id):
        return OfficialPrice(promo=Decimal("420"), low=Decimal("400"))

    service, _, uploader = make_service(lowest=Decimal("500"), official_source=official)

    response = await service.get_price({"prodId": "X"})

    assert response["promo"] == 420
    assert response["low"] == 400
    assert response["effectiveLow"] == 400
    assert response["source"] == "official"
    assert uploader.reports == []


async def test_unparseable_override_wins_over_official_promo():
    async def official(prod_id):
        return OfficialPrice(promo=Decimal("300"))

    service, _, uploader = make_service(lowest=Decimal("500"), official_source=official)

    response = await service.get_price({"prodId": "X", "promoOverride": "n/a"})

    assert response["ok"] is True
    assert response["effectiveLow"] == 500
    assert uploader.reports == []


async def test_missing_prod_id_fails():
    service, client, _ = make_service()
    assert await service.get_price({"promoOverride": 450}) == {"ok": False, "error": "Missing prodId"}
    assert client.lookups == []


async def test_unexpected_error_is_reported_not_raised():
    async def official(prod_id):
        raise RuntimeError("official source exploded")

    service, _, _ = make_service(official_source=official)

    response = await service.get_price({"prodId": "X"})

    assert response == {"ok": False, "error": "official source exploded"}
