import pytest

from order_desk.engine.errors import InvalidClassification
from order_desk.engine.models import Channel, Tier, PricingRules
from order_desk.engine.rate_selector import select_rate, describe_rate, PERMISSIVE_RATE


@pytest.fixture
def rules():
    return PricingRules()


@pytest.mark.parametrize("channel,expected", [(Channel.BARRY, 14.5), (Channel.GAWY, 15.5)])
def test_retail_rate_is_flat(rules, channel, expected):
    for net in (0, 100, 1500, 1500.01, 50000):
        assert select_rate(channel, Tier.RETAIL, net, rules) == expected


@pytest.mark.parametrize("channel,below,above", [
    (Channel.BARRY, 12.5, 12.25),
    (Channel.GAWY, 14.0, 13.5),
])
def test_wholesale_threshold_boundary(rules, channel, below, above):
    """The threshold itself belongs to the "below" bracket."""
    assert select_rate(channel, Tier.WHOLESALE, 1499.99, rules) == below
    assert select_rate(channel, Tier.WHOLESALE, 1500, rules) == below
    assert select_rate(channel, Tier.WHOLESALE, 1500.01, rules) == above


def test_accepts_codes_and_names(rules):
    assert select_rate("B", "Wholesale", 2000, rules) == 12.25
    assert select_rate("gawy", "retail", 10, rules) == 15.5


def test_rates_come_from_snapshot():
    custom = PricingRules.from_settings({'barryRetail': 15, 'wholesaleThreshold': 1000, 'barryWholesaleAbove1500': 11})
    assert select_rate(Channel.BARRY, Tier.RETAIL, 10, custom) == 15
    assert select_rate(Channel.BARRY, Tier.WHOLESALE, 1200, custom) == 11
    # Keys missing from the settings document keep their defaults
    assert custom.gawy_retail == 15.5


def test_unknown_classification_strict_raises(rules):
    with pytest.raises(InvalidClassification):
        select_rate("X", Tier.RETAIL, 100, rules)
    with pytest.raises(InvalidClassification):
        select_rate(Channel.BARRY, "VIP", 100, rules)


def test_unknown_classification_permissive_returns_one(rules):
    assert select_rate("X", "VIP", 100, rules, strict=False) == PERMISSIVE_RATE


def test_missing_classification_always_raises(rules):
    with pytest.raises(InvalidClassification):
        select_rate(None, Tier.RETAIL, 100, rules, strict=False)
    with pytest.raises(InvalidClassification):
        select_rate(Channel.GAWY, "", 100, rules, strict=False)


def test_describe_rate(rules):
    assert describe_rate("B", "Retail", 10, rules) == "Barry retail rate"
    assert "above 1500" in describe_rate("G", "Wholesale", 1600, rules)
    assert "at/below 1500" in describe_rate("G", "Wholesale", 1500, rules)
