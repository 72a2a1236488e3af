"""
Tests for membership tier multipliers and commission math (services.referrals).
"""
import pytest

from chainshop.app.services.referrals import base_commission, bonus_commission, tier_multiplier


@pytest.mark.parametrize("tier,expected", [
    ("Bronze", 1.0),
    ("Silver", 1.2),
    ("Gold", 1.5),
    ("Platinum", 2.0),
    ("gold", 1.5),
    (" PLATINUM ", 2.0),
])
def test_tier_multiplier(tier, expected):
    assert tier_multiplier(tier) == expected


@pytest.mark.parametrize("tier", [None, "", "Diamond"])
def test_unknown_tier_gets_no_bonus(tier):
    assert tier_multiplier(tier) == 1.0
    assert bonus_commission(0.01, tier) == 0.0


def test_base_commission_is_ten_percent():
    assert base_commission(0.5) == pytest.approx(0.05)


def test_bonus_is_only_the_extra_part():
    """Gold earns 50% on top of the base commission; only that part is returned."""
    assert bonus_commission(0.01, "Gold") == pytest.approx(0.005)
    assert bonus_commission(0.01, "Platinum") == pytest.approx(0.01)
