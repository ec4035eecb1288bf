import math

from scan2tap.plans import FREE_LINK_LIMIT, can_add_more_links, plan_policy, upgrade_message


def test_free_plan_is_capped_at_seven_links():
    policy = plan_policy("free")
    assert policy.max_links == FREE_LINK_LIMIT == 7
    assert policy.allows_another_link(6)
    assert not policy.allows_another_link(7)
    assert not policy.can_use_grid_layout
    assert not policy.can_use_custom_background
    assert policy.available_designs == ["classic"]


def test_pro_plan_is_unbounded():
    policy = plan_policy("pro")
    assert math.isinf(policy.max_links)
    assert policy.allows_another_link(10_000)
    assert policy.can_access_analytics
    assert policy.available_designs == ["classic", "premium", "metal"]


def test_unknown_or_missing_plan_falls_back_to_free():
    assert plan_policy(None).plan_type == "free"
    assert plan_policy("enterprise").plan_type == "free"
    assert not can_add_more_links(7)
    assert can_add_more_links(7, "pro")


def test_to_dict_reports_unlimited_links_as_none():
    assert plan_policy("pro").to_dict()["max_links"] is None
    assert plan_policy("free").to_dict()["max_links"] == 7


def test_upgrade_message_has_a_generic_fallback():
    assert "7 links" in upgrade_message("links")
    assert upgrade_message("teleportation") == "Upgrade to Pro to unlock this feature"
