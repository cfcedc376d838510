from __future__ import annotations

import pytest

from countertrade.mirror.classifier import COUNTER_LINK_PREFIX, counter_link_id, should_mirror
from support import order_event


@pytest.mark.parametrize("status", ["New", "Filled", "PartiallyFilled", "Created"])
def test_user_orders_in_mirrored_statuses_qualify(status: str) -> None:
    assert should_mirror(order_event(status=status))


@pytest.mark.parametrize("status", ["Cancelled", "Rejected", "Untriggered", "Deactivated", "Triggered"])
def test_other_statuses_are_ignored(status: str) -> None:
    assert not should_mirror(order_event(status=status))


def test_system_created_orders_are_ignored() -> None:
    assert not should_mirror(order_event(creation_origin="system"))


@pytest.mark.parametrize("status", ["New", "Filled", "PartiallyFilled", "Created", "Cancelled"])
def test_own_counter_orders_never_qualify(status: str) -> None:
    e = order_event(link_id="counter_abc123", status=status)
    assert not should_mirror(e)


def test_link_prefix_match_is_exact() -> None:
    # only the leading prefix marks a counter-order
    assert should_mirror(order_event(link_id="my_counter_x"))
    assert should_mirror(order_event(link_id="Counter_x"))


def test_counter_link_id_is_prefixed() -> None:
    assert counter_link_id("abc123") == "counter_abc123"
    assert counter_link_id("abc123").startswith(COUNTER_LINK_PREFIX)
