import random
from datetime import timedelta
from decimal import Decimal

from app.services.bills import (
    bill_for_order,
    bill_key,
    bucket_by_status,
    filter_bills,
    group_open_orders,
    is_late,
    wait_minutes,
)


def _dine_in(factories, order_id, minutes=0, table="5", name="Ana", **overrides):
    return factories.make_order(
        order_id,
        minutes=minutes,
        order_type="dine_in",
        table_number=table,
        customer_name=name,
        **overrides,
    )


def test_dine_in_orders_same_table_and_customer_become_one_bill(factories):
    first = _dine_in(factories, 1, minutes=0, items=[factories.line("X-Burger", 2)], total="50.00")
    second = _dine_in(factories, 2, minutes=10, name="  ana ", items=[factories.line("Coca", 1, "7.00")], total="7.00")

    bills = group_open_orders([second, first])

    assert len(bills) == 1
    bill = bills[0]
    assert bill.key == "dine_in:5:ANA"
    assert bill.id == 1
    assert bill.order_ids == [1, 2]
    assert bill.is_grouped is True
    assert bill.total == Decimal("57.00")
    assert [(item.name, item.is_additional) for item in bill.items] == [("X-Burger", False), ("Coca", True)]
    assert bill.items[1].origin_order_id == 2
    assert bill.items[1].origin_item_index == 0


def test_delivery_orders_are_never_merged(factories):
    orders = [factories.make_order(1), factories.make_order(2, minutes=1)]

    bills = group_open_orders(orders)

    assert [bill.key for bill in bills] == ["single:2", "single:1"]
    assert all(not bill.is_grouped for bill in bills)


def test_dine_in_without_table_stays_single(factories):
    orders = [_dine_in(factories, 1, table=None), _dine_in(factories, 2, table="  ")]

    assert [bill_key(order) for order in orders] == ["single:1", "single:2"]


def test_different_tables_or_customers_do_not_merge(factories):
    orders = [
        _dine_in(factories, 1, table="5", name="Ana"),
        _dine_in(factories, 2, table="6", name="Ana"),
        _dine_in(factories, 3, table="5", name="Bruno"),
    ]

    assert len(group_open_orders(orders)) == 3


def test_closed_orders_are_excluded(factories):
    orders = [
        _dine_in(factories, 1, status="finished"),
        _dine_in(factories, 2, minutes=5, status="canceled"),
        _dine_in(factories, 3, minutes=10),
    ]

    bills = group_open_orders(orders)

    assert len(bills) == 1
    assert bills[0].order_ids == [3]
    assert bills[0].is_grouped is False


def test_grouping_is_idempotent_and_order_independent(factories):
    orders = [
        _dine_in(factories, 1, minutes=0),
        _dine_in(factories, 2, minutes=3),
        factories.make_order(3, minutes=4),
        _dine_in(factories, 4, minutes=8, table="9", name="Caio"),
        _dine_in(factories, 5, minutes=12),
    ]
    expected = group_open_orders(orders)

    shuffled = list(orders)
    random.Random(7).shuffle(shuffled)

    assert group_open_orders(shuffled) == expected
    assert group_open_orders(orders + orders) == expected


def test_every_open_order_lands_in_exactly_one_bill_and_totals_are_conserved(factories):
    orders = [
        _dine_in(factories, 1, total="10.00"),
        _dine_in(factories, 2, minutes=1, total="12.50"),
        factories.make_order(3, minutes=2, total="30.00"),
        _dine_in(factories, 4, minutes=3, table="2", total="8.25"),
        factories.make_order(5, minutes=4, total="99.00", status="finished"),
    ]

    bills = group_open_orders(orders)

    ids = [order_id for bill in bills for order_id in bill.order_ids]
    assert sorted(ids) == [1, 2, 3, 4]
    assert sum((bill.total for bill in bills), Decimal("0")) == Decimal("60.75")


def test_duplicate_ids_keep_last_version(factories):
    stale = factories.make_order(1, status="pending")
    fresh = factories.make_order(1, status="preparing")

    bills = group_open_orders([stale, fresh])

    assert len(bills) == 1
    assert bills[0].status == "preparing"


def test_bills_sorted_newest_first(factories):
    orders = [factories.make_order(1, minutes=0), factories.make_order(2, minutes=30), factories.make_order(3, minutes=15)]

    assert [bill.id for bill in group_open_orders(orders)] == [2, 3, 1]


def test_bill_for_order_returns_grouped_bill_or_single(factories):
    first = _dine_in(factories, 1)
    second = _dine_in(factories, 2, minutes=5)
    closed = factories.make_order(3, status="finished")

    assert bill_for_order([first, second], second).order_ids == [1, 2]
    assert bill_for_order([first, second], closed).key == "single:3"


def test_filter_by_type_and_search(factories):
    bills = group_open_orders(
        [
            _dine_in(factories, 1, name="Ana"),
            factories.make_order(2, minutes=1, customer_name="Bruno"),
            factories.make_order(3, minutes=2, customer_name="Carla"),
        ]
    )

    assert [bill.id for bill in filter_bills(bills, order_type="mesa")] == [1]
    assert [bill.id for bill in filter_bills(bills, search="bru")] == [2]
    assert [bill.id for bill in filter_bills(bills, search="3")] == [3]


def test_bucket_by_status_has_all_board_columns(factories):
    bills = group_open_orders([factories.make_order(1, status="preparing")])

    buckets = bucket_by_status(bills)

    assert list(buckets) == ["pending", "preparing", "ready_to_send", "out_for_delivery"]
    assert [bill.id for bill in buckets["preparing"]] == [1]


def test_wait_minutes_and_late_flag(factories):
    order = factories.make_order(1)

    assert wait_minutes(order.created_at, order.created_at + timedelta(minutes=9, seconds=59)) == 9
    assert wait_minutes(order.created_at, order.created_at - timedelta(minutes=5)) == 0
    assert is_late(order.created_at, order.created_at + timedelta(minutes=16)) is True
    assert is_late(order.created_at, order.created_at + timedelta(minutes=15)) is False
