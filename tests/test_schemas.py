import json
from decimal import Decimal

import pytest

from po_autopilot.errors import MalformedData
from po_autopilot.schemas import LineItem, dump_line_items, load_line_items, sum_line_totals


@pytest.mark.parametrize(
    "quantity, unit_price, expected",
    [
        (10, "12.50", "125.00"),
        (3, "0.335", "1.01"),  # 1.005 rounds half-up
        (7, "19.99", "139.93"),
        (1, "0", "0.00"),
    ],
)
def test_line_total_is_rounded_product(quantity, unit_price, expected):
    item = LineItem(name="Widget", quantity=quantity, unit_price=Decimal(unit_price))
    assert item.total == Decimal(expected)


def test_submitted_total_is_replaced_by_product():
    item = LineItem.model_validate({"name": "Mice", "quantity": 4, "unitPrice": 10.0, "total": 999})
    assert item.total == Decimal("40.00")


@pytest.mark.parametrize(
    "payload",
    [
        {"name": "Mice", "quantity": 0, "unitPrice": 1},
        {"name": "Mice", "quantity": 2, "unitPrice": -1},
        {"name": "", "quantity": 2, "unitPrice": 1},
        {"quantity": 2, "unitPrice": 1},
        {"name": "Mice", "quantity": True, "unitPrice": 1},
        {"name": "Mice", "quantity": "2", "unitPrice": 1},
        {"name": "Mice", "quantity": 1.5, "unitPrice": 1},
    ],
)
def test_invalid_line_items_rejected(payload):
    with pytest.raises(MalformedData):
        load_line_items([payload])


def test_load_rejects_unparsable_text():
    with pytest.raises(MalformedData, match="not valid JSON"):
        load_line_items("{not json")


def test_load_rejects_non_list():
    with pytest.raises(MalformedData, match="must be a list"):
        load_line_items('{"name": "Mice"}')


def test_malformed_data_is_a_value_error():
    with pytest.raises(ValueError):
        load_line_items(None)


def test_dump_keeps_wire_shape():
    text = dump_line_items([{"name": "Paper Reams", "quantity": 10, "unitPrice": 12.5}])
    assert json.loads(text) == [{"name": "Paper Reams", "quantity": 10, "unitPrice": 12.5, "total": 125.0}]
    assert load_line_items(text)[0].total == Decimal("125.00")


def test_aggregate_is_rounded_sum_of_line_totals():
    items = load_line_items(
        [
            {"name": "Pens (Box)", "quantity": 3, "unitPrice": "0.335"},
            {"name": "Folders", "quantity": 3, "unitPrice": "0.335"},
            {"name": "Staplers", "quantity": 1, "unitPrice": "7.10"},
        ]
    )
    assert sum_line_totals(items) == Decimal("9.12")
    assert sum_line_totals([]) == Decimal("0.00")
