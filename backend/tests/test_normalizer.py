from decimal import Decimal

from services.normalizer import PLACEHOLDER_NAME, normalize
from services.pricing import compute_totals


def test_missing_or_unknown_size_defaults_to_100ml():
    lines = normalize([
        {"product_id": "P1", "quantity": 1},
        {"productId": "P2", "size": "30ml", "quantity": 2},
    ])
    assert [(l.product_id, l.size) for l in lines] == [("P1", "100ml"), ("P2", "100ml")]
    assert all(l.unit_price == Decimal("799") for l in lines)


def test_denormalized_price_is_ignored_for_cart_math():
    lines = normalize([{
        "product_id": "P1", "selected_size": "20ml", "quantity": 2,
        "product_name": "Aura Noir", "product_price": 10,
    }])
    assert lines[0].unit_price == Decimal("349")
    assert lines[0].line_total == Decimal("698")


def test_rows_with_same_identity_are_summed():
    lines = normalize([
        {"product_id": "P", "size": "50ml", "quantity": 2},
        {"product_id": "Q", "size": "50ml", "quantity": 1},
        {"product_id": "P", "size": "50ml", "quantity": 2},
    ])
    assert len(lines) == 2
    assert lines[0].product_id == "P"
    assert lines[0].quantity == 4


def test_same_product_in_two_sizes_stays_two_lines():
    lines = normalize([
        {"product_id": "P", "size": "50ml", "quantity": 1},
        {"product_id": "P", "size": "100ml", "quantity": 1},
    ])
    assert [l.key for l in lines] == [("P", "50ml"), ("P", "100ml")]


def test_non_positive_and_garbage_quantities_are_dropped():
    lines = normalize([
        {"product_id": "P1", "quantity": 0},
        {"product_id": "P2", "quantity": -3},
        {"product_id": "P3", "quantity": "two"},
        {"product_id": "P4", "quantity": True},
        {"quantity": 2},
        {"product_id": "P5", "quantity": 1},
    ])
    assert [l.product_id for l in lines] == ["P5"]


def test_order_follows_first_occurrence():
    lines = normalize([
        {"product_id": "C", "quantity": 1},
        {"product_id": "A", "quantity": 1},
        {"product_id": "B", "quantity": 1},
        {"product_id": "A", "quantity": 1},
    ])
    assert [l.product_id for l in lines] == ["C", "A", "B"]


def test_remote_row_without_product_gets_placeholder_but_still_counts():
    lines = normalize([
        {"product_id": "gone", "selected_size": "100ml", "quantity": 2, "product_name": None},
        {"product_id": "P2", "selected_size": "100ml", "quantity": 1, "product_name": "Velvet Oud"},
    ])
    assert lines[0].name == PLACEHOLDER_NAME
    assert lines[0].stale is True
    assert lines[1].stale is False
    assert compute_totals(lines).subtotal == Decimal("2397")


def test_guest_rows_use_catalog_snapshots():
    snapshots = {"P1": {"name": "Aura Noir", "images": ["/noir.jpg"]}}
    lines = normalize(
        [{"product_id": "P1", "quantity": 1}, {"product_id": "P2", "quantity": 1}],
        snapshots,
    )
    assert lines[0].name == "Aura Noir"
    assert lines[0].images == ("/noir.jpg",)
    assert lines[1].stale is True


def test_json_encoded_images_are_decoded():
    lines = normalize([{
        "product_id": "P1", "selected_size": "50ml", "quantity": 1,
        "product_name": "Aura Noir", "product_images": '["/a.jpg", "/b.jpg"]',
    }])
    assert lines[0].images == ("/a.jpg", "/b.jpg")


def test_guest_and_remote_shapes_price_identically():
    guest_rows = [
        {"product_id": "P1", "size": "100ml", "quantity": 2},
        {"productId": "P2", "quantity": 1},
        {"product_id": "P3", "size": "20ml", "quantity": 3},
    ]
    remote_rows = [
        {"id": "r1", "user_id": "u1", "product_id": "P1", "selected_size": "100ml", "quantity": 2,
         "product_name": "One", "product_price": 1},
        {"id": "r2", "user_id": "u1", "product_id": "P2", "selected_size": None, "quantity": 1,
         "product_name": "Two", "product_price": 2},
        {"id": "r3", "user_id": "u1", "product_id": "P3", "selected_size": "20ml", "quantity": 3,
         "product_name": "Three", "product_price": 3},
    ]
    assert compute_totals(normalize(guest_rows)) == compute_totals(normalize(remote_rows))


def test_line_item_to_dict():
    line = normalize([{"product_id": "P1", "size": "50ml", "quantity": 3, "product_name": "Aura Noir"}])[0]
    assert line.to_dict() == {
        "product_id": "P1",
        "product_name": "Aura Noir",
        "product_images": [],
        "selected_size": "50ml",
        "quantity": 3,
        "product_price": "599.00",
        "total_price": "1797.00",
        "stale": False,
    }
