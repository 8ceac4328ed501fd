from decimal import Decimal

from storefront.filters import FilterStore, filter_products
from storefront.schemas import FilterOptions, Product


def product(id, name, price, category_id=1, description=""):
    return Product(id=id, name=name, price=Decimal(str(price)), category_id=category_id, description=description, stock=3)


CATALOG = [
    product(1, "Mouse", 25, category_id=1, description="Wireless optical mouse"),
    product(2, "Keyboard", 60, category_id=1, description="Mechanical"),
    product(3, "Desk Lamp", 25, category_id=2, description="LED lamp with USB port"),
    product(4, "Cable", 8, category_id=2, description="USB-C cable"),
    product(5, "Monitor", 180, category_id=1, description="27 inch"),
]


def names(products):
    return [p.name for p in products]


def test_search_matches_name_or_description_case_insensitive():
    result = filter_products(CATALOG, FilterOptions(search_term="usb"))
    assert names(result) == ["Cable", "Desk Lamp"]
    assert names(filter_products(CATALOG, FilterOptions(search_term="MOUSE"))) == ["Mouse"]


def test_category_filter():
    result = filter_products(CATALOG, FilterOptions(category_id=2))
    assert {p.id for p in result} == {3, 4}


def test_price_bounds_are_inclusive():
    result = filter_products(CATALOG, FilterOptions(min_price=Decimal("25"), max_price=Decimal("60")))
    assert {p.id for p in result} == {1, 2, 3}


def test_sort_by_name():
    assert names(filter_products(CATALOG, FilterOptions(sort_by="name"))) == [
        "Cable", "Desk Lamp", "Keyboard", "Monitor", "Mouse",
    ]


def test_price_sorts_are_stable_on_ties():
    asc = filter_products(CATALOG, FilterOptions(sort_by="price-asc"))
    assert [p.id for p in asc] == [4, 1, 3, 2, 5]
    desc = filter_products(CATALOG, FilterOptions(sort_by="price-desc"))
    assert [p.id for p in desc] == [5, 2, 1, 3, 4]


def test_name_sort_is_stable_on_ties():
    twins = [product(1, "Same", 1), product(2, "Same", 2), product(3, "Alpha", 3)]
    assert [p.id for p in filter_products(twins, FilterOptions())] == [3, 1, 2]


def test_name_sort_is_case_sensitive():
    mixed = [product(1, "apple", 1), product(2, "Banana", 1)]
    assert names(filter_products(mixed, FilterOptions())) == ["Banana", "apple"]


def test_filtering_is_idempotent():
    options = FilterOptions(search_term="m", category_id=1, min_price=Decimal("20"), sort_by="price-desc")
    once = filter_products(CATALOG, options)
    assert filter_products(once, options) == once


def test_input_is_not_mutated():
    original = list(CATALOG)
    filter_products(CATALOG, FilterOptions(sort_by="price-desc", search_term="a"))
    assert CATALOG == original


def test_filter_store_merges_partial_updates():
    filters = FilterStore()
    filters.update(search_term="lamp")
    filters.update(sort_by="price-asc")
    assert filters.current().search_term == "lamp"
    assert filters.current().sort_by == "price-asc"


def test_filter_store_normalizes_category():
    filters = FilterStore()
    filters.update(category_id="2")
    assert filters.current().category_id == 2
    filters.update(category_id="")
    assert filters.current().category_id is None


def test_filter_store_reset_and_notify():
    filters = FilterStore()
    seen = []
    filters.options.subscribe(seen.append)
    filters.update(search_term="usb")
    filters.reset()
    assert [o.search_term for o in seen] == ["", "usb", ""]
    assert names(filters.apply(CATALOG))[0] == "Cable"
