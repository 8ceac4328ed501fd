from typing import List, Sequence

from .cell import ValueCell
from .schemas import FilterOptions, Product


def filter_products(products: Sequence[Product], options: FilterOptions) -> List[Product]:
    """
    Apply search, category and price bounds, then sort.

    Steps run in order: search text against name or description
    (case-insensitive), exact category, inclusive min price, inclusive max
    price, stable sort by the chosen key. The input is never mutated.
    """
    filtered = list(products)

    if options.search_term:
        term = options.search_term.lower()
        filtered = [
            p for p in filtered
            if term in p.name.lower() or term in (p.description or "").lower()
        ]

    if options.category_id is not None:
        filtered = [p for p in filtered if p.category_id == options.category_id]

    if options.min_price is not None:
        filtered = [p for p in filtered if p.price >= options.min_price]
    if options.max_price is not None:
        filtered = [p for p in filtered if p.price <= options.max_price]

    # sorted() is stable: ties keep their input order.
    if options.sort_by == "name":
        filtered = sorted(filtered, key=lambda p: p.name)
    elif options.sort_by == "price-asc":
        filtered = sorted(filtered, key=lambda p: p.price)
    elif options.sort_by == "price-desc":
        filtered = sorted(filtered, key=lambda p: p.price, reverse=True)

    return filtered


class FilterStore:
    """Current filter options behind a value cell."""

    def __init__(self):
        self.options = ValueCell[FilterOptions](FilterOptions())

    def current(self) -> FilterOptions:
        return self.options.value

    def update(self, **changes):
        # A category picked from a form may arrive as "" (cleared) or "3".
        if "category_id" in changes:
            value = changes["category_id"]
            changes["category_id"] = None if value in (None, "") else int(value)
        merged = self.options.value.model_dump()
        merged.update(changes)
        self.options.set(FilterOptions.model_validate(merged))

    def reset(self):
        self.options.set(FilterOptions())

    def apply(self, products: Sequence[Product]) -> List[Product]:
        return filter_products(products, self.options.value)
