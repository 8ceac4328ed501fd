from storefront.cell import ValueCell


def test_subscriber_gets_current_value_then_updates():
    cell = ValueCell(1)
    seen = []
    cell.subscribe(seen.append)
    cell.set(2)
    cell.set(3)
    assert seen == [1, 2, 3]
    assert cell.value == 3


def test_unsubscribe_stops_notifications():
    cell = ValueCell("a")
    seen = []
    unsubscribe = cell.subscribe(seen.append)
    unsubscribe()
    cell.set("b")
    assert seen == ["a"]


def test_subscribers_notified_in_order():
    cell = ValueCell(0)
    order = []
    cell.subscribe(lambda v: order.append(("first", v)))
    cell.subscribe(lambda v: order.append(("second", v)))
    order.clear()
    cell.set(5)
    assert order == [("first", 5), ("second", 5)]
