from typing import Callable, Generic, List, TypeVar

T = TypeVar("T")


class ValueCell(Generic[T]):
    """
    Holds one current value and pushes every new value to its subscribers.

    Subscribers are called synchronously, in subscription order, on each set().
    A new subscriber immediately receives the current value.
    """

    def __init__(self, initial: T):
        self._value = initial
        self._subscribers: List[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        self._value = value
        for callback in list(self._subscribers):
            callback(value)

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it."""
        self._subscribers.append(callback)
        callback(self._value)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe
