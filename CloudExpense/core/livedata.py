"""Observable state holder used by the controllers.

A :class:`LiveData` keeps a current value and notifies subscribers whenever a new value is
set. Subscribing delivers the current value synchronously, so observers never miss the state
they joined in::

    total = LiveData(Decimal(0))
    unsubscribe = total.subscribe(print)  # prints 0
    total.set_value(Decimal('12.5'))      # prints 12.5
    unsubscribe()

"""
from typing import Any, Callable

from PySide6 import QtCore


class LiveData(QtCore.QObject):
    """Holds a value and emits :attr:`valueChanged` each time it is set.

    Signals:
        valueChanged (object): Emitted with the new value.
    """
    valueChanged = QtCore.Signal(object)

    def __init__(self, value: Any = None, parent: QtCore.QObject = None) -> None:
        super().__init__(parent)
        self._value = value

    @property
    def value(self) -> Any:
        return self._value

    def set_value(self, value: Any) -> None:
        self._value = value
        self.valueChanged.emit(value)

    def subscribe(self, callback: Callable[[Any], Any]) -> Callable[[], None]:
        """Call ``callback`` with the current value now and with every later value.

        Returns:
            A function that unsubscribes the callback. Calling it again is a no-op.
        """
        def slot(value: Any) -> None:
            callback(value)

        callback(self._value)
        self.valueChanged.connect(slot)

        connected = True

        def unsubscribe() -> None:
            nonlocal connected
            if not connected:
                return
            connected = False
            self.valueChanged.disconnect(slot)

        return unsubscribe
