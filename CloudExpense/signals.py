"""Application-wide Qt signals for CloudExpense.

Signals announce configuration changes, session transitions, expense mutations and errors
to any interested observer without coupling the emitting module to it.
"""
import logging

from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for config, session, expense and error events."""
    configSectionChanged = QtCore.Signal(str)

    signedIn = QtCore.Signal(object)  # Identity
    signedOut = QtCore.Signal()

    expenseAdded = QtCore.Signal(str)
    expenseUpdated = QtCore.Signal(str)
    expenseDeleted = QtCore.Signal(str)

    error = QtCore.Signal(str)

    def __init__(self):
        super().__init__()
        self._connect_signals()

    def _connect_signals(self):
        self.signedIn.connect(lambda identity: logging.debug(f'Signed in as {identity.uid}'))
        self.signedOut.connect(lambda: logging.debug('Signed out'))


signals = Signals()
