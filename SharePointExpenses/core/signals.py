"""Application-wide Qt signals for SharePointExpenses.

The signal bus connects the session lifecycle, configuration changes and error
reporting to the synchronization hooks and to whatever UI is built on top.
"""
from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for configuration, session and error events."""
    authenticationRequested = QtCore.Signal()

    configSectionChanged = QtCore.Signal(str)  # Section name

    sessionStarted = QtCore.Signal()
    sessionAboutToEnd = QtCore.Signal()
    sessionEnded = QtCore.Signal()

    # Emits the entity kind (lists config key) of the list that was written to
    listChanged = QtCore.Signal(str)

    error = QtCore.Signal(str)


signals = Signals()
