"""Application-wide Qt signals for CashTag.

A UI binds to these signals to follow authentication, configuration, data and
provisioning events without importing the data-access layer directly.
"""
from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for configuration, data and provisioning events."""
    authenticationRequested = QtCore.Signal()  # Interactive sign-in needed

    configSectionChanged = QtCore.Signal(str)  # Section name

    dataAboutToBeFetched = QtCore.Signal()
    dataFetched = QtCore.Signal()
    dataCleared = QtCore.Signal()

    provisionProgress = QtCore.Signal(str, int)  # Step message, percentage
    provisionStateChanged = QtCore.Signal(str)

    showLogs = QtCore.Signal()

    error = QtCore.Signal(str)


signals = Signals()
