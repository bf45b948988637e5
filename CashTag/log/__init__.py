"""
Logging subsystem for CashTag.

Modules:

- :mod:`CashTag.log.log` – Root logger setup, the in-memory :class:`TankHandler`, and the Qt message bridge.
"""
