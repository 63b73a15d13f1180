"""
Logging subsystem.

Modules:

- :mod:`SharePointExpenses.log.log` – Root logger setup, the in-memory :class:`TankHandler`
  and the bridge routing Qt messages into Python logging.
"""
