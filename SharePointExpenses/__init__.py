"""
SharePointExpenses: expense tracking on top of SharePoint lists.

This package provides:

- :mod:`SharePointExpenses.core` – Authentication, Microsoft Graph access, metadata and lookup caches,
  per-entity gateways and the Qt synchronization objects the UI binds to.
- :mod:`SharePointExpenses.data` – pandas aggregates over the synchronized expenses.
- :mod:`SharePointExpenses.settings` – The sharepoint.json configuration and its schema validation.
- :mod:`SharePointExpenses.status` – Status codes and the typed exceptions raised by the sync layer.
- :mod:`SharePointExpenses.log` – Logging setup and the in-memory log tank.

Run ``python -m SharePointExpenses --help`` to inspect the remote lists from the command line.
"""

import sys

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('SharePointExpenses requires Python 3.11 or higher.')

__version__ = '0.1.0'
__license__ = 'GPL-3.0'
__description__ = 'SharePointExpenses: expense tracking synchronized with SharePoint lists.'

from .log import log

log.setup_logging()
