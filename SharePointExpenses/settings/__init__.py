"""
Settings package.

- :mod:`SharePointExpenses.settings.lib` – sharepoint.json loading, validation and persistence,
  environment overrides and site url normalization.
"""
