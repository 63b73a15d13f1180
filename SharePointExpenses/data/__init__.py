"""
Data analytics.

- :mod:`SharePointExpenses.data.data` – Expense DataFrames and the dashboard/report aggregates.
"""
