"""
CashTag data package: spending analytics.

This package provides:

- :mod:`CashTag.data.data` – pandas summaries of the in-memory transactions (:func:`CashTag.data.data.monthly_total`, :func:`CashTag.data.data.personal_spending`, :func:`CashTag.data.data.category_totals`, :func:`CashTag.data.data.daily_spending`, :func:`CashTag.data.data.month_comparison`) for dashboard and trends views.
"""
