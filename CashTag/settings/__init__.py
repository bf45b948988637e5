"""
Settings package: configuration API.

This package provides:

- :mod:`CashTag.settings.lib` – Settings management, schema validation and config paths.
"""
