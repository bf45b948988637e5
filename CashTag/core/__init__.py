"""
Core package for CashTag: the spreadsheet-as-database data-access layer.

This package includes:

- :mod:`CashTag.core.auth` – Google OAuth2 authentication and credential management.
- :mod:`CashTag.core.service` – Sheets and Drive API transport and worker threads.
- :mod:`CashTag.core.schema` – The ordered table and column registry.
- :mod:`CashTag.core.models` – Typed records stored in the spreadsheet.
- :mod:`CashTag.core.mapper` – Row encode/decode pairs and derived balances.
- :mod:`CashTag.core.database` – Fetch, append and update operations per table.
- :mod:`CashTag.core.provision` – Find-or-create-and-initialize of the database spreadsheet.
- :mod:`CashTag.core.state` – The application's in-memory mirror of all tables.
"""
