"""
Core services.

- :mod:`SharePointExpenses.core.auth` – MSAL token acquisition and the persisted token cache.
- :mod:`SharePointExpenses.core.graph` – The Microsoft Graph HTTP client and its error mapping.
- :mod:`SharePointExpenses.core.metadata` – Session-scoped site, list and drive id cache.
- :mod:`SharePointExpenses.core.columns` – Column descriptor lookup and schema validation.
- :mod:`SharePointExpenses.core.schema` – Logical fields of each entity kind and their column names.
- :mod:`SharePointExpenses.core.models` – Entity dataclasses.
- :mod:`SharePointExpenses.core.lookup` – Business key to row id resolution.
- :mod:`SharePointExpenses.core.gateway` – Create/read/update/delete per entity kind.
- :mod:`SharePointExpenses.core.library` – Document library uploads and downloads.
- :mod:`SharePointExpenses.core.attachments` – Uploading expense attachments to the document library.
- :mod:`SharePointExpenses.core.session` – The object owning all caches for one signed-in user.
- :mod:`SharePointExpenses.core.service` – Worker threads for blocking remote calls.
- :mod:`SharePointExpenses.core.signals` – Application-wide Qt signals.
- :mod:`SharePointExpenses.core.sync` – Qt objects holding the synchronized collections.
"""
