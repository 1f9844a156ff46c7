"""Global audit report: column catalog, validation, service and API."""
