"""Global audit report service."""
