"""Data access for the global report's lookup lists."""

import logging
from typing import Any, Dict, List

from pymongo.database import Database
from pymongo.errors import PyMongoError

from app.reporting.column_registry import OTA_PROVIDERS
from app.reporting.exceptions import ReportExecutionError

logger = logging.getLogger(__name__)

CREDENTIALS_COLLECTION = "PropertyCredentials"
PORTFOLIO_COLLECTION = "Portfolio"
PROPERTY_COLLECTION = "Property"


class GlobalReportDAO:
    """Reads credentials, portfolios and properties to populate filter dropdowns."""

    def __init__(self, db: Database):
        self.db = db

    def get_ota_ids(self) -> List[Dict[str, str]]:
        """Unique ``{ota_id, ota_type}`` pairs sorted by type, then id."""
        return self._credential_pairs("id", "ota_id")

    def get_ota_usernames(self) -> List[Dict[str, str]]:
        """Unique ``{ota_username, ota_type}`` pairs sorted by type, then username."""
        return self._credential_pairs("username", "ota_username")

    def get_encrypted_passwords(self) -> List[Dict[str, str]]:
        """Every stored ``{password, ota_type}`` pair, still encrypted."""
        items: List[Dict[str, str]] = []
        for cred in self._credentials(_fields("password")):
            for provider in OTA_PROVIDERS:
                value = cred.get(f"{provider}_password")
                if value:
                    items.append({"password": value, "ota_type": provider})
        return items

    def get_provider_values(self, provider: str, suffix: str) -> List[str]:
        """Distinct non-empty values of ``<provider>_<suffix>`` across all credentials, sorted."""
        field = f"{provider}_{suffix}"
        values = {cred.get(field) for cred in self._credentials([field])}
        return sorted(value for value in values if value)

    def get_portfolio_contact_emails(self) -> List[str]:
        try:
            emails = self.db[PORTFOLIO_COLLECTION].distinct("contact_email")
        except PyMongoError as e:
            logger.error("Failed to read portfolio contact emails: %s", e)
            raise ReportExecutionError(f"Failed to fetch portfolio contact emails: {e}") from e
        return sorted(email for email in emails if email)

    def get_portfolios(self) -> List[Dict[str, str]]:
        return self._named_items(PORTFOLIO_COLLECTION)

    def get_properties(self) -> List[Dict[str, str]]:
        return self._named_items(PROPERTY_COLLECTION)

    # ===== HELPERS =====

    def _credentials(self, fields: List[str]) -> List[Dict[str, Any]]:
        projection = {field: 1 for field in fields}
        projection["_id"] = 0
        try:
            return list(self.db[CREDENTIALS_COLLECTION].find({}, projection))
        except PyMongoError as e:
            logger.error("Failed to read property credentials: %s", e)
            raise ReportExecutionError(f"Failed to fetch property credentials: {e}") from e

    def _credential_pairs(self, suffix: str, key: str) -> List[Dict[str, str]]:
        pairs = set()
        for cred in self._credentials(_fields(suffix)):
            for provider in OTA_PROVIDERS:
                value = cred.get(f"{provider}_{suffix}")
                if value:
                    pairs.add((provider, str(value)))
        return [{key: value, "ota_type": provider} for provider, value in sorted(pairs)]

    def _named_items(self, collection: str) -> List[Dict[str, str]]:
        try:
            docs = list(self.db[collection].find({}, {"name": 1}).sort("name", 1))
        except PyMongoError as e:
            logger.error("Failed to read %s list: %s", collection, e)
            raise ReportExecutionError(f"Failed to fetch {collection} list: {e}") from e
        return [{"id": str(doc["_id"]), "name": doc.get("name") or ""} for doc in docs]


def _fields(suffix: str) -> List[str]:
    return [f"{provider}_{suffix}" for provider in OTA_PROVIDERS]
