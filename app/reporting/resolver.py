"""Turns raw aggregation documents into report rows, decrypting OTA passwords on the way."""

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from bson import ObjectId

from app.reporting.column_registry import OTA_PROVIDERS
from app.reporting.schemas import OtaPasswordItem, ReportRow
from app.security.cache import TTLCache
from app.security.encryption import EncryptionService
from app.security.parallel import ParallelProcessor

logger = logging.getLogger(__name__)

PASSWORD_LIST_KEY = "ota-passwords"
OTA_SEPARATOR = ", "


class SecureFieldResolver:
    """
    Decrypts each distinct ciphertext once per batch and builds ``ReportRow``s.

    Decrypted values are cached per ciphertext; the bulk password list is
    cached as a whole under one key per dataset. A value that fails to
    decrypt becomes ``None`` in rows and is left out of lists.
    """

    def __init__(
        self,
        encryption: EncryptionService,
        processor: ParallelProcessor,
        value_cache: TTLCache,
        list_cache: TTLCache,
    ):
        self.encryption = encryption
        self.processor = processor
        self.value_cache = value_cache
        self.list_cache = list_cache

    # ===== ROWS =====

    def resolve_rows(self, docs: List[Mapping[str, Any]]) -> List[ReportRow]:
        ciphertexts = [
            ciphertext
            for doc in docs
            for ciphertext in _row_ciphertexts(doc)
        ]
        plaintexts = self.decrypt_values(ciphertexts)
        return [self._to_row(doc, plaintexts) for doc in docs]

    def decrypt_values(self, ciphertexts: Iterable[str]) -> Dict[str, str]:
        """Decrypt each distinct ciphertext, using the cache where it has a live entry."""
        resolved: Dict[str, str] = {}
        misses: List[str] = []
        for ciphertext in dict.fromkeys(ciphertexts):
            cached = self.value_cache.get(ciphertext)
            if cached is not None:
                resolved[ciphertext] = cached
            else:
                misses.append(ciphertext)

        if misses:
            decrypted = self.processor.map(self.encryption.decrypt, misses)
            for ciphertext, plaintext in decrypted.items():
                self.value_cache.set(ciphertext, plaintext)
            resolved.update(decrypted)
            failed = len(misses) - len(decrypted)
            if failed:
                logger.warning("%d of %d credential values could not be decrypted", failed, len(misses))
        return resolved

    def _to_row(self, doc: Mapping[str, Any], plaintexts: Mapping[str, str]) -> ReportRow:
        prop = _sub(doc, "property")
        portfolio = _sub(doc, "portfolio")
        credentials = _sub(doc, "credentials")
        providers = ota_providers(doc.get("type_of_ota"))

        passwords = [
            plaintexts.get(credentials.get(f"{provider}_password"))
            for provider in providers
            if credentials.get(f"{provider}_password")
        ]

        per_provider = {}
        for provider in OTA_PROVIDERS:
            per_provider[f"{provider}_id"] = _text(credentials.get(f"{provider}_id"))
            per_provider[f"{provider}_username"] = _text(credentials.get(f"{provider}_username"))

        return ReportRow(
            audit_id=_id_text(doc.get("_id")) or "",
            portfolio_id=_id_text(prop.get("portfolio_id")),
            portfolio_name=portfolio.get("name") or "",
            property_id=_id_text(doc.get("property_id")),
            property_name=prop.get("name") or "",
            property_is_active=prop.get("is_active"),
            service_type=_sub(doc, "serviceType").get("type"),
            billing_type=doc.get("billing_type"),
            ota_type=providers,
            ota_id=_join(credentials.get(f"{provider}_id") for provider in providers),
            ota_username=_join(credentials.get(f"{provider}_username") for provider in providers),
            ota_password=_join(passwords),
            audit_status=_sub(doc, "auditStatus").get("status"),
            batch_no=_text(_sub(doc, "batch").get("batch_no")),
            start_date=doc.get("start_date"),
            end_date=doc.get("end_date"),
            next_due_date=prop.get("next_due_date"),
            currency=_sub(doc, "currency").get("code") or "",
            currency_symbol=_sub(doc, "currency").get("symbol"),
            amount_collectable=doc.get("amount_collectable"),
            amount_confirmed=doc.get("amount_confirmed"),
            portfolio_contact_email=portfolio.get("contact_email"),
            is_archived=bool(doc.get("is_archived", False)),
            created_at=doc.get("created_at"),
            **per_provider,
        )

    # ===== PASSWORD LISTS =====

    def decrypt_password_list(
        self,
        load: Callable[[], List[Mapping[str, Any]]],
        cache_key: str = PASSWORD_LIST_KEY,
    ) -> List[OtaPasswordItem]:
        """Decrypted ``{password, otaType}`` items, deduplicated and sorted by type then password.

        ``load`` is only called when the list cache has no live entry for ``cache_key``.
        """
        return self.list_cache.get_or_compute(cache_key, lambda: self._decrypt_items(load()))

    def _decrypt_items(self, items: List[Mapping[str, Any]]) -> List[OtaPasswordItem]:
        plaintexts = self.decrypt_values(item["password"] for item in items if item.get("password"))

        unique = {
            OtaPasswordItem(password=plaintexts[item["password"]], ota_type=item["ota_type"])
            for item in items
            if item.get("password") in plaintexts
        }
        result = sorted(unique, key=lambda item: (item.ota_type, item.password))
        logger.info("Decrypted %d OTA passwords from %d stored values", len(result), len(items))
        return result

    def invalidate(self) -> None:
        self.value_cache.invalidate()
        self.list_cache.invalidate()


def ota_providers(discriminator: Any) -> List[str]:
    """Known providers named by an audit's ``type_of_ota`` list, lowercased, in list order.

    Anything other than a list means the audit has no OTA.
    """
    if not isinstance(discriminator, list):
        return []
    providers: List[str] = []
    for value in discriminator:
        name = str(value).lower()
        if name in OTA_PROVIDERS and name not in providers:
            providers.append(name)
    return providers


def _row_ciphertexts(doc: Mapping[str, Any]) -> List[str]:
    credentials = _sub(doc, "credentials")
    values = (credentials.get(f"{provider}_password") for provider in ota_providers(doc.get("type_of_ota")))
    return [value for value in values if isinstance(value, str) and value]


def _sub(doc: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = doc.get(key)
    return value if isinstance(value, Mapping) else {}


def _id_text(value: Any) -> Optional[str]:
    if isinstance(value, ObjectId):
        return str(value)
    return _text(value)


def _text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _join(values: Iterable[Any]) -> Optional[str]:
    present = [str(value) for value in values if value not in (None, "")]
    return OTA_SEPARATOR.join(present) if present else None
