"""
Unit tests for the global report service with the store and DAO mocked out.
"""

from datetime import datetime
from unittest.mock import Mock

import pytest
from bson import ObjectId

from app.auth.authorization import CurrentUser
from app.query.engine import PaginatedResult
from app.query.stages import Facet, Project
from app.reporting.exceptions import ReportAuthorizationError, ReportValidationError
from app.reporting.schemas import ExportFormat, ReportExportRequest, ReportQuery
from app.reporting.service import GlobalReportService, format_export_value

ADMIN = CurrentUser(user_id="admin-1", role="super_admin")
VIEWER = CurrentUser(user_id="viewer-1", role="portfolio_manager")


def raw_audit(name: str, **extra):
    doc = {
        "_id": ObjectId(),
        "type_of_ota": [],
        "property": {"name": name},
        "start_date": datetime(2024, 3, 5, 14, 30),
    }
    doc.update(extra)
    return doc


@pytest.fixture
def executor():
    return Mock()


@pytest.fixture
def dao():
    return Mock()


@pytest.fixture
def service(executor, dao, resolver):
    return GlobalReportService(executor=executor, dao=dao, resolver=resolver)


class TestAuthorization:
    """Test that authorization comes before any other work"""

    async def test_non_admin_rejected_before_validation(self, service, executor):
        service.validator = Mock()

        with pytest.raises(ReportAuthorizationError, match="Only super admins"):
            await service.get_report(ReportQuery(), VIEWER)

        service.validator.validate.assert_not_called()
        executor.run_paginated.assert_not_called()

    async def test_lookup_lists_require_admin(self, service, dao):
        with pytest.raises(ReportAuthorizationError):
            await service.get_portfolios(VIEWER)
        dao.get_portfolios.assert_not_called()

    def test_clear_cache_requires_admin(self, service):
        with pytest.raises(ReportAuthorizationError):
            service.clear_cache(VIEWER)

    async def test_custom_authorizer(self, executor, dao, resolver):
        authorizer = Mock()
        authorizer.is_authorized.return_value = True
        executor.run_paginated.return_value = PaginatedResult()
        service = GlobalReportService(executor=executor, dao=dao, resolver=resolver, authorizer=authorizer)

        await service.get_report(ReportQuery(), VIEWER)

        authorizer.is_authorized.assert_called_once_with(VIEWER)


class TestGetReport:
    """Test the paginated report flow"""

    async def test_pagination_metadata(self, service, executor):
        executor.run_paginated.return_value = PaginatedResult(
            rows=[raw_audit("Marriott Downtown"), raw_audit("Marriott Airport")], total=7
        )

        response = await service.get_report(ReportQuery(page=2, limit=2), ADMIN)

        assert [row.property_name for row in response.data] == ["Marriott Downtown", "Marriott Airport"]
        assert response.metadata.total_documents == 7
        assert response.metadata.total_pages == 4
        assert response.metadata.current_page == 2
        assert response.metadata.page_size == 2

        pipeline = executor.run_paginated.call_args[0][0]
        assert pipeline.stages[-1].skip == 2
        assert isinstance(pipeline.stages[-1], Facet)

    async def test_empty_result(self, service, executor):
        executor.run_paginated.return_value = PaginatedResult()

        response = await service.get_report(ReportQuery(), ADMIN)

        assert response.data == []
        assert response.metadata.total_documents == 0
        assert response.metadata.total_pages == 0

    async def test_invalid_filter_never_reaches_store(self, service, executor):
        query = ReportQuery.model_validate({"filters": [{"column": "nope", "operator": "eq", "value": 1}]})

        with pytest.raises(ReportValidationError):
            await service.get_report(query, ADMIN)
        executor.run_paginated.assert_not_called()


class TestExport:
    """Test export table construction"""

    async def test_labels_and_formatting(self, service, executor):
        executor.run_export.return_value = [raw_audit("Marriott Downtown", billing_type=None)]
        request = ReportExportRequest(format=ExportFormat.CSV, columns=["propertyName", "startDate", "billingType"])

        table = await service.export_report(request, ADMIN)

        assert table.labels == ["Property", "Start Date", "Billing Type"]
        assert table.records == [{"Property": "Marriott Downtown", "Start Date": "2024-03-05", "Billing Type": ""}]
        assert isinstance(executor.run_export.call_args[0][0].stages[-1], Project)

    async def test_default_columns_exclude_filter_only(self, service, executor):
        executor.run_export.return_value = []

        table = await service.export_report(ReportExportRequest(format=ExportFormat.XLSX), ADMIN)

        assert "Audit ID" not in table.labels
        assert table.labels[0] == "Portfolio"
        assert len(table) == 0

    async def test_unknown_export_column(self, service):
        request = ReportExportRequest(format=ExportFormat.CSV, columns=["propertyName", "bogus"])

        with pytest.raises(ReportValidationError, match="bogus"):
            await service.export_report(request, ADMIN)

    def test_format_export_value(self):
        assert format_export_value(None) == ""
        assert format_export_value(datetime(2024, 1, 2, 3, 4)) == "2024-01-02"
        assert format_export_value(["expedia", "agoda"]) == "expedia, agoda"
        assert format_export_value(12.5) == 12.5


class TestLookups:
    """Test list endpoints backed by the DAO"""

    def test_columns_metadata(self, service):
        keys = [col.key for col in service.get_columns_metadata(ADMIN).columns]

        assert "propertyName" in keys
        assert "auditId" not in keys

    async def test_provider_ids(self, service, dao):
        dao.get_provider_values.return_value = ["EXP-1", "EXP-2"]

        response = await service.get_provider_ids("expedia", ADMIN)

        assert response.data == ["EXP-1", "EXP-2"]
        dao.get_provider_values.assert_called_once_with("expedia", "id")

    async def test_unknown_provider(self, service, dao):
        with pytest.raises(ReportValidationError, match="Unknown OTA provider"):
            await service.get_provider_usernames("trivago", ADMIN)
        dao.get_provider_values.assert_not_called()

    async def test_provider_passwords_filtered_and_sorted(self, service, dao, encryption):
        dao.get_encrypted_passwords.return_value = [
            {"password": encryption.encrypt("zz"), "ota_type": "agoda"},
            {"password": encryption.encrypt("aa"), "ota_type": "agoda"},
            {"password": encryption.encrypt("bb"), "ota_type": "expedia"},
        ]

        response = await service.get_provider_passwords("agoda", ADMIN)

        assert response.data == ["aa", "zz"]

    async def test_ota_passwords_cached_until_cleared(self, service, dao, encryption):
        dao.get_encrypted_passwords.return_value = [{"password": encryption.encrypt("pw"), "ota_type": "booking"}]

        await service.get_ota_passwords(ADMIN)
        await service.get_ota_passwords(ADMIN)
        assert dao.get_encrypted_passwords.call_count == 1

        service.clear_cache(ADMIN)
        response = await service.get_ota_passwords(ADMIN)
        assert dao.get_encrypted_passwords.call_count == 2
        assert response.data[0].password == "pw"

    async def test_named_items(self, service, dao):
        dao.get_properties.return_value = [{"id": "p1", "name": "Hilton Bay"}]

        response = await service.get_properties(ADMIN)

        assert response.data[0].name == "Hilton Bay"
