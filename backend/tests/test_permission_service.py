"""Capability checks."""

import pytest

from backoffice.services import permission_service
from backoffice.services.permission_service import ConfigPermissionChecker, PermissionDeniedError

from conftest import ADMIN_ID, CASHIER_ID, OUTSIDER_ID


def test_wildcard_grants_everything():
    checker = ConfigPermissionChecker({1: ["*"]})
    assert all(checker.has_capability(1, cap) for cap in permission_service.CAPABILITIES)


def test_string_and_int_keys_match():
    checker = ConfigPermissionChecker({"7": ["ANNUL_SALE"]})
    assert checker.has_capability(7, "ANNUL_SALE")
    assert not checker.has_capability(7, "ISSUE_INVOICE")


def test_unknown_or_missing_actor_is_denied():
    checker = ConfigPermissionChecker({"1": ["*"]})
    assert not checker.has_capability(None, "CREATE_SALE")
    assert not checker.has_capability(2, "CREATE_SALE")


def test_app_grants(db_session):
    assert permission_service.user_has_capability(ADMIN_ID, "ANNUL_SALE")
    assert permission_service.user_has_capability(CASHIER_ID, "CONFIRM_SALE")
    assert not permission_service.user_has_capability(CASHIER_ID, "ANNUL_SALE")

    with pytest.raises(PermissionDeniedError) as exc_info:
        permission_service.require_capability(OUTSIDER_ID, "VIEW_REPORTS")
    assert exc_info.value.capability == "VIEW_REPORTS"
