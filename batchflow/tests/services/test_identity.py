"""Tests for principals and the users collection."""

import pytest

from batchflow.services import identity
from batchflow.services.exceptions import UserNotFound, ValidationError
from batchflow.services.identity import Principal, principal_id, principal_label
from batchflow.utils.constants import ROLE_FG_STORE_MANAGER, ROLE_PACKING_AREA_MANAGER


class TestPrincipalLabels:
    def test_display_name_wins(self):
        principal = Principal(id="u1", display_name="Ana", email="ana@example.com")
        assert principal_label(principal, "QC Officer") == "Ana"

    def test_email_fallback(self, qc_officer):
        assert principal_label(qc_officer, "QC Officer") == "quinn@example.com"

    def test_role_label_fallback(self):
        assert principal_label(Principal(id="u1"), "QC Officer") == "QC Officer"
        assert principal_label(None, "FG Store Manager") == "FG Store Manager"

    def test_principal_id(self, fg_manager):
        assert principal_id(fg_manager) == "u-fg"
        assert principal_id(None) is None


class TestUsers:
    def test_create_and_get(self, test_db):
        created = identity.create_user("u-1", "Sam", "sam@example.com", role=ROLE_FG_STORE_MANAGER)
        assert created["uid"] == "u-1"
        assert created["status"] == "active"
        assert identity.get_user("u-1")["display_name"] == "Sam"

    def test_duplicate_uid(self, test_db):
        identity.create_user("u-1")
        with pytest.raises(ValidationError):
            identity.create_user("u-1")

    def test_unknown_role(self, test_db):
        with pytest.raises(ValidationError):
            identity.create_user("u-1", role="Janitor")

    def test_blank_uid(self, test_db):
        with pytest.raises(ValidationError):
            identity.create_user("  ")

    def test_get_unknown(self, test_db):
        with pytest.raises(UserNotFound):
            identity.get_user("nobody")

    def test_users_by_role(self, role_users):
        uids = [u["uid"] for u in identity.get_users_by_role(ROLE_PACKING_AREA_MANAGER)]
        assert uids == ["u-pack", "u-pack-2"]

    def test_resolve_principal(self, role_users):
        principal = identity.resolve_principal("u-fg")
        assert principal == Principal(id="u-fg", display_name="Robin Store", role=ROLE_FG_STORE_MANAGER)
        with pytest.raises(UserNotFound):
            identity.resolve_principal("ghost")
