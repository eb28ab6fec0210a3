"""Tests for SQLAlchemy ORM models.

Validates that:
- The three collaborator tables are registered with Base.metadata
- Uniqueness constraints the stores rely on exist
- Column nullability matches how the stores read rows
"""

from sqlalchemy import UniqueConstraint

from studio.models.db import ApiSetting, Base, TeamMember, UsageMetric


def _unique_constraint_names(model) -> set[str]:
    return {
        c.name for c in model.__table__.constraints if isinstance(c, UniqueConstraint) and c.name
    }


class TestAllTablesRegistered:
    def test_table_names(self):
        """Only the tables the generation path reads or writes are mapped."""
        assert set(Base.metadata.tables.keys()) == {"team_members", "api_settings", "usage_metrics"}


class TestTeamMemberModel:
    def test_one_membership_per_org_and_user(self):
        assert "uq_team_members_org_user" in _unique_constraint_names(TeamMember)

    def test_user_lookup_index(self):
        """Membership resolution filters by user_id."""
        index_names = {idx.name for idx in TeamMember.__table__.indexes}
        assert "idx_team_members_user" in index_names

    def test_role_defaults_to_viewer(self):
        assert TeamMember.__table__.c.role.default.arg == "viewer"
        assert not TeamMember.__table__.c.role.nullable


class TestApiSettingModel:
    def test_one_row_per_organization(self):
        assert ApiSetting.__table__.c.organization_id.unique

    def test_provider_fields_nullable(self):
        """A half-configured organization is a valid row (placeholder mode)."""
        for column in ("provider", "model", "encrypted_api_key", "default_params"):
            assert ApiSetting.__table__.c[column].nullable, column


class TestUsageMetricModel:
    def test_one_row_per_org_and_month(self):
        assert "uq_usage_metrics_org_month" in _unique_constraint_names(UsageMetric)

    def test_month_is_yyyy_mm(self):
        assert UsageMetric.__table__.c.month.type.length == 7

    def test_counters_not_nullable(self):
        for column in ("images_generated", "api_calls", "storage_used_mb"):
            assert not UsageMetric.__table__.c[column].nullable, column
