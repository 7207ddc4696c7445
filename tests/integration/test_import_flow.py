"""Integration tests for the import flow.

This module tests complete flows from CSV input through mapping, validation,
edits and deletes to the finalized records.
"""

import json

import pytest

from backend.importer import (
    CUSTOM,
    IGNORE,
    ColumnMapping,
    CustomFieldsDisabledError,
    FieldSpec,
    FieldType,
    ImportConfig,
    ImportSession,
    MappingIncompleteError,
    RowLimitExceededError,
    UniqueRule,
    UnresolvedErrorsError,
    load_field_specs,
    load_mapping_selections,
)
from backend.importer.models import DiagnosticOrigin


@pytest.fixture
def email_field():
    """Required, unique email field."""
    return FieldSpec(
        key="email",
        display_name="Email",
        type=FieldType.EMAIL,
        required=True,
        rules=[UniqueRule()],
    )


class TestImportWorkflow:
    """Test end-to-end import scenarios."""

    def test_duplicate_and_missing_email(self, email_field):
        """Test the duplicate/required scenario through to finalize."""
        session = ImportSession([email_field], ImportConfig(max_rows=10))
        source = b"email,name\na@x.com,A\na@x.com,B\n,C\n"

        manager = session.run(source, {"email": "email", "name": IGNORE})
        rows = manager.rows

        assert [r.index for r in rows] == [0, 1, 2]
        assert rows[0].diagnostics["email"].origin == DiagnosticOrigin.TABLE
        assert rows[1].diagnostics["email"].origin == DiagnosticOrigin.TABLE
        assert rows[2].diagnostics["email"].origin == DiagnosticOrigin.ROW
        assert rows[2].diagnostics["email"].message == "required"

        with pytest.raises(UnresolvedErrorsError):
            session.finalize(manager)

        manager.delete_rows([1])
        manager.delete_rows([2])

        assert session.finalize(manager) == [{"email": "a@x.com"}]

    def test_suggested_mappings_and_edits(self, tmp_path):
        """Test a file mapped by suggestion and repaired by edits."""
        fields = [
            FieldSpec(key="name", display_name="Full Name", required=True),
            FieldSpec(key="email", type=FieldType.EMAIL, required=True, rules=[UniqueRule()]),
            FieldSpec(key="age", type=FieldType.NUMBER),
        ]
        path = tmp_path / "people.csv"
        path.write_text(
            "Full Name,E-mail,Age\n"
            "Ada,ada@x.com,36\n"
            "Alan,not-an-email,forty\n",
            encoding="utf-8",
        )
        session = ImportSession(fields, ImportConfig(max_rows=10))

        manager = session.run(path)

        assert manager.error_count == 1
        assert manager.rows[1].diagnostics["email"].message == "invalid email"
        assert manager.rows[1].diagnostics["age"].message == "invalid number"

        manager.edit_cell(1, "email", "alan@x.com")
        manager.edit_cell(1, "age", "41")

        assert session.finalize(manager) == [
            {"name": "Ada", "email": "ada@x.com", "age": 36},
            {"name": "Alan", "email": "alan@x.com", "age": 41},
        ]

    def test_custom_fields_nested(self, email_field):
        """Test custom columns are packaged with the session policy."""
        config = ImportConfig(
            max_rows=10,
            enable_custom_fields=True,
            custom_field_return_type="json-string",
        )
        session = ImportSession([email_field], config)

        manager = session.run(
            b"email,notes,internal\na@x.com,vip,1\n",
            {"email": "email", "notes": CUSTOM, "internal": IGNORE},
        )
        records = session.finalize(manager)

        assert records[0]["email"] == "a@x.com"
        assert json.loads(records[0]["custom_fields"]) == {"notes": "vip"}

    def test_custom_fields_disabled(self, email_field):
        """Test custom columns are refused when disabled."""
        session = ImportSession([email_field], ImportConfig(max_rows=10))

        with pytest.raises(CustomFieldsDisabledError):
            session.run(b"email,notes\na@x.com,vip\n", {"email": "email", "notes": CUSTOM})

    def test_required_field_unmapped(self, email_field):
        """Test loading fails before any row is validated."""
        session = ImportSession([email_field], ImportConfig(max_rows=10))
        table = session.parse(b"contact\na@x.com\n")

        with pytest.raises(MappingIncompleteError):
            session.load(table, [ColumnMapping.ignored("contact")])

    def test_row_cap(self, email_field):
        """Test the session row cap aborts the import."""
        session = ImportSession([email_field], ImportConfig(max_rows=2))

        with pytest.raises(RowLimitExceededError):
            session.run(b"email\na@x.com\nb@x.com\nc@x.com\n")

    def test_yaml_configured_import(self, tmp_path):
        """Test schema and mapping files drive an import."""
        schema = tmp_path / "schema.yaml"
        schema.write_text(
            "fields:\n"
            "  - key: sku\n"
            "    display_name: SKU\n"
            "    required: true\n"
            "    rules:\n"
            "      - rule: unique\n"
            "  - key: price\n"
            "    type: number\n",
            encoding="utf-8",
        )
        mappings = tmp_path / "mappings.yaml"
        mappings.write_text("mappings:\n  Code: sku\n  Cost: price\n", encoding="utf-8")

        session = ImportSession(load_field_specs(schema), ImportConfig(max_rows=10))
        manager = session.run(
            b"Code,Cost\n007,1.50\n008,2\n",
            load_mapping_selections(mappings),
        )

        assert session.finalize(manager) == [
            {"sku": "007", "price": 1.5},
            {"sku": "008", "price": 2},
        ]

    def test_template_round_trip(self, email_field):
        """Test a generated template imports cleanly with suggested mappings."""
        fields = [
            FieldSpec(key="name", display_name="Full Name", required=True),
            email_field,
            FieldSpec(key="active", type=FieldType.BOOLEAN),
        ]
        session = ImportSession(fields, ImportConfig(max_rows=10))

        manager = session.run(session.template().encode("utf-8"))

        assert session.finalize(manager) == [
            {"name": "Example Text", "email": "example@email.com", "active": True}
        ]
