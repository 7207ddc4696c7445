"""Unit tests for column mapping.

This module tests row projection, mapping-set validation, mapping building
from selections and suggested mappings.
"""

import pytest
from pydantic import ValidationError

from backend.importer.exceptions import (
    CustomFieldsDisabledError,
    DuplicateFieldError,
    MappingConflictError,
    MappingIncompleteError,
    UnknownFieldError,
)
from backend.importer.mapper import (
    CUSTOM,
    IGNORE,
    ColumnMapper,
    build_mappings,
    map_row,
    similarity,
    suggest_mappings,
    validate_mappings,
)
from backend.importer.models import ColumnMapping, FieldSpec, MappingStatus, RequiredRule


class TestColumnMappingModel:
    """Test ColumnMapping constructors and invariants."""

    def test_constructors(self, email_field):
        """Test ignored, custom and mapped constructors."""
        ignored = ColumnMapping.ignored("Notes")
        custom = ColumnMapping.custom("Notes")
        mapped = ColumnMapping.mapped("E-mail", email_field)

        assert ignored.target_key is None and not ignored.is_active
        assert custom.target_key == "Notes" and custom.status == MappingStatus.CUSTOM
        assert mapped.target_key == "email"
        assert mapped.field_type == email_field.type
        assert mapped.display_name == "Email"

    def test_custom_defaults_target_to_column(self):
        """Test a custom mapping without a target uses the column name."""
        mapping = ColumnMapping(source_column="Notes", status="custom")
        assert mapping.target_key == "Notes"

    def test_ignored_with_target_rejected(self):
        """Test an ignored mapping cannot carry a target key."""
        with pytest.raises(ValidationError):
            ColumnMapping(source_column="a", status="ignored", target_key="a")

    def test_mapped_without_target_rejected(self):
        """Test a mapped mapping needs a target key."""
        with pytest.raises(ValidationError):
            ColumnMapping(source_column="a", status="mapped")

    def test_ids_are_unique(self):
        """Test each mapping gets its own id."""
        assert ColumnMapping.ignored("a").id != ColumnMapping.ignored("a").id


class TestMapRow:
    """Test projection of raw rows."""

    def test_projects_active_columns(self, email_field):
        """Test mapped and custom columns are copied and ignored ones dropped."""
        mappings = [
            ColumnMapping.mapped("E-mail", email_field),
            ColumnMapping.custom("Notes"),
            ColumnMapping.ignored("Internal"),
        ]
        row = {"E-mail": "a@x.com", "Notes": "vip", "Internal": 7}

        assert map_row(row, mappings) == {"email": "a@x.com", "Notes": "vip"}

    def test_missing_column_maps_to_none(self, email_field):
        """Test a source column absent from the row yields None."""
        assert map_row({}, [ColumnMapping.mapped("E-mail", email_field)]) == {"email": None}

    def test_independent_of_row_order(self, email_field):
        """Test each row is projected on its own."""
        mappings = [ColumnMapping.mapped("E-mail", email_field)]
        rows = [{"E-mail": "a@x.com"}, {"E-mail": "b@x.com"}]

        forward = [map_row(r, mappings) for r in rows]
        backward = [map_row(r, mappings) for r in reversed(rows)]

        assert forward == list(reversed(backward))


class TestValidateMappings:
    """Test mapping-set validation."""

    def test_valid_set(self, contact_fields, contact_mappings):
        """Test a complete mapping set passes."""
        validate_mappings(contact_mappings, contact_fields)

    def test_duplicate_target(self, email_field):
        """Test two columns on one field conflict."""
        mappings = [
            ColumnMapping.mapped("E-mail", email_field),
            ColumnMapping.mapped("Email 2", email_field),
        ]

        with pytest.raises(MappingConflictError) as exc_info:
            validate_mappings(mappings, [email_field])

        assert exc_info.value.target_key == "email"
        assert exc_info.value.details["columns"] == ["E-mail", "Email 2"]

    def test_custom_colliding_with_field(self, email_field):
        """Test a custom column named like a mapped field conflicts."""
        mappings = [
            ColumnMapping.mapped("E-mail", email_field),
            ColumnMapping.custom("email"),
        ]

        with pytest.raises(MappingConflictError):
            validate_mappings(mappings, [email_field])

    def test_unknown_target(self, email_field):
        """Test a mapping onto an undeclared field is rejected."""
        phone = FieldSpec(key="phone")
        mappings = [ColumnMapping.mapped("E-mail", email_field), ColumnMapping.mapped("Tel", phone)]

        with pytest.raises(UnknownFieldError):
            validate_mappings(mappings, [email_field])

    def test_custom_disabled(self, email_field):
        """Test custom columns are refused when the feature is off."""
        mappings = [ColumnMapping.mapped("E-mail", email_field), ColumnMapping.custom("Notes")]

        with pytest.raises(CustomFieldsDisabledError) as exc_info:
            validate_mappings(mappings, [email_field], enable_custom_fields=False)

        assert exc_info.value.columns == ["Notes"]

    def test_required_field_unmapped(self, contact_fields):
        """Test missing required fields are listed by label."""
        mappings = [ColumnMapping.mapped("Age", contact_fields[2])]

        with pytest.raises(MappingIncompleteError) as exc_info:
            validate_mappings(mappings, contact_fields)

        assert exc_info.value.missing_fields == ["Full Name", "Email"]
        assert exc_info.value.message == "Please map the required fields: Full Name, Email"

    def test_required_rule_counts_as_required(self):
        """Test a Required rule makes a field required for mapping purposes."""
        field = FieldSpec(key="sku", rules=[RequiredRule()])

        with pytest.raises(MappingIncompleteError):
            validate_mappings([ColumnMapping.ignored("sku")], [field])

    def test_config_errors_are_not_recoverable(self, email_field):
        """Test configuration errors are flagged as not recoverable."""
        with pytest.raises(MappingIncompleteError) as exc_info:
            validate_mappings([], [email_field])

        assert exc_info.value.recoverable is False
        assert exc_info.value.details["config_section"] == "mappings"


class TestBuildMappings:
    """Test building mappings from per-column selections."""

    def test_selections(self, contact_fields):
        """Test field, ignore and custom selections."""
        columns = ["Full Name", "E-mail", "Notes", "Internal"]
        selections = {"Full Name": "name", "E-mail": "email", "Notes": CUSTOM, "Internal": IGNORE}

        mappings = build_mappings(columns, selections, contact_fields)

        assert [m.status for m in mappings] == [
            MappingStatus.MAPPED,
            MappingStatus.MAPPED,
            MappingStatus.CUSTOM,
            MappingStatus.IGNORED,
        ]
        assert [m.target_key for m in mappings] == ["name", "email", "Notes", None]

    def test_unselected_columns_ignored(self, contact_fields):
        """Test columns without a selection default to ignored."""
        mappings = build_mappings(["x"], {}, contact_fields)
        assert mappings[0].status == MappingStatus.IGNORED

    def test_unknown_selection(self, contact_fields):
        """Test selecting an undeclared field raises."""
        with pytest.raises(UnknownFieldError):
            build_mappings(["x"], {"x": "nope"}, contact_fields)


class TestSuggestMappings:
    """Test automatic mapping suggestions."""

    def test_exact_and_display_name_matches(self, contact_fields):
        """Test keys and display names match regardless of case and punctuation."""
        columns = ["FULL NAME", "E-mail", "age", "Unrelated"]

        mappings = suggest_mappings(columns, contact_fields)
        targets = {m.source_column: m.target_key for m in mappings}

        assert targets == {"FULL NAME": "name", "E-mail": "email", "age": "age", "Unrelated": None}

    def test_similar_names(self, contact_fields):
        """Test near matches above the similarity threshold are used."""
        mappings = suggest_mappings(["Joined On"], contact_fields)
        assert mappings[0].target_key == "joined"

    def test_each_field_used_once(self, contact_fields):
        """Test two columns never receive the same field."""
        mappings = suggest_mappings(["email", "Email"], contact_fields)

        assert mappings[0].target_key == "email"
        assert mappings[1].status == MappingStatus.IGNORED

    def test_similarity_bounds(self):
        """Test the similarity score range."""
        assert similarity("email", "email") == 1.0
        assert similarity("abc", "xyz") == 0.0
        assert similarity("a", "b") == 0.0


class TestColumnMapper:
    """Test the ColumnMapper component."""

    def test_duplicate_field_keys(self, email_field):
        """Test a field list with repeated keys is rejected."""
        with pytest.raises(DuplicateFieldError):
            ColumnMapper([email_field, email_field])

    def test_map_rows_validates_first(self, email_field):
        """Test no row is mapped when the mapping set is invalid."""
        mapper = ColumnMapper([email_field])

        with pytest.raises(MappingIncompleteError):
            mapper.map_rows([{"E-mail": "a@x.com"}], [ColumnMapping.ignored("E-mail")])

    def test_map_rows(self, email_field):
        """Test rows are projected through a valid mapping set."""
        mapper = ColumnMapper([email_field], enable_custom_fields=True)
        mappings = mapper.build(["E-mail", "Notes"], {"E-mail": "email", "Notes": CUSTOM})

        rows = mapper.map_rows([{"E-mail": "a@x.com", "Notes": "hi"}], mappings)

        assert rows == [{"email": "a@x.com", "Notes": "hi"}]
