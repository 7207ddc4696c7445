"""
Shared test fixtures for unit tests.

Provides field declarations, mapping sets and CSV files on disk for testing
the tabular importer.
"""

from pathlib import Path
from typing import Callable, List

import pytest

from backend.importer.models import (
    ColumnMapping,
    FieldSpec,
    FieldType,
    RegexRule,
    Severity,
    UniqueRule,
)


@pytest.fixture
def email_field() -> FieldSpec:
    """Required, unique email field."""
    return FieldSpec(
        key="email",
        display_name="Email",
        type=FieldType.EMAIL,
        required=True,
        rules=[UniqueRule()],
    )


@pytest.fixture
def contact_fields(email_field: FieldSpec) -> List[FieldSpec]:
    """
    A small contact schema covering every field type.

    Returns:
        FieldSpecs for name, email, age, active and joined
    """
    return [
        FieldSpec(key="name", display_name="Full Name", type=FieldType.STRING, required=True),
        email_field,
        FieldSpec(
            key="age",
            display_name="Age",
            type=FieldType.NUMBER,
            rules=[
                RegexRule(
                    pattern=r"^\d{1,2}$",
                    message="Age looks unrealistic",
                    severity=Severity.WARNING,
                )
            ],
        ),
        FieldSpec(key="active", display_name="Active", type=FieldType.BOOLEAN),
        FieldSpec(key="joined", display_name="Joined", type=FieldType.DATE),
    ]


@pytest.fixture
def contact_mappings(contact_fields: List[FieldSpec]) -> List[ColumnMapping]:
    """Identity mapping of each contact field from a column of the same key."""
    return [ColumnMapping.mapped(f.key, f) for f in contact_fields]


@pytest.fixture
def write_csv(tmp_path: Path) -> Callable[[str, str], Path]:
    """
    Factory writing CSV text to a file under tmp_path.

    Returns:
        Function taking (text, name) and returning the written path
    """

    def _write(text: str, name: str = "upload.csv") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def contacts_csv(write_csv: Callable[[str, str], Path]) -> Path:
    """CSV file with three contact rows, one of them duplicating an email."""
    return write_csv(
        "Full Name,E-mail,Age,Active,Joined\n"
        "Ada Lovelace,ada@example.com,36,true,2024-01-15\n"
        "Alan Turing,alan@example.com,41,false,2024-02-01\n"
        "Grace Hopper,ada@example.com,85,TRUE,2024-03-10\n",
        "contacts.csv",
    )
