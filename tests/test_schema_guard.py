from __future__ import annotations

import unittest
from unittest.mock import patch

from staffcheck.services.schema_guard import (
    REQUIRED_ENUM_VALUES,
    REQUIRED_INDEXES,
    REQUIRED_TABLE_COLUMNS,
    verify_runtime_schema,
)


class _FakeResult:
    def __init__(self, value):
        self._value = value

    def scalar(self):  # type: ignore[no-untyped-def]
        return self._value


class _FakeConnection:
    def __init__(self, version_value):
        self._version_value = version_value

    def __enter__(self):  # type: ignore[no-untyped-def]
        return self

    def __exit__(self, exc_type, exc, tb):  # type: ignore[no-untyped-def]
        return False

    def execute(self, _statement):  # type: ignore[no-untyped-def]
        return _FakeResult(self._version_value)


class _FakeEngine:
    def __init__(self, version_value):
        self._version_value = version_value

    def connect(self):  # type: ignore[no-untyped-def]
        return _FakeConnection(self._version_value)


class _FakeInspector:
    def __init__(
        self,
        *,
        columns_by_table: dict[str, set[str]],
        indexes_by_table: dict[str, set[str]],
        enums: list[dict[str, object]],
    ):
        self._columns_by_table = columns_by_table
        self._indexes_by_table = indexes_by_table
        self._enums = enums

    def get_columns(self, table_name: str):  # type: ignore[no-untyped-def]
        return [{"name": item} for item in self._columns_by_table.get(table_name, set())]

    def get_indexes(self, table_name: str):  # type: ignore[no-untyped-def]
        return [{"name": item} for item in self._indexes_by_table.get(table_name, set())]

    def get_enums(self):  # type: ignore[no-untyped-def]
        return self._enums


def _complete_inspector() -> _FakeInspector:
    return _FakeInspector(
        columns_by_table={table: set(columns) for table, columns in REQUIRED_TABLE_COLUMNS.items()},
        indexes_by_table={table: {index} for table, index in REQUIRED_INDEXES.items()},
        enums=[{"name": name, "labels": sorted(values)} for name, values in REQUIRED_ENUM_VALUES.items()],
    )


class SchemaGuardTests(unittest.TestCase):
    def test_verify_runtime_schema_ok_when_everything_exists(self) -> None:
        with patch("staffcheck.services.schema_guard.inspect", return_value=_complete_inspector()):
            result = verify_runtime_schema(_FakeEngine("0001_initial"))  # type: ignore[arg-type]

        self.assertTrue(result.ok)
        self.assertEqual(result.issues, [])
        self.assertEqual(result.warnings, [])

    def test_reports_missing_columns_indexes_and_enum_values(self) -> None:
        inspector = _complete_inspector()
        inspector._columns_by_table["attendance"] = {"id", "user_id"}
        inspector._indexes_by_table["job_checklists"] = set()
        inspector._enums = [{"name": "user_role", "labels": ["admin", "employee"]}]

        with patch("staffcheck.services.schema_guard.inspect", return_value=inspector):
            result = verify_runtime_schema(_FakeEngine(""))  # type: ignore[arg-type]

        self.assertFalse(result.ok)
        self.assertTrue(any(item.startswith("MISSING_COLUMNS:attendance:") for item in result.issues))
        self.assertIn("MISSING_INDEX:job_checklists:uq_job_checklists_active_template_date", result.issues)
        self.assertIn("MISSING_ENUM_VALUES:user_role:manager", result.issues)
        self.assertIn("ENUM_NOT_FOUND:job_frequency", result.warnings)
        self.assertIn("ALEMBIC_VERSION_EMPTY", result.issues)

    def test_newer_revision_is_only_a_warning(self) -> None:
        with patch("staffcheck.services.schema_guard.inspect", return_value=_complete_inspector()):
            result = verify_runtime_schema(_FakeEngine("0002_future"))  # type: ignore[arg-type]

        self.assertTrue(result.ok)
        self.assertIn("ALEMBIC_VERSION_MISMATCH:0002_future", result.warnings)


if __name__ == "__main__":
    unittest.main()
