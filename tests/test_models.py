"""Tests for catalog models and SQL type mapping."""

import decimal

import pytest

from dbmeta.models import (
    Column,
    Database,
    ForeignKey,
    Index,
    IndexColumn,
    PrimaryKey,
    Schema,
    Table,
    qualified_name,
)
from dbmeta.sqltypes import ReferentialAction, SqlType, ValueKind, python_type, value_kind


def make_column(name: str, table: str = "T", sql_type: int = SqlType.INTEGER, **kwargs) -> Column:
    return Column(name=name, table_name=table, sql_type=sql_type, sql_type_name="X", **kwargs)


def test_qualified_name():
    """Should join schema and name, omitting a missing schema."""
    assert qualified_name("HR", "EMPLOYEE") == "HR.EMPLOYEE"
    assert qualified_name(None, "EMPLOYEE") == "EMPLOYEE"


class TestIndex:
    """Tests for Index."""

    def test_columns_sorted_on_creation(self) -> None:
        """Test columns are sorted by ordinal whatever the input order."""
        index = Index(
            "IDX",
            columns=(IndexColumn("B", 2), IndexColumn("C", 3), IndexColumn("A", 1)),
        )

        assert index.column_names == ["A", "B", "C"]

    def test_with_column_resorts(self) -> None:
        """Test appended columns land at their ordinal position."""
        index = Index("IDX").with_column(IndexColumn("SECOND", 2)).with_column(IndexColumn("FIRST", 1))

        assert index.column_names == ["FIRST", "SECOND"]
        assert index.is_for_column("SECOND")
        assert not index.is_for_column("THIRD")

    def test_with_column_returns_copy(self) -> None:
        """Test with_column leaves the original index unchanged."""
        index = Index("IDX", unique=True)
        extended = index.with_column(IndexColumn("A", 1))

        assert index.columns == ()
        assert extended.unique


class TestForeignKey:
    """Tests for ForeignKey linking."""

    def test_unresolved_until_linked(self) -> None:
        """Test the target table is attached by link()."""
        fk = ForeignKey("FK", "HR", "DEPT", "ID")
        dept = Table("DEPT", "HR")

        assert not fk.is_resolved
        fk.link(dept)

        assert fk.foreign_table is dept
        assert str(fk) == "HR.DEPT->ID"

    def test_link_is_idempotent(self) -> None:
        """Test linking the same table twice is allowed."""
        fk = ForeignKey("FK", "HR", "DEPT", "ID")
        dept = Table("DEPT", "HR")

        fk.link(dept)
        fk.link(dept)

        assert fk.foreign_table is dept

    def test_link_rejects_other_table(self) -> None:
        """Test linking a table with another name fails."""
        fk = ForeignKey("FK", "HR", "DEPT", "ID")

        with pytest.raises(ValueError):
            fk.link(Table("EMPLOYEE", "HR"))

    def test_link_rejects_second_instance(self) -> None:
        """Test relinking to another instance of the same name fails."""
        fk = ForeignKey("FK", "HR", "DEPT", "ID")
        fk.link(Table("DEPT", "HR"))

        with pytest.raises(ValueError):
            fk.link(Table("DEPT", "HR"))


class TestTable:
    """Tests for Table helpers."""

    @pytest.fixture
    def tables(self) -> dict:
        dept = Table("DEPT", "HR", columns=(make_column("ID", "DEPT", primary_key=True),))
        fk = ForeignKey("FK_DEPT", "HR", "DEPT", "ID", ReferentialAction.CASCADE, ReferentialAction.RESTRICT)
        fk.link(dept)
        id_col = make_column("ID", "EMP", primary_key=True)
        emp = Table(
            "EMP",
            "HR",
            columns=(
                id_col,
                make_column("DEPT_ID", "EMP", foreign_key=fk),
                make_column("NOTES", "EMP", sql_type=SqlType.CLOB),
                make_column("PHOTO", "EMP", sql_type=SqlType.BLOB),
            ),
            primary_key=PrimaryKey((id_col,)),
        )
        return {"dept": dept, "emp": emp}

    def test_columns(self, tables) -> None:
        """Test column lookup helpers."""
        emp = tables["emp"]

        assert emp.full_name == "HR.EMP"
        assert emp.columns_count == 4
        assert emp.has_all_columns(["ID", "DEPT_ID"])
        assert not emp.has_all_columns(["ID", "MISSING"])
        assert not emp.has_all_columns([])
        assert [c.name for c in emp.blob_columns] == ["PHOTO"]
        assert [c.name for c in emp.columns_except([emp.column("ID")])] == ["DEPT_ID", "NOTES", "PHOTO"]

    def test_columns_except_matches_instances(self) -> None:
        """Test an equal column from another table is not excluded."""
        hr = Table("EMP", "HR", columns=(make_column("ID", "EMP"), make_column("NAME", "EMP")))
        sales = Table("EMP", "SALES", columns=(make_column("ID", "EMP"), make_column("NAME", "EMP")))

        assert hr.column("ID") == sales.column("ID")
        assert [c.name for c in hr.columns_except([sales.column("ID")])] == ["ID", "NAME"]
        assert [c.name for c in hr.columns_except([hr.column("ID")])] == ["NAME"]

    def test_relations(self, tables) -> None:
        """Test dependency helpers between tables."""
        dept, emp = tables["dept"], tables["emp"]

        assert emp.depends_on(dept)
        assert dept.is_foreign_for(emp)
        assert not emp.is_foreign_for(dept)
        assert dept.is_related_to(emp)
        assert emp.related_tables() == ["HR.DEPT"]
        assert emp.foreign_tables() == [dept]
        assert [c.name for c in emp.foreign_keys_for_table("DEPT", "HR")] == ["DEPT_ID"]
        assert emp.foreign_keys_for_table("DEPT", "OTHER") == []
        assert not emp.has_self_reference()

    def test_identity_equality(self) -> None:
        """Test tables compare by identity."""
        assert Table("T", "S") != Table("T", "S")
        assert Table("T", "S").same_name(Table("T", "S"))


class TestColumn:
    """Tests for Column type helpers."""

    def test_kinds(self) -> None:
        """Test semantic type predicates."""
        assert make_column("A", sql_type=SqlType.NUMERIC).is_number
        assert make_column("A", sql_type=SqlType.NVARCHAR).is_varchar
        assert make_column("A", sql_type=SqlType.CHAR).is_string
        assert make_column("A", sql_type=SqlType.DATE).is_date
        assert make_column("A", sql_type=SqlType.TIMESTAMP).is_timestamp
        assert make_column("A", sql_type=SqlType.NCLOB).is_large_object
        assert not make_column("A", sql_type=SqlType.VARCHAR).is_large_object

    def test_python_types(self) -> None:
        """Test Python types for common codes."""
        assert make_column("A", sql_type=SqlType.DECIMAL).python_type is decimal.Decimal
        assert make_column("A", sql_type=SqlType.BLOB).python_type is bytes
        assert make_column("A", sql_type=SqlType.CLOB).python_type is str

    def test_unknown_code(self) -> None:
        """Test unmapped type codes resolve to UNKNOWN."""
        assert value_kind(123456) is ValueKind.UNKNOWN
        assert python_type(123456) is None
        assert make_column("A", sql_type=123456).value_kind is ValueKind.UNKNOWN


class TestSchemaAndDatabase:
    """Tests for Schema and Database aggregates."""

    def test_lookup(self) -> None:
        """Test schema and table lookup across the database."""
        emp = Table("EMP", "HR")
        hr = Schema("HR", tables=(emp,))
        db = Database("FakeDB", schemas=(hr, Schema("EMPTY")))

        assert str(hr) == "HR[1]"
        assert db.schema_names == ["HR", "EMPTY"]
        assert db.table("EMP", "HR") is emp
        assert db.table("EMP", "NOPE") is None
        assert db.tables() == [emp]
        assert hr.filter_tables(lambda t: t.name.startswith("E")) == [emp]
