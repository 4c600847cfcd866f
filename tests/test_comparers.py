"""Unit tests for comparers module."""

from dataclasses import replace

from schemadiff.comparers import (
    FunctionComparer,
    ProcedureComparer,
    TableComparer,
    ViewComparer,
    diff_keyed,
    ordered_index_columns,
)
from schemadiff.models import (
    Column,
    Constraint,
    Function,
    Index,
    IndexColumn,
    Parameter,
    Procedure,
    PropertyChange,
    Table,
    View,
)


def index(*columns: IndexColumn) -> Index:
    return Index("IX_Customers_Name", "NONCLUSTERED", columns=columns)


def table_with_index(ix: Index) -> Table:
    return Table("dbo", "Customers", columns=(Column("A", 1, "int"), Column("B", 2, "int")), indexes=(ix,))


class TestDiffKeyed:
    """Tests for the generic keyed diff."""

    def test_output_order(self) -> None:
        """Test added follows the target, removed/modified follow the source."""
        source = ["b", "x", "a", "y"]
        target = ["a", "q", "b", "p"]
        added, removed, modified = diff_keyed(source, target, lambda s: s, lambda s, t: s)
        assert added == ("q", "p")
        assert removed == ("x", "y")
        assert modified == ("b", "a")

    def test_none_pairs_are_dropped(self) -> None:
        """Test unchanged pairs never appear in modified."""
        _, _, modified = diff_keyed(["a"], ["a"], lambda s: s, lambda s, t: None)
        assert modified == ()


class TestTableComparer:
    """Tests for TableComparer."""

    def test_identity(self, customers_table: Table) -> None:
        """Test identical tables produce no differences."""
        diff = TableComparer().compare([customers_table], [customers_table])
        assert diff.added == () and diff.removed == () and diff.modified == ()
        assert not diff.has_changes()

    def test_added_table(self, customers_table: Table) -> None:
        """Test a table only in the target is added."""
        invoices = Table("dbo", "Invoices")
        diff = TableComparer().compare([customers_table], [customers_table, invoices])
        assert diff.added == (invoices,)
        assert diff.removed == () and diff.modified == ()

    def test_removed_table(self, customers_table: Table) -> None:
        """Test a table only in the source is removed."""
        invoices = Table("dbo", "Invoices")
        diff = TableComparer().compare([customers_table, invoices], [customers_table])
        assert diff.removed == (invoices,)
        assert diff.added == () and diff.modified == ()

    def test_column_property_change(self, customers_table: Table) -> None:
        """Test a widened column is reported property by property."""
        wider = replace(
            customers_table,
            columns=(customers_table.columns[0], replace(customers_table.columns[1], max_length=100)),
        )
        diff = TableComparer().compare([customers_table], [wider])
        assert len(diff.modified) == 1
        mod = diff.modified[0]
        assert (mod.schema_name, mod.table_name) == ("dbo", "Customers")
        assert mod.column_changes.added == () and mod.column_changes.removed == ()
        assert len(mod.column_changes.modified) == 1
        assert mod.column_changes.modified[0].name == "Email"
        assert mod.column_changes.modified[0].changes == (PropertyChange("max_length", 50, 100),)
        assert not mod.index_changes.has_changes()
        assert not mod.constraint_changes.has_changes()

    def test_column_names_match_case_insensitively(self, customers_table: Table) -> None:
        """Test columns differing only in name case are the same column."""
        renamed = replace(
            customers_table,
            columns=(customers_table.columns[0], replace(customers_table.columns[1], column_name="EMAIL")),
        )
        assert TableComparer().compare([customers_table], [renamed]).modified == ()

    def test_table_names_match_exactly(self, customers_table: Table) -> None:
        """Test top-level names are case-sensitive."""
        lower = replace(customers_table, table_name="customers")
        diff = TableComparer().compare([customers_table], [lower])
        assert diff.added == (lower,)
        assert diff.removed == (customers_table,)

    def test_collation_text_compares_case_insensitively(self, customers_table: Table) -> None:
        """Test text properties use the shared equality rule."""
        other = replace(
            customers_table,
            columns=(
                customers_table.columns[0],
                replace(customers_table.columns[1], collation="sql_latin1_general_cp1_ci_as"),
            ),
        )
        assert TableComparer().compare([customers_table], [other]).modified == ()

    def test_constraint_changes(self, customers_table: Table) -> None:
        """Test added and changed constraints are reported."""
        changed = replace(
            customers_table,
            constraints=(
                Constraint("DF_Customers_Email", "DEFAULT", "('n/a')", "Email"),
                Constraint("CK_Email", "CHECK", "([Email] like '%@%')"),
            ),
        )
        mod = TableComparer().compare([customers_table], [changed]).modified[0]
        assert [c.constraint_name for c in mod.constraint_changes.added] == ["CK_Email"]
        assert mod.constraint_changes.modified[0].changes == (
            PropertyChange("definition", "('')", "('n/a')"),
        )


class TestIndexComparison:
    """Tests for index column order handling."""

    def test_different_key_ordinals_are_modified(self) -> None:
        """Test swapping key positions is a change."""
        source = table_with_index(index(IndexColumn("A", 1), IndexColumn("B", 2)))
        target = table_with_index(index(IndexColumn("B", 1), IndexColumn("A", 2)))
        diff = TableComparer().compare([source], [target])
        assert len(diff.modified) == 1
        changes = diff.modified[0].index_changes.modified[0].changes
        assert [c.property for c in changes] == ["columns"]

    def test_insertion_order_is_ignored(self) -> None:
        """Test same ordinals listed in a different order are not a change."""
        source = table_with_index(index(IndexColumn("A", 1), IndexColumn("B", 2)))
        target = table_with_index(index(IndexColumn("B", 2), IndexColumn("A", 1)))
        assert TableComparer().compare([source], [target]).modified == ()

    def test_included_column_change(self) -> None:
        """Test turning a key column into an included column is a change."""
        source = table_with_index(index(IndexColumn("A", 1), IndexColumn("B", 2)))
        target = table_with_index(index(IndexColumn("A", 1), IndexColumn("B", 0, is_included=True)))
        assert len(TableComparer().compare([source], [target]).modified) == 1

    def test_ordered_index_columns(self) -> None:
        """Test included columns (ordinal 0) sort first, by name."""
        ix = index(IndexColumn("Z", 0, is_included=True), IndexColumn("B", 1), IndexColumn("a", 0, is_included=True))
        assert [c.column_name for c in ordered_index_columns(ix)] == ["a", "Z", "B"]


class TestViewComparer:
    """Tests for ViewComparer."""

    def test_whitespace_and_case_do_not_count(self) -> None:
        """Test reformatted definitions are unchanged."""
        source = View("dbo", "v", "SELECT  a,b FROM t")
        target = View("dbo", "v", "select a, b\nfrom t")
        assert ViewComparer().compare([source], [target]).modified == ()

    def test_definition_change(self) -> None:
        """Test a real definition change carries both texts."""
        source = View("dbo", "v", "SELECT a FROM t")
        target = View("dbo", "v", "SELECT a FROM t WHERE a > 0")
        mod = ViewComparer().compare([source], [target]).modified[0]
        assert mod.definition_changed is True
        assert mod.source_definition == "SELECT a FROM t"
        assert mod.target_definition == "SELECT a FROM t WHERE a > 0"

    def test_other_view_attributes_are_not_compared(self) -> None:
        """Test only the definition decides a view modification."""
        source = View("dbo", "v", "SELECT 1", is_updatable=True)
        target = View("dbo", "v", "SELECT 1", is_updatable=False)
        assert ViewComparer().compare([source], [target]).modified == ()


class TestRoutineComparers:
    """Tests for ProcedureComparer and FunctionComparer."""

    def test_parameter_change_only(self) -> None:
        """Test a parameter type change with the same body."""
        source = Procedure("dbo", "p", definition="body", parameters=(Parameter("@Id", 1, "int"),))
        target = Procedure("dbo", "p", definition="BODY", parameters=(Parameter("@id", 1, "bigint"),))
        mod = ProcedureComparer().compare([source], [target]).modified[0]
        assert mod.definition_changed is False
        assert mod.parameters_changed is True
        assert mod.parameter_changes.modified[0].changes == (PropertyChange("data_type", "int", "bigint"),)

    def test_added_parameter(self) -> None:
        """Test a new parameter is listed as added."""
        source = Procedure("dbo", "p", definition="body")
        target = Procedure("dbo", "p", definition="body", parameters=(Parameter("@Flag", 1, "bit"),))
        mod = ProcedureComparer().compare([source], [target]).modified[0]
        assert [p.parameter_name for p in mod.parameter_changes.added] == ["@Flag"]

    def test_function_definition_change(self) -> None:
        """Test a function body change."""
        source = Function("dbo", "f", definition="RETURN 1")
        target = Function("dbo", "f", definition="RETURN 2")
        mod = FunctionComparer().compare([source], [target]).modified[0]
        assert (mod.schema_name, mod.routine_name) == ("dbo", "f")
        assert mod.definition_changed is True
        assert mod.parameters_changed is False

    def test_unchanged_routines_are_dropped(self) -> None:
        """Test identical routines are not modified."""
        fn = Function("dbo", "f", definition="RETURN 1", parameters=(Parameter("RETURN_VALUE", 0, "int", is_output=True),))
        diff = FunctionComparer().compare([fn], [replace(fn)])
        assert not diff.has_changes()
