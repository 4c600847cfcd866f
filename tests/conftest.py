"""Shared fixtures: a small sample snapshot."""

import pytest

from schemadiff.models import (
    Column,
    Constraint,
    Function,
    Index,
    IndexColumn,
    Parameter,
    Procedure,
    Snapshot,
    Table,
    View,
)


@pytest.fixture
def customers_table() -> Table:
    return Table(
        schema_name="dbo",
        table_name="Customers",
        columns=(
            Column("CustomerId", 1, "int", precision=10, scale=0, is_nullable=False),
            Column("Email", 2, "nvarchar", max_length=50, collation="SQL_Latin1_General_CP1_CI_AS"),
        ),
        indexes=(
            Index(
                "PK_Customers",
                "CLUSTERED",
                is_unique=True,
                is_primary_key=True,
                columns=(IndexColumn("CustomerId", 1),),
            ),
        ),
        constraints=(Constraint("DF_Customers_Email", "DEFAULT", "('')", "Email"),),
    )


@pytest.fixture
def sample_snapshot(customers_table: Table) -> Snapshot:
    return Snapshot(
        database_name="SalesDb",
        server="localhost",
        tables=(customers_table,),
        views=(View("dbo", "ActiveCustomers", "SELECT  a,b FROM t"),),
        procedures=(
            Procedure(
                "dbo",
                "GetCustomer",
                definition="CREATE PROCEDURE dbo.GetCustomer @Id int AS SELECT 1",
                parameters=(Parameter("@Id", 1, "int", precision=10, scale=0),),
            ),
        ),
        functions=(
            Function(
                "dbo",
                "fn_Total",
                function_type="SQL_SCALAR_FUNCTION",
                definition="CREATE FUNCTION dbo.fn_Total() RETURNS int AS BEGIN RETURN 1 END",
                parameters=(Parameter("RETURN_VALUE", 0, "int", is_output=True),),
            ),
        ),
    )
