"""
Tests for identity column -> sequence + trigger rewriting.
"""

from sybase2oracle.identity import (
    IdentityColumn,
    find_identity_column,
    render_identity_objects,
    rewrite_identity_columns,
    table_base_name,
)


class TestFindIdentityColumn:

    def test_seed_and_increment(self):
        identity, body = find_identity_column("T", "id NUMBER(10) identity(100, 5), name VARCHAR2(50)")
        assert identity == IdentityColumn(table="T", column="id", seed="100", increment="5")
        assert body == "id NUMBER(10), name VARCHAR2(50)"

    def test_bare_identity_defaults(self):
        identity, _ = find_identity_column("T", "order_no NUMBER(10) identity not null")
        assert identity.column == "order_no"
        assert (identity.seed, identity.increment) == ("1", "1")

    def test_unnamed_column_falls_back_to_id(self):
        identity, body = find_identity_column("T", "identity(1,1), name VARCHAR2(10)")
        assert identity.column == "id"
        assert body == "id NUMBER, name VARCHAR2(10)"

    def test_spaced_bare_clause_is_not_a_column_name(self):
        identity, body = find_identity_column("T", "a NUMBER(10), identity (5, 2)")
        assert identity == IdentityColumn(table="T", column="id", seed="5", increment="2")
        assert body == "a NUMBER(10), id NUMBER"

    def test_no_identity(self):
        assert find_identity_column("T", "id NUMBER(10), name VARCHAR2(10)") is None


class TestRewriteIdentityColumns:

    def test_table_sequence_and_trigger(self):
        result = rewrite_identity_columns("CREATE TABLE T (id NUMBER(10) identity(1,1), name VARCHAR2(50))")
        assert result.startswith("CREATE TABLE T (id NUMBER(10), name VARCHAR2(50));")
        assert "CREATE SEQUENCE T_seq START WITH 1 INCREMENT BY 1;" in result
        assert "CREATE OR REPLACE TRIGGER T_bir" in result
        assert "BEFORE INSERT ON T" in result
        assert ":NEW.id := T_seq.NEXTVAL;" in result
        assert result.rstrip().endswith("/")

    def test_owner_and_brackets_stripped_from_names(self):
        result = rewrite_identity_columns(
            "CREATE TABLE dbo.[Orders] (order_id NUMBER(10) identity, total NUMBER)"
        )
        assert "CREATE SEQUENCE Orders_seq" in result
        assert "CREATE OR REPLACE TRIGGER Orders_bir" in result

    def test_exactly_one_sequence_per_table(self):
        result = rewrite_identity_columns(
            "CREATE TABLE a (id NUMBER(10) identity)\n"
            "CREATE TABLE b (code NUMBER(10) identity(10,10))\n"
            "CREATE TABLE c (x NUMBER(10))\n"
        )
        assert result.count("CREATE SEQUENCE a_seq") == 1
        assert result.count("CREATE SEQUENCE b_seq START WITH 10 INCREMENT BY 10") == 1
        assert "c_seq" not in result
        assert "CREATE TABLE c (x NUMBER(10))" in result

    def test_table_without_identity_unchanged(self):
        text = "CREATE TABLE t (id NUMBER(10))"
        assert rewrite_identity_columns(text) == text

    def test_unbalanced_table_unchanged(self):
        text = "CREATE TABLE t (id NUMBER(10) identity"
        assert rewrite_identity_columns(text) == text

    def test_table_options_stay_with_table(self):
        result = rewrite_identity_columns("CREATE TABLE t (id NUMBER(10) identity) lock datarows\nGO")
        assert result.startswith("CREATE TABLE t (id NUMBER(10)) lock datarows;")
        assert result.endswith("\nGO")


class TestHelpers:

    def test_table_base_name(self):
        assert table_base_name("[dbo].[Orders]") == "Orders"
        assert table_base_name("sales.dbo.items") == "items"

    def test_render_identity_objects(self):
        rendered = render_identity_objects(IdentityColumn("t", "pk", "5", "2"))
        assert rendered.splitlines()[0] == "CREATE SEQUENCE t_seq START WITH 5 INCREMENT BY 2;"
        assert "  IF :NEW.pk IS NULL THEN" in rendered
        assert "END t_bir;" in rendered
