"""
Tests for the Sybase -> Oracle type mapping table.
"""

import pytest

from sybase2oracle.type_mappings import (
    apply_type_mappings,
    base_type_name,
    map_data_type,
    split_type,
    unsized_type,
)


class TestApplyTypeMappings:
    """Whole-text type substitution."""

    @pytest.mark.parametrize("source,expected", [
        ("int", "NUMBER(10)"),
        ("INTEGER", "NUMBER(10)"),
        ("bigint", "NUMBER(19)"),
        ("smallint", "NUMBER(5)"),
        ("tinyint", "NUMBER(3)"),
        ("bit", "NUMBER(1)"),
        ("money", "NUMBER(19,4)"),
        ("smallmoney", "NUMBER(10,4)"),
        ("datetime", "DATE"),
        ("smalldatetime", "DATE"),
        ("bigdatetime", "TIMESTAMP"),
        ("text", "CLOB"),
        ("unitext", "NCLOB"),
        ("image", "BLOB"),
        ("float", "BINARY_DOUBLE"),
        ("real", "BINARY_FLOAT"),
        ("double precision", "BINARY_DOUBLE"),
        ("sysname", "VARCHAR2(30)"),
        ("varchar", "VARCHAR2(255)"),
    ])
    def test_bare_types(self, source, expected):
        assert apply_type_mappings(source) == expected

    @pytest.mark.parametrize("source,expected", [
        ("varchar(50)", "VARCHAR2(50)"),
        ("nvarchar(20)", "NVARCHAR2(20)"),
        ("univarchar(20)", "NVARCHAR2(20)"),
        ("char(3)", "CHAR(3)"),
        ("unichar(3)", "NCHAR(3)"),
        ("varbinary(16)", "RAW(16)"),
        ("binary(8)", "RAW(8)"),
        ("decimal(10,2)", "NUMBER(10,2)"),
        ("numeric(12, 4)", "NUMBER(12,4)"),
        ("numeric(8)", "NUMBER(8)"),
        ("float(24)", "FLOAT(24)"),
        ("varchar(max)", "CLOB"),
        ("nvarchar(MAX)", "NCLOB"),
    ])
    def test_sized_types(self, source, expected):
        assert apply_type_mappings(source) == expected

    def test_precision_form_wins_over_bare_keyword(self):
        assert apply_type_mappings("amount decimal(10,2), rate decimal") == \
            "amount NUMBER(10,2), rate NUMBER"

    def test_case_insensitive(self):
        assert apply_type_mappings("id INT, name VarChar(10)") == "id NUMBER(10), name VARCHAR2(10)"

    def test_variable_names_untouched(self):
        assert apply_type_mappings("DECLARE @int int") == "DECLARE @int NUMBER(10)"

    def test_whole_words_only(self):
        text = "PRINT @points; INSERT INTO bitmap_log VALUES (1)"
        assert apply_type_mappings(text) == text

    @pytest.mark.parametrize("text", [
        "SELECT text FROM syscomments",
        "SELECT id, text, image FROM docs WHERE image IS NOT NULL ORDER BY text",
        "UPDATE notes SET text = NULL",
        "INSERT INTO t (id, datetime) VALUES (1, 2)",
    ])
    def test_column_named_like_a_type_untouched(self, text):
        assert apply_type_mappings(text) == text

    def test_declared_lob_types_mapped(self):
        assert apply_type_mappings("CREATE TABLE docs (text text, body image)") == \
            "CREATE TABLE docs (text CLOB, body BLOB)"
        assert apply_type_mappings("DECLARE @note text") == "DECLARE @note CLOB"

    def test_cast_and_convert_targets_mapped(self):
        assert apply_type_mappings("CAST(x AS int)") == "CAST(x AS NUMBER(10))"
        assert apply_type_mappings("CONVERT(datetime, d)") == "CONVERT(DATE, d)"

    def test_oracle_types_pass_through(self):
        text = "id NUMBER(10), name VARCHAR2(50), created DATE"
        assert apply_type_mappings(text) == text
        assert apply_type_mappings(apply_type_mappings("name varchar(5)")) == "name VARCHAR2(5)"

    def test_timestamp_unchanged(self):
        assert apply_type_mappings("ts timestamp") == "ts timestamp"


class TestMapDataType:
    """Single type lookups used by parameters and declarations."""

    def test_with_size(self):
        assert map_data_type("varchar", "20") == "VARCHAR2(20)"

    def test_with_scale(self):
        assert map_data_type("numeric", "10", "2") == "NUMBER(10,2)"

    def test_bare(self):
        assert map_data_type("int") == "NUMBER(10)"

    def test_already_oracle(self):
        assert map_data_type("NUMBER", "10") == "NUMBER(10)"
        assert map_data_type("VARCHAR2", "30") == "VARCHAR2(30)"

    def test_unknown_type_passes_through(self):
        assert map_data_type("my_udt") == "my_udt"


class TestTypeHelpers:

    def test_split_type(self):
        assert split_type("NUMBER(10,2)") == ("NUMBER", "10", "2")
        assert split_type("varchar(max)") == ("varchar", "max", None)
        assert split_type("DATE") == ("DATE", None, None)

    def test_base_type_name(self):
        assert base_type_name("varchar2(30)") == "VARCHAR2"

    def test_unsized_type(self):
        assert unsized_type("VARCHAR2(30)") == "VARCHAR2"
        assert unsized_type("NUMBER(10,2)") == "NUMBER"
