"""
Tests for the optimization level passes.
"""

from sybase2oracle.optimizer import (
    add_direct_path_hints,
    add_parallel_hints,
    add_storage_clauses,
    convert_comma_joins,
    optimize,
    rewrite_comma_joins,
)


class TestCommaJoins:

    def test_equality_predicate_moves_to_on(self):
        result = rewrite_comma_joins("SELECT a.x, b.y FROM a, b WHERE a.id = b.a_id")
        assert "JOIN b ON a.id = b.a_id" in result
        assert "WHERE" not in result

    def test_filters_stay_in_where(self):
        result = rewrite_comma_joins("SELECT a.x FROM a, b WHERE a.id = b.a_id AND a.flag = 1")
        assert "JOIN b ON a.id = b.a_id" in result
        assert "WHERE a.flag = 1" in result

    def test_into_list_preserved(self):
        result = rewrite_comma_joins("SELECT a.x INTO v_x FROM a, b WHERE a.id = b.a_id")
        assert "INTO v_x FROM a JOIN b ON a.id = b.a_id" in result

    def test_explicit_join_untouched(self):
        assert rewrite_comma_joins("SELECT a.x FROM a JOIN b ON a.id = b.id WHERE a.f = 1") is None

    def test_convert_comma_joins_in_script(self):
        warnings = []
        text = "UPDATE t SET c = 1;\nSELECT a.x FROM a, b WHERE a.id = b.a_id;\nCOMMIT;"
        result = convert_comma_joins(text, warnings)
        assert result.startswith("UPDATE t SET c = 1;\nSELECT ")
        assert "JOIN b ON a.id = b.a_id;" in result
        assert result.endswith("\nCOMMIT;")
        assert warnings == ["Comma join rewritten to explicit JOIN ... ON"]

    def test_single_table_select_untouched(self):
        text = "SELECT a FROM t WHERE x = 1;"
        assert convert_comma_joins(text) == text


class TestHints:

    def test_parallel_hint(self):
        assert add_parallel_hints("SELECT a FROM t", 8) == "SELECT /*+ PARALLEL(8) */ a FROM t"

    def test_existing_hint_kept(self):
        text = "SELECT /*+ FULL(t) */ a FROM t"
        assert add_parallel_hints(text) == text

    def test_direct_path_insert(self):
        assert add_direct_path_hints("INSERT INTO t VALUES (1)") == \
            "INSERT /*+ APPEND NOLOGGING */ INTO t VALUES (1)"


class TestStorageClauses:

    def test_date_column_partitions_table(self):
        result = add_storage_clauses("CREATE TABLE sales (id NUMBER(10), sold_at DATE);")
        assert result == (
            "CREATE TABLE sales (id NUMBER(10), sold_at DATE)\n"
            "PARTITION BY RANGE (sold_at) INTERVAL (NUMTOYMINTERVAL(1, 'MONTH'))\n"
            "(PARTITION p_initial VALUES LESS THAN (DATE '2000-01-01'));"
        )

    def test_lob_columns_use_securefile(self):
        result = add_storage_clauses("CREATE TABLE docs (id NUMBER(10), body CLOB, scan BLOB);")
        assert "LOB (body) STORE AS SECUREFILE\nLOB (scan) STORE AS SECUREFILE;" in result

    def test_temporary_table_skipped(self):
        text = "CREATE GLOBAL TEMPORARY TABLE TEMP_x (d DATE) ON COMMIT PRESERVE ROWS"
        assert add_storage_clauses(text) == text

    def test_plain_table_unchanged(self):
        text = "CREATE TABLE t (id NUMBER(10))"
        assert add_storage_clauses(text) == text

    def test_storage_clause_added_once(self):
        once = add_storage_clauses("CREATE TABLE s (d DATE)")
        assert add_storage_clauses(once) == once


class TestOptimize:

    def test_standard_level_is_noop(self):
        text = "SELECT a FROM t, s WHERE t.id = s.id"
        assert optimize(text, "standard") == text
        assert optimize(text, "conservative") == text

    def test_aggressive_level(self):
        result = optimize("INSERT INTO log SELECT a FROM t", "aggressive", parallel_degree=2)
        assert result == "INSERT /*+ APPEND NOLOGGING */ INTO log SELECT /*+ PARALLEL(2) */ a FROM t"
