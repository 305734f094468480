"""
Tests for the statement-level rewriters.
"""

import re

from sybase2oracle.statements import (
    convert_batch_text,
    rewrite_statements,
    rewrite_temp_tables,
    rewrite_top,
    statement_end,
    strip_bracket_quotes,
    wrap_procedural_batches,
)


class TestRewriteTop:

    def test_simple_top(self):
        assert rewrite_top("SELECT TOP 5 * FROM orders") == "SELECT * FROM orders WHERE ROWNUM <= 5"

    def test_top_with_where(self):
        assert rewrite_top("SELECT TOP 3 id FROM t WHERE a = 1") == "SELECT id FROM t WHERE a = 1 AND ROWNUM <= 3"

    def test_top_with_or_condition_parenthesized(self):
        assert rewrite_top("SELECT TOP 1 * FROM t WHERE a = 1 OR b = 2") == \
            "SELECT * FROM t WHERE (a = 1 OR b = 2) AND ROWNUM <= 1"

    def test_top_before_order_by_warns(self):
        warnings = []
        result = rewrite_top("SELECT TOP 10 name FROM users WHERE active = 1 ORDER BY name", warnings)
        assert result == "SELECT name FROM users WHERE active = 1 AND ROWNUM <= 10 ORDER BY name"
        assert warnings == ["TOP 10 with ORDER BY: ROWNUM is applied before sorting"]

    def test_top_distinct(self):
        assert rewrite_top("SELECT DISTINCT TOP 2 city FROM t") == "SELECT DISTINCT city FROM t WHERE ROWNUM <= 2"

    def test_statement_boundary(self):
        text = "SELECT TOP 1 a FROM t;\nUPDATE s SET b = 1"
        assert rewrite_top(text) == "SELECT a FROM t WHERE ROWNUM <= 1;\nUPDATE s SET b = 1"

    def test_statement_end(self):
        text = "SELECT a FROM t\nDELETE FROM s"
        assert text[:statement_end(text, 0)] == "SELECT a FROM t"


class TestIdentifiersAndTempTables:

    def test_bracket_quotes(self):
        assert strip_bracket_quotes("SELECT [name], [Order Id] FROM [dbo].[t]") == \
            'SELECT name, "Order Id" FROM dbo.t'

    def test_temp_table(self):
        text = "CREATE TABLE #work (id NUMBER(10))\nINSERT INTO #work VALUES (1)"
        assert rewrite_temp_tables(text) == (
            "CREATE GLOBAL TEMPORARY TABLE TEMP_work (id NUMBER(10)) ON COMMIT PRESERVE ROWS\n"
            "INSERT INTO TEMP_work VALUES (1)"
        )

    def test_global_temp_reference(self):
        assert rewrite_temp_tables("SELECT * FROM ##shared") == "SELECT * FROM TEMP_shared"


class TestProceduralBatches:

    def test_plain_sql_batch_unchanged(self):
        assert convert_batch_text("SELECT a FROM t") == "SELECT a FROM t"

    def test_session_options_commented(self):
        assert convert_batch_text("SET NOCOUNT ON\nSELECT a FROM t") == "-- SET NOCOUNT ON\nSELECT a FROM t"

    def test_procedural_batch_wrapped(self):
        assert convert_batch_text("PRINT 'hello'") == "BEGIN\n DBMS_OUTPUT.PUT_LINE('hello');\nEND;\n/"

    def test_exec_batch(self):
        assert convert_batch_text("EXEC refresh_totals @day = 1") == \
            "BEGIN refresh_totals(p_day => 1); END;\n/"

    def test_ddl_mixed_with_procedural_warns(self):
        warnings = []
        text = "CREATE TABLE x (a NUMBER)\nPRINT 'done'"
        assert convert_batch_text(text, warnings=warnings) == text
        assert len(warnings) == 1

    def test_converted_routines_left_alone(self):
        text = "CREATE OR REPLACE PROCEDURE p AS\nBEGIN\n  NULL;\nEND p;\n"
        assert convert_batch_text(text) == text

    def test_batches_split_on_separators(self):
        result = wrap_procedural_batches("SELECT 1 FROM t\nGO\nPRINT 'x'\nGO\n")
        assert result == "SELECT 1 FROM t\nGO\nBEGIN\n DBMS_OUTPUT.PUT_LINE('x');\nEND;\n/\nGO\n"


class TestRewriteStatements:

    def test_go_removed(self):
        result = rewrite_statements("SELECT a FROM t\nGO\nSELECT b FROM t\nGO")
        assert not re.search(r'^\s*GO\s*$', result, re.MULTILINE | re.IGNORECASE)

    def test_full_rewrite_order(self):
        result = rewrite_statements(
            "SELECT TOP 5 ISNULL(o.total, 0), GETDATE() FROM dbo.[orders] o WITH (NOLOCK) WHERE o.note = NULL"
        )
        assert result == (
            "SELECT NVL(o.total, 0), SYSTIMESTAMP FROM orders o /*+ RESULT_CACHE */ "
            "WHERE o.note IS NULL AND ROWNUM <= 5"
        )

    def test_conservative_level_drops_nolock(self):
        result = rewrite_statements("SELECT a FROM t WITH (NOLOCK)", optimization_level="conservative")
        assert result == "SELECT a FROM t"
