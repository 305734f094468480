"""
Tests for the heuristic PL/SQL syntax repair pass.
"""

from sybase2oracle.syntax_repair import (
    balance_blocks,
    block_balance,
    collapse_terminators,
    insert_terminators,
    remove_stray_brackets,
    repair_syntax,
)


UNBALANCED = "BEGIN\nBEGIN\nBEGIN\n  NULL;\nEND;"


class TestBlockBalance:

    def test_counts_openers_and_closers(self):
        assert block_balance(UNBALANCED) == 2

    def test_end_if_and_end_loop_ignored(self):
        assert block_balance("BEGIN\n  IF a THEN\n    NULL;\n  END IF;\n  LOOP NULL; END LOOP;\nEND;") == 0

    def test_case_counts_as_opener(self):
        assert block_balance("SELECT CASE WHEN a = 1 THEN 'x' END FROM t") == 0
        assert block_balance("SELECT CASE WHEN a = 1 THEN 'x' FROM t") == 1

    def test_begin_tran_is_not_a_block(self):
        assert block_balance("BEGIN TRAN") == 0

    def test_literals_and_comments_ignored(self):
        assert block_balance("PRINT 'BEGIN' /* BEGIN */") == 0


class TestRepairSteps:

    def test_missing_ends_appended(self):
        repaired = repair_syntax(UNBALANCED)
        assert repaired == UNBALANCED + "\nEND;\nEND;"
        assert repaired.count("END;") - UNBALANCED.count("END;") == 2

    def test_balanced_text_unchanged(self):
        assert balance_blocks("BEGIN\n  NULL;\nEND;") == "BEGIN\n  NULL;\nEND;"

    def test_double_terminators(self):
        assert collapse_terminators("SELECT 1 FROM dual;;") == "SELECT 1 FROM dual;"
        assert collapse_terminators("END;\n/\n/\nSELECT 1") == "END;\n/\nSELECT 1"

    def test_literal_semicolons_kept(self):
        assert collapse_terminators("SELECT ';;' FROM dual;") == "SELECT ';;' FROM dual;"

    def test_terminator_before_next_statement(self):
        assert insert_terminators("UPDATE t SET a = 1\nDELETE FROM t") == "UPDATE t SET a = 1;\nDELETE FROM t"

    def test_insert_select_not_split(self):
        text = "INSERT INTO t (a)\nSELECT a FROM s"
        assert insert_terminators(text) == text

    def test_continuation_lines_not_terminated(self):
        text = "SELECT a\nFROM t WHERE a IN\nSELECT b FROM s"
        assert insert_terminators(text) == text

    def test_bare_end_terminated(self):
        assert insert_terminators("BEGIN\n  NULL;\nEND") == "BEGIN\n  NULL;\nEND;"
        assert insert_terminators("BEGIN\n  NULL;\nEND my_proc\n/") == "BEGIN\n  NULL;\nEND my_proc;\n/"

    def test_stray_brackets(self):
        assert remove_stray_brackets("SELECT [a] FROM t WHERE x = '[y]'") == "SELECT a FROM t WHERE x = '[y]'"


class TestRepairSyntax:

    def test_idempotent(self):
        text = "BEGIN\n  UPDATE t SET a = 1\n  DELETE FROM t\nBEGIN\n  NULL;;\nEND"
        once = repair_syntax(text)
        assert repair_syntax(once) == once

    def test_only_punctuation_changes(self):
        text = "UPDATE t SET a = 1\nDELETE FROM t"
        assert repair_syntax(text).replace(';', '') == text
