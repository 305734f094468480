"""
Tests for routine parsing and T-SQL body -> PL/SQL conversion.
"""

from sybase2oracle.procedure_converter import (
    Block,
    BodyConverter,
    IfBlock,
    Parameter,
    Statement,
    WhileLoop,
    convert_anonymous_block,
    parse_body,
    parse_parameters,
    parse_routine,
    split_statements,
    transform_routines,
)


def convert_lines(body, **kwargs):
    converter = BodyConverter(indent="", **kwargs)
    return converter.convert(body, level=0), converter


class TestSplitStatements:

    def test_split_on_keywords(self):
        body = "DECLARE @x int\nSET @x = 1\nPRINT @x"
        assert split_statements(body) == ["DECLARE @x int", "SET @x = 1", "PRINT @x"]

    def test_split_on_semicolons(self):
        assert split_statements("UPDATE t SET a = 1; DELETE FROM t;") == \
            ["UPDATE t SET a = 1", "DELETE FROM t"]

    def test_update_set_stays_together(self):
        assert split_statements("UPDATE t SET a = 1 WHERE b = 2") == ["UPDATE t SET a = 1 WHERE b = 2"]

    def test_insert_select_stays_together(self):
        assert split_statements("INSERT INTO t (a) SELECT a FROM s") == ["INSERT INTO t (a) SELECT a FROM s"]

    def test_union_stays_together(self):
        assert split_statements("SELECT a FROM x UNION SELECT a FROM y") == \
            ["SELECT a FROM x UNION SELECT a FROM y"]

    def test_cursor_declaration_stays_together(self):
        assert split_statements("DECLARE c CURSOR FOR SELECT id FROM t\nOPEN c") == \
            ["DECLARE c CURSOR FOR SELECT id FROM t", "OPEN c"]

    def test_case_expression_stays_together(self):
        body = "SELECT CASE WHEN a = 1 THEN 'x' ELSE 'y' END FROM t"
        assert split_statements(body) == [body]

    def test_subquery_keywords_do_not_split(self):
        body = "DELETE FROM t WHERE id IN (SELECT id FROM s)"
        assert split_statements(body) == [body]


class TestParseBody:

    def test_outer_begin_end_unwrapped(self):
        nodes = parse_body("BEGIN\n  PRINT 'a'\n  PRINT 'b'\nEND")
        assert nodes == [Statement("PRINT 'a'"), Statement("PRINT 'b'")]

    def test_if_else(self):
        nodes = parse_body("IF @a = 1\n  PRINT 'one'\nELSE\n  PRINT 'other'")
        assert nodes == [IfBlock("@a = 1", [Statement("PRINT 'one'")], [Statement("PRINT 'other'")])]

    def test_while_with_block(self):
        nodes = parse_body("WHILE @i < 3\nBEGIN\n  SET @i = @i + 1\nEND")
        assert nodes == [WhileLoop("@i < 3", [Statement("SET @i = @i + 1")])]

    def test_nested_block_kept(self):
        nodes = parse_body("PRINT 'a'\nBEGIN\n  PRINT 'b'\nEND")
        assert nodes == [Statement("PRINT 'a'"), Block([Statement("PRINT 'b'")])]


class TestParameters:

    def test_parse_parameters(self):
        parameters = parse_parameters("@id NUMBER(10), @name VARCHAR2(30) = NULL, @total NUMBER OUTPUT")
        assert [p.name for p in parameters] == ["id", "name", "total"]
        assert parameters[0].size == "10"
        assert parameters[1].default == "NULL"
        assert parameters[2].mode == "IN OUT"

    def test_render_maps_type(self):
        parameter = Parameter(name="code", type="varchar", size="8")
        assert parameter.render(lambda text: text) == "p_code IN VARCHAR2(8)"

    def test_unparsed_parameter_kept_raw(self):
        parameters = parse_parameters("@ok int, ???")
        assert parameters[1].raw is not None


class TestBodyConverter:

    def test_variables_renamed(self):
        converter = BodyConverter([Parameter(name="cust", type="int")])
        assert converter.rename("@cust + @local") == "p_cust + v_local"

    def test_declare(self):
        lines, converter = convert_lines("DECLARE @count int, @name varchar(20)")
        assert lines == ["NULL;"]
        assert converter.render_declarations(level=0) == ["v_count NUMBER(10);", "v_name VARCHAR2(20);"]

    def test_declare_with_initial_value(self):
        _, converter = convert_lines("DECLARE @n int = 5")
        assert converter.render_declarations(level=0) == ["v_n NUMBER(10) := 5;"]

    def test_set(self):
        assert convert_lines("SET @x = @x + 1")[0] == ["v_x := v_x + 1;"]

    def test_compound_set(self):
        assert convert_lines("SET @x += 2")[0] == ["v_x := v_x + 2;"]

    def test_session_option_commented(self):
        assert convert_lines("SET NOCOUNT ON")[0] == ["-- SET NOCOUNT ON"]

    def test_select_assignment_with_from(self):
        lines, _ = convert_lines("SELECT @total = SUM(amount) FROM orders WHERE id = @id")
        assert lines == ["SELECT SUM(amount) INTO v_total", "FROM orders WHERE id = v_id;"]

    def test_select_assignment_without_from(self):
        assert convert_lines("SELECT @a = 1, @b = 'x'")[0] == ["v_a := 1;", "v_b := 'x';"]

    def test_select_into_table_becomes_insert(self):
        lines, converter = convert_lines("SELECT a, b INTO archive FROM orders")
        assert lines[0] == "INSERT INTO archive"
        assert any("SELECT ... INTO archive" in w for w in converter.warnings)

    def test_result_set_select(self):
        lines, converter = convert_lines("SELECT * FROM orders")
        assert lines == ["OPEN v_result1 FOR", "SELECT * FROM orders;", "DBMS_SQL.RETURN_RESULT(v_result1);"]
        assert converter.render_declarations(level=0) == ["v_result1 SYS_REFCURSOR;"]

    def test_print(self):
        assert convert_lines("PRINT 'total: ', @total")[0] == ["DBMS_OUTPUT.PUT_LINE('total: ' || v_total);"]

    def test_raiserror_number_first(self):
        assert convert_lines("RAISERROR 20001 'bad input'")[0] == \
            ["RAISE_APPLICATION_ERROR(-20001, 'bad input');"]

    def test_raiserror_code_clamped(self):
        assert convert_lines("RAISERROR('oops', 16, 1)")[0] == ["RAISE_APPLICATION_ERROR(-20000, 'oops');"]

    def test_exec_named_arguments(self):
        assert convert_lines("EXEC update_stats @cust_id = @id, @force = 1")[0] == \
            ["BEGIN update_stats(p_cust_id => v_id, p_force => 1); END;"]

    def test_exec_dynamic_sql(self):
        assert convert_lines("EXEC(@sql)")[0] == ["EXECUTE IMMEDIATE v_sql;"]

    def test_transactions(self):
        lines, _ = convert_lines("BEGIN TRAN\nSAVE TRAN sp1\nROLLBACK TRAN sp1\nCOMMIT TRAN")
        assert lines == ["SAVEPOINT sp1;", "ROLLBACK TO SAVEPOINT sp1;", "COMMIT;"]

    def test_return_and_break(self):
        assert convert_lines("WHILE 1 = 1\nBEGIN\n  BREAK\nEND\nRETURN")[0] == \
            ["WHILE 1 = 1 LOOP", "EXIT;", "END LOOP;", "RETURN;"]

    def test_if_elsif(self):
        lines, _ = convert_lines("IF @a = 1\n  PRINT 'one'\nELSE IF @a = 2\n  PRINT 'two'\nELSE\n  PRINT 'many'")
        assert lines == [
            "IF v_a = 1 THEN",
            "DBMS_OUTPUT.PUT_LINE('one');",
            "ELSIF v_a = 2 THEN",
            "DBMS_OUTPUT.PUT_LINE('two');",
            "ELSE",
            "DBMS_OUTPUT.PUT_LINE('many');",
            "END IF;",
        ]

    def test_label(self):
        assert convert_lines("retry:\nPRINT 'x'")[0] == ["<<retry>>", "DBMS_OUTPUT.PUT_LINE('x');"]


CURSOR_BODY = """
DECLARE c CURSOR FOR SELECT id FROM t
DECLARE @id int
OPEN c
FETCH c INTO @id
WHILE @@FETCH_STATUS = 0
BEGIN
    PRINT @id
    FETCH c INTO @id
END
CLOSE c
DEALLOCATE c
"""


class TestCursors:

    def test_cursor_loop(self):
        converter = BodyConverter()
        lines = converter.convert(CURSOR_BODY)
        assert "  OPEN c;" in lines
        assert "  FETCH c INTO v_id;" in lines
        assert "  WHILE c%FOUND LOOP" in lines
        assert "  -- DEALLOCATE c" in lines
        assert converter.render_declarations() == [
            "  CURSOR c IS",
            "    SELECT id FROM t;",
            "  v_id NUMBER(10);",
        ]

    def test_bulk_collect_rewrite(self):
        converter = BodyConverter(bulk_collect=True)
        lines = converter.convert(CURSOR_BODY)
        assert lines == [
            "  SELECT id",
            "    BULK COLLECT INTO v_id_list",
            "    FROM t;",
            "  FOR i IN 1..v_id_list.COUNT LOOP",
            "    v_id := v_id_list(i);",
            "    DBMS_OUTPUT.PUT_LINE(v_id);",
            "  END LOOP;",
        ]
        declarations = converter.render_declarations()
        assert "  TYPE v_id_list_t IS TABLE OF v_id%TYPE;" in declarations
        assert "  v_id_list v_id_list_t;" in declarations
        assert not any("CURSOR c IS" in line for line in declarations)
        assert any(w.startswith("Cursor c rewritten to BULK COLLECT") for w in converter.warnings)


class TestRoutines:

    def test_procedure(self):
        text = (
            "CREATE PROCEDURE get_total @cust NUMBER(10), @status VARCHAR2(10) = 'open'\n"
            "AS\n"
            "BEGIN\n"
            "    DECLARE @total NUMBER(19,4)\n"
            "    SELECT @total = SUM(amount) FROM orders WHERE cust_id = @cust\n"
            "    RETURN\n"
            "END\n"
            "GO\n"
        )
        result = transform_routines(text)
        assert result == (
            "CREATE OR REPLACE PROCEDURE get_total(\n"
            "  p_cust IN NUMBER(10),\n"
            "  p_status IN VARCHAR2(10) DEFAULT 'open'\n"
            ") AS\n"
            "  v_total NUMBER(19,4);\n"
            "BEGIN\n"
            "  SELECT SUM(amount) INTO v_total\n"
            "    FROM orders WHERE cust_id = p_cust;\n"
            "  RETURN;\n"
            "END get_total;\n"
            "/\n"
        )

    def test_procedure_without_parameters(self):
        result = transform_routines("CREATE PROC dbo.cleanup AS\nDELETE FROM tmp_rows\n")
        assert result.startswith("CREATE OR REPLACE PROCEDURE dbo.cleanup AS\nBEGIN\n")
        assert "  DELETE FROM tmp_rows;" in result
        assert "END cleanup;" in result

    def test_function(self):
        result = transform_routines(
            "CREATE FUNCTION fn_double (@x int) RETURNS int AS\nBEGIN\n  RETURN @x * 2\nEND\n"
        )
        assert "CREATE OR REPLACE FUNCTION fn_double(" in result
        assert "  p_x IN NUMBER(10)" in result
        assert ") RETURN NUMBER AS" in result
        assert "  RETURN p_x * 2;" in result
        assert "END fn_double;" in result

    def test_assigned_parameter_becomes_in_out(self):
        warnings = []
        result = transform_routines(
            "CREATE PROC clamp @qty int, @max int AS\n"
            "IF @qty > @max\n"
            "    SET @qty = @max\n"
            "SELECT @max = MAX(limit_qty) FROM limits\n",
            warnings=warnings,
        )
        assert "  p_qty IN OUT NUMBER(10)," in result
        assert "  p_max IN OUT NUMBER(10)\n" in result
        assert "p_qty := p_max;" in result
        assert "Parameter @qty is assigned in clamp; declared IN OUT" in warnings

    def test_assigned_parameter_with_default_stays_in(self):
        warnings = []
        result = transform_routines("CREATE PROC p @n int = 0 AS\nSET @n = 5\n", warnings=warnings)
        assert "  p_n IN NUMBER(10) DEFAULT 0" in result
        assert "Parameter @n is assigned in p but has a default; it stays IN" in warnings

    def test_read_only_parameter_stays_in(self):
        result = transform_routines("CREATE PROC p @n int AS\nINSERT INTO log (n) VALUES (@n)\n")
        assert "  p_n IN NUMBER(10)" in result
        assert "IN OUT" not in result

    def test_trigger(self):
        warnings = []
        result = transform_routines(
            "CREATE TRIGGER trg_orders ON orders FOR INSERT, UPDATE AS\n"
            "BEGIN\n  UPDATE order_log SET cnt = cnt + 1\nEND\n",
            warnings=warnings,
        )
        assert result.startswith("CREATE OR REPLACE TRIGGER trg_orders\nAFTER INSERT OR UPDATE ON orders\nBEGIN\n")
        assert "  UPDATE order_log SET cnt = cnt + 1;" in result
        assert warnings == []

    def test_trigger_reading_inserted_warns(self):
        warnings = []
        transform_routines(
            "CREATE TRIGGER trg_a ON a FOR INSERT AS\nINSERT INTO audit SELECT id FROM inserted\n",
            warnings=warnings,
        )
        assert any("inserted/deleted" in w for w in warnings)

    def test_unrecognised_header_left_unchanged(self):
        warnings = []
        text = "CREATE TRIGGER broken\nGO\n"
        assert transform_routines(text, warnings=warnings) == text
        assert warnings == ["Could not parse header of broken; left unchanged"]

    def test_parse_routine_function_requires_returns(self):
        assert parse_routine("FUNCTION", "f", " (@x int) AS BEGIN RETURN 1 END") is None


class TestAnonymousBlock:

    def test_block_with_declarations(self):
        result = convert_anonymous_block("DECLARE @n int\nSET @n = 1\nPRINT @n")
        assert result == (
            "DECLARE\n"
            " v_n NUMBER(10);\n"
            "BEGIN\n"
            " v_n := 1;\n"
            " DBMS_OUTPUT.PUT_LINE(v_n);\n"
            "END;\n"
            "/"
        )
