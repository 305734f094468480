"""
Tests for complexity and improvement metrics.
"""

from sybase2oracle.metrics import (
    Metrics,
    compute_complexity,
    compute_metrics,
    improvement_score,
    round_half_up,
)


class TestComplexity:

    def test_fixed_weights(self):
        # 16 * 0.2 + 1 * 5 + 2 * 1.5 = 11.2
        assert compute_complexity("SELECT x FROM y;") == 11

    def test_keywords_case_insensitive(self):
        assert compute_complexity("select x from y;") == 11

    def test_empty_text(self):
        assert compute_complexity("") == 0

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(2.49) == 2


class TestImprovement:

    def test_unchanged_statement(self):
        metrics = compute_metrics("SELECT x FROM y;", "SELECT x FROM y;")
        assert metrics.original_complexity == metrics.converted_complexity
        assert metrics.improvement_percent == "+0%"

    def test_native_constructs(self):
        metrics = compute_metrics("SELECT x FROM y;", "SELECT x INTO v FROM y;")
        assert metrics.improvement_percent == "+15%"

    def test_native_constructs_are_case_sensitive(self):
        assert improvement_score("select x into v from y", 10, 10) == 0

    def test_block_structure_bonus(self):
        assert improvement_score("BEGIN\n NULL;\nEND;", 10, 10) == 10

    def test_go_cancels_block_bonus(self):
        assert improvement_score("BEGIN NULL; END;\nGO", 10, 10) == 0

    def test_complexity_bonus_and_cap(self):
        assert improvement_score("BEGIN v NUMBER; END;", 20, 10) == 30

    def test_to_dict(self):
        metrics = Metrics(11, 13, "+15%")
        assert metrics.to_dict() == {
            "original_complexity": 11,
            "converted_complexity": 13,
            "improvement_percent": "+15%",
        }
