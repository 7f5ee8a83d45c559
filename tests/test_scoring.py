"""Tests for the stage scoring engine."""

import pytest

from live_scores.core.exceptions import ScoringError
from live_scores.core.models import Hits, PowerFactor
from live_scores.core.scoring import (
    calculate_competitor_scores,
    calculate_max_possible_scores,
    common_stages,
    compare_competitors,
    hit_score,
    infer_procedures,
    pool_max_hit_factor,
)

from conftest import make_competitor, make_stage


# =============================================================================
# MAX POSSIBLE SCORE
# =============================================================================

class TestMaxPossibleScore:

    def test_derived_from_reference_competitor_hits(self):
        stage = make_stage(1, [make_competitor("1", hits=(27, 3, 0, 0, 0))])
        [result] = calculate_max_possible_scores([stage])
        assert result.max_possible_score == 150

    def test_misses_count_towards_max(self):
        stage = make_stage(1, [make_competitor("1", hits=(20, 4, 2, 2, 1))])
        [result] = calculate_max_possible_scores([stage])
        assert result.max_possible_score == (20 + 4 + 2 + 2) * 5

    def test_authoritative_value_is_kept(self):
        stage = make_stage(1, [make_competitor("1")], max_possible_score=120.0)
        [result] = calculate_max_possible_scores([stage])
        assert result.max_possible_score == 120.0

    def test_empty_stage_has_no_max(self):
        stage = make_stage(1, [], max_possible_score=80.0)
        [result] = calculate_max_possible_scores([stage])
        assert result.max_possible_score is None

    def test_does_not_mutate_input(self):
        stage = make_stage(1, [make_competitor("1")])
        calculate_max_possible_scores([stage])
        assert stage.max_possible_score is None

    def test_is_stable_once_established(self):
        stage = make_stage(1, [make_competitor("1", hits=(27, 3, 0, 0, 0))])
        once = calculate_max_possible_scores([stage])
        twice = calculate_max_possible_scores(once)
        assert twice[0].max_possible_score == once[0].max_possible_score == 150


# =============================================================================
# HIT SCORE AND PROCEDURES
# =============================================================================

class TestPenaltyInference:

    def test_major_hit_values(self):
        hits = Hits(A=10, C=5, D=2, M=1, NS=1)
        assert hit_score(hits, PowerFactor.MAJOR) == 50 + 20 + 4 - 10 - 10

    def test_minor_hit_values(self):
        hits = Hits(A=10, C=5, D=2, M=1, NS=1)
        assert hit_score(hits, PowerFactor.MINOR) == 50 + 15 + 2 - 10 - 10

    def test_point_gap_becomes_procedures(self):
        # 28 A = 140 points, reported 120 -> two procedurals
        competitor = make_competitor("1", hits=(28, 0, 0, 0, 0), points=120)
        assert infer_procedures(competitor) == pytest.approx(2.0)

    def test_no_negative_procedures(self):
        competitor = make_competitor("1", hits=(28, 0, 0, 0, 0), points=150)
        assert infer_procedures(competitor) == 0.0

    def test_power_factor_changes_inference(self):
        major = make_competitor("1", hits=(20, 10, 0, 0, 0), points=130, power_factor=PowerFactor.MAJOR)
        minor = make_competitor("2", hits=(20, 10, 0, 0, 0), points=130, power_factor=PowerFactor.MINOR)
        assert infer_procedures(major) == pytest.approx(1.0)
        assert infer_procedures(minor) == pytest.approx(0.0)


# =============================================================================
# STAGE SCORES
# =============================================================================

class TestStageScores:

    def test_ratio_to_best_hit_factor(self):
        stages = calculate_max_possible_scores([
            make_stage(1, [
                make_competitor("X", hit_factor=4.07),
                make_competitor("Y", hit_factor=2.0),
            ]),
        ])
        results = {r.competitor_key: r for r in calculate_competitor_scores(stages)}

        assert results["X"].total_score == pytest.approx(150.0)
        assert results["Y"].total_score == pytest.approx((2.0 / 4.07) * 150, abs=0.01)
        assert results["Y"].total_score == pytest.approx(73.71, abs=0.01)

    def test_top_scorer_gets_stage_max_on_every_stage(self):
        stages = calculate_max_possible_scores([
            make_stage(1, [make_competitor("1", 5.1), make_competitor("2", 6.3)]),
            make_stage(2, [make_competitor("1", 3.3, hits=(10, 2, 0, 0, 0)), make_competitor("2", 2.9, hits=(10, 2, 0, 0, 0))]),
        ])
        results = calculate_competitor_scores(stages)
        by_key = {r.competitor_key: r for r in results}

        assert by_key["2"].stage_scores[0].score == pytest.approx(stages[0].max_possible_score)
        assert by_key["1"].stage_scores[1].score == pytest.approx(stages[1].max_possible_score)

    def test_scores_never_exceed_stage_max(self):
        stages = calculate_max_possible_scores([
            make_stage(1, [make_competitor(str(i), hit_factor=1.0 + i * 0.37) for i in range(8)]),
        ])
        for result in calculate_competitor_scores(stages):
            for stage_score in result.stage_scores:
                assert stage_score.score <= stage_score.max_possible_score + 1e-9

    def test_zero_hit_factor_pool_scores_zero(self):
        stages = calculate_max_possible_scores([
            make_stage(1, [make_competitor("1", hit_factor=0.0), make_competitor("2", hit_factor=0.0)]),
        ])
        results = calculate_competitor_scores(stages)
        assert [r.total_score for r in results] == [0.0, 0.0]
        assert all(s.procedures == 0.0 for r in results for s in r.stage_scores)

    def test_stage_score_echoes_raw_values(self):
        competitor = make_competitor("1", hit_factor=4.0, hits=(25, 4, 1, 0, 0))
        stages = calculate_max_possible_scores([make_stage(3, [competitor], name="El Presidente")])
        [result] = calculate_competitor_scores(stages)
        [stage_score] = result.stage_scores

        assert stage_score.stage == 3
        assert stage_score.stage_name == "El Presidente"
        assert stage_score.hits == competitor.hits
        assert stage_score.points == competitor.points
        assert stage_score.time == competitor.time
        assert stage_score.hit_factor == 4.0

    def test_unnamed_stage_gets_default_name(self):
        stages = calculate_max_possible_scores([make_stage(4, [make_competitor("1")])])
        [result] = calculate_competitor_scores(stages)
        assert result.stage_scores[0].stage_name == "Stage 4"

    def test_missing_max_score_fails_fast(self):
        stages = [make_stage(1, [make_competitor("1")])]
        with pytest.raises(ScoringError):
            calculate_competitor_scores(stages)

    def test_empty_stage_is_skipped(self):
        stages = calculate_max_possible_scores([
            make_stage(1, [make_competitor("1")]),
            make_stage(2, []),
        ])
        [result] = calculate_competitor_scores(stages)
        assert len(result.stage_scores) == 1


# =============================================================================
# CATEGORY POOL
# =============================================================================

class TestCategoryPool:

    def _stages(self):
        return calculate_max_possible_scores([
            make_stage(1, [
                make_competitor("open", hit_factor=8.0),
                make_competitor("senior-a", hit_factor=5.0, category="S"),
                make_competitor("senior-b", hit_factor=4.0, category="S"),
            ]),
        ])

    def test_pool_max_respects_category(self):
        competitors = self._stages()[0].competitors
        assert pool_max_hit_factor(competitors) == 8.0
        assert pool_max_hit_factor(competitors, "S") == 5.0
        assert pool_max_hit_factor(competitors, "L") == 0.0

    def test_category_leader_gets_full_stage(self):
        results = calculate_competitor_scores(self._stages(), category="S")

        assert [r.competitor_key for r in results] == ["senior-a", "senior-b"]
        assert results[0].total_score == pytest.approx(150.0)
        assert results[1].total_score == pytest.approx(120.0)

    def test_overall_uses_everyone(self):
        results = calculate_competitor_scores(self._stages())
        by_key = {r.competitor_key: r.total_score for r in results}
        assert by_key["senior-a"] == pytest.approx(5.0 / 8.0 * 150)


# =============================================================================
# AGGREGATE TOTALS
# =============================================================================

class TestAggregateTotals:

    def test_totals_sum_stage_scores_and_unshot_stages_count_zero(self):
        stages = calculate_max_possible_scores([
            make_stage(1, [make_competitor("1", 4.0), make_competitor("2", 2.0)]),
            make_stage(2, [make_competitor("1", 4.0)]),
        ])
        results = calculate_competitor_scores(stages)
        by_key = {r.competitor_key: r for r in results}

        assert by_key["1"].total_score == pytest.approx(300.0)
        assert by_key["2"].total_score == pytest.approx(75.0)
        assert len(by_key["2"].stage_scores) == 1

    def test_sorted_descending(self):
        stages = calculate_max_possible_scores([
            make_stage(1, [make_competitor("1", 2.0), make_competitor("2", 4.0), make_competitor("3", 3.0)]),
        ])
        results = calculate_competitor_scores(stages)
        assert [r.competitor_key for r in results] == ["2", "3", "1"]

    def test_ties_keep_roster_order(self):
        stages = calculate_max_possible_scores([
            make_stage(1, [make_competitor("b", 3.0), make_competitor("a", 3.0), make_competitor("c", 3.0)]),
        ])
        results = calculate_competitor_scores(stages)
        assert [r.competitor_key for r in results] == ["b", "a", "c"]

    def test_excluded_stages_do_not_count(self):
        stages = calculate_max_possible_scores([
            make_stage(1, [make_competitor("1", 4.0), make_competitor("2", 2.0)]),
            make_stage(5, [make_competitor("1", 1.0), make_competitor("2", 4.0)]),
        ])
        results = calculate_competitor_scores(stages, excluded_stages={5})
        by_key = {r.competitor_key: r for r in results}

        assert by_key["1"].total_score == pytest.approx(150.0)
        assert [s.stage for s in by_key["2"].stage_scores] == [1]

    def test_competitor_only_on_excluded_stage_leaves_roster(self):
        stages = calculate_max_possible_scores([
            make_stage(1, [make_competitor("1")]),
            make_stage(2, [make_competitor("2")]),
        ])
        results = calculate_competitor_scores(stages, excluded_stages=[2])
        assert [r.competitor_key for r in results] == ["1"]


# =============================================================================
# COMPARISON MODE
# =============================================================================

class TestComparison:

    def _stages(self):
        return calculate_max_possible_scores([
            make_stage(1, [make_competitor("1", 4.0), make_competitor("2", 3.0), make_competitor("3", 5.0)]),
            make_stage(2, [make_competitor("1", 3.0), make_competitor("3", 6.0)]),
            make_stage(3, [make_competitor("1", 2.0), make_competitor("2", 4.0)]),
            make_stage(4, [make_competitor("4", 4.0)]),
        ])

    def test_common_stages_is_intersection(self):
        stages = self._stages()
        assert [s.number for s in common_stages(stages, ["1", "2"])] == [1, 3]
        assert [s.number for s in common_stages(stages, ["1", "3"])] == [1, 2]

    def test_disjoint_participation_collapses_to_empty(self):
        stages = self._stages()
        assert common_stages(stages, ["1", "4"]) == []
        assert compare_competitors(stages, ["1", "4"]) == []

    def test_roster_is_requested_keys_only(self):
        results = compare_competitors(self._stages(), ["1", "2"])
        assert {r.competitor_key for r in results} == {"1", "2"}

    def test_pool_still_includes_other_competitors(self):
        # competitor 3 outshoots both on stage 1, so nobody gets 100% there
        results = compare_competitors(self._stages(), ["1", "2"])
        by_key = {r.competitor_key: r for r in results}

        stage_one = by_key["1"].stage_scores[0]
        assert stage_one.stage == 1
        assert stage_one.score == pytest.approx(4.0 / 5.0 * 150)
        assert by_key["2"].stage_scores[1].score == pytest.approx(150.0)

    def test_exclusion_applies_before_intersection(self):
        results = compare_competitors(self._stages(), ["1", "2"], excluded_stages={3})
        for result in results:
            assert [s.stage for s in result.stage_scores] == [1]

    def test_category_trims_roster(self):
        stages = calculate_max_possible_scores([
            make_stage(1, [make_competitor("1", 4.0, category="S"), make_competitor("2", 5.0)]),
        ])
        results = compare_competitors(stages, ["1", "2"], category="S")
        assert [r.competitor_key for r in results] == ["1"]
        assert results[0].total_score == pytest.approx(150.0)
