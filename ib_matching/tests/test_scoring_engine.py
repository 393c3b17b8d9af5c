"""
Test the scoring engine: single matches, weights, batch ranking and the
optimized path.
"""

import random

import pytest

from ib_matching.logic import (
    CandidateFilters,
    ContractViolationError,
    MatchingEngine,
    MatchingMode,
    WeightConfig,
    score_many,
    score_many_optimized,
    score_one,
)
from ib_matching.logic.aggregator import redistribute_weights, resolve_weights
from ib_matching.logic.contracts import StudentProfile
from ib_matching.logic.memo_cache import MemoCache
from ib_matching.logic.program_index import ProgramIndex


def test_end_to_end_medicine_match(e2e_student, medicine_program):
    """42-point student against a tier-1 medicine program they fully meet."""
    result = score_one(e2e_student, medicine_program, weights=WeightConfig(academic=0.6, location=0.3, field=0.1))

    assert result.academic_score == 1.0
    assert result.location_score == 1.0
    assert result.field_score == 1.0
    assert result.adjustments.caps == {}
    assert result.overall_score == pytest.approx(1.0)
    assert 0.0 <= result.overall_score <= 1.0


def test_mode_and_explicit_weights_agree(e2e_student, medicine_program):
    by_mode = score_one(e2e_student, medicine_program, mode=MatchingMode.BALANCED)
    by_weights = score_one(e2e_student, medicine_program, weights=WeightConfig(academic=6, location=3, field=1))

    assert by_weights.weights_used.academic == pytest.approx(0.6)
    assert by_weights.overall_score == pytest.approx(by_mode.overall_score)


def test_non_positive_weights_are_rejected():
    with pytest.raises(ContractViolationError):
        resolve_weights(weights=WeightConfig(academic=0, location=0, field=0))


def test_location_weight_redistributed_without_country_preference():
    student = StudentProfile(total_points=30, interested_fields=("law",))
    weights = redistribute_weights(resolve_weights(MatchingMode.BALANCED), student)

    assert weights.location == 0.0
    assert weights.academic == pytest.approx(0.6 / 0.7)
    assert weights.field == pytest.approx(0.1 / 0.7)
    assert weights.academic / weights.field == pytest.approx(6.0)


def test_scores_stay_in_unit_interval(catalog_student, catalog):
    for mode in MatchingMode:
        for result in score_many(catalog_student, catalog, mode=mode):
            assert 0.0 <= result.overall_score <= 1.0
            assert 0.0 <= result.academic_score <= 1.0


# =============================================================================
# BATCH RANKING
# =============================================================================

def test_batch_ranking_is_deterministic(catalog_student, catalog):
    shuffled = list(catalog)
    random.Random(7).shuffle(shuffled)

    first = score_many(catalog_student, shuffled)
    second = score_many(catalog_student, list(reversed(shuffled)))

    assert [r.program_id for r in first] == [r.program_id for r in second]
    assert [r.overall_score for r in first] == sorted((r.overall_score for r in first), reverse=True)


def test_ties_broken_by_program_id(e2e_student, medicine_program):
    twins = [medicine_program.model_copy(update={"program_id": pid}) for pid in ("prog-c", "prog-a", "prog-b")]
    ranked = score_many(e2e_student, twins)

    assert [r.program_id for r in ranked] == ["prog-a", "prog-b", "prog-c"]
    assert len({r.overall_score for r in ranked}) == 1


# =============================================================================
# OPTIMIZED PATH
# =============================================================================

def test_optimized_matches_direct_on_candidate_set(catalog_student, catalog):
    engine = MatchingEngine()
    output = engine.rank_optimized(catalog_student, catalog)

    assert output.stats.total_programs == len(catalog)
    assert output.stats.candidates_after_filter == len(output.results)
    assert output.stats.candidates_after_filter <= len(catalog)

    candidate_ids = set(output.program_ids())
    candidates = [p for p in catalog if p.program_id in candidate_ids]
    direct = score_many(catalog_student, candidates)

    assert output.program_ids() == [r.program_id for r in direct]
    assert [r.model_dump() for r in output.results] == [r.model_dump() for r in direct]


def test_optimized_without_index_matches_full_direct_ranking(catalog_student, catalog):
    output = MatchingEngine().rank_optimized(catalog_student, catalog, use_index=False)
    direct = score_many(catalog_student, catalog)

    assert [r.model_dump() for r in output.results] == [r.model_dump() for r in direct]
    assert output.stats.cache_hits > 0


def test_optimized_accepts_prebuilt_index(catalog_student, catalog):
    index = ProgramIndex(catalog)
    from_index = score_many_optimized(catalog_student, index)
    from_list = score_many_optimized(catalog_student, catalog)

    assert [r.program_id for r in from_index] == [r.program_id for r in from_list]


def test_small_catalog_skips_index(catalog_student, catalog):
    output = MatchingEngine().rank_optimized(catalog_student, catalog[:40])
    assert output.stats.candidates_after_filter == 40
    assert output.stats.fallback_tier == 1


def test_shared_memo_cache_reused_across_batches(catalog_student, catalog):
    memo = MemoCache(max_size=500)
    engine = MatchingEngine(memo_cache=memo)

    first = engine.rank_optimized(catalog_student, catalog, use_index=False)
    second = engine.rank_optimized(catalog_student, catalog, use_index=False)

    assert second.stats.cache_misses == 0
    assert second.stats.cache_hits > first.stats.cache_hits
    assert second.program_ids() == first.program_ids()


def test_shared_memo_cache_never_leaks_between_students(catalog_student, catalog):
    memo = MemoCache()
    engine = MatchingEngine(memo_cache=memo)
    weaker = catalog_student.model_copy(update={
        "courses": tuple(c.model_copy(update={"grade": 3}) for c in catalog_student.courses),
    })

    engine.rank_optimized(catalog_student, catalog, use_index=False)
    shared = engine.rank_optimized(weaker, catalog, use_index=False)
    direct = score_many(weaker, catalog)

    assert [r.model_dump() for r in shared.results] == [r.model_dump() for r in direct]


# =============================================================================
# FALLBACK TIERS
# =============================================================================

def _uniform_catalog(make_program, count, **overrides):
    return [make_program(f"prog-{i:03d}", **overrides) for i in range(count)]


def test_fallback_tier_one_when_filters_are_enough(make_program):
    index = ProgramIndex(_uniform_catalog(make_program, 60, field_id="law", country_id="UK", min_points=30))
    filters = CandidateFilters(student_points=30, field_ids=("law",), country_ids=("UK",))

    ids, tier = MatchingEngine().filter_with_fallback(index, filters)
    assert tier == 1
    assert len(ids) == 60


def test_fallback_drops_country_filter(make_program):
    index = ProgramIndex(_uniform_catalog(make_program, 60, field_id="law", country_id="UK", min_points=30))
    filters = CandidateFilters(student_points=30, field_ids=("law",), country_ids=("USA",))

    ids, tier = MatchingEngine().filter_with_fallback(index, filters)
    assert tier == 3
    assert len(ids) == 60


def test_fallback_drops_field_filter(make_program):
    catalog = _uniform_catalog(make_program, 60, field_id="law", country_id="USA", min_points=30)
    filters = CandidateFilters(student_points=30, field_ids=("medicine",), country_ids=("USA",))

    ids, tier = MatchingEngine().filter_with_fallback(ProgramIndex(catalog), filters)
    assert tier == 4


def test_fallback_points_only_then_everything(make_program):
    catalog = _uniform_catalog(make_program, 60, field_id="law", country_id="UK", min_points=30)
    filters = CandidateFilters(student_points=30, field_ids=("medicine",), country_ids=("USA",))
    ids, tier = MatchingEngine().filter_with_fallback(ProgramIndex(catalog), filters)
    assert tier == 5

    low_catalog = _uniform_catalog(make_program, 60, field_id="law", country_id="UK", min_points=5)
    filters = CandidateFilters(student_points=42, field_ids=("medicine",), country_ids=("USA",))
    ids, tier = MatchingEngine().filter_with_fallback(ProgramIndex(low_catalog), filters)
    assert tier == 6
    assert ids == [p.program_id for p in low_catalog]


def test_fallback_tier_reported_in_stats(make_program):
    catalog = _uniform_catalog(make_program, 60, field_id="law", country_id="UK", min_points=30)
    student = StudentProfile(total_points=30, interested_fields=("law",), preferred_countries=("USA",))

    output = MatchingEngine().rank_optimized(student, catalog)
    assert output.stats.fallback_tier == 3
    assert output.stats.candidates_after_filter == 60
