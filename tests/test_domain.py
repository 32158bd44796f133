from paperforge.domain import (
    DifficultyBand,
    band_for_score,
    effective_difficulty,
    plan_buckets,
    plan_difficulty_split,
    round_half_up,
)
from paperforge.models import DifficultyDistribution
from paperforge.services import scale_distribution

from helpers import make_config, make_item


def _split(count: int, easy: float, medium: float, hard: float) -> tuple:
    result = plan_difficulty_split(count, DifficultyDistribution(easy=easy, medium=medium, hard=hard))
    return result[DifficultyBand.EASY], result[DifficultyBand.MEDIUM], result[DifficultyBand.HARD]


class TestBandForScore:
    def test_band_boundaries(self) -> None:
        assert band_for_score(0.0) is DifficultyBand.EASY
        assert band_for_score(0.29) is DifficultyBand.EASY
        assert band_for_score(0.3) is DifficultyBand.MEDIUM
        assert band_for_score(0.59) is DifficultyBand.MEDIUM
        assert band_for_score(0.6) is DifficultyBand.HARD
        assert band_for_score(1.0) is DifficultyBand.HARD


class TestPlanDifficultySplit:
    def test_half_values_round_up(self) -> None:
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(0.49) == 0

    def test_hard_absorbs_remainder(self) -> None:
        assert _split(10, 0.33, 0.33, 0.34) == (3, 3, 4)
        assert _split(6, 0.75, 0.125, 0.125) == (5, 1, 0)

    def test_half_up_differs_from_bankers_rounding(self) -> None:
        # 2 * 0.25 == 0.5 rounds to 1, not 0.
        assert _split(2, 0.25, 0.25, 0.5) == (1, 1, 0)

    def test_malformed_fractions_leave_negative_hard(self) -> None:
        easy, medium, hard = _split(1, 0.5, 0.5, 0.0)
        assert (easy, medium, hard) == (1, 1, -1)
        assert easy + medium + hard == 1

    def test_zero_count(self) -> None:
        assert _split(0, 0.2, 0.3, 0.5) == (0, 0, 0)

    def test_buckets_sum_to_type_count(self) -> None:
        config = make_config({"mcq": 7, "cloze": 3}, 0.3, 0.4, 0.3)
        buckets = plan_buckets(config)
        assert len(buckets) == 6
        for item_type, count in config.item_distribution.items():
            assert sum(b.target for b in buckets if b.item_type == item_type) == count

    def test_zero_count_types_have_no_buckets(self) -> None:
        config = make_config({"mcq": 3, "cloze": 0}, 0.3, 0.4, 0.3)
        assert {b.item_type for b in plan_buckets(config)} == {"mcq"}


class TestEffectiveDifficulty:
    def test_mix_of_selection(self) -> None:
        items = [
            make_item("a", "mcq", 0.2),
            make_item("b", "mcq", 0.5),
            make_item("c", "mcq", 0.5),
            make_item("d", "mcq", 0.8),
        ]
        mix = effective_difficulty(items)
        assert (mix.easy, mix.medium, mix.hard) == (0.25, 0.5, 0.25)

    def test_empty_selection(self) -> None:
        mix = effective_difficulty([])
        assert mix.total() == 0.0


class TestScaleDistribution:
    def test_remainder_goes_to_largest_share(self) -> None:
        scaled = scale_distribution({"mcq": 6, "cloze": 2, "reading_q": 2}, 5, {"mcq": 5})
        assert scaled == {"mcq": 5}

    def test_keeps_proportions_within_caps(self) -> None:
        scaled = scale_distribution({"mcq": 4, "cloze": 2}, 3, {"mcq": 2, "cloze": 1})
        assert scaled == {"mcq": 2, "cloze": 1}

    def test_remainder_skips_types_without_spare(self) -> None:
        scaled = scale_distribution({"mcq": 5, "cloze": 3, "writing_task": 2}, 3, {"mcq": 1, "cloze": 2})
        assert scaled == {"mcq": 1, "cloze": 2}

    def test_empty_distribution(self) -> None:
        assert scale_distribution({}, 3, {}) == {}
