"""Unit tests for daily case aggregation."""

from datetime import date

from epi_analysis.services.aggregation import compute_daily_counts, observation_weights

DAY = date(2024, 3, 1)


class TestObservationWeights:
    """Test the weight an observation contributes to its series."""

    def test_suspect_only_counts_once(self, summary_factory):
        """Test that a suspected-only observation counts 1."""
        summary = summary_factory("o1", DAY, {"LAB_LEUKOCYTOSIS", "LAB_NEUTROPHILIA", "BIS_SUSPECTED"})
        assert observation_weights(summary) == {"BIS_SUSPECTED": 1}

    def test_severe_counts_double_under_suspect_series(self, summary_factory):
        """Test that a severe observation counts 2 under the suspect series."""
        summary = summary_factory("o1", DAY, {"LAB_NEUTROPHILIA", "LAB_LEFT_SHIFT", "BIS_SEVERE"})
        assert observation_weights(summary) == {"BIS_SUSPECTED": 2}

    def test_both_variants_count_once_at_severe_weight(self, summary_factory):
        """Test that carrying both variants counts once, at the severe weight."""
        summary = summary_factory("o1", DAY, {"BIS_SUSPECTED", "BIS_SEVERE"})
        assert observation_weights(summary) == {"BIS_SUSPECTED": 2}

    def test_laboratory_flags_are_not_counted(self, summary_factory):
        """Test that laboratory flags alone contribute nothing."""
        summary = summary_factory("o1", DAY, {"LAB_LEUKOCYTOSIS", "LAB_LEUKOPENIA"})
        assert observation_weights(summary) == {}

    def test_severe_weight_is_configurable(self, summary_factory):
        """Test that the severe weight can be overridden."""
        summary = summary_factory("o1", DAY, {"BIS_SEVERE"})
        assert observation_weights(summary, severe_weight=3) == {"BIS_SUSPECTED": 3}


class TestComputeDailyCounts:
    """Test grouping of summaries into daily buckets."""

    def test_weighted_sum_per_bucket(self, summary_factory):
        """Three suspect-only and two severe observations give 3 + 2*2 = 7."""
        summaries = [summary_factory(f"s{i}", DAY, {"BIS_SUSPECTED"}) for i in range(3)]
        summaries += [summary_factory(f"v{i}", DAY, {"BIS_SEVERE"}) for i in range(2)]

        counts = compute_daily_counts(summaries)

        assert counts == {("3550308", DAY, "BIS_SUSPECTED"): 7}

    def test_buckets_split_by_region_and_day(self, summary_factory):
        """Test that buckets are keyed by region, day and series."""
        other_day = date(2024, 3, 2)
        summaries = [
            summary_factory("a", DAY, {"BIS_SUSPECTED"}, region_code="3550308"),
            summary_factory("b", DAY, {"BIS_SUSPECTED"}, region_code="3304557"),
            summary_factory("c", other_day, {"BIS_SUSPECTED"}, region_code="3550308"),
        ]

        counts = compute_daily_counts(summaries)

        assert counts == {
            ("3550308", DAY, "BIS_SUSPECTED"): 1,
            ("3304557", DAY, "BIS_SUSPECTED"): 1,
            ("3550308", other_day, "BIS_SUSPECTED"): 1,
        }

    def test_missing_region_goes_to_unknown(self, summary_factory):
        """Test that summaries without a region land in the unknown bucket."""
        counts = compute_daily_counts([summary_factory("a", DAY, {"BIS_SUSPECTED"}, region_code=None)])
        assert counts == {("unknown", DAY, "BIS_SUSPECTED"): 1}

    def test_no_clinical_flags_no_buckets(self, summary_factory):
        """Test that summaries without clinical flags produce no buckets."""
        assert compute_daily_counts([summary_factory("a", DAY, {"LAB_LEUKOCYTOSIS"})]) == {}

    def test_empty_input(self):
        """Test that no summaries give no buckets."""
        assert compute_daily_counts([]) == {}
