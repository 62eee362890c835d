"""
Tests for the Feature Extractor.

Defaults for missing fields, normalization of questionnaire values,
age drift against the `as_of` date, and the mandatory user id.
"""

from datetime import date

import pytest

from conftest import AS_OF, make_snapshot
from riskquote.engine.features import (
    FEATURE_DEFAULTS,
    FeatureExtractor,
    FeatureVector,
    compute_age,
    is_hazardous_occupation,
    parse_exercise_frequency,
)
from riskquote.errors import IncompleteProfileError
from riskquote.schemas.profile import ProfileSnapshot


@pytest.fixture
def extractor():
    return FeatureExtractor()


class TestExtraction:
    def test_worked_example_features(self, extractor, snapshot):
        fv = extractor.extract(snapshot, as_of=AS_OF)
        assert fv.user_id == "user-001"
        assert fv["age"] == 28.0
        assert fv["bmi"] == 27.2
        assert fv["smoking_status"] == 0.0
        assert fv["exercise_frequency"] == 3.5
        assert fv["existing_conditions_count"] == 0.0

    def test_every_feature_present(self, extractor, snapshot):
        fv = extractor.extract(snapshot, as_of=AS_OF)
        assert set(fv) == set(FEATURE_DEFAULTS)

    def test_missing_fields_use_defaults(self, extractor):
        fv = extractor.extract(ProfileSnapshot(user_id="bare"), as_of=AS_OF)
        assert dict(fv) == dict(sorted(FEATURE_DEFAULTS.items()))
        assert fv.defaulted == frozenset(FEATURE_DEFAULTS)

    def test_supplied_fields_not_marked_defaulted(self, extractor, snapshot):
        fv = extractor.extract(snapshot, as_of=AS_OF)
        assert not fv.is_defaulted("bmi")
        assert not fv.is_defaulted("age")
        assert fv.is_defaulted("stress_level")
        assert fv.is_defaulted("avg_daily_steps")

    def test_bmi_derived_from_height_and_weight(self, extractor):
        snap = make_snapshot(health={"bmi": None, "heightCm": 180, "weightKg": 81})
        assert extractor.extract(snap, as_of=AS_OF)["bmi"] == 25.0

    def test_unrecognized_smoking_value_defaults(self, extractor):
        snap = make_snapshot(health={"smokingStatus": "sometimes"})
        fv = extractor.extract(snap, as_of=AS_OF)
        assert fv["smoking_status"] == FEATURE_DEFAULTS["smoking_status"]
        assert fv.is_defaulted("smoking_status")

    def test_smoking_codes(self, extractor):
        for raw, code in (("never", 0.0), ("Former", 1.0), ("current smoker", 2.0)):
            snap = make_snapshot(health={"smokingStatus": raw})
            assert extractor.extract(snap, as_of=AS_OF)["smoking_status"] == code

    def test_condition_markers_are_not_counted(self, extractor):
        snap = make_snapshot(health={"medicalConditions": ["None"]})
        assert extractor.extract(snap, as_of=AS_OF)["existing_conditions_count"] == 0.0

        snap = make_snapshot(health={"medicalConditions": ["diabetes", "asthma"]})
        assert extractor.extract(snap, as_of=AS_OF)["existing_conditions_count"] == 2.0

    def test_explicit_condition_count_wins(self, extractor):
        snap = make_snapshot(health={"medicalConditions": ["diabetes"], "existingConditionsCount": 3})
        assert extractor.extract(snap, as_of=AS_OF)["existing_conditions_count"] == 3.0

    def test_tracking_summary_feeds_wearable_features(self, extractor):
        snap = make_snapshot(
            lifestyle={"sleepHours": 5.0},
            healthTracking={
                "entryCount": 10,
                "avgHeartRate": 64,
                "avgSteps": 11000,
                "avgSleepHours": 7.8,
                "improvementScore": 92,
            },
        )
        fv = extractor.extract(snap, as_of=AS_OF)
        assert fv["avg_heart_rate"] == 64.0
        assert fv["avg_daily_steps"] == 11000.0
        assert fv["wellness_score"] == 92.0
        # Tracked sleep replaces the self-reported figure
        assert fv["sleep_hours"] == 7.8

    def test_boolean_flags(self, extractor):
        snap = make_snapshot(financial={"emergencyFund": True, "existingCoverage": False})
        fv = extractor.extract(snap, as_of=AS_OF)
        assert fv["has_emergency_fund"] == 1.0
        assert fv["has_existing_coverage"] == 0.0

    def test_extraction_is_deterministic(self, extractor, snapshot):
        assert extractor.extract(snapshot, as_of=AS_OF) == extractor.extract(snapshot, as_of=AS_OF)


class TestAge:
    def test_age_drifts_across_birthday(self, extractor):
        snap = make_snapshot(demographics={"dateOfBirth": "1990-06-15"})
        before = extractor.extract(snap, as_of=date(2025, 6, 14))
        after = extractor.extract(snap, as_of=date(2025, 6, 15))
        assert before["age"] == 34.0
        assert after["age"] == 35.0

    def test_compute_age_never_negative(self):
        assert compute_age(date(2030, 1, 1), date(2025, 1, 1)) == 0


class TestIncompleteProfile:
    def test_missing_user_id_raises(self, extractor):
        with pytest.raises(IncompleteProfileError) as exc_info:
            extractor.extract(ProfileSnapshot(), as_of=AS_OF)
        assert exc_info.value.field == "user_id"
        assert exc_info.value.reason == "incomplete_profile"

    def test_blank_user_id_raises(self, extractor):
        with pytest.raises(IncompleteProfileError):
            extractor.extract(ProfileSnapshot(user_id="   "), as_of=AS_OF)


class TestNormalizers:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("3-4", 3.5),
            ("1-2", 1.5),
            ("5+", 5.5),
            ("0", 0.0),
            ("daily", 7.0),
            (4, 4.0),
            (-1, 0.0),
            ("often", None),
            (None, None),
        ],
    )
    def test_parse_exercise_frequency(self, raw, expected):
        assert parse_exercise_frequency(raw) == expected

    def test_hazardous_occupation_keywords(self):
        assert is_hazardous_occupation("Commercial Pilot")
        assert is_hazardous_occupation("construction worker")
        assert not is_hazardous_occupation("Software Engineer")
        assert not is_hazardous_occupation(None)


class TestFeatureVector:
    def test_behaves_as_read_only_mapping(self, extractor, snapshot):
        fv = extractor.extract(snapshot, as_of=AS_OF)
        assert list(fv.keys()) == sorted(FEATURE_DEFAULTS)
        assert list(fv.values()) == [fv[name] for name in fv.keys()]
        assert dict(fv.items()) == dict(fv.data)
        with pytest.raises(TypeError):
            fv.data["age"] = 99.0

    def test_direct_construction_sorts_keys(self):
        fv = FeatureVector(user_id="u", data={"bmi": 24.0, "age": 30.0}, as_of=AS_OF)
        assert list(fv) == ["age", "bmi"]
        assert fv.get("sleep_hours") is None
        assert not fv.is_defaulted("age")
