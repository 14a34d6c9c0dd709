import pytest

from cohortcurator.age import (
    CONGENITAL_ONSET,
    CHILDHOOD_ONSET,
    INFANTILE_ONSET,
    LATE_ONSET,
    NEONATAL_ONSET,
    SECOND_TRIMESTER_ONSET,
    Duration,
    GestationalAge,
    onset_term_for,
    parse_age,
    parse_duration,
)
from cohortcurator.issues import CellParseError, IssueKind


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("P3Y", Duration(years=3)),
        ("P3Y6M4D", Duration(years=3, months=6, days=4)),
        ("P18M", Duration(years=1, months=6)),
        ("P2W", Duration(days=14)),
        ("P1DT36H", Duration(days=2)),
        ("7.5", Duration(years=7, months=6)),
        ("12", Duration(years=12)),
        (" P4M ", Duration(months=4)),
    ],
)
def test_parse_duration(raw, expected):
    assert parse_duration(raw) == expected


@pytest.mark.parametrize("raw", ["P", "PT", "3Y", "P3X", "seven", "-1", "P3Y2"])
def test_parse_duration_rejects_malformed(raw):
    with pytest.raises(CellParseError) as e:
        parse_duration(raw)
    assert e.value.kind is IssueKind.MALFORMED_DURATION


@pytest.mark.parametrize("raw", ["P3Y6M4D", "P18M", "P0D", "7.5", "P2W", "P1Y13M40D"])
def test_render_is_idempotent(raw):
    once = parse_duration(raw).render()
    assert parse_duration(once).render() == once


def test_render_zero_duration():
    assert Duration().render() == "P0D"
    assert parse_duration("P0Y").render() == "P0D"


def test_durations_order_by_total_days():
    assert parse_duration("P11M") < parse_duration("P1Y")
    assert parse_duration("P1Y") == parse_duration("P12M")
    assert sorted([parse_duration("P2Y"), parse_duration("P40D"), parse_duration("0.5")]) == [
        Duration(days=40),
        Duration(months=6),
        Duration(years=2),
    ]


def test_parse_age_forms():
    assert parse_age("na") is None
    assert parse_age("") is None
    assert parse_age("Congenital onset") is CONGENITAL_ONSET
    assert parse_age("G22w3d") == GestationalAge(weeks=22, days=3)
    assert parse_age("P5Y") == Duration(years=5)


@pytest.mark.parametrize("raw", ["congenital", "G22w9d", "soon", "Gw3d"])
def test_parse_age_rejects_malformed(raw):
    with pytest.raises(CellParseError) as e:
        parse_age(raw)
    assert e.value.kind is IssueKind.MALFORMED_DURATION


@pytest.mark.parametrize(
    "age, onset",
    [
        (Duration(), CONGENITAL_ONSET),
        (Duration(days=10), NEONATAL_ONSET),
        (Duration(months=6), INFANTILE_ONSET),
        (Duration(years=3), CHILDHOOD_ONSET),
        (Duration(years=70), LATE_ONSET),
        (GestationalAge(weeks=20), SECOND_TRIMESTER_ONSET),
        (CONGENITAL_ONSET, CONGENITAL_ONSET),
    ],
)
def test_onset_term_for(age, onset):
    assert onset_term_for(age) == onset


@pytest.mark.parametrize(
    "raw, expected, onset",
    [
        ("0.02", Duration(days=7), NEONATAL_ONSET),
        ("1.04", Duration(years=1, days=14), CHILDHOOD_ONSET),
        ("PT12H", Duration(days=1), NEONATAL_ONSET),
        ("P0Y0M0DT23H", Duration(days=1), NEONATAL_ONSET),
        ("0.001", Duration(days=1), NEONATAL_ONSET),
    ],
)
def test_short_ages_keep_their_days(raw, expected, onset):
    age = parse_duration(raw)
    assert age == expected
    assert onset_term_for(age) == onset


def test_explicit_zero_is_congenital():
    assert onset_term_for(parse_duration("P0D")) == CONGENITAL_ONSET
    assert onset_term_for(parse_duration("0")) == CONGENITAL_ONSET


def test_ordering_agrees_with_equality():
    thirty_days, one_month = Duration(days=30), Duration(months=1)
    assert thirty_days != one_month
    assert thirty_days < one_month
    assert not one_month < thirty_days
    assert not thirty_days > one_month
    assert sorted([one_month, thirty_days]) == [thirty_days, one_month]
