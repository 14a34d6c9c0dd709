"""
Age grammars used by the template.

An age cell holds one of:
  - an ISO-8601 duration such as ``P3Y6M4D`` (or decimal years, ``7.5``),
  - a gestational age such as ``G22w3d``,
  - an HPO onset label such as ``Congenital onset``,
  - ``na`` (or nothing) when the age is unknown.

Every age can be mapped onto an HPO onset term, which is what the HPOA
export reports.
"""

import functools
import re
import typing

from dataclasses import dataclass
from decimal import Decimal

from .issues import CellParseError, IssueKind

DAYS_PER_YEAR = 365
DAYS_PER_MONTH = 30

_ISO8601_RE = re.compile(
    r"""
    ^P(?!$)
    (?:(?P<years>\d+)Y)?
    (?:(?P<months>\d+)M)?
    (?:(?P<weeks>\d+)W)?
    (?:(?P<days>\d+)D)?
    (?:T(?=\d)
        (?:(?P<hours>\d+)H)?
        (?:(?P<minutes>\d+)M)?
        (?:(?P<seconds>\d+(?:\.\d+)?)S)?
    )?$
    """,
    re.VERBOSE,
)
_DECIMAL_YEARS_RE = re.compile(r"^\d+(?:\.\d+)?$")
_GESTATIONAL_AGE_RE = re.compile(r"^G(?P<weeks>\d+)w(?:(?P<days>[0-6])d)?$")


@functools.total_ordering
@dataclass(frozen=True, eq=True)
class Duration:
    """
    A postnatal age, normalized so that months < 12.

    Days are not carried into months (``P45D`` stays 45 days). Ordering is by
    `total_days`, with the components breaking ties so that it agrees with
    equality (``P30D < P1M``).
    """

    years: int = 0
    months: int = 0
    days: int = 0

    def __post_init__(self):
        if min(self.years, self.months, self.days) < 0:
            raise ValueError(f"Negative duration component in {self!r}")
        if self.months >= 12:
            # frozen dataclass, so normalize through object.__setattr__
            object.__setattr__(self, "years", self.years + self.months // 12)
            object.__setattr__(self, "months", self.months % 12)

    @property
    def total_days(self) -> int:
        return self.years * DAYS_PER_YEAR + self.months * DAYS_PER_MONTH + self.days

    @property
    def total_years(self) -> float:
        return self.total_days / DAYS_PER_YEAR

    def render(self) -> str:
        """Canonical ISO-8601 form, e.g. ``P3Y2M`` or ``P0D``."""
        parts = []
        if self.years:
            parts.append(f"{self.years}Y")
        if self.months:
            parts.append(f"{self.months}M")
        if self.days:
            parts.append(f"{self.days}D")
        return "P" + ("".join(parts) if parts else "0D")

    def __lt__(self, other: "Duration") -> bool:
        if not isinstance(other, Duration):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def _sort_key(self) -> tuple[int, int, int, int]:
        return self.total_days, self.years, self.months, self.days

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class GestationalAge:
    weeks: int
    days: int = 0

    def render(self) -> str:
        return f"G{self.weeks}w{self.days}d" if self.days else f"G{self.weeks}w"

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class OnsetTerm:
    """An HPO term from the Onset subontology (HP:0003674)."""

    identifier: str
    label: str

    def render(self) -> str:
        return self.label

    def __str__(self) -> str:
        return self.label


Age = typing.Union[Duration, GestationalAge, OnsetTerm]


LATE_ONSET = OnsetTerm("HP:0003584", "Late onset")
MIDDLE_AGE_ONSET = OnsetTerm("HP:0003596", "Middle age onset")
YOUNG_ADULT_ONSET = OnsetTerm("HP:0011462", "Young adult onset")
LATE_YOUNG_ADULT_ONSET = OnsetTerm("HP:0025710", "Late young adult onset")
INTERMEDIATE_YOUNG_ADULT_ONSET = OnsetTerm("HP:0025709", "Intermediate young adult onset")
EARLY_YOUNG_ADULT_ONSET = OnsetTerm("HP:0025708", "Early young adult onset")
ADULT_ONSET = OnsetTerm("HP:0003581", "Adult onset")
JUVENILE_ONSET = OnsetTerm("HP:0003621", "Juvenile onset")
CHILDHOOD_ONSET = OnsetTerm("HP:0011463", "Childhood onset")
INFANTILE_ONSET = OnsetTerm("HP:0003593", "Infantile onset")
NEONATAL_ONSET = OnsetTerm("HP:0003623", "Neonatal onset")
CONGENITAL_ONSET = OnsetTerm("HP:0003577", "Congenital onset")
ANTENATAL_ONSET = OnsetTerm("HP:0030674", "Antenatal onset")
EMBRYONAL_ONSET = OnsetTerm("HP:0011460", "Embryonal onset")
FETAL_ONSET = OnsetTerm("HP:0011461", "Fetal onset")
LATE_FIRST_TRIMESTER_ONSET = OnsetTerm("HP:0034199", "Late first trimester onset")
SECOND_TRIMESTER_ONSET = OnsetTerm("HP:0034198", "Second trimester onset")
THIRD_TRIMESTER_ONSET = OnsetTerm("HP:0034197", "Third trimester onset")

ONSET_TERMS: dict[str, OnsetTerm] = {
    term.label: term
    for term in (
        LATE_ONSET,
        MIDDLE_AGE_ONSET,
        YOUNG_ADULT_ONSET,
        LATE_YOUNG_ADULT_ONSET,
        INTERMEDIATE_YOUNG_ADULT_ONSET,
        EARLY_YOUNG_ADULT_ONSET,
        ADULT_ONSET,
        JUVENILE_ONSET,
        CHILDHOOD_ONSET,
        INFANTILE_ONSET,
        NEONATAL_ONSET,
        CONGENITAL_ONSET,
        ANTENATAL_ONSET,
        EMBRYONAL_ONSET,
        FETAL_ONSET,
        LATE_FIRST_TRIMESTER_ONSET,
        SECOND_TRIMESTER_ONSET,
        THIRD_TRIMESTER_ONSET,
    )
}

# upper bounds (exclusive, in years) of the postnatal onset classes
_POSTNATAL_ONSET_BINS: tuple[tuple[float, OnsetTerm], ...] = (
    (28 / DAYS_PER_YEAR, NEONATAL_ONSET),
    (1, INFANTILE_ONSET),
    (5, CHILDHOOD_ONSET),
    (16, JUVENILE_ONSET),
    (19, EARLY_YOUNG_ADULT_ONSET),
    (25, INTERMEDIATE_YOUNG_ADULT_ONSET),
    (40, LATE_YOUNG_ADULT_ONSET),
    (60, MIDDLE_AGE_ONSET),
)


def parse_duration(raw: str) -> Duration:
    """
    Parse an ISO-8601 duration or a decimal number of years.

    Weeks and time components are folded into whole days. Decimal years keep
    their fraction as whole months plus the remaining days, so ``7.5`` becomes
    ``P7Y6M`` and ``1.04`` becomes ``P1Y14D``. A non-zero age shorter than a
    day becomes ``P1D``.
    """
    value = raw.strip()
    m = _ISO8601_RE.match(value)
    if m:
        parts = {k: v for k, v in m.groupdict().items() if v is not None}
        seconds = (
            int(parts.get("hours", 0)) * 3600
            + int(parts.get("minutes", 0)) * 60
            + float(parts.get("seconds", 0))
        )
        days = int(parts.get("days", 0)) + 7 * int(parts.get("weeks", 0)) + int(seconds // 86400)
        duration = Duration(
            years=int(parts.get("years", 0)),
            months=int(parts.get("months", 0)),
            days=days,
        )
        return _at_least_one_day(duration, seconds > 0)
    if _DECIMAL_YEARS_RE.match(value):
        years = Decimal(value)
        whole = int(years)
        fraction = (years - whole) * 12
        months = int(fraction)
        days = int(((fraction - months) * DAYS_PER_MONTH).to_integral_value())
        return _at_least_one_day(Duration(years=whole, months=months, days=days), years > 0)
    raise CellParseError(
        IssueKind.MALFORMED_DURATION,
        f"Malformed duration {raw!r} (expected ISO-8601 such as P3Y2M or decimal years)",
    )


def _at_least_one_day(duration: Duration, nonzero: bool) -> Duration:
    # only an explicit zero age means "at birth"
    if nonzero and duration.total_days == 0:
        return Duration(days=1)
    return duration


def parse_gestational_age(raw: str) -> GestationalAge:
    m = _GESTATIONAL_AGE_RE.match(raw.strip())
    if not m:
        raise CellParseError(IssueKind.MALFORMED_DURATION, f"Malformed gestational age {raw!r}")
    return GestationalAge(weeks=int(m.group("weeks")), days=int(m.group("days") or 0))


def parse_age(raw: str) -> typing.Optional[Age]:
    """
    Parse an age cell. Returns None for ``na`` or an empty cell.
    """
    value = raw.strip()
    if value in ("", "na"):
        return None
    if value in ONSET_TERMS:
        return ONSET_TERMS[value]
    if value.startswith("G"):
        return parse_gestational_age(value)
    try:
        return parse_duration(value)
    except CellParseError:
        raise CellParseError(
            IssueKind.MALFORMED_DURATION,
            f"Malformed age {raw!r}: use an ISO-8601 duration, decimal years, "
            f"a gestational age (G22w3d), an HPO onset label, or na",
        ) from None


def onset_term_for(age: Age) -> OnsetTerm:
    """Map any age to the HPO onset class it falls into."""
    if isinstance(age, OnsetTerm):
        return age
    if isinstance(age, GestationalAge):
        if age.weeks >= 28:
            return THIRD_TRIMESTER_ONSET
        if age.weeks >= 14:
            return SECOND_TRIMESTER_ONSET
        if age.weeks >= 11:
            return LATE_FIRST_TRIMESTER_ONSET
        return EMBRYONAL_ONSET
    if age.total_days == 0:
        return CONGENITAL_ONSET
    years = age.total_years
    for upper, term in _POSTNATAL_ONSET_BINS:
        if years < upper:
            return term
    return LATE_ONSET
