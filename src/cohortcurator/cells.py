"""
Cell grammar parsers.

Each parser takes the raw string of one template cell and returns a typed
value. Malformed input raises `CellParseError` with a named `IssueKind`;
nothing else escapes. Surrounding whitespace is ignored, so a cell holding
only spaces counts as empty.
"""

import re
import typing

from .age import Age, parse_age
from .issues import CellParseError, IssueKind
from .model import ObservationStatus, Sex

NOT_APPLICABLE = "na"

_CURIE_RE = re.compile(r"^(?P<prefix>[A-Za-z0-9_]+):(?P<value>[^:\s]+)$")
_HPO_ID_RE = re.compile(r"^HP:\d{7}$")
_FORBIDDEN_ID_CHARS = set("/\\()")

_SEX_FORMS: dict[str, Sex] = {
    "m": Sex.MALE,
    "male": Sex.MALE,
    "f": Sex.FEMALE,
    "female": Sex.FEMALE,
    "o": Sex.OTHER,
    "other": Sex.OTHER,
    "u": Sex.UNKNOWN,
    "unknown": Sex.UNKNOWN,
}

_OBSERVED_FORMS = {"observed", "+"}
_EXCLUDED_FORMS = {"excluded", "-"}

PhenotypeCell = tuple[ObservationStatus, typing.Optional[Age]]


def parse_curie(raw: str, prefix: typing.Optional[str] = None) -> str:
    """
    Parse a compact identifier ``PREFIX:VALUE``.

    If `prefix` is given the identifier must use exactly that prefix.
    """
    value = raw.strip()
    if not value:
        raise CellParseError(IssueKind.MALFORMED_IDENTIFIER, "Empty identifier")
    m = _CURIE_RE.match(value)
    if not m:
        if ":" not in value:
            reason = f"Identifier {raw!r} has no colon"
        elif value.count(":") > 1:
            reason = f"Identifier {raw!r} has more than one colon"
        elif value.startswith(":"):
            reason = f"Identifier {raw!r} has no prefix"
        elif value.endswith(":"):
            reason = f"Identifier {raw!r} has no value"
        else:
            reason = f"Malformed identifier {raw!r}"
        raise CellParseError(IssueKind.MALFORMED_IDENTIFIER, reason)
    if prefix is not None and m.group("prefix") != prefix:
        raise CellParseError(
            IssueKind.MALFORMED_IDENTIFIER,
            f"Identifier {raw!r} must use the {prefix!r} prefix",
        )
    return value


def parse_pmid(raw: str) -> str:
    return parse_curie(raw, prefix="PMID")


def parse_hgnc_id(raw: str) -> str:
    return parse_curie(raw, prefix="HGNC")


def parse_hpo_id(raw: str) -> str:
    value = parse_curie(raw, prefix="HP")
    if not _HPO_ID_RE.match(value):
        raise CellParseError(
            IssueKind.MALFORMED_IDENTIFIER,
            f"HPO identifier {raw!r} must have seven digits (HP:0000000)",
        )
    return value


def parse_sex(raw: str) -> Sex:
    value = raw.strip().lower()
    try:
        return _SEX_FORMS[value]
    except KeyError:
        raise CellParseError(
            IssueKind.UNRECOGNIZED_SEX,
            f"Unrecognized sex {raw!r} (expected M, F, O or U)",
        ) from None


def parse_text(raw: str) -> str:
    """Required free text (titles, labels, symbols)."""
    value = raw.strip()
    if not value:
        raise CellParseError(IssueKind.MALFORMED_CELL, "Value must not be empty")
    if "\t" in value:
        raise CellParseError(IssueKind.MALFORMED_CELL, f"Value {raw!r} must not contain a tab")
    return value


def parse_optional_text(raw: str) -> str:
    value = raw.strip()
    if value == NOT_APPLICABLE:
        return ""
    if "\t" in value:
        raise CellParseError(IssueKind.MALFORMED_CELL, f"Value {raw!r} must not contain a tab")
    return value


def parse_individual_id(raw: str) -> str:
    value = parse_text(raw)
    forbidden = sorted(_FORBIDDEN_ID_CHARS.intersection(value))
    if forbidden:
        raise CellParseError(
            IssueKind.MALFORMED_CELL,
            f"Forbidden character {forbidden[0]!r} in individual id {raw!r}",
        )
    return value


def parse_deceased(raw: str) -> typing.Optional[bool]:
    value = raw.strip().lower()
    if value == "yes":
        return True
    if value == "no":
        return False
    if value in ("", NOT_APPLICABLE):
        return None
    raise CellParseError(IssueKind.MALFORMED_CELL, f"Deceased must be yes, no or na, got {raw!r}")


def parse_allele(raw: str, optional: bool = False) -> typing.Optional[str]:
    """
    Parse an allele cell.

    Returns the allele expression, ``NOT_APPLICABLE`` for the ``na`` sentinel,
    or None for an empty cell in an optional column. An empty required cell is
    `MISSING_REQUIRED_ALLELE`. The expression itself is not checked for
    biological plausibility.
    """
    value = raw.strip()
    if not value:
        if optional:
            return None
        raise CellParseError(
            IssueKind.MISSING_REQUIRED_ALLELE,
            "Allele is required (use 'na' if the second allele does not apply)",
        )
    if value == NOT_APPLICABLE:
        return NOT_APPLICABLE
    if "\t" in value:
        raise CellParseError(IssueKind.MALFORMED_CELL, f"Allele {raw!r} must not contain a tab")
    return value


def parse_phenotype_cell(raw: str) -> PhenotypeCell:
    """
    Parse an HPO term cell: observed, excluded, na/empty, or an onset age.
    """
    value = raw.strip()
    lowered = value.lower()
    if lowered in _OBSERVED_FORMS:
        return ObservationStatus.OBSERVED, None
    if lowered in _EXCLUDED_FORMS:
        return ObservationStatus.EXCLUDED, None
    if lowered in ("", NOT_APPLICABLE):
        return ObservationStatus.NOT_AVAILABLE, None
    try:
        onset = parse_age(value)
    except CellParseError:
        raise CellParseError(
            IssueKind.MALFORMED_PHENOTYPE_CELL,
            f"Malformed HPO cell contents {raw!r} (expected observed, excluded, na or an onset age)",
        ) from None
    return ObservationStatus.OBSERVED_WITH_ONSET, onset
