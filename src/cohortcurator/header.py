"""
Header contract of the legacy cohort curation template.

Row 1 holds column names, row 2 the type marker of each fixed column or the
HPO identifier of each term column. An optional third header row carries
curator notes and is ignored. `validate_header` checks the header and returns
the `ColumnContract` used to read the data rows.
"""

import logging
import typing

from dataclasses import dataclass

from .cells import NOT_APPLICABLE, parse_hpo_id
from .issues import CellParseError, HeaderContractViolation
from .model import TermColumn

logger = logging.getLogger(__name__)

Grid = typing.Sequence[typing.Sequence[str]]


@dataclass(frozen=True)
class FieldSpec:
    """A fixed column: its row-1 name, row-2 type marker and grid index."""

    name: str
    marker: str
    column: int = -1


# (name, marker) of the fixed block; allele_2 sits between allele_1 and variant.comment
_LEADING_FIELDS: tuple[tuple[str, str], ...] = (
    ("PMID", "CURIE"),
    ("title", "str"),
    ("individual_id", "str"),
    ("comment", "optional"),
    ("disease_id", "CURIE"),
    ("disease_label", "str"),
    ("HGNC_id", "CURIE"),
    ("gene_symbol", "str"),
    ("transcript", "str"),
    ("allele_1", "str"),
)
ALLELE_2 = ("allele_2", "str")
_TRAILING_FIELDS: tuple[tuple[str, str], ...] = (
    ("variant.comment", "optional"),
    ("age_of_onset", "age"),
    ("age_at_last_encounter", "age"),
    ("deceased", "yes/no/na"),
    ("sex", "M:F:O:U"),
    ("HPO", "na"),
)


@dataclass(frozen=True)
class ColumnContract:
    """
    The validated layout of a template.

    Attributes:
        fields: the fixed columns in grid order.
        term_columns: the phenotype term columns in grid order.
        has_allele_2: whether the template carries an allele_2 column.
        header_rows: number of header rows (2 or 3) before the first data row.
    """

    fields: tuple[FieldSpec, ...]
    term_columns: tuple[TermColumn, ...]
    has_allele_2: bool
    header_rows: int = 2

    def field(self, name: str) -> FieldSpec:
        for spec in self.fields:
            if spec.name == name:
                return spec
        raise KeyError(name)

    def has_field(self, name: str) -> bool:
        return any(spec.name == name for spec in self.fields)

    @property
    def width(self) -> int:
        if self.term_columns:
            return self.term_columns[-1].column + 1
        return len(self.fields)


def _cell(grid: Grid, row: int, column: int) -> str:
    if row >= len(grid) or column >= len(grid[row]):
        return ""
    value = grid[row][column]
    return "" if value is None else str(value).strip()


def validate_header(grid: Grid, header_rows: int = 2) -> ColumnContract:
    """
    Validate the header rows of `grid` and derive the column contract.

    Raises:
        HeaderContractViolation: for the first structural mismatch found.
    """
    if header_rows not in (2, 3):
        raise HeaderContractViolation(None, f"header_rows must be 2 or 3, got {header_rows}")
    if len(grid) < header_rows:
        raise HeaderContractViolation(
            None, f"Expected {header_rows} header rows but the sheet has {len(grid)} rows"
        )

    fields: list[FieldSpec] = []
    column = 0

    def expect(name: str, marker: str):
        nonlocal column
        found_name = _cell(grid, 0, column)
        found_marker = _cell(grid, 1, column)
        if found_name != name:
            raise HeaderContractViolation(
                column, f"Expected column {name!r} but found {found_name!r}"
            )
        if found_marker != marker:
            raise HeaderContractViolation(
                column, f"Column {name!r} must have type marker {marker!r}, found {found_marker!r}"
            )
        fields.append(FieldSpec(name=name, marker=marker, column=column))
        column += 1

    for name, marker in _LEADING_FIELDS:
        expect(name, marker)

    has_allele_2 = _cell(grid, 0, column) == ALLELE_2[0]
    if has_allele_2:
        if not _cell(grid, 1, column):
            raise HeaderContractViolation(column, "Column 'allele_2' is present but has no type marker")
        expect(*ALLELE_2)

    for name, marker in _TRAILING_FIELDS:
        expect(name, marker)

    term_columns = _scan_term_columns(grid, column)
    logger.debug(
        "Header has %d fixed columns (allele_2: %s) and %d term columns",
        len(fields), has_allele_2, len(term_columns),
    )
    return ColumnContract(
        fields=tuple(fields),
        term_columns=term_columns,
        has_allele_2=has_allele_2,
        header_rows=header_rows,
    )


def _scan_term_columns(grid: Grid, start: int) -> tuple[TermColumn, ...]:
    width = max(len(r) for r in grid[:2])
    columns: list[TermColumn] = []
    seen_ids: dict[str, int] = {}
    seen_labels: dict[str, str] = {}
    for column in range(start, width):
        label = _cell(grid, 0, column)
        raw_id = _cell(grid, 1, column)
        if raw_id == NOT_APPLICABLE:
            break
        if not label and not raw_id and all(not _cell(grid, r, column) for r in range(len(grid))):
            _check_nothing_after_gap(grid, column, width)
            break
        if not label:
            raise HeaderContractViolation(column, "Term column has no label in row 1")
        try:
            identifier = parse_hpo_id(raw_id)
        except CellParseError as e:
            raise HeaderContractViolation(column, f"Term column {label!r}: {e.reason}") from None
        if identifier in seen_ids:
            raise HeaderContractViolation(
                column,
                f"Duplicate term column {identifier} (first seen in column {seen_ids[identifier] + 1})",
            )
        if label in seen_labels:
            raise HeaderContractViolation(
                column,
                f"Label {label!r} is used for both {seen_labels[label]} and {identifier}",
            )
        seen_ids[identifier] = column
        seen_labels[label] = identifier
        columns.append(TermColumn(label=label, identifier=identifier, column=column))
    return tuple(columns)


def _check_nothing_after_gap(grid: Grid, gap: int, width: int):
    for column in range(gap + 1, width):
        label = _cell(grid, 0, column) or _cell(grid, 1, column)
        if label:
            raise HeaderContractViolation(
                column,
                f"Term column {label!r} follows the blank column {gap + 1}; "
                f"remove the gap or end the term columns with an 'na' column",
            )
