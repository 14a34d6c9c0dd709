"""
Error taxonomy for template ingestion.

Cell parsers raise `CellParseError`; the ingestor pins each one to its sheet
coordinates as a `CellError`. Problems that concern a whole row (inheritance,
ontology join, duplicates) are `RowError`s. A broken header is the only fatal
condition and is raised as `HeaderContractViolation`.
"""

import enum
import typing

from dataclasses import dataclass


class IssueKind(enum.Enum):
    MALFORMED_IDENTIFIER = "MalformedIdentifier"
    MALFORMED_DURATION = "MalformedDuration"
    UNRECOGNIZED_SEX = "UnrecognizedSex"
    MISSING_REQUIRED_ALLELE = "MissingRequiredAllele"
    MALFORMED_PHENOTYPE_CELL = "MalformedPhenotypeCell"
    MALFORMED_CELL = "MalformedCell"
    INCONSISTENT_INHERITANCE = "InconsistentInheritance"
    TERM_LABEL_MISMATCH = "TermLabelMismatch"
    UNRESOLVED_TERM = "UnresolvedTerm"
    DISEASE_LABEL_CONFLICT = "DiseaseLabelConflict"
    DUPLICATE_INDIVIDUAL = "DuplicateIndividual"


class CellParseError(ValueError):
    """Raised by a cell parser for malformed input."""

    def __init__(self, kind: IssueKind, reason: str):
        super().__init__(reason)
        self.kind = kind
        self.reason = reason


class HeaderContractViolation(ValueError):
    """The header rows do not match the template contract."""

    def __init__(self, column: typing.Optional[int], message: str):
        location = f"column {column + 1}: " if column is not None else ""
        super().__init__(f"Header contract violation at {location}{message}")
        self.column = column
        self.message = message


@dataclass(frozen=True)
class CellError:
    """
    One malformed cell.

    Attributes:
        row: 0-based row index in the grid.
        column: 0-based column index in the grid.
        column_name: row-1 header of the column (term label for term columns).
        expected: row-2 type marker of the column (term id for term columns).
        raw: the cell content as found.
        kind: the named error kind.
        reason: human-readable explanation.
    """

    row: int
    column: int
    column_name: str
    expected: str
    raw: str
    kind: IssueKind
    reason: str

    def __str__(self) -> str:
        return (
            f"Row {self.row + 1}, column {self.column + 1} ({self.column_name!r}, "
            f"expected {self.expected}): {self.kind.value}: {self.reason}"
        )


@dataclass(frozen=True)
class RowError:
    """A problem that concerns a whole row rather than a single cell."""

    row: int
    kind: IssueKind
    reason: str
    column: typing.Optional[int] = None

    def __str__(self) -> str:
        return f"Row {self.row + 1}: {self.kind.value}: {self.reason}"


RowIssue = typing.Union[CellError, RowError]
