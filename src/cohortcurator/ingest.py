"""
Row ingestion.

`TemplateIngestor` validates the header, then runs the cell parsers over every
data row. All problems of a row are collected before moving on, so one pass
reports every malformed cell of the sheet.
"""

import logging
import typing

from collections import defaultdict
from dataclasses import dataclass, field

from stairval.notepad import Notepad

from .age import Age
from .cells import (
    NOT_APPLICABLE,
    PhenotypeCell,
    parse_age,
    parse_allele,
    parse_curie,
    parse_deceased,
    parse_hgnc_id,
    parse_individual_id,
    parse_optional_text,
    parse_phenotype_cell,
    parse_pmid,
    parse_sex,
    parse_text,
)
from .header import ColumnContract, Grid, validate_header
from .issues import CellError, CellParseError, IssueKind, RowError, RowIssue
from .model import Sex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RowRecord:
    """
    The typed values of one error-free data row.

    `allele_2` is None when the template has no allele_2 column or the cell
    holds ``na``. `cells` has one (status, onset) pair per term column.
    """

    row: int
    publication: str
    title: str
    individual_id: str
    comment: str
    disease_id: str
    disease_label: str
    hgnc_id: str
    gene_symbol: str
    transcript: str
    allele_1: str
    allele_2: typing.Optional[str]
    variant_comment: str
    age_of_onset: typing.Optional[Age]
    age_at_last_encounter: typing.Optional[Age]
    deceased: typing.Optional[bool]
    sex: Sex
    cells: tuple[PhenotypeCell, ...]


@dataclass
class IngestionReport:
    """
    Outcome of ingesting one sheet.

    Attributes:
        contract: the validated column contract.
        records: one record per error-free row, in sheet order.
        errors: issues of the rejected rows, keyed by 1-based sheet row number.
        biallelic_diseases: disease ids with at least one populated allele_2.
    """

    contract: ColumnContract
    records: list[RowRecord] = field(default_factory=list)
    errors: dict[int, list[RowIssue]] = field(default_factory=dict)
    biallelic_diseases: frozenset[str] = frozenset()

    @property
    def issues(self) -> list[RowIssue]:
        return [issue for row in sorted(self.errors) for issue in self.errors[row]]

    @property
    def is_clean(self) -> bool:
        return not self.errors


class _RowReader:
    """Parses the cells of a single row, collecting `CellError`s."""

    def __init__(self, grid: Grid, row: int, contract: ColumnContract):
        self._cells = grid[row]
        self._row = row
        self._contract = contract
        self.issues: list[RowIssue] = []

    def raw(self, column: int) -> str:
        if column >= len(self._cells) or self._cells[column] is None:
            return ""
        return str(self._cells[column])

    def read(self, name: str, parser: typing.Callable[[str], typing.Any]):
        spec = self._contract.field(name)
        return self._apply(spec.column, spec.name, spec.marker, parser)

    def _apply(self, column: int, column_name: str, expected: str, parser):
        raw = self.raw(column)
        try:
            return parser(raw)
        except CellParseError as e:
            self.issues.append(
                CellError(
                    row=self._row,
                    column=column,
                    column_name=column_name,
                    expected=expected,
                    raw=raw,
                    kind=e.kind,
                    reason=e.reason,
                )
            )
            return None

    def read_terms(self) -> list[typing.Optional[PhenotypeCell]]:
        return [
            self._apply(tc.column, tc.label, tc.identifier, parse_phenotype_cell)
            for tc in self._contract.term_columns
        ]


def _parse_first_allele(raw: str) -> str:
    allele = parse_allele(raw)
    if allele == NOT_APPLICABLE:
        raise CellParseError(IssueKind.MISSING_REQUIRED_ALLELE, "allele_1 must not be 'na'")
    return allele


class TemplateIngestor:
    """
    Turns a grid of cell strings into `RowRecord`s plus a report of row issues.

    Args:
        header_rows: number of header rows, 2 or 3.
    """

    def __init__(self, header_rows: int = 2):
        self._header_rows = header_rows

    def ingest(self, grid: Grid, notepad: typing.Optional[Notepad] = None) -> IngestionReport:
        """
        Raises:
            HeaderContractViolation: if the header is invalid; no rows are read.
        """
        contract = validate_header(grid, header_rows=self._header_rows)
        data_rows = [
            r for r in range(contract.header_rows, len(grid))
            if not self._is_blank(grid[r], contract.width)
        ]
        biallelic = self._find_biallelic_diseases(grid, data_rows, contract)
        report = IngestionReport(contract=contract, biallelic_diseases=biallelic)

        for r in data_rows:
            record, issues = self._ingest_row(grid, r, contract, biallelic)
            if issues:
                report.errors[r + 1] = issues
                if notepad is not None:
                    for issue in issues:
                        notepad.add_error(str(issue))
            else:
                report.records.append(record)

        logger.info(
            "Ingested %d of %d data rows (%d rejected)",
            len(report.records), len(data_rows), len(report.errors),
        )
        return report

    @staticmethod
    def _is_blank(cells: typing.Sequence[str], width: int) -> bool:
        return all(
            cells[c] is None or not str(cells[c]).strip()
            for c in range(min(width, len(cells)))
        )

    @staticmethod
    def _find_biallelic_diseases(
        grid: Grid, data_rows: typing.Iterable[int], contract: ColumnContract
    ) -> frozenset[str]:
        # inheritance is inferred from the whole sheet before any row is interpreted
        if not contract.has_allele_2:
            return frozenset()
        disease_column = contract.field("disease_id").column
        allele_column = contract.field("allele_2").column
        found = set()
        for r in data_rows:
            cells = grid[r]
            allele = str(cells[allele_column] or "").strip() if allele_column < len(cells) else ""
            if allele and allele != NOT_APPLICABLE:
                disease = str(cells[disease_column] or "").strip() if disease_column < len(cells) else ""
                if disease:
                    found.add(disease)
        if found:
            logger.debug("Biallelic diseases: %s", ", ".join(sorted(found)))
        return frozenset(found)

    @staticmethod
    def _ingest_row(
        grid: Grid, r: int, contract: ColumnContract, biallelic: frozenset[str]
    ) -> tuple[typing.Optional[RowRecord], list[RowIssue]]:
        reader = _RowReader(grid, r, contract)
        values = {
            "publication": reader.read("PMID", parse_pmid),
            "title": reader.read("title", parse_text),
            "individual_id": reader.read("individual_id", parse_individual_id),
            "comment": reader.read("comment", parse_optional_text),
            "disease_id": reader.read("disease_id", parse_curie),
            "disease_label": reader.read("disease_label", parse_text),
            "hgnc_id": reader.read("HGNC_id", parse_hgnc_id),
            "gene_symbol": reader.read("gene_symbol", parse_text),
            "transcript": reader.read("transcript", parse_text),
            "allele_1": reader.read("allele_1", _parse_first_allele),
        }
        allele_2 = reader.read("allele_2", parse_allele) if contract.has_allele_2 else None
        values.update({
            "variant_comment": reader.read("variant.comment", parse_optional_text),
            "age_of_onset": reader.read("age_of_onset", parse_age),
            "age_at_last_encounter": reader.read("age_at_last_encounter", parse_age),
            "deceased": reader.read("deceased", parse_deceased),
            "sex": reader.read("sex", parse_sex),
        })
        if allele_2 == NOT_APPLICABLE:
            allele_2 = None
            disease = values["disease_id"]
            if disease is not None and disease in biallelic:
                reader.issues.append(
                    RowError(
                        row=r,
                        kind=IssueKind.INCONSISTENT_INHERITANCE,
                        reason=f"Disease {disease} is biallelic in this sheet but allele_2 is 'na'",
                        column=contract.field("allele_2").column,
                    )
                )
        cells = reader.read_terms()

        if reader.issues:
            return None, reader.issues
        return RowRecord(row=r, allele_2=allele_2, cells=tuple(cells), **values), []



def group_issues_by_kind(report: IngestionReport) -> dict[IssueKind, list[RowIssue]]:
    grouped: dict[IssueKind, list[RowIssue]] = defaultdict(list)
    for issue in report.issues:
        grouped[issue.kind].append(issue)
    return dict(grouped)
