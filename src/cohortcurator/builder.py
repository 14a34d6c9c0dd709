"""
Assembly of the canonical `Cohort` from ingested rows.
"""

import logging
import typing

from dataclasses import dataclass, field

from stairval.notepad import Notepad

from .ingest import IngestionReport, RowRecord
from .issues import IssueKind, RowError
from .model import (
    Cohort,
    Disease,
    GeneContext,
    Individual,
    ObservationStatus,
    PhenotypicObservation,
    TermColumn,
    Variant,
)
from .ontology import OntologyIndex

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    """
    Attributes:
        cohort: individuals whose rows passed ingestion and the ontology join.
        errors: `RowError`s of rows excluded by the builder, in row order.
        warnings: non-fatal `RowError`s, e.g. disease label conflicts.
        invalid_columns: term columns dropped from the cohort, with the reason.
    """

    cohort: Cohort
    errors: list[RowError] = field(default_factory=list)
    warnings: list[RowError] = field(default_factory=list)
    invalid_columns: dict[str, RowError] = field(default_factory=dict)


class CohortBuilder:
    """
    Joins ingested rows against an `OntologyIndex` and builds the cohort.

    A term column whose identifier does not resolve, or whose canonical label
    differs from the header label, is dropped. Rows with a value in such a
    column are excluded. Diseases are registered once per identifier, with
    the first label seen.
    """

    def __init__(self, index: OntologyIndex):
        self._index = index

    def build(self, report: IngestionReport, notepad: typing.Optional[Notepad] = None) -> BuildResult:
        columns = report.contract.term_columns
        invalid = self._check_term_columns(columns)
        kept = tuple(tc for tc in columns if tc.identifier not in invalid)
        kept_positions = [i for i, tc in enumerate(columns) if tc.identifier not in invalid]

        errors: list[RowError] = []
        warnings: list[RowError] = []
        diseases: dict[str, Disease] = {}
        seen: dict[tuple[str, str], int] = {}
        individuals: list[Individual] = []

        for record in report.records:
            row_errors = [
                RowError(
                    row=record.row,
                    kind=invalid[tc.identifier].kind,
                    reason=invalid[tc.identifier].reason,
                    column=tc.column,
                )
                for tc, (status, _) in zip(columns, record.cells)
                if tc.identifier in invalid and status is not ObservationStatus.NOT_AVAILABLE
            ]
            key = (record.publication, record.individual_id)
            if key in seen:
                row_errors.append(
                    RowError(
                        row=record.row,
                        kind=IssueKind.DUPLICATE_INDIVIDUAL,
                        reason=(
                            f"Individual {record.individual_id!r} of {record.publication} "
                            f"already appears in row {seen[key] + 1}"
                        ),
                    )
                )
            if row_errors:
                errors.extend(row_errors)
                continue
            seen[key] = record.row

            disease = self._register_disease(record, diseases, warnings)
            individuals.append(self._make_individual(record, disease, columns, kept_positions))

        cohort = Cohort(
            individuals=tuple(individuals),
            term_columns=kept,
            diseases=diseases,
        )
        if notepad is not None:
            for column_error in invalid.values():
                notepad.add_error(f"Column {column_error.column + 1}: {column_error.reason}")
            for e in errors:
                notepad.add_error(str(e))
            for w in warnings:
                notepad.add_warning(str(w))
        logger.info(
            "Built cohort of %d individuals with %d term columns (%d rows excluded)",
            len(cohort), len(kept), len({e.row for e in errors}),
        )
        return BuildResult(
            cohort=cohort,
            errors=errors,
            warnings=warnings,
            invalid_columns=invalid,
        )

    def _check_term_columns(self, columns: typing.Sequence[TermColumn]) -> dict[str, RowError]:
        # row -1: these concern the header, not a data row
        invalid: dict[str, RowError] = {}
        for tc in columns:
            term = self._index.resolve(tc.identifier)
            if term is None:
                invalid[tc.identifier] = RowError(
                    row=-1,
                    kind=IssueKind.UNRESOLVED_TERM,
                    reason=f"Term {tc.identifier} ({tc.label!r}) is not in the ontology",
                    column=tc.column,
                )
            elif term.identifier != tc.identifier:
                invalid[tc.identifier] = RowError(
                    row=-1,
                    kind=IssueKind.TERM_LABEL_MISMATCH,
                    reason=(
                        f"Term {tc.identifier} is an outdated identifier; "
                        f"use {term.identifier} ({term.label!r})"
                    ),
                    column=tc.column,
                )
            elif term.label != tc.label:
                invalid[tc.identifier] = RowError(
                    row=-1,
                    kind=IssueKind.TERM_LABEL_MISMATCH,
                    reason=(
                        f"Header label {tc.label!r} of {tc.identifier} does not match "
                        f"the ontology label {term.label!r}"
                    ),
                    column=tc.column,
                )
        for e in invalid.values():
            logger.warning("Dropping term column: %s", e.reason)
        return invalid

    @staticmethod
    def _register_disease(
        record: RowRecord, diseases: dict[str, Disease], warnings: list[RowError]
    ) -> Disease:
        disease = diseases.get(record.disease_id)
        if disease is None:
            disease = Disease(identifier=record.disease_id, label=record.disease_label)
            diseases[record.disease_id] = disease
        elif disease.label != record.disease_label:
            warnings.append(
                RowError(
                    row=record.row,
                    kind=IssueKind.DISEASE_LABEL_CONFLICT,
                    reason=(
                        f"Disease {record.disease_id} is labelled {record.disease_label!r} "
                        f"here but {disease.label!r} earlier; keeping {disease.label!r}"
                    ),
                )
            )
        return disease

    @staticmethod
    def _make_individual(
        record: RowRecord,
        disease: Disease,
        columns: typing.Sequence[TermColumn],
        kept_positions: typing.Sequence[int],
    ) -> Individual:
        observations = []
        for i in kept_positions:
            status, onset = record.cells[i]
            observations.append(
                PhenotypicObservation(
                    term_id=columns[i].identifier,
                    term_label=columns[i].label,
                    status=status,
                    onset=onset,
                )
            )
        return Individual(
            identifier=record.individual_id,
            publication=record.publication,
            title=record.title,
            sex=record.sex,
            disease=disease,
            gene=GeneContext(
                hgnc_id=record.hgnc_id,
                symbol=record.gene_symbol,
                transcript=record.transcript,
            ),
            variant=Variant(
                transcript=record.transcript,
                allele=record.allele_1,
                second_allele=record.allele_2,
            ),
            observations=tuple(observations),
            age_at_last_encounter=record.age_at_last_encounter,
            age_of_onset=record.age_of_onset,
            deceased=record.deceased,
            comment=record.comment,
            row=record.row,
        )
