"""
Comparison of the phenotype frequencies of two cohorts.
"""

import logging
import typing

from dataclasses import dataclass

import pandas as pd

from .hpoa import AnnotationRow, aggregate_annotations
from .model import Cohort
from .ontology import PHENOTYPIC_ABNORMALITY, OntologyIndex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TermCount:
    observed: int
    measured: int

    @property
    def percent(self) -> typing.Optional[float]:
        if self.measured == 0:
            return None
        return 100.0 * self.observed / self.measured

    def render(self) -> str:
        pct = self.percent
        if pct is None:
            return "not assessed"
        return f"{self.observed}/{self.measured} ({pct:.1f}%)"


@dataclass(frozen=True)
class ComparisonResult:
    """
    The frequency of one term in two cohorts.

    A frequency of None means the term was not assessed in that cohort, which
    is distinct from 0% (assessed and always excluded).
    """

    term_id: str
    term_label: str
    count_a: typing.Optional[TermCount]
    count_b: typing.Optional[TermCount]
    difference: float
    significant: bool
    category: str = ""

    @property
    def frequency_a(self) -> typing.Optional[float]:
        return None if self.count_a is None else self.count_a.percent

    @property
    def frequency_b(self) -> typing.Optional[float]:
        return None if self.count_b is None else self.count_b.percent

    def swapped(self) -> "ComparisonResult":
        return ComparisonResult(
            term_id=self.term_id,
            term_label=self.term_label,
            count_a=self.count_b,
            count_b=self.count_a,
            difference=self.difference,
            significant=self.significant,
            category=self.category,
        )


def pooled_counts(rows: typing.Iterable[AnnotationRow]) -> dict[str, tuple[str, TermCount]]:
    """Sum the annotation counts of each term over diseases and publications."""
    observed: dict[str, int] = {}
    measured: dict[str, int] = {}
    labels: dict[str, str] = {}
    for row in rows:
        observed[row.term_id] = observed.get(row.term_id, 0) + row.numerator
        measured[row.term_id] = measured.get(row.term_id, 0) + row.denominator
        labels.setdefault(row.term_id, row.term_label)
    # a term never ascertained counts as not assessed
    return {
        term_id: (labels[term_id], TermCount(observed[term_id], measured[term_id]))
        for term_id in observed
        if measured[term_id] > 0
    }


def top_level_category(term_id: str, index: OntologyIndex) -> str:
    """Label of the organ system (child of Phenotypic abnormality) containing the term."""
    for child in index.children(PHENOTYPIC_ABNORMALITY):
        if child == term_id or index.is_ancestor(child, term_id):
            term = index.resolve(child)
            return term.label if term is not None else child
    return ""


def compare_cohorts(
    cohort_a: Cohort,
    cohort_b: Cohort,
    threshold: float,
    *,
    index: typing.Optional[OntologyIndex] = None,
) -> list[ComparisonResult]:
    """
    Compare per-term frequencies of two cohorts.

    `threshold` is in percentage points. A term assessed on only one side is
    significant when its frequency there is above zero; its difference is that
    frequency.
    """
    counts_a = pooled_counts(aggregate_annotations(cohort_a, "", index=index))
    counts_b = pooled_counts(aggregate_annotations(cohort_b, "", index=index))

    results = []
    for term_id in set(counts_a) | set(counts_b):
        label_a, count_a = counts_a.get(term_id, (None, None))
        label_b, count_b = counts_b.get(term_id, (None, None))
        if count_a is not None and count_b is not None:
            difference = abs(count_a.percent - count_b.percent)
            significant = difference >= threshold
        else:
            present = count_a if count_a is not None else count_b
            difference = present.percent
            significant = present.percent > 0
        results.append(
            ComparisonResult(
                term_id=term_id,
                term_label=label_a or label_b,
                count_a=count_a,
                count_b=count_b,
                difference=difference,
                significant=significant,
                category=top_level_category(term_id, index) if index is not None else "",
            )
        )
    results.sort(key=lambda r: (-r.difference, r.term_id))
    logger.info(
        "Compared %d terms, %d significant at %s percentage points",
        len(results), sum(r.significant for r in results), threshold,
    )
    return results


def comparison_dataframe(
    results: typing.Sequence[ComparisonResult], name_a: str = "cohort A", name_b: str = "cohort B"
) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "category": r.category,
                "term_label": r.term_label,
                "term_id": r.term_id,
                name_a: r.count_a.render() if r.count_a else "not assessed",
                name_b: r.count_b.render() if r.count_b else "not assessed",
                "difference": round(r.difference, 1),
                "significant": r.significant,
            }
            for r in results
        ],
        columns=["category", "term_label", "term_id", name_a, name_b, "difference", "significant"],
    )
