"""
Disease-to-phenotype annotations in the HPOA format.

Observations are grouped by (disease, term, publication) and counted:
observed and observed-with-onset entries go into the numerator, excluded
entries only into the denominator, and unascertained entries are ignored.
"""

import logging
import re
import typing

from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date

import pandas as pd

from .age import OnsetTerm, onset_term_for
from .model import Cohort, PhenotypicObservation
from .ontology import OntologyIndex

logger = logging.getLogger(__name__)

EVIDENCE_CODE = "PCS"

HEADER = (
    "#diseaseID",
    "diseaseName",
    "phenotypeID",
    "phenotypeName",
    "onsetID",
    "onsetName",
    "frequency",
    "sex",
    "negation",
    "modifier",
    "description",
    "publication",
    "evidence",
    "biocuration",
)

_ORCID_RE = re.compile(r"^\d{4}-\d{4}-\d{4}-\d{3}[\dX]$")


@dataclass(frozen=True)
class AnnotationRow:
    """
    One HPOA line.

    `frequency` is ``numerator/denominator`` or empty when nothing was
    ascertained. The onset fields are empty unless every observed entry of the
    group has the same onset.
    """

    disease_id: str
    disease_label: str
    term_id: str
    term_label: str
    numerator: int
    denominator: int
    publication: str
    biocuration: str
    onset_id: str = ""
    onset_label: str = ""
    evidence: str = EVIDENCE_CODE

    @property
    def frequency(self) -> str:
        if self.denominator == 0:
            return ""
        return f"{self.numerator}/{self.denominator}"

    def fields(self) -> tuple[str, ...]:
        return (
            self.disease_id,
            self.disease_label,
            self.term_id,
            self.term_label,
            self.onset_id,
            self.onset_label,
            self.frequency,
            "",
            "",
            "",
            "",
            self.publication,
            self.evidence,
            self.biocuration,
        )


def is_valid_orcid(orcid: str) -> bool:
    return bool(_ORCID_RE.match(orcid))


def biocuration_string(orcid: str, today: typing.Optional[date] = None) -> str:
    """``ORCID:0000-0002-0736-9199[2024-05-01]``"""
    if not is_valid_orcid(orcid):
        raise ValueError(
            f"Malformed biocurator {orcid!r}: must be the 16-digit ORCID identifier only "
            f"(e.g. 0000-0002-0736-9199)"
        )
    today = today or date.today()
    return f"ORCID:{orcid}[{today.isoformat()}]"


def _uniform_onset(observations: typing.Sequence[PhenotypicObservation]) -> typing.Optional[OnsetTerm]:
    observed = [o for o in observations if o.is_observed]
    if not observed:
        return None
    onsets = {o.onset for o in observed}
    if len(onsets) != 1:
        return None
    onset = onsets.pop()
    return None if onset is None else onset_term_for(onset)


def aggregate_annotations(
    cohort: Cohort,
    biocuration: str,
    *,
    index: typing.Optional[OntologyIndex] = None,
) -> list[AnnotationRow]:
    """
    Count the cohort's observations per (disease, term, publication).

    Groups in which every entry is ``na`` produce no row.

    If `index` is given, groups whose term it cannot resolve are dropped with a
    warning; the rest of the aggregation is unaffected.
    """
    groups: dict[tuple[str, str, str], list[PhenotypicObservation]] = defaultdict(list)
    labels: dict[str, str] = {}
    for individual in cohort.individuals:
        for observation in individual.observations:
            key = (individual.disease.identifier, observation.term_id, individual.publication)
            groups[key].append(observation)
            labels.setdefault(observation.term_id, observation.term_label)

    rows = []
    for (disease_id, term_id, publication), observations in sorted(groups.items()):
        if index is not None and index.resolve(term_id) is None:
            logger.warning(
                "Skipping %s for %s (%s): term not found in the ontology",
                term_id, disease_id, publication,
            )
            continue
        numerator = sum(1 for o in observations if o.is_observed)
        excluded = sum(1 for o in observations if o.is_excluded)
        if numerator + excluded == 0:
            # HPOA has no way to say "not assessed"
            logger.debug("No ascertained %s for %s (%s)", term_id, disease_id, publication)
            continue
        onset = _uniform_onset(observations)
        disease = cohort.disease(disease_id)
        rows.append(
            AnnotationRow(
                disease_id=disease_id,
                disease_label=disease.label if disease is not None else "",
                term_id=term_id,
                term_label=labels[term_id],
                numerator=numerator,
                denominator=numerator + excluded,
                publication=publication,
                biocuration=biocuration,
                onset_id=onset.identifier if onset else "",
                onset_label=onset.label if onset else "",
            )
        )
    return rows


def aggregate_onsets(cohort: Cohort, biocuration: str) -> list[AnnotationRow]:
    """
    Onset rows: per (disease, publication), how many individuals with a known
    age of onset fall into each HPO onset class.
    """
    onsets: dict[tuple[str, str], list[OnsetTerm]] = defaultdict(list)
    for individual in cohort.individuals:
        if individual.age_of_onset is None:
            continue
        key = (individual.disease.identifier, individual.publication)
        onsets[key].append(onset_term_for(individual.age_of_onset))

    rows = []
    for (disease_id, publication), terms in sorted(onsets.items()):
        disease = cohort.disease(disease_id)
        for term, count in sorted(Counter(terms).items(), key=lambda item: item[0].identifier):
            rows.append(
                AnnotationRow(
                    disease_id=disease_id,
                    disease_label=disease.label if disease is not None else "",
                    term_id=term.identifier,
                    term_label=term.label,
                    numerator=count,
                    denominator=len(terms),
                    publication=publication,
                    biocuration=biocuration,
                )
            )
    return rows


class HpoaTable:
    """
    The HPOA export of a cohort: phenotype rows followed by onset rows.

    Args:
        cohort: the cohort to summarize.
        orcid: biocurator ORCID, e.g. ``0000-0002-0736-9199``.
        index: optional ontology index used to drop unresolvable terms.
        today: curation date; defaults to today.

    Raises:
        ValueError: if `orcid` is malformed.
    """

    def __init__(
        self,
        cohort: Cohort,
        orcid: str,
        index: typing.Optional[OntologyIndex] = None,
        today: typing.Optional[date] = None,
    ):
        self._biocuration = biocuration_string(orcid, today)
        self._rows = aggregate_annotations(cohort, self._biocuration, index=index) + aggregate_onsets(
            cohort, self._biocuration
        )
        self._diseases = tuple(cohort.diseases)

    @property
    def rows(self) -> list[AnnotationRow]:
        return list(self._rows)

    @property
    def biocuration(self) -> str:
        return self._biocuration

    def file_name(self, gene_symbol: typing.Optional[str] = None) -> str:
        stem = "-".join(d.replace(":", "_") for d in self._diseases) or "cohort"
        if gene_symbol:
            stem = f"{gene_symbol}-{stem}"
        return f"{stem}.hpoa.tsv"

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([r.fields() for r in self._rows], columns=list(HEADER))

    def write_tsv(self, path) -> None:
        self.to_dataframe().to_csv(path, sep="\t", index=False)
