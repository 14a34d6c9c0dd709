"""
Canonical cohort model.

Built by `CohortBuilder` from validated template rows and read (never
mutated) by the phenopacket exporter, the HPOA aggregator and the
comparator. All records are frozen dataclasses.
"""

import enum
import typing

from dataclasses import dataclass, field

from .age import Age


class Sex(enum.Enum):
    MALE = "M"
    FEMALE = "F"
    OTHER = "O"
    UNKNOWN = "U"


class ObservationStatus(enum.Enum):
    OBSERVED = "observed"
    EXCLUDED = "excluded"
    NOT_AVAILABLE = "na"
    OBSERVED_WITH_ONSET = "onset"


@dataclass(frozen=True)
class TermColumn:
    """A phenotype column of the template: label in header row 1, HPO id in row 2."""

    label: str
    identifier: str
    column: int


@dataclass(frozen=True)
class Disease:
    """
    A disease, shared by every individual of the cohort that has it.

    Attributes:
        identifier: CURIE of the disease (e.g. 'OMIM:154700').
        label: display label; the first label seen for the identifier.
    """

    identifier: str
    label: str


@dataclass(frozen=True)
class GeneContext:
    hgnc_id: str
    symbol: str
    transcript: str


@dataclass(frozen=True)
class Variant:
    """
    The allele(s) of an individual.

    Attributes:
        transcript: transcript the allele is described on (e.g. 'NM_000138.5').
        allele: variant nomenclature as curated (e.g. 'c.8326C>T').
        second_allele: the other allele for biallelic rows; None when the
            disease is monoallelic for this individual.
    """

    transcript: str
    allele: str
    second_allele: typing.Optional[str] = None

    @property
    def is_biallelic(self) -> bool:
        return self.second_allele is not None


@dataclass(frozen=True)
class PhenotypicObservation:
    term_id: str
    term_label: str
    status: ObservationStatus
    onset: typing.Optional[Age] = None

    @property
    def is_observed(self) -> bool:
        return self.status in (ObservationStatus.OBSERVED, ObservationStatus.OBSERVED_WITH_ONSET)

    @property
    def is_excluded(self) -> bool:
        return self.status is ObservationStatus.EXCLUDED

    @property
    def is_ascertained(self) -> bool:
        return self.status is not ObservationStatus.NOT_AVAILABLE


@dataclass(frozen=True)
class Individual:
    """
    One row of the template after validation.

    Attributes:
        identifier: individual id as curated; unique per publication.
        publication: PMID CURIE of the source publication.
        title: title of the source publication.
        disease: shared `Disease` instance from the cohort registry.
        gene: gene and transcript the variants are described on.
        variant: the allele(s); both alleles of a biallelic row share one record.
        observations: one entry per cohort term column, in column order.
    """

    identifier: str
    publication: str
    title: str
    sex: Sex
    disease: Disease
    gene: GeneContext
    variant: Variant
    observations: tuple[PhenotypicObservation, ...]
    age_at_last_encounter: typing.Optional[Age] = None
    age_of_onset: typing.Optional[Age] = None
    deceased: typing.Optional[bool] = None
    comment: str = ""
    row: typing.Optional[int] = None

    @property
    def alleles(self) -> tuple[str, ...]:
        if self.variant.is_biallelic:
            return self.variant.allele, self.variant.second_allele
        return (self.variant.allele,)


@dataclass(frozen=True)
class Cohort:
    """
    Individuals of one template, with the term columns and diseases they share.
    """

    individuals: tuple[Individual, ...]
    term_columns: tuple[TermColumn, ...]
    diseases: typing.Mapping[str, Disease] = field(default_factory=dict)

    def __post_init__(self):
        n = len(self.term_columns)
        for individual in self.individuals:
            if len(individual.observations) != n:
                raise ValueError(
                    f"Individual {individual.identifier!r} has {len(individual.observations)} "
                    f"observations but the cohort declares {n} term columns"
                )
            for observation, column in zip(individual.observations, self.term_columns):
                if observation.term_id != column.identifier:
                    raise ValueError(
                        f"Individual {individual.identifier!r}: observation {observation.term_id} "
                        f"is out of order (expected {column.identifier})"
                    )

    @property
    def publications(self) -> tuple[str, ...]:
        """Publications cited by the individuals, in first-seen order."""
        return tuple(dict.fromkeys(i.publication for i in self.individuals))

    @property
    def publication(self) -> typing.Optional[str]:
        """The single source publication, or None if the cohort cites several."""
        pubs = self.publications
        return pubs[0] if len(pubs) == 1 else None

    def disease(self, identifier: str) -> typing.Optional[Disease]:
        return self.diseases.get(identifier)

    def __len__(self) -> int:
        return len(self.individuals)
