"""
Export of cohort individuals to GA4GH phenopackets (schema v2).
"""

import logging
import pathlib
import re
import typing

from collections import Counter
from datetime import datetime, timezone

import phenopackets.schema.v2 as pps2
from google.protobuf.json_format import MessageToJson
from phenopackets.schema.v2.phenopackets_pb2 import Phenopacket

from .age import Age, Duration, GestationalAge, OnsetTerm
from .model import Cohort, Individual, Sex

logger = logging.getLogger(__name__)

DEFAULT_CREATED_BY = "cohortcurator"
GENO_VERSION = "2023-10-08"
SCHEMA_VERSION = "2.0"

HETEROZYGOUS = ("GENO:0000135", "heterozygous")
HOMOZYGOUS = ("GENO:0000136", "homozygous")

_SEX_CODES = {
    Sex.MALE: pps2.Sex.MALE,
    Sex.FEMALE: pps2.Sex.FEMALE,
    Sex.OTHER: pps2.Sex.OTHER_SEX,
    Sex.UNKNOWN: pps2.Sex.UNKNOWN_SEX,
}


def phenopacket_id(individual: Individual) -> str:
    """``PMID_123_proband_1`` from the publication and individual id."""
    raw = f"{individual.publication.replace(':', '_')}_{individual.identifier}"
    return re.sub(r"_+", "_", re.sub(r"\s+", "_", raw)).strip("_")


def time_element(age: Age) -> pps2.TimeElement:
    element = pps2.TimeElement()
    if isinstance(age, OnsetTerm):
        element.ontology_class.CopyFrom(pps2.OntologyClass(id=age.identifier, label=age.label))
    elif isinstance(age, GestationalAge):
        element.gestational_age.weeks = age.weeks
        element.gestational_age.days = age.days
    elif isinstance(age, Duration):
        element.age.iso8601duration = age.render()
    else:
        raise ValueError(f"Unsupported age {age!r}")
    return element


class PhenopacketExporter:
    """
    Builds one `Phenopacket` per individual of a cohort.

    Args:
        hpo_version: version of the HPO release the terms were checked against.
        created_by: curator recorded in the metadata.
        created: creation time; defaults to now (UTC).
    """

    def __init__(
        self,
        hpo_version: typing.Optional[str] = None,
        created_by: str = DEFAULT_CREATED_BY,
        created: typing.Optional[datetime] = None,
    ):
        self._hpo_version = hpo_version or ""
        self._created_by = created_by
        self._created = created

    def export(self, individual: Individual) -> Phenopacket:
        phenopacket = Phenopacket()
        phenopacket.id = phenopacket_id(individual)

        # Subject
        subject = phenopacket.subject
        subject.id = individual.identifier
        subject.sex = _SEX_CODES[individual.sex]
        if individual.age_at_last_encounter is not None:
            subject.time_at_last_encounter.CopyFrom(time_element(individual.age_at_last_encounter))
        if individual.deceased is not None:
            subject.vital_status.status = (
                pps2.VitalStatus.Status.DECEASED if individual.deceased else pps2.VitalStatus.Status.ALIVE
            )

        # Phenotypic features; unascertained terms are left out
        for observation in individual.observations:
            if not observation.is_ascertained:
                continue
            feature = phenopacket.phenotypic_features.add()
            feature.type.id = observation.term_id
            feature.type.label = observation.term_label
            if observation.is_excluded:
                feature.excluded = True
            if observation.onset is not None:
                feature.onset.CopyFrom(time_element(observation.onset))

        # Disease
        disease_message = phenopacket.diseases.add()
        disease_message.term.id = individual.disease.identifier
        disease_message.term.label = individual.disease.label
        if individual.age_of_onset is not None:
            disease_message.onset.CopyFrom(time_element(individual.age_of_onset))

        self._add_interpretation(phenopacket, individual)
        phenopacket.meta_data.CopyFrom(self._meta_data(individual))
        return phenopacket

    def export_cohort(self, cohort: Cohort) -> list[Phenopacket]:
        return [self.export(individual) for individual in cohort.individuals]

    @staticmethod
    def _add_interpretation(phenopacket: Phenopacket, individual: Individual):
        # Interpretation → Diagnosis → GenomicInterpretation, one per distinct allele
        interpretation = phenopacket.interpretations.add()
        interpretation.id = f"{phenopacket.id}-interpretation"
        interpretation.progress_status = pps2.Interpretation.ProgressStatus.SOLVED
        diagnosis = interpretation.diagnosis
        diagnosis.disease.id = individual.disease.identifier
        diagnosis.disease.label = individual.disease.label

        gene = individual.gene
        for index, (allele, count) in enumerate(Counter(individual.alleles).items()):
            genomic_interpretation = diagnosis.genomic_interpretations.add()
            genomic_interpretation.subject_or_biosample_id = individual.identifier
            genomic_interpretation.interpretation_status = (
                pps2.GenomicInterpretation.InterpretationStatus.CAUSATIVE
            )
            variant_interpretation = genomic_interpretation.variant_interpretation
            variant_interpretation.acmg_pathogenicity_classification = (
                pps2.AcmgPathogenicityClassification.PATHOGENIC
            )
            descriptor = variant_interpretation.variation_descriptor
            descriptor.id = f"{phenopacket.id}-variant-{index}"
            descriptor.gene_context.value_id = gene.hgnc_id
            descriptor.gene_context.symbol = gene.symbol

            expression = descriptor.expressions.add()
            if allele.startswith("c."):
                expression.syntax = "hgvs.c"
                expression.value = f"{gene.transcript}:{allele}"
            else:
                # free-text alleles (e.g. structural variants) keep their curated wording
                expression.syntax = "text"
                expression.value = allele
                descriptor.label = allele

            state_id, state_label = HOMOZYGOUS if count == 2 else HETEROZYGOUS
            descriptor.allelic_state.CopyFrom(pps2.OntologyClass(id=state_id, label=state_label))

    def _meta_data(self, individual: Individual) -> pps2.MetaData:
        meta_data = pps2.MetaData()
        created = self._created or datetime.now(timezone.utc)
        meta_data.created.FromDatetime(created)
        meta_data.created_by = self._created_by
        meta_data.phenopacket_schema_version = SCHEMA_VERSION
        meta_data.resources.append(
            pps2.Resource(
                id="hp",
                name="human phenotype ontology",
                url="http://purl.obolibrary.org/obo/hp.owl",
                version=self._hpo_version,
                namespace_prefix="HP",
                iri_prefix="http://purl.obolibrary.org/obo/HP_",
            )
        )
        meta_data.resources.append(
            pps2.Resource(
                id="geno",
                name="Genotype Ontology",
                url="http://purl.obolibrary.org/obo/geno.owl",
                version=GENO_VERSION,
                namespace_prefix="GENO",
                iri_prefix="http://purl.obolibrary.org/obo/GENO_",
            )
        )
        reference = meta_data.external_references.add()
        reference.id = individual.publication
        reference.description = individual.title
        if individual.publication.startswith("PMID:"):
            reference.reference = f"https://pubmed.ncbi.nlm.nih.gov/{individual.publication[5:]}"
        return meta_data


def write_phenopackets(
    phenopackets: typing.Iterable[Phenopacket], output_dir: pathlib.Path
) -> list[pathlib.Path]:
    """Serialize each phenopacket to ``<output_dir>/<id>.json``."""
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for phenopacket in phenopackets:
        path = output_dir / f"{phenopacket.id}.json"
        with open(path, "w", encoding="utf-8") as out_f:
            out_f.write(MessageToJson(phenopacket))
        logger.debug("Wrote %s", path)
        written.append(path)
    return written
