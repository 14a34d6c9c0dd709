import json

import phenopackets.schema.v2 as pps2
import pytest

from datetime import datetime, timezone

from cohortcurator.builder import CohortBuilder
from cohortcurator.ingest import TemplateIngestor
from cohortcurator.phenopacket import PhenopacketExporter, phenopacket_id, write_phenopackets


@pytest.fixture
def individuals(dict_index, make_grid):
    grid = make_grid(
        [
            {
                "individual_id": "II 3",
                "age_of_onset": "Congenital onset",
                "age_at_last_encounter": "P12Y6M",
                "sex": "F",
                "deceased": "yes",
                "terms": ["+", "-", "na"],
            },
            {
                "individual_id": "P2",
                "disease_id": "OMIM:616914",
                "disease_label": "Recessive connective tissue disorder",
                "allele_2": "c.8326C>T",
                "age_at_last_encounter": "G30w2d",
                "deceased": "na",
                "terms": ["P1Y", "na", "na"],
            },
            {
                "individual_id": "P3",
                "disease_id": "OMIM:616914",
                "disease_label": "Recessive connective tissue disorder",
                "allele_2": "c.100del",
                "sex": "U",
            },
        ]
    )
    report = TemplateIngestor().ingest(grid)
    return CohortBuilder(dict_index).build(report).cohort.individuals


@pytest.fixture
def exporter() -> PhenopacketExporter:
    return PhenopacketExporter(
        hpo_version="2024-04-26",
        created_by="Earnest B. Biocurator",
        created=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )


def test_subject_and_features(individuals, exporter):
    pp = exporter.export(individuals[0])
    assert pp.id == "PMID_29482508_II_3"
    assert pp.subject.id == "II 3"
    assert pp.subject.sex == pps2.Sex.FEMALE
    assert pp.subject.time_at_last_encounter.age.iso8601duration == "P12Y6M"
    assert pp.subject.vital_status.status == pps2.VitalStatus.Status.DECEASED

    assert [(f.type.id, f.excluded) for f in pp.phenotypic_features] == [
        ("HP:0000098", False),
        ("HP:0001631", True),
    ]
    (disease,) = pp.diseases
    assert disease.term.id == "OMIM:154700"
    assert disease.onset.ontology_class.id == "HP:0003577"


def test_heterozygous_interpretation(individuals, exporter):
    pp = exporter.export(individuals[0])
    (interpretation,) = pp.interpretations
    assert interpretation.progress_status == pps2.Interpretation.ProgressStatus.SOLVED
    assert interpretation.diagnosis.disease.label == "Marfan syndrome"
    (gi,) = interpretation.diagnosis.genomic_interpretations
    descriptor = gi.variant_interpretation.variation_descriptor
    assert descriptor.gene_context.value_id == "HGNC:3603"
    assert descriptor.gene_context.symbol == "FBN1"
    assert descriptor.expressions[0].syntax == "hgvs.c"
    assert descriptor.expressions[0].value == "NM_000138.5:c.8326C>T"
    assert descriptor.allelic_state.id == "GENO:0000135"


def test_homozygous_and_compound_heterozygous(individuals, exporter):
    homozygous = exporter.export(individuals[1])
    (gi,) = homozygous.interpretations[0].diagnosis.genomic_interpretations
    assert gi.variant_interpretation.variation_descriptor.allelic_state.id == "GENO:0000136"
    assert homozygous.subject.time_at_last_encounter.gestational_age.weeks == 30
    assert homozygous.phenotypic_features[0].onset.age.iso8601duration == "P1Y"
    assert not homozygous.subject.HasField("vital_status")

    compound = exporter.export(individuals[2])
    states = [
        gi.variant_interpretation.variation_descriptor.allelic_state.id
        for gi in compound.interpretations[0].diagnosis.genomic_interpretations
    ]
    assert states == ["GENO:0000135", "GENO:0000135"]
    assert compound.subject.sex == pps2.Sex.UNKNOWN_SEX


def test_meta_data(individuals, exporter):
    meta = exporter.export(individuals[0]).meta_data
    assert meta.created_by == "Earnest B. Biocurator"
    assert meta.phenopacket_schema_version == "2.0"
    assert [(r.id, r.version) for r in meta.resources] == [("hp", "2024-04-26"), ("geno", "2023-10-08")]
    (reference,) = meta.external_references
    assert reference.id == "PMID:29482508"
    assert reference.reference == "https://pubmed.ncbi.nlm.nih.gov/29482508"
    assert reference.description == "Clinical spectrum of Marfan syndrome"


def test_phenopacket_id(individuals):
    assert phenopacket_id(individuals[1]) == "PMID_29482508_P2"


def test_write_phenopackets(individuals, exporter, tmp_path):
    written = write_phenopackets([exporter.export(i) for i in individuals], tmp_path / "out")
    assert [p.name for p in written] == [
        "PMID_29482508_II_3.json",
        "PMID_29482508_P2.json",
        "PMID_29482508_P3.json",
    ]
    data = json.loads(written[0].read_text())
    assert data["subject"]["id"] == "II 3"
    assert data["metaData"]["createdBy"] == "Earnest B. Biocurator"
