import hpotk
import os
import pytest
import typing

from cohortcurator.ontology import CanonicalTerm, HpoTermIndex, OntologyIndex

FIXED_HEADER = [
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
    ("allele_2", "str"),
    ("variant.comment", "optional"),
    ("age_of_onset", "age"),
    ("age_at_last_encounter", "age"),
    ("deceased", "yes/no/na"),
    ("sex", "M:F:O:U"),
    ("HPO", "na"),
]

DEFAULT_TERMS = [
    ("Tall stature", "HP:0000098"),
    ("Atrial septal defect", "HP:0001631"),
    ("Ectopia lentis", "HP:0001083"),
]

DEFAULT_ROW = {
    "PMID": "PMID:29482508",
    "title": "Clinical spectrum of Marfan syndrome",
    "individual_id": "P1",
    "comment": "",
    "disease_id": "OMIM:154700",
    "disease_label": "Marfan syndrome",
    "HGNC_id": "HGNC:3603",
    "gene_symbol": "FBN1",
    "transcript": "NM_000138.5",
    "allele_1": "c.8326C>T",
    "allele_2": "na",
    "variant.comment": "",
    "age_of_onset": "na",
    "age_at_last_encounter": "P12Y",
    "deceased": "no",
    "sex": "M",
    "HPO": "na",
}


class DictIndex(OntologyIndex):
    """Ontology index over a dict of terms and a child → parent map."""

    def __init__(self, labels: dict[str, str], parents: dict[str, str], alternates=None):
        self._labels = labels
        self._parents = parents
        self._alternates = alternates or {}

    def resolve(self, identifier_or_label: str) -> typing.Optional[CanonicalTerm]:
        value = self._alternates.get(identifier_or_label, identifier_or_label)
        if value in self._labels:
            return CanonicalTerm(value, self._labels[value])
        for identifier, label in self._labels.items():
            if label == value:
                return CanonicalTerm(identifier, label)
        return None

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        current = self._parents.get(descendant)
        while current is not None:
            if current == ancestor:
                return True
            current = self._parents.get(current)
        return False

    def children(self, identifier: str) -> typing.Sequence[str]:
        return tuple(sorted(c for c, p in self._parents.items() if p == identifier))


@pytest.fixture(scope="session")
def fpath_test_dir() -> str:
    """
    Path to `tests/data/` folder.
    """
    return os.path.join(os.path.dirname(__file__), "data")


@pytest.fixture(scope="session")
def fpath_hpo(fpath_test_dir: str) -> str:
    return os.path.join(fpath_test_dir, "hp.mini.json")


@pytest.fixture(scope="session")
def hpo(fpath_hpo: str) -> hpotk.MinimalOntology:
    """
    A small slice of the HPO (organ systems, a few cardiac, eye, skeletal and growth terms).
    """
    return hpotk.load_minimal_ontology(fpath_hpo)


@pytest.fixture(scope="session")
def hpo_index(hpo: hpotk.MinimalOntology) -> HpoTermIndex:
    return HpoTermIndex(hpo)


@pytest.fixture
def dict_index() -> DictIndex:
    labels = {
        "HP:0000118": "Phenotypic abnormality",
        "HP:0001626": "Abnormality of the cardiovascular system",
        "HP:0001631": "Atrial septal defect",
        "HP:0001629": "Ventricular septal defect",
        "HP:0001507": "Growth abnormality",
        "HP:0000098": "Tall stature",
        "HP:0000478": "Abnormality of the eye",
        "HP:0001083": "Ectopia lentis",
        "HP:0000545": "Myopia",
    }
    parents = {
        "HP:0001626": "HP:0000118",
        "HP:0001631": "HP:0001626",
        "HP:0001629": "HP:0001626",
        "HP:0001507": "HP:0000118",
        "HP:0000098": "HP:0001507",
        "HP:0000478": "HP:0000118",
        "HP:0001083": "HP:0000478",
        "HP:0000545": "HP:0000478",
    }
    return DictIndex(labels, parents, alternates={"HP:0007676": "HP:0001083"})


@pytest.fixture
def make_grid():
    """
    Factory for template grids.

    Each row is a dict overriding `DEFAULT_ROW`; its ``terms`` entry lists the
    phenotype cells (default: all ``na``).
    """

    def _make(
        rows: typing.Sequence[dict] = (),
        terms: typing.Sequence[tuple[str, str]] = DEFAULT_TERMS,
        allele_2: bool = True,
        info_row: bool = False,
    ) -> list[list[str]]:
        fixed = [f for f in FIXED_HEADER if allele_2 or f[0] != "allele_2"]
        grid = [
            [name for name, _ in fixed] + [label for label, _ in terms],
            [marker for _, marker in fixed] + [identifier for _, identifier in terms],
        ]
        if info_row:
            grid.append(["curator notes"] + [""] * (len(fixed) + len(terms) - 1))
        for overrides in rows:
            values = dict(DEFAULT_ROW)
            values.update({k: v for k, v in overrides.items() if k != "terms"})
            cells = list(overrides.get("terms", ["na"] * len(terms)))
            grid.append([values[name] for name, _ in fixed] + cells)
        return grid

    return _make
