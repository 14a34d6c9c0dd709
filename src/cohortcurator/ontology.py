"""
Ontology index.

The engine only needs two things from the HPO: resolve an identifier (or a
label) to its canonical identifier and label, and answer ancestor queries.
`OntologyIndex` is that contract; `HpoTermIndex` implements it on top of an
`hpotk.MinimalOntology`.
"""

import abc
import typing

from dataclasses import dataclass

import hpotk


PHENOTYPIC_ABNORMALITY = "HP:0000118"


@dataclass(frozen=True)
class CanonicalTerm:
    """The primary identifier and label of an ontology term."""

    identifier: str
    label: str


class OntologyIndex(metaclass=abc.ABCMeta):
    @abc.abstractmethod
    def resolve(self, identifier_or_label: str) -> typing.Optional[CanonicalTerm]:
        """Return the canonical term for an identifier or exact label, or None."""
        raise NotImplementedError

    @abc.abstractmethod
    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """True if `ancestor` is a proper ancestor of `descendant`."""
        raise NotImplementedError

    @abc.abstractmethod
    def children(self, identifier: str) -> typing.Sequence[str]:
        """Identifiers of the direct children of a term."""
        raise NotImplementedError


class HpoTermIndex(OntologyIndex):
    """
    `OntologyIndex` backed by hpotk.

    Alternate (obsolete) identifiers resolve to the primary term, so callers can
    detect outdated identifiers by comparing `CanonicalTerm.identifier` with the
    identifier they asked for.
    """

    def __init__(self, hpo: hpotk.MinimalOntology):
        self._hpo = hpo
        self._by_label: typing.Optional[dict[str, CanonicalTerm]] = None

    @property
    def version(self) -> typing.Optional[str]:
        return self._hpo.version

    def resolve(self, identifier_or_label: str) -> typing.Optional[CanonicalTerm]:
        value = identifier_or_label.strip()
        if not value:
            return None
        term_id = self._to_term_id(value)
        if term_id is not None:
            term = self._hpo.get_term(term_id)
            if term is None:
                return None
            return CanonicalTerm(identifier=term.identifier.value, label=term.name)
        return self._labels().get(value)

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        a = self._to_term_id(ancestor)
        d = self._to_term_id(descendant)
        if a is None or d is None:
            return False
        if self._hpo.get_term(a) is None or self._hpo.get_term(d) is None:
            return False
        return self._hpo.graph.is_ancestor_of(a, d)

    def children(self, identifier: str) -> typing.Sequence[str]:
        term_id = self._to_term_id(identifier)
        if term_id is None or self._hpo.get_term(term_id) is None:
            return ()
        return tuple(
            sorted(child.value for child in self._hpo.graph.get_children(term_id))
        )

    def _labels(self) -> dict[str, CanonicalTerm]:
        # built on first label lookup; identifier lookups never need it
        if self._by_label is None:
            self._by_label = {
                term.name: CanonicalTerm(identifier=term.identifier.value, label=term.name)
                for term in self._hpo.terms
            }
        return self._by_label

    @staticmethod
    def _to_term_id(value: str) -> typing.Optional[hpotk.TermId]:
        if ":" not in value or any(c.isspace() for c in value):
            return None
        try:
            return hpotk.TermId.from_curie(value)
        except ValueError:
            return None


def load_hpo_index(hpo_path: str) -> HpoTermIndex:
    """Load an HPO JSON file (optionally gzipped) into an `HpoTermIndex`."""
    return HpoTermIndex(hpotk.load_minimal_ontology(hpo_path))
