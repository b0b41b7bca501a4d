"""Protein group model for one dataset.

The model mirrors the hierarchy of a protein inference result:

    ProteinInference
      └── ProteinGroup (group number, group probability)
            └── ProteinIdentification (one protein entry)
                  └── PeptideIonIdentification (sequence + modification + charge)

It is built by :mod:`proteome_abacus.xml_io` and mutated in place by
:mod:`proteome_abacus.inference`. Peptides shared between proteins are
duplicated under each parent; `peptide_parent_proteins` records the others.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field


@dataclass
class PeptideIonIdentification:
    """One distinct (sequence, modification, charge) observed for a protein."""

    peptide_sequence: str
    modified_peptide: str = ""
    charge: int = 0
    initial_probability: float = 0.0
    weight: float = 0.0  # local evidence weight
    group_weight: float = 0.0
    calc_neutral_pep_mass: float = 0.0
    shared_parent_proteins: int = 0
    razor: int = -1  # -1 unassigned, 0 lost, 1 assigned
    is_nondegenerate_evidence: bool = False
    is_unique: bool = False
    peptide_parent_proteins: list[str] = field(default_factory=list)

    # Opaque per-channel intensities from isobaric quantification
    labels: dict[str, float] = field(default_factory=dict)

    @property
    def ion_key(self) -> str:
        """Sequence/charge key used to identify the ion across proteins."""
        sequence = self.modified_peptide or self.peptide_sequence
        return f"{sequence}#{self.charge}"


@dataclass
class ProteinIdentification:
    """One protein entry inside a protein group."""

    protein_name: str
    group_number: int = 0
    group_sibling_id: str = ""
    description: str = ""
    length: int = 0
    percent_coverage: float = 0.0
    pct_spectrum_ids: float = 0.0
    group_probability: float = 0.0
    probability: float = 0.0
    confidence: float = 0.0
    top_pep_prob: float = 0.0
    total_number_peptides: int = 0
    unique_stripped_peptides: list[str] = field(default_factory=list)
    indistinguishable_proteins: list[str] = field(default_factory=list)
    peptide_ions: list[PeptideIonIdentification] = field(default_factory=list)
    has_razor: bool = False
    picked: int = -1  # -1 not evaluated, 0 lost, 1 kept

    @property
    def n_peptide_ions(self) -> int:
        return len(self.peptide_ions)

    @property
    def n_unique_peptide_ions(self) -> int:
        return sum(1 for ion in self.peptide_ions if ion.is_unique)


@dataclass
class ProteinGroup:
    """A cluster of proteins sharing one probability from the inference tool."""

    group_number: int
    probability: float
    proteins: list[ProteinIdentification] = field(default_factory=list)


@dataclass
class ProteinInference:
    """All protein groups read from one protein inference file."""

    file_name: str = ""
    decoy_tag: str = ""
    run_options: str = ""
    groups: list[ProteinGroup] = field(default_factory=list)

    def proteins(self) -> Iterator[ProteinIdentification]:
        """Iterate over every protein entry in document order."""
        for group in self.groups:
            yield from group.proteins

    def peptide_ions(self) -> Iterator[tuple[ProteinIdentification, PeptideIonIdentification]]:
        """Iterate over (protein, peptide-ion) pairs in document order."""
        for protein in self.proteins():
            for ion in protein.peptide_ions:
                yield protein, ion

    @property
    def n_proteins(self) -> int:
        return sum(len(group.proteins) for group in self.groups)

    def to_protein_list(self) -> list[ProteinIdentification]:
        """Flatten the groups into a protein list ordered by top peptide probability."""
        return sort_by_top_peptide_probability(list(self.proteins()))


def sort_by_top_peptide_probability(
    proteins: list[ProteinIdentification],
) -> list[ProteinIdentification]:
    """Stable descending sort on top peptide probability.

    Only the top peptide probability is compared, so entries that tie keep
    their input order.
    """
    return sorted(proteins, key=lambda p: p.top_pep_prob, reverse=True)
