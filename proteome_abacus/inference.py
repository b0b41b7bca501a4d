"""Protein inference resolution on one dataset's protein group model.

Operations, applied in place:

- Promotion: a decoy entry that is indistinguishable from target proteins is
  renamed to the best target alternative.
- Uniqueness: peptide-ions whose evidence weight reaches a threshold are
  flagged unique.
- Razor assignment: every shared peptide is given to exactly one protein.
- Picked filtering: each target competes with its own decoy counterpart.
"""

from __future__ import annotations

import logging

from .proteins import ProteinIdentification, ProteinInference

logger = logging.getLogger(__name__)

# Name prefix of reviewed database entries
REVIEWED_MARKER = 'sp|'


def is_decoy_name(name: str, decoy_tag: str) -> bool:
    return decoy_tag in name


def is_decoy_protein(protein: ProteinIdentification, decoy_tag: str) -> bool:
    """Protein-level decoy status.

    A protein is a decoy only if its own name and every indistinguishable
    alternative carry the decoy tag.
    """
    if not is_decoy_name(protein.protein_name, decoy_tag):
        return False
    return all(is_decoy_name(name, decoy_tag) for name in protein.indistinguishable_proteins)


def _best_target_alternative(alternatives: list[str]) -> str:
    for name in alternatives:
        if name.startswith(REVIEWED_MARKER):
            return name
    return alternatives[0]


def promote_protein_ids(model: ProteinInference, decoy_tag: str | None = None) -> int:
    """Rename decoy entries that are indistinguishable from a target protein.

    The target alternative carrying the reviewed marker is preferred, otherwise
    the first target in the order the inference tool listed them. Only the
    protein name changes. Indistinguishable lists need not be symmetric.

    Args:
        model: Protein group model to update in place
        decoy_tag: Decoy tag; defaults to the tag stored on the model

    Returns:
        Number of promoted protein entries

    """
    tag = model.decoy_tag if decoy_tag is None else decoy_tag
    if not tag:
        raise ValueError("A decoy tag is required for protein promotion")

    n_promoted = 0
    for protein in model.proteins():
        if not is_decoy_name(protein.protein_name, tag):
            continue

        targets = [
            name for name in protein.indistinguishable_proteins if not is_decoy_name(name, tag)
        ]
        if not targets:
            continue

        promoted = _best_target_alternative(targets)
        logger.debug(f"Promoting {protein.protein_name} to {promoted}")
        protein.protein_name = promoted
        n_promoted += 1

    logger.info(f"Promoted {n_promoted} decoy protein identifications to targets")

    return n_promoted


def mark_unique_peptides(model: ProteinInference, weight: float) -> int:
    """Flag peptide-ions whose evidence weight is at least `weight` as unique.

    Flags are recomputed from scratch, so the pass is idempotent and a higher
    threshold only ever clears flags set by a lower one.

    Args:
        model: Protein group model to update in place
        weight: Weight threshold between 0 and 1

    Returns:
        Number of peptide-ions flagged unique

    """
    if not 0.0 <= weight <= 1.0:
        raise ValueError(f"Peptide weight threshold must be between 0 and 1, got {weight}")

    n_unique = 0
    for _, ion in model.peptide_ions():
        ion.is_unique = ion.weight >= weight
        if ion.is_unique:
            n_unique += 1

    logger.info(f"Marked {n_unique} unique peptide ions (weight >= {weight})")

    return n_unique


def assign_razor_peptides(model: ProteinInference) -> int:
    """Assign each shared peptide to a single most likely protein.

    Unique peptide-ions always count as razor for their protein. For a shared
    sequence the protein with the highest probability wins, then the one with
    more unique peptide-ions, then the first one in document order.

    Returns:
        Number of shared peptide sequences assigned

    """
    # sequence -> candidate proteins, in document order
    candidates: dict[str, list[ProteinIdentification]] = {}

    for protein in model.proteins():
        protein.has_razor = False
        for ion in protein.peptide_ions:
            if ion.is_unique:
                ion.razor = 1
                protein.has_razor = True
                continue
            owners = candidates.setdefault(ion.peptide_sequence, [])
            if not owners or owners[-1] is not protein:
                owners.append(protein)

    for sequence, owners in candidates.items():
        # max() keeps the first of equal keys, which preserves document order
        winner = max(owners, key=lambda p: (p.probability, p.n_unique_peptide_ions))
        for protein in owners:
            for ion in protein.peptide_ions:
                if ion.peptide_sequence == sequence and not ion.is_unique:
                    ion.razor = 1 if protein is winner else 0
        winner.has_razor = True

    logger.info(f"Assigned {len(candidates)} shared peptides to razor proteins")

    return len(candidates)


def _strip_tag(name: str, decoy_tag: str) -> str:
    return name.replace(decoy_tag, '', 1)


def apply_picked_filter(model: ProteinInference, decoy_tag: str | None = None) -> int:
    """Resolve target/decoy pairs with the picked protein strategy.

    A target competes with the decoy built from it (the same name carrying the
    decoy tag). The higher probability wins and the target wins ties. Winners
    and unpaired entries get ``picked = 1``; losers get ``picked = 0``.

    Returns:
        Number of entries removed by the competition

    """
    tag = model.decoy_tag if decoy_tag is None else decoy_tag
    if not tag:
        raise ValueError("A decoy tag is required for picked filtering")

    best: dict[str, ProteinIdentification] = {}
    proteins = list(model.proteins())
    for protein in proteins:
        protein.picked = 1
        key = _strip_tag(protein.protein_name, tag)
        current = best.get(key)
        if current is None:
            best[key] = protein
            continue

        current_decoy = is_decoy_name(current.protein_name, tag)
        protein_decoy = is_decoy_name(protein.protein_name, tag)
        if current_decoy == protein_decoy:
            # the same accession listed twice is not a competition
            continue

        if protein.probability > current.probability or (
            protein.probability == current.probability and not protein_decoy
        ):
            current.picked = 0
            best[key] = protein
        else:
            protein.picked = 0

    n_removed = sum(1 for protein in proteins if protein.picked == 0)
    logger.info(f"Picked filter removed {n_removed} competing protein entries")

    return n_removed
