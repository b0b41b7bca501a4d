"""Combined analysis of several resolved datasets (abacus).

Each dataset contributes one evidence record per protein that passes the
probability and decoy/contaminant filters. Records are mapped onto clusters
(from a clustering run, or one cluster per protein), peptide occurrences are
counted across every (dataset, protein) context, and each cluster's peptides
are split into unique and shared ones.

Datasets are only read: the per-dataset models are restored from their own
workspaces and never written back.
"""

from __future__ import annotations

import copy
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

from .clusters import Cluster, singleton_clusters
from .data_io import Workspace, restore_protxml
from .errors import AggregationPreconditionError, CannotRestore
from .inference import is_decoy_protein
from .proteins import PeptideIonIdentification, ProteinIdentification, ProteinInference

logger = logging.getLogger(__name__)

# Minimum number of datasets for a combined analysis
MIN_DATASETS = 2


@dataclass
class AbacusConfig:
    """Configuration for the combined analysis."""

    decoy_tag: str = "rev_"
    contaminant_tag: str = "contam_"
    protein_probability: float = 0.9
    peptide_probability: float = 0.5

    razor: bool = False  # count only unique and razor-assigned peptide-ions
    picked: bool = False  # drop entries that lost the picked target/decoy competition
    unique_only: bool = False  # count only unique peptide-ions
    labels: bool = False  # sum isobaric label intensities per cluster


@dataclass
class ProteinEvidence:
    """One protein's contribution from one dataset."""

    dataset: str
    protein_name: str
    description: str
    coverage: float
    top_pep_prob: float
    is_decoy: bool
    is_contaminant: bool
    peptide_ions: list[PeptideIonIdentification] = field(default_factory=list)

    @property
    def protein_id(self) -> str:
        """Accession part of a database-style name (``db|ACCESSION|ENTRY``)."""
        parts = self.protein_name.split("|")
        return parts[1] if len(parts) >= 3 else self.protein_name


def _counted_ions(
    protein: ProteinIdentification,
    config: AbacusConfig,
) -> list[PeptideIonIdentification]:
    ions = []
    for ion in protein.peptide_ions:
        if ion.initial_probability < config.peptide_probability:
            continue
        if config.unique_only and not ion.is_unique:
            continue
        if config.razor and not (ion.is_unique or ion.razor == 1):
            continue
        ions.append(ion)
    return ions


def collect_evidence(
    dataset: str,
    model: ProteinInference,
    config: AbacusConfig,
) -> list[ProteinEvidence]:
    """Extract the evidence records of one dataset.

    Decoys and contaminants are flagged independently and a record is kept
    only when both flags are false.

    Raises:
        AggregationPreconditionError: If picked filtering is requested but the
            dataset was processed without the picked filter

    """
    if config.picked and any(protein.picked == -1 for protein in model.proteins()):
        raise AggregationPreconditionError(
            f"Dataset '{dataset}' was processed without the picked filter; "
            "reprocess it with inference.picked enabled"
        )

    evidence = []
    n_excluded = 0

    for protein in model.proteins():
        is_decoy = is_decoy_protein(protein, config.decoy_tag)
        is_contaminant = bool(config.contaminant_tag) and config.contaminant_tag in protein.protein_name
        if is_decoy or is_contaminant:
            n_excluded += 1
            continue

        if protein.probability < config.protein_probability:
            continue
        if config.picked and protein.picked == 0:
            continue

        ions = _counted_ions(protein, config)
        evidence.append(
            ProteinEvidence(
                dataset=dataset,
                protein_name=protein.protein_name,
                description=protein.description,
                coverage=protein.percent_coverage,
                top_pep_prob=max((ion.initial_probability for ion in ions), default=0.0),
                is_decoy=is_decoy,
                is_contaminant=is_contaminant,
                peptide_ions=ions,
            )
        )

    logger.info(
        f"{dataset}: {len(evidence)} proteins pass filters, "
        f"{n_excluded} decoys/contaminants excluded"
    )

    return evidence


def _member_index(clusters: list[Cluster]) -> dict[str, Cluster]:
    index: dict[str, Cluster] = {}
    for cluster in clusters:
        for member in cluster.members:
            index.setdefault(member, cluster)
    return index


def peptide_occurrences(evidence: list[ProteinEvidence]) -> Counter:
    """Count, for each peptide sequence, the (dataset, protein) contexts containing it."""
    occurrences: Counter = Counter()
    for record in evidence:
        occurrences.update({ion.peptide_sequence for ion in record.peptide_ions})
    return occurrences


def aggregate(
    models: dict[str, ProteinInference],
    config: AbacusConfig | None = None,
    clusters: list[Cluster] | None = None,
) -> list[Cluster]:
    """Merge resolved per-dataset models into combined cluster records.

    Args:
        models: Dataset name to resolved protein model, in report order
        config: Aggregation settings
        clusters: Optional clusters from a clustering run; copied, not modified.
            Without them every protein forms its own cluster.

    Returns:
        Clusters with at least one peptide, stably sorted by descending top
        peptide probability

    """
    config = config or AbacusConfig()

    evidence: list[ProteinEvidence] = []
    for dataset, model in models.items():
        evidence.extend(collect_evidence(dataset, model, config))

    if clusters is None:
        names = list(dict.fromkeys(record.protein_name for record in evidence))
        clusters = singleton_clusters(names)
    else:
        clusters = copy.deepcopy(clusters)

    # Membership: occurrences, peptide-ions, best coverage and probability
    index = _member_index(clusters)
    n_unmapped = 0
    for record in evidence:
        member = record.protein_name if record.protein_name in index else record.protein_id
        cluster = index.get(member)
        if cluster is None:
            n_unmapped += 1
            continue

        cluster.members[member] += 1
        cluster.total_peptide_number += len(record.peptide_ions)
        cluster.coverage = max(cluster.coverage, record.coverage)
        cluster.top_pep_prob = max(cluster.top_pep_prob, record.top_pep_prob)
        cluster.peptides.extend(ion.peptide_sequence for ion in record.peptide_ions)
        if not cluster.description:
            cluster.description = record.description

        if config.labels:
            for ion in record.peptide_ions:
                for channel, intensity in ion.labels.items():
                    cluster.label_intensities[channel] = (
                        cluster.label_intensities.get(channel, 0.0) + intensity
                    )

    if n_unmapped:
        logger.warning(f"{n_unmapped} protein records do not belong to any cluster")

    # Shared or unique across every dataset and protein context
    occurrences = peptide_occurrences(evidence)
    for cluster in clusters:
        for peptide in cluster.peptides:
            if occurrences[peptide] > 1:
                cluster.shared_peptides += 1
                cluster.unique_cluster_top_pep_prob = cluster.top_pep_prob
            else:
                cluster.unique_cluster_peptides.append(peptide)
                if cluster.unique_cluster_top_pep_prob < cluster.top_pep_prob:
                    cluster.unique_cluster_top_pep_prob = cluster.top_pep_prob

    combined = [cluster for cluster in clusters if cluster.total_peptide_number > 0]
    n_dropped = len(clusters) - len(combined)
    if n_dropped:
        logger.info(f"Dropped {n_dropped} clusters without peptides")

    combined.sort(key=lambda c: c.top_pep_prob, reverse=True)

    logger.info(f"Combined {len(models)} datasets into {len(combined)} protein clusters")

    return combined


def load_datasets(datasets: dict[str, Path]) -> dict[str, ProteinInference]:
    """Restore the resolved protein model of every dataset.

    Raises:
        AggregationPreconditionError: If fewer than two datasets are given or
            any dataset has no restorable protein model

    """
    if len(datasets) < MIN_DATASETS:
        raise AggregationPreconditionError(
            f"The combined analysis needs at least {MIN_DATASETS} datasets, got {len(datasets)}"
        )

    models = {}
    for name, path in datasets.items():
        blob = Workspace(path).blob("protxml")
        try:
            models[name] = restore_protxml(blob)
        except CannotRestore as e:
            raise AggregationPreconditionError(
                f"Dataset '{name}' has no resolved protein model: {e}"
            ) from e
        logger.info(f"Restored {models[name].n_proteins} proteins for dataset '{name}'")

    return models


def run_abacus(
    datasets: dict[str, Path],
    config: AbacusConfig | None = None,
    clusters: list[Cluster] | None = None,
) -> list[Cluster]:
    """Restore every dataset and build the combined cluster records."""
    models = load_datasets(datasets)
    return aggregate(models, config, clusters)
