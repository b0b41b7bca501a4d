"""Protein clusters used as the aggregation unit of the combined analysis.

Clusters normally come from an external sequence-clustering run (cd-hit style
``.clstr`` output). Without one, every protein forms its own cluster.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ParseError

logger = logging.getLogger(__name__)

_HEADER = re.compile(r'^>Cluster\s+(\d+)')
_ACCESSION = re.compile(r'\|([^|]*)\|')
_PLAIN_ID = re.compile(r'>(\S+?)\.\.\.')


@dataclass
class Cluster:
    """Proteins grouped under one representative (centroid) sequence.

    Members map a protein id to the number of dataset occurrences that
    contributed evidence to it.
    """

    number: int
    centroid: str
    description: str = ""
    members: dict[str, int] = field(default_factory=dict)
    total_peptide_number: int = 0
    shared_peptides: int = 0
    coverage: float = 0.0
    top_pep_prob: float = 0.0
    unique_cluster_top_pep_prob: float = 0.0
    peptides: list[str] = field(default_factory=list)
    unique_cluster_peptides: list[str] = field(default_factory=list)
    label_intensities: dict[str, float] = field(default_factory=dict)

    @property
    def n_members(self) -> int:
        return len(self.members)

    @property
    def n_unique_peptides(self) -> int:
        return len(self.unique_cluster_peptides)

    def to_dict(self) -> dict:
        """Row for the combined report."""
        return {
            'Cluster Number': self.number,
            'Representative': self.centroid,
            'Total Members': self.n_members,
            'Members': ', '.join(self.members),
            'Percentage Coverage': round(self.coverage, 2),
            'Total Peptides': self.total_peptide_number,
            'Intra Cluster Peptides': self.n_unique_peptides,
            'Inter Cluster Peptides': self.shared_peptides,
            'Description': self.description,
        }


def _member_id(line: str) -> str:
    match = _ACCESSION.search(line)
    if match:
        return match.group(1)
    match = _PLAIN_ID.search(line)
    if match:
        return match.group(1)
    raise ParseError(f"Cannot find a protein identifier in cluster line: {line!r}")


def read_cluster_file(path: Path | str) -> list[Cluster]:
    """Parse a sequence-clustering output file.

    Args:
        path: Path to the cluster file

    Returns:
        Clusters ordered by cluster number, members in file order

    """
    path = Path(path)
    clusters: list[Cluster] = []
    current: Cluster | None = None

    try:
        with open(path) as f:
            for line in f:
                line = line.rstrip('\n')
                if not line.strip():
                    continue

                if line.startswith('>'):
                    match = _HEADER.match(line)
                    if match is None:
                        raise ParseError(f"Malformed cluster header in {path}: {line!r}")
                    current = Cluster(number=int(match.group(1)), centroid='')
                    clusters.append(current)
                    continue

                if current is None:
                    raise ParseError(f"Member line before any cluster header in {path}")

                member = _member_id(line)
                current.members[member] = 0
                if line.rstrip().endswith('*'):
                    current.centroid = member
    except OSError as e:
        raise ParseError(f"Cannot read cluster file {path}: {e}") from e

    clusters.sort(key=lambda c: c.number)
    logger.info(f"Read {len(clusters)} clusters from {path.name}")

    return clusters


def singleton_clusters(protein_names: list[str]) -> list[Cluster]:
    """One cluster per protein, numbered in the given order."""
    return [
        Cluster(number=number, centroid=name, members={name: 0})
        for number, name in enumerate(protein_names)
    ]
