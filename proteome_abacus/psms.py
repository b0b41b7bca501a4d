"""Peptide-spectrum match model for one peptide validation result."""

from __future__ import annotations

from dataclasses import dataclass, field

# Granularities a PSM list is persisted at
PSM_LEVELS = ('psm', 'pep', 'ion')


@dataclass
class PeptideSpectrumMatch:
    """One scan assigned to one peptide sequence."""

    index: int
    spectrum: str
    scan: int = 0
    peptide: str = ""
    modified_peptide: str = ""
    protein: str = ""
    alternative_proteins: list[str] = field(default_factory=list)
    assumed_charge: int = 0
    hit_rank: int = 0
    precursor_neutral_mass: float = 0.0
    calc_neutral_pep_mass: float = 0.0
    retention_time: float = 0.0
    raw_mass_diff: float = 0.0  # as reported by the search engine
    massdiff: float = 0.0  # calibrated
    probability: float = 0.0
    expectation: float = 0.0
    xcorr: float = 0.0
    delta_cn: float = 0.0
    sp_rank: float = 0.0
    mod_nterm_mass: float = 0.0
    mod_positions: list[int] = field(default_factory=list)
    assigned_mod_masses: list[float] = field(default_factory=list)
    assigned_mass_diffs: list[float] = field(default_factory=list)
    is_decoy: bool = False


@dataclass
class DistributionPoint:
    """One point of the validation model's per-charge score distributions.

    `observed`, `model_positive` and `model_negative` hold one value per
    charge state (1 to 7), in that order.
    """

    fvalue: float
    observed: list[float] = field(default_factory=list)
    model_positive: list[float] = field(default_factory=list)
    model_negative: list[float] = field(default_factory=list)


@dataclass
class PeptideValidation:
    """Everything read from one peptide validation file."""

    file_name: str = ""
    spectra_file: str = ""
    decoy_tag: str = ""
    database: str = ""
    analysis: str = ""
    defined_mod_mass_diff: dict[float, float] = field(default_factory=dict)
    defined_mod_amino_acid: dict[float, str] = field(default_factory=dict)
    models: list[DistributionPoint] = field(default_factory=list)
    psms: list[PeptideSpectrumMatch] = field(default_factory=list)
    mass_adjustment: float | None = None


def collapse_psms(psms: list[PeptideSpectrumMatch], level: str) -> list[PeptideSpectrumMatch]:
    """Reduce a PSM list to one of the persisted granularities.

    Args:
        psms: PSMs in file order
        level: 'psm' keeps every match, 'pep' keeps the best match per peptide
            sequence, 'ion' the best match per (modified sequence, charge)

    Returns:
        PSMs in order of first appearance of their key

    """
    if level not in PSM_LEVELS:
        raise ValueError(f"Unknown PSM level '{level}'. Must be one of: {PSM_LEVELS}")

    if level == 'psm':
        return list(psms)

    best: dict[object, PeptideSpectrumMatch] = {}
    for psm in psms:
        if level == 'pep':
            key = psm.peptide
        else:
            key = (psm.modified_peptide or psm.peptide, psm.assumed_charge)

        current = best.get(key)
        if current is None or psm.probability > current.probability:
            best[key] = psm

    return list(best.values())
