"""Mass deviation calibration and target/decoy classification of PSMs."""

from __future__ import annotations

import logging

import numpy as np

from .errors import CalibrationUndefined
from .psms import PeptideSpectrumMatch, PeptideValidation

logger = logging.getLogger(__name__)

# Half-width of the mass difference window around zero used as calibration anchors
ZERO_MASS_WINDOW = 0.1


def adjust_mass_deviation(model: PeptideValidation, window: float = ZERO_MASS_WINDOW) -> float:
    """Correct every PSM's mass difference by the mean near-zero deviation.

    The correction is the mean of all raw mass differences with
    ``|massdiff| <= window``. It is always computed from the raw values, so
    calibrating twice gives the same result as calibrating once.

    Args:
        model: Peptide validation result to update in place
        window: Half-width of the anchor window

    Returns:
        The adjustment subtracted from every mass difference

    Raises:
        CalibrationUndefined: If no PSM falls inside the window. The model is
            left unchanged.

    """
    raw = np.array([psm.raw_mass_diff for psm in model.psms], dtype=float)
    anchors = raw[np.abs(raw) <= window]

    if anchors.size == 0:
        raise CalibrationUndefined(
            f"No PSMs with |mass difference| <= {window} in {model.file_name or 'dataset'}; "
            "cannot estimate the mass deviation"
        )

    adjustment = float(anchors.mean())

    for psm, value in zip(model.psms, raw - adjustment):
        psm.massdiff = float(value)

    model.mass_adjustment = adjustment
    logger.info(f"Mass deviation adjusted by {adjustment:.6f} using {anchors.size} anchor PSMs")

    return adjustment


def is_decoy_psm(psm: PeptideSpectrumMatch, decoy_tag: str) -> bool:
    """Classify a PSM as decoy from its protein assignments.

    The primary protein must carry the tag. Only the first alternative protein
    is then inspected: a target there makes the PSM a target, whatever the
    later alternatives are. Protein-level classification
    (:func:`proteome_abacus.inference.is_decoy_protein`) checks every entry
    instead.
    """
    if decoy_tag not in psm.protein:
        return False

    if psm.alternative_proteins and decoy_tag not in psm.alternative_proteins[0]:
        return False

    return True


def classify_psms(model: PeptideValidation, decoy_tag: str | None = None) -> tuple[int, int]:
    """Set `is_decoy` on every PSM of the model.

    Args:
        model: Peptide validation result to update in place
        decoy_tag: Decoy tag; defaults to the tag stored on the model

    Returns:
        Number of (target, decoy) PSMs

    """
    tag = model.decoy_tag if decoy_tag is None else decoy_tag
    if not tag:
        raise ValueError("A decoy tag is required for target/decoy classification")

    targets, decoys = split_target_decoy(model.psms, tag)
    for psm in targets:
        psm.is_decoy = False
    for psm in decoys:
        psm.is_decoy = True

    logger.info(f"Classified {len(targets)} target and {len(decoys)} decoy PSMs")

    return len(targets), len(decoys)


def split_target_decoy(
    psms: list[PeptideSpectrumMatch],
    decoy_tag: str,
) -> tuple[list[PeptideSpectrumMatch], list[PeptideSpectrumMatch]]:
    """Partition PSMs into (targets, decoys), keeping their order."""
    targets = []
    decoys = []
    for psm in psms:
        if is_decoy_psm(psm, decoy_tag):
            decoys.append(psm)
        else:
            targets.append(psm)
    return targets, decoys
