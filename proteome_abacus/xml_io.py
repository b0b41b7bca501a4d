"""Parsers for protein inference (protXML) and peptide validation (pepXML) files.

Both readers stream the document with ``lxml.etree.iterparse`` and clear each
record once it has been converted, so large combined results do not need to be
held as a tree. Tags are matched on their local name; the schema namespace
(if any) is ignored.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

from lxml import etree

from .errors import NoRecordsFound, ParseError
from .proteins import (
    PeptideIonIdentification,
    ProteinGroup,
    ProteinIdentification,
    ProteinInference,
)
from .psms import DistributionPoint, PeptideSpectrumMatch, PeptideValidation

logger = logging.getLogger(__name__)

# Separator used for the unique_stripped_peptides attribute
STRIPPED_PEPTIDE_SEPARATOR = '+'

# Number of charge-specific distributions in a validation model
N_MODEL_CHARGES = 7

# Score names copied from search hits onto PSM attributes
SEARCH_SCORES = {
    'expect': 'expectation',
    'xcorr': 'xcorr',
    'deltacn': 'delta_cn',
    'sprank': 'sp_rank',
}


def _localname(elem: etree._Element) -> str:
    tag = elem.tag
    if not isinstance(tag, str):  # comments and processing instructions
        return ''
    return etree.QName(tag).localname


def _children(elem: etree._Element, name: str) -> Iterator[etree._Element]:
    for child in elem:
        if _localname(child) == name:
            yield child


def _child(elem: etree._Element, name: str) -> etree._Element | None:
    return next(_children(elem, name), None)


def _float(elem: etree._Element, attr: str, default: float = 0.0) -> float:
    value = elem.get(attr)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ParseError(f"Attribute '{attr}' of <{_localname(elem)}> is not numeric: {value!r}") from e


def _int(elem: etree._Element, attr: str, default: int = 0) -> int:
    value = elem.get(attr)
    if value is None or not value.strip():
        return default
    try:
        return int(float(value))
    except ValueError as e:
        raise ParseError(f"Attribute '{attr}' of <{_localname(elem)}> is not an integer: {value!r}") from e


def _release(elem: etree._Element) -> None:
    """Free a processed element and the already-processed siblings before it."""
    elem.clear()
    parent = elem.getparent()
    if parent is not None:
        while elem.getprevious() is not None:
            del parent[0]


def _iterparse(path: Path, events: tuple[str, ...]) -> Iterator[tuple[str, etree._Element]]:
    try:
        yield from etree.iterparse(str(path), events=events, huge_tree=True)
    except OSError as e:
        raise ParseError(f"Cannot read {path}: {e}") from e
    except etree.XMLSyntaxError as e:
        raise ParseError(f"Malformed XML in {path}: {e}") from e


# =============================================================================
# Protein inference
# =============================================================================


def _parse_peptide_ion(elem: etree._Element) -> PeptideIonIdentification:
    ion = PeptideIonIdentification(
        peptide_sequence=elem.get('peptide_sequence', ''),
        charge=_int(elem, 'charge'),
        initial_probability=_float(elem, 'initial_probability'),
        weight=_float(elem, 'weight'),
        group_weight=_float(elem, 'group_weight'),
        calc_neutral_pep_mass=_float(elem, 'calc_neutral_pep_mass'),
        is_nondegenerate_evidence=elem.get('is_nondegenerate_evidence', '').upper() == 'Y',
    )

    mod_info = _child(elem, 'modification_info')
    if mod_info is not None:
        ion.modified_peptide = mod_info.get('modified_peptide', '')

    # other proteins this peptide maps to (not the indistinguishable list)
    ion.peptide_parent_proteins = [
        parent.get('protein_name', '') for parent in _children(elem, 'peptide_parent_protein')
    ]
    ion.shared_parent_proteins = len(ion.peptide_parent_proteins)

    return ion


def _parse_protein(
    elem: etree._Element,
    group_number: int,
    group_probability: float,
    first_in_group: bool,
) -> ProteinIdentification:
    protein = ProteinIdentification(
        protein_name=elem.get('protein_name', ''),
        group_number=group_number,
        group_sibling_id=elem.get('group_sibling_id', ''),
        percent_coverage=_float(elem, 'percent_coverage'),
        pct_spectrum_ids=_float(elem, 'pct_spectrum_ids'),
        group_probability=group_probability,
        probability=_float(elem, 'probability'),
        confidence=_float(elem, 'confidence'),
        total_number_peptides=_int(elem, 'total_number_peptides'),
    )

    # The inference tool reports 0 for the leading protein of some groups
    # whose group probability is 1.
    if first_in_group and group_probability == 1.0 and protein.probability == 0.0:
        logger.debug(f"Correcting probability of {protein.protein_name} to group probability")
        protein.probability = group_probability

    stripped = elem.get('unique_stripped_peptides', '')
    protein.unique_stripped_peptides = stripped.split(STRIPPED_PEPTIDE_SEPARATOR) if stripped else []

    for param in _children(elem, 'parameter'):
        if param.get('name', '').lower() == 'prot_length':
            protein.length = _int(param, 'value')

    annotation = _child(elem, 'annotation')
    if annotation is not None:
        protein.description = annotation.get('protein_description', '')

    protein.indistinguishable_proteins = [
        indist.get('protein_name', '') for indist in _children(elem, 'indistinguishable_protein')
    ]

    for peptide in _children(elem, 'peptide'):
        ion = _parse_peptide_ion(peptide)
        protein.peptide_ions.append(ion)
        if ion.initial_probability > protein.top_pep_prob:
            protein.top_pep_prob = ion.initial_probability

    return protein


def _parse_protein_group(elem: etree._Element) -> ProteinGroup:
    group = ProteinGroup(
        group_number=_int(elem, 'group_number'),
        probability=_float(elem, 'probability'),
    )
    for index, protein in enumerate(_children(elem, 'protein')):
        group.proteins.append(
            _parse_protein(protein, group.group_number, group.probability, index == 0)
        )
    return group


def read_protxml(path: Path | str, decoy_tag: str = 'rev_') -> ProteinInference:
    """Read a protein inference result into a :class:`ProteinInference`.

    Args:
        path: Path to the protXML file
        decoy_tag: Tag marking decoy protein names (stored on the model)

    Returns:
        The parsed model, groups in document order

    Raises:
        ParseError: If the file cannot be read or is not well-formed XML
        NoRecordsFound: If the file contains no protein groups

    """
    path = Path(path)
    model = ProteinInference(file_name=str(path), decoy_tag=decoy_tag)

    for _, elem in _iterparse(path, events=('end',)):
        name = _localname(elem)
        if name == 'proteinprophet_details':
            model.run_options = elem.get('run_options', '')
        elif name == 'protein_group':
            model.groups.append(_parse_protein_group(elem))
            _release(elem)

    if not model.groups:
        raise NoRecordsFound(f"No protein groups detected in {path}, check your file and try again")

    logger.info(f"Read {len(model.groups)} protein groups ({model.n_proteins} proteins) from {path.name}")

    return model


# =============================================================================
# Peptide validation
# =============================================================================


def _parse_distribution_point(elem: etree._Element) -> DistributionPoint:
    point = DistributionPoint(fvalue=_float(elem, 'fvalue'))
    for charge in range(1, N_MODEL_CHARGES + 1):
        point.observed.append(_float(elem, f'obs_{charge}_distr'))
        point.model_positive.append(_float(elem, f'model_{charge}_pos_distr'))
        point.model_negative.append(_float(elem, f'model_{charge}_neg_distr'))
    return point


def _top_hit(query: etree._Element) -> etree._Element | None:
    hits = []
    for result in _children(query, 'search_result'):
        hits.extend(_children(result, 'search_hit'))
    if not hits:
        return None
    for hit in hits:
        if _int(hit, 'hit_rank', 1) == 1:
            return hit
    return hits[0]


def _hit_probability(hit: etree._Element) -> float:
    """Combined-model probability when present, otherwise the validation probability."""
    iprophet = 0.0
    pprophet = 0.0
    for elem in hit.iter():
        name = _localname(elem)
        if name == 'interprophet_result':
            iprophet = _float(elem, 'probability')
        elif name == 'peptideprophet_result':
            pprophet = _float(elem, 'probability')
    return iprophet if iprophet > 0 else pprophet


def _parse_spectrum_query(
    elem: etree._Element,
    defined_mod_mass_diff: dict[float, float],
) -> PeptideSpectrumMatch | None:
    hit = _top_hit(elem)
    if hit is None:
        return None

    massdiff = _float(hit, 'massdiff')
    psm = PeptideSpectrumMatch(
        index=_int(elem, 'index'),
        spectrum=elem.get('spectrum', ''),
        scan=_int(elem, 'start_scan'),
        precursor_neutral_mass=_float(elem, 'precursor_neutral_mass'),
        assumed_charge=_int(elem, 'assumed_charge'),
        retention_time=_float(elem, 'retention_time_sec'),
        hit_rank=_int(hit, 'hit_rank', 1),
        peptide=hit.get('peptide', ''),
        protein=hit.get('protein', ''),
        calc_neutral_pep_mass=_float(hit, 'calc_neutral_pep_mass'),
        raw_mass_diff=massdiff,
        massdiff=massdiff,
        probability=_hit_probability(hit),
    )

    psm.alternative_proteins = [
        alt.get('protein', '') for alt in _children(hit, 'alternative_protein')
    ]

    for score in _children(hit, 'search_score'):
        attr = SEARCH_SCORES.get(score.get('name', ''))
        if attr is not None:
            setattr(psm, attr, _float(score, 'value'))

    mod_info = _child(hit, 'modification_info')
    if mod_info is not None:
        psm.modified_peptide = mod_info.get('modified_peptide', '')
        psm.mod_nterm_mass = _float(mod_info, 'mod_nterm_mass')
        for mod in _children(mod_info, 'mod_aminoacid_mass'):
            mass = _float(mod, 'mass')
            psm.mod_positions.append(_int(mod, 'position'))
            psm.assigned_mod_masses.append(mass)
            psm.assigned_mass_diffs.append(defined_mod_mass_diff.get(round(mass, 4), 0.0))

    return psm


def read_pepxml(path: Path | str, decoy_tag: str = 'rev_') -> PeptideValidation:
    """Read a peptide validation result into a :class:`PeptideValidation`.

    A document without any analysis summary carries no validated data; it is
    returned as an empty model rather than treated as an error.

    Args:
        path: Path to the pepXML file
        decoy_tag: Tag marking decoy protein names (stored on the model)

    Returns:
        The parsed model, PSMs in document order and not yet calibrated

    Raises:
        ParseError: If the file cannot be read or is not well-formed XML
        NoRecordsFound: If the file has analysis summaries but no PSMs

    """
    path = Path(path)
    model = PeptideValidation(file_name=str(path), decoy_tag=decoy_tag)

    n_summaries = 0
    n_without_hits = 0
    psms: list[PeptideSpectrumMatch] = []

    for event, elem in _iterparse(path, events=('start', 'end')):
        name = _localname(elem)

        if event == 'start':
            if name == 'msms_run_summary' and not model.spectra_file:
                model.spectra_file = f"{elem.get('base_name', '')}{elem.get('raw_data', '')}"
            continue

        if name == 'analysis_summary':
            if n_summaries == 0:
                model.analysis = elem.get('analysis', '')
            n_summaries += 1
        elif name == 'peptideprophet_summary' and not model.models:
            model.models = [_parse_distribution_point(p) for p in _children(elem, 'distribution_point')]
        elif name == 'search_database' and not model.database:
            model.database = elem.get('local_path', '')
        elif name == 'aminoacid_modification':
            key = round(_float(elem, 'mass'), 4)
            model.defined_mod_mass_diff[key] = _float(elem, 'massdiff')
            model.defined_mod_amino_acid[key] = elem.get('aminoacid', '')
        elif name == 'spectrum_query':
            psm = _parse_spectrum_query(elem, model.defined_mod_mass_diff)
            if psm is None:
                n_without_hits += 1
            else:
                psms.append(psm)
            _release(elem)

    if n_summaries == 0:
        logger.warning(f"No analysis summary in {path.name}; no validated data to read")
        return model

    if n_without_hits:
        logger.warning(f"Skipped {n_without_hits} spectrum queries without search hits in {path.name}")

    if not psms:
        raise NoRecordsFound(f"No PSMs detected in {path}, check your file and try again")

    model.psms = psms
    logger.info(f"Read {len(psms)} PSMs from {path.name}")

    return model
