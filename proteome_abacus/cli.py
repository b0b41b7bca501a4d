"""Command-line interface for proteome-abacus.

Per-dataset processing of protein inference and peptide validation results,
and the combined (abacus) report over several processed datasets.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import yaml

from .abacus import AbacusConfig, run_abacus
from .clusters import read_cluster_file
from .data_io import load_annotation, write_combined_report
from .errors import AbacusError
from .pipeline import DatasetContext, DatasetSettings, run_datasets

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def load_config(config_path: Path | None) -> dict:
    """Load configuration from YAML file or return defaults."""
    defaults = {
        'database': {
            'decoy_tag': 'rev_',
            'contaminant_tag': 'contam_',
        },
        'inference': {
            'weight_threshold': 1.0,
            'razor': True,
            'picked': False,
        },
        'pipeline': {
            'protxml': 'interact.prot.xml',
            'pepxml': 'interact.pep.xml',
            'calibrate': True,
            'n_workers': 1,
            'label_file': None,
            'model_report': 'model_distributions.tsv',
        },
        'abacus': {
            'protein_probability': 0.9,
            'peptide_probability': 0.5,
            'unique_only': False,
            'labels': False,
            'cluster_file': None,
            'annotation_file': None,
        },
    }

    if config_path and config_path.exists():
        with open(config_path) as f:
            user_config = yaml.safe_load(f) or {}
        # Deep merge user config over defaults
        defaults = _deep_merge(defaults, user_config)

    return defaults


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge override dict into base dict."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def dataset_contexts(directories: list[str]) -> list[DatasetContext]:
    """Name each dataset after its directory; fall back to the full path on clashes."""
    paths = [Path(d).resolve() for d in directories]
    names = [p.name for p in paths]
    contexts = []
    for path, name in zip(paths, names):
        if names.count(name) > 1:
            name = str(path)
        contexts.append(DatasetContext(name=name, path=path))
    return contexts


def settings_from_config(config: dict) -> DatasetSettings:
    return DatasetSettings(
        decoy_tag=config['database']['decoy_tag'],
        weight_threshold=config['inference']['weight_threshold'],
        razor=config['inference']['razor'],
        picked=config['inference']['picked'],
        calibrate=config['pipeline']['calibrate'],
        protxml=config['pipeline']['protxml'],
        pepxml=config['pipeline']['pepxml'] or None,
        label_file=config['pipeline'].get('label_file') or None,
        model_report=config['pipeline'].get('model_report') or None,
    )


def abacus_config_from_config(config: dict) -> AbacusConfig:
    return AbacusConfig(
        decoy_tag=config['database']['decoy_tag'],
        contaminant_tag=config['database']['contaminant_tag'],
        protein_probability=config['abacus']['protein_probability'],
        peptide_probability=config['abacus']['peptide_probability'],
        razor=config['inference']['razor'],
        picked=config['inference']['picked'],
        unique_only=config['abacus']['unique_only'],
        labels=config['abacus']['labels'],
    )


def cmd_process(args: argparse.Namespace) -> int:
    """Parse, resolve and persist every dataset."""
    config = load_config(Path(args.config) if args.config else None)

    if args.workers is not None:
        config['pipeline']['n_workers'] = args.workers
    if args.label_file:
        config['pipeline']['label_file'] = args.label_file

    contexts = dataset_contexts(args.datasets)
    settings = settings_from_config(config)

    summaries = run_datasets(contexts, settings, n_workers=config['pipeline']['n_workers'])

    for summary in summaries:
        adjustment = (
            f"{summary.mass_adjustment:.6f}" if summary.mass_adjustment is not None else 'n/a'
        )
        logger.info(
            f"  {summary.name}: {summary.n_groups} groups, {summary.n_proteins} proteins, "
            f"{summary.n_promoted} promoted, {summary.n_unique_ions} unique ions, "
            f"{summary.n_psms} PSMs ({summary.n_decoy_psms} decoys), mass adjustment {adjustment}"
        )

    return 0


def cmd_abacus(args: argparse.Namespace) -> int:
    """Build the combined report over processed datasets."""
    config = load_config(Path(args.config) if args.config else None)

    if args.prot_prob is not None:
        config['abacus']['protein_probability'] = args.prot_prob
    if args.pep_prob is not None:
        config['abacus']['peptide_probability'] = args.pep_prob
    if args.labels:
        config['abacus']['labels'] = True

    datasets = {context.name: context.path for context in dataset_contexts(args.datasets)}

    clusters = None
    cluster_file = args.clusters or config['abacus'].get('cluster_file')
    if cluster_file:
        clusters = read_cluster_file(Path(cluster_file))

    annotation = None
    annotation_file = args.annotation or config['abacus'].get('annotation_file')
    if annotation_file:
        annotation = load_annotation(Path(annotation_file))

    combined = run_abacus(datasets, abacus_config_from_config(config), clusters)

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    write_combined_report(combined, output_path, annotation)

    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog='abacus',
        description='proteome-abacus: identification normalization, protein inference\n'
                    'resolution and combined analysis of several experiments.\n\n'
                    'Primary usage:\n'
                    '  abacus process dataset1/ dataset2/ -c config.yaml\n'
                    '  abacus abacus dataset1/ dataset2/ -o combined.tsv',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')
    parser.add_argument('--version', action='version', version='%(prog)s 0.1.0')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    process_parser = subparsers.add_parser(
        'process',
        help='Parse, resolve and persist each dataset',
        description='Read each dataset\'s protein inference and peptide validation results, '
                    'promote decoys, mark unique and razor peptides, calibrate mass '
                    'deviations and store the resolved models in the dataset directory.'
    )
    process_parser.add_argument('datasets', nargs='+', help='Dataset directories')
    process_parser.add_argument('-c', '--config', help='Configuration YAML file')
    process_parser.add_argument('-w', '--workers', type=int,
                                help='Number of datasets processed in parallel')
    process_parser.add_argument('--label-file',
                                help='Per-ion label intensity table inside each dataset directory')

    abacus_parser = subparsers.add_parser(
        'abacus',
        help='Combined analysis of processed datasets',
        description='Aggregate the resolved protein models of at least two datasets '
                    'into one combined report.'
    )
    abacus_parser.add_argument('datasets', nargs='+', help='Processed dataset directories')
    abacus_parser.add_argument('-o', '--output', required=True, help='Combined report TSV')
    abacus_parser.add_argument('-c', '--config', help='Configuration YAML file')
    abacus_parser.add_argument('--clusters', help='Protein cluster file')
    abacus_parser.add_argument('--annotation', help='Annotation TSV keyed on protein id')
    abacus_parser.add_argument('--prot-prob', type=float, help='Minimum protein probability')
    abacus_parser.add_argument('--pep-prob', type=float, help='Minimum peptide probability')
    abacus_parser.add_argument('--labels', action='store_true',
                               help='Add summed label intensity columns')

    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    try:
        if args.command == 'process':
            return cmd_process(args)
        elif args.command == 'abacus':
            return cmd_abacus(args)
        else:
            parser.print_help()
            return 1
    except AbacusError as e:
        logger.error(str(e))
        return 1


if __name__ == '__main__':
    sys.exit(main())
