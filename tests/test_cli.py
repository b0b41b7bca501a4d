"""Tests for CLI module."""

import tempfile
from pathlib import Path

import pandas as pd
import pytest

from proteome_abacus.cli import (
    _deep_merge,
    abacus_config_from_config,
    dataset_contexts,
    load_config,
    main,
    settings_from_config,
)


class TestDeepMerge:
    """Tests for deep merge utility."""

    def test_simple_merge(self):
        """Test merging flat dictionaries."""
        base = {"a": 1, "b": 2}
        override = {"b": 3, "c": 4}
        result = _deep_merge(base, override)
        assert result == {"a": 1, "b": 3, "c": 4}

    def test_nested_merge(self):
        """Test merging nested dictionaries."""
        base = {
            "section1": {"a": 1, "b": 2},
            "section2": {"c": 3},
        }
        override = {
            "section1": {"b": 20, "d": 4},
            "section3": {"e": 5},
        }
        result = _deep_merge(base, override)
        assert result["section1"] == {"a": 1, "b": 20, "d": 4}
        assert result["section2"] == {"c": 3}
        assert result["section3"] == {"e": 5}

    def test_override_non_dict_with_dict(self):
        """Test that dict values replace non-dict values."""
        base = {"a": 1}
        override = {"a": {"nested": True}}
        result = _deep_merge(base, override)
        assert result["a"] == {"nested": True}

    def test_project_sections_merge(self):
        """Test that a partial abacus section keeps the other defaults."""
        result = _deep_merge(
            load_config(None),
            {"abacus": {"protein_probability": 0.95}, "pipeline": {"label_file": "labels.tsv"}},
        )

        assert result["abacus"]["protein_probability"] == 0.95
        assert result["abacus"]["peptide_probability"] == 0.5
        assert result["pipeline"]["label_file"] == "labels.tsv"
        assert result["pipeline"]["protxml"] == "interact.prot.xml"
        assert result["database"] == {"decoy_tag": "rev_", "contaminant_tag": "contam_"}
        assert settings_from_config(result).label_file == "labels.tsv"


class TestLoadConfig:
    """Tests for configuration loading."""

    def test_default_config(self):
        """Test loading default configuration."""
        config = load_config(None)

        # Check key defaults
        assert config["database"]["decoy_tag"] == "rev_"
        assert config["inference"]["weight_threshold"] == 1.0
        assert config["abacus"]["protein_probability"] == 0.9
        assert config["abacus"]["peptide_probability"] == 0.5
        assert config["pipeline"]["n_workers"] == 1

    def test_yaml_override(self):
        """Test loading config from YAML file."""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write("""
database:
  decoy_tag: DECOY_
inference:
  weight_threshold: 0.5
abacus:
  unique_only: true
""")
            f.flush()
            config_path = Path(f.name)

        try:
            config = load_config(config_path)
            assert config["database"]["decoy_tag"] == "DECOY_"
            assert config["inference"]["weight_threshold"] == 0.5
            assert config["abacus"]["unique_only"] is True
            # Defaults should be preserved
            assert config["database"]["contaminant_tag"] == "contam_"
            assert config["inference"]["razor"] is True
        finally:
            config_path.unlink()

    def test_empty_yaml(self, tmp_path):
        """Test that an empty YAML file gives the defaults."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text("")

        assert load_config(config_path) == load_config(None)

    def test_settings_from_config(self):
        """Test building dataset settings from the config."""
        config = load_config(None)
        config["pipeline"]["pepxml"] = ""

        settings = settings_from_config(config)

        assert settings.decoy_tag == "rev_"
        assert settings.pepxml is None

    def test_abacus_config_from_config(self):
        """Test building the abacus settings from the config."""
        config = load_config(None)

        abacus_config = abacus_config_from_config(config)

        assert abacus_config.contaminant_tag == "contam_"
        assert abacus_config.razor is True
        assert abacus_config.labels is False


class TestDatasetContexts:
    """Tests for naming datasets after their directories."""

    def test_named_after_directory(self, dataset_dirs):
        """Test that datasets are named after their directories."""
        contexts = dataset_contexts([str(d) for d in dataset_dirs])

        assert [c.name for c in contexts] == ["exp1", "exp2"]
        assert contexts[0].path == dataset_dirs[0].resolve()

    def test_clashing_names_use_full_path(self, tmp_path):
        """Test that clashing directory names fall back to full paths."""
        first = tmp_path / "a" / "run"
        second = tmp_path / "b" / "run"
        first.mkdir(parents=True)
        second.mkdir(parents=True)

        contexts = dataset_contexts([str(first), str(second)])

        assert [c.name for c in contexts] == [str(first.resolve()), str(second.resolve())]


class TestMain:
    """End-to-end runs of the command line."""

    def test_process_then_abacus(self, dataset_dirs, tmp_path):
        """Test processing two datasets and writing the combined report."""
        dirs = [str(d) for d in dataset_dirs]
        output = tmp_path / "out" / "combined.tsv"

        assert main(["process", *dirs]) == 0
        assert main(["abacus", *dirs, "-o", str(output)]) == 0

        report = pd.read_csv(output, sep="\t")
        assert list(report["Representative"]) == ["sp|P00001|AAA_HUMAN"]
        row = report.iloc[0]
        assert row["Total Peptides"] == 4
        assert row["Inter Cluster Peptides"] == 4
        assert row["Intra Cluster Peptides"] == 0

    def test_protein_probability_option(self, dataset_dirs, tmp_path):
        """Test that --prot-prob lowers the protein cutoff."""
        dirs = [str(d) for d in dataset_dirs]
        output = tmp_path / "combined.tsv"

        main(["process", "-w", "2", *dirs])
        assert main(["abacus", *dirs, "-o", str(output), "--prot-prob", "0.7"]) == 0

        report = pd.read_csv(output, sep="\t")
        assert list(report["Representative"]) == ["sp|P00001|AAA_HUMAN", "sp|P00005|EEE_HUMAN"]

    def test_annotation_option(self, dataset_dirs, tmp_path):
        """Test that annotation fields are appended to the report."""
        dirs = [str(d) for d in dataset_dirs]
        annotation = tmp_path / "annotation.tsv"
        annotation.write_text("Protein\tGene\nsp|P00001|AAA_HUMAN\tAAA1\n")
        output = tmp_path / "combined.tsv"

        main(["process", *dirs])
        main(["abacus", *dirs, "-o", str(output), "--annotation", str(annotation)])

        report = pd.read_csv(output, sep="\t")
        assert list(report["Gene"]) == ["AAA1"]

    def test_label_intensities_end_to_end(self, dataset_dirs, tmp_path):
        """Test that label tables flow from process into the combined report."""
        for directory in dataset_dirs:
            (directory / "labels.tsv").write_text(
                "peptide\tcharge\t126\t127\nPEPTIDEA\t2\t100\t50\nPEPTIDEB\t3\t10\t5\n"
            )
        dirs = [str(d) for d in dataset_dirs]
        output = tmp_path / "combined.tsv"

        assert main(["process", *dirs, "--label-file", "labels.tsv"]) == 0
        assert main(["abacus", *dirs, "-o", str(output), "--labels"]) == 0

        report = pd.read_csv(output, sep="\t")
        row = report.iloc[0]
        assert row["Representative"] == "sp|P00001|AAA_HUMAN"
        assert row["126"] == pytest.approx(220.0)
        assert row["127"] == pytest.approx(110.0)

    def test_missing_annotation_file(self, dataset_dirs, tmp_path):
        """Test that an unreadable annotation table gives exit code 1."""
        dirs = [str(d) for d in dataset_dirs]
        main(["process", *dirs])

        rc = main([
            "abacus", *dirs, "-o", str(tmp_path / "x.tsv"),
            "--annotation", str(tmp_path / "missing.tsv"),
        ])

        assert rc == 1

    def test_picked_abacus_on_unpicked_datasets(self, dataset_dirs, tmp_path):
        """Test that picked aggregation over datasets processed without it fails."""
        dirs = [str(d) for d in dataset_dirs]
        config = tmp_path / "picked.yaml"
        config.write_text("inference:\n  picked: true\n")
        output = tmp_path / "combined.tsv"

        main(["process", *dirs])
        assert main(["abacus", *dirs, "-o", str(output), "-c", str(config)]) == 1

        main(["process", *dirs, "-c", str(config)])
        assert main(["abacus", *dirs, "-o", str(output), "-c", str(config)]) == 0

    def test_abacus_needs_two_datasets(self, dataset_dirs, tmp_path):
        """Test that a single dataset gives exit code 1."""
        main(["process", str(dataset_dirs[0])])

        assert main(["abacus", str(dataset_dirs[0]), "-o", str(tmp_path / "x.tsv")]) == 1

    def test_abacus_on_unprocessed_datasets(self, dataset_dirs, tmp_path):
        """Test that unprocessed datasets give exit code 1."""
        dirs = [str(d) for d in dataset_dirs]

        assert main(["abacus", *dirs, "-o", str(tmp_path / "x.tsv")]) == 1

    def test_process_failure_exit_code(self, tmp_path):
        """Test that a dataset without results gives exit code 1."""
        empty = tmp_path / "empty"
        empty.mkdir()

        assert main(["process", str(empty)]) == 1

    def test_no_command(self):
        """Test that running without a command gives exit code 1."""
        assert main([]) == 1
