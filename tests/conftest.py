"""Shared fixtures: small protein inference and peptide validation documents."""

import pytest

PROTXML = """<?xml version="1.0" encoding="UTF-8"?>
<protein_summary xmlns="http://regis-web.systemsbiology.net/protXML">
  <protein_summary_header reference_database="db.fasta">
    <program_details analysis="proteinprophet">
      <proteinprophet_details run_options="IPROPHET MINPROB0.05"/>
    </program_details>
  </protein_summary_header>
  <protein_group group_number="1" probability="1.0000">
    <protein protein_name="sp|P00001|AAA_HUMAN" n_indistinguishable_proteins="1"
             probability="0.0000" percent_coverage="30.5" unique_stripped_peptides="PEPTIDEA+PEPTIDEB"
             group_sibling_id="a" total_number_peptides="2" pct_spectrum_ids="0.41" confidence="0.9">
      <parameter name="prot_length" value="412"/>
      <annotation protein_description="Protein AAA"/>
      <peptide peptide_sequence="PEPTIDEA" charge="2" initial_probability="0.9900" weight="1.00"
               group_weight="1.00" is_nondegenerate_evidence="Y" calc_neutral_pep_mass="900.41">
        <modification_info modified_peptide="PEPTIDEA"/>
      </peptide>
      <peptide peptide_sequence="PEPTIDEB" charge="3" initial_probability="0.9500" weight="0.50"
               group_weight="0.50" is_nondegenerate_evidence="N" calc_neutral_pep_mass="950.44">
        <peptide_parent_protein protein_name="sp|P00002|BBB_HUMAN"/>
      </peptide>
    </protein>
    <protein protein_name="sp|P00002|BBB_HUMAN" n_indistinguishable_proteins="1"
             probability="0.0000" percent_coverage="12.0" unique_stripped_peptides="PEPTIDEB"
             group_sibling_id="b" total_number_peptides="1" pct_spectrum_ids="0.10">
      <peptide peptide_sequence="PEPTIDEB" charge="3" initial_probability="0.9000" weight="0.50"
               group_weight="0.50" is_nondegenerate_evidence="n" calc_neutral_pep_mass="950.44">
        <peptide_parent_protein protein_name="sp|P00001|AAA_HUMAN"/>
      </peptide>
    </protein>
  </protein_group>
  <protein_group group_number="2" probability="0.8000">
    <protein protein_name="rev_sp|P00003|CCC_HUMAN" n_indistinguishable_proteins="4"
             probability="0.8000" percent_coverage="8.0" unique_stripped_peptides="PEPTIDEC"
             group_sibling_id="a" total_number_peptides="1" pct_spectrum_ids="0.05">
      <indistinguishable_protein protein_name="rev_sp|P00009|XXX_HUMAN"/>
      <indistinguishable_protein protein_name="tr|Q00004|DDD_HUMAN"/>
      <indistinguishable_protein protein_name="sp|P00005|EEE_HUMAN"/>
      <peptide peptide_sequence="PEPTIDEC" charge="2" initial_probability="0.8000" weight="1.00"
               group_weight="1.00" is_nondegenerate_evidence="Y" calc_neutral_pep_mass="1000.5"/>
    </protein>
  </protein_group>
  <protein_group group_number="3" probability="0.5000">
    <protein protein_name="rev_sp|P00006|FFF_HUMAN" n_indistinguishable_proteins="2"
             probability="0.5000" percent_coverage="5.0" unique_stripped_peptides="PEPTIDED"
             group_sibling_id="a" total_number_peptides="1" pct_spectrum_ids="0.01">
      <indistinguishable_protein protein_name="rev_sp|P00007|GGG_HUMAN"/>
      <peptide peptide_sequence="PEPTIDED" charge="2" initial_probability="0.4000" weight="1.00"
               group_weight="1.00" is_nondegenerate_evidence="Y" calc_neutral_pep_mass="1100.5"/>
    </protein>
  </protein_group>
</protein_summary>
"""

PEPXML = """<?xml version="1.0" encoding="UTF-8"?>
<msms_pipeline_analysis xmlns="http://regis-web.systemsbiology.net/pepXML">
  <analysis_summary analysis="peptideprophet" version="1">
    <peptideprophet_summary version="1" min_prob="0.05">
      <distribution_point fvalue="-1.0" obs_1_distr="0" model_1_pos_distr="0.00" model_1_neg_distr="0.10"
                          obs_2_distr="5" model_2_pos_distr="0.20" model_2_neg_distr="4.80"/>
      <distribution_point fvalue="-0.8" obs_1_distr="1" model_1_pos_distr="0.10" model_1_neg_distr="0.90"/>
    </peptideprophet_summary>
  </analysis_summary>
  <msms_run_summary base_name="/data/run1" raw_data=".mzML">
    <search_summary search_engine="Comet">
      <search_database local_path="/data/db.fasta" type="AA"/>
      <aminoacid_modification aminoacid="M" massdiff="15.9949" mass="147.0354" variable="Y"/>
    </search_summary>
    <spectrum_query spectrum="run1.00010.00010.2" start_scan="10" end_scan="10"
                    precursor_neutral_mass="900.40" assumed_charge="2" index="1" retention_time_sec="1200.5">
      <search_result>
        <search_hit hit_rank="1" peptide="PEPMIDEA" protein="sp|P00001|AAA_HUMAN" num_tot_proteins="1"
                    calc_neutral_pep_mass="900.41" massdiff="0.020">
          <modification_info modified_peptide="PEPM[147]IDEA">
            <mod_aminoacid_mass position="4" mass="147.0354"/>
          </modification_info>
          <search_score name="xcorr" value="2.50"/>
          <search_score name="deltacn" value="0.30"/>
          <search_score name="expect" value="0.001"/>
          <analysis_result analysis="peptideprophet">
            <peptideprophet_result probability="0.9900"/>
          </analysis_result>
        </search_hit>
        <search_hit hit_rank="2" peptide="OTHERPEP" protein="sp|P00008|HHH_HUMAN"
                    calc_neutral_pep_mass="901.00" massdiff="-0.600"/>
      </search_result>
    </spectrum_query>
    <spectrum_query spectrum="run1.00020.00020.3" start_scan="20" end_scan="20"
                    precursor_neutral_mass="950.40" assumed_charge="3" index="2" retention_time_sec="1500.0">
      <search_result>
        <search_hit hit_rank="1" peptide="PEPTIDEB" protein="rev_sp|P00006|FFF_HUMAN"
                    calc_neutral_pep_mass="950.44" massdiff="-0.040">
          <alternative_protein protein="sp|P00001|AAA_HUMAN"/>
          <alternative_protein protein="rev_sp|P00007|GGG_HUMAN"/>
          <analysis_result analysis="peptideprophet">
            <peptideprophet_result probability="0.5000"/>
          </analysis_result>
          <analysis_result analysis="interprophet">
            <interprophet_result probability="0.9000"/>
          </analysis_result>
        </search_hit>
      </search_result>
    </spectrum_query>
    <spectrum_query spectrum="run1.00030.00030.2" start_scan="30" end_scan="30"
                    precursor_neutral_mass="1001.50" assumed_charge="2" index="3" retention_time_sec="1800.0">
      <search_result>
        <search_hit hit_rank="1" peptide="PEPTIDEX" protein="rev_sp|P00007|GGG_HUMAN"
                    calc_neutral_pep_mass="1000.497" massdiff="1.003">
          <alternative_protein protein="rev_sp|P00011|III_HUMAN"/>
          <alternative_protein protein="sp|P00012|JJJ_HUMAN"/>
          <analysis_result analysis="peptideprophet">
            <peptideprophet_result probability="0.1000"/>
          </analysis_result>
        </search_hit>
      </search_result>
    </spectrum_query>
  </msms_run_summary>
</msms_pipeline_analysis>
"""


@pytest.fixture
def protxml_file(tmp_path):
    """Protein inference document with a fix-up group, a promotable decoy and a plain decoy."""
    path = tmp_path / "interact.prot.xml"
    path.write_text(PROTXML)
    return path


@pytest.fixture
def pepxml_file(tmp_path):
    """Peptide validation document with two in-window PSMs and one outside the window."""
    path = tmp_path / "interact.pep.xml"
    path.write_text(PEPXML)
    return path


@pytest.fixture
def dataset_dirs(tmp_path):
    """Two dataset directories holding the same result files."""
    dirs = []
    for name in ("exp1", "exp2"):
        directory = tmp_path / name
        directory.mkdir()
        (directory / "interact.prot.xml").write_text(PROTXML)
        (directory / "interact.pep.xml").write_text(PEPXML)
        dirs.append(directory)
    return dirs
