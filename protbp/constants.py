"""Module used to define useful constants for the project."""
from __future__ import annotations

# annotations written onto the protein identification run
POSTERIOR_SCORE_TYPE = "Posterior Probability"
SEARCH_ENGINE_NAME = "Epifany"

# default candidates of the hyperparameter grid search, used for every axis for which no value in
# [0, 1] was provided
DEFAULT_ALPHA_CANDIDATES: tuple[float, ...] = (0.1, 0.3, 0.5, 0.7, 0.9)
DEFAULT_BETA_CANDIDATES: tuple[float, ...] = (0.001,)
DEFAULT_GAMMA_CANDIDATES: tuple[float, ...] = (0.5,)

# loopy belief propagation defaults
DEFAULT_CONVERGENCE_THRESHOLD = 1e-5
DEFAULT_DAMPENING_LAMBDA = 1e-3
DEFAULT_MAX_NR_ITERATIONS = 1 << 31
DEFAULT_P_NORM = 1.0

# relative tolerance used when checking that probability tables are normalized
PMF_TOLERANCE = 1e-6

# default column names of the input tables
ACCESSION_COL = "accession"
SCORE_COL = "score"
DECOY_COL = "is_decoy"
PRIOR_COL = "prior"
SPECTRUM_COL = "spectrum_reference"
PEPTIDE_COL = "peptide"
PROTEINS_COL = "proteins"
PROTEIN_SEPARATOR = ";"
DEFAULT_DECOY_PREFIX = "DECOY_"

# output file names
PROTEINS_OUTPUT_FILE = "proteins.csv"
PSMS_OUTPUT_FILE = "psms.csv"
GROUPS_OUTPUT_FILE = "protein_groups.csv"
GRID_SEARCH_OUTPUT_FILE = "grid_search.csv"
CONFIG_OUTPUT_FILE = "config.yml"
