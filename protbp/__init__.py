"""Bayesian protein inference from peptide identifications.

The package estimates posterior probabilities of protein presence with a Bayesian network over
proteins, indistinguishable protein groups, peptide groups and peptide-spectrum matches. The
network of every connected component of the evidence graph is solved with loopy belief
propagation (Serang et al. 2010, J Proteome Res; Pfeuffer et al. 2020, J Proteome Res), and the
model hyperparameters are tuned by a grid search on a target-decoy discrimination objective.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

# Package information
__version__ = "0.1.0"

CURRENT_DIRECTORY = Path(__file__).resolve().parent
REPO_DIRECTORY = CURRENT_DIRECTORY.parent

os.environ["REPO_DIRECTORY"] = str(REPO_DIRECTORY)

# Set the variables defined in .env as environment variables
load_dotenv(dotenv_path=REPO_DIRECTORY / ".env")
