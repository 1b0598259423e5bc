"""
Lymph-node status prediction from breast-tumor expression profiles.

Ranks genes with an empirical-Bayes moderated t-test, compares seven
classifiers by repeated stratified cross-validation with per-fold gene
selection, and evaluates the chosen classifier on a held-out test cohort.
"""

__version__ = "0.1.0"
