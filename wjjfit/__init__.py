"""
W+jets dijet-mass template fit utilities

Histograms and unbinned samples of the dijet invariant mass from reduced
W+jets trees, per-event trigger efficiency weights, template density
models and the template-corrected chi-square.
"""

__version__ = "0.1.0"
