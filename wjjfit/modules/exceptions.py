#!/usr/bin/env python3
"""
Custom exceptions for the W+jets dijet-mass fit utilities

Provides a hierarchy of exceptions for better error handling and diagnostics.
All custom exceptions inherit from AnalysisError for easy catching.
"""


class AnalysisError(Exception):
    """
    Base exception for all fit utility errors

    All custom exceptions inherit from this class, allowing users to catch
    all analysis-specific errors with a single except clause.
    """
    pass


class ConfigurationError(AnalysisError):
    """
    Raised when configuration is invalid or missing required fields

    Examples:
    - Missing fit configuration file
    - Fit range with min >= max
    - Explicit bin edges not strictly increasing
    - Composite model with a partial coefficient list
    """
    pass


class DataLoadError(AnalysisError):
    """
    Raised when a reduced W+jets tree file cannot be opened

    Examples:
    - Input file named in the fit configuration not found
    - Corrupted ROOT file or unreadable tree
    """
    pass


class BranchMissingError(AnalysisError):
    """
    Raised when required branch is not found in the event tree

    Examples:
    - A [weighting] branch absent from a reduced file (JetPFCor_Pt, event_nPV)
    - Lepton branches of the wrong channel (W_muon_pt in an electron file)
    - Observable branch typo in configuration
    """
    def __init__(self, branch_name: str, file_path: str = None):
        """
        Initialize BranchMissingError

        Args:
            branch_name: Name of the missing branch
            file_path: Optional path to the file being read
        """
        self.branch_name = branch_name
        self.file_path = file_path

        message = f"Required branch '{branch_name}' not found"
        if file_path:
            message += f" in file: {file_path}"

        super().__init__(message)


class EfficiencyError(AnalysisError):
    """
    Raised when trigger or identification efficiency inputs are unusable

    Examples:
    - Per-jet efficiency outside [0, 1]
    - Tight plus loose-only efficiency above 1 for one jet
    - Missing or unreadable pt/eta table in eff_dir
    """
    pass


class FittingError(AnalysisError):
    """
    Raised when the chi-square comparison of a template model to data
    cannot be carried out

    Examples:
    - Data point arrays of different lengths
    - Unknown density model type
    - p-value requested with no degrees of freedom left
    """
    pass


class ValidationError(AnalysisError):
    """
    Raised when validation checks fail

    Examples:
    - Histogram bin edges not strictly increasing
    - Bin contents not matching the number of bins
    """
    pass
