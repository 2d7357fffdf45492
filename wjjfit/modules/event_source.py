"""
Module for reading event records from ROOT files using uproot
"""

from __future__ import annotations

import logging
from pathlib import Path

import awkward as ak
import uproot

from .exceptions import BranchMissingError, DataLoadError


class TreeEventSource:
    """
    Event records stored in one tree of one ROOT file.

    A missing tree is a recoverable condition: it is logged and read()
    returns None so the caller can skip the sample. A missing file is not.
    """

    def __init__(self, file_path: str | Path, tree_name: str = "WJet") -> None:
        """
        Initialize with file path and tree name

        Parameters:
        - file_path: ROOT file holding the reduced tree
        - tree_name: Name of the tree inside the file
        """
        self.file_path = Path(file_path)
        self.tree_name = tree_name
        self.logger = logging.getLogger("WjjFit.TreeEventSource")

    def _open(self):
        if not self.file_path.exists():
            raise DataLoadError(f"Event file not found: {self.file_path}")
        try:
            return uproot.open(self.file_path)
        except (OSError, ValueError) as e:
            raise DataLoadError(f"Cannot open {self.file_path}: {e}")

    def exists(self) -> bool:
        """True if the file contains the tree."""
        with self._open() as file:
            return self.tree_name in file

    def branches(self) -> list[str]:
        """List branch names of the tree (empty if the tree is missing)."""
        with self._open() as file:
            if self.tree_name not in file:
                return []
            return list(file[self.tree_name].keys())

    def read(self, branches: list[str], cut: str | None = None) -> ak.Array | None:
        """
        Read branches for all events passing an optional cut

        Parameters:
        - branches: Branch names to return
        - cut: Selection expression in uproot syntax (None or "" for all events)

        Returns:
        - Awkward record array, or None if the tree is missing

        Raises:
        - DataLoadError: File missing or unreadable
        - BranchMissingError: A requested branch is not in the tree
        """
        with self._open() as file:
            if self.tree_name not in file:
                self.logger.warning(
                    f"failed to find tree {self.tree_name} in file {self.file_path}"
                )
                return None

            tree = file[self.tree_name]
            available = set(tree.keys())
            for branch in branches:
                if branch not in available:
                    raise BranchMissingError(branch, str(self.file_path))

            events = tree.arrays(branches, cut=cut or None, library="ak")

        self.logger.info(
            f"Loaded {len(events)} events from {self.file_path}:{self.tree_name}"
            + (f" with cut {cut}" if cut else "")
        )
        return events
