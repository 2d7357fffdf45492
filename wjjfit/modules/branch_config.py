"""
Branch configuration manager

Loads the branch names the histogram passes read from branches_config.toml
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import tomli

from .exceptions import ConfigurationError


class BranchConfig:
    """Manager for branch configuration.

    Attributes:
        logger: Logger instance for this class
        config: Loaded TOML configuration dictionary
        weighting: Branch names used by the per-event efficiency weights
    """

    def __init__(self, config_path: str | None = None) -> None:
        """
        Initialize branch configuration.

        Args:
            config_path: Path to branches_config.toml (auto-detected if None)

        Raises:
            ConfigurationError: If configuration file not found or incomplete
        """
        self.logger: logging.Logger = logging.getLogger("WjjFit.BranchConfig")

        # Auto-detect config file
        if config_path is None:
            config_path = Path(__file__).parent / "branches_config.toml"
        else:
            config_path = Path(config_path)

        if not config_path.exists():
            raise ConfigurationError(
                f"Branch configuration file not found: {config_path}\n"
                f"Expected location: {Path(__file__).parent / 'branches_config.toml'}"
            )

        with open(config_path, "rb") as f:
            self.config: dict[str, Any] = tomli.load(f)

        if "weighting" not in self.config:
            raise ConfigurationError(
                f"Branch configuration {config_path} must have a [weighting] section."
            )
        self.weighting: dict[str, Any] = self.config["weighting"]

        self.logger.info(f"Loaded branch configuration from {config_path}")

    def lepton_branches(self, is_electron: bool) -> tuple[str, str]:
        """
        Lepton (pt, eta) branch names for one channel.

        Raises:
            ConfigurationError: If the channel has no [weighting] entry
        """
        channel = "electron" if is_electron else "muon"
        try:
            lepton = self.weighting[channel]
            return lepton["pt"], lepton["eta"]
        except KeyError:
            raise ConfigurationError(f"No [weighting.{channel}] pt/eta branches configured")

    def weight_branches(self, is_electron: bool) -> list[str]:
        """Branches the per-event efficiency weight reads."""
        names = [value for value in self.weighting.values() if isinstance(value, str)]
        names.extend(self.lepton_branches(is_electron))
        return sorted(set(names))

    def branches_for(self, observable: str, is_electron: bool, weighted: bool) -> list[str]:
        """
        Branches a histogram or dataset pass has to read.

        The observable is always read; jets, MET, vertex count, jet count
        and the channel's lepton only when weights are applied.

        Parameters:
        - observable: Observable branch name
        - is_electron: Electron channel if True, muon otherwise
        - weighted: Whether efficiency weights are computed

        Returns:
        - Sorted list of branch names
        """
        branches = {observable}
        if weighted:
            branches.update(self.weight_branches(is_electron))
        return sorted(branches)
