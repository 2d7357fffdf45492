"""
Test utilities and helper functions.

Provides common functionality for test setup, data generation,
and result validation across the test suite.
"""

from .mock_data_generator import (
    create_mock_efficiency_tables,
    create_mock_fit_config_toml,
    create_mock_wjets_file,
    generate_wjets_events,
)
from .test_helpers import (
    assert_arrays_close,
    assert_distributions_equal,
    assert_file_exists,
    assert_value_in_range,
)

__all__ = [
    "assert_arrays_close",
    "assert_distributions_equal",
    "assert_file_exists",
    "assert_value_in_range",
    "create_mock_efficiency_tables",
    "create_mock_fit_config_toml",
    "create_mock_wjets_file",
    "generate_wjets_events",
]
