"""
Test support utilities for shipwright tests.

Helpers that don't fit as pytest fixtures but are useful across multiple
test files. The in-memory collaborators live in :mod:`tests._support.fakes`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


def write_temp_yaml(temp_dir: Path, name: str, content: dict[str, Any]) -> Path:
    """
    Write a dictionary to a temporary YAML file.

    Args:
        temp_dir: Temporary directory path
        name: Filename (without extension)
        content: Dictionary to serialize

    Returns:
        Path to created file
    """
    file_path = temp_dir / f"{name}.yaml"
    with open(file_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(content, f, default_flow_style=False)
    return file_path


def assert_dict_subset(actual: dict, expected: dict, path: str = "") -> None:
    """
    Assert that expected is a subset of actual (recursive).

    Useful for checking the parts of a rendered manifest a test cares
    about without pinning every field.
    """
    for key, expected_value in expected.items():
        current_path = f"{path}.{key}" if path else key

        assert key in actual, f"Missing key at {current_path}"
        actual_value = actual[key]

        if isinstance(expected_value, dict) and isinstance(actual_value, dict):
            assert_dict_subset(actual_value, expected_value, current_path)
        else:
            assert actual_value == expected_value, (
                f"Mismatch at {current_path}: "
                f"expected {expected_value!r}, got {actual_value!r}"
            )


class ApplyOrderValidator:
    """
    Validates the order in which manifests reached the control plane.

    Usage:
        validator = ApplyOrderValidator(manifest_set.refs)
        validator.assert_before("Secret/mysql-credentials", "Deployment/mysql")
    """

    def __init__(self, refs: list[str]) -> None:
        self.refs = list(refs)
        self._index = {ref: i for i, ref in enumerate(self.refs)}

    def get_index(self, ref: str) -> int:
        if ref not in self._index:
            raise ValueError(f"{ref!r} was not applied; applied: {self.refs}")
        return self._index[ref]

    def assert_before(self, first: str, second: str) -> None:
        """Assert that ``first`` was applied before ``second``."""
        first_idx = self.get_index(first)
        second_idx = self.get_index(second)
        assert first_idx < second_idx, (
            f"Expected {first!r} (index {first_idx}) before "
            f"{second!r} (index {second_idx}), order: {self.refs}"
        )
