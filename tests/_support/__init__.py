"""
Test support utilities for storyloom tests.

Helpers that don't fit as pytest fixtures but are useful across
multiple test files.
"""

from __future__ import annotations

import base64
from typing import Any


def b64_image(index: int = 0) -> str:
    """Small base64 payload standing in for PNG bytes."""
    return base64.b64encode(f"image-{index}".encode()).decode()


def images_body(count: int = 1) -> dict[str, Any]:
    """A successful ``images/generations`` response body."""
    return {
        "created": 1735689600,
        "data": [
            {"b64_json": b64_image(i), "revised_prompt": f"a friendly dragon {i}"}
            for i in range(count)
        ],
    }


def error_body(message: str, error_type: str = "invalid_request_error") -> dict[str, Any]:
    """An OpenAI-style ``{"error": {"message": ...}}`` body."""
    return {"error": {"message": message, "type": error_type}}


def assert_dict_subset(actual: dict, expected: dict, path: str = "") -> None:
    """
    Assert that expected is a subset of actual (recursive).

    Args:
        actual: The full dictionary
        expected: The expected subset
        path: Current path (for error messages)
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
