"""Shared fixtures for unit and integration tests."""

from __future__ import annotations

import pytest

from csv_samples import HEADERS, build_csv


@pytest.fixture
def csv_file(tmp_path):
    """Write synthetic CSV rows to a temp file and return its path."""

    def _write(rows: list[dict | str], name: str = "user.csv", headers: list[str] = HEADERS):
        path = tmp_path / name
        path.write_text(build_csv(rows, headers), encoding="utf-8")
        return path

    return _write
