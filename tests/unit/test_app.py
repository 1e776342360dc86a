"""Tests for the command line entry point."""

import json
import logging
import sys
from unittest.mock import patch

import pytest

from dispatchlab.app import main


def test_headless_demo_creates_store_directory(tmp_path, monkeypatch, capsys, caplog):
    store_dir = tmp_path / "new" / "store"
    monkeypatch.setattr(
        sys,
        "argv",
        [
            "dispatchlab",
            "--headless-demo",
            "--store-path",
            str(store_dir / "registry.db"),
            "--config-file-path",
            str(tmp_path / "config.ini"),
        ],
    )
    caplog.set_level(logging.INFO)

    with patch("dispatchlab.app.configure_logger"):
        with pytest.raises(SystemExit) as exc:
            main()

    assert exc.value.code == 0
    assert store_dir.is_dir()
    assert f"Creating store directory: {store_dir}" in caplog.text
    out = capsys.readouterr().out
    assert "Creating store directory" not in out
    steps = json.loads(out)
    assert ("Leaf", "handler") in [(s["widget"], s["stage"]) for s in steps]
