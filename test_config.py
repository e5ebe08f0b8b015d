"""
test_config.py - Environment-driven settings.

Usage: python -m pytest test_config.py
"""

from __future__ import annotations

import logging
import os
import sys

# Ensure local imports resolve from project root.
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import pytest

from config import DEFAULT_PAYOUT_CAP, Settings, load_settings
from logging_config import setup_logging

ENV_KEYS = ("PAYOUT_CAP", "FUZZY_THRESHOLD", "LOG_LEVEL", "PORT")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    # Keep a developer's .env out of the picture.
    monkeypatch.chdir(tmp_path)
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    settings = load_settings()
    assert settings == Settings()
    assert settings.payout_cap == DEFAULT_PAYOUT_CAP == 800.0
    assert settings.fuzzy_threshold == 0.6


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("PAYOUT_CAP", "1000")
    monkeypatch.setenv("FUZZY_THRESHOLD", "0.5")
    monkeypatch.setenv("PORT", "9000")

    settings = load_settings()

    assert (settings.payout_cap, settings.fuzzy_threshold, settings.port) == (1000.0, 0.5, 9000)


def test_invalid_values_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("PAYOUT_CAP", "-5")
    assert load_settings().payout_cap == DEFAULT_PAYOUT_CAP


def test_dotenv_file_is_read(tmp_path):
    (tmp_path / ".env").write_text("FUZZY_THRESHOLD=0.75\n", encoding="utf-8")
    try:
        assert load_settings().fuzzy_threshold == 0.75
    finally:
        os.environ.pop("FUZZY_THRESHOLD", None)


def test_setup_logging_accepts_level_names():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    try:
        setup_logging("debug")
        assert root.level == logging.DEBUG
        setup_logging("not-a-level")
        assert root.level == logging.INFO
        assert len(root.handlers) == 1
    finally:
        root.handlers[:] = handlers
        root.setLevel(level)
