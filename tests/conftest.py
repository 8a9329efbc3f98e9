"""Shared fixtures: element descriptors, event builders, a fresh classifier."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from uxinsight.config import Settings
from uxinsight.friction.classifier import InteractionClassifier
from uxinsight.friction.state import ClassifierState


def element(selector: str, tag: str = "button", **kw) -> dict:
    d = {"selector": selector, "tag": tag}
    d.update(kw)
    return d


def click(ts: float, selector: str = "#buy", **kw) -> dict:
    ev = {"kind": "click", "timestamp": ts, "x": 10, "y": 20, "target": element(selector)}
    ev.update(kw)
    return ev


def field(selector: str = "#email", value: str = "") -> dict:
    return element(selector, tag="input", inputType="text", name=selector.lstrip("#"), value=value)


# ---------------------------------------------------------------------------
# Classifier fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def classifier() -> InteractionClassifier:
    return InteractionClassifier()


@pytest.fixture
def state(classifier: InteractionClassifier) -> ClassifierState:
    """State of a session that started at t=0 ms."""
    return classifier.new_state(0.0)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    # no timer threads in API tests; hesitation is covered by the session tests
    return Settings(redis_url=None, hesitation_timer=False)


@pytest.fixture
def mock_queue() -> MagicMock:
    q = MagicMock()
    q.ping.return_value = True
    return q
