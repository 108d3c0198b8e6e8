"""Tests for feature files."""

from pathlib import Path

import pytest

from playmaster.models.config import ConfigError
from playmaster.models.feature import (
    FeatureTest,
    find_email_rule,
    find_test,
    load_features,
)

FEATURE = """\
name: Login
description: Signing in and out
tests:
  - name: Sign in with MFA
    description: Signs in with a code sent by email
    steps:
      - tap: login
      - user_input:
          name: otp
          email:
            from: no-reply@app.test
            subject_contains: Your code
      - user_input:
          name: magic_link
          email:
            from: links@app.test
            regex:
              type: custom
              pattern: "token=(\\\\w+)"
  - name: Sign out
"""


@pytest.fixture
def features(tmp_path: Path) -> list[FeatureTest]:
    (tmp_path / "integration_test" / "features").mkdir(parents=True)
    (tmp_path / "integration_test" / "features" / "login.test.yaml").write_text(
        FEATURE
    )
    (tmp_path / "integration_test" / "features" / "notes.yaml").write_text("x: [")
    return list(load_features(tmp_path))


def test_load_features_finds_test_files(features: list[FeatureTest]) -> None:
    """Only ``*.test.yaml`` files are feature files."""
    (feature,) = features

    assert feature.name == "Login"
    assert [test.name for test in feature.tests] == ["Sign in with MFA", "Sign out"]


def test_load_features_orders_by_path(tmp_path: Path) -> None:
    """Feature files are read in path order."""
    (tmp_path / "b.test.yaml").write_text("name: B\n")
    (tmp_path / "a.test.yaml").write_text("name: A\n")

    assert [f.name for f in load_features(tmp_path)] == ["A", "B"]


def test_invalid_feature_file(tmp_path: Path) -> None:
    """A feature file without a name is rejected."""
    (tmp_path / "broken.test.yaml").write_text("tests: []\n")

    with pytest.raises(ConfigError, match="broken.test.yaml"):
        load_features(tmp_path)


def test_find_test_by_qualified_name(features: list[FeatureTest]) -> None:
    """Tests are found by the name the driver reports."""
    test = find_test(features, "Login - Sign in with MFA")

    assert test is not None
    assert test.description == "Signs in with a code sent by email"
    assert find_test(features, "Sign in with MFA") is None


def test_user_inputs(features: list[FeatureTest]) -> None:
    """Only ``user_input`` steps are interpreted."""
    test = find_test(features, "Login - Sign in with MFA")
    assert test is not None

    assert [i.name for i in test.user_inputs()] == ["otp", "magic_link"]


def test_find_email_rule(features: list[FeatureTest]) -> None:
    """The rule declares where the value comes from."""
    rule = find_email_rule(features, "Login - Sign in with MFA", "otp")

    assert rule is not None
    assert rule.sender == "no-reply@app.test"
    assert rule.subject_contains == "Your code"
    assert rule.pattern == r"\b(\d{6})\b"


def test_custom_email_pattern(features: list[FeatureTest]) -> None:
    """A custom regex overrides the one-time code pattern."""
    rule = find_email_rule(features, "Login - Sign in with MFA", "magic_link")

    assert rule is not None
    assert rule.pattern == r"token=(\w+)"


def test_find_email_rule_misses(features: list[FeatureTest]) -> None:
    """Unknown tests and inputs have no rule."""
    assert find_email_rule(features, "Login - Sign out", "otp") is None
    assert find_email_rule(features, "Login - Sign in with MFA", "pin") is None
    assert find_email_rule(features, "Checkout - Pay", "otp") is None
