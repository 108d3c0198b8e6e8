"""Models for ``*.test.yaml`` feature files.

Only the parts of a feature file the runner needs are interpreted: test
names and descriptions for failure reports, and ``user_input`` steps that
tell how to obtain a value a running test asks for.
"""

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import ConfigDict, Field, ValidationError

from playmaster.models.base import Model
from playmaster.models.config import ConfigError

log = logging.getLogger(__name__)

FEATURE_FILE_GLOB = "*.test.yaml"

# Joins a feature name and a test name into the name the test driver reports.
TEST_NAME_DELIMITER = " - "

MFA_CODE_PATTERN = r"\b(\d{6})\b"


class MfaRegex(Model):
    """Six digit one-time code."""

    type: Literal["mfa"]


class CustomRegex(Model):
    """User supplied extraction pattern."""

    type: Literal["custom"]
    pattern: str


class EmailRule(Model):
    """Where to find the value for an input in the mailbox."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    sender: str = Field(..., alias="from", description="Expected sender address")
    subject_contains: str = Field(default="", description="Subject substring")
    regex: Annotated[MfaRegex | CustomRegex, Field(discriminator="type")] = Field(
        default_factory=lambda: MfaRegex(type="mfa")
    )

    @property
    def pattern(self) -> str:
        """Regular expression extracting the value from the email body."""
        if isinstance(self.regex, CustomRegex):
            return self.regex.pattern
        return MFA_CODE_PATTERN


class UserInput(Model):
    """Value a test waits for while running."""

    name: str
    email: EmailRule | None = None


class TestCase(Model):
    """Single test of a feature."""

    __test__ = False

    name: str
    description: str = ""
    steps: Sequence[Mapping[str, Any]] = Field(default_factory=list)

    def user_inputs(self) -> Sequence[UserInput]:
        """Return the ``user_input`` steps of this test."""
        return [
            UserInput.model_validate(step["user_input"])
            for step in self.steps
            if isinstance(step, Mapping) and "user_input" in step
        ]


class FeatureTest(Model):
    """Feature grouping several tests."""

    __test__ = False

    name: str
    description: str = ""
    tests: Sequence[TestCase] = Field(default_factory=list)

    def qualified_name(self, test: TestCase) -> str:
        """Name under which the test driver reports a test of this feature."""
        return f"{self.name}{TEST_NAME_DELIMITER}{test.name}"


def find_test(
    features: Sequence[FeatureTest], qualified_name: str
) -> TestCase | None:
    """Find a declared test by the name the test driver reports."""
    for feature in features:
        for test in feature.tests:
            if feature.qualified_name(test) == qualified_name:
                return test
    return None


def find_email_rule(
    features: Sequence[FeatureTest], qualified_name: str, input_name: str
) -> EmailRule | None:
    """Find the email rule declared for an input of a running test."""
    test = find_test(features, qualified_name)
    if test is None:
        return None

    for user_input in test.user_inputs():
        if user_input.name == input_name:
            return user_input.email
    return None


def load_features(directory: Path) -> Sequence[FeatureTest]:
    """Load every feature file under a directory, in path order.

    Raises:
        ConfigError: If a feature file is not valid

    """
    features: list[FeatureTest] = []
    for path in sorted(directory.rglob(FEATURE_FILE_GLOB)):
        try:
            data = yaml.safe_load(path.read_text()) or {}
            features.append(FeatureTest.model_validate(data))
        except (yaml.YAMLError, ValidationError) as e:
            raise ConfigError(f"Invalid feature file {path}: {e}") from e
        log.debug("Loaded feature file %s", path)
    return features
