"""Test factories for generating test data."""

from polyfactory import Use
from polyfactory.factories import DataclassFactory
from polyfactory.factories.pydantic_factory import ModelFactory

from playmaster.models.config import (
    Config,
    Dependency,
    EmailConfig,
    RemoteConfig,
    WebhookConfig,
)
from playmaster.models.feature import FeatureTest, TestCase
from playmaster.state import RemoteInfo, Results


class DependencyFactory(ModelFactory[Dependency]):
    """Factory for Dependency."""

    min_version = "1.0.0"
    version_command = "echo 1.0.0"


class WebhookConfigFactory(ModelFactory[WebhookConfig]):
    """Factory for WebhookConfig."""

    url = "http://webhook.test/notify"
    message_template = ""
    ignore_error = False


class ConfigFactory(ModelFactory[Config]):
    """Factory for Config, with no hooks, dependencies or integrations."""

    dependencies = Use(list[Dependency])
    hooks = Use(list)
    remote = Use(RemoteConfig)
    webhook = None
    email = Use(EmailConfig)


class TestCaseFactory(ModelFactory[TestCase]):
    """Factory for TestCase."""

    description = ""
    steps = Use(list)


class FeatureTestFactory(ModelFactory[FeatureTest]):
    """Factory for FeatureTest."""

    description = ""
    tests = Use(list[TestCase])


class RemoteInfoFactory(DataclassFactory[RemoteInfo]):
    """Factory for RemoteInfo."""

    host = "device.test"
    port = 22


class ResultsFactory(DataclassFactory[Results]):
    """Factory for Results."""

    start_time = None
    end_time = None
    full_log = ""
    error = Use(list)
