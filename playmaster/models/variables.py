"""Values from ``*.vars.yaml`` files that feature files refer to by name.

Each file contributes a group named after it, so ``accounts.vars.yaml``
declaring ``sender: no-reply@app.test`` is used as ``{{accounts.sender}}``.
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from pydantic import TypeAdapter, ValidationError

from playmaster.models.config import ConfigError

log = logging.getLogger(__name__)

VARS_FILE_SUFFIX = ".vars.yaml"
VARS_FILE_GLOB = f"*{VARS_FILE_SUFFIX}"

PLACEHOLDER_RE = re.compile(r"\{\{\s*(?P<group>[\w-]+)\.(?P<key>\w+)\s*\}\}")

_values = TypeAdapter(dict[str, str])


@dataclass(frozen=True)
class Variables:
    """Variables grouped by the file declaring them."""

    groups: Mapping[str, Mapping[str, str]] = field(default_factory=dict)

    def get(self, group: str, key: str) -> str | None:
        return self.groups.get(group, {}).get(key)

    def replace(self, text: str) -> str:
        """Substitute ``{{group.key}}`` placeholders; unknown ones stay as written."""

        def substitute(match: re.Match[str]) -> str:
            value = self.get(match["group"], match["key"])
            if value is None:
                log.warning("Unknown variable %s", match[0])
                return match[0]
            return value

        return PLACEHOLDER_RE.sub(substitute, text)


def load_vars(directory: Path) -> Variables:
    """Load every vars file under a directory, skipping empty ones.

    Raises:
        ConfigError: If a vars file is not a mapping of strings

    """
    groups: dict[str, dict[str, str]] = {}
    for path in sorted(directory.rglob(VARS_FILE_GLOB)):
        try:
            values = _values.validate_python(yaml.safe_load(path.read_text()) or {})
        except (yaml.YAMLError, ValidationError) as e:
            raise ConfigError(f"Invalid vars file {path}: {e}") from e
        if not values:
            continue

        group = path.name.removesuffix(VARS_FILE_SUFFIX)
        if group in groups:
            log.warning("Vars file %s extends group %s", path, group)
        groups.setdefault(group, {}).update(values)
        log.debug("Loaded vars file %s", path)
    return Variables(groups)
