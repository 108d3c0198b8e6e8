"""Verification of tools required on the execution target."""

import logging
import re
from dataclasses import dataclass

from playmaster.hooks.base import Hook, HookContext, HookError, HookType
from playmaster.models.config import Dependency

log = logging.getLogger(__name__)

VERSION_RE = re.compile(r"\d+(\.\d+)+")


def extract_version(text: str) -> tuple[int, ...] | None:
    """Return the first dotted version number found in text."""
    if (match := VERSION_RE.search(text)) is None:
        return None
    return tuple(int(part) for part in match.group(0).split("."))


def is_version_at_least(found: tuple[int, ...], minimum: tuple[int, ...]) -> bool:
    width = max(len(found), len(minimum))
    pad = (0,) * width
    return (found + pad)[:width] >= (minimum + pad)[:width]


@dataclass(frozen=True, kw_only=True)
class CheckDependency(Hook):
    """Fails unless every configured dependency meets its minimum version."""

    def get_type(self) -> HookType:
        return HookType.VERIFY_SYSTEM

    def run(self, ctx: HookContext) -> None:
        log.info("Checking dependencies...")
        unmet = [
            dep.name
            for dep in ctx.config.dependencies
            if not self.check(ctx, dep)
        ]
        if unmet:
            raise HookError(f"Some dependencies are not met: {', '.join(unmet)}")

    def check(self, ctx: HookContext, dep: Dependency) -> bool:
        """Run the version command of a dependency and compare its output."""
        minimum = extract_version(dep.min_version)
        if minimum is None:
            raise HookError(f"Invalid min_version for {dep.name}: {dep.min_version}")

        output = ctx.session().execute(dep.version_command)
        found = extract_version(output.stdout)
        if found is None:
            log.error(
                "❌ %s version command did not return a valid version: %s",
                dep.name,
                output.stdout or output.stderr,
            )
            return False

        version = ".".join(map(str, found))
        if not is_version_at_least(found, minimum):
            log.error("❌ %s too old (%s < %s)", dep.name, version, dep.min_version)
            return False

        log.info("✅ %s OK (%s ≥ %s)", dep.name, version, dep.min_version)
        return True
