"""Policy document loading: local JSON/TOML files or a path inside the repository."""

import json
import logging
from pathlib import Path

import httpx
import tomlkit
from pydantic import ValidationError
from tomlkit.exceptions import TOMLKitError

from autotriage.models import Policy
from autotriage.settings import TriageSettings
from autotriage.trackers.base import IssueTracker

log = logging.getLogger(__name__)


class PolicyError(ValueError):
    """The policy document is missing, unreadable or malformed."""


def parse_policy(text: str, source: str) -> Policy:
    """Parse a policy document; TOML when source ends in .toml, JSON otherwise."""
    try:
        if source.endswith(".toml"):
            raw = tomlkit.parse(text).unwrap()
        else:
            raw = json.loads(text)
    except (json.JSONDecodeError, TOMLKitError) as exc:
        raise PolicyError(f"Could not parse policy {source}: {exc}") from exc

    if not isinstance(raw, dict):
        raise PolicyError(f"Policy {source} must be a mapping, got {type(raw).__name__}")
    try:
        return Policy.model_validate(raw)
    except ValidationError as exc:
        raise PolicyError(f"Invalid policy {source}: {exc}") from exc


def read_policy_file(path: Path) -> Policy:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PolicyError(f"Could not read policy {path}: {exc}") from exc
    return parse_policy(text, str(path))


async def load_policy(settings: TriageSettings, tracker: IssueTracker) -> Policy:
    """Load the policy from policy_file if set, else from config_path in the repository."""
    if settings.policy_file:
        policy = read_policy_file(settings.policy_file)
    elif settings.config_path:
        try:
            text = await tracker.read_config(settings.config_path)
        except (httpx.HTTPError, RuntimeError) as exc:
            raise PolicyError(f"Could not read {settings.config_path} from {tracker.repository}: {exc}") from exc
        policy = parse_policy(text, settings.config_path)
    else:
        raise PolicyError("No policy configured. Set policy_file or config_path.")

    log.info(
        "loaded policy: %d label rule(s), %d vacationing",
        len(policy.labels),
        len(policy.vacation),
    )
    return policy
