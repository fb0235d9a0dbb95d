"""Settings resolution with profile precedence chain."""

import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path

import tomlkit
import typer
from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_PATH = Path.home() / ".config" / "autotriage" / "config.toml"


class TriageSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AUTOTRIAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    default_profile: str | None = None

    # GitHub
    github_token: SecretStr | None = None
    github_auth: str = "token"  # "token" | "gh-cli"
    github_repo: str | None = None  # "owner/repo"
    api_url: str = "https://api.github.com"

    # Inputs
    config_path: str | None = None  # policy path inside the repository
    policy_file: Path | None = None  # local policy file, wins over config_path
    labels_file: Path = Path("issue_labels.json")

    # Behaviour
    allow_labels: str = ""  # pipe-delimited
    diagnostic: bool = False

    # Roster store
    roster_connection_string: SecretStr | None = None
    roster_database: str | None = None  # falls back to the database in the connection string
    roster_collection: str = "testers"

    telemetry_url: str | None = None

    @property
    def allowed_labels(self) -> frozenset[str]:
        return frozenset(label for label in self.allow_labels.split("|") if label)


@lru_cache(maxsize=1)
def _load_toml() -> tomlkit.TOMLDocument:
    """Load ~/.config/autotriage/config.toml, returning empty document if missing."""
    if not CONFIG_PATH.exists():
        return tomlkit.document()
    return tomlkit.load(CONFIG_PATH.open())


def _list_profiles(config: Mapping) -> list[str]:
    # tomlkit Table implements MutableMapping but not dict, so check Mapping
    return [k for k, v in config.items() if isinstance(v, Mapping)]


def get_settings(profile: str | None = None) -> TriageSettings:
    """Resolve the active profile and return a fully populated TriageSettings.

    Precedence (highest to lowest):
    1. profile argument (--profile CLI flag)
    2. AUTOTRIAGE_PROFILE env var
    3. default_profile key in ~/.config/autotriage/config.toml
    4. First profile defined in ~/.config/autotriage/config.toml
    """
    toml_config = _load_toml()

    active = (
        profile
        or os.environ.get("AUTOTRIAGE_PROFILE")
        or toml_config.get("default_profile")
        or ((_profiles := _list_profiles(toml_config)) and _profiles[0] or None)
    )

    profile_defaults: dict = {}
    if active:
        if active in toml_config and isinstance(toml_config[active], Mapping):
            profile_defaults = toml_config[active].unwrap()
        elif active not in toml_config:
            profiles = _list_profiles(toml_config)
            typer.echo(f"Profile '{active}' not found in {CONFIG_PATH}. Available: {profiles or '(none)'}")
            raise typer.Exit(1)

    settings = TriageSettings(**profile_defaults)

    if settings.github_auth == "token" and not settings.github_token:
        typer.echo(
            "Missing GitHub credentials. Set AUTOTRIAGE_GITHUB_TOKEN or "
            f"github_token in the [{active or 'profile'}] section of {CONFIG_PATH}, "
            'or set github_auth = "gh-cli" to use the gh CLI.'
        )
        raise typer.Exit(1)
    if not settings.github_repo or "/" not in settings.github_repo:
        typer.echo(
            "Missing repository. Set AUTOTRIAGE_GITHUB_REPO (owner/repo) or "
            f"github_repo in the [{active or 'profile'}] section of {CONFIG_PATH}"
        )
        raise typer.Exit(1)

    return settings
