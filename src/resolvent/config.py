from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

CONFIG_DIR = Path.home() / ".resolvent"
CONFIG_FILE = CONFIG_DIR / "config"

INDEX_KEY = "RESOLVENT_INDEX"
STRATEGY_KEY = "RESOLVENT_STRATEGY"
PRERELEASE_KEY = "RESOLVENT_PRERELEASE"
FORK_STRATEGY_KEY = "RESOLVENT_FORK_STRATEGY"
CONCURRENT_FORKS_KEY = "RESOLVENT_CONCURRENT_FORKS"

# names accepted by `resolvent config`
SETTING_NAMES = {
    "index": INDEX_KEY,
    "strategy": STRATEGY_KEY,
    "prerelease": PRERELEASE_KEY,
    "fork-strategy": FORK_STRATEGY_KEY,
    "concurrent-forks": CONCURRENT_FORKS_KEY,
}


class ResolutionStrategy(str, Enum):
    HIGHEST = "highest"
    LOWEST = "lowest"
    LOWEST_DIRECT = "lowest-direct"


class PrereleaseMode(str, Enum):
    DISALLOW = "disallow"
    IF_NECESSARY_OR_EXPLICIT = "if-necessary-or-explicit"
    ALLOW = "allow"


class PythonForkStrategy(str, Enum):
    FILTER = "filter"
    FORK = "fork"


class ResolverOptions(BaseModel):
    """knobs for one resolution; defaults come from the config file."""
    resolution_strategy: ResolutionStrategy = ResolutionStrategy.HIGHEST
    prerelease: PrereleaseMode = PrereleaseMode.IF_NECESSARY_OR_EXPLICIT
    python_fork_strategy: PythonForkStrategy = PythonForkStrategy.FILTER
    conflict_threshold: int = 5
    concurrent_forks: bool = False
    # wheel tags of the target environment; None means the running interpreter
    tags: Optional[List[str]] = None
    # name -> version already present in the target environment
    installed: Dict[str, str] = Field(default_factory=dict)


def read_config() -> Dict[str, str]:
    """read every KEY=VALUE pair from the config file."""
    config = {}
    if not CONFIG_FILE.exists():
        return config

    try:
        with open(CONFIG_FILE, "r") as f:
            for line in f:
                line = line.strip()
                if "=" in line:
                    key, value = line.split("=", 1)
                    config[key] = value
    except (IOError, PermissionError, OSError):
        # if we can't read the file, treat as not configured
        return {}
    return config


def get_setting(key: str) -> Optional[str]:
    """get a single configured value."""
    return read_config().get(key)


def set_setting(key: str, value: str):
    """set a value in the config file, preserving other config values."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    config = read_config()
    config[key] = value

    try:
        with open(CONFIG_FILE, "w") as f:
            for k, v in config.items():
                f.write(f"{k}={v}\n")
    except (IOError, PermissionError, OSError) as e:
        raise RuntimeError(f"failed to write config file: {e}") from e


def get_index() -> Optional[str]:
    """get the configured index location (path or URL)."""
    return get_setting(INDEX_KEY)


def load_options(**overrides) -> ResolverOptions:
    """
    build resolver options from the config file.

    keyword overrides (typically CLI flags) win over file values; None
    overrides are ignored so unset flags fall through to the file.
    """
    config = read_config()
    values = {}

    if STRATEGY_KEY in config:
        values["resolution_strategy"] = config[STRATEGY_KEY]
    if PRERELEASE_KEY in config:
        values["prerelease"] = config[PRERELEASE_KEY]
    if FORK_STRATEGY_KEY in config:
        values["python_fork_strategy"] = config[FORK_STRATEGY_KEY]
    if CONCURRENT_FORKS_KEY in config:
        values["concurrent_forks"] = config[CONCURRENT_FORKS_KEY].lower() in ("1", "true", "yes")

    values.update({k: v for k, v in overrides.items() if v is not None})
    return ResolverOptions(**values)
