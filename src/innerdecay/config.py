"""Decay job configuration.

Loads settings from ~/.innerdecay/config.json and applies INNERDECAY_*
environment overrides on top.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".innerdecay" / "config.json"

STORE_BACKENDS = ("memory", "sqlite", "firestore")


@dataclass
class DecayConfig:
    """Configuration for the decay job.

    Attributes:
        store: Backend name: 'memory', 'sqlite' or 'firestore'.
        sqlite_path: Database file for the sqlite backend.
        firestore_project: Google Cloud project for the firestore backend.
        credentials_path: Service-account key file for firestore.
        collection_id: Collection id of tracked attributes in every owner.
        history_collection: Owner sub-collection receiving history records.
        batch_limit: Maximum units per atomic write batch.
        count_writes: Count individual writes against batch_limit instead
            of planned mutations.
        store_timeout: Per-call store deadline in seconds.
        run_timeout: Deadline for a whole scheduled run, None for no limit.
        interval_hours: Hours between scheduled runs.
        log_dir: Directory for the JSONL run log (default ~/.innerdecay/logs).
    """

    store: str = "sqlite"
    sqlite_path: Path | None = None
    firestore_project: str | None = None
    credentials_path: str | None = None
    collection_id: str = "innerfaces"
    history_collection: str = "history"
    batch_limit: int = 450
    count_writes: bool = False
    store_timeout: float = 60.0
    run_timeout: float | None = None
    interval_hours: float = 24.0
    log_dir: Path | None = None

    def __post_init__(self) -> None:
        """Validate config and set defaults."""
        if self.store not in STORE_BACKENDS:
            raise ValueError(f"store must be one of {', '.join(STORE_BACKENDS)}")

        if self.sqlite_path is None:
            self.sqlite_path = Path.home() / ".innerdecay" / "innerdecay.db"
        self.sqlite_path = Path(self.sqlite_path).expanduser()

        if self.log_dir is not None:
            self.log_dir = Path(self.log_dir).expanduser()

        if self.batch_limit < 1:
            raise ValueError("batch_limit must be at least 1")
        if self.count_writes and self.batch_limit < 2:
            raise ValueError("batch_limit must be at least 2 when counting writes")
        if self.store_timeout <= 0:
            raise ValueError("store_timeout must be positive")
        if self.run_timeout is not None and self.run_timeout <= 0:
            raise ValueError("run_timeout must be positive")
        if self.interval_hours <= 0:
            raise ValueError("interval_hours must be positive")

    @property
    def interval_seconds(self) -> float:
        return self.interval_hours * 3600


def load_config(config_path: Path | None = None) -> DecayConfig:
    """Load DecayConfig from a JSON file.

    The config file should have this structure:
    ```json
    {
      "decay": {
        "collection_id": "innerfaces",
        "batch_limit": 450,
        "interval_hours": 24
      },
      "store": {
        "backend": "firestore",
        "firestore_project": "my-project"
      }
    }
    ```

    Args:
        config_path: Path to config file. Uses DEFAULT_CONFIG_PATH if None.

    Returns:
        DecayConfig instance with loaded values.
    """
    path = config_path or DEFAULT_CONFIG_PATH

    if not path.exists():
        logger.debug("Config %s not found; using built-in defaults", path)
        return DecayConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.warning("Config %s is not valid JSON (%s); using defaults", path, e)
        return DecayConfig()
    except OSError as e:
        logger.warning("Config %s unreadable (%s); using defaults", path, e)
        return DecayConfig()

    if not isinstance(data, dict):
        logger.warning("Config %s is not a JSON object; using defaults", path)
        return DecayConfig()
    return _parse_config(data)


_NUMBER_FIELDS = {
    "batch_limit": int,
    "store_timeout": float,
    "run_timeout": float,
    "interval_hours": float,
}
_OPTIONAL_FIELDS = ("run_timeout", "sqlite_path", "log_dir", "firestore_project", "credentials_path")
_PATH_FIELDS = ("sqlite_path", "log_dir")


def _coerce(key: str, value: Any) -> Any:
    """Convert a JSON config value to the field's type.

    Raises:
        ValueError: If the value cannot be used for ``key``.
    """
    if value is None:
        if key not in _OPTIONAL_FIELDS:
            raise ValueError(f"{key} must not be null")
        return None

    if key in _NUMBER_FIELDS:
        if isinstance(value, bool):
            raise ValueError(f"{key} must be a number, got {value!r}")
        try:
            return _NUMBER_FIELDS[key](value)
        except (TypeError, ValueError):
            raise ValueError(f"{key} must be a number, got {value!r}") from None

    if key == "count_writes":
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return _env_bool(value)
        raise ValueError(f"count_writes must be true or false, got {value!r}")

    if not isinstance(value, str):
        kind = "a path" if key in _PATH_FIELDS else "a string"
        raise ValueError(f"{key} must be {kind}, got {value!r}")
    return value


def _parse_config(data: dict[str, Any]) -> DecayConfig:
    """Parse config dictionary into DecayConfig.

    Unknown keys are ignored; known ones are converted to their field type.
    """
    known = {f.name for f in fields(DecayConfig)}
    values: dict[str, Any] = {}

    decay_data = data.get("decay", {})
    if isinstance(decay_data, dict):
        values.update({k: v for k, v in decay_data.items() if k in known})

    store_data = data.get("store", {})
    if isinstance(store_data, dict):
        if "backend" in store_data:
            values["store"] = store_data["backend"]
        values.update({k: v for k, v in store_data.items() if k in known and k != "store"})

    return DecayConfig(**{k: _coerce(k, v) for k, v in values.items()})


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def config_from_env(base: DecayConfig | None = None) -> DecayConfig:
    """Apply environment variable overrides to ``base``."""
    base = base or DecayConfig()
    overrides: dict[str, Any] = {}

    if os.getenv("INNERDECAY_STORE"):
        overrides["store"] = os.environ["INNERDECAY_STORE"].strip()
    if os.getenv("INNERDECAY_SQLITE_PATH"):
        overrides["sqlite_path"] = Path(os.environ["INNERDECAY_SQLITE_PATH"])
    project = os.getenv("INNERDECAY_FIRESTORE_PROJECT") or os.getenv("GOOGLE_CLOUD_PROJECT")
    if project:
        overrides["firestore_project"] = project
    if os.getenv("GOOGLE_APPLICATION_CREDENTIALS"):
        overrides["credentials_path"] = os.environ["GOOGLE_APPLICATION_CREDENTIALS"]
    if os.getenv("INNERDECAY_BATCH_LIMIT"):
        overrides["batch_limit"] = int(os.environ["INNERDECAY_BATCH_LIMIT"])
    if os.getenv("INNERDECAY_COUNT_WRITES"):
        overrides["count_writes"] = _env_bool(os.environ["INNERDECAY_COUNT_WRITES"])
    if os.getenv("INNERDECAY_STORE_TIMEOUT"):
        overrides["store_timeout"] = float(os.environ["INNERDECAY_STORE_TIMEOUT"])
    if os.getenv("INNERDECAY_RUN_TIMEOUT"):
        overrides["run_timeout"] = float(os.environ["INNERDECAY_RUN_TIMEOUT"])
    if os.getenv("INNERDECAY_INTERVAL_HOURS"):
        overrides["interval_hours"] = float(os.environ["INNERDECAY_INTERVAL_HOURS"])
    if os.getenv("INNERDECAY_LOG_DIR"):
        overrides["log_dir"] = Path(os.environ["INNERDECAY_LOG_DIR"])

    if not overrides:
        return base
    return replace(base, **overrides)


def save_config(config: DecayConfig, config_path: Path | None = None) -> None:
    """Save DecayConfig to a JSON file.

    Args:
        config: The config to save.
        config_path: Path to write to. Uses DEFAULT_CONFIG_PATH if None.
    """
    path = config_path or DEFAULT_CONFIG_PATH

    path.parent.mkdir(parents=True, exist_ok=True)

    values = {k: (str(v) if isinstance(v, Path) else v) for k, v in asdict(config).items()}
    store_keys = ("sqlite_path", "firestore_project", "credentials_path", "store_timeout")
    store_data: dict[str, Any] = {"backend": values.pop("store")}
    for key in store_keys:
        store_data[key] = values.pop(key)

    data = {"decay": values, "store": store_data}

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
    except OSError as e:
        logger.error("Could not write config %s: %s", path, e)
        raise
