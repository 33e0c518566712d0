from __future__ import annotations

"""Configuration handling for Parley.

Settings live in a JSON file that is created with defaults on first run.  The
file location defaults to ``~/.config/parley/config.json`` and can be moved
with ``PARLEY_CONFIG``.  A few values can be overridden from the environment
so containers can run without writing a config file: ``PORT``,
``PARLEY_DB_PATH`` and ``PARLEY_LOG_LEVEL``.
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path
import json
import logging
import os

DEFAULT_CFG_PATH = Path.home() / ".config" / "parley" / "config.json"


def config_path() -> Path:
    override = os.getenv("PARLEY_CONFIG")
    return Path(override) if override else DEFAULT_CFG_PATH


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 3000


@dataclass
class StoreConfig:
    """Location of the persisted document."""

    path: str = "db.json"


@dataclass
class DeliveryConfig:
    """Limits applied to each live connection."""

    send_timeout: float = 5.0
    outbox_limit: int = 256


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    log_level: str = "INFO"


def _apply_env(cfg: AppConfig) -> AppConfig:
    port = os.getenv("PORT")
    if port:
        try:
            cfg.server.port = int(port)
        except ValueError:
            logging.warning("Ignoring non-numeric PORT=%r", port)
    db_path = os.getenv("PARLEY_DB_PATH")
    if db_path:
        cfg.store.path = db_path
    log_level = os.getenv("PARLEY_LOG_LEVEL")
    if log_level:
        cfg.log_level = log_level.upper()
    return cfg


def load_config(path: Path | None = None) -> AppConfig:
    path = path or config_path()
    if not path.exists():
        return _apply_env(AppConfig())
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError:
        logging.warning("Invalid JSON in %s, using defaults", path)
        return _apply_env(AppConfig())
    cfg = AppConfig(
        server=ServerConfig(**data.get("server", {})),
        store=StoreConfig(**data.get("store", {})),
        delivery=DeliveryConfig(**data.get("delivery", {})),
        log_level=data.get("log_level", "INFO"),
    )
    return _apply_env(cfg)


def save_config(cfg: AppConfig, path: Path | None = None) -> None:
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), indent=2))


def ensure_config(force_reconfigure: bool = False, path: Path | None = None) -> AppConfig:
    """Load configuration, writing the defaults on first run.

    Parameters
    ----------
    force_reconfigure:
        If ``True`` the resolved configuration is written back even when a
        ``config.json`` already exists.
    """

    path = path or config_path()
    cfg = load_config(path)
    if force_reconfigure or not path.exists():
        try:
            save_config(cfg, path)
        except OSError as exc:  # pragma: no cover - platform dependent
            logging.warning("Unable to write config %s: %s", path, exc)
    return cfg
