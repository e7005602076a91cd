"""Shared configuration loader for the Helios activity runner."""

from __future__ import annotations

import logging
import math
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

logger = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path("activity.yaml")

DEFAULT_RPC_URL = "https://testnet1.helioschainlabs.org/"
DEFAULT_CHAIN_ID = 42000
DEFAULT_FAUCET_URL = "https://testnet.helioschain.network/faucet"


@dataclass(frozen=True)
class Validator:
    name: str
    address: str


@dataclass
class HeliosSettings:
    """Network constants for the Helios testnet and its router contracts."""

    rpc_url: str = DEFAULT_RPC_URL
    chain_id: int = DEFAULT_CHAIN_ID
    token_address: str = "0xD4949664cD82660AaE99bEdc034a0deA8A0bd517"
    bridge_router: str = "0x0000000000000000000000000000000000000900"
    stake_router: str = "0x0000000000000000000000000000000000000800"
    gas_limit: int = 1_500_000
    request_timeout: float = 30.0
    receipt_timeout: float = 180.0
    faucet_url: str = DEFAULT_FAUCET_URL
    destination_chains: dict[int, str] = field(
        default_factory=lambda: {
            11155111: "Sepolia",
            43113: "Fuji",
            97: "BSC Testnet",
            80002: "Amoy",
        }
    )
    validators: list[Validator] = field(
        default_factory=lambda: [
            Validator("helios-hedge", "0x007a1123a54cdd9ba35ad2012db086b9d8350a5f"),
            Validator("helios-supra", "0x882f8a95409c127f0de7ba83b4dfa0096c3d8d79"),
        ]
    )

    def chain_name(self, chain_id: int) -> str:
        return self.destination_chains.get(chain_id, "Unknown")


@dataclass(frozen=True)
class ActivityConfig:
    """Operator policy for one daily cycle."""

    bridge_repetitions: int = 1
    min_hls_bridge: float = 0.001
    max_hls_bridge: float = 0.004
    stake_repetitions: int = 1
    min_hls_stake: float = 0.01
    max_hls_stake: float = 0.03

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


_INT_FIELDS = {"bridge_repetitions", "stake_repetitions"}
_RANGES = (
    ("min_hls_bridge", "max_hls_bridge"),
    ("min_hls_stake", "max_hls_stake"),
)


def _load_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigurationError(f"Config file not found: {path}")
        return {}

    try:
        loaded = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in config file {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Expected {path} to contain a YAML mapping")
    return loaded


def _coerce_positive(raw: Any, *, integer: bool) -> float | int | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    if integer:
        value = math.floor(value)
        return int(value) if value >= 1 else None
    return value


def _coerce_int(raw: Any, *, source: str) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid integer in {source}: {raw}") from exc


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None:
            return value
    return default


def parse_activity_config(raw: Mapping[str, Any]) -> tuple[ActivityConfig, list[str]]:
    """Build an :class:`ActivityConfig` from loosely typed data.

    Each field falls back to its default when it is missing, non-numeric or not
    positive. A range whose minimum exceeds its maximum falls back as a pair.
    Returns the config together with the names of every defaulted field so
    callers can report them.
    """

    defaults = ActivityConfig()
    values: dict[str, Any] = {}
    defaulted: list[str] = []
    for item in fields(ActivityConfig):
        coerced = _coerce_positive(raw.get(item.name), integer=item.name in _INT_FIELDS)
        if coerced is None:
            coerced = getattr(defaults, item.name)
            defaulted.append(item.name)
        values[item.name] = coerced

    for low, high in _RANGES:
        if values[low] > values[high]:
            values[low] = getattr(defaults, low)
            values[high] = getattr(defaults, high)
            defaulted.extend(name for name in (low, high) if name not in defaulted)

    return ActivityConfig(**values), defaulted


def load_activity_config(path: str | Path = DEFAULT_CONFIG_PATH) -> tuple[ActivityConfig, list[str]]:
    """Load the activity policy from YAML, defaulting field by field."""

    config_path = Path(path).expanduser()
    if not config_path.exists():
        logger.info("No config file found at %s, using default settings.", config_path)
        return ActivityConfig(), []

    try:
        file_config = _load_config_file(config_path, required=True)
        section = file_config.get("activity") or {}
        if not isinstance(section, dict):
            raise ConfigurationError(f"Expected 'activity' to be a mapping in {config_path}")
    except ConfigurationError as exc:
        logger.error("Failed to load config, using default settings: %s", exc)
        return ActivityConfig(), [item.name for item in fields(ActivityConfig)]

    config, defaulted = parse_activity_config(section)
    if defaulted:
        logger.warning(
            "Config %s: using defaults for %s", config_path, ", ".join(defaulted)
        )
    return config, defaulted


def save_activity_config(config: ActivityConfig, path: str | Path = DEFAULT_CONFIG_PATH) -> None:
    """Rewrite the ``activity`` section of the YAML file in full."""

    config_path = Path(path).expanduser()
    document = _load_config_file(config_path, required=False)
    document["activity"] = config.to_dict()
    config_path.write_text(yaml.safe_dump(document, sort_keys=False))


def validate_activity_config(config: ActivityConfig) -> None:
    for name in _INT_FIELDS:
        value = getattr(config, name)
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
    for low, high in _RANGES:
        min_value = getattr(config, low)
        max_value = getattr(config, high)
        for name, value in ((low, min_value), (high, max_value)):
            if not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive number, got {value!r}")
        if min_value > max_value:
            raise ConfigurationError(
                f"{low} ({min_value}) cannot be greater than {high} ({max_value})"
            )


class ActivityConfigStore:
    """Owns the live :class:`ActivityConfig` and its persisted copy.

    ``update`` is the only write path: it validates the candidate, writes it to
    disk and only then swaps it in, so a rejected edit leaves both the live
    value and the file untouched.
    """

    def __init__(self, path: str | Path = DEFAULT_CONFIG_PATH, config: ActivityConfig | None = None) -> None:
        self.path = Path(path).expanduser()
        self.defaulted_fields: list[str] = []
        if config is None:
            config, self.defaulted_fields = load_activity_config(self.path)
        self._config = config

    @property
    def current(self) -> ActivityConfig:
        return self._config

    def update(self, **changes: Any) -> ActivityConfig:
        unknown = set(changes) - {item.name for item in fields(ActivityConfig)}
        if unknown:
            raise ConfigurationError(f"Unknown config fields: {', '.join(sorted(unknown))}")

        normalized = dict(changes)
        for name in _INT_FIELDS & set(normalized):
            value = normalized[name]
            if isinstance(value, float) and math.isfinite(value):
                normalized[name] = math.floor(value)

        candidate = replace(self._config, **normalized)
        validate_activity_config(candidate)
        save_activity_config(candidate, self.path)
        self._config = candidate
        logger.info("Configuration saved to %s", self.path)
        return candidate


def load_settings(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> HeliosSettings:
    """Load network settings from environment variables and optional YAML."""

    env_map = os.environ if env is None else env
    path = Path(config_path).expanduser() if config_path is not None else DEFAULT_CONFIG_PATH
    try:
        file_config = _load_config_file(path, required=False)
        section = file_config.get("network") or {}
        if not isinstance(section, dict):
            raise ConfigurationError(f"Expected 'network' to be a mapping in {path}")
    except ConfigurationError as exc:
        logger.error("Failed to load network settings, using defaults: %s", exc)
        section = {}

    defaults = HeliosSettings()
    rpc_url = _first_value(env_map.get("HELIOS_RPC_URL"), section.get("rpc_url"), defaults.rpc_url)
    chain_id = _first_value(
        _coerce_int(env_map.get("HELIOS_CHAIN_ID"), source="environment"),
        _coerce_int(section.get("chain_id"), source=f"{path} network.chain_id"),
        defaults.chain_id,
    )
    faucet_url = _first_value(
        env_map.get("HELIOS_FAUCET_URL"), section.get("faucet_url"), defaults.faucet_url
    )
    receipt_timeout = _first_value(section.get("receipt_timeout"), defaults.receipt_timeout)
    try:
        receipt_timeout = float(receipt_timeout)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid receipt_timeout in {path}: {receipt_timeout}") from exc

    return replace(
        defaults,
        rpc_url=rpc_url,
        chain_id=chain_id,
        faucet_url=faucet_url,
        receipt_timeout=receipt_timeout,
    )
