"""Configuration loading for ParkRelief."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class NodeConfig:
    name: str = "parkrelief-node"


@dataclass
class StoreConfig:
    """Configuration for the replicated event store."""

    backend: str = "memory"  # "memory" or "mqtt"
    namespace: str = "ParkRelief/painEvents"
    put_timeout_seconds: float = 10.0
    initial_sync_timeout_seconds: float = 5.0


@dataclass
class MQTTConfig:
    broker: str = "localhost"
    port: int = 1883
    username: str | None = None
    password: str | None = None
    keepalive: int = 60
    qos: int = 1


@dataclass
class SessionConfig:
    default_duration_minutes: int = 15
    tick_interval_seconds: float = 1.0


@dataclass
class DashboardConfig:
    host: str = "0.0.0.0"
    port: int = 8080
    public_url: str = ""  # page URL used when building share links

    @property
    def page_url(self) -> str:
        if self.public_url:
            return self.public_url
        host = "localhost" if self.host in ("0.0.0.0", "") else self.host
        return f"http://{host}:{self.port}/"


@dataclass
class Config:
    node: NodeConfig = field(default_factory=NodeConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    mqtt: MQTTConfig = field(default_factory=MQTTConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with PARKRELIEF_ prefix."""
    return os.environ.get(f"PARKRELIEF_{key}", default)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    if name := _get_env("NODE_NAME"):
        config.node.name = name

    # Store overrides
    if backend := _get_env("STORE_BACKEND"):
        config.store.backend = backend.lower()
    if namespace := _get_env("STORE_NAMESPACE"):
        config.store.namespace = namespace

    # MQTT overrides
    if broker := _get_env("MQTT_BROKER"):
        config.mqtt.broker = broker
    if port := _get_env("MQTT_PORT"):
        config.mqtt.port = int(port)
    if username := _get_env("MQTT_USERNAME"):
        config.mqtt.username = username
    if password := _get_env("MQTT_PASSWORD"):
        config.mqtt.password = password

    if duration := _get_env("SESSION_DURATION"):
        config.session.default_duration_minutes = int(duration)

    # Dashboard overrides
    if port := _get_env("DASHBOARD_PORT"):
        config.dashboard.port = int(port)
    if public_url := _get_env("PUBLIC_URL"):
        config.dashboard.public_url = public_url

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            if "node" in data:
                config.node = NodeConfig(
                    name=data["node"].get("name", config.node.name)
                )

            # Parse store config
            if "store" in data:
                store_data = data["store"]
                config.store = StoreConfig(
                    backend=str(store_data.get("backend", config.store.backend)).lower(),
                    namespace=store_data.get("namespace", config.store.namespace),
                    put_timeout_seconds=store_data.get(
                        "put_timeout_seconds", config.store.put_timeout_seconds
                    ),
                    initial_sync_timeout_seconds=store_data.get(
                        "initial_sync_timeout_seconds",
                        config.store.initial_sync_timeout_seconds,
                    ),
                )

            # Parse MQTT config
            if "mqtt" in data:
                mqtt_data = data["mqtt"]
                config.mqtt = MQTTConfig(
                    broker=mqtt_data.get("broker", config.mqtt.broker),
                    port=mqtt_data.get("port", config.mqtt.port),
                    username=mqtt_data.get("username"),
                    password=mqtt_data.get("password"),
                    keepalive=mqtt_data.get("keepalive", config.mqtt.keepalive),
                    qos=mqtt_data.get("qos", config.mqtt.qos),
                )

            # Parse session config
            if "session" in data:
                session_data = data["session"]
                config.session = SessionConfig(
                    default_duration_minutes=session_data.get(
                        "default_duration_minutes",
                        config.session.default_duration_minutes,
                    ),
                    tick_interval_seconds=session_data.get(
                        "tick_interval_seconds", config.session.tick_interval_seconds
                    ),
                )

            # Parse dashboard config
            if "dashboard" in data:
                dash_data = data["dashboard"]
                config.dashboard = DashboardConfig(
                    host=dash_data.get("host", config.dashboard.host),
                    port=dash_data.get("port", config.dashboard.port),
                    public_url=dash_data.get("public_url") or "",
                )

    return _apply_env_overrides(config)
