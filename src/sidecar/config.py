from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml

from .errors import ConfigError

DEFAULT_SITE = "datadoghq.com"
DEFAULT_CONTAINER_REGISTRY = "gcr.io/datadoghq"
DEFAULT_IMAGE_NAME = "agent"
DEFAULT_IMAGE_TAG = "7"
DEFAULT_CLUSTER_AGENT_CMD_PORT = 5005
DEFAULT_CLUSTER_AGENT_SERVICE_NAME = "datadog-cluster-agent"

_SIDECAR_PREFIX = "admission_controller.agent_sidecar"

# environment variable -> (config key, kind)
_ENV_KEYS: Dict[str, Tuple[str, str]] = {
    "DD_CLUSTER_NAME": ("cluster_name", "str"),
    "DD_CLUSTER_AGENT_CMD_PORT": ("cluster_agent_cmd_port", "int"),
    "DD_CLUSTER_AGENT_KUBERNETES_SERVICE_NAME": ("cluster_agent_service_name", "str"),
    "DD_ADMISSION_CONTROLLER_AGENT_SIDECAR_CONTAINER_REGISTRY": ("container_registry", "str"),
    "DD_ADMISSION_CONTROLLER_AGENT_SIDECAR_IMAGE_NAME": ("image_name", "str"),
    "DD_ADMISSION_CONTROLLER_AGENT_SIDECAR_IMAGE_TAG": ("image_tag", "str"),
    "DD_ADMISSION_CONTROLLER_AGENT_SIDECAR_CLUSTER_AGENT_ENABLED": ("cluster_agent_enabled", "bool"),
    "DD_ADMISSION_CONTROLLER_AGENT_SIDECAR_PROVIDER": ("provider", "str"),
    "DD_ADMISSION_CONTROLLER_AGENT_SIDECAR_PROFILES": ("profiles", "str"),
}

ProfilesSource = Union[str, Tuple[Any, ...]]


@dataclass(frozen=True)
class SidecarConfig:
    """Read-only configuration snapshot consumed by one injection.

    ``site`` left empty means "use the DD_SITE process variable, then the
    built-in default". ``profiles`` keeps the raw override source (a JSON
    string or a sequence of mappings); it is parsed when overrides are
    applied so that a malformed source fails the injection, not the load.
    """

    container_registry: str = DEFAULT_CONTAINER_REGISTRY
    image_name: str = DEFAULT_IMAGE_NAME
    image_tag: str = DEFAULT_IMAGE_TAG
    site: str = ""
    cluster_name: str = ""
    cluster_agent_enabled: bool = False
    cluster_agent_cmd_port: int = DEFAULT_CLUSTER_AGENT_CMD_PORT
    cluster_agent_service_name: str = DEFAULT_CLUSTER_AGENT_SERVICE_NAME
    provider: str = ""
    profiles: ProfilesSource = ()

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "SidecarConfig":
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ConfigError("configuration document must be a mapping")
        values: Dict[str, Any] = {}
        keys = {
            "site": ("site", "str"),
            "cluster_name": ("cluster_name", "str"),
            "cluster_agent.cmd_port": ("cluster_agent_cmd_port", "int"),
            "cluster_agent.kubernetes_service_name": ("cluster_agent_service_name", "str"),
            f"{_SIDECAR_PREFIX}.container_registry": ("container_registry", "str"),
            f"{_SIDECAR_PREFIX}.image_name": ("image_name", "str"),
            f"{_SIDECAR_PREFIX}.image_tag": ("image_tag", "str"),
            f"{_SIDECAR_PREFIX}.cluster_agent.enabled": ("cluster_agent_enabled", "bool"),
            f"{_SIDECAR_PREFIX}.provider": ("provider", "str"),
        }
        for dotted, (attr, kind) in keys.items():
            raw = _lookup(data, dotted)
            if raw is not None:
                values[attr] = _coerce(dotted, raw, kind)
        profiles = _lookup(data, f"{_SIDECAR_PREFIX}.profiles")
        if profiles is not None:
            values["profiles"] = _coerce_profiles(profiles)
        return cls(**values)

    def with_env(self, environ: Optional[Mapping[str, str]] = None) -> "SidecarConfig":
        """Overlay ``DD_*`` environment variables on top of this snapshot.

        ``DD_SITE`` is not overlaid here: the template builder reads it as a
        fallback only when ``site`` is empty.
        """

        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for env_name, (attr, kind) in _ENV_KEYS.items():
            raw = env.get(env_name)
            if raw is None or raw == "":
                continue
            values[attr] = _coerce(env_name, raw, kind)
        return replace(self, **values) if values else self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SidecarConfig":
        return cls().with_env(environ)


def load_config(path: Optional[Path], environ: Optional[Mapping[str, str]] = None) -> SidecarConfig:
    """Load a YAML config file (missing file means defaults) and overlay the environment."""

    data: Optional[Mapping[str, Any]] = None
    if path is not None and path.exists():
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle)
        except yaml.YAMLError as exc:
            raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
    return SidecarConfig.from_mapping(data).with_env(environ)


def _lookup(data: Mapping[str, Any], dotted: str) -> Any:
    current: Any = data
    for part in dotted.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def _coerce(key: str, raw: Any, kind: str) -> Any:
    if kind == "int":
        if isinstance(raw, bool):
            raise ConfigError(f"{key} must be an integer, got {raw!r}")
        try:
            return int(raw)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc
    if kind == "bool":
        if isinstance(raw, bool):
            return raw
        text = str(raw).strip().lower()
        if text in ("true", "1", "yes", "on"):
            return True
        if text in ("false", "0", "no", "off", ""):
            return False
        raise ConfigError(f"{key} must be a boolean, got {raw!r}")
    return str(raw)


def _coerce_profiles(raw: Any) -> ProfilesSource:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (list, tuple)):
        return tuple(raw)
    raise ConfigError(f"{_SIDECAR_PREFIX}.profiles must be a JSON string or a list, got {type(raw).__name__}")


__all__ = ["SidecarConfig", "load_config", "DEFAULT_SITE"]
