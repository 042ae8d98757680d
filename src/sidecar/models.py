from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .errors import ConfigError


class PullPolicy(str, Enum):
    ALWAYS = "Always"
    IF_NOT_PRESENT = "IfNotPresent"
    NEVER = "Never"


@dataclass(frozen=True)
class EnvVar:
    """A container environment variable.

    Exactly one source is set: a literal ``value``, a secret key reference
    (``secret_name`` + ``secret_key``) or a pod field reference
    (``field_path``).
    """

    name: str
    value: Optional[str] = None
    secret_name: Optional[str] = None
    secret_key: Optional[str] = None
    field_path: Optional[str] = None
    api_version: str = "v1"

    def __post_init__(self) -> None:
        has_secret = self.secret_name is not None or self.secret_key is not None
        sources = [self.value is not None, has_secret, self.field_path is not None]
        if sum(sources) != 1:
            raise ConfigError(f"env var {self.name!r} must set exactly one of value, secret or field reference")
        if has_secret and not (self.secret_name and self.secret_key):
            raise ConfigError(f"env var {self.name!r} secret reference needs both a name and a key")

    @classmethod
    def literal(cls, name: str, value: str) -> "EnvVar":
        return cls(name=name, value=value)

    @classmethod
    def from_secret(cls, name: str, secret_name: str, key: str) -> "EnvVar":
        return cls(name=name, secret_name=secret_name, secret_key=key)

    @classmethod
    def from_field(cls, name: str, field_path: str, api_version: str = "v1") -> "EnvVar":
        return cls(name=name, field_path=field_path, api_version=api_version)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name}
        if self.value is not None:
            data["value"] = self.value
        elif self.field_path is not None:
            data["valueFrom"] = {
                "fieldRef": {"apiVersion": self.api_version, "fieldPath": self.field_path},
            }
        else:
            data["valueFrom"] = {
                "secretKeyRef": {"name": self.secret_name, "key": self.secret_key},
            }
        return data


@dataclass(frozen=True)
class ResourceRequirements:
    requests: Dict[str, str] = field(default_factory=dict)
    limits: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        data: Dict[str, Dict[str, str]] = {}
        if self.requests:
            data["requests"] = dict(self.requests)
        if self.limits:
            data["limits"] = dict(self.limits)
        return data


@dataclass(frozen=True)
class ContainerSpec:
    name: str
    image: str
    image_pull_policy: PullPolicy = PullPolicy.IF_NOT_PRESENT
    env: Tuple[EnvVar, ...] = ()
    resources: ResourceRequirements = field(default_factory=ResourceRequirements)

    def get_env(self, name: str) -> Optional[EnvVar]:
        for env_var in self.env:
            if env_var.name == name:
                return env_var
        return None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "image": self.image,
            "imagePullPolicy": self.image_pull_policy.value,
        }
        if self.env:
            data["env"] = [env_var.to_dict() for env_var in self.env]
        resources = self.resources.to_dict()
        if resources:
            data["resources"] = resources
        return data


__all__ = ["PullPolicy", "EnvVar", "ResourceRequirements", "ContainerSpec"]
