from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from functools import reduce
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from kubernetes.utils import parse_quantity
from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, ValidationError

from .config import SidecarConfig
from .errors import ConfigError
from .models import ContainerSpec, EnvVar, ResourceRequirements

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverrideSet:
    """One layer of overrides: env vars replaced or appended by name, resources merged per key."""

    env: Tuple[EnvVar, ...] = ()
    requests: Dict[str, str] = field(default_factory=dict)
    limits: Dict[str, str] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.env or self.requests or self.limits)

    def validate(self) -> None:
        seen = set()
        for env_var in self.env:
            if not env_var.name:
                raise ConfigError("override env var with an empty name")
            if env_var.name in seen:
                raise ConfigError(f"override env var {env_var.name!r} is declared more than once")
            seen.add(env_var.name)
        for kind, quantities in (("requests", self.requests), ("limits", self.limits)):
            for resource, quantity in quantities.items():
                _check_quantity(kind, resource, quantity)


def _check_quantity(kind: str, resource: str, quantity: Any) -> None:
    if not resource:
        raise ConfigError(f"resource {kind} override with an empty resource name")
    if isinstance(quantity, bool) or "_" in str(quantity) or str(quantity) != str(quantity).strip():
        raise ConfigError(f"invalid {kind} quantity for {resource}: {quantity!r}")
    try:
        parsed = parse_quantity(quantity)
    except (ValueError, TypeError, ArithmeticError) as exc:
        raise ConfigError(f"invalid {kind} quantity for {resource}: {quantity!r}") from exc
    # Decimal also parses Infinity and NaN.
    if not parsed.is_finite():
        raise ConfigError(f"invalid {kind} quantity for {resource}: {quantity!r}")


def _merge_env(current: Iterable[EnvVar], overrides: Iterable[EnvVar]) -> Tuple[EnvVar, ...]:
    merged: List[EnvVar] = list(current)
    positions = {env_var.name: idx for idx, env_var in enumerate(merged)}
    for env_var in overrides:
        idx = positions.get(env_var.name)
        if idx is None:
            positions[env_var.name] = len(merged)
            merged.append(env_var)
        else:
            merged[idx] = env_var
    return tuple(merged)


def apply_overrides(container: ContainerSpec, overrides: OverrideSet) -> ContainerSpec:
    """Return a copy of ``container`` with ``overrides`` applied.

    Raises ConfigError if the override set is malformed; ``container`` is
    left untouched either way.
    """

    overrides.validate()
    if overrides.is_empty():
        return container
    logger.debug(
        "applying %d env override(s), %d request(s), %d limit(s) to %s",
        len(overrides.env),
        len(overrides.requests),
        len(overrides.limits),
        container.name,
    )
    resources = ResourceRequirements(
        requests={**container.resources.requests, **{k: str(v) for k, v in overrides.requests.items()}},
        limits={**container.resources.limits, **{k: str(v) for k, v in overrides.limits.items()}},
    )
    return replace(container, env=_merge_env(container.env, overrides.env), resources=resources)


def apply_override_layers(container: ContainerSpec, layers: Iterable[OverrideSet]) -> ContainerSpec:
    """Apply each layer in order; a later layer wins over every earlier one."""

    return reduce(apply_overrides, layers, container)


# Providers

PROVIDER_OVERRIDES: Dict[str, OverrideSet] = {
    "fargate": OverrideSet(env=(EnvVar.literal("DD_EKS_FARGATE", "true"),)),
}


def provider_overrides(provider: Optional[str]) -> OverrideSet:
    key = (provider or "").strip().lower()
    if not key:
        return OverrideSet()
    try:
        return PROVIDER_OVERRIDES[key]
    except KeyError:
        raise ConfigError(
            f"unsupported provider {provider!r}; expected one of {sorted(PROVIDER_OVERRIDES)}"
        ) from None


# Profiles


class _SecretKeyRef(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    key: str


class _FieldRef(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    field_path: str = Field(alias="fieldPath")
    api_version: str = Field(default="v1", alias="apiVersion")


class _EnvVarSource(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    secret_key_ref: Optional[_SecretKeyRef] = Field(default=None, alias="secretKeyRef")
    field_ref: Optional[_FieldRef] = Field(default=None, alias="fieldRef")


class EnvVarOverride(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str
    value: Optional[str] = None
    value_from: Optional[_EnvVarSource] = Field(default=None, alias="valueFrom")

    def to_env_var(self) -> EnvVar:
        source = self.value_from
        if source is None:
            return EnvVar.literal(self.name, self.value or "")
        if self.value is not None:
            raise ConfigError(f"env var {self.name!r} sets both value and valueFrom")
        if source.secret_key_ref is not None and source.field_ref is not None:
            raise ConfigError(f"env var {self.name!r} sets both secretKeyRef and fieldRef")
        if source.secret_key_ref is not None:
            ref = source.secret_key_ref
            return EnvVar.from_secret(self.name, ref.name, ref.key)
        if source.field_ref is not None:
            return EnvVar.from_field(self.name, source.field_ref.field_path, source.field_ref.api_version)
        raise ConfigError(f"env var {self.name!r} has an empty valueFrom")


class ResourceOverride(BaseModel):
    model_config = ConfigDict(extra="forbid")

    requests: Dict[str, Union[StrictStr, StrictInt, StrictFloat]] = Field(default_factory=dict)
    limits: Dict[str, Union[StrictStr, StrictInt, StrictFloat]] = Field(default_factory=dict)


class ProfileOverride(BaseModel):
    model_config = ConfigDict(extra="forbid")

    env: List[EnvVarOverride] = Field(default_factory=list)
    resources: Optional[ResourceOverride] = None

    def to_override_set(self) -> OverrideSet:
        resources = self.resources or ResourceOverride()
        return OverrideSet(
            env=tuple(item.to_env_var() for item in self.env),
            requests={name: str(quantity) for name, quantity in resources.requests.items()},
            limits={name: str(quantity) for name, quantity in resources.limits.items()},
        )


def parse_profiles(source: Union[str, Iterable[Mapping[str, Any]], None]) -> OverrideSet:
    """Turn the configured profiles source into a single override set.

    ``source`` is a JSON array string or a sequence of mappings. Only one
    profile is supported; none means no overrides.
    """

    if source is None:
        return OverrideSet()
    if isinstance(source, str):
        if not source.strip():
            return OverrideSet()
        try:
            profiles = json.loads(source)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"profiles are not valid JSON: {exc}") from exc
    else:
        profiles = source
    if not isinstance(profiles, (list, tuple)):
        raise ConfigError("profiles must be a list")
    if not profiles:
        return OverrideSet()
    if len(profiles) > 1:
        raise ConfigError(f"only a single profile is supported, got {len(profiles)}")
    try:
        profile = ProfileOverride.model_validate(profiles[0])
    except ValidationError as exc:
        raise ConfigError(f"invalid profile: {exc}") from exc
    return profile.to_override_set()


def override_layers(config: SidecarConfig) -> List[OverrideSet]:
    """Override layers for ``config`` in application order: provider, then profile."""

    return [provider_overrides(config.provider), parse_profiles(config.profiles)]


__all__ = [
    "OverrideSet",
    "EnvVarOverride",
    "ResourceOverride",
    "ProfileOverride",
    "PROVIDER_OVERRIDES",
    "apply_overrides",
    "apply_override_layers",
    "override_layers",
    "parse_profiles",
    "provider_overrides",
]
