"""Agent sidecar injection for the admission controller."""

from .config import SidecarConfig, load_config
from .errors import ConfigError, InjectionError, InvalidInputError
from .injector import InjectionResult, InjectionState, build_agent_sidecar, inject_agent_sidecar
from .models import ContainerSpec, EnvVar, PullPolicy, ResourceRequirements
from .overrides import OverrideSet, apply_override_layers, apply_overrides
from .template import AGENT_SIDECAR_CONTAINER_NAME, build_default_template

__all__ = [
    "AGENT_SIDECAR_CONTAINER_NAME",
    "ConfigError",
    "ContainerSpec",
    "EnvVar",
    "InjectionError",
    "InjectionResult",
    "InjectionState",
    "InvalidInputError",
    "OverrideSet",
    "PullPolicy",
    "ResourceRequirements",
    "SidecarConfig",
    "apply_override_layers",
    "apply_overrides",
    "build_agent_sidecar",
    "build_default_template",
    "inject_agent_sidecar",
    "load_config",
]
