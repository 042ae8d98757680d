from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from .config import SidecarConfig
from .errors import InvalidInputError
from .models import ContainerSpec
from .overrides import apply_override_layers, override_layers
from .template import AGENT_SIDECAR_CONTAINER_NAME, NamespaceLookup, build_default_template

logger = logging.getLogger(__name__)


class InjectionState(str, Enum):
    NO_SIDECAR = "NoSidecar"
    ALREADY_PRESENT = "AlreadyPresent"
    BUILDING = "Building"
    INJECTED = "Injected"
    FAILED = "Failed"


@dataclass(frozen=True)
class InjectionResult:
    state: InjectionState
    container: Optional[ContainerSpec] = None

    @property
    def mutated(self) -> bool:
        return self.state is InjectionState.INJECTED


def _pod_containers(pod: Any) -> List[Dict[str, Any]]:
    if pod is None:
        raise InvalidInputError("can't inject agent sidecar into nil pod")
    if not isinstance(pod, dict):
        raise InvalidInputError(f"pod must be a mapping, got {type(pod).__name__}")
    spec = pod.get("spec")
    if spec is None:
        return []
    if not isinstance(spec, dict):
        raise InvalidInputError("pod spec must be a mapping")
    containers = spec.get("containers")
    if containers is None:
        return []
    if not isinstance(containers, list):
        raise InvalidInputError("pod spec.containers must be a list")
    return containers


def has_agent_sidecar(containers: List[Dict[str, Any]]) -> bool:
    return any(
        isinstance(container, dict) and container.get("name") == AGENT_SIDECAR_CONTAINER_NAME
        for container in containers
    )


def build_agent_sidecar(
    config: SidecarConfig,
    namespace_lookup: Optional[NamespaceLookup] = None,
) -> ContainerSpec:
    """Default template, then provider overrides, then profile overrides.

    Profile overrides come last so that operator settings always have the
    final word.
    """

    template = build_default_template(config, namespace_lookup=namespace_lookup)
    return apply_override_layers(template, override_layers(config))


def inject_agent_sidecar(
    pod: Optional[Dict[str, Any]],
    config: SidecarConfig,
    namespace_lookup: Optional[NamespaceLookup] = None,
) -> InjectionResult:
    """Append the agent sidecar to ``pod`` unless it already has one.

    The pod is only touched once the container is fully built; on any error
    it is left as it was and the error propagates.
    """

    containers = _pod_containers(pod)
    if has_agent_sidecar(containers):
        logger.info("skipping agent sidecar injection: agent sidecar already exists")
        return InjectionResult(InjectionState.ALREADY_PRESENT)

    logger.debug("agent sidecar state %s -> %s", InjectionState.NO_SIDECAR.value, InjectionState.BUILDING.value)
    try:
        container = build_agent_sidecar(config, namespace_lookup=namespace_lookup)
    except Exception as exc:
        logger.error("agent sidecar injection failed (state=%s): %s", InjectionState.FAILED.value, exc)
        raise

    containers.append(container.to_dict())
    if pod.get("spec") is None:
        pod["spec"] = {}
    pod["spec"]["containers"] = containers
    logger.info("injected agent sidecar %s into pod %s", container.image, _pod_name(pod))
    return InjectionResult(InjectionState.INJECTED, container)


def _pod_name(pod: Dict[str, Any]) -> str:
    metadata = pod.get("metadata")
    if not isinstance(metadata, dict):
        return "<unnamed>"
    name = metadata.get("name") or metadata.get("generateName") or "<unnamed>"
    namespace = metadata.get("namespace")
    return f"{namespace}/{name}" if namespace else str(name)


__all__ = [
    "InjectionResult",
    "InjectionState",
    "build_agent_sidecar",
    "has_agent_sidecar",
    "inject_agent_sidecar",
]
