"""Raw pod in, JSON patch out: the seam between the admission server and the injector."""

from __future__ import annotations

import copy
import json
from typing import Any, Dict, Optional

import jsonpatch

from .config import SidecarConfig
from .errors import InvalidInputError
from .injector import inject_agent_sidecar
from .template import NamespaceLookup


def decode_pod(raw_pod: bytes) -> Dict[str, Any]:
    try:
        pod = json.loads(raw_pod)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"failed to decode raw pod: {exc}") from exc
    if pod is None:
        raise InvalidInputError("can't inject agent sidecar into nil pod")
    if not isinstance(pod, dict):
        raise InvalidInputError("raw pod must decode to a JSON object")
    return pod


def mutate_pod(
    pod: Dict[str, Any],
    namespace: str,
    config: SidecarConfig,
    namespace_lookup: Optional[NamespaceLookup] = None,
) -> Dict[str, Any]:
    """Return a mutated deep copy of ``pod``; the input is never modified."""

    mutated = copy.deepcopy(pod)
    metadata = mutated.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}
        mutated["metadata"] = metadata
    if not metadata.get("namespace") and namespace:
        # Pods created from a controller may not carry the namespace yet.
        metadata["namespace"] = namespace
    inject_agent_sidecar(mutated, config, namespace_lookup=namespace_lookup)
    return mutated


def mutate(
    raw_pod: bytes,
    namespace: str,
    config: SidecarConfig,
    namespace_lookup: Optional[NamespaceLookup] = None,
) -> bytes:
    """Decode ``raw_pod``, inject the agent sidecar and return an RFC 6902 patch."""

    pod = decode_pod(raw_pod)
    mutated = mutate_pod(pod, namespace, config, namespace_lookup=namespace_lookup)
    patch = jsonpatch.make_patch(pod, mutated)
    return patch.to_string().encode("utf-8")


__all__ = ["decode_pod", "mutate", "mutate_pod"]
