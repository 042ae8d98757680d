from __future__ import annotations

import logging
import os
from typing import Callable, Mapping, Optional

from src.common.namespace import get_my_namespace

from .config import DEFAULT_SITE, SidecarConfig
from .models import ContainerSpec, EnvVar, PullPolicy, ResourceRequirements
from .overrides import OverrideSet, apply_overrides

logger = logging.getLogger(__name__)

AGENT_SIDECAR_CONTAINER_NAME = "datadog-agent"
DATADOG_SECRET_NAME = "datadog-secret"
DEFAULT_MEMORY = "256Mi"
DEFAULT_CPU = "200m"

NamespaceLookup = Callable[[], str]


def resolve_site(config: SidecarConfig, environ: Optional[Mapping[str, str]] = None) -> str:
    if config.site:
        return config.site
    env = os.environ if environ is None else environ
    return env.get("DD_SITE") or DEFAULT_SITE


def cluster_agent_url(service_name: str, namespace: str, port: int) -> str:
    return f"https://{service_name}.{namespace}.svc.cluster.local:{port}"


def build_default_template(
    config: SidecarConfig,
    namespace_lookup: Optional[NamespaceLookup] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ContainerSpec:
    """Build the agent sidecar container before any override is applied.

    Requests equal limits (Guaranteed QoS). ``namespace_lookup`` is only
    called when the cluster agent is enabled.
    """

    default_resources = {"memory": DEFAULT_MEMORY, "cpu": DEFAULT_CPU}
    container = ContainerSpec(
        name=AGENT_SIDECAR_CONTAINER_NAME,
        image=f"{config.container_registry}/{config.image_name}:{config.image_tag}",
        image_pull_policy=PullPolicy.IF_NOT_PRESENT,
        env=(
            EnvVar.from_secret("DD_API_KEY", DATADOG_SECRET_NAME, "api-key"),
            EnvVar.literal("DD_SITE", resolve_site(config, environ)),
            EnvVar.literal("DD_CLUSTER_NAME", config.cluster_name or ""),
            EnvVar.from_field("DD_KUBERNETES_KUBELET_NODENAME", "spec.nodeName"),
        ),
        resources=ResourceRequirements(requests=dict(default_resources), limits=dict(default_resources)),
    )

    if not config.cluster_agent_enabled:
        return container

    namespace = (namespace_lookup or get_my_namespace)()
    url = cluster_agent_url(config.cluster_agent_service_name, namespace, config.cluster_agent_cmd_port)
    logger.debug("Wiring agent sidecar to cluster agent at %s", url)
    cluster_agent_env = OverrideSet(
        env=(
            EnvVar.literal("DD_CLUSTER_AGENT_ENABLED", "true"),
            EnvVar.from_secret("DD_CLUSTER_AGENT_AUTH_TOKEN", DATADOG_SECRET_NAME, "token"),
            EnvVar.literal("DD_CLUSTER_AGENT_URL", url),
            EnvVar.literal("DD_ORCHESTRATOR_EXPLORER_ENABLED", "true"),
        )
    )
    return apply_overrides(container, cluster_agent_env)


__all__ = [
    "AGENT_SIDECAR_CONTAINER_NAME",
    "DATADOG_SECRET_NAME",
    "build_default_template",
    "cluster_agent_url",
    "resolve_site",
]
