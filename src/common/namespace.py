"""Resolve the namespace the injector itself is deployed in."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Optional

NAMESPACE_ENV_VAR = "DD_KUBE_RESOURCES_NAMESPACE"
SERVICE_ACCOUNT_NAMESPACE_FILE = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")
DEFAULT_NAMESPACE = "default"


def resolve_namespace(
    environ: Optional[Mapping[str, str]] = None,
    namespace_file: Path = SERVICE_ACCOUNT_NAMESPACE_FILE,
) -> str:
    """Return the explicit env override, else the service account namespace, else ``default``."""

    env = os.environ if environ is None else environ
    explicit = (env.get(NAMESPACE_ENV_VAR) or "").strip()
    if explicit:
        return explicit
    try:
        from_file = namespace_file.read_text(encoding="utf-8").strip()
    except OSError:
        from_file = ""
    return from_file or DEFAULT_NAMESPACE


@lru_cache(maxsize=None)
def get_my_namespace() -> str:
    return resolve_namespace()


__all__ = ["get_my_namespace", "resolve_namespace", "DEFAULT_NAMESPACE"]
