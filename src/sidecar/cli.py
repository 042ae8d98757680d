from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import typer
import yaml

from .config import SidecarConfig, load_config
from .errors import InjectionError
from .injector import InjectionState, build_agent_sidecar, inject_agent_sidecar
from .template import NamespaceLookup

app = typer.Typer(help="Inject the Datadog agent sidecar into Kubernetes pod specs.")

POD_TEMPLATE_KINDS = ("Deployment", "DaemonSet", "StatefulSet", "ReplicaSet", "Job")


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format="%(levelname)s: %(message)s")


def _load(config_path: Optional[Path]) -> SidecarConfig:
    try:
        return load_config(config_path)
    except InjectionError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _fixed_namespace(namespace: Optional[str]) -> Optional[NamespaceLookup]:
    if namespace is None:
        return None
    return lambda: namespace


def _pod_specs(document: Dict[str, Any]) -> Iterable[Dict[str, Any]]:
    """Yield the pod-shaped objects held by a manifest document."""

    kind = document.get("kind")
    if kind == "Pod":
        yield document
    elif kind in POD_TEMPLATE_KINDS:
        template = (document.get("spec") or {}).get("template")
        if isinstance(template, dict):
            yield template
    elif kind == "CronJob":
        job_spec = ((document.get("spec") or {}).get("jobTemplate") or {}).get("spec") or {}
        template = job_spec.get("template")
        if isinstance(template, dict):
            yield template


def inject_documents(
    documents: List[Any],
    config: SidecarConfig,
    namespace_lookup: Optional[NamespaceLookup] = None,
) -> int:
    injected = 0
    for document in documents:
        if not isinstance(document, dict):
            continue
        for pod in _pod_specs(document):
            result = inject_agent_sidecar(pod, config, namespace_lookup=namespace_lookup)
            if result.state is InjectionState.INJECTED:
                injected += 1
    return injected


@app.command()
def template(
    config: Optional[Path] = typer.Option(
        Path("configs/sidecar.yaml"),
        "--config",
        "-c",
        help="Sidecar configuration file (defaults apply when missing).",
    ),
    namespace: Optional[str] = typer.Option(
        None,
        "--namespace",
        "-n",
        help="Namespace used for the cluster agent URL instead of looking it up.",
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level."),
) -> None:
    """Print the agent sidecar container built from defaults and overrides."""

    _configure_logging(log_level)
    snapshot = _load(config)
    try:
        container = build_agent_sidecar(snapshot, namespace_lookup=_fixed_namespace(namespace))
    except InjectionError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(yaml.safe_dump(container.to_dict(), sort_keys=False), nl=False)


@app.command()
def inject(
    inputs: List[Path] = typer.Option(
        ...,
        "--in",
        "-i",
        help="Manifest file(s) holding pods or workloads with pod templates.",
    ),
    out: Optional[Path] = typer.Option(
        None,
        "--out",
        "-o",
        help="Where to write the mutated manifests (stdout when omitted).",
    ),
    config: Optional[Path] = typer.Option(
        Path("configs/sidecar.yaml"),
        "--config",
        "-c",
        help="Sidecar configuration file (defaults apply when missing).",
    ),
    namespace: Optional[str] = typer.Option(
        None,
        "--namespace",
        "-n",
        help="Namespace used for the cluster agent URL instead of looking it up.",
    ),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level."),
) -> None:
    """Inject the agent sidecar into every pod found in the given manifests."""

    _configure_logging(log_level)
    snapshot = _load(config)
    documents: List[Any] = []
    for path in inputs:
        resolved = path.expanduser().resolve()
        if not resolved.exists():
            raise typer.BadParameter(f"Manifest not found: {resolved}")
        with resolved.open("r", encoding="utf-8") as handle:
            documents.extend(doc for doc in yaml.safe_load_all(handle) if doc is not None)

    try:
        injected = inject_documents(documents, snapshot, namespace_lookup=_fixed_namespace(namespace))
    except InjectionError as exc:
        typer.echo(f"Injection failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    rendered = yaml.safe_dump_all(documents, sort_keys=False)
    if out is None:
        typer.echo(rendered, nl=False)
    else:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(rendered, encoding="utf-8")
        typer.echo(f"Injected agent sidecar into {injected} pod(s). Manifests written to {out.resolve()}")


if __name__ == "__main__":  # pragma: no cover
    app()
