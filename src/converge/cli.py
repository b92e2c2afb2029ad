#!/usr/bin/env python3
"""CLI for applying manifests and waiting for them to converge."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Coroutine, Dict, Optional

import typer
import yaml
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException
from kubernetes.dynamic.exceptions import ResourceNotFoundError

from converge.core.errors import (
    AbortError,
    ApplyError,
    AttributeNotPresentError,
    ConvergeError,
    PathSyntaxError,
    ShapeMismatchError,
    WaiterError,
)
from converge.core.models import (
    DeletePropagation,
    ManifestWaitConfig,
    Operation,
    Timeouts,
    parse_duration,
)
from converge.dependencies import get_dynamic_client, get_settings
from converge.services.apply.workflow import apply_and_wait, delete_and_wait, wait_for
from converge.services.kubernetes.resource import KubernetesResource
from converge.services.waiter.deadline import Deadline

EXIT_FAILED = 1
EXIT_ABORTED = 2
EXIT_BAD_CONFIG = 3


def _load_wait_config(path: Optional[Path], timeout: Optional[str]) -> ManifestWaitConfig:
    config = ManifestWaitConfig.from_yaml(path) if path else ManifestWaitConfig()
    if timeout:
        seconds = parse_duration(timeout)
        config = config.model_copy(
            update={"timeouts": Timeouts(create=seconds, update=seconds, delete=seconds)}
        )
    return config


def _load_manifest(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        manifest = yaml.safe_load(f)
    if not isinstance(manifest, dict) or "kind" not in manifest or "apiVersion" not in manifest:
        raise ValueError(f"{path} does not contain a Kubernetes object")
    if not (manifest.get("metadata") or {}).get("name"):
        raise ValueError(f"{path}: metadata.name is required")
    return manifest


def _run(coro: Coroutine[Any, Any, Any]) -> None:
    try:
        asyncio.run(coro)
    except AbortError as e:
        typer.echo(f"Aborted: {e}", err=True)
        raise typer.Exit(code=EXIT_ABORTED) from e
    except (AttributeNotPresentError, ShapeMismatchError, PathSyntaxError) as e:
        # the wait configuration names a field the object cannot have
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(code=EXIT_BAD_CONFIG) from e
    except (WaiterError, ApplyError) as e:
        typer.echo(f"Failed: {e}", err=True)
        raise typer.Exit(code=EXIT_FAILED) from e
    except (ConvergeError, ApiException) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_FAILED) from e


def create_application() -> typer.Typer:
    """Create Typer application for apply-and-wait."""
    app = typer.Typer(
        name="converge",
        help="Apply Kubernetes manifests and wait until they converge",
    )

    @app.callback()
    def main() -> None:
        logging.basicConfig(
            level=get_settings().LOG_LEVEL,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    @app.command()
    def wait(  # noqa: PLR0913
        kind: str = typer.Argument(..., help="Kind of the object, e.g. Deployment"),
        name: str = typer.Argument(..., help="Name of the object"),
        api_version: str = typer.Option("v1", help="apiVersion of the object, e.g. apps/v1"),
        namespace: str = typer.Option(
            "",
            help="Kubernetes namespace (defaults to value from config.yaml)",
        ),
        config: Optional[Path] = typer.Option(
            None,
            help="YAML file with wait, error_on and timeouts blocks",
            exists=True,
            dir_okay=False,
        ),
        operation: Operation = typer.Option(
            Operation.CREATE, help="Operation whose timeout applies"
        ),
        timeout: Optional[str] = typer.Option(
            None, help="Override the timeout, e.g. '90s' or '5m'"
        ),
    ) -> None:
        """Wait for an existing object to converge."""
        settings = get_settings()
        try:
            wait_config = _load_wait_config(config, timeout)
            client = get_dynamic_client(settings)
            resource = KubernetesResource(
                client, api_version, kind, namespace or settings.K8S_NAMESPACE
            )
        except (ValueError, yaml.YAMLError, ConfigException, ResourceNotFoundError) as e:
            typer.echo(f"Invalid configuration: {e}", err=True)
            raise typer.Exit(code=EXIT_BAD_CONFIG) from e

        deadline = Deadline(wait_config.timeouts.for_operation(operation))
        _run(wait_for(resource, name, wait_config, settings, deadline))
        typer.echo(f"{resource.describe(name)} converged.")

    @app.command()
    def apply(
        filename: Path = typer.Option(
            ...,
            "-f",
            "--filename",
            help="Manifest to apply",
            exists=True,
            dir_okay=False,
        ),
        config: Optional[Path] = typer.Option(
            None,
            help="YAML file with wait, error_on and timeouts blocks",
            exists=True,
            dir_okay=False,
        ),
        operation: Operation = typer.Option(
            Operation.CREATE, help="Operation whose timeout applies"
        ),
    ) -> None:
        """Server-side apply a manifest, then wait for it to converge."""
        settings = get_settings()
        try:
            if operation is Operation.DELETE:
                raise ValueError("apply cannot --operation delete, use the delete command")
            wait_config = _load_wait_config(config, None)
            manifest = _load_manifest(filename)
            client = get_dynamic_client(settings)
            resource = KubernetesResource.for_manifest(client, manifest, settings.K8S_NAMESPACE)
        except (ValueError, yaml.YAMLError, ConfigException, ResourceNotFoundError) as e:
            typer.echo(f"Invalid configuration: {e}", err=True)
            raise typer.Exit(code=EXIT_BAD_CONFIG) from e

        name = manifest["metadata"]["name"]
        _run(
            apply_and_wait(
                lambda: resource.apply(manifest, settings.FIELD_MANAGER, settings.FORCE_CONFLICTS),
                resource,
                name,
                wait_config,
                settings,
                operation=operation,
            )
        )
        typer.echo(f"{resource.describe(name)} applied and converged.")

    @app.command()
    def delete(
        filename: Path = typer.Option(
            ...,
            "-f",
            "--filename",
            help="Manifest of the object to delete",
            exists=True,
            dir_okay=False,
        ),
        config: Optional[Path] = typer.Option(
            None,
            help="YAML file whose timeouts.delete bounds the deletion",
            exists=True,
            dir_okay=False,
        ),
        timeout: Optional[str] = typer.Option(
            None, help="Override the timeout, e.g. '90s' or '5m'"
        ),
        cascade: DeletePropagation = typer.Option(
            DeletePropagation.BACKGROUND, help="Propagation policy for dependents"
        ),
    ) -> None:
        """Delete the object in a manifest and wait until it is gone."""
        settings = get_settings()
        try:
            wait_config = _load_wait_config(config, timeout)
            manifest = _load_manifest(filename)
            client = get_dynamic_client(settings)
            resource = KubernetesResource.for_manifest(client, manifest, settings.K8S_NAMESPACE)
        except (ValueError, yaml.YAMLError, ConfigException, ResourceNotFoundError) as e:
            typer.echo(f"Invalid configuration: {e}", err=True)
            raise typer.Exit(code=EXIT_BAD_CONFIG) from e

        name = manifest["metadata"]["name"]
        _run(
            delete_and_wait(
                lambda: resource.delete(name, cascade.value),
                resource,
                name,
                wait_config,
                settings,
            )
        )
        typer.echo(f"{resource.describe(name)} deleted.")

    return app


app = create_application()

if __name__ == "__main__":
    app()
