"""
Rollout status inspectors.

Each workload kind defines "rolled out" differently, so the rollout waiter asks
an inspector picked by the object's group/kind. The rules follow
``kubectl rollout status``.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple, Type

from converge.core.errors import RolloutStatusError

ROLLING_UPDATE = "RollingUpdate"
REVISION_ANNOTATION = "deployment.kubernetes.io/revision"
PROGRESS_DEADLINE_EXCEEDED = "ProgressDeadlineExceeded"


def _int(value: Any) -> int:
    return int(value or 0)


def _name(obj: Dict[str, Any]) -> str:
    return str((obj.get("metadata") or {}).get("name", ""))


def _generation_observed(obj: Dict[str, Any]) -> bool:
    metadata = obj.get("metadata") or {}
    status = obj.get("status") or {}
    return _int(metadata.get("generation")) <= _int(status.get("observedGeneration"))


def _strategy_type(spec: Dict[str, Any], key: str) -> str:
    # the API server defaults a missing strategy to RollingUpdate
    return str((spec.get(key) or {}).get("type") or ROLLING_UPDATE)


class StatusViewer(ABC):
    """Decides whether the rollout of one kind of workload is complete."""

    @abstractmethod
    def status(self, obj: Dict[str, Any], revision: int = 0) -> Tuple[str, bool]:
        """Return a human readable status line and whether the rollout is done."""


class DeploymentStatusViewer(StatusViewer):
    def status(self, obj: Dict[str, Any], revision: int = 0) -> Tuple[str, bool]:
        name = _name(obj)
        spec = obj.get("spec") or {}
        status = obj.get("status") or {}

        if revision > 0:
            annotations = (obj.get("metadata") or {}).get("annotations") or {}
            try:
                running = int(annotations.get(REVISION_ANNOTATION, ""))
            except ValueError as e:
                raise RolloutStatusError(
                    f"cannot get the revision of deployment {name!r}: {e}"
                ) from e
            if running != revision:
                raise RolloutStatusError(
                    f"desired revision ({revision}) is different from the running revision ({running})"
                )

        if not _generation_observed(obj):
            return "Waiting for deployment spec update to be observed...", False

        for condition in status.get("conditions") or []:
            if (
                condition.get("type") == "Progressing"
                and condition.get("reason") == PROGRESS_DEADLINE_EXCEEDED
            ):
                raise RolloutStatusError(f"deployment {name!r} exceeded its progress deadline")

        updated = _int(status.get("updatedReplicas"))
        if spec.get("replicas") is not None and updated < _int(spec.get("replicas")):
            return (
                f"Waiting for deployment {name!r} rollout to finish: "
                f"{updated} out of {_int(spec.get('replicas'))} new replicas have been updated...",
                False,
            )
        replicas = _int(status.get("replicas"))
        if replicas > updated:
            return (
                f"Waiting for deployment {name!r} rollout to finish: "
                f"{replicas - updated} old replicas are pending termination...",
                False,
            )
        available = _int(status.get("availableReplicas"))
        if available < updated:
            return (
                f"Waiting for deployment {name!r} rollout to finish: "
                f"{available} of {updated} updated replicas are available...",
                False,
            )
        return f"deployment {name!r} successfully rolled out", True


class DaemonSetStatusViewer(StatusViewer):
    def status(self, obj: Dict[str, Any], revision: int = 0) -> Tuple[str, bool]:
        name = _name(obj)
        spec = obj.get("spec") or {}
        status = obj.get("status") or {}

        if _strategy_type(spec, "updateStrategy") != ROLLING_UPDATE:
            raise RolloutStatusError(
                "rollout status is only available for RollingUpdate strategy type"
            )
        if not _generation_observed(obj):
            return "Waiting for daemon set spec update to be observed...", False

        desired = _int(status.get("desiredNumberScheduled"))
        updated = _int(status.get("updatedNumberScheduled"))
        if updated < desired:
            return (
                f"Waiting for daemon set {name!r} rollout to finish: "
                f"{updated} out of {desired} new pods have been updated...",
                False,
            )
        available = _int(status.get("numberAvailable"))
        if available < desired:
            return (
                f"Waiting for daemon set {name!r} rollout to finish: "
                f"{available} of {desired} updated pods are available...",
                False,
            )
        return f"daemon set {name!r} successfully rolled out", True


class StatefulSetStatusViewer(StatusViewer):
    def status(self, obj: Dict[str, Any], revision: int = 0) -> Tuple[str, bool]:
        spec = obj.get("spec") or {}
        status = obj.get("status") or {}

        if _strategy_type(spec, "updateStrategy") != ROLLING_UPDATE:
            raise RolloutStatusError(
                "rollout status is only available for RollingUpdate strategy type"
            )
        if _int(status.get("observedGeneration")) == 0 or not _generation_observed(obj):
            return "Waiting for statefulset spec update to be observed...", False

        replicas: Optional[int] = spec.get("replicas")
        ready = _int(status.get("readyReplicas"))
        if replicas is not None and ready < replicas:
            return f"Waiting for {replicas - ready} pods to be ready...", False

        rolling = (spec.get("updateStrategy") or {}).get("rollingUpdate") or {}
        partition = rolling.get("partition")
        if partition is not None:
            updated = _int(status.get("updatedReplicas"))
            if replicas is not None and updated < replicas - _int(partition):
                return (
                    "Waiting for partitioned roll out to finish: "
                    f"{updated} out of {replicas - _int(partition)} new pods have been updated...",
                    False,
                )
            return f"partitioned roll out complete: {updated} new pods have been updated...", True

        update_revision = status.get("updateRevision")
        if update_revision != status.get("currentRevision"):
            return (
                "waiting for statefulset rolling update to complete "
                f"{_int(status.get('updatedReplicas'))} pods at revision {update_revision}...",
                False,
            )
        return (
            "statefulset rolling update complete "
            f"{_int(status.get('currentReplicas'))} pods at revision {status.get('currentRevision')}...",
            True,
        )


_VIEWERS: Dict[Tuple[str, str], Type[StatusViewer]] = {
    ("apps", "Deployment"): DeploymentStatusViewer,
    ("extensions", "Deployment"): DeploymentStatusViewer,
    ("apps", "DaemonSet"): DaemonSetStatusViewer,
    ("extensions", "DaemonSet"): DaemonSetStatusViewer,
    ("apps", "StatefulSet"): StatefulSetStatusViewer,
}


def group_kind(obj: Dict[str, Any]) -> Tuple[str, str]:
    api_version = str(obj.get("apiVersion") or "")
    group = api_version.rsplit("/", 1)[0] if "/" in api_version else ""
    return group, str(obj.get("kind") or "")


def status_viewer_for(group: str, kind: str) -> StatusViewer:
    """Return the inspector for ``group``/``kind`` or raise RolloutStatusError."""
    viewer = _VIEWERS.get((group, kind))
    if viewer is None:
        raise RolloutStatusError(f"no status viewer has been implemented for {kind}.{group}")
    return viewer()
