"""Dynamic-client access to one kind of Kubernetes object."""

import logging
from typing import Any, Dict, Optional

from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic import DynamicClient

from converge.core.errors import PermanentError, ResourceGoneError

K8S_BAD_REQUEST = 400
K8S_NOT_FOUND = 404
K8S_GONE = 410
K8S_UNPROCESSABLE = 422

# statuses for manifests the server rejects on validation
NON_RETRYABLE_APPLY_STATUSES = frozenset({K8S_BAD_REQUEST, K8S_UNPROCESSABLE})


class KubernetesResource:
    """
    Reads, server-side-applies and deletes objects of one apiVersion/kind.

    ``get`` satisfies the ResourceFetcher protocol the waiters poll with.
    """

    def __init__(
        self,
        client: DynamicClient,
        api_version: str,
        kind: str,
        namespace: Optional[str] = None,
    ) -> None:
        self.client = client
        self.api_version = api_version
        self.kind = kind
        self._api = client.resources.get(api_version=api_version, kind=kind)
        self.namespace = namespace if self._api.namespaced else None

    @classmethod
    def for_manifest(
        cls, client: DynamicClient, manifest: Dict[str, Any], default_namespace: str
    ) -> "KubernetesResource":
        metadata = manifest.get("metadata") or {}
        return cls(
            client,
            api_version=manifest["apiVersion"],
            kind=manifest["kind"],
            namespace=metadata.get("namespace") or default_namespace,
        )

    def describe(self, name: str) -> str:
        if self.namespace:
            return f"{self.kind} {self.namespace}/{name}"
        return f"{self.kind} {name}"

    def get(self, name: str) -> Dict[str, Any]:
        try:
            obj = self.client.get(self._api, name=name, namespace=self.namespace)
        except ApiException as e:
            if e.status in (K8S_NOT_FOUND, K8S_GONE):
                logging.info(f"{self.describe(name)} no longer exists.")
                raise ResourceGoneError(name) from e
            logging.error(f"Failed to read {self.describe(name)}: {e}")
            raise
        result: Dict[str, Any] = obj.to_dict()
        return result

    def apply(
        self,
        manifest: Dict[str, Any],
        field_manager: str,
        force_conflicts: bool = False,
    ) -> Dict[str, Any]:
        name = manifest["metadata"]["name"]
        try:
            obj = self.client.server_side_apply(
                self._api,
                body=manifest,
                name=name,
                namespace=self.namespace,
                field_manager=field_manager,
                force_conflicts=force_conflicts,
            )
        except ApiException as e:
            if e.status in NON_RETRYABLE_APPLY_STATUSES:
                logging.error(f"{self.describe(name)} was rejected by the server: {e.reason}")
                raise PermanentError(e) from e
            logging.warning(f"Failed to apply {self.describe(name)}: {e}")
            raise
        logging.info(f"{self.describe(name)} applied.")
        result: Dict[str, Any] = obj.to_dict()
        return result

    def delete(self, name: str, propagation_policy: str = "Background") -> None:
        """Request deletion; an object that is already gone counts as deleted."""
        body = {
            "kind": "DeleteOptions",
            "apiVersion": "v1",
            "propagationPolicy": propagation_policy,
        }
        try:
            self.client.delete(self._api, name=name, namespace=self.namespace, body=body)
        except ApiException as e:
            if e.status in (K8S_NOT_FOUND, K8S_GONE):
                logging.info(f"{self.describe(name)} is already deleted.")
                return
            logging.warning(f"Failed to delete {self.describe(name)}: {e}")
            raise
        logging.info(f"{self.describe(name)} deletion requested ({propagation_policy}).")
