import logging

from kubernetes.client import ApiClient
from kubernetes.config.config_exception import ConfigException
from kubernetes.config.incluster_config import load_incluster_config
from kubernetes.config.kube_config import load_kube_config
from kubernetes.dynamic import DynamicClient

from converge.core.settings import Settings


class KubernetesConfigManager:
    """Loads cluster credentials and hands out API clients."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._in_cluster = False
        self._load_config()

    def _load_config(self) -> None:
        try:
            try:
                load_incluster_config()
                self._in_cluster = True
            except ConfigException:
                load_kube_config(
                    config_file=self.settings.K8S_KUBECONFIG or None,
                    context=self.settings.K8S_CONTEXT or None,
                )
        except Exception as e:
            logging.exception(f"Failed to load Kubernetes configuration: {e}")
            raise
        if self._in_cluster:
            logging.info("Using in-cluster Kubernetes configuration.")

    @property
    def in_cluster(self) -> bool:
        return self._in_cluster

    def dynamic_client(self) -> DynamicClient:
        return DynamicClient(ApiClient())
