"""Shared, lazily built collaborators."""

from functools import lru_cache

from kubernetes.dynamic import DynamicClient

from converge.core.settings import Settings
from converge.services.kubernetes.k8s_config import KubernetesConfigManager


@lru_cache()
def get_settings() -> Settings:
    return Settings()


def get_dynamic_client(settings: Settings) -> DynamicClient:
    return KubernetesConfigManager(settings).dynamic_client()
