"""Shared clients and process-wide state for handlers."""

from __future__ import annotations

import os
import threading
from typing import Optional

from kubernetes import client, config

from ..metrics import MetricsSink
from ..utils.secrets import KubernetesStateStore

# Set by the cleanup hook; in-flight reconciles stop before their next write
cancel_event = threading.Event()

metrics_sink = MetricsSink(os.getenv("INSTALLATION", ""))

_config_loaded = False
_config_lock = threading.Lock()


def installation() -> str:
    return os.getenv("INSTALLATION", "")


def _load_config() -> None:
    global _config_loaded
    with _config_lock:
        if _config_loaded:
            return
        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config()
        _config_loaded = True


def get_k8s_client() -> client.CustomObjectsApi:
    """Get Kubernetes CustomObjectsApi client.

    Returns:
        CustomObjectsApi instance
    """
    _load_config()
    return client.CustomObjectsApi()


def get_core_client() -> client.CoreV1Api:
    _load_config()
    return client.CoreV1Api()


def get_state_store(api: Optional[client.CoreV1Api] = None) -> KubernetesStateStore:
    """StateStore persisting records and keys as Secrets and ConfigMaps."""
    return KubernetesStateStore(api or get_core_client())
