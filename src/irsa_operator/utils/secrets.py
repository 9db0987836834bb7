"""Kubernetes secrets and configmaps used as persisted operator state."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Optional, Protocol

from kubernetes import client

from ..constants import FIELD_MANAGER

logger = logging.getLogger(__name__)

KIND_SECRET = "Secret"
KIND_CONFIGMAP = "ConfigMap"


class StateStore(Protocol):
    """Protocol for the Kubernetes objects the orchestrator persists state in."""

    def read(self, kind: str, namespace: str, name: str) -> Optional[dict[str, str]]:
        """Return the object's data, or None if it does not exist."""
        ...

    def create(self, kind: str, namespace: str, name: str, data: dict[str, str]) -> bool:
        """Create the object; return False if it already existed."""
        ...

    def replace(self, kind: str, namespace: str, name: str, data: dict[str, str]) -> None:
        """Overwrite the object's data."""
        ...

    def delete(self, kind: str, namespace: str, name: str) -> None:
        """Delete the object; absent objects are ignored."""
        ...

    def add_finalizer(self, kind: str, namespace: str, name: str, finalizer: str) -> None:
        """Add a finalizer to an object; absent objects are ignored."""
        ...

    def remove_finalizer(self, kind: str, namespace: str, name: str, finalizer: str) -> None:
        """Remove a finalizer from an object; absent objects are ignored."""
        ...


def decode_secret_data(data: Optional[dict[str, str]]) -> dict[str, str]:
    """Decode base64 secret values.

    Values that are not valid base64 are returned unchanged, which covers
    clients that already decoded them.
    """
    decoded = {}
    for key, value in (data or {}).items():
        if isinstance(value, bytes):
            decoded[key] = value.decode("utf-8")
            continue
        try:
            decoded[key] = base64.b64decode(value, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            decoded[key] = value
    return decoded


def get_secret_value(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
    key: str,
) -> str:
    """Get a value from a Kubernetes secret.

    Args:
        api: Kubernetes API client
        namespace: Namespace of the secret
        secret_name: Name of the secret
        key: Key in the secret

    Returns:
        Secret value

    Raises:
        ValueError: If secret or key not found
    """
    try:
        secret = api.read_namespaced_secret(name=secret_name, namespace=namespace)
    except client.exceptions.ApiException as e:
        if e.status == 404:
            raise ValueError(f"Secret '{secret_name}' not found in namespace '{namespace}'") from e
        raise
    data = decode_secret_data(secret.data)
    if key not in data:
        raise ValueError(f"Key '{key}' not found in secret '{secret_name}'")
    return data[key]


class KubernetesStateStore:
    """StateStore backed by the Kubernetes CoreV1 API."""

    def __init__(self, api: client.CoreV1Api) -> None:
        self.api = api

    def read(self, kind: str, namespace: str, name: str) -> Optional[dict[str, str]]:
        try:
            if kind == KIND_SECRET:
                obj = self.api.read_namespaced_secret(name=name, namespace=namespace)
                return decode_secret_data(obj.data)
            obj = self.api.read_namespaced_config_map(name=name, namespace=namespace)
            return dict(obj.data or {})
        except client.exceptions.ApiException as e:
            if e.status == 404:
                return None
            raise

    def _body(self, kind: str, namespace: str, name: str, data: dict[str, str]) -> client.V1Secret | client.V1ConfigMap:
        metadata = client.V1ObjectMeta(
            name=name,
            namespace=namespace,
            labels={"app.kubernetes.io/managed-by": FIELD_MANAGER},
        )
        if kind == KIND_SECRET:
            return client.V1Secret(metadata=metadata, type="Opaque", string_data=data)
        return client.V1ConfigMap(metadata=metadata, data=data)

    def create(self, kind: str, namespace: str, name: str, data: dict[str, str]) -> bool:
        body = self._body(kind, namespace, name, data)
        try:
            if kind == KIND_SECRET:
                self.api.create_namespaced_secret(namespace=namespace, body=body, field_manager=FIELD_MANAGER)
            else:
                self.api.create_namespaced_config_map(namespace=namespace, body=body, field_manager=FIELD_MANAGER)
        except client.exceptions.ApiException as e:
            if e.status == 409:
                logger.info(f"{kind} {namespace}/{name} already exists")
                return False
            raise
        logger.info(f"Created {kind} {namespace}/{name}")
        return True

    def replace(self, kind: str, namespace: str, name: str, data: dict[str, str]) -> None:
        if kind == KIND_SECRET:
            # string_data is merged into data, so stale keys have to be cleared explicitly
            body = {"data": None, "stringData": data}
            self.api.patch_namespaced_secret(name=name, namespace=namespace, body=body, field_manager=FIELD_MANAGER)
        else:
            body = {"data": data}
            self.api.patch_namespaced_config_map(name=name, namespace=namespace, body=body, field_manager=FIELD_MANAGER)
        logger.info(f"Updated {kind} {namespace}/{name}")

    def delete(self, kind: str, namespace: str, name: str) -> None:
        try:
            if kind == KIND_SECRET:
                self.api.delete_namespaced_secret(name=name, namespace=namespace)
            else:
                self.api.delete_namespaced_config_map(name=name, namespace=namespace)
        except client.exceptions.ApiException as e:
            if e.status == 404:
                logger.info(f"{kind} {namespace}/{name} already deleted")
                return
            raise
        logger.info(f"Deleted {kind} {namespace}/{name}")

    def _finalizers(self, kind: str, namespace: str, name: str) -> Optional[list[str]]:
        try:
            if kind == KIND_SECRET:
                obj = self.api.read_namespaced_secret(name=name, namespace=namespace)
            else:
                obj = self.api.read_namespaced_config_map(name=name, namespace=namespace)
        except client.exceptions.ApiException as e:
            if e.status == 404:
                return None
            raise
        return list(obj.metadata.finalizers or [])

    def _patch_finalizers(self, kind: str, namespace: str, name: str, finalizers: list[str]) -> None:
        body = {"metadata": {"finalizers": finalizers}}
        if kind == KIND_SECRET:
            self.api.patch_namespaced_secret(name=name, namespace=namespace, body=body)
        else:
            self.api.patch_namespaced_config_map(name=name, namespace=namespace, body=body)

    def add_finalizer(self, kind: str, namespace: str, name: str, finalizer: str) -> None:
        finalizers = self._finalizers(kind, namespace, name)
        if finalizers is None or finalizer in finalizers:
            return
        self._patch_finalizers(kind, namespace, name, finalizers + [finalizer])

    def remove_finalizer(self, kind: str, namespace: str, name: str, finalizer: str) -> None:
        finalizers = self._finalizers(kind, namespace, name)
        if finalizers is None or finalizer not in finalizers:
            return
        self._patch_finalizers(kind, namespace, name, [f for f in finalizers if f != finalizer])
