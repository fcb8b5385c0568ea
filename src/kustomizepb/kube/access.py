#!/usr/bin/env python3
"""
KUSTOMIZEPB CLUSTER ACCESS
--------------------------
The read-only view of the cluster that conditions are evaluated against.

ClusterAccessor is the contract the core depends on. KubectlAccessor
implements it by querying the API server through `kubectl get --raw`, so
the same kubeconfig/context resolution as the apply step is used.

Author: KustomizePB Team
Date: 2026-10-17
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Set

from kustomizepb.core.errors import ClusterAccessError
from kustomizepb.core.models import ResourceIdentifier
from kustomizepb.kube.tools import run_command

logger = logging.getLogger("kustomizepb.kube")

CRD_RESOURCE = ResourceIdentifier("apiextensions.k8s.io", "v1", "customresourcedefinitions", namespaced=False)
ENDPOINTS_RESOURCE = ResourceIdentifier("", "v1", "endpoints")
NODES_RESOURCE = ResourceIdentifier("", "v1", "nodes", namespaced=False)


class ClusterAccessor(ABC):

    @abstractmethod
    def resolve_resource_kind(self, api_version: str, kind: str,
                              cancel: Optional[threading.Event] = None) -> Optional[ResourceIdentifier]:
        """Maps apiVersion + kind to a resource, or None if the server does not serve it."""

    @abstractmethod
    def get_object(self, resource: ResourceIdentifier, namespace: str, name: str,
                   cancel: Optional[threading.Event] = None) -> Optional[Dict[str, Any]]:
        """Full object document, or None if it does not exist."""

    @abstractmethod
    def list_custom_resource_definition_names(self, cancel: Optional[threading.Event] = None) -> Set[str]:
        ...

    @abstractmethod
    def is_service_ready(self, name: str, namespace: str, cancel: Optional[threading.Event] = None) -> bool:
        ...

    @abstractmethod
    def has_node(self, name: str, cancel: Optional[threading.Event] = None) -> bool:
        ...


def split_api_version(api_version: str):
    """'apps/v1' -> ('apps', 'v1'), 'v1' -> ('', 'v1')."""
    if "/" in api_version:
        group, version = api_version.split("/", 1)
        return group, version
    return "", api_version


def find_resource(resource_list: Dict[str, Any], api_version: str, kind: str) -> Optional[ResourceIdentifier]:
    """Looks up `kind` in an APIResourceList discovery document."""
    group, version = split_api_version(api_version)
    for resource in resource_list.get("resources") or []:
        name = resource.get("name", "")
        # subresources such as deployments/status carry the parent kind too
        if "/" in name:
            continue
        if resource.get("kind") == kind:
            return ResourceIdentifier(group, version, name, namespaced=bool(resource.get("namespaced", False)))
    return None


def endpoints_ready(endpoints: Dict[str, Any]) -> bool:
    """True if the first subset of an Endpoints object has at least one ready address."""
    subsets = endpoints.get("subsets") or []
    return bool(subsets) and bool(subsets[0].get("addresses"))


class KubectlAccessor(ClusterAccessor):
    """ClusterAccessor backed by `kubectl get --raw`."""

    def __init__(self, kubeconfig: str = "", context: str = "", executable: str = "kubectl"):
        self.kubeconfig = kubeconfig
        self.context = context
        self.executable = executable

    def _command(self, *args: str) -> List[str]:
        cmd = [self.executable]
        if self.kubeconfig:
            cmd += ["--kubeconfig", self.kubeconfig]
        if self.context:
            cmd += ["--context", self.context]
        return cmd + list(args)

    def get_raw(self, path: str, cancel: Optional[threading.Event] = None) -> Optional[Dict[str, Any]]:
        """GETs an API path; None on 404, ClusterAccessError on any other failure."""
        result = run_command(self._command("get", "--raw", path), cancel=cancel)
        if not result.ok:
            detail = result.error_text
            if "(NotFound)" in detail or "the server could not find the requested resource" in detail:
                logger.debug("not found: %s", path)
                return None
            raise ClusterAccessError(f"GET {path} failed: {detail}")

        try:
            document = json.loads(result.stdout)
        except ValueError as e:
            raise ClusterAccessError(f"GET {path} returned malformed JSON: {e}") from e
        if not isinstance(document, dict):
            raise ClusterAccessError(f"GET {path} returned {type(document).__name__}, expected an object")
        return document

    def resolve_resource_kind(self, api_version, kind, cancel=None):
        group, version = split_api_version(api_version)
        path = f"/apis/{group}/{version}" if group else f"/api/{version}"
        resource_list = self.get_raw(path, cancel=cancel)
        if resource_list is None:
            return None
        return find_resource(resource_list, api_version, kind)

    def get_object(self, resource, namespace, name, cancel=None):
        return self.get_raw(resource.api_path(namespace, name), cancel=cancel)

    def list_custom_resource_definition_names(self, cancel=None):
        crds = self.get_raw(CRD_RESOURCE.api_path(), cancel=cancel) or {}
        return {item.get("metadata", {}).get("name", "") for item in crds.get("items") or []}

    def is_service_ready(self, name, namespace, cancel=None):
        # Endpoints share the name of their Service
        endpoints = self.get_raw(ENDPOINTS_RESOURCE.api_path(namespace, name), cancel=cancel)
        if endpoints is None:
            return False
        return endpoints_ready(endpoints)

    def has_node(self, name, cancel=None):
        return self.get_raw(NODES_RESOURCE.api_path(name=name), cancel=cancel) is not None
