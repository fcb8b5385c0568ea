"""In-memory stand-ins for the cluster and the external tools."""

from typing import Any, Dict, List, Optional, Set, Tuple

from kustomizepb.core.errors import ApplyError
from kustomizepb.core.models import ResourceIdentifier
from kustomizepb.kube.access import ClusterAccessor


class FakeAccessor(ClusterAccessor):
    """
    Cluster state is plain data: `kinds` maps (apiVersion, kind) to a
    resource, `objects` maps (resource name, namespace, name) to a document.
    """

    def __init__(self):
        self.kinds: Dict[Tuple[str, str], ResourceIdentifier] = {}
        self.objects: Dict[Tuple[str, str, str], Dict[str, Any]] = {}
        self.crds: Set[str] = set()
        self.ready_services: Set[Tuple[str, str]] = set()
        self.nodes: Set[str] = set()
        self.calls: List[str] = []

    def add_object(self, api_version: str, kind: str, resource: str, document: Dict[str, Any]):
        group, _, version = api_version.rpartition("/")
        identifier = ResourceIdentifier(group, version, resource)
        self.kinds[(api_version, kind)] = identifier
        metadata = document.get("metadata", {})
        self.objects[(resource, metadata.get("namespace", ""), metadata["name"])] = document
        return identifier

    def resolve_resource_kind(self, api_version, kind, cancel=None):
        self.calls.append(f"resolve {api_version} {kind}")
        return self.kinds.get((api_version, kind))

    def get_object(self, resource, namespace, name, cancel=None):
        self.calls.append(f"get {resource.resource} {namespace}/{name}")
        return self.objects.get((resource.resource, namespace, name))

    def list_custom_resource_definition_names(self, cancel=None):
        self.calls.append("crds")
        return set(self.crds)

    def is_service_ready(self, name, namespace, cancel=None):
        self.calls.append(f"service {namespace}/{name}")
        return (namespace, name) in self.ready_services

    def has_node(self, name, cancel=None):
        self.calls.append(f"node {name}")
        return name in self.nodes


class FakeBuilder:
    def __init__(self):
        self.specs: List[Dict[str, Any]] = []

    def build(self, manifest_spec, cancel=None) -> bytes:
        self.specs.append(manifest_spec)
        return b"kind: ConfigMap\n"


class FakeApplier:
    """Fails the first `failures` applies, then succeeds."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.attempts = 0
        self.applied: List[bytes] = []

    def apply(self, manifest, cancel=None):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ApplyError(f"apply attempt {self.attempts} failed", returncode=1)
        self.applied.append(manifest)


class SleepRecorder:
    def __init__(self, on_sleep: Optional[Any] = None):
        self.sleeps: List[float] = []
        self.on_sleep = on_sleep

    def __call__(self, seconds):
        self.sleeps.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep(len(self.sleeps))
