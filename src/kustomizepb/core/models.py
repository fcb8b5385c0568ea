#!/usr/bin/env python3
"""
KUSTOMIZEPB CORE MODELS
-----------------------
Defines the fundamental data structures used across the rollout engine.
A Playbook is parsed once, rewritten at most once by variable substitution,
and then only read. RunComponent is the single piece of mutable state and
lives for exactly one run.

Author: KustomizePB Team
Date: 2026-10-17
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

API_VERSION = "kustomizeplaybook.world-direct.at/v1beta1"
KIND = "KustomizationPlaybook"


def scalar_text(value: Any) -> str:
    """String form of a scalar as YAML spells it: true/false for booleans, empty for null."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# --- Operands ---

@dataclass(frozen=True)
class ScalarValue:
    """A literal operand, already rendered to its string form."""
    value: str


@dataclass(frozen=True)
class ObjectValue:
    """
    An operand read from a live cluster object.

    The template is evaluated against the full object document, so nested
    fields such as status.readyReplicas are reachable.
    """
    api_version: str
    kind: str
    namespace: str
    name: str
    template: str


Operand = Union[ScalarValue, ObjectValue]


# --- Conditions ---

@dataclass(frozen=True)
class CustomResourceDefinitionExists:
    name: str
    message: str = ""


@dataclass(frozen=True)
class ServiceReady:
    name: str
    namespace: str
    message: str = ""


@dataclass(frozen=True)
class Compare:
    value: Operand
    with_: Operand
    message: str = ""


Condition = Union[CustomResourceDefinitionExists, ServiceReady, Compare]

# Document keys of each condition variant, in the order they are reported.
CONDITION_KEYS = ("customResourceDefinition", "serviceReady", "compare")
OPERAND_KEYS = ("scalarValue", "objectValue")


# --- Playbook ---

@dataclass
class Component:
    """One unit of rollout: a kustomization plus the gates around applying it."""
    name: str
    depends_on: List[str] = field(default_factory=list)
    manifest_spec: Dict[str, Any] = field(default_factory=dict)  # forwarded verbatim to kustomize
    substitution_enabled: bool = False
    apply_conditions: List[Condition] = field(default_factory=list)
    readiness_conditions: List[Condition] = field(default_factory=list)


@dataclass
class Playbook:
    api_version: str = ""
    kind: str = ""
    prerequisites: List[Condition] = field(default_factory=list)
    components: List[Component] = field(default_factory=list)

    def index_of(self, name: str) -> int:
        """Position of the first component named `name`, or -1."""
        for i, component in enumerate(self.components):
            if component.name == name:
                return i
        return -1


# --- Cluster addressing ---

@dataclass(frozen=True)
class ResourceIdentifier:
    """Group/version/resource triple of a cluster resource kind."""
    group: str
    version: str
    resource: str
    namespaced: bool = True

    def api_path(self, namespace: str = "", name: str = "") -> str:
        """REST path of the collection, or of a single object when `name` is set."""
        base = f"/apis/{self.group}/{self.version}" if self.group else f"/api/{self.version}"
        if namespace and self.namespaced:
            base += f"/namespaces/{namespace}"
        path = f"{base}/{self.resource}"
        return f"{path}/{name}" if name else path


# --- Run state ---

@dataclass
class RunComponent:
    """A Component plus the status flags owned by the engine for one run."""
    component: Component
    applied: bool = False
    ready: bool = False

    @property
    def name(self) -> str:
        return self.component.name
