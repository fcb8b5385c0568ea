#!/usr/bin/env python3
"""
KUSTOMIZEPB PLAYBOOK LOADER
---------------------------
Turns the raw playbook document into the in-memory model and performs the
static checks that must pass before anything touches the cluster.

Parsing is structural: broken YAML, wrong field types, or a condition that
does not name exactly one check fail immediately with ParseError.
Validation is exhaustive: every problem is collected and returned together.

Author: KustomizePB Team
Date: 2026-10-17
"""

import logging
import re
from typing import Any, Dict, List, Union

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from kustomizepb.core.errors import (
    DependencyOrderError,
    DuplicateComponentName,
    InvalidApiVersion,
    InvalidComponentName,
    InvalidKind,
    MissingDependencyError,
    ParseError,
    ValidationError,
)
from kustomizepb.core.models import (
    API_VERSION,
    CONDITION_KEYS,
    KIND,
    OPERAND_KEYS,
    Compare,
    Component,
    Condition,
    CustomResourceDefinitionExists,
    ObjectValue,
    Operand,
    Playbook,
    ScalarValue,
    ServiceReady,
    scalar_text,
)

logger = logging.getLogger("kustomizepb.playbook")

DNS1123_SUBDOMAIN_MAX_LENGTH = 253
_DNS1123_LABEL = r"[a-z0-9]([-a-z0-9]*[a-z0-9])?"
DNS1123_SUBDOMAIN_FMT = _DNS1123_LABEL + r"(\." + _DNS1123_LABEL + r")*"
_DNS1123_SUBDOMAIN_RE = re.compile(DNS1123_SUBDOMAIN_FMT)


def _yaml(typ: str = "safe") -> YAML:
    return YAML(typ=typ, pure=True)


# --- Parsing ---

def parse_playbook(data: Union[bytes, str]) -> Playbook:
    """Deserializes a playbook document (YAML or JSON)."""
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ParseError(f"Error parsing yaml: playbook is not valid UTF-8 ({e})") from e

    try:
        doc = _yaml().load(data)
        # Same tree with every scalar left exactly as written
        source = _yaml("base").load(data)
    except YAMLError as e:
        raise ParseError(f"Error parsing yaml: {e}") from e

    if doc is None:
        doc = {}
    _expect(doc, dict, "playbook")

    components_source = _source(source, "components")
    components = [
        _parse_component(raw, _source(components_source, i), f"components[{i}]")
        for i, raw in enumerate(_list(doc, "components", "playbook"))
    ]
    prerequisites_source = _source(source, "prerequisites")
    prerequisites = [
        _parse_condition(raw, _source(prerequisites_source, i), f"prerequisites[{i}]")
        for i, raw in enumerate(_list(doc, "prerequisites", "playbook"))
    ]

    return Playbook(
        api_version=_str(doc, "apiVersion", "playbook"),
        kind=_str(doc, "kind", "playbook"),
        prerequisites=prerequisites,
        components=components,
    )


def _parse_component(raw: Any, source: Any, where: str) -> Component:
    _expect(raw, dict, where)

    depends_on = []
    for i, dep in enumerate(_list(raw, "dependsOn", where)):
        # Both `- name: base` and `- base` are accepted
        if isinstance(dep, dict):
            depends_on.append(_str(dep, "name", f"{where}.dependsOn[{i}]"))
        elif isinstance(dep, str):
            depends_on.append(dep)
        else:
            raise ParseError(f"Error parsing yaml: {where}.dependsOn[{i}] must be a name or a mapping")

    manifest_spec = raw.get("kustomization")
    if manifest_spec is None:
        manifest_spec = {}
    _expect(manifest_spec, dict, f"{where}.kustomization")

    substitution_enabled = raw.get("envsubst", False)
    _expect(substitution_enabled, bool, f"{where}.envsubst")

    apply_source = _source(source, "applyConditions")
    readiness_source = _source(source, "readinessConditions")
    return Component(
        name=_str(raw, "name", where),
        depends_on=depends_on,
        manifest_spec=manifest_spec,
        substitution_enabled=substitution_enabled,
        apply_conditions=[
            _parse_condition(c, _source(apply_source, i), f"{where}.applyConditions[{i}]")
            for i, c in enumerate(_list(raw, "applyConditions", where))
        ],
        readiness_conditions=[
            _parse_condition(c, _source(readiness_source, i), f"{where}.readinessConditions[{i}]")
            for i, c in enumerate(_list(raw, "readinessConditions", where))
        ],
    )


def _parse_condition(raw: Any, source: Any, where: str) -> Condition:
    _expect(raw, dict, where)
    key = _single_key(raw, CONDITION_KEYS, where, "a condition must specify exactly one check")
    message = _str(raw, "message", where)
    body = raw[key]
    _expect(body, dict, f"{where}.{key}")

    if key == "customResourceDefinition":
        return CustomResourceDefinitionExists(name=_str(body, "name", f"{where}.{key}"), message=message)
    if key == "serviceReady":
        return ServiceReady(
            name=_str(body, "name", f"{where}.{key}"),
            namespace=_str(body, "namespace", f"{where}.{key}"),
            message=message,
        )
    body_source = _source(source, key)
    return Compare(
        value=_parse_operand(body.get("value"), _source(body_source, "value"), f"{where}.compare.value"),
        with_=_parse_operand(body.get("with"), _source(body_source, "with"), f"{where}.compare.with"),
        message=message,
    )


def _parse_operand(raw: Any, source: Any, where: str) -> Operand:
    if raw is None:
        raise ParseError(f"Error parsing yaml: {where} is required")
    _expect(raw, dict, where)
    key = _single_key(raw, OPERAND_KEYS, where, "an operand must specify exactly one of scalarValue or objectValue")

    if key == "scalarValue":
        value = raw[key]
        if isinstance(value, (dict, list)):
            raise ParseError(f"Error parsing yaml: scalarValue must be a scalar, got {type(value).__name__}")
        # 3.10 stays "3.10" and 0x1F stays "0x1F"
        text = _source(source, key)
        return ScalarValue(value=text if isinstance(text, str) else scalar_text(value))

    body = raw[key]
    _expect(body, dict, f"{where}.objectValue")
    path = f"{where}.objectValue"
    return ObjectValue(
        api_version=_str(body, "apiVersion", path),
        kind=_str(body, "kind", path),
        namespace=_str(body, "namespace", path),
        name=_str(body, "name", path),
        template=_str(body, "template", path),
    )


def _source(node: Any, key: Union[str, int]) -> Any:
    """Counterpart of node[key] in the untyped tree, None when it has none."""
    if isinstance(node, dict):
        return node.get(key)
    if isinstance(node, list) and isinstance(key, int) and key < len(node):
        return node[key]
    return None


def _single_key(raw: Dict[str, Any], keys, where: str, problem: str) -> str:
    present = [k for k in keys if raw.get(k) is not None]
    if len(present) != 1:
        found = ", ".join(present) if present else "none"
        raise ParseError(f"Invalid {where}: {problem} ({', '.join(keys)}); found: {found}")
    return present[0]


def _expect(value: Any, kind: type, where: str):
    if not isinstance(value, kind):
        raise ParseError(
            f"Error parsing yaml: {where} must be a {kind.__name__}, got {type(value).__name__}"
        )


def _str(raw: Dict[str, Any], key: str, where: str) -> str:
    value = raw.get(key)
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise ParseError(f"Error parsing yaml: {where}.{key} must be a string")
    return scalar_text(value)


def _list(raw: Dict[str, Any], key: str, where: str) -> List[Any]:
    value = raw.get(key)
    if value is None:
        return []
    _expect(value, list, f"{where}.{key}")
    return value


# --- Validation ---

def is_valid_component_name(name: str) -> List[str]:
    """Returns the reasons why `name` is not a DNS-1123 subdomain (empty if valid)."""
    reasons = []
    if len(name) > DNS1123_SUBDOMAIN_MAX_LENGTH:
        reasons.append(f"must be no more than {DNS1123_SUBDOMAIN_MAX_LENGTH} characters")
    if not _DNS1123_SUBDOMAIN_RE.fullmatch(name):
        reasons.append(
            "a lowercase RFC 1123 subdomain must consist of lower case alphanumeric characters, "
            "'-' or '.', and must start and end with an alphanumeric character "
            f"(e.g. 'example.com', regex used for validation is '{DNS1123_SUBDOMAIN_FMT}')"
        )
    return reasons


def validate_playbook(playbook: Playbook) -> List[ValidationError]:
    """
    Collects every static problem in the playbook.

    Dependencies must name a component declared strictly earlier; this is an
    ordering constraint on the document, the engine itself only ever walks
    components in declared order.
    """
    errors: List[ValidationError] = []

    if playbook.api_version != API_VERSION:
        errors.append(InvalidApiVersion(
            f"apiVersion must be '{API_VERSION}', not '{playbook.api_version}'"))

    if playbook.kind != KIND:
        errors.append(InvalidKind(f"kind must be '{KIND}', not '{playbook.kind}'"))

    seen = set()
    for position, component in enumerate(playbook.components):
        reasons = is_valid_component_name(component.name)
        if reasons:
            errors.append(InvalidComponentName(
                f"Invalid component name '{component.name}': {'/'.join(reasons)}"))
        elif component.name in seen:
            errors.append(DuplicateComponentName(
                f"Component name '{component.name}' is used more than once"))
        seen.add(component.name)

        for dependency in component.depends_on:
            index = playbook.index_of(dependency)
            if index < 0:
                errors.append(MissingDependencyError(
                    f"Dependency '{dependency}' of component '{component.name}' is not defined"))
            elif index >= position:
                errors.append(DependencyOrderError(
                    f"Component '{component.name}' must not be before its dependency '{dependency}'"))

    for error in errors:
        logger.debug("validation: %s", error.message)

    return errors
