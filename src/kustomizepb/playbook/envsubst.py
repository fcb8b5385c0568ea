#!/usr/bin/env python3
"""
KUSTOMIZEPB ENVSUBST
--------------------
envsubst-style variable substitution over a component's kustomization.

The kustomization is serialized to YAML text, every variable reference is
replaced, and the text is parsed back. Supported references:

    $VAR  ${VAR}  ${VAR:-default}  ${VAR-default}  $$ (a literal '$')

Unknown variables expand to the empty string.

Author: KustomizePB Team
Date: 2026-10-17
"""

import io
import logging
import re
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Mapping

from dotenv import dotenv_values
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from kustomizepb.core.errors import SubstitutionError, VariablesFileNotFound
from kustomizepb.core.models import Component, Playbook

logger = logging.getLogger("kustomizepb.envsubst")

_REFERENCE = re.compile(r"""
    \$(?:
        (?P<escaped>\$)
      | \{(?P<braced>[A-Za-z_][A-Za-z0-9_]*)(?:(?P<op>:?-)(?P<default>[^}]*))?\}
      | (?P<named>[A-Za-z_][A-Za-z0-9_]*)
      | (?P<invalid>\{)
    )
""", re.VERBOSE)


def _yaml() -> YAML:
    yaml = YAML(typ="safe", pure=True)
    yaml.default_flow_style = False
    yaml.width = 4096
    return yaml


def dump_manifest_spec(spec: Dict[str, Any]) -> str:
    """Canonical text form of a kustomization, also used for the kustomize input file."""
    stream = io.StringIO()
    _yaml().dump(spec, stream)
    return stream.getvalue()


def expand(text: str, variables: Mapping[str, str]) -> str:
    """Replaces every variable reference in `text`."""

    def _replace(match: "re.Match[str]") -> str:
        if match.group("escaped") is not None:
            return "$"
        if match.group("invalid") is not None:
            line = text.count("\n", 0, match.start()) + 1
            raise SubstitutionError(f"Invalid variable reference at line {line}: missing name or closing brace")

        name = match.group("braced") or match.group("named")
        value = variables.get(name)
        op = match.group("op")
        if op == ":-" and not value:
            return match.group("default")
        if op == "-" and value is None:
            return match.group("default")
        if value is None:
            logger.debug("variable %s is not set, substituting empty string", name)
            return ""
        return value

    return _REFERENCE.sub(_replace, text)


def substitute(component: Component, variables: Mapping[str, str]) -> Component:
    """
    Returns the component with its kustomization substituted.

    Components without `envsubst: true` and kustomizations without any
    reference are returned unchanged.
    """
    if not component.substitution_enabled:
        return component

    text = dump_manifest_spec(component.manifest_spec)
    substituted = expand(text, variables)
    if substituted == text:
        return component

    try:
        spec = _yaml().load(substituted)
    except YAMLError as e:
        raise SubstitutionError(
            f"Kustomization of component '{component.name}' is no longer valid after substitution: {e}"
        ) from e

    if spec is None:
        spec = {}
    if not isinstance(spec, dict):
        raise SubstitutionError(
            f"Kustomization of component '{component.name}' is not a mapping after substitution"
        )

    return replace(component, manifest_spec=spec)


def substitute_playbook(playbook: Playbook, variables: Mapping[str, str]) -> Playbook:
    return replace(playbook, components=[substitute(c, variables) for c in playbook.components])


def load_variables(path: str) -> Dict[str, str]:
    """Reads a dotenv file into a substitution mapping."""
    env_file = Path(path)
    if not env_file.is_file():
        raise VariablesFileNotFound(f"envfile {path} doesn't exist")

    values = dotenv_values(env_file)
    return {key: value or "" for key, value in values.items()}
