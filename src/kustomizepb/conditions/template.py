#!/usr/bin/env python3
"""
KUSTOMIZEPB TEMPLATES
---------------------
Field extraction from live cluster objects for `objectValue` operands.

Templates are Jinja2 and see the whole object document: its top-level keys
are template variables and the document itself is bound as `object`, e.g.

    {{ status.readyReplicas }}
    {{ object.metadata.annotations["example.com/revision"] }}

Fields that are not (yet) present render as an empty string. Booleans and
nulls print the way YAML spells them (`true`, `false`, empty), so they
compare equal to the matching `scalarValue` literal.

Author: KustomizePB Team
Date: 2026-10-17
"""

from functools import lru_cache
from typing import Any, Dict

from jinja2 import ChainableUndefined, Environment, Template, TemplateError

from kustomizepb.core.errors import TemplateEvaluationError
from kustomizepb.core.models import scalar_text


def _finalize(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return scalar_text(value)
    return value


_ENV = Environment(
    undefined=ChainableUndefined,
    autoescape=False,
    keep_trailing_newline=True,
    finalize=_finalize,
)


@lru_cache(maxsize=128)
def _compile(source: str) -> Template:
    return _ENV.from_string(source)


def render_template(source: str, document: Dict[str, Any]) -> str:
    try:
        template = _compile(source)
        return template.render({**document, "object": document})
    except TemplateError as e:
        raise TemplateEvaluationError(f"Error evaluating template {source!r}: {e}") from e
