#!/usr/bin/env python3
"""
KUSTOMIZEPB CONDITION EVALUATOR
-------------------------------
Evaluates the closed set of condition variants against live cluster state.

A list of conditions is a logical AND that stops at the first unfulfilled
entry. An operand that cannot be resolved (unknown kind, missing object) is
fatal and raised, never reported as "not fulfilled".

Author: KustomizePB Team
Date: 2026-10-17
"""

import logging
import threading
from typing import Iterable, Optional

from kustomizepb.conditions.template import render_template
from kustomizepb.core.errors import ConditionError, ObjectNotFound, ResourceKindNotFound
from kustomizepb.core.models import (
    Compare,
    Condition,
    CustomResourceDefinitionExists,
    ObjectValue,
    Operand,
    ScalarValue,
    ServiceReady,
)
from kustomizepb.kube.access import ClusterAccessor

logger = logging.getLogger("kustomizepb.conditions")


class ConditionEvaluator:
    """Binds a ClusterAccessor (and an optional cancel event) to condition checks."""

    def __init__(self, accessor: ClusterAccessor, cancel: Optional[threading.Event] = None):
        self.accessor = accessor
        self.cancel = cancel

    def is_fulfilled(self, conditions: Iterable[Condition]) -> bool:
        for condition in conditions:
            if not self.evaluate(condition):
                return False
        return True

    def evaluate(self, condition: Condition) -> bool:
        if isinstance(condition, CustomResourceDefinitionExists):
            names = self.accessor.list_custom_resource_definition_names(cancel=self.cancel)
            fulfilled = condition.name in names
            logger.debug("crd %s exists: %s", condition.name, fulfilled)
            return fulfilled

        if isinstance(condition, ServiceReady):
            fulfilled = self.accessor.is_service_ready(condition.name, condition.namespace, cancel=self.cancel)
            logger.debug("service %s/%s ready: %s", condition.namespace, condition.name, fulfilled)
            return fulfilled

        if isinstance(condition, Compare):
            value = self.resolve(condition.value)
            other = self.resolve(condition.with_)
            logger.debug("compare %r == %r", value, other)
            return value == other

        raise ConditionError(
            f"A condition must specify exactly one check, got {type(condition).__name__}")

    def resolve(self, operand: Operand) -> str:
        """Resolves an operand to the string that takes part in a comparison."""
        if isinstance(operand, ScalarValue):
            return operand.value

        if isinstance(operand, ObjectValue):
            return self._resolve_object_value(operand)

        raise ConditionError(
            f"An operand must be scalarValue or objectValue, got {type(operand).__name__}")

    def _resolve_object_value(self, operand: ObjectValue) -> str:
        resource = self.accessor.resolve_resource_kind(operand.api_version, operand.kind, cancel=self.cancel)
        if resource is None:
            raise ResourceKindNotFound(
                f"Resource apiVersion: {operand.api_version}, kind: {operand.kind} not found")

        document = self.accessor.get_object(resource, operand.namespace, operand.name, cancel=self.cancel)
        if document is None:
            where = f"{operand.namespace}/{operand.name}" if operand.namespace else operand.name
            raise ObjectNotFound(f"{operand.kind} {where} ({operand.api_version}) not found")

        return render_template(operand.template, document)
