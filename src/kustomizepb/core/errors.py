#!/usr/bin/env python3
"""
KUSTOMIZEPB ERRORS
------------------
Two families of failure exist in a rollout:

* KnownError and its subclasses are expected, user-facing conditions
  (bad playbook, unmet prerequisite, readiness timeout). The CLI prints
  the message and exits with status 1.
* Everything else (tool failures, malformed cluster responses, template
  bugs) is a fault and propagates untouched.

Author: KustomizePB Team
Date: 2026-10-17
"""

from typing import List


class KnownError(Exception):
    """An expected failure whose message is meant for the user."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


# --- Playbook parsing & validation ---

class ParseError(KnownError):
    pass


class ValidationError(KnownError):
    pass


class InvalidApiVersion(ValidationError):
    pass


class InvalidKind(ValidationError):
    pass


class InvalidComponentName(ValidationError):
    pass


class DuplicateComponentName(ValidationError):
    pass


class MissingDependencyError(ValidationError):
    pass


class DependencyOrderError(ValidationError):
    pass


class PlaybookInvalid(KnownError):
    """Carries every validation error found in a playbook."""

    def __init__(self, errors: List[ValidationError]):
        super().__init__("\n".join(e.message for e in errors))
        self.errors = list(errors)


# --- Substitution ---

class SubstitutionError(KnownError):
    pass


class VariablesFileNotFound(KnownError):
    pass


# --- Conditions ---

class ConditionError(KnownError):
    pass


class ResourceKindNotFound(ConditionError):
    pass


class ObjectNotFound(ConditionError):
    pass


# --- Run ---

class PreflightError(KnownError):
    pass


class PrerequisiteNotFulfilled(KnownError):
    pass


class ReadinessNotFulfilled(KnownError):
    pass


class UnknownNode(KnownError):
    pass


class RunCancelled(Exception):
    """Raised at the next retry/poll boundary after cancellation was requested."""


# --- Faults ---

class ToolError(RuntimeError):
    """An external tool (kustomize, kubectl) failed or could not be started."""

    def __init__(self, message: str, returncode: int = -1, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class BuildError(ToolError):
    pass


class ApplyError(ToolError):
    pass


class ClusterAccessError(RuntimeError):
    pass


class TemplateEvaluationError(RuntimeError):
    pass


class InvariantViolation(AssertionError):
    """A condition that pre-flight checks should have made impossible."""
