#!/usr/bin/env python3
"""
KUSTOMIZEPB RUN LOADING
-----------------------
Pre-flight for a rollout: optionally confirm the target cluster by a known
node, then check the playbook directory, parse and validate the playbook,
substitute variables and verify prerequisites.
Only a playbook that passes all of this becomes a Run.

Author: KustomizePB Team
Date: 2026-10-17
"""

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from kustomizepb.conditions.evaluator import ConditionEvaluator
from kustomizepb.core.errors import (
    PlaybookInvalid,
    PreflightError,
    PrerequisiteNotFulfilled,
    UnknownNode,
)
from kustomizepb.core.models import RunComponent
from kustomizepb.kube.access import ClusterAccessor
from kustomizepb.playbook.envsubst import substitute_playbook
from kustomizepb.playbook.loader import parse_playbook, validate_playbook

logger = logging.getLogger("kustomizepb.run")

PLAYBOOK_FILE_NAME = "kustomizationplaybook.yaml"

# The kustomization generated for each component. kustomize picks this name
# up from the directory, so it must not exist before the run starts.
KUSTOMIZATION_FILE_NAME = "kustomization.yaml"

DEFAULT_PREREQUISITE_MESSAGE = "Prerequisite check failed"


@dataclass
class RunOptions:
    directory: str
    variables: Dict[str, str] = field(default_factory=dict)
    known_node: str = ""


@dataclass
class Run:
    directory: Path
    kustomization_path: Path
    components: List[RunComponent] = field(default_factory=list)

    def get_component(self, name: str) -> Optional[RunComponent]:
        for component in self.components:
            if component.name == name:
                return component
        return None

    def all_components_applied(self) -> bool:
        return all(c.applied for c in self.components)


def check_known_node(accessor: ClusterAccessor, name: str,
                     cancel: Optional[threading.Event] = None) -> None:
    """Guards against pointing at the wrong cluster."""
    if not accessor.has_node(name, cancel=cancel):
        raise UnknownNode(f"The known Node {name} was not found")


def load_run(options: RunOptions, accessor: ClusterAccessor,
             cancel: Optional[threading.Event] = None) -> Run:
    if options.known_node:
        check_known_node(accessor, options.known_node, cancel=cancel)

    directory = Path(options.directory)
    if not directory.exists():
        raise PreflightError(f"Directory {directory} doesn't exist")
    if not directory.is_dir():
        raise PreflightError(f"{directory} is not a directory")

    playbook_file = directory / PLAYBOOK_FILE_NAME
    if not playbook_file.exists():
        raise PreflightError(f"File {playbook_file} doesn't exist")
    if not playbook_file.is_file():
        raise PreflightError(f"Path {playbook_file} is not a regular file")

    kustomization_path = directory / KUSTOMIZATION_FILE_NAME
    if kustomization_path.exists():
        raise PreflightError(f"There is already a file {KUSTOMIZATION_FILE_NAME}, which is not supported")

    playbook = parse_playbook(playbook_file.read_bytes())

    errors = validate_playbook(playbook)
    if errors:
        raise PlaybookInvalid(errors)

    playbook = substitute_playbook(playbook, options.variables)

    evaluator = ConditionEvaluator(accessor, cancel=cancel)
    for prerequisite in playbook.prerequisites:
        if not evaluator.evaluate(prerequisite):
            raise PrerequisiteNotFulfilled(prerequisite.message or DEFAULT_PREREQUISITE_MESSAGE)

    logger.info("loaded playbook %s with %d components", playbook_file, len(playbook.components))
    return Run(
        directory=directory,
        kustomization_path=kustomization_path,
        components=[RunComponent(component=c) for c in playbook.components],
    )
