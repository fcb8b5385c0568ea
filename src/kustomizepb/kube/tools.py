#!/usr/bin/env python3
"""
KUSTOMIZEPB EXTERNAL TOOLS
--------------------------
Thin wrappers around the `kustomize` and `kubectl` executables.

Every invocation goes through run_command(), which polls an optional cancel
event while the child runs and kills it when cancellation is requested.

Author: KustomizePB Team
Date: 2026-10-17
"""

import logging
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from kustomizepb.core.errors import ApplyError, BuildError, InvariantViolation, RunCancelled, ToolError
from kustomizepb.playbook.envsubst import dump_manifest_spec

logger = logging.getLogger("kustomizepb.kube")

POLL_INTERVAL = 0.2


@dataclass
class CommandResult:
    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def error_text(self) -> str:
        detail = self.stderr.decode("utf-8", errors="ignore").strip()
        return detail or self.stdout.decode("utf-8", errors="ignore").strip()


def run_command(args: List[str], cancel: Optional[threading.Event] = None,
                stdin: Optional[bytes] = None, cwd: Optional[str] = None) -> CommandResult:
    """Runs `args` to completion, capturing output. Never raises on a non-zero exit."""
    logger.debug("exec: %s", " ".join(args))
    try:
        proc = subprocess.Popen(
            args,
            stdin=subprocess.PIPE if stdin is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
        )
    except FileNotFoundError as e:
        raise ToolError(f"{args[0]} executable not found") from e

    pending_input = stdin
    try:
        while True:
            if cancel is not None and cancel.is_set():
                raise RunCancelled(f"{args[0]} was cancelled")
            try:
                stdout, stderr = proc.communicate(input=pending_input, timeout=POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                # communicate() keeps the already written input; do not send it twice
                pending_input = None
    except BaseException:
        # the child must not outlive this call
        proc.kill()
        proc.communicate()
        raise

    return CommandResult(returncode=proc.returncode, stdout=stdout or b"", stderr=stderr or b"")


class KustomizeBuilder:
    """
    Renders a kustomization into flat manifests with `kustomize build`.

    kustomize reads its input from a fixed file name in a directory, so the
    spec is written to `output_path` for the duration of the build and
    removed again afterwards.
    """

    def __init__(self, output_path: Path, executable: str = "kustomize"):
        self.output_path = Path(output_path)
        self.executable = executable

    def build(self, manifest_spec: Dict[str, Any], cancel: Optional[threading.Event] = None) -> bytes:
        if self.output_path.exists():
            # pre-flight guarantees the path is free; anything else is a bug
            raise InvariantViolation(f"ASSERT failed, {self.output_path} was pre-validated to not exist")

        self.output_path.write_text(dump_manifest_spec(manifest_spec), encoding="utf-8")
        try:
            result = run_command([self.executable, "build", str(self.output_path.parent)], cancel=cancel)
        finally:
            self.output_path.unlink()

        if not result.ok:
            raise BuildError(f"kustomize build failed: {result.error_text}",
                             returncode=result.returncode, stderr=result.error_text)
        return result.stdout


class KubectlApplier:
    """Applies flat manifests with `kubectl apply -f -`."""

    def __init__(self, kubeconfig: str = "", context: str = "", executable: str = "kubectl"):
        self.kubeconfig = kubeconfig
        self.context = context
        self.executable = executable

    def command(self, *args: str) -> List[str]:
        cmd = [self.executable]
        if self.kubeconfig:
            cmd += ["--kubeconfig", self.kubeconfig]
        if self.context:
            cmd += ["--context", self.context]
        return cmd + list(args)

    def apply(self, manifest: bytes, cancel: Optional[threading.Event] = None) -> None:
        result = run_command(self.command("apply", "-f", "-"), cancel=cancel, stdin=manifest)
        for line in result.stdout.decode("utf-8", errors="ignore").splitlines():
            logger.info("kubectl: %s", line)
        if not result.ok:
            raise ApplyError(f"kubectl apply failed: {result.error_text}",
                             returncode=result.returncode, stderr=result.error_text)
