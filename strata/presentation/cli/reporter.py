"""
Run Reporter

Architectural Intent:
- Renders run progress and results for humans (text) or machines (json)
- Progress arrives as domain events from the event bus; final results come
  from the use case reports
- Failures are printed with logical id, operation and the underlying
  message verbatim; partial success is shown resource by resource
"""

import json
import sys
from typing import Any, Iterable, Optional, TextIO

from strata.application.dtos.stack_dtos import RunReport, ValidationReport
from strata.application.use_cases.describe_stack import StackDescription
from strata.domain.entities.resource import ResourceStatus
from strata.domain.errors import StrataError, ValidationError
from strata.domain.events.event_base import (
    DomainEvent,
    ResourceTransitioned,
    StackRunCompleted,
    StackRunStarted,
)

_MARKERS = {
    ResourceStatus.SUCCEEDED.value: "[+]",
    ResourceStatus.DELETED.value: "[+]",
    ResourceStatus.FAILED.value: "[-]",
}


class Reporter:
    def __init__(self, fmt: str = "text", stream: Optional[TextIO] = None) -> None:
        if fmt not in ("text", "json"):
            raise ValueError(f"Unknown output format {fmt!r}")
        self.fmt = fmt
        self.stream = stream or sys.stdout

    def _print(self, line: str = "") -> None:
        print(line, file=self.stream)

    def _dump(self, data: Any) -> None:
        print(json.dumps(data, indent=2, default=str), file=self.stream)

    # -- Progress ------------------------------------------------------------

    async def on_event(self, event: DomainEvent) -> None:
        if self.fmt != "text":
            return
        if isinstance(event, StackRunStarted):
            verb = "Destroying" if event.operation == "destroy" else "Applying"
            self._print(f"[*] {verb} stack {event.aggregate_id}: {event.change_count} change(s)")
        elif isinstance(event, ResourceTransitioned):
            marker = _MARKERS.get(event.status, "[*]")
            detail = f" ({event.message})" if event.message else ""
            self._print(f"{marker} {event.logical_id} [{event.kind}] {event.operation}: {event.status}{detail}")
        elif isinstance(event, StackRunCompleted):
            self._print(f"[*] {event.aggregate_id}: {event.status} in {event.duration_seconds:.1f}s")

    # -- Results -------------------------------------------------------------

    def validation(self, report: ValidationReport) -> None:
        if self.fmt == "json":
            self._dump(report.to_dict())
            return
        if not report.valid:
            self.errors(report.errors)
            return
        self._print(f"[+] Stack {report.stack_name} is valid.")
        if report.change_set is not None:
            self._print("[*] Planned changes:")
            for entry in report.change_set:
                note = f" ({entry.reason})" if entry.reason else ""
                self._print(f"    {entry.operation.value:<8} {entry.logical_id} [{entry.kind}]{note}")

    def run(self, report: RunReport) -> None:
        if self.fmt == "json":
            self._dump(report.to_dict())
            return

        self._print()
        self._print(f"Stack {report.stack_name} ({report.operation}): {report.status.value}")
        for entry in report.change_set:
            if not entry.is_actionable:
                self._print(f"    {entry.logical_id:<24} no-op")
        for result in report.results:
            line = f"    {result.logical_id:<24} {result.operation.value:<8} {result.status.value}"
            if result.status == ResourceStatus.FAILED:
                line += f": {result.error_type}: {result.message}"
            elif result.status == ResourceStatus.SKIPPED:
                line += f": {result.message}"
            self._print(line)

        if report.outputs:
            self._print("Outputs:")
            for name, value in report.outputs.items():
                self._print(f"    {name} = {value}")

        if report.success:
            self._print(f"[+] {report.operation.capitalize()} of {report.stack_name} succeeded.")
        else:
            failed = len(report.failed())
            skipped = len(report.skipped())
            self._print(
                f"[-] {report.operation.capitalize()} of {report.stack_name} did not complete: "
                f"{failed} failed, {skipped} skipped."
            )

    def outputs(self, description: StackDescription) -> None:
        if self.fmt == "json":
            self._dump(description.to_dict())
            return
        state = description.state
        if not state.resources:
            self._print(f"[*] Stack {state.stack_name} has no tracked resources.")
        for name, record in state.resources.items():
            self._print(f"    {name:<24} {record.kind:<18} {record.status.value:<10} {record.remote_id or '-'}")
        if description.outputs:
            self._print("Outputs:")
            for name, value in description.outputs.items():
                self._print(f"    {name} = {value}")
        for run in description.runs:
            self._print(f"[*] {run['recorded_at']} {run['operation']}: {run['status']}")

    def errors(self, errors: Iterable[ValidationError]) -> None:
        errors = list(errors)
        if self.fmt == "json":
            self._dump({"valid": False, "errors": [e.to_dict() for e in errors]})
            return
        for error in errors:
            self._print(f"[-] {error}")

    def error(self, error: StrataError) -> None:
        if self.fmt == "json":
            self._dump({"error": type(error).__name__, "message": str(error)})
            return
        self._print(f"[-] {error}")
