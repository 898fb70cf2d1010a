from __future__ import annotations
import time
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple, Union

from .base import TemplateBackend
from .cycles import check_circular_references
from .errors import RemoteOperationError, UnresolvedGroupError, UnresolvedTemplateError
from .models import (
    ImportIteration,
    ImportOptions,
    ImportReport,
    TemplateDefinition,
    TemplateName,
)
from .referencer import Referencer

ProgressReporter = Callable[[str], None]
WorkingSet = Dict[TemplateName, TemplateDefinition]
TemplateInput = Union[Mapping[TemplateName, TemplateDefinition], Sequence[TemplateDefinition]]

# Handled by separate import phases (items, triggers, screens...)
SUB_RESOURCE_FIELDS = frozenset({
    "items",
    "triggers",
    "graphs",
    "discovery_rules",
    "httptests",
    "dashboards",
    "screens",
    "valuemaps",
})


def _to_working_set(templates: TemplateInput) -> WorkingSet:
    if isinstance(templates, Mapping):
        return dict(templates)
    working: WorkingSet = {}
    for definition in templates:
        working[definition.name] = definition
    return working


class TemplateImporter:
    """Creates and updates templates in parent-first order.

    Args:
        referencer: Name resolution for the run
        backend: Where create/update batches are sent
        options: Enabled import phases
        progress: Optional callback receiving human-readable steps
    """

    def __init__(
        self,
        referencer: Referencer,
        backend: TemplateBackend,
        options: ImportOptions,
        progress: ProgressReporter | None = None,
    ) -> None:
        self.referencer = referencer
        self.backend = backend
        self.options = options
        self._progress = progress

    def report(self, task: str) -> None:
        if self._progress:
            self._progress(task)

    def import_templates(self, templates: TemplateInput) -> ImportReport:
        """Run the whole import.

        Raises:
            ValueError: No templates were given
            ImportCycleError: Parent links form a loop; nothing was sent
            UnresolvedGroupError: A group of the current batch does not exist
            UnresolvedTemplateError: Templates remain whose parents never resolved
            RemoteOperationError: A create/update batch failed
        """
        started = time.perf_counter()
        working = _to_working_set(templates)
        if not working:
            raise ValueError("No templates to import")

        self.report(f"Checking {len(working)} template(s) for circular references")
        check_circular_references(working)

        working = self._strip(working)
        self.report("Resolving existing groups and templates")
        self.referencer.preload(working.values())

        report = ImportReport(options=self.options)
        while True:
            working, iteration = self._run_iteration(working, len(report.iterations) + 1)
            if iteration is None:
                break
            report.iterations.append(iteration)

        if working:
            missing = {
                name: [p for p in definition.parents if not self.referencer.resolve_template(p)]
                for name, definition in working.items()
            }
            raise UnresolvedTemplateError(missing)

        report.duration_ms = int((time.perf_counter() - started) * 1000)
        return report

    def _strip(self, working: WorkingSet) -> WorkingSet:
        stripped: WorkingSet = {}
        for name, definition in working.items():
            properties = {k: v for k, v in definition.properties.items() if k not in SUB_RESOURCE_FIELDS}
            definition = TemplateDefinition(
                name=definition.name,
                visible_name=definition.visible_name,
                groups=definition.groups,
                parents=definition.parents,
                properties=properties,
            )
            if not self.options.create_missing_linkage:
                definition = definition.without_parents()
            stripped[name] = definition
        return stripped

    def independent_templates(self, working: Mapping[TemplateName, TemplateDefinition]) -> List[TemplateName]:
        """Names whose parent templates all resolve to existing ids."""
        return [
            name
            for name, definition in working.items()
            if all(self.referencer.resolve_template(parent) for parent in definition.parents)
        ]

    def _resolve_payload(self, definition: TemplateDefinition, template_id: str | None) -> Dict[str, Any]:
        group_ids: List[str] = []
        for group in definition.groups:
            group_id = self.referencer.resolve_group(group)
            if not group_id:
                raise UnresolvedGroupError(group, definition.name)
            group_ids.append(group_id)

        parent_ids = [self.referencer.resolve_template(parent) or "" for parent in definition.parents]
        return definition.to_payload(group_ids, parent_ids, template_id=template_id)

    def _run_iteration(
        self,
        working: WorkingSet,
        index: int,
    ) -> Tuple[WorkingSet, ImportIteration | None]:
        independent = self.independent_templates(working)
        if not independent:
            return working, None

        to_create: List[Tuple[TemplateName, Dict[str, Any]]] = []
        to_update: List[Tuple[TemplateName, Dict[str, Any]]] = []
        existing = {name: self.referencer.resolve_template(name) for name in independent}
        for name in independent:
            template_id = existing[name]
            payload = self._resolve_payload(working[name], template_id)
            if template_id:
                to_update.append((name, payload))
            else:
                to_create.append((name, payload))

        iteration = ImportIteration(index=index)

        if to_create and self.options.create_missing_templates:
            self.report(f"Pass {index}: creating {len(to_create)} template(s)")
            new_ids = self.backend.create_templates([payload for _, payload in to_create])
            if len(new_ids) != len(to_create):
                raise RemoteOperationError(
                    "template.create",
                    f"expected {len(to_create)} template id(s), got {len(new_ids)}",
                )
            for (name, _), template_id in zip(to_create, new_ids):
                self.referencer.register_template(name, template_id)
                iteration.created.append(name)
                iteration.created_ids[name] = template_id
        else:
            iteration.skipped.extend(name for name, _ in to_create)

        if to_update and self.options.update_existing_templates:
            self.report(f"Pass {index}: updating {len(to_update)} template(s)")
            self.backend.update_templates([payload for _, payload in to_update])
            iteration.updated.extend(name for name, _ in to_update)
        else:
            iteration.skipped.extend(name for name, _ in to_update)

        remaining = {name: d for name, d in working.items() if name not in existing}
        return remaining, iteration
