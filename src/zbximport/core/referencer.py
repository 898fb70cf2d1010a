from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from .base import TemplateBackend
from .models import GroupName, TemplateDefinition, TemplateName


@dataclass
class ReferenceTable:
    """Name to identifier mapping for one import run.

    Groups and templates live in separate namespaces. ``None`` values record
    names that were looked up and not found, so the backend is asked once.
    """
    groups: Dict[GroupName, Optional[str]] = field(default_factory=dict)
    templates: Dict[TemplateName, Optional[str]] = field(default_factory=dict)


class Referencer:
    """Resolves group and template names through a backend, caching per run."""

    def __init__(self, backend: TemplateBackend, table: ReferenceTable | None = None) -> None:
        self._backend = backend
        self.table = table if table is not None else ReferenceTable()

    def preload(self, definitions: Iterable[TemplateDefinition]) -> None:
        """Look up every group and template name mentioned by the batch in bulk."""
        group_names: set[GroupName] = set()
        template_names: set[TemplateName] = set()
        for definition in definitions:
            group_names.update(definition.groups)
            template_names.add(definition.name)
            template_names.update(definition.parents)
        self._fetch_groups(group_names)
        self._fetch_templates(template_names)

    def _fetch_groups(self, names: Iterable[GroupName]) -> None:
        pending = sorted(name for name in set(names) if name not in self.table.groups)
        if not pending:
            return
        found = self._backend.find_group_ids(pending)
        for name in pending:
            self.table.groups[name] = found.get(name)

    def _fetch_templates(self, names: Iterable[TemplateName]) -> None:
        pending = sorted(name for name in set(names) if name not in self.table.templates)
        if not pending:
            return
        found = self._backend.find_template_ids(pending)
        for name in pending:
            self.table.templates[name] = found.get(name)

    def resolve_group(self, name: GroupName) -> str | None:
        if name not in self.table.groups:
            self._fetch_groups([name])
        return self.table.groups.get(name)

    def resolve_template(self, name: TemplateName) -> str | None:
        if name not in self.table.templates:
            self._fetch_templates([name])
        return self.table.templates.get(name)

    def register_template(self, name: TemplateName, template_id: str) -> None:
        """Record a template created during this run."""
        self.table.templates[name] = template_id
