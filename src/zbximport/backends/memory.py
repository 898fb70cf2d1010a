from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from zbximport.core.base import TemplateBackend
from zbximport.core.errors import RemoteOperationError
from zbximport.core.models import GroupName, TemplateName


@dataclass
class InMemoryBackend(TemplateBackend):
    """Backend holding groups and templates in dictionaries.

    Every create/update batch is appended to ``calls`` as ``(method, batch)``.
    """
    groups: Dict[GroupName, str] = field(default_factory=dict)
    templates: Dict[TemplateName, str] = field(default_factory=dict)
    payloads: Dict[str, Dict[str, Any]] = field(default_factory=dict)  # templateid -> last payload
    calls: List[tuple[str, List[Dict[str, Any]]]] = field(default_factory=list)
    next_id: int = 10001

    def find_group_ids(self, names: Iterable[GroupName]) -> Dict[GroupName, str]:
        return {name: self.groups[name] for name in names if name in self.groups}

    def find_template_ids(self, names: Iterable[TemplateName]) -> Dict[TemplateName, str]:
        return {name: self.templates[name] for name in names if name in self.templates}

    def create_templates(self, batch: List[Dict[str, Any]]) -> List[str]:
        self.calls.append(("template.create", batch))
        hosts = [payload.get("host") for payload in batch]
        for host in hosts:
            if not host:
                raise RemoteOperationError("template.create", "template without host name")
            if host in self.templates or hosts.count(host) > 1:
                raise RemoteOperationError("template.create", f'Template "{host}" already exists.')
        ids: List[str] = []
        for payload in batch:
            template_id = str(self.next_id)
            self.next_id += 1
            self.templates[TemplateName(payload["host"])] = template_id
            self.payloads[template_id] = dict(payload)
            ids.append(template_id)
        return ids

    def update_templates(self, batch: List[Dict[str, Any]]) -> None:
        self.calls.append(("template.update", batch))
        known = set(self.templates.values())
        for payload in batch:
            if payload.get("templateid") not in known:
                raise RemoteOperationError("template.update", "No permissions to referred object or it does not exist!")
        for payload in batch:
            self.payloads[payload["templateid"]] = dict(payload)


class DryRunBackend(TemplateBackend):
    """Looks names up through another backend but only records changes.

    Created templates get placeholder ids so later passes can resolve them.
    """

    def __init__(self, delegate: TemplateBackend) -> None:
        self.delegate = delegate
        self.calls: List[tuple[str, List[Dict[str, Any]]]] = []
        self._counter = 0

    def find_group_ids(self, names: Iterable[GroupName]) -> Dict[GroupName, str]:
        return self.delegate.find_group_ids(names)

    def find_template_ids(self, names: Iterable[TemplateName]) -> Dict[TemplateName, str]:
        return self.delegate.find_template_ids(names)

    def create_templates(self, batch: List[Dict[str, Any]]) -> List[str]:
        self.calls.append(("template.create", batch))
        ids: List[str] = []
        for _ in batch:
            self._counter += 1
            ids.append(f"dry-run-{self._counter}")
        return ids

    def update_templates(self, batch: List[Dict[str, Any]]) -> None:
        self.calls.append(("template.update", batch))

    def close(self) -> None:
        self.delegate.close()
