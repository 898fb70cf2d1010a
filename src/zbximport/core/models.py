from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, NewType

from .errors import ImportConfigError

TemplateName = NewType("TemplateName", str)  # technical "host" name of a template
GroupName = NewType("GroupName", str)


@dataclass(frozen=True)
class TemplateDefinition:
    """A template as read from a configuration export.

    Attributes:
        name: Technical template name (the API ``host`` field), unique per batch
        visible_name: Optional display name (the API ``name`` field)
        groups: Names of the template groups the template belongs to
        parents: Names of the templates this template is linked to
        properties: Remaining API fields passed through to create/update
    """
    name: TemplateName
    visible_name: str | None = None
    groups: tuple[GroupName, ...] = ()
    parents: tuple[TemplateName, ...] = ()
    properties: Dict[str, Any] = field(default_factory=dict)

    def without_parents(self) -> "TemplateDefinition":
        return TemplateDefinition(
            name=self.name,
            visible_name=self.visible_name,
            groups=self.groups,
            parents=(),
            properties=dict(self.properties),
        )

    def to_payload(
        self,
        group_ids: List[str],
        parent_ids: List[str],
        template_id: str | None = None,
    ) -> Dict[str, Any]:
        """Build the template.create / template.update request body.

        Names are replaced by identifiers; the definition itself is left untouched.
        """
        payload: Dict[str, Any] = dict(self.properties)
        payload["host"] = self.name
        if self.visible_name:
            payload["name"] = self.visible_name
        payload["groups"] = [{"groupid": group_id} for group_id in group_ids]
        if self.parents:
            payload["templates"] = [{"templateid": parent_id} for parent_id in parent_ids]
        if template_id is not None:
            payload["templateid"] = template_id
        return payload


_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}


def coerce_flag(value: Any, option: str) -> bool:
    """Accept real booleans and the string forms produced by --set / env overrides."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ImportConfigError(f"{option} must be a boolean, got {value!r}")


@dataclass(frozen=True)
class ImportOptions:
    """Which import phases are enabled for a run.

    Attributes:
        create_missing_templates: Create templates that do not exist yet
        update_existing_templates: Update templates that already exist
        create_missing_linkage: Keep parent-template links from the export
    """
    create_missing_templates: bool = False
    update_existing_templates: bool = False
    create_missing_linkage: bool = False

    @classmethod
    def from_rules(cls, rules: Mapping[str, Any] | None) -> "ImportOptions":
        """Build options from Zabbix-style import rules.

        Recognised keys are ``templates.createMissing``, ``maps.updateExisting``
        and ``templateLinkage.createMissing``. Absent sections disable the phase.
        """
        rules = rules or {}
        if not isinstance(rules, Mapping):
            raise ImportConfigError("Import rules must be a mapping")

        def flag(section: str, key: str) -> bool:
            block = rules.get(section) or {}
            if not isinstance(block, Mapping):
                raise ImportConfigError(f"Import rule section {section} must be a mapping")
            if key not in block:
                return False
            return coerce_flag(block[key], f"{section}.{key}")

        return cls(
            create_missing_templates=flag("templates", "createMissing"),
            update_existing_templates=flag("maps", "updateExisting"),
            create_missing_linkage=flag("templateLinkage", "createMissing"),
        )


@dataclass
class ImportIteration:
    """What happened to the independent subset extracted in one loop pass."""
    index: int
    created: List[TemplateName] = field(default_factory=list)
    updated: List[TemplateName] = field(default_factory=list)
    skipped: List[TemplateName] = field(default_factory=list)
    created_ids: Dict[TemplateName, str] = field(default_factory=dict)

    @property
    def processed(self) -> List[TemplateName]:
        return [*self.created, *self.updated, *self.skipped]


@dataclass
class ImportReport:
    """Outcome of a complete import run."""
    options: ImportOptions
    iterations: List[ImportIteration] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def created(self) -> List[TemplateName]:
        return [name for it in self.iterations for name in it.created]

    @property
    def updated(self) -> List[TemplateName]:
        return [name for it in self.iterations for name in it.updated]

    @property
    def skipped(self) -> List[TemplateName]:
        return [name for it in self.iterations for name in it.skipped]
