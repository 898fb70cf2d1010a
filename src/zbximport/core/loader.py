from __future__ import annotations
import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence, Union

import yaml

from .errors import ExportFormatError
from .models import GroupName, TemplateDefinition, TemplateName

PathLike = Union[str, Path]

# Template fields template.create/template.update accept besides host/name/groups/templates.
# Everything else in an export (items, applications, ...) is a sub-resource and is not sent.
_API_FIELDS = ("uuid", "description", "macros", "tags", "vendor_name", "vendor_version")

# Export spelling of usermacro.type
_MACRO_TYPES = {"TEXT": 0, "SECRET_TEXT": 1, "VAULT": 2}


def _names(entries: Any, field_name: str, template: str) -> List[str]:
    """Extract ``name`` values from a list like ``[{name: ...}, ...]``."""
    if entries in (None, ""):
        return []
    if not isinstance(entries, Sequence) or isinstance(entries, (str, bytes)):
        raise ExportFormatError(f'Template "{template}": "{field_name}" must be a list')
    names: List[str] = []
    for entry in entries:
        if isinstance(entry, Mapping):
            value = entry.get("name")
        else:
            value = entry
        if not isinstance(value, str) or not value.strip():
            raise ExportFormatError(f'Template "{template}": every "{field_name}" entry needs a name')
        names.append(value.strip())
    return names


def _macro_type(value: Any, macro: str, template: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and value in _MACRO_TYPES.values():
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.upper() in _MACRO_TYPES:
            return _MACRO_TYPES[text.upper()]
        if text.isdigit() and int(text) in _MACRO_TYPES.values():
            return int(text)
    raise ExportFormatError(f'Template "{template}": macro {macro} has unknown type {value!r}')


def _macros(entries: Any, template: str) -> List[Dict[str, Any]]:
    if not isinstance(entries, Sequence) or isinstance(entries, (str, bytes)):
        raise ExportFormatError(f'Template "{template}": "macros" must be a list')
    macros: List[Dict[str, Any]] = []
    for entry in entries:
        if not isinstance(entry, Mapping) or not entry.get("macro"):
            raise ExportFormatError(f'Template "{template}": every "macros" entry needs a macro')
        macro = dict(entry)
        if "type" in macro:
            macro["type"] = _macro_type(macro["type"], macro["macro"], template)
        macros.append(macro)
    return macros


def _api_properties(raw: Mapping[str, Any], template: str) -> Dict[str, Any]:
    """Pick the template-level fields the API accepts out of an export record."""
    source = dict(raw)
    vendor = source.get("vendor")
    if isinstance(vendor, Mapping):
        # 6.x exports nest vendor fields; the API takes them flat
        source.setdefault("vendor_name", vendor.get("name"))
        source.setdefault("vendor_version", vendor.get("version"))

    properties: Dict[str, Any] = {}
    for key in _API_FIELDS:
        value = source.get(key)
        if value in (None, "", []):
            continue
        properties[key] = value
    if "macros" in properties:
        properties["macros"] = _macros(properties["macros"], template)
    return properties


def parse_template(raw: Mapping[str, Any]) -> TemplateDefinition:
    """Convert one exported template record into a TemplateDefinition.

    Modern exports name the technical field ``template``; older ones and raw
    API payloads use ``host``. When neither is present the visible ``name``
    is used as the technical name.
    """
    if not isinstance(raw, Mapping):
        raise ExportFormatError("Template entries must be mappings")
    technical = raw.get("template") or raw.get("host") or raw.get("name")
    if not isinstance(technical, str) or not technical.strip():
        raise ExportFormatError("Template entry without a technical name (template/host)")
    technical = technical.strip()

    visible = raw.get("name")
    visible_name = visible.strip() if isinstance(visible, str) and visible.strip() != technical else None

    return TemplateDefinition(
        name=TemplateName(technical),
        visible_name=visible_name or None,
        groups=tuple(GroupName(n) for n in _names(raw.get("groups"), "groups", technical)),
        parents=tuple(TemplateName(n) for n in _names(raw.get("templates"), "templates", technical)),
        properties=_api_properties(raw, technical),
    )


def parse_export(document: Any) -> List[TemplateDefinition]:
    """Read templates out of a decoded configuration export.

    Accepts ``{zabbix_export: {templates: [...]}}``, ``{templates: [...]}``
    or a bare list of template records.
    """
    if isinstance(document, Mapping) and "zabbix_export" in document:
        document = document["zabbix_export"] or {}
    if isinstance(document, Mapping):
        document = document.get("templates") or []
    if not isinstance(document, list):
        raise ExportFormatError("Export does not contain a list of templates")
    return [parse_template(entry) for entry in document]


def load_export(path: PathLike) -> List[TemplateDefinition]:
    """Load templates from a YAML or JSON export file."""
    source = Path(path).expanduser()
    try:
        text = source.read_text(encoding="utf-8")
    except OSError as err:
        raise ExportFormatError(f"Cannot read {source}: {err}") from err

    try:
        if source.suffix.lower() == ".json":
            document = json.loads(text)
        else:
            document = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as err:
        raise ExportFormatError(f"Cannot parse {source}: {err}") from err

    return parse_export(document)


def load_exports(paths: Sequence[PathLike]) -> Dict[TemplateName, TemplateDefinition]:
    """Load several exports into one batch; a later file wins on duplicate names."""
    batch: Dict[TemplateName, TemplateDefinition] = {}
    for path in paths:
        for definition in load_export(path):
            batch[definition.name] = definition
    return batch
