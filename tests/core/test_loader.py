from __future__ import annotations

import json
from pathlib import Path

import pytest

from zbximport.backends.memory import InMemoryBackend
from zbximport.core.errors import ExportFormatError
from zbximport.core.importer import TemplateImporter
from zbximport.core.loader import load_export, load_exports, parse_export, parse_template
from zbximport.core.models import GroupName, ImportOptions
from zbximport.core.referencer import Referencer

EXPORT_YAML = """
zabbix_export:
  version: '6.4'
  template_groups:
    - uuid: 7df96b18c230490a9a0a9e2307226338
      name: Templates
  templates:
    - uuid: f8f7908280354f2abeed07dc788c3747
      template: 'Linux by Zabbix agent'
      name: 'Linux by Zabbix agent'
      description: 'Official Linux template.'
      templates:
        - name: 'Linux CPU by Zabbix agent'
      groups:
        - name: Templates/Operating systems
      items:
        - name: 'Version of Zabbix agent running'
          key: agent.version
    - template: 'Linux CPU by Zabbix agent'
      name: 'Linux CPU'
      groups:
        - name: Templates/Operating systems
"""


def test_load_yaml_export(tmp_path: Path) -> None:
    path = tmp_path / "linux.yaml"
    path.write_text(EXPORT_YAML)

    templates = load_export(path)

    assert [t.name for t in templates] == ["Linux by Zabbix agent", "Linux CPU by Zabbix agent"]
    linux = templates[0]
    assert linux.visible_name is None
    assert linux.groups == ("Templates/Operating systems",)
    assert linux.parents == ("Linux CPU by Zabbix agent",)
    assert linux.properties["description"] == "Official Linux template."
    assert linux.properties["uuid"] == "f8f7908280354f2abeed07dc788c3747"
    assert "items" not in linux.properties
    assert templates[1].visible_name == "Linux CPU"


def test_load_json_export(tmp_path: Path) -> None:
    path = tmp_path / "export.json"
    path.write_text(json.dumps({"zabbix_export": {"templates": [{"host": "Legacy", "groups": [{"name": "Templates"}]}]}}))

    templates = load_export(path)

    assert templates[0].name == "Legacy"
    assert templates[0].parents == ()


def test_parse_export_accepts_bare_list() -> None:
    templates = parse_export([{"template": "A"}, {"template": "B", "templates": [{"name": "A"}]}])

    assert [t.parents for t in templates] == [(), ("A",)]


def test_parse_template_requires_name() -> None:
    with pytest.raises(ExportFormatError):
        parse_template({"groups": [{"name": "Templates"}]})


def test_parse_template_rejects_bad_group_list() -> None:
    with pytest.raises(ExportFormatError, match="groups"):
        parse_template({"template": "A", "groups": "Templates"})


def test_export_without_templates_list() -> None:
    with pytest.raises(ExportFormatError):
        parse_export({"zabbix_export": {"templates": {"template": "A"}}})


def test_unparseable_file(tmp_path: Path) -> None:
    path = tmp_path / "broken.yaml"
    path.write_text("zabbix_export: [unclosed")

    with pytest.raises(ExportFormatError, match="Cannot parse"):
        load_export(path)


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ExportFormatError, match="Cannot read"):
        load_export(tmp_path / "nope.yaml")


def test_load_exports_later_file_wins(tmp_path: Path) -> None:
    first = tmp_path / "a.yaml"
    first.write_text("templates:\n  - template: A\n    description: first\n")
    second = tmp_path / "b.yaml"
    second.write_text("templates:\n  - template: A\n    description: second\n  - template: B\n")

    batch = load_exports([first, second])

    assert sorted(batch) == ["A", "B"]
    assert batch["A"].properties["description"] == "second"


EXPORT_50_YAML = """
zabbix_export:
  version: '5.0'
  groups:
    - name: Templates
  templates:
    - template: 'Template App Nginx'
      name: 'Template App Nginx'
      groups:
        - name: Templates
      applications:
        - name: Nginx
      items:
        - name: 'Nginx: Service status'
          key: 'net.tcp.service[http]'
          applications:
            - name: Nginx
      macros:
        - macro: '{$NGINX.STUB_STATUS.PORT}'
          value: '80'
        - macro: '{$NGINX.PASSWORD}'
          type: SECRET_TEXT
          description: 'Basic auth password'
      tags:
        - tag: class
          value: software
"""


def test_only_api_fields_reach_the_payload(tmp_path: Path) -> None:
    path = tmp_path / "nginx.yaml"
    path.write_text(EXPORT_50_YAML)
    backend = InMemoryBackend(groups={GroupName("Templates"): "1"})

    templates = load_export(path)
    TemplateImporter(Referencer(backend), backend, ImportOptions(create_missing_templates=True)).import_templates(templates)

    payload = backend.calls[0][1][0]
    assert "applications" not in payload
    assert "items" not in payload
    assert payload["tags"] == [{"tag": "class", "value": "software"}]
    secret = next(m for m in payload["macros"] if m["macro"] == "{$NGINX.PASSWORD}")
    assert secret["type"] == 1
    plain = next(m for m in payload["macros"] if m["macro"] == "{$NGINX.STUB_STATUS.PORT}")
    assert "type" not in plain


@pytest.mark.parametrize(("raw", "expected"), [("TEXT", 0), ("VAULT", 2), ("1", 1), (2, 2)])
def test_macro_type_names_map_to_api_values(raw, expected) -> None:
    template = parse_template({"template": "A", "macros": [{"macro": "{$X}", "type": raw}]})

    assert template.properties["macros"][0]["type"] == expected


def test_unknown_macro_type_rejected() -> None:
    with pytest.raises(ExportFormatError, match="unknown type"):
        parse_template({"template": "A", "macros": [{"macro": "{$X}", "type": "PLAIN"}]})


def test_nested_vendor_block_is_flattened() -> None:
    template = parse_template({"template": "A", "vendor": {"name": "Zabbix", "version": "6.4-0"}})

    assert template.properties == {"vendor_name": "Zabbix", "vendor_version": "6.4-0"}
