from __future__ import annotations

from typing import Any, Dict, List

import pytest

from zbximport.backends.memory import InMemoryBackend
from zbximport.core.errors import (
    ImportCycleError,
    RemoteOperationError,
    UnresolvedGroupError,
    UnresolvedTemplateError,
)
from zbximport.core.importer import TemplateImporter
from zbximport.core.models import GroupName, ImportOptions, TemplateDefinition, TemplateName
from zbximport.core.referencer import Referencer

ALL_ON = ImportOptions(
    create_missing_templates=True,
    update_existing_templates=True,
    create_missing_linkage=True,
)


def _tpl(name: str, parents: tuple[str, ...] = (), groups: tuple[str, ...] = ("Templates",), **props: Any) -> TemplateDefinition:
    return TemplateDefinition(
        name=TemplateName(name),
        groups=tuple(GroupName(g) for g in groups),
        parents=tuple(TemplateName(p) for p in parents),
        properties=dict(props),
    )


def _backend(**templates: str) -> InMemoryBackend:
    return InMemoryBackend(
        groups={GroupName("Templates"): "1", GroupName("Templates/Databases"): "2"},
        templates={TemplateName(k.replace("_", " ")): v for k, v in templates.items()},
    )


def _run(backend: InMemoryBackend, templates: List[TemplateDefinition], options: ImportOptions = ALL_ON):
    importer = TemplateImporter(Referencer(backend), backend, options)
    return importer.import_templates(templates)


def test_parent_created_before_child() -> None:
    backend = _backend()

    report = _run(backend, [_tpl("B", parents=("A",)), _tpl("A")])

    assert [it.created for it in report.iterations] == [["A"], ["B"]]
    assert [method for method, _ in backend.calls] == ["template.create", "template.create"]
    a_id = report.iterations[0].created_ids[TemplateName("A")]
    child_payload = backend.calls[1][1][0]
    assert child_payload["host"] == "B"
    assert child_payload["templates"] == [{"templateid": a_id}]
    assert child_payload["groups"] == [{"groupid": "1"}]


def test_templates_without_parents_go_in_first_pass() -> None:
    backend = _backend()

    report = _run(backend, [_tpl("A"), _tpl("B"), _tpl("C", parents=("A", "B"))])

    assert sorted(report.iterations[0].created) == ["A", "B"]
    assert report.iterations[1].created == ["C"]
    assert len(report.iterations) == 2


def test_existing_parent_allows_first_pass() -> None:
    backend = _backend(Template_OS_Linux="500")

    report = _run(backend, [_tpl("Child", parents=("Template OS Linux",))])

    assert len(report.iterations) == 1
    assert report.created == ["Child"]
    assert backend.calls[0][1][0]["templates"] == [{"templateid": "500"}]


def test_existing_templates_are_updated() -> None:
    backend = _backend(A="700")

    report = _run(backend, [_tpl("A", description="new"), _tpl("B", parents=("A",))])

    # B's parent already exists, so both land in the first pass
    assert len(report.iterations) == 1
    assert report.iterations[0].updated == ["A"]
    assert report.iterations[0].created == ["B"]
    assert [method for method, _ in backend.calls] == ["template.create", "template.update"]
    assert backend.calls[0][1][0]["templates"] == [{"templateid": "700"}]
    assert backend.calls[1][1] == [
        {"description": "new", "host": "A", "groups": [{"groupid": "1"}], "templateid": "700"}
    ]


def test_cycle_aborts_before_any_call() -> None:
    backend = _backend()

    with pytest.raises(ImportCycleError) as excinfo:
        _run(backend, [_tpl("A", parents=("B",)), _tpl("B", parents=("C",)), _tpl("C", parents=("A",))])

    assert excinfo.value.chain == ["A", "B", "C", "A"]
    assert backend.calls == []


def test_cycle_detected_even_when_linkage_disabled() -> None:
    backend = _backend()
    options = ImportOptions(create_missing_templates=True)

    with pytest.raises(ImportCycleError):
        _run(backend, [_tpl("A", parents=("B",)), _tpl("B", parents=("A",))], options)

    assert backend.calls == []


def test_unknown_group_fails_batch_without_calls() -> None:
    backend = _backend()

    with pytest.raises(UnresolvedGroupError) as excinfo:
        _run(backend, [_tpl("A"), _tpl("B", groups=("Nope",))])

    assert excinfo.value.group == "Nope"
    assert 'Group "Nope" does not exist' in str(excinfo.value)
    assert backend.calls == []


def test_missing_parent_is_reported() -> None:
    backend = _backend()

    with pytest.raises(UnresolvedTemplateError) as excinfo:
        _run(backend, [_tpl("A"), _tpl("B", parents=("Ghost",))])

    assert excinfo.value.missing == {"B": ["Ghost"]}
    # A was independent and got created before the leftover was detected
    assert backend.templates[TemplateName("A")]


def test_linkage_disabled_drops_parents() -> None:
    backend = _backend()
    options = ImportOptions(create_missing_templates=True, update_existing_templates=True)

    report = _run(backend, [_tpl("B", parents=("A",)), _tpl("A")], options)

    assert len(report.iterations) == 1
    assert sorted(report.created) == ["A", "B"]
    assert all("templates" not in payload for payload in backend.calls[0][1])


def test_create_disabled_skips_new_templates() -> None:
    backend = _backend(A="700")
    options = ImportOptions(update_existing_templates=True, create_missing_linkage=True)

    report = _run(backend, [_tpl("A"), _tpl("New")], options)

    assert report.updated == ["A"]
    assert report.skipped == ["New"]
    assert [method for method, _ in backend.calls] == ["template.update"]


def test_update_disabled_skips_existing_templates() -> None:
    backend = _backend(A="700")
    options = ImportOptions(create_missing_templates=True, create_missing_linkage=True)

    report = _run(backend, [_tpl("A"), _tpl("B", parents=("A",))], options)

    assert report.skipped == ["A"]
    assert report.created == ["B"]
    assert [method for method, _ in backend.calls] == ["template.create"]


def test_sub_resources_are_stripped() -> None:
    backend = _backend()

    _run(backend, [_tpl("A", items=[{"key": "agent.ping"}], screens=[], description="x")])

    payload = backend.calls[0][1][0]
    assert "items" not in payload
    assert "screens" not in payload
    assert payload["description"] == "x"


def test_create_failure_propagates_and_keeps_earlier_passes() -> None:
    class FailingSecondCreate(InMemoryBackend):
        def create_templates(self, batch: List[Dict[str, Any]]) -> List[str]:
            if any(payload["host"] == "B" for payload in batch):
                raise RemoteOperationError("template.create", "boom")
            return super().create_templates(batch)

    backend = FailingSecondCreate(groups={GroupName("Templates"): "1"})

    with pytest.raises(RemoteOperationError, match="boom"):
        _run(backend, [_tpl("A"), _tpl("B", parents=("A",))])

    assert TemplateName("A") in backend.templates
    assert TemplateName("B") not in backend.templates


def test_id_count_mismatch_is_remote_error() -> None:
    class ShortCreate(InMemoryBackend):
        def create_templates(self, batch: List[Dict[str, Any]]) -> List[str]:
            return super().create_templates(batch)[:-1]

    backend = ShortCreate(groups={GroupName("Templates"): "1"})

    with pytest.raises(RemoteOperationError):
        _run(backend, [_tpl("A"), _tpl("B")])


def test_empty_input_rejected() -> None:
    with pytest.raises(ValueError):
        _run(_backend(), [])


def test_progress_messages_are_reported() -> None:
    backend = _backend()
    messages: list[str] = []
    importer = TemplateImporter(Referencer(backend), backend, ALL_ON, progress=messages.append)

    importer.import_templates({TemplateName("A"): _tpl("A")})

    assert any("circular" in message for message in messages)
    assert "Pass 1: creating 1 template(s)" in messages


def test_long_chain_terminates_in_dependency_order() -> None:
    backend = _backend()
    names = [f"T{i}" for i in range(6)]
    templates = [_tpl(name, parents=(names[i - 1],) if i else ()) for i, name in enumerate(names)]

    report = _run(backend, list(reversed(templates)))

    assert [it.created for it in report.iterations] == [[name] for name in names]
