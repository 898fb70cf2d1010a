from __future__ import annotations
from typing import Mapping, Sequence


class TemplateImportError(Exception):
    """Base class for every failure that aborts an import run."""


class ImportConfigError(TemplateImportError):
    """Invalid import rules or connection settings."""


class ExportFormatError(TemplateImportError):
    """The configuration export could not be parsed into templates."""


class ImportCycleError(TemplateImportError):
    """Templates reference each other as parents in a loop.

    Attributes:
        chain: Template names forming the loop, first name repeated at the end
    """

    def __init__(self, chain: Sequence[str]) -> None:
        self.chain = list(chain)
        super().__init__(f'Circular reference in templates: "{"->".join(self.chain)}".')


class UnresolvedReferenceError(TemplateImportError):
    """A name could not be mapped to an existing identifier."""


class UnresolvedGroupError(UnresolvedReferenceError):
    def __init__(self, group: str, template: str | None = None) -> None:
        self.group = group
        self.template = template
        message = f'Group "{group}" does not exist.'
        if template:
            message = f'Group "{group}" does not exist (referenced by template "{template}").'
        super().__init__(message)


class UnresolvedTemplateError(UnresolvedReferenceError):
    """Templates left over because some parent never became resolvable.

    Attributes:
        missing: Leftover template name -> parent names that did not resolve
    """

    def __init__(self, missing: Mapping[str, Sequence[str]]) -> None:
        self.missing = {name: list(parents) for name, parents in missing.items()}
        parts = [
            f'"{name}" (missing: {", ".join(parents) or "-"})'
            for name, parents in sorted(self.missing.items())
        ]
        super().__init__("Cannot import templates with unresolved parent templates: " + "; ".join(parts))


class RemoteOperationError(TemplateImportError):
    """A Zabbix API call failed.

    Attributes:
        method: API method name, e.g. ``template.create``
        cause: The error raised by the API client, if any
    """

    def __init__(self, method: str, message: str, cause: BaseException | None = None) -> None:
        self.method = method
        self.cause = cause
        super().__init__(f"{method} failed: {message}")
