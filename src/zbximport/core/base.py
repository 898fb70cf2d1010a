from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List

from .models import GroupName, TemplateName


class TemplateBackend(ABC):
    """Remote side of an import run.

    Backends look names up in bulk and apply create/update batches. A batch
    call is atomic from the importer's point of view: it either returns or
    raises RemoteOperationError for the whole batch.
    """

    @abstractmethod
    def find_group_ids(self, names: Iterable[GroupName]) -> Dict[GroupName, str]:
        """Return identifiers of the template groups that exist.

        Args:
            names: Group names to look up

        Returns:
            Mapping for the names that were found; missing names are omitted
        """
        ...

    @abstractmethod
    def find_template_ids(self, names: Iterable[TemplateName]) -> Dict[TemplateName, str]:
        """Return identifiers of the templates that exist, keyed by technical name."""
        ...

    @abstractmethod
    def create_templates(self, batch: List[Dict[str, Any]]) -> List[str]:
        """Create templates and return their new ids in input order."""
        ...

    @abstractmethod
    def update_templates(self, batch: List[Dict[str, Any]]) -> None:
        ...

    def close(self) -> None:
        """Release the connection, if any."""
