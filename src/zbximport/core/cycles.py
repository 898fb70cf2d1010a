from __future__ import annotations
"""Circular parent-template detection.

Only the first parent of every visited template is followed. A template with
several parents gets each direct parent checked from the top level, but
deeper in the chain a loop reachable only through a second parent is not
reported. Batch ordering in the importer relies on exactly this check.
"""
from typing import List, Mapping, Sequence

from .errors import ImportCycleError
from .models import TemplateDefinition, TemplateName


def find_cycle(
    reference: TemplateName,
    templates: Mapping[TemplateName, TemplateDefinition],
    visited: Sequence[TemplateName],
) -> List[TemplateName] | None:
    """Follow first-parent links from ``reference`` looking for a loop.

    Args:
        reference: Parent template name to inspect
        templates: Every template of the batch, keyed by name
        visited: Names already on the current path, starting with the
            template that owns ``reference``

    Returns:
        The loop, starting and ending with the repeated name
        (e.g. ``[A, B, C, A]``), or None when the chain ends
    """
    path = list(visited)
    current = reference
    while True:
        if current in path:
            loop = path[path.index(current):]
            loop.append(current)
            return loop
        path.append(current)

        definition = templates.get(current)
        if definition is None or not definition.parents:
            return None
        current = definition.parents[0]


def check_circular_references(templates: Mapping[TemplateName, TemplateDefinition]) -> None:
    """Raise ImportCycleError for the first loop found among the templates."""
    for name, definition in templates.items():
        for parent in definition.parents:
            chain = find_cycle(parent, templates, [name])
            if chain:
                raise ImportCycleError(chain)
