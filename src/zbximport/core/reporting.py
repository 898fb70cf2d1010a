from __future__ import annotations

import json
from typing import Any, Dict, List

from .models import ImportReport


def _options_dict(report: ImportReport) -> Dict[str, bool]:
    return {
        "create_missing_templates": report.options.create_missing_templates,
        "update_existing_templates": report.options.update_existing_templates,
        "create_missing_linkage": report.options.create_missing_linkage,
    }


def to_dict(report: ImportReport, *, dry_run: bool = False) -> Dict[str, Any]:
    iterations: List[Dict[str, Any]] = [
        {
            "pass": it.index,
            "created": list(it.created),
            "created_ids": dict(it.created_ids),
            "updated": list(it.updated),
            "skipped": list(it.skipped),
        }
        for it in report.iterations
    ]
    return {
        "dry_run": dry_run,
        "options": _options_dict(report),
        "summary": {
            "created": len(report.created),
            "updated": len(report.updated),
            "skipped": len(report.skipped),
            "passes": len(report.iterations),
        },
        "iterations": iterations,
        "duration_ms": report.duration_ms,
    }


def to_json(report: ImportReport, *, dry_run: bool = False) -> str:
    """Convert an import report to pretty-printed JSON."""
    return json.dumps(to_dict(report, dry_run=dry_run), indent=2, default=str)


def summary_line(report: ImportReport) -> str:
    return (
        f"{len(report.created)} created, {len(report.updated)} updated, "
        f"{len(report.skipped)} skipped in {len(report.iterations)} pass(es)"
    )


def to_markdown(report: ImportReport, *, dry_run: bool = False) -> str:
    """Convert an import report to Markdown, one section per pass."""
    title = "# Template Import Report" + (" (dry run)" if dry_run else "")
    lines = [title, f"\n**Summary:** {summary_line(report)}"]
    enabled = [name for name, value in _options_dict(report).items() if value]
    lines.append(f"**Enabled phases:** {', '.join(enabled) or '-'}")
    for it in report.iterations:
        lines.append(f"\n## Pass {it.index}")
        for label, names in (("Created", it.created), ("Updated", it.updated), ("Skipped", it.skipped)):
            if not names:
                continue
            lines.append(f"**{label}:**")
            for name in names:
                suffix = f" (id {it.created_ids[name]})" if name in it.created_ids else ""
                lines.append(f"- {name}{suffix}")
    return "\n".join(lines)
