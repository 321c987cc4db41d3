from __future__ import annotations

__all__ = ["DIAGRAM_CONTEXT", "diagram_error"]

DIAGRAM_CONTEXT = "Diagram"


def _clean(value: object, default: str) -> str:
    text = str(value).strip().rstrip(".")
    return text if text else default


def diagram_error(field: str, issue: str, hint: str) -> str:
    """Message for a rejected diagram edit: ``"Diagram / <field>: <issue>. Fix: <hint>."``"""
    return (
        f"{DIAGRAM_CONTEXT} / {_clean(field, 'Unknown')}: "
        f"{_clean(issue, 'unknown issue')}. Fix: {_clean(hint, 'review the diagram and retry')}."
    )
