from typing import Any, Dict, Iterable, List


def format_validation_errors(errors: Iterable[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Flatten pydantic error dicts to JSON-safe ``{"field", "message"}`` pairs."""
    formatted = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        formatted.append({
            "field": ".".join(loc) or "request",
            "message": str(err.get("msg", "Invalid value")),
        })
    return formatted
