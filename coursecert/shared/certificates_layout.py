from __future__ import annotations

from copy import deepcopy

from reportlab.lib.pagesizes import A4, landscape

PAGE_SIZE = landscape(A4)
CONTENT_WIDTH_PT = 600.0

NAME_FONT = ("Helvetica-Bold", 36)
COURSE_FONT = ("Helvetica-Bold", 28)
ID_FONT = ("Helvetica", 8)
TEXT_COLOR = "#000000"
ID_COLOR = "#666666"
ID_LABEL = "Certificate ID"

LINE_HEIGHT_FACTOR = 1.2
# Helvetica ascender as a fraction of the font size
FONT_ASCENT_FACTOR = 0.718

VISIBILITY_KEYS = ("showUserName", "showCourseName", "showCertificateId")
POSITION_KEYS = ("namePosition", "coursePosition", "idPosition")

DEFAULT_POSITIONS: dict[str, dict[str, float]] = {
    "namePosition": {"x": 0.5, "y": 0.52},
    "coursePosition": {"x": 0.5, "y": 0.72},
    "idPosition": {"x": 0.5, "y": 0.95},
}

_GLOBAL_DEFAULTS = {
    "showUserName": True,
    "showCourseName": True,
    "showCertificateId": True,
}

# course templates usually have the course title printed on them
_COURSE_DEFAULTS = {
    "showUserName": True,
    "showCourseName": False,
    "showCertificateId": True,
}


def default_template_config(course_specific: bool = False) -> dict:
    base = _COURSE_DEFAULTS if course_specific else _GLOBAL_DEFAULTS
    config = dict(base)
    config.update(deepcopy(DEFAULT_POSITIONS))
    return config


def _coerce_bool(value, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes", "on"}:
            return True
        if lowered in {"false", "0", "no", "off", ""}:
            return False
        return default
    if isinstance(value, (int, float)):
        return bool(value)
    return default


def _coerce_fraction(value, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(0.0, min(number, 1.0))


def sanitize_template_config(config: dict | None, course_specific: bool = False) -> dict:
    """Return a complete layout config built from a possibly partial one."""
    sanitized = default_template_config(course_specific)
    if not isinstance(config, dict):
        return sanitized
    for key in VISIBILITY_KEYS:
        if key in config:
            sanitized[key] = _coerce_bool(config.get(key), sanitized[key])
    for key in POSITION_KEYS:
        position = config.get(key)
        if not isinstance(position, dict):
            continue
        defaults = DEFAULT_POSITIONS[key]
        sanitized[key] = {
            "x": _coerce_fraction(position.get("x"), defaults["x"]),
            "y": _coerce_fraction(position.get("y"), defaults["y"]),
        }
    return sanitized


def config_needs_normalizing(config: dict | None, course_specific: bool = True) -> bool:
    if not isinstance(config, dict):
        return config is not None
    return sanitize_template_config(config, course_specific) != config
