from __future__ import annotations

from typing import Optional, Sequence, Union

from .tiles import TileKey

UrlTemplate = Union[str, Sequence[str]]


def url_from_template(template: Optional[UrlTemplate], key: TileKey) -> Optional[str]:
    """Substitute a tile into a URL template.

    A sequence of templates spreads tiles over several hosts; the template is
    picked by ``abs(x + y) % len(templates)``. Supported placeholders are
    ``{x}``, ``{y}``, ``{z}`` and ``{-y}`` (TMS row).
    """

    if template is None:
        return None
    if not isinstance(template, str):
        templates = [t for t in template if t]
        if not templates:
            return None
        template = templates[abs(key.x + key.y) % len(templates)]
    if template == "":
        return None
    return (
        template.replace("{x}", str(key.x))
        .replace("{y}", str(key.y))
        .replace("{z}", str(key.z))
        .replace("{-y}", str(key.tms_y()))
    )


def is_tile_template(template: Optional[UrlTemplate]) -> bool:
    """True for a template sequence or a string carrying both {x} and {y}."""

    if template is None:
        return False
    if not isinstance(template, str):
        return len([t for t in template if t]) > 0
    return "{x}" in template and ("{y}" in template or "{-y}" in template)


def template_trigger(template: Optional[UrlTemplate]) -> Optional[str]:
    """Collapse a template sequence into a single comparable string."""

    if template is None or isinstance(template, str):
        return template
    return ";".join(template)
