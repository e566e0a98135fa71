from __future__ import annotations

from urllib.parse import quote


def build_favicon_svg(
    label: str = "tc",
    *,
    background: str = "#0f172a",
    text_color: str = "#fbbf24",
) -> str:
    """Return a square SVG badge with up to two characters."""
    normalized = ((label or "tc").strip() or "tc")[:2]
    font_size = "26" if len(normalized) > 1 else "32"
    return f"""<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 64 64" role="img" aria-label="{normalized} icon">
  <rect width="64" height="64" rx="14" ry="14" fill="{background}" />
  <text x="32" y="40" text-anchor="middle" font-family="'Segoe UI', Inter, sans-serif"
        font-size="{font_size}" font-weight="700" fill="{text_color}">{normalized}</text>
</svg>"""


def favicon_data_url(label: str = "tc") -> str:
    return "data:image/svg+xml," + quote(build_favicon_svg(label))


TROUBLECODE_FAVICON_URL = favicon_data_url()


__all__ = ["build_favicon_svg", "favicon_data_url", "TROUBLECODE_FAVICON_URL"]
