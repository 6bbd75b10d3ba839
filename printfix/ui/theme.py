"""
printfix visual design system.

All colors, styles, and icons as named constants.
Import from here — never hardcode markup strings in other modules.

One 24-bit palette; Windows Terminal, conhost and PowerShell ISE all
render it. Rich downgrades it on legacy consoles.
"""

from rich.style import Style
from rich.theme import Theme


# ── Color palette ─────────────────────────────────────────────────────────────

COLOR_ERROR    = "#E05252"      # Warm severity red
COLOR_WARNING  = "#D4870A"      # Amber
COLOR_SUCCESS  = "#4DBD74"      # Calm sage-green
COLOR_INFO     = "#5BA3C9"      # Slate blue
COLOR_BRAND    = "#7B9FD4"      # Periwinkle blue
COLOR_DIM      = "#787878"      # Medium gray
COLOR_TEXT     = "#F0F0F0"      # Primary text — near-white


# ── Rich styles ───────────────────────────────────────────────────────────────

STYLE_ERROR   = Style(color=COLOR_ERROR,   bold=True)
STYLE_WARNING = Style(color=COLOR_WARNING, bold=True)
STYLE_SUCCESS = Style(color=COLOR_SUCCESS, bold=True)
STYLE_INFO    = Style(color=COLOR_INFO)


# ── Level icons (log entries) ─────────────────────────────────────────────────

ICON_SUCCESS = "✅"
ICON_WARNING = "⚠️ "
ICON_ERROR   = "❌"
ICON_INFO    = "ℹ️ "
ICON_INPUT   = "📝"
ICON_CANCEL  = "⏹️ "

LEVEL_ICONS: dict[str, str] = {
    "success": ICON_SUCCESS,
    "warning": ICON_WARNING,
    "error":   ICON_ERROR,
    "info":    ICON_INFO,
}

LEVEL_STYLES: dict[str, Style] = {
    "success": STYLE_SUCCESS,
    "warning": STYLE_WARNING,
    "error":   STYLE_ERROR,
    "info":    STYLE_INFO,
}


# ── Verdict styles ────────────────────────────────────────────────────────────

STATUS_ICONS: dict[str, str] = {
    "success": ICON_SUCCESS,
    "warning": ICON_WARNING,
    "failed":  ICON_ERROR,
}

STATUS_COLORS: dict[str, str] = {
    "success": COLOR_SUCCESS,
    "warning": COLOR_WARNING,
    "failed":  COLOR_ERROR,
}


# ── Rich Theme ────────────────────────────────────────────────────────────────

PRINTFIX_THEME = Theme(
    {
        "error":   f"{COLOR_ERROR} bold",
        "warning": f"{COLOR_WARNING} bold",
        "success": f"{COLOR_SUCCESS} bold",
        "info":    COLOR_INFO,
        "brand":   f"{COLOR_BRAND} bold",
        "dim":     COLOR_DIM,
        "text":    COLOR_TEXT,
    }
)
