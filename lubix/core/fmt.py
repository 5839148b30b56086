from __future__ import annotations


def safe_html(text: str) -> str:
    """Escape special HTML characters so dynamic content is safe in HTML parse_mode."""
    return str(text).replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def safe_attr(text: str) -> str:
    """Like safe_html, plus double quotes, for values placed inside an attribute."""
    return safe_html(text).replace('"', "&quot;")


def format_thousands(n: float, sep: str = ".") -> str:
    """Round to a whole number and group digits in threes: 1234567 -> 1.234.567"""
    digits = f"{abs(n):.0f}"
    groups = []
    while digits:
        groups.append(digits[-3:])
        digits = digits[:-3]
    out = sep.join(reversed(groups))
    return f"-{out}" if n < 0 and out != "0" else out


def fmt_price(v: float | None) -> str:
    """USD price with precision that scales down for cheap tokens: $68,120.55, $0.000412"""
    if v is None:
        return "N/A"
    if v >= 1_000:
        return f"${v:,.2f}"
    if v >= 1:
        return f"${v:.4f}"
    if v >= 0.01:
        return f"${v:.5f}"
    return f"${v:.8f}"


def fmt_pct(v: float | None) -> str:
    if v is None:
        return "N/A"
    return f"{v:+.2f}%"


def fmt_usd_grouped(v: float | None) -> str:
    if v is None:
        return "N/A"
    return f"${format_thousands(v)}"


def fmt_idr(usd: float | None, rate: float) -> str:
    if usd is None:
        return "N/A"
    return f"Rp {format_thousands(usd * rate)}"


def trend_icon(v: float | None) -> str:
    if v is None:
        return "➖"
    return "📈" if v >= 0 else "📉"
