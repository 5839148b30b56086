from __future__ import annotations

from typing import Callable

from aiogram.types import InlineKeyboardMarkup

from lubix.bot.keyboards import admin_panel_menu, main_menu, result_footer, sentiment_menu, simulator_menu
from lubix.core.errors import (
    InsufficientFundsError,
    MalformedResponseError,
    NoPositionError,
    QuoteNotFoundError,
    QuoteUnavailableError,
)
from lubix.core.fmt import fmt_idr, fmt_pct, fmt_price, fmt_usd_grouped, format_thousands, safe_attr, safe_html, trend_icon
from lubix.core.models import (
    CryptoQuote,
    EquityQuote,
    MomentumReading,
    OnChainTokenQuote,
    SentimentReading,
)
from lubix.services import intents as it

RULE = "━━━━━━━━━━━━━━━━━━━━━"

Rendered = tuple[str, InlineKeyboardMarkup | None]

# ---------------------------------------------------------------------------
# Static screens
# ---------------------------------------------------------------------------


def welcome_text(name: str, is_new: bool) -> str:
    greeting = "Selamat datang" if is_new else "Welcome back"
    return (
        "💎 <b>LUBIX TERMINAL</b> 💎\n"
        "<i>Financial co-pilot for crypto and sharia stocks</i>\n"
        f"{RULE}\n\n"
        f"{greeting}, <b>{safe_html(name or 'trader')}</b>.\n\n"
        "🚀 <b>MODULES:</b>\n"
        "• 🪙 Crypto prices (CoinMarketCap)\n"
        "• 🕌 IDX sharia screener (ISSI)\n"
        "• ⚡ Solana tokens (DexScreener)\n"
        "• 🌡 Fear &amp; Greed, market pulse, momentum\n"
        "• 📈 Paper trading with a virtual $10.000\n\n"
        f"{RULE}\n"
        "<i>Tap a button below or type / to navigate.</i>"
    )


def help_text() -> str:
    return (
        "❓ <b>LUBIX HELP</b>\n"
        f"{RULE}\n\n"
        "📖 <b>COMMANDS:</b>\n"
        "• /start - dashboard\n"
        "• /kripto - crypto price lookup\n"
        "• /saham - sharia stock screener (IDX)\n"
        "• /solana - on-chain token lookup\n"
        "• /sentiment - fear &amp; greed and market pulse\n"
        "• /sim - paper trading simulator\n"
        "• /realbuy - real buy module (premium)\n"
        "• /help - this page\n\n"
        "After picking a module just send the ticker, e.g. <code>BTC</code> or <code>BBRI</code>.\n"
        f"{RULE}"
    )


MODULE_INTROS = {
    "crypto": (
        "🪙 <b>CRYPTOCURRENCY ENGINE</b>\n\n"
        "Real-time prices from <b>CoinMarketCap</b>, converted to IDR.\n\n"
        "📖 Send the coin ticker.\n<b>Example:</b> <code>BTC</code> or <code>SOL</code>"
    ),
    "stock": (
        "🕌 <b>SHARIA SCREENER IDX</b>\n\n"
        "Emiten data from <b>SyariahSaham API</b>, screened against "
        "<b>ISSI</b> (debt ratio and non-halal revenue).\n\n"
        "📖 Send the 4-letter emiten code.\n<b>Example:</b> <code>BBRI</code> or <code>TLKM</code>"
    ),
    "solana": (
        "⚡ <b>SOLANA TOKEN SCANNER</b>\n\n"
        "Pairs from <b>DexScreener</b>. Search by symbol or paste a contract address.\n\n"
        "<b>Example:</b> <code>BONK</code>"
    ),
    "sentiment": (
        "🌡 <b>SENTIMENT ENGINE</b>\n\n"
        "• <b>F&amp;G Index</b> - global market emotion (alternative.me)\n"
        "• <b>Market pulse</b> - 24h moves of the majors\n"
        "• <b>Momentum</b> - 1h/24h/7d change for one coin"
    ),
    "momentum": "📈 <b>Send a ticker or coin name:</b>\n(e.g. <code>BTC</code> or <code>bitcoin</code>)",
    "sim": (
        "📈 <b>LUBIX VIRTUAL BROKER</b>\n\n"
        "Practice trading with a virtual balance, no real money involved.\n\n"
        "• Starting balance: <b>$10.000</b>\n"
        "• Order size: <b>fixed $1.000 per buy</b>\n"
        "• Sells close the whole position"
    ),
    "buy": "📈 <b>BUY</b>\nSend the coin ticker to buy a fixed $1.000 order at the live price.",
    "sell": "📉 <b>SELL</b>\nSend the ticker of the position to close.",
    "add_watchlist": "⭐ <b>WATCHLIST</b>\nSend the ticker to add.",
    "realbuy": (
        "💠 <b>REAL BUY (PREMIUM)</b>\n\n"
        "Premium access confirmed. Use /solana to check liquidity before buying, "
        "then execute from your own wallet. Lubix never holds funds or keys."
    ),
}

ADMIN_PROMPTS = {
    "admin_broadcast": "📢 Send the broadcast text.",
    "admin_ban": "🚫 Send the chat id to ban.",
    "admin_unban": "✅ Send the chat id to unban.",
    "admin_gift": "🎁 Send <code>chat_id amount</code> (grants premium and virtual cash).",
    "admin_dm": "✉️ Send <code>chat_id|message</code>.",
    "admin_add_group": "➕ Send the group chat id to make premium.",
    "admin_remove_group": "➖ Send the group chat id to remove from premium.",
}

# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------


def crypto_template(q: CryptoQuote, usd_idr_rate: float) -> str:
    return (
        f"🪙 <b>{safe_html(q.symbol)} - {safe_html(q.name)}</b>\n{RULE}\n"
        "💰 <b>PRICE:</b>\n"
        f"• USD: <code>{fmt_price(q.price_usd)}</code>\n"
        f"• IDR: <code>{fmt_idr(q.price_usd, usd_idr_rate)}</code>\n\n"
        "📊 <b>CHANGES:</b>\n"
        f"• 1H: {trend_icon(q.change_1h)} <code>{fmt_pct(q.change_1h)}</code>\n"
        f"• 24H: {trend_icon(q.change_24h)} <code>{fmt_pct(q.change_24h)}</code>\n"
        f"• 7D: {trend_icon(q.change_7d)} <code>{fmt_pct(q.change_7d)}</code>\n\n"
        "📈 <b>MARKET:</b>\n"
        f"• Market cap: <code>{fmt_usd_grouped(q.market_cap)}</code>\n"
        f"• Volume 24H: <code>{fmt_usd_grouped(q.volume_24h)}</code>\n"
        f"{RULE}\n<i>CoinMarketCap</i>"
    )


def _ratio(v: float | None) -> str:
    return f"{v:.2f}%" if v is not None else "N/A"


def equity_template(q: EquityQuote) -> str:
    price = f"Rp {format_thousands(q.price)}" if q.price is not None else "N/A"
    if q.price_change is None:
        change = "N/A"
    else:
        change = f"{'+' if q.price_change > 0 else ''}{format_thousands(q.price_change)}"
    market_cap = f"Rp {format_thousands(q.market_cap)}" if q.market_cap is not None else "N/A"
    status = "✅ Syariah (ISSI)" if q.sharia_compliant else "❌ Non-Syariah"
    lines = [
        f"🏢 <b>{safe_html(q.name.upper())}</b>",
        f"🔖 Ticker: <code>{safe_html(q.code)}</code>",
        RULE,
        "",
        f"💰 <b>PRICE:</b> {price} ({trend_icon(q.price_change)} {change})",
    ]
    if q.board:
        lines.append(f"• Papan: <code>{safe_html(q.board)}</code>")
    if q.index:
        lines.append(f"• Index: <code>{safe_html(q.index)}</code>")
    lines += [
        "",
        "🕌 <b>SHARIA:</b>",
        f"• Status: <b>{status}</b>",
        f"• Interest-bearing debt: <code>{_ratio(q.debt_ratio)}</code>",
        f"• Non-halal revenue: <code>{_ratio(q.non_halal_revenue_ratio)}</code>",
        "",
        "📊 <b>DATA:</b>",
        f"• Market cap: {market_cap}",
        f"• Sector: {safe_html(q.sector or 'N/A')}",
        RULE,
    ]
    return "\n".join(lines)


def onchain_template(q: OnChainTokenQuote) -> str:
    lines = [
        f"⚡ <b>{safe_html(q.symbol)} - {safe_html(q.name)}</b>",
        RULE,
        "💰 <b>TOKEN PRICE:</b>",
        f"• Price: <code>{fmt_price(q.price_usd)}</code>",
        f"• 1H: {trend_icon(q.change_1h)} <code>{fmt_pct(q.change_1h)}</code>",
        f"• 24H: {trend_icon(q.change_24h)} <code>{fmt_pct(q.change_24h)}</code>",
        "",
        "🔗 <b>CONTRACT:</b>",
        f"• CA: <code>{safe_html(q.contract_address)}</code>",
        "",
        "📊 <b>MARKET:</b>",
        f"• Liquidity: <code>{fmt_usd_grouped(q.liquidity_usd)}</code>",
        f"• Volume 24H: <code>{fmt_usd_grouped(q.volume_24h)}</code>",
        RULE,
    ]
    if q.url:
        lines.append(f'<a href="{safe_attr(q.url)}">DexScreener</a>')
    return "\n".join(lines)


def _sentiment_emoji(score: int) -> str:
    if score <= 25:
        return "😱"
    if score <= 45:
        return "😰"
    if score <= 55:
        return "😐"
    if score <= 75:
        return "😊"
    return "🤑"


def sentiment_template(r: SentimentReading) -> str:
    filled = r.score // 5
    bar = "█" * filled + "░" * (20 - filled)
    return (
        f"🌡 <b>FEAR &amp; GREED INDEX</b>\n{RULE}\n\n"
        f"{_sentiment_emoji(r.score)} <b>Score: {r.score}/100</b>\n"
        f"<code>[{bar}]</code>\n\n"
        f"📊 <b>Classification:</b> <code>{safe_html(r.classification)}</code>\n\n"
        "<i>0 = extreme fear, 100 = extreme greed</i>\n"
        f"{RULE}\n<i>alternative.me</i>"
    )


def momentum_template(r: MomentumReading) -> str:
    return (
        f"📈 <b>Momentum {safe_html(r.name)} ({safe_html(r.symbol)})</b>\n{RULE}\n"
        f"1H: {trend_icon(r.change_1h)} <code>{fmt_pct(r.change_1h)}</code>\n"
        f"24H: {trend_icon(r.change_24h)} <code>{fmt_pct(r.change_24h)}</code>\n"
        f"7D: {trend_icon(r.change_7d)} <code>{fmt_pct(r.change_7d)}</code>\n"
        f"{RULE}"
    )


def snapshot_template(quotes: dict[str, CryptoQuote], requested: list[str]) -> str:
    lines = ["📊 <b>MARKET PULSE</b>", RULE, ""]
    for symbol in requested:
        q = quotes.get(symbol)
        if q is None:
            continue
        lines.append(
            f"{trend_icon(q.change_24h)} <b>{safe_html(symbol)}</b>: <code>{fmt_price(q.price_usd)}</code> "
            f"<code>{fmt_pct(q.change_24h)}</code>"
        )
    if len(lines) == 3:
        lines.append("<i>no data from upstream right now</i>")
    lines += ["", RULE, "<i>24H changes - CoinMarketCap</i>"]
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


def lookup_error_template(error: Exception) -> str:
    query = safe_html(getattr(error, "query", "") or "").upper()
    if isinstance(error, QuoteNotFoundError):
        return f"❌ <b>{query}</b> not found."
    if isinstance(error, MalformedResponseError):
        return "⚠️ The data provider sent something unreadable. Try again later."
    return "⚠️ Data provider is unreachable right now. Try again in a minute."


def trade_error_template(error: Exception) -> str:
    symbol = safe_html(getattr(error, "symbol", "") or "")
    if isinstance(error, InsufficientFundsError):
        return f"❌ Insufficient balance: ${error.cash_balance:,.2f} left, an order needs ${error.required:,.2f}."
    if isinstance(error, NoPositionError):
        return f"❌ You have no open <b>{symbol}</b> position."
    if isinstance(error, QuoteUnavailableError):
        return f"❌ No live price for <b>{symbol}</b>, order not placed."
    return "❌ Trade failed."


# ---------------------------------------------------------------------------
# Simulator
# ---------------------------------------------------------------------------


def trade_template(r) -> str:
    if r.side == "buy":
        return (
            f"✅ <b>BUY {safe_html(r.symbol)}</b> filled\n{RULE}\n"
            f"• Size: <code>${r.notional:,.2f}</code>\n"
            f"• Price: <code>{fmt_price(r.price)}</code>\n"
            f"• Quantity: <code>{r.quantity:.6f}</code>\n"
            f"• Avg cost: <code>{fmt_price(r.average_cost)}</code>\n"
            f"• Cash left: <code>${r.cash_balance:,.2f}</code>"
        )
    pnl = r.realized_pnl or 0.0
    return (
        f"✅ <b>SELL {safe_html(r.symbol)}</b> filled\n{RULE}\n"
        f"• Quantity: <code>{r.quantity:.6f}</code>\n"
        f"• Price: <code>{fmt_price(r.price)}</code>\n"
        f"• Proceeds: <code>${r.notional:,.2f}</code>\n"
        f"• Realized P&amp;L: {trend_icon(pnl)} <code>{pnl:+,.2f}</code>\n"
        f"• Cash: <code>${r.cash_balance:,.2f}</code>"
    )


def portfolio_template(snapshot) -> str:
    lines = ["💼 <b>PORTFOLIO</b>", RULE, f"💵 <b>Cash:</b> ${snapshot.cash_balance:,.2f}", ""]
    if not snapshot.positions:
        lines.append("<i>No open positions.</i>")
    for p in snapshot.positions:
        price = fmt_price(p.price) if p.price is not None else "no live price"
        lines.append(
            f"• <b>{safe_html(p.symbol)}</b> {p.quantity:.6f} @ {fmt_price(p.average_cost)} → {price}\n"
            f"   value ${p.market_value:,.2f} ({trend_icon(p.unrealized_pnl)} {p.unrealized_pnl:+,.2f})"
        )
    lines += ["", RULE, f"🏦 <b>Total:</b> ${snapshot.total_value:,.2f}"]
    return "\n".join(lines)


def watchlist_template(symbols: list[str], added: str | None) -> str:
    head = f"✅ {safe_html(added)} added to your watchlist.\n\n" if added else ""
    if not symbols:
        return head + "⭐ <b>WATCHLIST</b>\n<i>empty. Tap ➕ ⭐ after a lookup to add one.</i>"
    rows = "\n".join(f"{i}. <code>{safe_html(s)}</code>" for i, s in enumerate(symbols, start=1))
    return f"{head}⭐ <b>WATCHLIST</b>\n{rows}"


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


def admin_panel_template(stats: dict[str, int]) -> str:
    return (
        f"🛠 <b>ADMIN PANEL</b>\n{RULE}\n"
        f"• Users: <code>{stats.get('users', 0)}</code>\n"
        f"• Banned: <code>{stats.get('banned', 0)}</code>\n"
        f"• Premium users: <code>{stats.get('premium_users', 0)}</code>\n"
        f"• Premium groups: <code>{stats.get('premium_groups', 0)}</code>\n"
        f"• Portfolios: <code>{stats.get('portfolios', 0)}</code>"
    )


def denied_template(reason: str) -> str:
    if reason == "premium_required":
        return "💠 This module is for premium members. Contact the admin to upgrade."
    return "⛔ Admin only."


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def _render_quote(quote, usd_idr_rate: float) -> str:
    if isinstance(quote, CryptoQuote):
        return crypto_template(quote, usd_idr_rate)
    if isinstance(quote, EquityQuote):
        return equity_template(quote)
    if isinstance(quote, OnChainTokenQuote):
        return onchain_template(quote)
    if isinstance(quote, SentimentReading):
        return sentiment_template(quote)
    return momentum_template(quote)


_INTRO_MENUS: dict[str, Callable[[], InlineKeyboardMarkup]] = {
    "sentiment": sentiment_menu,
    "sim": simulator_menu,
}


def render(intent, usd_idr_rate: float) -> Rendered:
    """Intent -> (HTML text, keyboard)."""
    if isinstance(intent, it.Welcome):
        return welcome_text(intent.first_name, intent.is_new), main_menu()
    if isinstance(intent, it.Help):
        return help_text(), main_menu()
    if isinstance(intent, it.ModuleIntro):
        menu = _INTRO_MENUS.get(intent.module)
        return MODULE_INTROS[intent.module], menu() if menu else None
    if isinstance(intent, it.Hint):
        return "Pick a module first: tap a button or type /help.", main_menu()
    if isinstance(intent, it.ShowQuote):
        return _render_quote(intent.quote, usd_idr_rate), result_footer()
    if isinstance(intent, it.ShowSnapshot):
        return snapshot_template(intent.quotes, intent.requested), sentiment_menu()
    if isinstance(intent, it.ShowLookupError):
        return lookup_error_template(intent.error), main_menu()
    if isinstance(intent, it.ShowTrade):
        return trade_template(intent.receipt), simulator_menu()
    if isinstance(intent, it.ShowTradeError):
        return trade_error_template(intent.error), simulator_menu()
    if isinstance(intent, it.ShowPortfolio):
        return portfolio_template(intent.snapshot), simulator_menu()
    if isinstance(intent, it.ShowWatchlist):
        return watchlist_template(intent.symbols, intent.added), main_menu()
    if isinstance(intent, it.Denied):
        return denied_template(intent.reason), None
    if isinstance(intent, it.AdminPanel):
        return admin_panel_template(intent.stats), admin_panel_menu()
    if isinstance(intent, it.AdminPrompt):
        return ADMIN_PROMPTS[intent.action], None
    if isinstance(intent, it.AdminResult):
        icon = "✅" if intent.ok else "❌"
        return f"{icon} <b>{safe_html(intent.action)}</b>: {safe_html(intent.detail)}", admin_panel_menu()
    if isinstance(intent, it.BroadcastReport):
        return (
            f"📢 Broadcast sent to <b>{intent.delivered}</b>/{intent.recipients} chats"
            f" ({intent.failed} failed).",
            admin_panel_menu(),
        )
    raise TypeError(f"No template for {type(intent).__name__}")
