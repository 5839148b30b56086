from __future__ import annotations

from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder


def main_menu() -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.button(text="💰 CRYPTO", callback_data="menu_crypto")
    kb.button(text="🕌 SAHAM", callback_data="menu_sharia")
    kb.button(text="⚡ SOLANA", callback_data="menu_solana")
    kb.button(text="🌡 SENTIMENT", callback_data="menu_sentiment")
    kb.button(text="📈 SIMULATOR", callback_data="menu_sim")
    kb.button(text="⭐ WATCHLIST", callback_data="menu_watchlist")
    kb.button(text="❓ HELP", callback_data="menu_help")
    kb.button(text="🏠 HOME", callback_data="back_to_main")
    kb.adjust(2, 2, 2, 2)
    return kb.as_markup()


def result_footer() -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.button(text="🏠 HOME", callback_data="back_to_main")
    kb.button(text="➕ ⭐", callback_data="add_watchlist")
    kb.button(text="📈 BUY", callback_data="menu_buy")
    kb.button(text="📉 SELL", callback_data="menu_sell")
    kb.adjust(4)
    return kb.as_markup()


def sentiment_menu() -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.button(text="🎭 F&G INDEX", callback_data="menu_fng")
    kb.button(text="📊 MARKET PULSE", callback_data="menu_pulse")
    kb.button(text="📈 MOMENTUM", callback_data="menu_momentum")
    kb.button(text="🏠 HOME", callback_data="back_to_main")
    kb.adjust(2, 1, 1)
    return kb.as_markup()


def simulator_menu() -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.button(text="📈 BUY", callback_data="menu_buy")
    kb.button(text="📉 SELL", callback_data="menu_sell")
    kb.button(text="💼 PORTFOLIO", callback_data="menu_portfolio")
    kb.button(text="⭐ WATCHLIST", callback_data="menu_watchlist")
    kb.button(text="🏠 HOME", callback_data="back_to_main")
    kb.adjust(2, 2, 1)
    return kb.as_markup()


def admin_panel_menu() -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.button(text="📢 Broadcast", callback_data="admin_broadcast")
    kb.button(text="✉️ DM user", callback_data="admin_dm")
    kb.button(text="🚫 Ban", callback_data="admin_ban")
    kb.button(text="✅ Unban", callback_data="admin_unban")
    kb.button(text="🎁 Gift", callback_data="admin_gift")
    kb.button(text="📊 Stats", callback_data="admin_stats")
    kb.button(text="➕ Premium group", callback_data="admin_add_group")
    kb.button(text="➖ Premium group", callback_data="admin_remove_group")
    kb.adjust(2, 2, 2, 2)
    return kb.as_markup()
