"""
Utility functions for creating standardized Discord embeds.
"""
from decimal import Decimal

import discord
from config import Config

def create_embed(title, description, color=Config.COLOR_PRIMARY, **kwargs):
    """Creates a standard Discord embed."""
    embed = discord.Embed(title=title, description=description, color=color, **kwargs)
    embed.set_footer(text=f"{Config.BOT_NAME} v{Config.BOT_VERSION}")
    return embed

def create_error_embed(description):
    """Creates a standard error embed."""
    return create_embed("Lỗi", description, color=Config.COLOR_ERROR)

def format_currency(amount):
    """Formats an amount into a currency string with two decimals."""
    return f"{Config.CURRENCY_SYMBOL}{Decimal(amount):,.2f}"

def format_multiplier(multiplier):
    """Formats a multiplier without trailing zeros, e.g. 1.5x or 110x."""
    value = Decimal(multiplier)
    text = f"{value:f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return f"{text}x"
