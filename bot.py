"""Module chính cho Plinko Bot, một bot Discord chơi Plinko."""

import logging
import logging.config
from pathlib import Path

import discord
from discord import app_commands
from discord.ext import commands
from dotenv import load_dotenv

from config import Config
from utils.embed_utils import create_error_embed

load_dotenv()

logger = logging.getLogger(__name__)

COGS_DIR = Path(__file__).parent / "cogs"


def setup_logging():
    """Ghi log ra console và ra file xoay vòng Config.LOG_FILE."""
    logging.config.dictConfig({
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'default': {
                'format': '[%(asctime)s] [%(levelname)-5s] [%(name)-20s] --- %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'default',
                'level': 'INFO',
            },
            'file': {
                'class': 'logging.handlers.RotatingFileHandler',
                'formatter': 'default',
                'level': 'INFO',
                'filename': Config.LOG_FILE,
                'maxBytes': 1024*1024*5,  # 5 MB
                'backupCount': 5,
                'encoding': 'utf-8',
            },
        },
        'root': {
            'handlers': ['console', 'file'],
            'level': 'INFO',
        }
    })


class PlinkoBot(commands.Bot):
    """
    Bot chỉ dùng lệnh slash. Số dư của người chơi chỉ được giữ trong bộ nhớ
    cho đến khi bot tắt.
    """
    def __init__(self):
        super().__init__(command_prefix=commands.when_mentioned, intents=discord.Intents.default())
        self.tree.on_error = self.on_app_command_error

    async def setup_hook(self):
        """Tải các cogs rồi đồng bộ lệnh slash."""
        logger.info("--- Starting Bot Setup ---")

        cogs_loaded = 0
        for path in sorted(COGS_DIR.rglob("*.py")):
            if path.name.startswith("__"):
                continue
            # 'cogs/games/plinko.py' -> 'cogs.games.plinko'
            module_path = ".".join(path.relative_to(COGS_DIR.parent).with_suffix("").parts)
            try:
                await self.load_extension(module_path)
                logger.info("Successfully loaded cog: %s", module_path)
                cogs_loaded += 1
            except commands.ExtensionError as e:
                # A bad board configuration ends up here and the game stays offline
                logger.error("Failed to load cog %s: %s", module_path, e, exc_info=True)
        logger.info("--- Loaded %s cogs ---", cogs_loaded)

        await self.sync_commands()
        logger.info("--- Bot Setup Complete ---")

    async def sync_commands(self):
        """
        Đồng bộ lệnh slash. Có DEV_GUILD_IDS thì chỉ đồng bộ vào các guild đó
        (có hiệu lực ngay), nếu không thì đồng bộ toàn cục.
        """
        if not Config.DEV_GUILD_IDS:
            try:
                synced = await self.tree.sync()
                logger.info("Synced %d commands globally.", len(synced))
            except discord.HTTPException as e:
                logger.error("Failed to sync commands globally: %s", e)
            return

        for guild_id in Config.DEV_GUILD_IDS:
            guild = discord.Object(id=guild_id)
            self.tree.copy_global_to(guild=guild)
            try:
                synced = await self.tree.sync(guild=guild)
                logger.info("Synced %d commands to dev guild %s.", len(synced), guild_id)
            except discord.HTTPException as e:
                logger.error("Failed to sync commands to dev guild %s: %s", guild_id, e)

    async def on_ready(self):
        await self.change_presence(activity=discord.Game(name=Config.ACTIVITY_NAME))
        logger.info('Logged in as %s (ID: %s)', self.user, self.user.id)

    async def on_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        """Trình xử lý lỗi chung cho tất cả các lệnh slash."""
        command_name = interaction.command.name if interaction.command else "unknown"
        logger.error("Error in command '%s': %s", command_name, error, exc_info=error)

        embed = create_error_embed("Có lỗi không mong muốn xảy ra. Vui lòng thử lại sau.")
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            logger.error("Failed to send error message to interaction: %s", e)


if __name__ == "__main__":
    setup_logging()
    TOKEN = Config.DISCORD_TOKEN
    if TOKEN is None:
        raise ValueError("DISCORD_TOKEN environment variable not set.")
    PlinkoBot().run(TOKEN, log_handler=None)
