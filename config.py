"""
Tệp cấu hình trung tâm cho Plinko Bot.

Tải các biến môi trường từ tệp .env và định nghĩa các hằng số cấu hình
được sử dụng trong toàn bộ ứng dụng.
"""
import os
from dotenv import load_dotenv

load_dotenv()

# pylint: disable=too-few-public-methods
class Config:
    """
    Lớp cấu hình chứa tất cả các cài đặt và hằng số cho bot.
    """
    # Discord Settings
    DISCORD_TOKEN = os.getenv('DISCORD_TOKEN')
    # A comma-separated list of guild IDs for instant command syncing
    DEV_GUILD_IDS = [
        int(x.strip())
        for x in os.getenv('DEV_GUILD_IDS', '').split(',')
        if x.strip()
    ]

    # Currency Settings
    CURRENCY_NAME = os.getenv('CURRENCY_NAME', 'Dollar')
    CURRENCY_SYMBOL = os.getenv('CURRENCY_SYMBOL', '$')

    # Bot Settings
    BOT_NAME = 'Plinko Bot'
    BOT_VERSION = '1.0.0'
    ACTIVITY_NAME = os.getenv('ACTIVITY_NAME', '/plinko to play')
    LOG_FILE = os.getenv('LOG_FILE', 'plinko_bot.log')

    # Plinko Board Settings (fixed at startup)
    PLINKO_ROWS = int(os.getenv('PLINKO_ROWS', '16'))
    PLINKO_BET_COST = os.getenv('PLINKO_BET_COST', '2.00')
    PLINKO_BALLS_PER_DROP = int(os.getenv('PLINKO_BALLS_PER_DROP', '1'))
    PLINKO_START_BALANCE = os.getenv('PLINKO_START_BALANCE', '500.00')
    # High risk pattern: high edges, low center
    PLINKO_MULTIPLIERS = os.getenv(
        'PLINKO_MULTIPLIERS', '110,41,10,5,3,1.5,1,0.5,0.3,0.5,1,1.5,3,5,10,41,110'
    )
    PLINKO_SLOT_TAGS = os.getenv(
        'PLINKO_SLOT_TAGS',
        'red,red,red,orange,orange,orange,yellow,yellow,yellow,'
        'yellow,yellow,orange,orange,orange,red,red,red'
    )

    # Timing Settings (seconds)
    PLINKO_TICK_INTERVAL = float(os.getenv('PLINKO_TICK_INTERVAL', '0.25'))
    PLINKO_SETTLE_PAUSE = float(os.getenv('PLINKO_SETTLE_PAUSE', '1.0'))
    PLINKO_STAGGER_TICKS = int(os.getenv('PLINKO_STAGGER_TICKS', '1'))
    # Redraw the table image every N ticks to stay under Discord's edit rate limit
    PLINKO_RENDER_EVERY = int(os.getenv('PLINKO_RENDER_EVERY', '4'))

    # Colors for embeds
    COLOR_SUCCESS = 0x00ff00
    COLOR_ERROR = 0xff0000
    COLOR_WARNING = 0xffff00
    COLOR_INFO = 0x0099ff
    COLOR_PRIMARY = 0x9b59b6

# Create a singleton instance of the config
Config = Config()
