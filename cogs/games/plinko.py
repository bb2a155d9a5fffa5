"""
A cog for a graphical Plinko game. Every player gets their own table with a
"Drop" button; all balls on all tables fall on one shared ticker.
"""
import asyncio
import logging

import discord
from discord import app_commands
from discord.ext import commands

from config import Config
from engine.board import BoardConfig, expected_return
from engine.errors import ContractViolation
from engine.scheduler import TickScheduler
from engine.session import DropSession, SessionSnapshot
from utils.board_graphics import render_board
from utils.embed_utils import create_embed, create_error_embed, format_currency, format_multiplier
from utils.graph_utils import generate_distribution_image

logger = logging.getLogger(__name__)

TABLE_TIMEOUT = 600  # seconds of inactivity before the Drop button is disabled


# --- Views ---
class DropView(discord.ui.View):
    """The Drop button under a player's table."""

    def __init__(self, table: "PlinkoTable"):
        super().__init__(timeout=TABLE_TIMEOUT)
        self.table = table

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        """Only the owner of the table may drop balls on it."""
        if interaction.user.id != self.table.owner_id:
            await interaction.response.send_message(
                "Đây không phải bàn chơi của bạn. Dùng /plinko để mở bàn riêng.", ephemeral=True
            )
            return False
        return True

    def update_buttons(self, snapshot: SessionSnapshot):
        """Disables the button while the balance cannot cover a drop."""
        self.drop_button.disabled = not snapshot.is_accepting_input

    @discord.ui.button(label="Thả Bóng", style=discord.ButtonStyle.green, emoji="🔴")
    async def drop_button(self, interaction: discord.Interaction, _: discord.ui.Button):
        """Requests a drop and redraws the table right away."""
        if not self.table.session.request_drop():
            await interaction.response.send_message(
                embed=create_error_embed(
                    f"Bạn không đủ tiền. Mỗi lượt thả tốn **{format_currency(self.table.board.drop_cost)}**."
                ),
                ephemeral=True
            )
            return

        await interaction.response.defer()
        await self.table.refresh()

    async def on_timeout(self):
        """Disables the button when the view times out."""
        for item in self.children:
            item.disabled = True
        await self.table.refresh(final=True)


# --- Table ---
class PlinkoTable:
    """One player's board: their session plus the message that shows it."""

    def __init__(self, owner: discord.abc.User, board: BoardConfig, scheduler: TickScheduler):
        self.owner_id = owner.id
        self.owner_name = owner.display_name
        self.board = board
        self.session = DropSession(board, scheduler=scheduler, name=f"user:{owner.id}")
        self.view = DropView(self)
        self.message: discord.Message | None = None
        self._was_active = False
        self._refresh_lock = asyncio.Lock()
        self._refresh_pending = False
        self._tasks = set()

    def build_embed(self, snapshot: SessionSnapshot) -> discord.Embed:
        """Builds the status embed shown above the board image."""
        account = snapshot.account
        embed = create_embed(
            "🎯 Plinko",
            f"Số dư của **{self.owner_name}**: **{format_currency(account.balance)}**",
            color=Config.COLOR_PRIMARY if snapshot.is_accepting_input else Config.COLOR_WARNING
        )
        embed.add_field(name="Mỗi lượt thả", value=(
            f"{self.board.balls_per_drop} bóng × {format_currency(self.board.bet_cost)}"
        ))
        embed.add_field(name="Bóng đang rơi", value=str(snapshot.active_ball_count))
        embed.add_field(name="Thắng / Thua", value=f"{account.wins} / {account.losses}")
        embed.add_field(name="Tổng cược", value=format_currency(account.total_wagered))
        embed.add_field(name="Tổng thắng", value=format_currency(account.total_won))
        embed.add_field(name="Lãi / Lỗ", value=format_currency(account.net))
        embed.set_image(url="attachment://plinko.png")
        return embed

    def render(self):
        """Returns the embed and a freshly drawn board image."""
        snapshot = self.session.snapshot()
        self.view.update_buttons(snapshot)
        image = render_board(self.board, self.session.balls())
        return self.build_embed(snapshot), discord.File(image, filename="plinko.png")

    async def refresh(self, final: bool = False):
        """
        Redraws the table message. Refreshes never overlap: a request that
        arrives while one is in progress is folded into one more redraw.
        """
        if self.message is None:
            return
        if self._refresh_lock.locked():
            self._refresh_pending = True
            return

        async with self._refresh_lock:
            while True:
                self._refresh_pending = False
                embed, file = self.render()
                try:
                    await self.message.edit(
                        embed=embed, attachments=[file], view=None if final else self.view
                    )
                except discord.HTTPException as e:
                    logger.warning("Failed to refresh plinko table for %s: %s", self.owner_id, e)
                    return
                if not self._refresh_pending:
                    return

    def on_tick(self, tick: int):
        """Schedules a redraw every few ticks while balls are falling, and once when they stop."""
        active = self.session.snapshot().active_ball_count
        should_render = (active and tick % Config.PLINKO_RENDER_EVERY == 0) or (
            not active and self._was_active
        )
        self._was_active = bool(active)
        if should_render:
            task = asyncio.create_task(self.refresh())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)


# --- Cog ---
class Plinko(commands.Cog):
    """Cog for the Plinko game."""

    def __init__(self, bot: commands.Bot, board: BoardConfig):
        self.bot = bot
        self.board = board
        self.scheduler = TickScheduler(board.tick_interval)
        self.scheduler.listeners.append(self._on_tick)
        self.tables: dict[int, PlinkoTable] = {}  # user_id: PlinkoTable

    def _on_tick(self, scheduler: TickScheduler):
        for table in list(self.tables.values()):
            table.on_tick(scheduler.ticks)

    def get_table(self, user: discord.abc.User) -> PlinkoTable:
        """Returns the user's table, opening one with the start balance if needed."""
        table = self.tables.get(user.id)
        if table is None:
            table = PlinkoTable(user, self.board, self.scheduler)
            self.tables[user.id] = table
            logger.info("Opened plinko table for %s (%s)", user, user.id)
        return table

    @app_commands.command(name="plinko", description="Mở bàn Plinko của bạn và thả bóng!")
    async def plinko(self, interaction: discord.Interaction):
        """Opens (or re-posts) the user's Plinko table."""
        table = self.get_table(interaction.user)
        if table.message is not None:
            # The old message keeps a stale button; move the table to the new one
            old_message = table.message
            table.message = None
            try:
                await old_message.edit(view=None)
            except discord.HTTPException:
                pass  # Message was likely deleted
            table.view.stop()
            table.view = DropView(table)

        embed, file = table.render()
        await interaction.response.send_message(embed=embed, file=file, view=table.view)
        table.message = await interaction.original_response()

    @app_commands.command(name="plinko-stats", description="Xem thống kê Plinko của bạn.")
    async def plinko_stats(self, interaction: discord.Interaction):
        """Shows the user's running totals and where their balls landed."""
        await interaction.response.defer(ephemeral=True)
        table = self.get_table(interaction.user)
        snapshot = table.session.snapshot()
        account = snapshot.account

        embed = create_embed(
            f"📊 Thống Kê Plinko Của {interaction.user.display_name}",
            f"Số dư hiện tại: **{format_currency(account.balance)}**",
            color=Config.COLOR_INFO
        )
        embed.add_field(name="Lượt thả", value=(
            f"**Được chấp nhận:** {snapshot.drops_accepted}\n"
            f"**Bị từ chối:** {snapshot.drops_rejected}"
        ))
        embed.add_field(name="Bóng", value=(
            f"**Đã kết thúc:** {account.balls_settled}\n"
            f"**Đang rơi:** {snapshot.active_ball_count}\n"
            f"**Thắng / Thua:** {account.wins} / {account.losses}"
        ))
        embed.add_field(name="Tiền", value=(
            f"**Tổng cược:** {format_currency(account.total_wagered)}\n"
            f"**Tổng thắng:** {format_currency(account.total_won)}\n"
            f"**Hệ số cao nhất:** {format_multiplier(account.biggest_multiplier)}"
        ), inline=False)

        chart = generate_distribution_image(self.board.row_count, account.slot_hits)
        file = discord.File(chart, filename="distribution.png")
        embed.set_image(url="attachment://distribution.png")
        await interaction.followup.send(embed=embed, file=file)

    @app_commands.command(name="plinko-board", description="Xem bảng hệ số trả thưởng của Plinko.")
    async def plinko_board(self, interaction: discord.Interaction):
        """Shows the payout table and the board's theoretical return."""
        rtp = expected_return(self.board)
        table_text = " ".join(f"`{format_multiplier(m)}`" for m in self.board.multipliers)
        embed = create_embed(
            "🎯 Bảng Trả Thưởng Plinko",
            table_text,
            color=Config.COLOR_INFO
        )
        embed.add_field(name="Số hàng", value=str(self.board.row_count))
        embed.add_field(name="Giá mỗi bóng", value=format_currency(self.board.bet_cost))
        embed.add_field(name="Bóng mỗi lượt", value=str(self.board.balls_per_drop))
        embed.add_field(name="Tỷ lệ hoàn trả lý thuyết", value=f"{rtp:.2%}")
        embed.set_footer(text="Hệ số đúng 1x được tính là thua.")
        await interaction.response.send_message(embed=embed, ephemeral=True)


def load_board(config) -> BoardConfig:
    """Validates the plinko settings. Raises ContractViolation on anything unusable."""
    if int(config.PLINKO_RENDER_EVERY) < 1:
        raise ContractViolation(
            f"PLINKO_RENDER_EVERY must be at least 1, got {config.PLINKO_RENDER_EVERY}"
        )
    return BoardConfig.from_config(config)


async def setup(bot: commands.Bot):
    """Loads the Plinko cog. An invalid board configuration stops the load."""
    board = load_board(Config)
    await bot.add_cog(Plinko(bot, board))
