"""
This module draws the plinko table for Discord: the peg pyramid, the payout
slots and every ball still on the board, using the Pillow library.
All pixel geometry lives here; the engine only reports rows and columns.
"""
import io

from PIL import Image, ImageDraw, ImageFont

from engine.board import BoardConfig
from engine.lifecycle import BallState, BallView
from utils.embed_utils import format_multiplier

# --- Constants ---
PEG_SPACING_X = 30  # Total width per peg unit (peg + margin)
ROW_SPACING_Y = 32  # Total height per row unit
PEG_SIZE = 10
BALL_SIZE = 16
PADDING = 20
SLOT_HEIGHT = ROW_SPACING_Y // 2 + 6
BACKGROUND_COLOR = (47, 49, 54)  # Discord Dark Theme
PEG_COLOR = (220, 221, 222)
SLOT_COLORS = {
    "red": (231, 76, 60),
    "orange": (230, 126, 34),
    "yellow": (241, 196, 15),
}
DEFAULT_SLOT_COLOR = (120, 120, 120)
HIGHLIGHT_OUTLINE = (255, 255, 255)
BALL_COLORS = [
    (255, 85, 170), (46, 204, 113), (52, 152, 219), (255, 255, 255), (26, 188, 156),
]

# --- Font Loading ---
try:
    LABEL_FONT = ImageFont.truetype("arial.ttf", size=9)
except IOError:
    LABEL_FONT = ImageFont.load_default()


def board_size(row_count: int) -> tuple[int, int]:
    """Image size in pixels for a board with ``row_count`` rows."""
    width = (row_count + 3) * PEG_SPACING_X + 2 * PADDING
    height = (row_count + 1) * ROW_SPACING_Y + SLOT_HEIGHT + 2 * PADDING
    return width, height


def ball_position(row: int, column: int, row_count: int) -> tuple[float, float]:
    """
    Centre of a ball that has passed ``row`` rows with ``column`` right bounces.
    Horizontal offset from the middle is how far the ball is right of the
    row's centre line.
    """
    width, _ = board_size(row_count)
    x = width / 2 + (column - row / 2) * PEG_SPACING_X
    y = PADDING + row * ROW_SPACING_Y + ROW_SPACING_Y / 2
    return x, y


def _draw_pegs(draw: ImageDraw.ImageDraw, row_count: int, width: int):
    """Row r has r + 3 pegs, centred on the board."""
    for row in range(row_count):
        pegs_in_row = row + 3
        y = PADDING + (row + 1) * ROW_SPACING_Y
        for i in range(pegs_in_row):
            x = width / 2 + (i - (pegs_in_row - 1) / 2) * PEG_SPACING_X
            r = PEG_SIZE / 2
            draw.ellipse((x - r, y - r, x + r, y + r), fill=PEG_COLOR)


def _draw_slots(draw: ImageDraw.ImageDraw, board: BoardConfig, width: int, highlight: set):
    slot_top = PADDING + board.row_count * ROW_SPACING_Y + ROW_SPACING_Y / 2 - SLOT_HEIGHT / 2
    for index, (multiplier, tag) in enumerate(zip(board.multipliers, board.slot_tags)):
        center_x = width / 2 + (index - board.row_count / 2) * PEG_SPACING_X
        box = (
            center_x - PEG_SPACING_X / 2 + 2, slot_top,
            center_x + PEG_SPACING_X / 2 - 2, slot_top + SLOT_HEIGHT,
        )
        color = SLOT_COLORS.get(tag, DEFAULT_SLOT_COLOR)
        outline = HIGHLIGHT_OUTLINE if index in highlight else None
        draw.rounded_rectangle(box, radius=4, fill=color, outline=outline, width=2)
        draw.text(
            (center_x, slot_top + SLOT_HEIGHT / 2), format_multiplier(multiplier),
            font=LABEL_FONT, fill=(0, 0, 0), anchor="mm"
        )


def _draw_ball(draw: ImageDraw.ImageDraw, ball: BallView, row_count: int):
    x, y = ball_position(ball.row, ball.column, row_count)
    r = BALL_SIZE / 2
    color = BALL_COLORS[ball.ball_id % len(BALL_COLORS)]
    draw.ellipse((x - r, y - r, x + r, y + r), fill=color, outline=(0, 0, 0))


def render_board(board: BoardConfig, balls: list[BallView]) -> io.BytesIO:
    """
    Renders the table as a PNG. Slots that a settling ball has just landed in
    are outlined.
    """
    width, height = board_size(board.row_count)
    image = Image.new("RGB", (width, height), BACKGROUND_COLOR)
    draw = ImageDraw.Draw(image)

    highlight = {ball.terminal_index for ball in balls if ball.state is BallState.SETTLING}
    _draw_pegs(draw, board.row_count, width)
    _draw_slots(draw, board, width, highlight)
    for ball in balls:
        if ball.state is not BallState.DONE:
            _draw_ball(draw, ball, board.row_count)

    buf = io.BytesIO()
    image.save(buf, 'PNG')
    buf.seek(0)
    return buf
