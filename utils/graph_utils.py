"""
Draws the slot distribution chart for /plinko-stats using Matplotlib.
"""

import io

import matplotlib as mpl
import matplotlib.pyplot as plt
import numpy as np

from engine.board import slot_probabilities

# Set a backend that doesn't require a GUI
mpl.use('Agg')

# Matplotlib styling
plt.style.use('dark_background')
mpl.rcParams['axes.edgecolor'] = '#555555'
mpl.rcParams['axes.linewidth'] = 1.5
mpl.rcParams['axes.labelcolor'] = '#AAAAAA'
mpl.rcParams['xtick.color'] = '#AAAAAA'
mpl.rcParams['ytick.color'] = '#AAAAAA'
mpl.rcParams['grid.color'] = '#333333'
mpl.rcParams['figure.facecolor'] = 'none'
mpl.rcParams['savefig.facecolor'] = 'none'
mpl.rcParams['axes.facecolor'] = '#1E1E1E'  # Dark gray plot background

def generate_distribution_image(row_count: int, slot_hits: dict) -> io.BytesIO:
    """
    Bar chart of where the player's balls landed, with the expected count per
    slot for fair bounces drawn on top.
    """
    slots = np.arange(row_count + 1)
    observed = np.array([slot_hits.get(int(k), 0) for k in slots])
    total = observed.sum()
    expected = np.array(slot_probabilities(row_count)) * total

    fig, ax = plt.subplots(figsize=(6, 3), dpi=100)
    ax.bar(slots, observed, color="#9B59B6", alpha=0.8, label="Thực tế")
    if total:
        ax.plot(slots, expected, color="#F1C40F", linewidth=2, marker="o", markersize=3, label="Kỳ vọng")

    ax.grid(True, axis='y', linestyle='--', linewidth=0.5)
    ax.spines['top'].set_visible(False)
    ax.spines['right'].set_visible(False)
    ax.set_xticks(slots)
    ax.set_xlabel("Ô", fontsize=10)
    ax.set_ylabel("Số bóng", fontsize=10)
    ax.set_title(f"{total} bóng", fontsize=12)
    ax.legend(fontsize=8, loc="upper right")

    buf = io.BytesIO()
    plt.savefig(buf, format='png', transparent=True, bbox_inches='tight', pad_inches=0.1)
    plt.close(fig)
    buf.seek(0)
    return buf
