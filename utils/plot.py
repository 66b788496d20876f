from typing import Dict, Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np


def plot_convergence(histories: Dict[str, Sequence[float]], path: Optional[str] = None):
    fig, ax = plt.subplots()
    for name, hist in histories.items():
        ax.plot(hist, label=name)
    ax.set_xlabel("Step")
    ax.set_ylabel("Best tour length")
    ax.legend()
    ax.set_title("Convergence - TSP (GA vs SA)")
    ax.grid(True, alpha=0.3)
    if path:
        fig.savefig(path)
        plt.close(fig)
    else:
        plt.show()
    return fig


def draw_tour(ax, coords: np.ndarray, tour: Optional[Sequence[int]], title: str,
              color: str = "#1d3557", current: Optional[Sequence[int]] = None,
              label_nodes: bool = True) -> None:
    """Draw a closed tour over ``coords`` (shape (N, 2)); ``current`` is drawn faintly underneath."""
    ax.clear()
    if tour is None or coords is None or len(coords) == 0:
        ax.set_title("No data to draw.")
        return
    if current is not None:
        cur = coords[list(current) + [current[0]]]
        ax.plot(cur[:, 0], cur[:, 1], color="#adb5bd", lw=1.0, alpha=0.7)
    closed = coords[list(tour) + [tour[0]]]
    ax.plot(closed[:, 0], closed[:, 1], color=color, lw=1.6)
    ax.scatter(coords[:, 0], coords[:, 1], color="#f3722c", s=26, zorder=5)
    start = coords[tour[0]]
    ax.scatter(start[0], start[1], color="#2a9d8f", s=120,
               edgecolors="white", linewidths=1.5, zorder=7)
    if label_nodes:
        for idx, (x, y) in enumerate(coords):
            ax.text(x, y, str(idx), color="#1d3557", fontsize=7,
                    ha="center", va="center", zorder=6)
    ax.set_aspect("equal", adjustable="box")
    # screen-style coordinates, y grows downward
    ax.invert_yaxis()
    ax.set_title(title)
    ax.axis("off")
