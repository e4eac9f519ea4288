# config.py
import os

# ======= Search pacing =======
# Cooperative yield every N backtracks; progress snapshot every N ms.
YIELD_EVERY          = int(os.getenv("PZ_YIELD_EVERY", "50"))
PROGRESS_INTERVAL_MS = int(os.getenv("PZ_PROGRESS_INTERVAL_MS", "100"))

# ======= Host / viewer =======
# 0.0 = slowest replay for the viewer, 1.0 = no display delay.
DEFAULT_SPEED  = float(os.getenv("PZ_DEFAULT_SPEED", "0.5"))
ATTEMPT_BUFFER = int(os.getenv("PZ_ATTEMPT_BUFFER", "500"))

# Default the board to 8 × 8, the size the puzzle screen opens with.
DEFAULT_BOARD_W = int(os.getenv("PZ_DEFAULT_BOARD_W", "8"))
DEFAULT_BOARD_H = int(os.getenv("PZ_DEFAULT_BOARD_H", "8"))

# Only the HTTP host enforces this; the solver itself accepts any board.
MAX_BOARD_CELLS = int(os.getenv("PZ_MAX_BOARD_CELLS", "400"))
# Upper bound on pieces in one request, checked before any piece is built.
MAX_PIECES      = int(os.getenv("PZ_MAX_PIECES", "200"))

# ======= CP-SAT feasibility check =======
CP_CHECK_SECONDS = float(os.getenv("PZ_CP_CHECK_SECONDS", "10"))
CP_WORKERS       = int(os.getenv("PZ_CP_WORKERS", "1"))
RANDOM_SEED      = int(os.getenv("PZ_RANDOM_SEED", "0"))

# ======= Output names =======
COORDS_OUT  = os.getenv("PZ_COORDS_OUT", "coords.txt")
LAYOUT_HTML = os.getenv("PZ_LAYOUT_HTML", "layout_view.html")

class CFG:
    YIELD_EVERY          = YIELD_EVERY
    PROGRESS_INTERVAL_MS = PROGRESS_INTERVAL_MS

    DEFAULT_SPEED  = DEFAULT_SPEED
    ATTEMPT_BUFFER = ATTEMPT_BUFFER

    DEFAULT_BOARD_W = DEFAULT_BOARD_W
    DEFAULT_BOARD_H = DEFAULT_BOARD_H
    MAX_BOARD_CELLS = MAX_BOARD_CELLS
    MAX_PIECES      = MAX_PIECES

    CP_CHECK_SECONDS = CP_CHECK_SECONDS
    CP_WORKERS       = CP_WORKERS
    RANDOM_SEED      = RANDOM_SEED

    COORDS_OUT  = COORDS_OUT
    LAYOUT_HTML = LAYOUT_HTML

__all__ = ["CFG"]
