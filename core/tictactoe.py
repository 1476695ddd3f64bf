import json
import logging
from typing import List, Optional, Sequence

log = logging.getLogger(__name__)

WINNING_LINES = [
    (0, 1, 2), (3, 4, 5), (6, 7, 8),
    (0, 3, 6), (1, 4, 7), (2, 5, 8),
    (0, 4, 8), (2, 4, 6),
]
DRAW_TEXT = "Game ended in a draw!"


def evaluate_board(board: Sequence[str]) -> Optional[str]:
    """Return the result line for a finished 3x3 board, or None while it is still in play."""
    if len(board) != 9:
        return None
    cells: List[str] = [str(c or "").upper() for c in board]
    for a, b, c in WINNING_LINES:
        if cells[a] in ("X", "O") and cells[a] == cells[b] == cells[c]:
            return f"{cells[a]} wins!"
    if all(cell in ("X", "O") for cell in cells):
        return DRAW_TEXT
    return None


def game_over_text(raw: str) -> Optional[str]:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        log.warning("bad web app payload: %s", exc)
        return None
    if not isinstance(data, dict) or data.get("type") != "game_result":
        return None
    board = data.get("board")
    if isinstance(board, list):
        result = evaluate_board(board) or ""
    else:
        result = str(data.get("result") or "").strip()
    if not result:
        return None
    return f"🎮 Game Over!\n{result}"
