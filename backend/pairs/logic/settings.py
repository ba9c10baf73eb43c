"""Centralized gameplay settings for the memory-match game."""

from pydantic import BaseModel, ConfigDict

NUMBERS_THEME = "numbers"


class GameSettings(BaseModel):
    """
    Gameplay rules shared by every session of a process.

    Room-specific choices (theme, grid size) are captured on the session itself.
    """

    model_config = ConfigDict(frozen=True)

    match_points: int = 10
    icon_count: int = 10  # icon themes cycle through this many distinct icons
    min_grid_size: int = 2
    max_grid_size: int = 8
    max_players: int = 8

    def is_valid_grid_size(self, grid_size: int) -> bool:
        """Grid must be square with an even cell count so every cell has a partner."""
        return self.min_grid_size <= grid_size <= self.max_grid_size and grid_size % 2 == 0
