import asyncio
import os
from typing import List, Optional, Tuple
from pydantic import BaseModel, Field, ValidationError
from tickerbar.config import settings
from tickerbar.core.logger import logger


class SavedState(BaseModel):
    symbols: List[str] = Field(default_factory=list)
    selected: Optional[str] = None


class StateStore:
    """Tracked symbols and the selected symbol, kept in a small JSON file"""

    def __init__(self, path: Optional[str] = None):
        self.path = path or settings.STATE_FILE
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    async def load(self) -> Tuple[List[str], Optional[str]]:
        state = await asyncio.to_thread(self._read)
        logger.info(f"Loaded {len(state.symbols)} pair(s) from {self.path}, selected: {state.selected or 'None'}")
        return state.symbols, state.selected

    async def save(self, symbols: List[str], selected: Optional[str]):
        state = SavedState(symbols=list(symbols), selected=selected)
        try:
            await asyncio.to_thread(self._write, state)
        except OSError as e:
            logger.error(f"Failed to save state to {self.path}: {e}")

    def _read(self) -> SavedState:
        if not os.path.exists(self.path):
            return SavedState()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return SavedState.model_validate_json(f.read())
        except (OSError, ValidationError) as e:
            logger.error(f"Ignoring unreadable state file {self.path}: {e}")
            return SavedState()

    def _write(self, state: SavedState):
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(state.model_dump_json(indent=2))
        os.replace(tmp_path, self.path)
