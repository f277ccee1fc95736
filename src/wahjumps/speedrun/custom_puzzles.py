from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from .storage import JsonListStore, LoadResult
from .types import CustomPuzzle, PuzzleIdentity, SpeedrunDataError, utc_now


def custom_puzzle_store(path: Path) -> JsonListStore[CustomPuzzle]:
    return JsonListStore(path=Path(path), item_type=CustomPuzzle, label="custom_puzzles")


@dataclass(slots=True)
class CustomPuzzleRegistry:
    store: JsonListStore[CustomPuzzle]
    _puzzles: list[CustomPuzzle] = field(default_factory=list)
    load_error: str | None = None

    def load(self) -> LoadResult[CustomPuzzle]:
        result = self.store.load()
        self._puzzles = list(result.items)
        self.load_error = result.error
        return result

    def save(self) -> bool:
        return self.store.save(self._puzzles)

    def create(self, name: str, description: str = "", creator: str = "") -> CustomPuzzle:
        label = str(name).strip()
        if not label:
            raise SpeedrunDataError("custom puzzle name must not be empty")
        puzzle = CustomPuzzle(name=label, description=str(description), creator=str(creator))
        self._puzzles.append(puzzle)
        self.save()
        return puzzle.copy()

    def update(self, puzzle: CustomPuzzle) -> bool:
        for idx, existing in enumerate(self._puzzles):
            if existing.id != puzzle.id:
                continue
            stored = puzzle.copy()
            stored.modified_at = utc_now()
            self._puzzles[idx] = stored
            self.save()
            return True
        return False

    def remove(self, puzzle_id: str) -> CustomPuzzle | None:
        for idx, existing in enumerate(self._puzzles):
            if existing.id == puzzle_id:
                del self._puzzles[idx]
                self.save()
                return existing
        return None

    def get(self, puzzle_id: str) -> CustomPuzzle | None:
        for puzzle in self._puzzles:
            if puzzle.id == puzzle_id:
                return puzzle.copy()
        return None

    def list_all(self) -> list[CustomPuzzle]:
        return [puzzle.copy() for puzzle in self._puzzles]

    def identity_for(self, puzzle_id: str) -> PuzzleIdentity | None:
        puzzle = self.get(puzzle_id)
        if puzzle is None:
            return None
        return puzzle.identity()


def open_custom_puzzle_registry(path: Path) -> CustomPuzzleRegistry:
    registry = CustomPuzzleRegistry(store=custom_puzzle_store(path))
    registry.load()
    return registry


__all__ = [
    "CustomPuzzleRegistry",
    "custom_puzzle_store",
    "open_custom_puzzle_registry",
]
