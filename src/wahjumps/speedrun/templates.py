from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from ..debug_log import debug_log
from .storage import JsonListStore, LoadResult
from .types import PuzzleIdentity, Template, new_template, template_warnings


def template_store(path: Path) -> JsonListStore[Template]:
    return JsonListStore(path=Path(path), item_type=Template, label="templates", validate=template_warnings)


@dataclass(slots=True)
class TemplateManager:
    """Split templates, persisted after every change.

    Templates go in and out as copies; callers edit a copy and hand it back
    through `update`.
    """

    store: JsonListStore[Template]
    _templates: list[Template] = field(default_factory=list)
    load_error: str | None = None

    def load(self) -> LoadResult[Template]:
        result = self.store.load()
        self._templates = list(result.items)
        self.load_error = result.error
        return result

    def save(self) -> bool:
        return self.store.save(self._templates)

    def list_all(self) -> list[Template]:
        return [template.copy() for template in self._templates]

    def get(self, template_id: str) -> Template | None:
        found = self._find(template_id)
        if found is None:
            return None
        return found.copy()

    def create(self, name: str, puzzle: PuzzleIdentity | None = None) -> Template:
        template = new_template(name, puzzle)
        self._templates.append(template)
        self.save()
        debug_log("template_created", template=template.id, name=template.name)
        return template.copy()

    def add(self, template: Template) -> Template:
        stored = template.copy()
        self._templates.append(stored)
        self.save()
        return stored.copy()

    def update(self, template: Template) -> bool:
        for idx, existing in enumerate(self._templates):
            if existing.id != template.id:
                continue
            stored = template.copy()
            stored.touch()
            self._templates[idx] = stored
            self.save()
            return True
        return False

    def duplicate(self, template_id: str) -> Template | None:
        original = self._find(template_id)
        if original is None:
            return None
        copy = original.duplicate()
        self._templates.append(copy)
        self.save()
        return copy.copy()

    def remove(self, template_id: str) -> bool:
        # Records keep their own checkpoint snapshots; nothing cascades.
        before = len(self._templates)
        self._templates = [template for template in self._templates if template.id != template_id]
        if len(self._templates) == before:
            return False
        self.save()
        return True

    def remove_for_puzzle(self, puzzle: PuzzleIdentity) -> int:
        keep = [t for t in self._templates if not puzzle.matches(t.puzzle)]
        removed = len(self._templates) - len(keep)
        if removed:
            self._templates = keep
            self.save()
        return removed

    def find_applicable(self, puzzle: PuzzleIdentity | None) -> list[Template]:
        """Templates bound to `puzzle` first, then every generic template."""

        specific: list[Template] = []
        generic: list[Template] = []
        for template in self._templates:
            if template.puzzle is None:
                generic.append(template.copy())
            elif puzzle is not None and puzzle.matches(template.puzzle):
                specific.append(template.copy())
        return specific + generic

    def _find(self, template_id: str) -> Template | None:
        for template in self._templates:
            if template.id == template_id:
                return template
        return None


def open_template_manager(path: Path) -> TemplateManager:
    manager = TemplateManager(store=template_store(path))
    manager.load()
    return manager


__all__ = [
    "TemplateManager",
    "open_template_manager",
    "template_store",
]
