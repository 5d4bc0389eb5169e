from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass(frozen=True, slots=True)
class TaskDocumentation:
    recap: str = ""
    files: tuple[str, ...] = ()
    libraries: tuple[str, ...] = ()
    last_fetched: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskDocumentation:
        libraries = []
        for item in data.get("libraries") or []:
            if isinstance(item, dict):
                name = _pick(item, "name", "libraryName", "library_name", default="")
                if name:
                    libraries.append(str(name))
            elif item:
                libraries.append(str(item))
        return cls(
            recap=str(data.get("recap") or ""),
            files=tuple(str(path) for path in data.get("files") or []),
            libraries=tuple(libraries),
            last_fetched=_pick(data, "lastFetched", "last_fetched"),
        )


@dataclass(frozen=True, slots=True)
class Task:
    """Read-only view of a task owned by an external store."""

    id: str
    title: str
    status: str = "todo"
    created_at: int | None = None
    updated_at: int | None = None
    description: str | None = None
    content: str | None = None
    content_file: str | None = None
    documentation: TaskDocumentation | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        documentation = data.get("documentation")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            status=str(data.get("status") or "todo"),
            created_at=_pick(data, "createdAt", "created_at"),
            updated_at=_pick(data, "updatedAt", "updated_at"),
            description=data.get("description"),
            content=data.get("content"),
            content_file=_pick(data, "contentFile", "content_file"),
            documentation=(
                TaskDocumentation.from_dict(documentation)
                if isinstance(documentation, dict)
                else None
            ),
            tags=tuple(data.get("tags") or ()),
        )


def load_task(path: Path) -> Task:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"Task file must contain a JSON object: {path}")
    return Task.from_dict(payload)
