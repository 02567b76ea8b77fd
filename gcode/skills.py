"""Skills: markdown instruction files with an optional frontmatter block."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Iterator, List, Union

_SKILL_FILE = "SKILL.md"
_SKILL_SUFFIX = ".skill.md"
_TRIGGER_SPLIT = re.compile(r"[, ]+")


@dataclass
class Skill:
    """One skill file: metadata from its frontmatter and the prose body."""

    name: str = ""
    description: str = ""
    trigger: List[str] = field(default_factory=list)
    body: str = ""
    path: str = ""


def _is_skill_file(base: str) -> bool:
    return base == _SKILL_FILE or base.endswith(_SKILL_SUFFIX)


def _walk_files(directory: str) -> Iterator[str]:
    """Yield file paths under ``directory`` in lexical order, skipping unreadable parts."""
    try:
        names = sorted(os.listdir(directory))
    except OSError:
        return
    for name in names:
        path = os.path.join(directory, name)
        try:
            is_dir = os.path.isdir(path)
        except OSError:
            continue
        if is_dir:
            yield from _walk_files(path)
        else:
            yield path


def _default_name(path: str) -> str:
    base = os.path.basename(path)
    if base == _SKILL_FILE:
        return os.path.basename(os.path.dirname(path))
    if base.endswith(_SKILL_SUFFIX):
        return base[: -len(_SKILL_SUFFIX)]
    return base


def _apply_frontmatter(skill: Skill, frontmatter: str) -> None:
    """Fill name, description and trigger from ``key: value`` lines."""
    for line in frontmatter.split("\n"):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip().lower()
        value = value.strip().strip("\"'")
        if key == "name":
            skill.name = value
        elif key == "description":
            skill.description = value
        elif key in ("trigger", "triggers"):
            for part in _TRIGGER_SPLIT.split(value.strip("[]")):
                part = part.strip("\"'")
                if part:
                    skill.trigger.append(part)


def _load_skill_file(path: str) -> Skill:
    with open(path, "rb") as handle:
        text = handle.read().decode("utf-8", errors="replace")

    skill = Skill(path=path, name=_default_name(path))
    if text.startswith("---\n"):
        end = text.find("\n---", 4)
        if end > 4:
            _apply_frontmatter(skill, text[4:end])
            skill.body = text[end + 4:].lstrip("\n")
        else:
            skill.body = text
    else:
        skill.body = text
    if not skill.name:
        skill.name = _default_name(path)
    return skill


def load_skills(directory: Union[str, os.PathLike]) -> List[Skill]:
    """Load every ``SKILL.md`` and ``*.skill.md`` file found under ``directory``.

    An empty or missing directory yields no skills; unreadable files are skipped.
    Raises NotADirectoryError when the path exists but is not a directory.
    """
    if not directory:
        return []
    directory = os.fspath(directory)
    if not os.path.exists(directory):
        return []
    if not os.path.isdir(directory):
        raise NotADirectoryError(f"plugin: skills path {directory!r} is not a directory")

    skills = []
    for path in _walk_files(directory):
        if not _is_skill_file(os.path.basename(path)):
            continue
        try:
            skills.append(_load_skill_file(path))
        except OSError:
            continue
    return skills