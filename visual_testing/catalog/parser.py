"""Catalog loader — discovers scenes from story source files without touching a device."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from visual_testing.models.scene import Scene

logger = logging.getLogger(__name__)

_TITLE_RE = re.compile(r"""title:\s*['"]([^'"]+)['"]""", re.IGNORECASE)
# export const Primary = ... / export const Primary: Story = ... / : StoryObj<typeof Button> = ...
_EXPORT_RE = re.compile(r"export\s+const\s+(\w+)(?::\s*Story(?:Obj)?(?:<[^>]+>)?)?\s*=")
_EXTGLOB_RE = re.compile(r"\?\(([^()]*)\)")
_BRACE_RE = re.compile(r"\{([^{}]*)\}")

_SKIPPED_EXPORTS = {"meta", "default"}


def generate_scene_id(title: str, variant_name: str) -> str:
    """Build a stable scene id: ``ui-button--primary-large`` for ("UI/Button", "PrimaryLarge")."""
    normalized_title = re.sub(r"\s+", "-", title.lower()).replace("/", "-")
    normalized_variant = re.sub(r"([a-z])([A-Z])", r"\1-\2", variant_name)
    normalized_variant = re.sub(r"\s+", "-", normalized_variant.lower())
    return f"{normalized_title}--{normalized_variant}"


def extract_scenes(content: str, filename: str = "") -> list[Scene]:
    """Extract scenes from one story file's source text."""
    title_match = _TITLE_RE.search(content)
    if not title_match:
        logger.debug("No title found in %s", filename)
        return []

    title = title_match.group(1)
    component_name = title.split("/")[-1]

    scenes = []
    for match in _EXPORT_RE.finditer(content):
        variant_name = match.group(1)
        if variant_name in _SKIPPED_EXPORTS:
            continue
        scenes.append(Scene(
            id=generate_scene_id(title, variant_name),
            component_name=component_name,
            variant_name=variant_name,
            group_path=title,
        ))
    return scenes


def expand_pattern(pattern: str) -> list[str]:
    """Expand ``{a,b}`` and ``?(a|b)`` alternatives into plain glob patterns."""
    pattern = _EXTGLOB_RE.sub(lambda m: "{" + m.group(1).replace("|", ",") + "}", pattern)
    match = _BRACE_RE.search(pattern)
    if not match:
        return [pattern]
    head, tail = pattern[:match.start()], pattern[match.end():]
    expanded = []
    for option in match.group(1).split(","):
        expanded.extend(expand_pattern(head + option + tail))
    return expanded


def find_story_files(project_path: Path, pattern: str) -> list[Path]:
    files: set[Path] = set()
    for expanded in expand_pattern(pattern):
        files.update(p for p in project_path.glob(expanded) if p.is_file())
    return sorted(files)


def discover_scenes(project_path: str | Path, pattern: str) -> list[Scene]:
    """Parse every matching story file and return its scenes sorted by id."""
    project_path = Path(project_path)
    story_files = find_story_files(project_path, pattern)
    logger.debug("Found %d story files matching %s", len(story_files), pattern)

    scenes: dict[str, Scene] = {}
    for path in story_files:
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read story file %s: %s", path, e)
            continue
        for scene in extract_scenes(content, str(path.relative_to(project_path))):
            if scene.id in scenes:
                logger.debug("Duplicate scene id %s in %s", scene.id, path)
            scenes[scene.id] = scene

    logger.debug("Parsed %d total scenes", len(scenes))
    return sorted(scenes.values(), key=lambda s: s.id)


def filter_scenes(scenes: list[Scene], pattern: str | None) -> list[Scene]:
    """Keep scenes whose id, component, variant or group matches ``pattern`` (case-insensitive)."""
    if not pattern:
        return list(scenes)
    regex = re.compile(pattern, re.IGNORECASE)
    return [
        s for s in scenes
        if regex.search(s.id)
        or regex.search(s.component_name)
        or regex.search(s.variant_name)
        or regex.search(s.group_path)
    ]


def group_scenes(scenes: list[Scene]) -> dict[str, list[Scene]]:
    grouped: dict[str, list[Scene]] = {}
    for scene in scenes:
        grouped.setdefault(scene.group_path or scene.component_name, []).append(scene)
    return grouped
