from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional, Union

from pydantic import ValidationError

from popup_store.schemas.generation import GeneratedFile, ResolvedFile

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".bmp")


def is_image_file(name: str) -> bool:
    """Extension check only; the file content is never inspected."""
    return isinstance(name, str) and name.lower().endswith(IMAGE_EXTENSIONS)


@dataclass
class FileNode:
    content: str
    path: str
    lang: str = "text"
    url: Optional[str] = None

    @property
    def is_image(self) -> bool:
        return is_image_file(self.path)


@dataclass
class DirectoryNode:
    children: dict[str, "TreeNode"] = field(default_factory=dict)


TreeNode = Union[DirectoryNode, FileNode]


def resolve_generated_file(raw: Any) -> Optional[ResolvedFile]:
    if isinstance(raw, ResolvedFile):
        return raw
    if isinstance(raw, GeneratedFile):
        return raw.resolve()
    if not isinstance(raw, dict):
        logger.warning("Skipping generated file record that is not an object", extra={"record_type": type(raw).__name__})
        return None
    try:
        record = GeneratedFile.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Skipping malformed generated file record", extra={"error": str(exc)})
        return None
    resolved = record.resolve()
    if resolved is None:
        logger.warning("Skipping generated file record without a path", extra={"keys": sorted(raw)[:8]})
    return resolved


def resolve_generated_files(files: Iterable[Any] | None) -> list[ResolvedFile]:
    return [resolved for resolved in (resolve_generated_file(raw) for raw in files or []) if resolved is not None]


def build_file_tree(files: Iterable[Any] | None) -> DirectoryNode:
    """
    Fold a flat list of generated file records into a directory tree.

    Records are applied in order, so a later record for the same path replaces the
    earlier leaf. Records without a usable path are skipped.
    """
    root = DirectoryNode()
    for resolved in resolve_generated_files(files):
        parts = [part for part in resolved.path.split("/") if part]
        if not parts:
            logger.warning("Skipping generated file with only empty path segments", extra={"path": resolved.path})
            continue

        current = root
        for part in parts[:-1]:
            child = current.children.get(part)
            if not isinstance(child, DirectoryNode):
                if child is not None:
                    logger.warning(
                        "Replacing file node with directory",
                        extra={"path": resolved.path, "segment": part},
                    )
                child = DirectoryNode()
                current.children[part] = child
            current = child

        leaf = parts[-1]
        if isinstance(current.children.get(leaf), DirectoryNode):
            logger.warning("Replacing directory node with file", extra={"path": resolved.path})
        current.children[leaf] = FileNode(
            content=resolved.content,
            path=resolved.path,
            lang=resolved.lang,
            url=resolved.url,
        )
    return root


def tree_to_dict(node: TreeNode) -> dict[str, Any]:
    if isinstance(node, FileNode):
        return {
            "type": "file",
            "content": node.content,
            "path": node.path,
            "lang": node.lang,
            "url": node.url,
            "isImage": node.is_image,
        }
    return {
        "type": "directory",
        "children": {name: tree_to_dict(child) for name, child in node.children.items()},
    }


def _sort_key(item: tuple[str, TreeNode]) -> tuple[int, str]:
    name, child = item
    return (0 if isinstance(child, DirectoryNode) else 1, name.lower())


def iter_tree_files(node: DirectoryNode) -> Iterator[FileNode]:
    """Yield leaves in display order: directories before files, names case-insensitive."""
    for _, child in sorted(node.children.items(), key=_sort_key):
        if isinstance(child, DirectoryNode):
            yield from iter_tree_files(child)
        else:
            yield child


def first_file_path(files: Iterable[Any] | None) -> Optional[str]:
    for resolved in resolve_generated_files(files):
        return resolved.path
    return None
