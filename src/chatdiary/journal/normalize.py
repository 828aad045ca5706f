"""Boundary normalization for category input.

Older callers and the legacy store describe categories either as a bare
name string or as a structured mapping. Both forms are converted here,
once, into typed values; nothing downstream inspects the runtime shape.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .models import DEFAULT_CATEGORY_COLOR, DEFAULT_CATEGORY_ICON, Category

CategoryInput = str | dict[str, Any] | Category


@dataclass(frozen=True)
class CategoryUpdate:
    """Requested changes to a category. ``None`` leaves a field unchanged."""

    name: str | None = None
    color: str | None = None
    icon_name: str | None = None
    cover_image: str | None = None
    clear_cover_image: bool = False

    def apply(self, category: Category) -> Category:
        return Category(
            name=self.name or category.name,
            color=self.color or category.color,
            icon_name=self.icon_name or category.icon_name,
            cover_image=None if self.clear_cover_image else (self.cover_image or category.cover_image),
            extra=dict(category.extra),
        )


def normalize_category_input(value: CategoryInput) -> Category:
    """Convert a bare name or a mapping into a :class:`Category`.

    Raises:
        ValueError: if the input has no usable name.
        TypeError: for any other input type.
    """
    if isinstance(value, Category):
        return value
    if isinstance(value, str):
        return Category(name=value.strip(), color=DEFAULT_CATEGORY_COLOR, icon_name=DEFAULT_CATEGORY_ICON)
    if isinstance(value, dict):
        return Category.from_dict(value)
    raise TypeError(f"Unsupported category input: {type(value).__name__}")


def normalize_category_update(value: str | dict[str, Any] | CategoryUpdate) -> CategoryUpdate:
    """Convert a new-name string or a mapping of changes into a :class:`CategoryUpdate`.

    In the mapping form an explicit ``coverImage: None`` removes the cover.
    """
    if isinstance(value, CategoryUpdate):
        return value
    if isinstance(value, str):
        return CategoryUpdate(name=value.strip() or None)
    if isinstance(value, dict):
        cover_given = "coverImage" in value or "cover_image" in value
        cover = value.get("coverImage", value.get("cover_image"))
        return CategoryUpdate(
            name=(value.get("name") or "").strip() or None,
            color=value.get("color") or None,
            icon_name=value.get("iconName") or value.get("icon_name") or None,
            cover_image=cover,
            clear_cover_image=cover_given and cover is None,
        )
    raise TypeError(f"Unsupported category update: {type(value).__name__}")
