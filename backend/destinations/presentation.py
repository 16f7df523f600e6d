"""Response presentation decisions that do not affect stored data."""

from __future__ import annotations

import logging
from pathlib import Path

from .models import DestinationDefinition

logger = logging.getLogger(__name__)


class IconPresenter:
    """Decides how a definition's icon appears in API responses.

    With ``use_icon_url`` enabled the icon is the definition's CDN URL;
    otherwise the SVG content is inlined from ``icons_dir``.
    """

    def __init__(self, use_icon_url: bool = True, icons_dir: str | Path | None = None):
        self.use_icon_url = use_icon_url
        self.icons_dir = Path(icons_dir) if icons_dir else None

    def icon_for(self, definition: DestinationDefinition) -> str | None:
        if self.use_icon_url:
            return definition.icon_url
        return self._load_inline_icon(definition.icon)

    def _load_inline_icon(self, icon: str | None) -> str | None:
        if not icon or self.icons_dir is None:
            return None
        # Path traversal guard
        if ".." in icon or "/" in icon or "\\" in icon:
            logger.warning(f"Rejected icon name: {icon!r}")
            return None

        icon_path = self.icons_dir / icon
        if not icon_path.is_file():
            logger.debug(f"Icon not found: {icon_path}")
            return None
        return icon_path.read_text(encoding="utf-8")
