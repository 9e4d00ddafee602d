"""
UI Design Agent for Agent Foundry.
"""

import re
from typing import Any, Dict, List

from ..models.core import AgentTask, DesignPayload, TaskKind, TaskResult
from ..models.errors import ErrorCategory
from .base import BaseAgent


THEMES = {
    "light": {"background": "#ffffff", "foreground": "#111827", "primary": "#2563eb"},
    "dark": {"background": "#0f172a", "foreground": "#f8fafc", "primary": "#60a5fa"},
}


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-") or "item"


class UIDesignAgent(BaseAgent):
    """Derives pages, shared components and design tokens from features."""

    def __init__(self, name: str = "UIDesignAgent", **kwargs):
        super().__init__(name, [TaskKind.UI_DESIGN], **kwargs)

    async def process(self, task: AgentTask) -> TaskResult:
        payload = self.parse_payload(task, DesignPayload)
        if payload.theme not in THEMES:
            return TaskResult.failure(
                f"Unknown theme '{payload.theme}'",
                ErrorCategory.VALIDATION,
                next_steps=[f"Use one of: {', '.join(sorted(THEMES))}"]
            )

        pages = self._pages(payload.requirements.features)
        design = {
            "pages": pages,
            "components": self._components(pages),
            "tokens": {
                "colors": THEMES[payload.theme],
                "spacing": [0, 4, 8, 12, 16, 24, 32, 48],
                "radius": 8,
            },
            "accessibility": ["semantic landmarks", "focus outlines", "contrast AA"],
        }
        return TaskResult(
            success=True,
            data=design,
            metadata={"confidence": 0.85},
            next_steps=["Review page layout", "Confirm design tokens"]
        )

    @staticmethod
    def _pages(features: List[str]) -> List[Dict[str, Any]]:
        pages = [{"name": "Home", "route": "/"}]
        for feature in features:
            slug = slugify(feature)
            pages.append({"name": feature.strip().title(), "route": f"/{slug}"})
        return pages

    @staticmethod
    def _components(pages: List[Dict[str, Any]]) -> List[str]:
        components = ["Layout", "Navigation", "Footer"]
        if len(pages) > 3:
            components.append("Sidebar")
        return components
