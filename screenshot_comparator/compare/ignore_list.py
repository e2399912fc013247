"""Known differences that must not fail a report."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from screenshot_comparator.errors import ConfigurationError
from screenshot_comparator.models.comparison import IgnoreRule

logger = logging.getLogger(__name__)


class IgnoreList:
    """Set of ignore rules matched by exact URL, component and percentage."""

    def __init__(self, rules: list[IgnoreRule] | None = None):
        self.rules: list[IgnoreRule] = list(rules or [])

    def __len__(self) -> int:
        return len(self.rules)

    @classmethod
    def load(cls, path: str | Path | None) -> "IgnoreList":
        """Load rules from a JSON array. A missing file yields an empty list."""
        if path is None:
            return cls()
        path = Path(path)
        if not path.exists():
            logger.debug("No ignore list at %s", path)
            return cls()
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, list):
                raise ConfigurationError(f"Ignore list must be a JSON array: {path}")
            rules = [IgnoreRule(**item) for item in data]
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            raise ConfigurationError(f"Invalid ignore list {path}: {e}") from e
        logger.info("Loaded %d ignore rules from %s", len(rules), path)
        return cls(rules)

    def save(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump([r.model_dump() for r in self.rules], f, indent=2)

    def add(self, rule: IgnoreRule) -> None:
        if rule not in self.rules:
            self.rules.append(rule)

    def match(self, url: str, component: str, percent: Optional[float]) -> IgnoreRule | None:
        if percent is None:
            return None
        for rule in self.rules:
            if rule.url == url and rule.component == component and rule.percents == percent:
                return rule
        return None
