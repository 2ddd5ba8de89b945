"""Read and write Claude Code settings.json files.

Only the ``hooks`` section is touched; every other key in the file is
preserved as-is.
"""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Iterator, Optional


class ClaudeConfigEditor:
    """Hook editor for a Claude Code settings.json file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    @classmethod
    def user_level(cls) -> ClaudeConfigEditor:
        """Editor for ~/.claude/settings.json."""
        return cls(Path.home() / ".claude" / "settings.json")

    @classmethod
    def project_level(cls, project_dir: Path | None = None) -> ClaudeConfigEditor:
        """Editor for <project>/.claude/settings.json (project defaults to cwd)."""
        base = Path(project_dir) if project_dir else Path.cwd()
        return cls(base / ".claude" / "settings.json")

    def load(self) -> dict:
        """Load settings from file.

        Returns empty dict if file doesn't exist.
        Raises ValueError on invalid JSON or non-object content.
        """
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} contains non-object JSON")
        return data

    def save(self, settings: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(settings, indent=2) + "\n")

    @staticmethod
    def _entries(settings: dict, event: str) -> list:
        hooks = settings.get("hooks")
        if not isinstance(hooks, dict):
            return []
        entries = hooks.get(event)
        return entries if isinstance(entries, list) else []

    @classmethod
    def _find(cls, settings: dict, event: str, command: str) -> Iterator[tuple[int, dict]]:
        """Yield (matcher-group index, hook dict) for each matching command hook."""
        for i, entry in enumerate(cls._entries(settings, event)):
            if not isinstance(entry, dict):
                continue
            for hook in entry.get("hooks", []):
                if isinstance(hook, dict) and hook.get("command") == command:
                    yield i, hook

    def has_hook(self, event: str, command: str) -> bool:
        return next(self._find(self.load(), event, command), None) is not None

    def hook_timeout(self, event: str, command: str) -> Optional[int]:
        """Timeout configured on an installed hook, None if absent or unset."""
        found = next(self._find(self.load(), event, command), None)
        return found[1].get("timeout") if found else None

    def add_hook(
        self, event: str, command: str, matcher: str = "", timeout: Optional[int] = None,
    ) -> bool:
        """Add a command hook for an event, or refresh its timeout.

        Returns True if the file changed, False if the hook was already
        installed as requested.
        """
        settings = self.load()
        updated = copy.deepcopy(settings)

        existing = list(self._find(updated, event, command))
        if existing:
            changed = False
            for _, hook in existing:
                if timeout is not None and hook.get("timeout") != timeout:
                    hook["timeout"] = timeout
                    changed = True
            if changed:
                self.save(updated)
            return changed

        hook = {"type": "command", "command": command}
        if timeout is not None:
            hook["timeout"] = timeout
        updated.setdefault("hooks", {}).setdefault(event, []).append({
            "matcher": matcher,
            "hooks": [hook],
        })
        self.save(updated)
        return True

    def remove_hook(self, event: str, command: str) -> bool:
        """Remove every matcher group containing this command.

        Returns True if anything was removed. Cleans up empty event arrays
        and an empty hooks dict.
        """
        settings = self.load()
        indexes = sorted({i for i, _ in self._find(settings, event, command)}, reverse=True)
        if not indexes:
            return False

        updated = copy.deepcopy(settings)
        for i in indexes:
            del updated["hooks"][event][i]
        if not updated["hooks"][event]:
            del updated["hooks"][event]
        if not updated["hooks"]:
            del updated["hooks"]

        self.save(updated)
        return True
