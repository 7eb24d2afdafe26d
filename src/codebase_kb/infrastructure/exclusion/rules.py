import hashlib
import json
import re
from pathlib import Path
from typing import Any

from loguru import logger

from codebase_kb.config import ExclusionConfig, ExclusionToggles
from codebase_kb.core.models import Excluded, ExclusionDecision, Included
from codebase_kb.infrastructure.exclusion.extensions import normalize_path, resolve_extension

PROJECT_OVERRIDES_FILE = "project_scan_config.json"

_RULE_KINDS = ("directories", "patterns", "files", "extensions")


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compiles a path glob: ``**`` crosses directories, ``*`` and ``?`` stay in one segment."""
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE)


def _without(items: list[str], *removed: str) -> list[str]:
    return [item for item in items if item not in removed]


def _merge(items: list[str], extra: Any) -> list[str]:
    if not isinstance(extra, list):
        return items
    merged = list(items)
    for item in extra:
        if isinstance(item, str) and item not in merged:
            merged.append(item)
    return merged


class ExclusionRuleSet:
    """Decides which repository paths are indexed and which are binary.

    Rules are evaluated in a fixed order and the first match wins: directory
    segment, exact file name, resolved extension, glob pattern. The instance is
    owned by a single scan; runtime additions recompute ``rules_version``.
    """

    def __init__(
        self,
        directories: list[str],
        files: list[str],
        extensions: list[str],
        patterns: list[str],
        binary_extensions: list[str],
    ) -> None:
        self._directories = [d.strip("/") for d in directories]
        self._files = list(files)
        self._extensions = list(extensions)
        self._patterns = list(patterns)
        self._binary_extensions = [e.lower() for e in binary_extensions]
        self._compiled = {p: glob_to_regex(p) for p in self._patterns}
        self._rules_version = self._compute_rules_version()

    @classmethod
    def from_config(
        cls, config: ExclusionConfig, repo_root: Path | None = None
    ) -> "ExclusionRuleSet":
        """Builds the rule set from defaults, toggles and optional per-project overrides."""
        rules = {
            "directories": list(config.directories),
            "patterns": list(config.patterns),
            "files": list(config.files),
            "extensions": list(config.extensions),
        }
        _apply_toggles(rules, config.toggles)

        if repo_root is not None and config.allow_project_overrides:
            _apply_project_overrides(rules, repo_root)

        return cls(
            directories=rules["directories"],
            files=rules["files"],
            extensions=rules["extensions"],
            patterns=rules["patterns"],
            binary_extensions=list(config.binary_extensions),
        )

    @property
    def rules_version(self) -> str:
        return self._rules_version

    def decide(self, relative_path: str) -> ExclusionDecision:
        """Returns the first exclusion rule matching the path, or Included."""
        path = normalize_path(relative_path)
        segments = [s for s in path.split("/") if s]
        file_name = segments[-1] if segments else ""

        directory = self._match_directory(segments)
        if directory is not None:
            return Excluded(rule=f"directory:{directory}", matched_at=directory)

        if file_name in self._files:
            return Excluded(rule=f"file:{file_name}", matched_at=file_name)

        extension = resolve_extension(path)
        if extension and extension in self._extensions:
            return Excluded(rule=f"extension:{extension}", matched_at=extension)

        for pattern, regex in self._compiled.items():
            if regex.match(path):
                return Excluded(rule=f"pattern:{pattern}", matched_at=pattern)

        return Included()

    def is_binary(self, relative_path: str) -> bool:
        extension = resolve_extension(relative_path)
        if not extension:
            return False
        return extension.lower() in self._binary_extensions

    def is_directory_excluded(self, directory: str) -> bool:
        return directory.strip("/") in self._directories

    def add_excluded_directory(self, directory: str) -> None:
        directory = directory.strip("/")
        if directory and directory not in self._directories:
            self._directories.append(directory)
            self._rules_version = self._compute_rules_version()

    def remove_excluded_directory(self, directory: str) -> None:
        self._directories = _without(self._directories, directory.strip("/"))
        self._rules_version = self._compute_rules_version()

    def with_directory(self, directory: str) -> "ExclusionRuleSet":
        """Returns a copy that also excludes ``directory``."""
        clone = self._copy()
        clone.add_excluded_directory(directory)
        return clone

    def without_directory(self, directory: str) -> "ExclusionRuleSet":
        """Returns a copy that no longer excludes ``directory``."""
        clone = self._copy()
        clone.remove_excluded_directory(directory)
        return clone

    def active_rules(self) -> dict[str, Any]:
        return {
            "directories": list(self._directories),
            "patterns": list(self._patterns),
            "files": list(self._files),
            "extensions": list(self._extensions),
            "binary_extensions": list(self._binary_extensions),
            "version": self._rules_version,
        }

    def _copy(self) -> "ExclusionRuleSet":
        return ExclusionRuleSet(
            directories=self._directories,
            files=self._files,
            extensions=self._extensions,
            patterns=self._patterns,
            binary_extensions=self._binary_extensions,
        )

    def _match_directory(self, segments: list[str]) -> str | None:
        """The excluded directory matching at the earliest path segment."""
        for start in range(len(segments)):
            for directory in self._directories:
                # Multi-segment entries ("bootstrap/cache") match a contiguous run of segments
                wanted = directory.split("/")
                if segments[start : start + len(wanted)] == wanted:
                    return directory
        return None

    def _compute_rules_version(self) -> str:
        rules = {
            "binary": sorted(self._binary_extensions),
            "directories": sorted(self._directories),
            "extensions": sorted(self._extensions),
            "files": sorted(self._files),
            "patterns": sorted(self._patterns),
        }
        encoded = json.dumps(rules, sort_keys=True, separators=(",", ":"))
        return hashlib.sha1(encoded.encode("utf-8")).hexdigest()


def _apply_toggles(rules: dict[str, list[str]], toggles: ExclusionToggles) -> None:
    for enabled, name in (
        (toggles.include_vendor, "vendor"),
        (toggles.include_node_modules, "node_modules"),
        (toggles.include_storage, "storage"),
    ):
        if enabled:
            rules["directories"] = _without(rules["directories"], name)
            rules["patterns"] = [p for p in rules["patterns"] if name not in p]

    if toggles.include_lock_files:
        rules["extensions"] = _without(rules["extensions"], "lock")
    if toggles.include_source_maps:
        rules["extensions"] = _without(rules["extensions"], "map")
    if toggles.include_minified:
        rules["extensions"] = _without(rules["extensions"], "min.js", "min.css")


def _apply_project_overrides(rules: dict[str, list[str]], repo_root: Path) -> None:
    config_path = repo_root / PROJECT_OVERRIDES_FILE
    if not config_path.is_file():
        return

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable {}: {}", config_path, e)
        return

    overrides = data.get("exclusions") if isinstance(data, dict) else None
    if not isinstance(overrides, dict):
        return

    for kind in _RULE_KINDS:
        rules[kind] = _merge(rules[kind], overrides.get(f"additional_{kind}"))

    remove = overrides.get("remove_from_defaults")
    if isinstance(remove, dict):
        for kind in _RULE_KINDS:
            if isinstance(remove.get(kind), list):
                rules[kind] = _without(rules[kind], *remove[kind])

    toggles = overrides.get("toggles")
    if isinstance(toggles, dict):
        known = {k: bool(v) for k, v in toggles.items() if k in ExclusionToggles.model_fields}
        _apply_toggles(rules, ExclusionToggles(**known))

    logger.debug("Applied project exclusion overrides from {}", config_path)
