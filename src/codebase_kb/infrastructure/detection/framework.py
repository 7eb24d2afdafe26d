import re

from codebase_kb.config import FrameworkHintsConfig
from codebase_kb.infrastructure.exclusion.rules import glob_to_regex

_MIGRATION = re.compile(r"database/migrations/\d+_.*\.php$")
_PYTHON_TEST = re.compile(r"(?:^|/)(?:test_\w+|\w+_test)\.py$")

# (path fragment, hint) pairs checked with a plain substring test
_PATH_HINTS = (
    ("app/Http/Controllers/", "laravel"),
    ("app/Services/", "services"),
    ("app/Models/", "eloquent"),
    ("routes/api.php", "api"),
    ("app/Http/Controllers/Api/", "api"),
    ("app/Jobs/", "queues"),
    ("app/Events/", "events"),
    ("app/Listeners/", "events"),
    ("app/Listeners/", "listener"),
)


class FrameworkHintDetector:
    """Tags files with framework hints from configured globs, markers and path heuristics."""

    def __init__(self, config: FrameworkHintsConfig | None = None) -> None:
        config = config or FrameworkHintsConfig()
        self.path_patterns = {
            framework: [glob_to_regex(p) for p in patterns]
            for framework, patterns in config.path_patterns.items()
        }
        self.content_markers = config.content_markers

    def detect(self, path: str, content: str | None = None) -> list[str]:
        hints: list[str] = []

        for framework, patterns in self.path_patterns.items():
            if any(p.match(path) for p in patterns):
                hints.append(framework)

        if content is not None:
            for framework, markers in self.content_markers.items():
                if any(marker in content for marker in markers):
                    hints.append(framework)

        hints.extend(self._path_heuristics(path, content))

        # Unique, first occurrence order
        return list(dict.fromkeys(hints))

    @staticmethod
    def _path_heuristics(path: str, content: str | None) -> list[str]:
        hints = [hint for fragment, hint in _PATH_HINTS if fragment in path]

        if _MIGRATION.search(path):
            hints.append("laravel-migrations")

        in_tests = path.startswith("tests/") or "/tests/" in path
        if in_tests or path.endswith("Test.php"):
            hints.append("testing")
            if content and "use Tests\\TestCase" in content:
                hints.append("laravel-testing")
            if content and "use PHPUnit\\" in content:
                hints.append("phpunit")

        if _PYTHON_TEST.search(path) or path.endswith("conftest.py"):
            hints.append("testing")
            if content and "import pytest" in content:
                hints.append("pytest")

        return hints
