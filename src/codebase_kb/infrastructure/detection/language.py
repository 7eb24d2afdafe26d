import posixpath

from codebase_kb.config import DEFAULT_LANGUAGE_MAP
from codebase_kb.infrastructure.exclusion.extensions import COMPOUND_EXTENSIONS, resolve_extension

DEFAULT_LANGUAGE = "plaintext"

_SPECIAL_FILES = {
    "Dockerfile": "dockerfile",
    "Makefile": "makefile",
    "Vagrantfile": "ruby",
    "Gemfile": "ruby",
    "Rakefile": "ruby",
    ".gitignore": "gitignore",
    ".gitattributes": "gitattributes",
    ".editorconfig": "editorconfig",
    ".env": "dotenv",
    ".env.example": "dotenv",
    ".env.local": "dotenv",
    "composer.json": "json",
    "package.json": "json",
    "tsconfig.json": "json",
    "artisan": "php",
}

# Ordered: first prefix match wins
_SHEBANGS = (
    ("#!/usr/bin/env php", "php"),
    ("#!/usr/bin/php", "php"),
    ("#!/usr/bin/env node", "javascript"),
    ("#!/usr/bin/node", "javascript"),
    ("#!/bin/bash", "shell"),
    ("#!/bin/sh", "shell"),
    ("#!/usr/bin/env bash", "shell"),
    ("#!/usr/bin/env sh", "shell"),
    ("#!/usr/bin/env python", "python"),
    ("#!/usr/bin/python", "python"),
)


def _compound_language(extension: str) -> str:
    if extension == "blade.php":
        return "blade"
    if extension.endswith(".css"):
        return "css"
    if extension.endswith(".ts"):
        return "typescript"
    return "javascript"


class LanguageDetector:
    """Maps a path (and optionally its content) to a language identifier."""

    def __init__(self, extension_map: dict[str, str] | None = None) -> None:
        self.extension_map = {
            k.lower(): v for k, v in (extension_map or DEFAULT_LANGUAGE_MAP).items()
        }

    def detect(self, path: str, content: str | None = None) -> str:
        extension = resolve_extension(path)

        if extension in COMPOUND_EXTENSIONS:
            return self.extension_map.get(extension, _compound_language(extension))

        if extension and extension.lower() in self.extension_map:
            return self.extension_map[extension.lower()]

        name = posixpath.basename(path.replace("\\", "/"))
        if name in _SPECIAL_FILES:
            return _SPECIAL_FILES[name]

        if content is not None:
            return self.detect_shebang(content) or DEFAULT_LANGUAGE

        return DEFAULT_LANGUAGE

    @staticmethod
    def detect_shebang(content: str) -> str | None:
        first_line = content.split("\n", 1)[0]
        if not first_line.startswith("#!"):
            return None
        for prefix, language in _SHEBANGS:
            if first_line.startswith(prefix):
                return language
        return None

    def extension_for(self, language: str) -> str | None:
        """First extension mapped to a language, e.g. ``python`` -> ``py``."""
        for extension, mapped in self.extension_map.items():
            if mapped == language:
                return extension
        return None
