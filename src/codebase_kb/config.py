import os
from pathlib import Path

import yaml
from loguru import logger
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_EXCLUDED_DIRECTORIES = [
    ".git",
    ".svn",
    ".hg",
    "vendor",
    "node_modules",
    "bower_components",
    "storage",
    "bootstrap/cache",
    "public/build",
    "public/hot",
    "dist",
    "build",
    ".output",
    ".next",
    ".nuxt",
    ".idea",
    ".vscode",
    ".fleet",
    "cache",
    ".cache",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    ".phpunit.cache",
    "coverage",
    ".nyc_output",
]

DEFAULT_EXCLUDED_PATTERNS = [
    "**/node_modules/**",
    "**/vendor/**",
    "**/.git/**",
    "**/storage/logs/**",
    "**/storage/framework/**",
    "**/bootstrap/cache/**",
]

DEFAULT_EXCLUDED_FILES = [".DS_Store", "Thumbs.db", ".gitkeep", ".gitignore", ".editorconfig"]

DEFAULT_EXCLUDED_EXTENSIONS = ["lock", "log", "map", "min.js", "min.css", "bundle.js", "chunk.js"]

DEFAULT_BINARY_EXTENSIONS = [
    # Images
    "png", "jpg", "jpeg", "gif", "bmp", "ico", "webp", "svg", "avif", "tiff",
    # Audio/Video
    "mp3", "mp4", "wav", "avi", "mov", "mkv", "webm", "ogg", "flac",
    # Documents
    "pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx",
    # Archives
    "zip", "tar", "gz", "rar", "7z", "bz2", "xz",
    # Executables
    "exe", "dll", "so", "dylib", "bin", "app",
    # Fonts
    "ttf", "otf", "woff", "woff2", "eot",
    # Databases
    "sqlite", "db", "sqlite3", "mdb",
    # Other
    "phar", "jar", "war", "pyc",
]  # fmt: skip

DEFAULT_LANGUAGE_MAP = {
    "php": "php",
    "blade.php": "blade",
    "js": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "ts": "typescript",
    "mts": "typescript",
    "tsx": "typescriptreact",
    "jsx": "javascriptreact",
    "vue": "vue",
    "svelte": "svelte",
    "py": "python",
    "pyi": "python",
    "css": "css",
    "scss": "scss",
    "sass": "sass",
    "less": "less",
    "json": "json",
    "yml": "yaml",
    "yaml": "yaml",
    "toml": "toml",
    "md": "markdown",
    "mdx": "mdx",
    "sql": "sql",
    "sh": "shell",
    "bash": "shell",
    "zsh": "shell",
    "xml": "xml",
    "html": "html",
    "twig": "twig",
    "env": "dotenv",
}


class BreakWeights(BaseModel):
    """Relative preference of line kinds when splitting a large file."""

    empty_line: int = 10
    function_boundary: int = 8
    class_boundary: int = 9
    block_end: int = 7


class ChunkingConfig(BaseModel):
    """Chunk size bounds and split heuristics."""

    max_chunk_bytes: int = 200 * 1024
    max_chunk_lines: int = 400
    min_chunk_lines: int = 250
    break_weights: BreakWeights = Field(default_factory=BreakWeights)
    priority_dirs: list[str] = Field(
        default_factory=lambda: [
            "app",
            "routes",
            "config",
            "database/migrations",
            "resources/views",
            "resources/js",
            "resources/css",
            "tests",
        ]
    )

    @model_validator(mode="after")
    def _check_bounds(self) -> "ChunkingConfig":
        if self.min_chunk_lines < 1 or self.max_chunk_lines < 1:
            raise ValueError("Chunk line bounds must be positive")
        if self.min_chunk_lines > self.max_chunk_lines:
            raise ValueError(
                f"min_chunk_lines ({self.min_chunk_lines}) exceeds "
                f"max_chunk_lines ({self.max_chunk_lines})"
            )
        return self


class ExclusionToggles(BaseModel):
    """Switches that remove entries from the default exclusion lists."""

    include_vendor: bool = False
    include_node_modules: bool = False
    include_storage: bool = False
    include_lock_files: bool = False
    include_source_maps: bool = False
    include_minified: bool = False


class ExclusionConfig(BaseModel):
    """Default exclusion rules, before toggles and project overrides."""

    directories: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDED_DIRECTORIES))
    patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDED_PATTERNS))
    files: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDED_FILES))
    extensions: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDED_EXTENSIONS))
    binary_extensions: list[str] = Field(default_factory=lambda: list(DEFAULT_BINARY_EXTENSIONS))
    toggles: ExclusionToggles = Field(default_factory=ExclusionToggles)
    allow_project_overrides: bool = True


class KnowledgeBaseConfig(BaseModel):
    """Snapshot output settings."""

    ndjson_threshold: int = 10_000
    scanner_version: str = "2.1.0"
    keep_old_scans: int = 3


DEFAULT_RELATIONSHIP_WEIGHTS = {
    "imports": 1.0,
    "extends": 0.9,
    "implements": 0.9,
    "uses_trait": 0.8,
    "references": 0.5,
}


class GraphConfig(BaseModel):
    """Symbol graph edge weights and size limits.

    Configured weights are merged over the defaults, so a partial mapping only
    overrides the relationships it names.
    """

    relationship_weights: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_RELATIONSHIP_WEIGHTS)
    )
    max_nodes: int = 5000
    max_depth: int = 5

    @field_validator("relationship_weights", mode="after")
    @classmethod
    def _merge_default_weights(cls, weights: dict[str, float]) -> dict[str, float]:
        return {**DEFAULT_RELATIONSHIP_WEIGHTS, **weights}


class FrameworkHintsConfig(BaseModel):
    """Path globs and content markers that tag files with framework hints."""

    path_patterns: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "laravel": ["app/Http/Controllers/**", "app/Models/**", "routes/*.php"],
            "eloquent": ["app/Models/**"],
            "blade": ["resources/views/**/*.blade.php"],
            "livewire": ["app/Livewire/**", "app/Http/Livewire/**", "resources/views/livewire/**"],
            "inertia": ["resources/js/Pages/**", "resources/js/pages/**"],
        }
    )
    content_markers: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "eloquent": ["extends Model", "use HasFactory"],
            "livewire": ["extends Component", "use Livewire"],
            "fastapi": ["from fastapi import"],
            "pydantic": ["from pydantic import"],
        }
    )


class Settings(BaseSettings):
    """Global configuration for the codebase-kb application."""

    # General System
    kb_path: str = "./knowledge_base"
    project_id: str = "default"
    log_level: str = "INFO"
    log_serialize: bool = False
    max_file_size: int = 1024 * 1024
    exclusion_log_limit: int = 1000

    # Component sections
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    exclusions: ExclusionConfig = Field(default_factory=ExclusionConfig)
    knowledge_base: KnowledgeBaseConfig = Field(default_factory=KnowledgeBaseConfig)
    graph: GraphConfig = Field(default_factory=GraphConfig)
    framework_hints: FrameworkHintsConfig = Field(default_factory=FrameworkHintsConfig)
    languages: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_LANGUAGE_MAP))

    model_config = SettingsConfigDict(env_prefix="KB_", env_file=".env", extra="ignore")


_SECTIONS: dict[str, type[BaseModel]] = {
    "chunking": ChunkingConfig,
    "exclusions": ExclusionConfig,
    "knowledge_base": KnowledgeBaseConfig,
    "graph": GraphConfig,
    "framework_hints": FrameworkHintsConfig,
}


def load_settings(config_file: str | None = None) -> Settings:
    """Loads base settings and overrides them from config.yaml."""
    base_settings = Settings()

    if config_file is None:
        config_file = os.getenv("KB_CONFIG_FILE", "config.yaml")

    yaml_path = Path(config_file)
    if yaml_path.exists():
        with open(yaml_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

            if not data:
                return base_settings

            # Override System configuration
            if "system" in data and isinstance(data["system"], dict):
                for key, value in data["system"].items():
                    if hasattr(base_settings, key) and key not in _SECTIONS:
                        setattr(base_settings, key, value)

            # Override component sections
            for name, model in _SECTIONS.items():
                if name in data and isinstance(data[name], dict):
                    setattr(base_settings, name, model(**data[name]))

            if "languages" in data and isinstance(data["languages"], dict):
                base_settings.languages = {**base_settings.languages, **data["languages"]}
    else:
        logger.warning("Configuration file '{}' not found, using defaults", yaml_path)

    return base_settings


# Global singleton instance
settings = load_settings()
