"""Pytest configuration and fixtures."""

from pathlib import Path

import pytest
from loguru import logger

from codebase_kb.config import Settings
from codebase_kb.infrastructure.vcs.git import StaticRepositoryState

HEAD_SHA = "a1b2c3d4e5f60718293a4b5c6d7e8f9012345678"

SAMPLE_FILES = {
    "app/Models/User.php": """<?php

namespace App\\Models;

use Illuminate\\Database\\Eloquent\\Model;
use App\\Contracts\\HasRoles;

class User extends Model implements HasRoles
{
    use HasFactory;

    public function posts()
    {
        return $this->hasMany(Post::class);
    }
}
""",
    "app/Contracts/HasRoles.php": """<?php

namespace App\\Contracts;

interface HasRoles
{
    public function roles();
}
""",
    "app/Http/Controllers/UserController.php": """<?php

namespace App\\Http\\Controllers;

use App\\Models\\User;

class UserController extends Controller
{
    public function show($id)
    {
        return User::find($id);
    }
}
""",
    "resources/views/layouts/app.blade.php": "<html>\n<body>@yield('content')</body>\n</html>\n",
    "resources/views/users/index.blade.php": (
        "@extends('layouts.app')\n\n@section('content')\n<h1>Users</h1>\n@endsection\n"
    ),
    "resources/js/app.js": "import Button from './components/Button.vue';\n\nexport default {};\n",
    "resources/js/components/Button.vue": (
        "<template>\n  <button><slot /></button>\n</template>\n\n"
        "<script setup>\nconst label = ref('ok')\n</script>\n"
    ),
    "README.md": "# Sample\n\nSee [the model](app/Models/User.php).\n",
    "node_modules/lib/index.js": "module.exports = {};\n",
    "composer.lock": "{}\n",
    "storage/logs/laravel.log": "log line\n",
}


@pytest.fixture
def caplog(caplog):
    """Enable Loguru logging to be captured by pytest's caplog fixture."""
    import logging

    class PropagateHandler(logging.Handler):
        def emit(self, record):
            logging.getLogger(record.name).handle(record)

    handler_id = logger.add(PropagateHandler(), format="{message}")
    yield caplog
    logger.remove(handler_id)


def write_files(root: Path, files: dict[str, str | bytes]) -> Path:
    """Materializes a {relative path: content} mapping under root."""
    for relative, content in files.items():
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        else:
            target.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def make_repo(tmp_path):
    """Factory writing a repository from a {path: content} mapping."""

    def _make(files: dict[str, str | bytes], name: str = "repo") -> Path:
        return write_files(tmp_path / name, files)

    return _make


@pytest.fixture
def sample_repo(tmp_path):
    """A small Laravel-style repository with excluded and binary content."""
    repo = write_files(tmp_path / "repo", dict(SAMPLE_FILES))
    write_files(repo, {"public/logo.png": b"\x89PNG\r\n\x1a\n\x00\x00"})
    return repo


@pytest.fixture
def kb_settings(tmp_path):
    """Settings writing snapshots under a temporary knowledge base path."""
    return Settings(kb_path=str(tmp_path / "kb"), project_id="sample")


@pytest.fixture
def repository_state():
    return StaticRepositoryState(HEAD_SHA, branch="main")
