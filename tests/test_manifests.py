"""Tests for rigsmith.analysis.manifests — dependency and script readers."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from rigsmith.analysis.manifests import read_compose, read_dependencies, read_scripts

if TYPE_CHECKING:
    from pathlib import Path


def _write_file(path: Path, content: str = "") -> None:
    """Create parent dirs and write content to a file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


class TestReadDependencies:
    def test_package_json(self, tmp_path: Path) -> None:
        _write_file(
            tmp_path / "package.json",
            json.dumps(
                {
                    "dependencies": {"express": "^4", "pg": "^8"},
                    "devDependencies": {"jest": "^29"},
                }
            ),
        )
        assert read_dependencies(tmp_path) == ["express", "pg", "jest"]

    def test_requirements_txt(self, tmp_path: Path) -> None:
        _write_file(
            tmp_path / "requirements.txt",
            "# web\n"
            "Django>=4.2; python_version >= '3.10'\n"
            "-r base.txt\n"
            "\n"
            "psycopg2-binary==2.9.9  # db\n"
            "celery[redis]\n",
        )
        assert read_dependencies(tmp_path) == ["Django", "psycopg2-binary", "celery"]

    def test_pyproject_pep621_and_poetry(self, tmp_path: Path) -> None:
        _write_file(
            tmp_path / "pyproject.toml",
            "[project]\n"
            'dependencies = ["fastapi>=0.110", "asyncpg"]\n'
            "\n"
            "[tool.poetry.dependencies]\n"
            'python = "^3.11"\n'
            'redis = "^5"\n',
        )
        assert read_dependencies(tmp_path) == ["fastapi", "asyncpg", "redis"]

    def test_go_mod(self, tmp_path: Path) -> None:
        _write_file(
            tmp_path / "go.mod",
            "module example.com/app\n"
            "\n"
            "go 1.22\n"
            "\n"
            "require (\n"
            "\tgithub.com/lib/pq v1.10.9\n"
            "\tgithub.com/redis/go-redis/v9 v9.5.1\n"
            ")\n",
        )
        assert read_dependencies(tmp_path) == [
            "github.com/lib/pq",
            "github.com/redis/go-redis/v9",
        ]

    def test_pom_skips_project_artifact(self, tmp_path: Path) -> None:
        _write_file(
            tmp_path / "pom.xml",
            "<project><artifactId>my-service</artifactId>"
            "<dependencies><dependency><artifactId>spring-boot-starter-web</artifactId>"
            "</dependency></dependencies></project>",
        )
        assert read_dependencies(tmp_path) == ["spring-boot-starter-web"]

    def test_gemfile_and_composer(self, tmp_path: Path) -> None:
        _write_file(tmp_path / "Gemfile", "source 'https://rubygems.org'\ngem 'rails'\ngem \"pg\"\n")
        _write_file(
            tmp_path / "composer.json",
            json.dumps({"require": {"php": ">=8.1", "ext-json": "*", "laravel/framework": "^11"}}),
        )
        assert read_dependencies(tmp_path) == ["rails", "pg", "laravel/framework"]

    def test_dedupes_case_insensitively(self, tmp_path: Path) -> None:
        _write_file(tmp_path / "package.json", json.dumps({"dependencies": {"Redis": "^4"}}))
        _write_file(tmp_path / "requirements.txt", "redis\n")
        assert read_dependencies(tmp_path) == ["Redis"]

    def test_broken_manifest_is_ignored(self, tmp_path: Path) -> None:
        _write_file(tmp_path / "package.json", "{not json")
        _write_file(tmp_path / "Cargo.toml", "[dependencies]\ntokio = '1'\n")
        assert read_dependencies(tmp_path) == ["tokio"]

    def test_empty_project(self, tmp_path: Path) -> None:
        assert read_dependencies(tmp_path) == []


class TestReadScripts:
    def test_package_json_and_procfile(self, tmp_path: Path) -> None:
        _write_file(
            tmp_path / "package.json",
            json.dumps({"scripts": {"start": "node index.js", "odd": ["not", "a", "string"]}}),
        )
        _write_file(tmp_path / "Procfile", "web: gunicorn app:app\nstart: ignored\n")
        scripts = read_scripts(tmp_path)
        assert scripts == {"start": "node index.js", "web": "gunicorn app:app"}


class TestReadCompose:
    def test_returns_file_and_services(self, tmp_path: Path) -> None:
        _write_file(tmp_path / "compose.yaml", "services:\n  web:\n    image: nginx\n")
        result = read_compose(tmp_path)
        assert result == ("compose.yaml", {"web": {"image": "nginx"}})

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        _write_file(tmp_path / "docker-compose.yml", "services: [\n")
        assert read_compose(tmp_path) is None

    def test_no_services(self, tmp_path: Path) -> None:
        _write_file(tmp_path / "docker-compose.yml", "version: '3'\n")
        assert read_compose(tmp_path) is None
