"""Docker generator: Dockerfile, its ignore file and docker-compose.yml."""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

from rigsmith.analysis.stack import primary_ecosystem
from rigsmith.classify import is_secret_key
from rigsmith.generators.base import (
    ArtifactGenerator,
    ArtifactTree,
    Document,
    GenerationOptions,
    app_endpoints,
    app_port,
    dump_yaml,
    project_relative,
    register,
    slugify,
)

if TYPE_CHECKING:
    from rigsmith.analysis.model import Analysis
    from rigsmith.intent.model import Intent

ROOT = "docker"

# canonical type -> (compose service name, definition)
DATA_SERVICES: dict[str, tuple[str, dict[str, Any]]] = {
    "postgresql": (
        "postgres",
        {
            "image": "postgres:15",
            "environment": {
                "POSTGRES_DB": "app",
                "POSTGRES_USER": "app",
                "POSTGRES_PASSWORD": "${POSTGRES_PASSWORD:-change-me}",
            },
            "volumes": ["postgres_data:/var/lib/postgresql/data"],
            "ports": ["5432:5432"],
        },
    ),
    "mysql": (
        "mysql",
        {
            "image": "mysql:8",
            "environment": {
                "MYSQL_DATABASE": "app",
                "MYSQL_ROOT_PASSWORD": "${MYSQL_ROOT_PASSWORD:-change-me}",
            },
            "volumes": ["mysql_data:/var/lib/mysql"],
            "ports": ["3306:3306"],
        },
    ),
    "mongodb": (
        "mongo",
        {
            "image": "mongo:6",
            "volumes": ["mongo_data:/data/db"],
            "ports": ["27017:27017"],
        },
    ),
    "redis": (
        "redis",
        {
            "image": "redis:7-alpine",
            "volumes": ["redis_data:/data"],
            "ports": ["6379:6379"],
        },
    ),
    "memcached": (
        "memcached",
        {"image": "memcached:1.6-alpine", "ports": ["11211:11211"]},
    ),
    "rabbitmq": (
        "rabbitmq",
        {
            "image": "rabbitmq:3-management",
            "volumes": ["rabbitmq_data:/var/lib/rabbitmq"],
            "ports": ["5672:5672", "15672:15672"],
        },
    ),
    "kafka": (
        "kafka",
        {
            "image": "bitnami/kafka:3.7",
            "environment": {
                "KAFKA_CFG_NODE_ID": "0",
                "KAFKA_CFG_PROCESS_ROLES": "controller,broker",
                "KAFKA_CFG_LISTENERS": "PLAINTEXT://:9092,CONTROLLER://:9093",
                "KAFKA_CFG_CONTROLLER_QUORUM_VOTERS": "0@kafka:9093",
                "KAFKA_CFG_CONTROLLER_LISTENER_NAMES": "CONTROLLER",
            },
            "volumes": ["kafka_data:/bitnami/kafka"],
            "ports": ["9092:9092"],
        },
    ),
}

_COMMON_IGNORES = [
    ".git",
    ".gitignore",
    ".env",
    ".env.*",
    "!.env.example",
    "Dockerfile*",
    "docker-compose*.yml",
    "infrastructure/",
    "infra-reports/",
    "*.log",
    ".DS_Store",
]
_ECOSYSTEM_IGNORES: dict[str, list[str]] = {
    "Node.js": ["node_modules/", "npm-debug.log*", "coverage/", ".next/", "dist/"],
    "Python": ["__pycache__/", "*.pyc", ".venv/", "venv/", ".pytest_cache/", ".mypy_cache/"],
    "Java": ["target/", "build/", ".gradle/"],
    "Go": ["bin/", "vendor/"],
    "Rust": ["target/"],
    "Ruby": ["vendor/bundle/", "log/", "tmp/"],
    "PHP": ["vendor/"],
}


def _node_stages(analysis: Analysis, port: int) -> tuple[str, str]:
    manager = analysis.package_manager or "npm"
    install = {
        "yarn": "yarn install --frozen-lockfile",
        "pnpm": "corepack enable && pnpm install --frozen-lockfile",
    }.get(manager, "npm ci")
    run = {"yarn": "yarn", "pnpm": "pnpm"}.get(manager, "npm run")
    build = (
        "FROM node:20-alpine AS build\n"
        "WORKDIR /app\n"
        "COPY package*.json yarn.lock* pnpm-lock.yaml* ./\n"
        f"RUN {install}\n"
        "COPY . .\n"
        f"RUN {run} build --if-present"
    )
    runtime = (
        "FROM node:20-alpine\n"
        "ENV NODE_ENV=production\n"
        "WORKDIR /app\n"
        "COPY --from=build --chown=node:node /app ./\n"
        "USER node\n"
        f"EXPOSE {port}\n"
        'CMD ["npm", "start"]'
    )
    return build, runtime


def _python_command(analysis: Analysis, port: int) -> str:
    stack = set(analysis.tech_stack)
    if "Django" in stack:
        return f'CMD ["gunicorn", "--bind", "0.0.0.0:{port}", "config.wsgi:application"]'
    if "FastAPI" in stack:
        return f'CMD ["uvicorn", "main:app", "--host", "0.0.0.0", "--port", "{port}"]'
    if "Flask" in stack:
        return f'CMD ["gunicorn", "--bind", "0.0.0.0:{port}", "app:app"]'
    return 'CMD ["python", "main.py"]'


def _python_stages(analysis: Analysis, port: int) -> tuple[str, str]:
    build = (
        "FROM python:3.12-slim AS build\n"
        "WORKDIR /app\n"
        "RUN python -m venv /opt/venv\n"
        'ENV PATH="/opt/venv/bin:$PATH"\n'
        "COPY . .\n"
        "RUN if [ -f requirements.txt ]; then pip install --no-cache-dir -r requirements.txt; "
        "else pip install --no-cache-dir .; fi"
    )
    runtime = (
        "FROM python:3.12-slim\n"
        "ENV PYTHONDONTWRITEBYTECODE=1 PYTHONUNBUFFERED=1\n"
        'ENV PATH="/opt/venv/bin:$PATH"\n'
        "RUN useradd --create-home --uid 1000 app\n"
        "WORKDIR /app\n"
        "COPY --from=build /opt/venv /opt/venv\n"
        "COPY --chown=app:app . .\n"
        "USER app\n"
        f"EXPOSE {port}\n"
        f"{_python_command(analysis, port)}"
    )
    return build, runtime


def _java_stages(analysis: Analysis, port: int) -> tuple[str, str]:
    if analysis.package_manager == "gradle":
        build = (
            "FROM gradle:8-jdk21 AS build\n"
            "WORKDIR /app\n"
            "COPY . .\n"
            "RUN gradle bootJar --no-daemon -x test && cp build/libs/*.jar app.jar"
        )
    else:
        build = (
            "FROM maven:3.9-eclipse-temurin-21 AS build\n"
            "WORKDIR /app\n"
            "COPY pom.xml .\n"
            "RUN mvn -q dependency:go-offline\n"
            "COPY src ./src\n"
            "RUN mvn -q package -DskipTests && cp target/*.jar app.jar"
        )
    runtime = (
        "FROM eclipse-temurin:21-jre\n"
        "RUN useradd --uid 1000 app\n"
        "WORKDIR /app\n"
        "COPY --from=build /app/app.jar app.jar\n"
        "USER app\n"
        f"EXPOSE {port}\n"
        'ENTRYPOINT ["java", "-jar", "app.jar"]'
    )
    return build, runtime


def _go_stages(analysis: Analysis, port: int) -> tuple[str, str]:
    build = (
        "FROM golang:1.22-alpine AS build\n"
        "WORKDIR /src\n"
        "COPY go.mod go.sum* ./\n"
        "RUN go mod download\n"
        "COPY . .\n"
        "RUN CGO_ENABLED=0 go build -o /out/app ."
    )
    runtime = (
        "FROM gcr.io/distroless/static-debian12:nonroot\n"
        "COPY --from=build /out/app /app\n"
        f"EXPOSE {port}\n"
        'ENTRYPOINT ["/app"]'
    )
    return build, runtime


def _rust_stages(analysis: Analysis, port: int) -> tuple[str, str]:
    name = slugify(analysis.project_name)
    build = (
        "FROM rust:1.77 AS build\n"
        "WORKDIR /src\n"
        "COPY . .\n"
        f"RUN cargo build --release && cp target/release/{name} /app"
    )
    runtime = (
        "FROM debian:bookworm-slim\n"
        "RUN useradd --uid 1000 app\n"
        "COPY --from=build /app /usr/local/bin/app\n"
        "USER app\n"
        f"EXPOSE {port}\n"
        'ENTRYPOINT ["/usr/local/bin/app"]'
    )
    return build, runtime


def _ruby_stages(analysis: Analysis, port: int) -> tuple[str, str]:
    build = (
        "FROM ruby:3.3-slim AS build\n"
        "WORKDIR /app\n"
        "COPY Gemfile Gemfile.lock* ./\n"
        "RUN bundle config set without 'development test' && bundle install"
    )
    runtime = (
        "FROM ruby:3.3-slim\n"
        "RUN useradd --create-home --uid 1000 app\n"
        "WORKDIR /app\n"
        "COPY --from=build /usr/local/bundle /usr/local/bundle\n"
        "COPY --chown=app:app . .\n"
        "USER app\n"
        f"EXPOSE {port}\n"
        f'CMD ["bundle", "exec", "rackup", "--host", "0.0.0.0", "--port", "{port}"]'
    )
    return build, runtime


def _php_stages(analysis: Analysis, port: int) -> tuple[str, str]:
    build = (
        "FROM composer:2 AS build\n"
        "WORKDIR /app\n"
        "COPY composer.json composer.lock* ./\n"
        "RUN composer install --no-dev --no-scripts --prefer-dist\n"
        "COPY . ."
    )
    runtime = (
        "FROM php:8.3-apache\n"
        "COPY --from=build --chown=www-data:www-data /app /var/www/html\n"
        f"RUN sed -i 's/Listen 80/Listen {port}/' /etc/apache2/ports.conf\n"
        "USER www-data\n"
        f"EXPOSE {port}"
    )
    return build, runtime


_STAGES = {
    "Node.js": _node_stages,
    "Python": _python_stages,
    "Java": _java_stages,
    "Go": _go_stages,
    "Rust": _rust_stages,
    "Ruby": _ruby_stages,
    "PHP": _php_stages,
}


def render_dockerfile(analysis: Analysis, header: str) -> str:
    port = app_port(analysis)
    ecosystem = primary_ecosystem(analysis.tech_stack)
    doc = Document().section("header", header)
    stages = _STAGES.get(ecosystem or "")
    if stages is None:
        doc.section(
            "runtime",
            "# No supported ecosystem detected; replace with your build.\n"
            "FROM alpine:3.20\n"
            "RUN adduser -D -u 1000 app\n"
            "WORKDIR /app\n"
            "COPY --chown=app:app . .\n"
            "USER app\n"
            f"EXPOSE {port}\n"
            'CMD ["sh", "-c", "echo configure the container command && sleep infinity"]',
        )
        return doc.render()
    build, runtime = stages(analysis, port)
    doc.section("build", build).section("runtime", runtime)
    return doc.render()


def render_dockerignore(analysis: Analysis) -> str:
    ecosystem = primary_ecosystem(analysis.tech_stack) or ""
    lines = _COMMON_IGNORES + _ECOSYSTEM_IGNORES.get(ecosystem, [])
    return "\n".join(lines) + "\n"


def compose_environment(analysis: Analysis) -> dict[str, str]:
    """Non-secret env keys passed through from the host environment."""
    return {key: f"${{{key}}}" for key in analysis.env_keys if not is_secret_key(key)}


def _app_ports(analysis: Analysis) -> list[str]:
    ports = app_endpoints(analysis)
    if not ports:
        port = app_port(analysis)
        return [f"{port}:{port}"]
    return [f"{e.port}:{e.container_port or e.port}" for e in ports]


def render_compose(analysis: Analysis, build_context: str, dockerfile: str, header: str) -> str:
    app: dict[str, Any] = {
        "build": {"context": build_context, "dockerfile": dockerfile},
        "ports": _app_ports(analysis),
    }
    environment = compose_environment(analysis)
    if environment:
        app["environment"] = environment
    app["restart"] = "unless-stopped"

    services: dict[str, Any] = {"app": app}
    volumes: dict[str, dict[str, Any]] = {}
    depends_on: list[str] = []
    for service in analysis.databases + analysis.caches + analysis.queues:
        entry = DATA_SERVICES.get(service.type)
        if entry is None:
            continue
        name, definition = entry
        if name in services:
            continue
        services[name] = dict(definition)
        depends_on.append(name)
        for volume in definition.get("volumes", []):
            volumes[volume.split(":", 1)[0]] = {}
    if depends_on:
        app["depends_on"] = depends_on

    compose: dict[str, Any] = {"services": services}
    if volumes:
        compose["volumes"] = volumes
    return header + "\n" + dump_yaml(compose)


@register
class DockerGenerator(ArtifactGenerator):
    """Container build files for the primary ecosystem."""

    family = "docker"
    description = "Dockerfile, Dockerfile.dockerignore and docker-compose.yml"

    def build(self, analysis: Analysis, intent: Intent, options: GenerationOptions) -> ArtifactTree:
        tree = self.new_tree()
        tree.add(f"{ROOT}/Dockerfile", render_dockerfile(analysis, self.header("Dockerfile", options)))
        # the build context is the project root, so the ignore file sits
        # beside the Dockerfile where BuildKit looks for it
        tree.add(f"{ROOT}/Dockerfile.dockerignore", render_dockerignore(analysis))

        # compose resolves the context from its own directory and the
        # dockerfile from the context
        output = (Path(options.output_dir) / ROOT).resolve()
        project_root = Path(analysis.project_root or ".").resolve()
        context = Path(os.path.relpath(project_root, output)).as_posix()
        dockerfile = project_relative(analysis, options, ROOT, "Dockerfile")
        tree.add(
            f"{ROOT}/docker-compose.yml",
            render_compose(analysis, context, dockerfile, self.header("docker-compose", options)),
        )
        if analysis.env_keys:
            tree.add(f"{ROOT}/.env.example", "".join(f"{key}=\n" for key in analysis.env_keys))
        return tree
