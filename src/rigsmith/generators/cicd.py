"""CI/CD generator: a GitHub Actions workflow for build, image and deploys."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from rigsmith.analysis.stack import primary_ecosystem
from rigsmith.generators.base import (
    ArtifactGenerator,
    ArtifactTree,
    GenerationOptions,
    dump_yaml,
    project_relative,
    register,
    slugify,
)

if TYPE_CHECKING:
    from rigsmith.analysis.model import Analysis
    from rigsmith.intent.model import Intent

ROOT = "cicd"
WORKFLOW_PATH = f"{ROOT}/.github/workflows/ci.yml"

PROTECTED_ENVIRONMENT = "production"
TERRAFORM_VERSION = "1.7.5"


@dataclass(frozen=True)
class Toolchain:
    """Build and test steps for one ecosystem."""

    setup: tuple[dict[str, Any], ...]
    install: str
    test: str


def _node_toolchain(manager: str | None) -> Toolchain:
    manager = manager or "npm"
    setup: list[dict[str, Any]] = []
    if manager == "pnpm":
        setup.append({"name": "Enable corepack", "run": "corepack enable"})
    setup.append(
        {
            "uses": "actions/setup-node@v4",
            "with": {"node-version": "20", "cache": manager},
        }
    )
    install = {
        "yarn": "yarn install --frozen-lockfile",
        "pnpm": "pnpm install --frozen-lockfile",
    }.get(manager, "npm ci")
    test = {"yarn": "yarn test", "pnpm": "pnpm test"}.get(manager, "npm test --if-present")
    return Toolchain(tuple(setup), install, test)


def _python_toolchain(manager: str | None) -> Toolchain:
    setup = ({"uses": "actions/setup-python@v5", "with": {"python-version": "3.12"}},)
    if manager == "poetry":
        return Toolchain(
            setup, "pipx install poetry && poetry install --no-interaction", "poetry run pytest"
        )
    if manager == "pipenv":
        return Toolchain(setup, "pip install pipenv && pipenv install --dev", "pipenv run pytest")
    if manager == "uv":
        return Toolchain(setup, "pip install uv && uv sync", "uv run pytest")
    install = (
        "if [ -f requirements.txt ]; then pip install -r requirements.txt; "
        "else pip install -e .; fi && pip install pytest"
    )
    return Toolchain(setup, install, "pytest")


def _java_toolchain(manager: str | None) -> Toolchain:
    setup = (
        {
            "uses": "actions/setup-java@v4",
            "with": {
                "distribution": "temurin",
                "java-version": "21",
                "cache": "gradle" if manager == "gradle" else "maven",
            },
        },
    )
    if manager == "gradle":
        return Toolchain(setup, "./gradlew assemble", "./gradlew test")
    return Toolchain(setup, "mvn -B -q dependency:go-offline", "mvn -B verify")


_TOOLCHAINS = {
    "Node.js": _node_toolchain,
    "Python": _python_toolchain,
    "Java": _java_toolchain,
    "Go": lambda _m: Toolchain(
        ({"uses": "actions/setup-go@v5", "with": {"go-version": "stable"}},),
        "go mod download",
        "go test ./...",
    ),
    "Rust": lambda _m: Toolchain((), "cargo build --locked", "cargo test --locked"),
    "Ruby": lambda _m: Toolchain((), "bundle install", "bundle exec rake test"),
    "PHP": lambda _m: Toolchain((), "composer install --no-interaction", "vendor/bin/phpunit"),
}


def toolchain_for(analysis: Analysis) -> Toolchain | None:
    """Toolchain of the primary ecosystem, or ``None`` when none was detected."""
    ecosystem = primary_ecosystem(analysis.tech_stack)
    factory = _TOOLCHAINS.get(ecosystem or "")
    if factory is None:
        return None
    return factory(analysis.package_manager)


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------

_CHECKOUT = {"uses": "actions/checkout@v4"}
_ON_MAIN_PUSH = "github.event_name == 'push' && github.ref == 'refs/heads/main'"
_GCP_AUTH = (
    {
        "uses": "google-github-actions/auth@v2",
        "with": {"credentials_json": "${{ secrets.GCP_SA_KEY }}"},
    },
    {"uses": "google-github-actions/setup-gcloud@v2"},
)


def _build_job(analysis: Analysis) -> dict[str, Any]:
    steps: list[dict[str, Any]] = [dict(_CHECKOUT)]
    toolchain = toolchain_for(analysis)
    if toolchain is None:
        steps.append({"name": "Build", "run": "echo 'No supported ecosystem detected'"})
    else:
        steps.extend(toolchain.setup)
        steps.append({"name": "Install dependencies", "run": toolchain.install})
        steps.append({"name": "Test", "run": toolchain.test})
    return {"name": "Build and test", "runs-on": "ubuntu-latest", "steps": steps}


def _image_job(dockerfile: str) -> dict[str, Any]:
    return {
        "name": "Container image",
        "needs": "build",
        "if": _ON_MAIN_PUSH,
        "runs-on": "ubuntu-latest",
        "steps": [
            dict(_CHECKOUT),
            *_GCP_AUTH,
            {"name": "Configure Docker", "run": "gcloud auth configure-docker --quiet"},
            {
                "name": "Build image",
                "run": f'docker build -f {dockerfile} -t "$IMAGE:${{{{ github.sha }}}}" .',
            },
            {"name": "Push image", "run": 'docker push "$IMAGE:${{ github.sha }}"'},
        ],
    }


def _terraform_job(terraform_dir: str, environments: tuple[str, ...]) -> dict[str, Any]:
    steps: list[dict[str, Any]] = [
        dict(_CHECKOUT),
        {
            "uses": "hashicorp/setup-terraform@v3",
            "with": {"terraform_version": TERRAFORM_VERSION},
        },
        {"name": "Check formatting", "run": f"terraform fmt -check -recursive {terraform_dir}"},
    ]
    for env in environments:
        chdir = f"{terraform_dir}/environments/{env}"
        steps.append(
            {
                "name": f"Validate {env}",
                "run": (
                    f"terraform -chdir={chdir} init -backend=false -input=false\n"
                    f"terraform -chdir={chdir} validate"
                ),
            }
        )
    return {"name": "Terraform validate", "runs-on": "ubuntu-latest", "steps": steps}


def _deploy_command(env: str, analysis: Analysis, options: GenerationOptions) -> str:
    families = options.families or ()
    if "kubernetes" in families:
        cluster = f"{slugify(analysis.project_name)}-{env}"
        overlay = project_relative(analysis, options, "kubernetes", "overlays", env)
        return (
            f"gcloud container clusters get-credentials {cluster} "
            f"--region {options.context.region}\n"
            f"kubectl apply -k {overlay}"
        )
    if "terraform" in families:
        chdir = project_relative(analysis, options, "terraform", "environments", env)
        return (
            f"terraform -chdir={chdir} init -input=false\n"
            f"terraform -chdir={chdir} apply -input=false -auto-approve"
        )
    return f'gcloud container images add-tag "$IMAGE:${{{{ github.sha }}}}" "$IMAGE:{env}" --quiet'


def _deploy_job(
    env: str,
    needs: list[str],
    analysis: Analysis,
    options: GenerationOptions,
) -> dict[str, Any]:
    job: dict[str, Any] = {
        "name": f"Deploy to {env}",
        "needs": needs,
        "if": _ON_MAIN_PUSH,
        "runs-on": "ubuntu-latest",
    }
    if env == "prod":
        job["environment"] = {"name": PROTECTED_ENVIRONMENT}
    else:
        job["environment"] = env
    steps: list[dict[str, Any]] = [dict(_CHECKOUT), *_GCP_AUTH]
    families = options.families or ()
    if "terraform" in families and "kubernetes" not in families:
        steps.append(
            {
                "uses": "hashicorp/setup-terraform@v3",
                "with": {"terraform_version": TERRAFORM_VERSION},
            }
        )
    steps.append({"name": f"Deploy {env}", "run": _deploy_command(env, analysis, options)})
    job["steps"] = steps
    return job


def _dockerfile(analysis: Analysis, options: GenerationOptions, families: tuple[str, ...]) -> str:
    """The generated Dockerfile, or the project's own when docker is not generated."""
    own = analysis.has_container_build and "Dockerfile" in analysis.infra_files
    if own and "docker" not in families:
        return "Dockerfile"
    return project_relative(analysis, options, "docker", "Dockerfile")


def build_workflow(analysis: Analysis, intent: Intent, options: GenerationOptions) -> dict[str, Any]:
    """The workflow as a mapping, in job execution order.

    Deploy jobs run one environment at a time in the order of
    ``intent.environments``; each waits for the previous one.
    """
    project = options.context.project_label
    jobs: dict[str, Any] = {"build": _build_job(analysis)}
    families = options.families or ()
    jobs["image"] = _image_job(_dockerfile(analysis, options, families))

    gates = ["image"]
    if "terraform" in families or analysis.has_provisioning_code:
        terraform_dir = (
            project_relative(analysis, options, "terraform") if "terraform" in families else "terraform"
        )
        jobs["terraform"] = _terraform_job(terraform_dir, intent.environments)
        gates.append("terraform")

    for env in intent.environments:
        jobs[f"deploy-{env}"] = _deploy_job(env, gates, analysis, options)
        gates = [f"deploy-{env}"]

    return {
        "name": "CI/CD",
        "on": {
            "push": {"branches": ["main"]},
            "pull_request": {"branches": ["main"]},
        },
        "permissions": {"contents": "read"},
        "env": {"IMAGE": f"gcr.io/{project}/{slugify(analysis.project_name)}"},
        "jobs": jobs,
    }


_README = """\
# CI/CD

`.github/workflows/ci.yml` builds and tests the project, pushes a container
image and deploys {environments} in that order.

Copy the `.github` directory to the repository root to enable it.

Required repository secrets:

- `GCP_SA_KEY`: JSON key of a service account allowed to push images and deploy.

{protection}
"""


@register
class CicdGenerator(ArtifactGenerator):
    """GitHub Actions pipeline."""

    family = "cicd"
    description = "GitHub Actions workflow with chained environment deploys"

    def build(self, analysis: Analysis, intent: Intent, options: GenerationOptions) -> ArtifactTree:
        tree = self.new_tree()
        workflow = build_workflow(analysis, intent, options)
        tree.add(WORKFLOW_PATH, self.header("CI/CD workflow", options) + "\n" + dump_yaml(workflow))

        if "prod" in intent.environments:
            protection = (
                f"The prod deploy runs in the `{PROTECTED_ENVIRONMENT}` environment. "
                "Add required reviewers to it under Settings > Environments."
            )
        else:
            protection = ""
        readme = _README.format(
            environments=", ".join(intent.environments),
            protection=protection,
        )
        tree.add(f"{ROOT}/README.md", readme.rstrip("\n"))
        return tree
