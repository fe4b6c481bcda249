"""Fetch the application source locally and find how to build it."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from remote_deploy import compose
from remote_deploy.deploy_log import SUCCESS
from remote_deploy.errors import DeployError, ExitCode
from remote_deploy.ssh import CommandResult

logger = logging.getLogger(__name__)

GITHUB_PREFIX = "https://github.com/"


@dataclass(frozen=True)
class BuildDescriptor:
    """Where `docker build` should look, relative to the repository root."""

    kind: str  # "dockerfile" | "compose"
    context: str = "."
    dockerfile: str | None = None
    service: str | None = None


def validate_repo_url(repo_url: str) -> str:
    url = str(repo_url or "").strip().rstrip("/")
    if not url.startswith(GITHUB_PREFIX):
        raise DeployError("Invalid repository URL format. Please provide a full GitHub URL!", ExitCode.INVALID_INPUT)
    path = url[len(GITHUB_PREFIX):]
    parts = [p for p in path.split("/") if p]
    if len(parts) != 2:
        raise DeployError(f"Repository URL must look like {GITHUB_PREFIX}<owner>/<repo>: {url}", ExitCode.INVALID_INPUT)
    return url


def repo_name_from_url(repo_url: str) -> str:
    name = PurePosixPath(repo_url.rstrip("/")).name
    return name[: -len(".git")] if name.endswith(".git") else name


def authenticated_url(repo_url: str, pat: str) -> str:
    path = repo_url.rstrip("/")[len(GITHUB_PREFIX):]
    if path.endswith(".git"):
        path = path[: -len(".git")]
    return f"https://{pat}@github.com/{path}.git"


def redact(text: str, secret: str) -> str:
    if not secret:
        return text
    return text.replace(secret, "***")


def _git(args: list[str], *, cwd: Path) -> CommandResult:
    proc = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        check=False,
    )
    return CommandResult(returncode=proc.returncode, stdout=proc.stdout or "", stderr=proc.stderr or "")


def _pull(repo_dir: Path, *, branch: str, pat: str) -> None:
    result = _git(["pull", "origin", branch], cwd=repo_dir)
    if not result.ok:
        raise RuntimeError(redact(f"git pull origin {branch} failed in {repo_dir}: {result.detail()}", pat))


def clone_or_update(*, repo_url: str, pat: str, work_dir: Path, branch: str = "main") -> Path:
    """Clone into `work_dir/<repo-name>`, or pull if that directory already exists."""
    repo_name = repo_name_from_url(repo_url)
    repo_dir = work_dir / repo_name
    logger.info("Repository name: %s", repo_name)

    if repo_dir.is_dir():
        logger.info("Directory %s already exists. Updating repository...", repo_name)
        _pull(repo_dir, branch=branch, pat=pat)
        logger.log(SUCCESS, "Repository updated successfully")
        return repo_dir

    logger.info("Cloning repository from %s", repo_url)
    result = _git(["clone", authenticated_url(repo_url, pat), repo_name], cwd=work_dir)
    if not result.ok or not (repo_dir / ".git").is_dir():
        if result.detail():
            logger.error("%s", redact(result.detail(), pat))
        raise DeployError("Failed to clone repo. Please check the URL and PAT provided", ExitCode.INVALID_INPUT)

    logger.log(SUCCESS, "Repository cloned successfully!")
    _pull(repo_dir, branch=branch, pat=pat)
    return repo_dir


def detect_build_descriptor(repo_dir: Path) -> BuildDescriptor:
    logger.info("Checking for Docker-related files in repository...")
    if (repo_dir / "Dockerfile").is_file():
        logger.log(SUCCESS, "Docker-related files found in the repository.")
        return BuildDescriptor(kind="dockerfile")

    compose_path = compose.find_compose_file(repo_dir)
    if compose_path is None:
        raise DeployError(
            "No Docker-related files found in the repository. Ensure you have a Docker-related file.",
            ExitCode.INVALID_INPUT,
        )

    try:
        config = compose.load_docker_compose_config(compose_path)
    except RuntimeError as exc:
        raise DeployError(str(exc), ExitCode.INVALID_INPUT) from exc
    service = compose.find_build_service(config)
    if service is None:
        raise DeployError(f"{compose_path.name} declares no service with a build context", ExitCode.INVALID_INPUT)

    logger.log(SUCCESS, "Docker-related files found in the repository (%s, service '%s').", compose_path.name, service.name)
    return BuildDescriptor(kind="compose", context=service.context, dockerfile=service.dockerfile, service=service.name)


def transfer_sources(repo_dir: Path) -> list[Path]:
    """Top-level entries to copy to the remote host; dotfiles included, `.git` excluded."""
    return sorted(p for p in repo_dir.iterdir() if p.name != ".git")
