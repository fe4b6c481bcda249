"""Run context: operator input collected once and threaded through every stage."""

from __future__ import annotations

import getpass
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping

from remote_deploy.env_schema import DEPLOY_SCHEMA, SECRETS_SCHEMA, SecretsEnum, VarsEnum, get_spec
from remote_deploy.errors import DeployError, ExitCode

PromptFn = Callable[[str], str]


@dataclass(frozen=True)
class RemoteTarget:
    address: str
    user: str
    key_path: Path
    connect_timeout: int = 10

    @property
    def host(self) -> str:
        return f"{self.user}@{self.address}"


@dataclass(frozen=True)
class DeploymentNames:
    """The fixed identifiers that key every remote artifact."""

    container: str = "dockerized-app"
    nginx_site: str = "dockerized-app"
    remote_dir: str = "dockerized-app"


@dataclass(frozen=True)
class DeployConfig:
    repo_url: str
    pat: str
    target: RemoteTarget
    app_port: int
    names: DeploymentNames
    work_dir: Path
    git_branch: str = "main"
    settle_seconds: float = 5
    stabilize_seconds: float = 60


@dataclass(frozen=True)
class CleanupConfig:
    target: RemoteTarget
    names: DeploymentNames


def prompt_value(label: str, default: str = "", *, input_fn: PromptFn = input) -> str:
    suffix = f" [{default}]" if default else ""
    try:
        answer = input_fn(f"{label}{suffix}: ")
    except EOFError:
        answer = ""
    return str(answer or "").strip() or default


def prompt_secret(label: str, default: str = "", *, secret_fn: PromptFn = getpass.getpass) -> str:
    suffix = " [stored]" if default else ""
    try:
        answer = secret_fn(f"{label}{suffix}: ")
    except EOFError:
        answer = ""
    return str(answer or "").strip() or default


def _ask(key: VarsEnum, settings: Mapping[str, str], input_fn: PromptFn) -> str:
    spec = get_spec(DEPLOY_SCHEMA, key)
    value = prompt_value(spec.prompt or key.value, settings.get(key.value, ""), input_fn=input_fn)
    if not value:
        raise DeployError(f"A value is required for: {spec.prompt or key.value}", ExitCode.INVALID_INPUT)
    return value


def parse_port(raw: str) -> int:
    try:
        port = int(str(raw).strip())
    except ValueError:
        raise DeployError(f"Application port must be an integer, got: {raw!r}", ExitCode.INVALID_INPUT) from None
    if port < 1 or port > 65535:
        raise DeployError(f"Application port must be in range 1-65535, got: {port}", ExitCode.INVALID_INPUT)
    return port


def _int_setting(settings: Mapping[str, str], key: VarsEnum, *, minimum: int = 0) -> int:
    raw = settings.get(key.value) or get_spec(DEPLOY_SCHEMA, key).default or "0"
    try:
        value = int(raw)
    except ValueError:
        raise DeployError(f"{key.value} must be an integer, got: {raw!r}", ExitCode.INVALID_INPUT) from None
    if value < minimum:
        raise DeployError(f"{key.value} must be at least {minimum}, got: {value}", ExitCode.INVALID_INPUT)
    return value


def resolve_key_path(raw: str) -> Path:
    """Expand and verify the private key path. Runs before any network action."""
    key_path = Path(raw).expanduser()
    if not key_path.is_file():
        raise DeployError(f"SSH key not found at: {key_path}", ExitCode.SSH_KEY_MISSING)
    return key_path


def resolve_names(settings: Mapping[str, str]) -> DeploymentNames:
    names = DeploymentNames(
        container=settings.get(VarsEnum.DEPLOY_CONTAINER_NAME.value) or DeploymentNames.container,
        nginx_site=settings.get(VarsEnum.DEPLOY_NGINX_SITE.value) or DeploymentNames.nginx_site,
        remote_dir=settings.get(VarsEnum.DEPLOY_REMOTE_DIR.value) or DeploymentNames.remote_dir,
    )
    if names.remote_dir.strip().rstrip("/") in {"", "~", "."}:
        raise DeployError(f"Refusing to use remote directory {names.remote_dir!r}", ExitCode.INVALID_INPUT)
    return names


def _collect_target(settings: Mapping[str, str], input_fn: PromptFn) -> tuple[str, str, str]:
    address = _ask(VarsEnum.DEPLOY_SERVER_ADDRESS, settings, input_fn)
    user = _ask(VarsEnum.DEPLOY_SERVER_USER, settings, input_fn)
    key_raw = _ask(VarsEnum.DEPLOY_SSH_KEY_PATH, settings, input_fn)
    return address, user, key_raw


def collect_deploy_config(
    settings: Mapping[str, str],
    *,
    work_dir: Path,
    input_fn: PromptFn = input,
    secret_fn: PromptFn = getpass.getpass,
    validate_repo_url: Callable[[str], str] | None = None,
) -> DeployConfig:
    """Prompt for the six deployment inputs and validate them.

    Order of checks: repository URL, port, then the SSH key file. Nothing here
    touches git or the network.
    """
    repo_url = _ask(VarsEnum.DEPLOY_REPO_URL, settings, input_fn)
    pat_spec = get_spec(SECRETS_SCHEMA, SecretsEnum.DEPLOY_PAT)
    pat = prompt_secret(pat_spec.prompt or pat_spec.key.value, settings.get(SecretsEnum.DEPLOY_PAT.value, ""), secret_fn=secret_fn)
    if not pat:
        raise DeployError("A Personal Access Token is required", ExitCode.INVALID_INPUT)
    address, user, key_raw = _collect_target(settings, input_fn)
    port_raw = _ask(VarsEnum.DEPLOY_APP_PORT, settings, input_fn)

    if validate_repo_url is not None:
        repo_url = validate_repo_url(repo_url)
    app_port = parse_port(port_raw)
    key_path = resolve_key_path(key_raw)

    return DeployConfig(
        repo_url=repo_url,
        pat=pat,
        target=RemoteTarget(
            address=address,
            user=user,
            key_path=key_path,
            connect_timeout=_int_setting(settings, VarsEnum.DEPLOY_SSH_CONNECT_TIMEOUT, minimum=1),
        ),
        app_port=app_port,
        names=resolve_names(settings),
        work_dir=work_dir,
        git_branch=settings.get(VarsEnum.DEPLOY_GIT_BRANCH.value) or "main",
        settle_seconds=_int_setting(settings, VarsEnum.DEPLOY_SETTLE_SECONDS),
        stabilize_seconds=_int_setting(settings, VarsEnum.DEPLOY_STABILIZE_SECONDS),
    )


def collect_cleanup_config(settings: Mapping[str, str], *, input_fn: PromptFn = input) -> CleanupConfig:
    address, user, key_raw = _collect_target(settings, input_fn)
    return CleanupConfig(
        target=RemoteTarget(
            address=address,
            user=user,
            key_path=resolve_key_path(key_raw),
            connect_timeout=_int_setting(settings, VarsEnum.DEPLOY_SSH_CONNECT_TIMEOUT, minimum=1),
        ),
        names=resolve_names(settings),
    )
