"""Deterministic schema for deployment settings.

This module is the single source of truth for:
- which keys exist (vars vs secrets)
- which of them are asked for interactively
- their defaults

Values come from the process environment, `.env.deploy` and
`.env.deploy.secrets` (secrets only). Unknown keys in either file are an error.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Mapping

from dotenv import dotenv_values

DEPLOY_DOTENV = ".env.deploy"
DEPLOY_SECRETS_DOTENV = ".env.deploy.secrets"


class VarsEnum(str, Enum):
    # Prompted
    DEPLOY_REPO_URL = "DEPLOY_REPO_URL"
    DEPLOY_SERVER_ADDRESS = "DEPLOY_SERVER_ADDRESS"
    DEPLOY_SERVER_USER = "DEPLOY_SERVER_USER"
    DEPLOY_SSH_KEY_PATH = "DEPLOY_SSH_KEY_PATH"
    DEPLOY_APP_PORT = "DEPLOY_APP_PORT"

    # Fixed identifiers
    DEPLOY_CONTAINER_NAME = "DEPLOY_CONTAINER_NAME"
    DEPLOY_NGINX_SITE = "DEPLOY_NGINX_SITE"
    DEPLOY_REMOTE_DIR = "DEPLOY_REMOTE_DIR"
    DEPLOY_GIT_BRANCH = "DEPLOY_GIT_BRANCH"
    DEPLOY_LOG_DIR = "DEPLOY_LOG_DIR"

    # Timing
    DEPLOY_SSH_CONNECT_TIMEOUT = "DEPLOY_SSH_CONNECT_TIMEOUT"
    DEPLOY_SETTLE_SECONDS = "DEPLOY_SETTLE_SECONDS"
    DEPLOY_STABILIZE_SECONDS = "DEPLOY_STABILIZE_SECONDS"


class SecretsEnum(str, Enum):
    DEPLOY_PAT = "DEPLOY_PAT"


@dataclass(frozen=True)
class EnvKeySpec:
    key: VarsEnum | SecretsEnum
    prompt: str | None = None
    default: str | None = None


class EnvValidationError(ValueError):
    def __init__(self, *, context: str, problems: list[str]):
        super().__init__("; ".join(problems))
        self.context = context
        self.problems = problems

    def format(self) -> str:
        lines = [f"[env] validation failed: {self.context}"]
        for p in self.problems:
            lines.append(f"- {p}")
        return "\n".join(lines)


DEPLOY_SCHEMA: tuple[EnvKeySpec, ...] = (
    EnvKeySpec(key=VarsEnum.DEPLOY_REPO_URL, prompt="Enter your GitHub Repo URL"),
    EnvKeySpec(key=VarsEnum.DEPLOY_SERVER_ADDRESS, prompt="Enter your Remote Server Address (IP/Hostname)"),
    EnvKeySpec(key=VarsEnum.DEPLOY_SERVER_USER, prompt="Enter your Remote Server Username"),
    EnvKeySpec(key=VarsEnum.DEPLOY_SSH_KEY_PATH, prompt="Enter the path to your SSH key"),
    EnvKeySpec(key=VarsEnum.DEPLOY_APP_PORT, prompt="Enter your Application Port"),
    EnvKeySpec(key=VarsEnum.DEPLOY_CONTAINER_NAME, default="dockerized-app"),
    EnvKeySpec(key=VarsEnum.DEPLOY_NGINX_SITE, default="dockerized-app"),
    EnvKeySpec(key=VarsEnum.DEPLOY_REMOTE_DIR, default="dockerized-app"),
    EnvKeySpec(key=VarsEnum.DEPLOY_GIT_BRANCH, default="main"),
    EnvKeySpec(key=VarsEnum.DEPLOY_LOG_DIR, default="."),
    EnvKeySpec(key=VarsEnum.DEPLOY_SSH_CONNECT_TIMEOUT, default="10"),
    EnvKeySpec(key=VarsEnum.DEPLOY_SETTLE_SECONDS, default="5"),
    EnvKeySpec(key=VarsEnum.DEPLOY_STABILIZE_SECONDS, default="60"),
)

SECRETS_SCHEMA: tuple[EnvKeySpec, ...] = (
    EnvKeySpec(key=SecretsEnum.DEPLOY_PAT, prompt="Enter your Personal Access Token (PAT)"),
)


def _schema_keys(schema: Iterable[EnvKeySpec]) -> set[str]:
    return {spec.key.value for spec in schema}


def parse_dotenv_file(path: Path) -> dict[str, str]:
    """Parse dotenv file strictly.

    - Missing file yields an empty mapping.
    - Keys are preserved even if they have empty values (""), so we can detect unknown keys.
    """
    kv: dict[str, str] = {}
    if not path.exists():
        return kv
    raw = dotenv_values(path)
    for k, v in raw.items():
        if k is None:
            continue
        key = str(k).strip()
        if not key:
            continue
        val = "" if v is None else str(v).strip()
        kv[key] = val
    return kv


def validate_known_keys(schema: Iterable[EnvKeySpec], kv: Mapping[str, str], *, context: str) -> None:
    allowed = _schema_keys(schema)
    unknown = sorted([k for k in kv.keys() if k not in allowed])
    if unknown:
        raise EnvValidationError(
            context=context,
            problems=["Unknown key(s): " + ", ".join(unknown)],
        )


def apply_defaults(schema: Iterable[EnvKeySpec], kv: dict[str, str]) -> dict[str, str]:
    out = dict(kv)
    for spec in schema:
        if spec.key.value in out and str(out.get(spec.key.value) or "").strip():
            continue
        if spec.default is None:
            continue
        out[spec.key.value] = spec.default
    return out


def get_spec(schema: Iterable[EnvKeySpec], key: VarsEnum | SecretsEnum) -> EnvKeySpec:
    for spec in schema:
        if spec.key == key:
            return spec
    raise KeyError(key)


def load_settings(work_dir: Path, environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Merge settings: process env -> dotenv files -> schema defaults.

    Raises EnvValidationError if either dotenv file carries keys outside the schema.
    """
    environ = os.environ if environ is None else environ

    deploy_kv = parse_dotenv_file(work_dir / DEPLOY_DOTENV)
    validate_known_keys(DEPLOY_SCHEMA, deploy_kv, context=DEPLOY_DOTENV)
    secrets_kv = parse_dotenv_file(work_dir / DEPLOY_SECRETS_DOTENV)
    validate_known_keys(SECRETS_SCHEMA, secrets_kv, context=DEPLOY_SECRETS_DOTENV)

    merged: dict[str, str] = {}
    for schema, file_kv in ((DEPLOY_SCHEMA, deploy_kv), (SECRETS_SCHEMA, secrets_kv)):
        for spec in schema:
            key = spec.key.value
            value = str(environ.get(key) or "").strip()
            if not value:
                value = file_kv.get(key, "")
            if value:
                merged[key] = value

    merged = apply_defaults(DEPLOY_SCHEMA, merged)
    return merged
