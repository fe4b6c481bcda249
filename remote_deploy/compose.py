"""Compose-file fallback for repositories without a root Dockerfile.

Only the part of the file that says how to build the app image is used; the
rest of the stack is never started.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

COMPOSE_FILE_NAMES = ("docker-compose.yml", "docker-compose.yaml", "compose.yml", "compose.yaml")
APP_ROLE = "app"

# ${NAME} or ${NAME:-fallback}
_VARIABLE = re.compile(r"\$\{(?P<name>[^}:]+)(?::-(?P<fallback>[^}]*))?\}")


@dataclass(frozen=True)
class BuildService:
    name: str
    context: str
    dockerfile: Optional[str] = None


def expand_variables(node: Any, environ: Optional[Mapping[str, str]] = None) -> Any:
    """Substitute ${NAME} / ${NAME:-fallback} in every string of a parsed compose document."""
    environ = os.environ if environ is None else environ
    if isinstance(node, str):
        return _VARIABLE.sub(lambda m: environ.get(m["name"], m["fallback"] or ""), node)
    if isinstance(node, dict):
        return {key: expand_variables(value, environ) for key, value in node.items()}
    if isinstance(node, list):
        return [expand_variables(item, environ) for item in node]
    return node


def find_compose_file(repo_dir: Path) -> Optional[Path]:
    for name in COMPOSE_FILE_NAMES:
        if (repo_dir / name).is_file():
            return repo_dir / name
    return None


def load_docker_compose_config(compose_path: Path) -> dict[str, Any]:
    if not compose_path.exists():
        raise FileNotFoundError(f"{compose_path.name} not found in {compose_path.parent}")

    try:
        document = yaml.safe_load(compose_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise RuntimeError(f"Failed to parse {compose_path.name}: {e}") from e

    if not isinstance(document, dict):
        raise RuntimeError(f"{compose_path.name} is not a mapping")
    return expand_variables(document)


def _build_section(service: Mapping[str, Any]) -> Optional[BuildService]:
    build = service.get("build")
    if isinstance(build, str) and build:
        return BuildService(name="", context=build)
    if isinstance(build, dict):
        return BuildService(name="", context=build.get("context") or ".", dockerfile=build.get("dockerfile"))
    return None


def find_build_service(compose_config: Mapping[str, Any]) -> Optional[BuildService]:
    """The service tagged `x-deploy-role: app` if it builds, else the first service that builds."""
    services = compose_config.get("services") or {}
    if not isinstance(services, dict):
        return None

    buildable: list[BuildService] = []
    for name, service in services.items():
        if not isinstance(service, dict):
            continue
        section = _build_section(service)
        if section is None:
            continue
        found = BuildService(name=name, context=section.context, dockerfile=section.dockerfile)
        if service.get("x-deploy-role") == APP_ROLE:
            return found
        buildable.append(found)
    return buildable[0] if buildable else None
