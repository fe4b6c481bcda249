from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from remote_deploy.cli import main
from remote_deploy.env_schema import SecretsEnum, VarsEnum

REPO_URL = "https://github.com/acme/app"
PAT = "ghp_exampletoken123"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in [*VarsEnum, *SecretsEnum]:
        monkeypatch.delenv(key.value, raising=False)


def answers(*values: str):
    it = iter(values)
    return lambda prompt: next(it)


def fake_git():
    """subprocess.run stand-in for git: `clone` lays down a Dockerfile repo, `pull` succeeds."""

    def _run(cmd, cwd=None, **kwargs):
        if cmd[:2] == ["git", "clone"]:
            repo = Path(cwd) / cmd[3]
            (repo / ".git").mkdir(parents=True)
            (repo / "Dockerfile").write_text("FROM nginx:alpine\nEXPOSE 8080\n")
        return MagicMock(returncode=0, stdout="", stderr="")

    return MagicMock(side_effect=_run)


def _deploy(tmp_path: Path, sim, ssh_key: Path, *, url=REPO_URL, port="8080", key=None, http_get=None):
    return main(
        [],
        tmp_path,
        input_fn=answers(url, "203.0.113.10", "deploy", str(key or ssh_key), port),
        secret_fn=answers(PAT),
        remote_factory=lambda target: sim,
        http_get=http_get or MagicMock(),
        sleep=lambda seconds: None,
    )


def _log_text(tmp_path: Path) -> str:
    return "".join(p.read_text(encoding="utf-8") for p in sorted(tmp_path.glob("deploy_*.log")))


def test_full_deploy(tmp_path: Path, sim, ssh_key: Path):
    git = fake_git()
    with patch("remote_deploy.source.subprocess.run", git):
        code = _deploy(tmp_path, sim, ssh_key)

    assert code == 0
    clone_cmd = git.call_args_list[0].args[0]
    assert clone_cmd == ["git", "clone", f"https://{PAT}@github.com/acme/app.git", "app"]
    assert sim.containers["dockerized-app"]["port"] == "8080"
    assert "proxy_pass http://localhost:8080;" in sim.files["/etc/nginx/sites-available/dockerized-app"]
    assert sim.copies[0][1] == "dockerized-app"

    log = _log_text(tmp_path)
    assert "Deployment Complete!" in log
    assert "Step 1: Cloning Repo provided using PAT" in log
    assert PAT not in log


def test_missing_ssh_key_exits_2_before_any_action(tmp_path: Path, sim, ssh_key: Path):
    git = fake_git()
    with patch("remote_deploy.source.subprocess.run", git):
        code = _deploy(tmp_path, sim, ssh_key, key=tmp_path / "missing_key")

    assert code == 2
    git.assert_not_called()
    assert sim.commands == []


def test_invalid_repo_url_exits_1_before_cloning(tmp_path: Path, sim, ssh_key: Path):
    git = fake_git()
    with patch("remote_deploy.source.subprocess.run", git):
        code = _deploy(tmp_path, sim, ssh_key, url="https://gitlab.com/acme/app")

    assert code == 1
    git.assert_not_called()


def test_invalid_port_exits_1(tmp_path: Path, sim, ssh_key: Path):
    with patch("remote_deploy.source.subprocess.run", fake_git()):
        assert _deploy(tmp_path, sim, ssh_key, port="70000") == 1


def test_unreachable_host_exits_3(tmp_path: Path, sim, ssh_key: Path):
    sim.reachable = False
    with patch("remote_deploy.source.subprocess.run", fake_git()):
        assert _deploy(tmp_path, sim, ssh_key) == 3
    assert sim.commands == ["echo SSH_OK"]


def test_app_unreachable_exits_6_and_skips_proxy(tmp_path: Path, sim, ssh_key: Path):
    sim.app_healthy = False
    with patch("remote_deploy.source.subprocess.run", fake_git()):
        code = _deploy(tmp_path, sim, ssh_key)

    assert code == 6
    assert not sim.ran("sudo tee")


def test_provisioning_failure_maps_to_99(tmp_path: Path, sim, ssh_key: Path):
    sim.fail_commands.add("sudo apt-get update")
    with patch("remote_deploy.source.subprocess.run", fake_git()):
        code = _deploy(tmp_path, sim, ssh_key)

    assert code == 99
    assert "Script failed at" in _log_text(tmp_path)
    assert not sim.ran("docker build")


def test_repeated_deploys_leave_one_container(tmp_path: Path, sim, ssh_key: Path):
    git = fake_git()
    with patch("remote_deploy.source.subprocess.run", git):
        assert _deploy(tmp_path, sim, ssh_key) == 0
        sim.commands.clear()
        assert _deploy(tmp_path, sim, ssh_key) == 0

    assert ["git", "pull", "origin", "main"] in [c.args[0] for c in git.call_args_list]
    assert sim.ran("docker stop dockerized-app")
    assert sim.containers_named("dockerized-app") == 1


def test_stored_settings_are_offered_as_defaults(tmp_path: Path, sim, ssh_key: Path, monkeypatch):
    (tmp_path / ".env.deploy").write_text(
        "\n".join(
            [
                f"DEPLOY_REPO_URL={REPO_URL}",
                "DEPLOY_SERVER_ADDRESS=203.0.113.10",
                "DEPLOY_SERVER_USER=deploy",
                f"DEPLOY_SSH_KEY_PATH={ssh_key}",
                "DEPLOY_STABILIZE_SECONDS=0",
            ]
        )
        + "\n"
    )
    (tmp_path / ".env.deploy.secrets").write_text(f"DEPLOY_PAT={PAT}\n")
    monkeypatch.setenv("DEPLOY_APP_PORT", "3000")
    prompts: list[str] = []

    def accept_default(prompt: str) -> str:
        prompts.append(prompt)
        return ""

    with patch("remote_deploy.source.subprocess.run", fake_git()):
        code = main(
            [],
            tmp_path,
            input_fn=accept_default,
            secret_fn=accept_default,
            remote_factory=lambda target: sim,
            http_get=MagicMock(),
            sleep=lambda seconds: None,
        )

    assert code == 0
    assert sim.containers["dockerized-app"]["port"] == "3000"
    assert "Enter your Application Port [3000]: " in prompts
    assert "Enter your Personal Access Token (PAT) [stored]: " in prompts


def test_unknown_key_in_env_file_exits_1(tmp_path: Path, sim):
    (tmp_path / ".env.deploy").write_text("DEPLOY_TYPO=1\n")
    input_fn = MagicMock()

    code = main([], tmp_path, input_fn=input_fn, remote_factory=lambda target: sim)

    assert code == 1
    input_fn.assert_not_called()
    assert "Unknown key(s): DEPLOY_TYPO" in _log_text(tmp_path)


def test_cleanup_mode(tmp_path: Path, sim, ssh_key: Path):
    sim.images.add("dockerized-app")
    sim.containers["dockerized-app"] = {"running": True, "image": "dockerized-app", "port": "8080"}
    sim.dirs.add("dockerized-app")

    code = main(
        ["--cleanup"],
        tmp_path,
        input_fn=answers("203.0.113.10", "deploy", str(ssh_key)),
        remote_factory=lambda target: sim,
    )

    assert code == 0
    assert not sim.containers
    assert not sim.images
    assert "dockerized-app" not in sim.dirs
    assert "Cleanup completed successfully!" in _log_text(tmp_path)


def test_negative_settle_time_exits_1_before_any_action(tmp_path: Path, sim, ssh_key: Path, monkeypatch):
    monkeypatch.setenv("DEPLOY_SETTLE_SECONDS", "-5")
    git = fake_git()
    with patch("remote_deploy.source.subprocess.run", git):
        code = _deploy(tmp_path, sim, ssh_key)

    assert code == 1
    git.assert_not_called()
    assert sim.commands == []


def test_log_file_is_closed_when_main_returns(tmp_path: Path, sim, ssh_key: Path):
    from remote_deploy.deploy_log import logger as package_logger

    with patch("remote_deploy.source.subprocess.run", fake_git()):
        assert _deploy(tmp_path, sim, ssh_key) == 0
    assert package_logger.handlers == []

    (tmp_path / ".env.deploy").write_text("DEPLOY_TYPO=1\n")
    assert main([], tmp_path, input_fn=MagicMock()) == 1
    assert package_logger.handlers == []
