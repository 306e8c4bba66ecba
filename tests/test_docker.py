"""Tests for Docker installation and docker group management."""
from pathlib import Path

import pytest

from piprov.core.errors import InputError
from piprov.services.docker import (
    DockerSetup,
    is_supported_release,
    repository_line,
    resolve_group_members,
)

UBUNTU_2204 = 'ID=ubuntu\nVERSION_ID="22.04"\nVERSION_CODENAME=jammy\nPRETTY_NAME="Ubuntu 22.04.4 LTS"\n'
DEBIAN_12 = 'ID=debian\nVERSION_ID="12"\nVERSION_CODENAME=bookworm\nPRETTY_NAME="Debian GNU/Linux 12"\n'


@pytest.fixture
def os_release(tmp_path):
    path = tmp_path / "os-release"
    path.write_text(UBUNTU_2204)
    return path


@pytest.fixture(autouse=True)
def host(monkeypatch):
    monkeypatch.setattr("piprov.services.docker.fetch_text", lambda url: "-----BEGIN PGP PUBLIC KEY BLOCK-----\n")
    monkeypatch.setattr("piprov.services.docker.current_user", lambda: "alice")
    monkeypatch.setattr("piprov.services.docker.user_exists", lambda name: name in ("alice", "bob", "github"))


@pytest.fixture
def docker_runner(fake_runner):
    fake_runner.script("dpkg --print-architecture", stdout="arm64\n")
    fake_runner.script("docker --version", stdout="Docker version 24.0.7, build afdd53b\n")
    fake_runner.script("docker compose version", stdout="Docker Compose version v2.21.0\n")
    return fake_runner


def make_setup(runner, apt, os_release, tmp_path, users=(), confirm=None):
    return DockerSetup(users, runner=runner, packages=apt, confirm=confirm,
                       os_release_path=os_release,
                       keyring=tmp_path / "keyrings" / "docker.gpg",
                       sources_list=tmp_path / "docker.list")


class TestHelpers:
    """Test pure helpers."""

    def test_supported_release(self):
        assert is_supported_release({"ID": "ubuntu", "VERSION_ID": "22.04"})
        assert not is_supported_release({"ID": "ubuntu", "VERSION_ID": "20.04"})
        assert not is_supported_release({"ID": "debian", "VERSION_ID": "22.04"})

    def test_repository_line(self):
        line = repository_line("arm64", "jammy", Path("/etc/apt/keyrings/docker.gpg"))
        assert line == ("deb [arch=arm64 signed-by=/etc/apt/keyrings/docker.gpg] "
                        "https://download.docker.com/linux/ubuntu jammy stable\n")

    def test_members_given(self):
        assert resolve_group_members(["alice", "bob"], as_root=True, fallback_user=None) == ["alice", "bob"]

    def test_members_default_to_invoking_user(self):
        assert resolve_group_members([], as_root=False, fallback_user="alice") == ["alice"]

    def test_root_needs_usernames(self):
        with pytest.raises(InputError, match="at least one username"):
            resolve_group_members([], as_root=True, fallback_user=None)


class TestDockerSetup:
    """Test the docker install flow."""

    def test_install_as_user(self, docker_runner, apt, os_release, tmp_path, as_user):
        result = make_setup(docker_runner, apt, os_release, tmp_path).run()

        assert result.installed
        assert result.docker_version.startswith("Docker version 24.0.7")
        assert result.compose_version == "Docker Compose version v2.21.0"
        assert result.group.added == ["alice"]

        tee = docker_runner.find("tee")
        assert tee.argv[0] == "sudo"
        assert "arch=arm64" in tee.input_text
        assert "jammy stable" in tee.input_text
        assert docker_runner.ran("apt-get install -y docker-ce docker-ce-cli containerd.io")
        assert docker_runner.ran("sudo systemctl enable docker")
        assert docker_runner.ran("sudo docker run --rm hello-world")
        assert docker_runner.ran("sudo usermod -aG docker alice")

    def test_root_without_users_fails_before_install(self, docker_runner, apt, os_release, tmp_path, as_root):
        with pytest.raises(InputError):
            make_setup(docker_runner, apt, os_release, tmp_path).run()
        assert docker_runner.calls == []

    def test_root_skips_hello_world(self, docker_runner, apt, os_release, tmp_path, as_root):
        confirm = lambda message, default=False: True  # noqa: E731
        result = make_setup(docker_runner, apt, os_release, tmp_path, users=["github"], confirm=confirm).run()

        assert result.group.added == ["github"]
        assert not docker_runner.ran("hello-world")
        assert docker_runner.ran("usermod -aG docker github")
        assert not docker_runner.ran("sudo")

    def test_root_declined(self, docker_runner, apt, os_release, tmp_path, as_root):
        result = make_setup(docker_runner, apt, os_release, tmp_path, users=["github"]).run()
        assert result.cancelled
        assert docker_runner.calls == []

    def test_unsupported_release_declined(self, docker_runner, apt, os_release, tmp_path, as_user):
        os_release.write_text(DEBIAN_12)
        result = make_setup(docker_runner, apt, os_release, tmp_path).run()
        assert result.cancelled
        assert not docker_runner.ran("apt-get")

    def test_codename_from_lsb_release(self, docker_runner, apt, os_release, tmp_path, as_user):
        os_release.write_text('ID=ubuntu\nVERSION_ID="22.04"\n')
        docker_runner.script("lsb_release -cs", stdout="jammy\n")

        make_setup(docker_runner, apt, os_release, tmp_path).run()

        assert "jammy stable" in docker_runner.find("tee").input_text

    def test_existing_docker_only_manages_group(self, docker_runner, apt, os_release, tmp_path, as_user):
        docker_runner.available.add("docker")

        result = make_setup(docker_runner, apt, os_release, tmp_path, users=["alice", "mallory"]).run()

        assert not result.installed
        assert not docker_runner.ran("apt-get")
        assert result.group.added == ["alice"]
        assert result.group.failed == ["mallory"]

    def test_usermod_failure_is_reported(self, docker_runner, apt, os_release, tmp_path, as_user):
        docker_runner.available.add("docker")
        docker_runner.script("usermod -aG docker bob", returncode=6, stderr="usermod: group 'docker' does not exist")

        result = make_setup(docker_runner, apt, os_release, tmp_path, users=["alice", "bob"]).run()

        assert result.group.added == ["alice"]
        assert result.group.failed == ["bob"]
