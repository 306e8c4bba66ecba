"""Tests for git installation and the GitHub SSH key."""
from pathlib import Path

import pytest

from piprov.core.errors import PrerequisiteError
from piprov.services.git_ssh import GitSetup, configure_github_host, drop_github_block, github_block_uses_key

KEY = Path("/home/pi/.ssh/github_bot")


class TestSshConfigText:
    """Test ~/.ssh/config transforms."""

    def test_empty_config(self):
        text = configure_github_host("", KEY)
        assert text == (
            "# GitHub configuration - Added by piprov\n"
            "Host github.com\n"
            "    HostName github.com\n"
            "    User git\n"
            "    IdentityFile /home/pi/.ssh/github_bot\n"
            "    IdentitiesOnly yes\n"
        )

    def test_already_uses_key(self):
        text = "Host github.com\n  IdentityFile /home/pi/.ssh/github_bot\n"
        assert configure_github_host(text, KEY) == text

    def test_tilde_path_matches(self):
        text = "Host github.com\n  IdentityFile ~/.ssh/github_bot\n"
        assert github_block_uses_key(text, Path.home() / ".ssh" / "github_bot")

    def test_replaces_other_key(self):
        text = (
            "Host pi-nas\n    HostName 192.168.0.20\n\n"
            "Host github.com\n    IdentityFile ~/.ssh/id_rsa\n"
        )
        result = configure_github_host(text, KEY)
        assert "id_rsa" not in result
        assert "Host pi-nas\n    HostName 192.168.0.20\n" in result
        assert result.count("Host github.com") == 1
        assert github_block_uses_key(result, KEY)

    def test_drop_removes_our_comment(self):
        text = configure_github_host("Host other\n    User x\n", KEY)
        assert drop_github_block(text) == "Host other\n    User x\n"


@pytest.fixture
def git_runner(fake_runner):
    fake_runner.available.add("git")
    fake_runner.script("git --version", stdout="git version 2.39.2\n")
    fake_runner.script("ssh-keygen -l", stdout="256 SHA256:abc github_bot@pi (ED25519)\n")
    return fake_runner


@pytest.fixture
def ssh_dir(tmp_path):
    return tmp_path / ".ssh"


def fake_keygen(call):
    key = Path(call.argv[call.argv.index("-f") + 1])
    key.write_text("PRIVATE\n")
    key.with_name(key.name + ".pub").write_text("ssh-ed25519 AAAAC3Nza github_bot@pi\n")


class TestGitSetup:
    """Test the git flow."""

    def test_generates_key_and_config(self, git_runner, ssh_dir, monkeypatch):
        monkeypatch.setattr("piprov.services.git_ssh.hostname", lambda: "pi")
        git_runner.script("ssh-keygen -t", effect=fake_keygen)

        result = GitSetup(runner=git_runner, ssh_dir=ssh_dir).run()

        assert result.git_version == "git version 2.39.2"
        assert result.key_generated
        assert result.key_type == "ED25519"
        assert result.public_key == "ssh-ed25519 AAAAC3Nza github_bot@pi"
        keygen = git_runner.find("ssh-keygen -t ed25519")
        assert keygen.argv[keygen.argv.index("-N") + 1] == ""
        assert keygen.argv[-1] == "github_bot@pi"

        assert (ssh_dir / "github_bot").stat().st_mode & 0o777 == 0o600
        assert (ssh_dir / "github_bot.pub").stat().st_mode & 0o777 == 0o644
        assert ssh_dir.stat().st_mode & 0o777 == 0o700
        config = ssh_dir / "config"
        assert config.stat().st_mode & 0o777 == 0o600
        assert f"IdentityFile {ssh_dir / 'github_bot'}" in config.read_text()

    def test_existing_key_is_kept(self, git_runner, ssh_dir):
        ssh_dir.mkdir()
        (ssh_dir / "deploy").write_text("PRIVATE\n")
        (ssh_dir / "deploy.pub").write_text("ssh-ed25519 AAAA deploy\n")

        result = GitSetup("deploy", runner=git_runner, ssh_dir=ssh_dir).run()

        assert not result.key_generated
        assert not git_runner.ran("ssh-keygen -t")
        assert (ssh_dir / "deploy").read_text() == "PRIVATE\n"

    def test_config_rerun_is_unchanged(self, git_runner, ssh_dir):
        ssh_dir.mkdir()
        (ssh_dir / "github_bot").write_text("PRIVATE\n")
        (ssh_dir / "github_bot.pub").write_text("ssh-ed25519 AAAA\n")
        setup = GitSetup(runner=git_runner, ssh_dir=ssh_dir)

        setup.run()
        first = (ssh_dir / "config").read_text()
        setup.run()

        assert (ssh_dir / "config").read_text() == first
        assert not list(ssh_dir.glob("config.backup.*"))

    def test_installs_git(self, fake_runner, apt, ssh_dir):
        fake_runner.script("ssh-keygen -t", effect=fake_keygen)

        GitSetup(runner=fake_runner, packages=apt, ssh_dir=ssh_dir).run()

        assert fake_runner.ran("apt-get install -y git")

    def test_git_still_missing(self, fake_runner, apt, ssh_dir):
        fake_runner.script("git --version", returncode=127)
        with pytest.raises(PrerequisiteError, match="Git installation verification failed"):
            GitSetup(runner=fake_runner, packages=apt, ssh_dir=ssh_dir).run()

    def test_unexpected_key_type(self, fake_runner, ssh_dir):
        ssh_dir.mkdir()
        (ssh_dir / "github_bot").write_text("PRIVATE\n")
        (ssh_dir / "github_bot.pub").write_text("ssh-rsa AAAA\n")
        fake_runner.available.add("git")
        fake_runner.script("ssh-keygen -l", stdout="3072 SHA256:abc pi@pi (RSA)\n")

        assert GitSetup(runner=fake_runner, ssh_dir=ssh_dir).run().key_type == "RSA"
