"""Tests for PM2 project setup."""
import pytest

from piprov.core.errors import InputError, PrerequisiteError, VerificationError
from piprov.services.pm2 import Pm2Setup, extract_startup_command, parse_process_names

STARTUP_OUTPUT = """\
[PM2] Init System found: systemd
[PM2] To setup the Startup Script, copy/paste the following command:
sudo env PATH=$PATH:/home/pi/.nvm/versions/node/v20.0.0/bin pm2 startup systemd -u pi --hp /home/pi
"""


@pytest.fixture
def project(tmp_path):
    path = tmp_path / "my-bot"
    path.mkdir()
    (path / "ecosystem.config.js").write_text("module.exports = { apps: [] };\n")
    return path


@pytest.fixture
def pm2_runner(fake_runner):
    fake_runner.available.update({"pm2", "npm"})
    fake_runner.script("pm2 --version", stdout="5.3.0\n")
    fake_runner.script("pm2 startup", stdout=STARTUP_OUTPUT)
    return fake_runner


@pytest.fixture
def as_pi(monkeypatch, as_user):
    monkeypatch.setattr("piprov.services.pm2.invoking_user", lambda path_hint=None: "pi")


class TestParsing:
    """Test parsing pm2 output."""

    def test_process_names(self):
        output = '>>>> In-memory PM2 is out-of-date\n[{"name":"my-bot","pm_id":0},{"name":"api","pm_id":1}]'
        assert parse_process_names(output) == ["my-bot", "api"]

    def test_process_names_garbage(self):
        assert parse_process_names("") == []
        assert parse_process_names("[not json") == []

    def test_startup_command(self):
        assert extract_startup_command(STARTUP_OUTPUT).startswith("sudo env PATH=")
        assert extract_startup_command("[PM2] nothing to do") is None


class TestPm2Setup:
    """Test the pm2 flow."""

    def test_full_run(self, pm2_runner, project, as_pi):
        result = Pm2Setup(project, runner=pm2_runner).run()

        assert result.app_name == "my-bot"
        assert result.pm2_version == "5.3.0"
        assert result.startup_installed
        assert result.saved
        assert result.monitoring
        assert result.warnings == []
        assert (project / "logs").is_dir()

        start = pm2_runner.find("pm2 start ecosystem.config.js --env production")
        assert start.cwd == str(project)
        startup = pm2_runner.find("sudo env")
        assert startup.argv[:2] == ["sudo", "env"]
        assert pm2_runner.ran("pm2 set pm2-server-monit:interval 20")
        assert pm2_runner.lines.index("pm2 save") > pm2_runner.lines.index(startup.line)

    def test_replaces_existing_process(self, pm2_runner, project, as_pi):
        pm2_runner.script("pm2 jlist", stdout='[{"name":"telegram-bot"}]')

        Pm2Setup(project, app_name="telegram-bot", runner=pm2_runner).run()

        assert pm2_runner.lines.index("pm2 stop telegram-bot") < pm2_runner.lines.index("pm2 delete telegram-bot")

    def test_other_process_left_alone(self, pm2_runner, project, as_pi):
        pm2_runner.script("pm2 jlist", stdout='[{"name":"api"}]')
        Pm2Setup(project, runner=pm2_runner).run()
        assert not pm2_runner.ran("pm2 stop")

    def test_missing_project(self, pm2_runner, tmp_path, as_pi):
        with pytest.raises(InputError, match="does not exist"):
            Pm2Setup(tmp_path / "nope", runner=pm2_runner).run()

    def test_missing_ecosystem_file(self, pm2_runner, project, as_pi):
        (project / "ecosystem.config.js").unlink()
        with pytest.raises(PrerequisiteError, match="ecosystem.config.js not found"):
            Pm2Setup(project, runner=pm2_runner).run()

    def test_installs_pm2(self, fake_runner, project, as_pi):
        fake_runner.available.add("npm")
        Pm2Setup(project, runner=fake_runner).run()
        assert fake_runner.ran("npm install -g pm2")

    def test_no_npm(self, fake_runner, project, as_pi):
        with pytest.raises(PrerequisiteError, match="npm is not installed"):
            Pm2Setup(project, runner=fake_runner).run()

    def test_start_failure(self, pm2_runner, project, as_pi):
        pm2_runner.script("pm2 start ecosystem", returncode=1, stderr="SyntaxError")
        with pytest.raises(VerificationError, match="Failed to start application"):
            Pm2Setup(project, runner=pm2_runner).run()

    def test_startup_failure_is_a_warning(self, pm2_runner, project, as_pi):
        pm2_runner.script("sudo env", returncode=1)

        result = Pm2Setup(project, runner=pm2_runner).run()

        assert not result.startup_installed
        assert "Run it manually" in result.warnings[0]

    def test_monitoring_failure_is_advisory(self, pm2_runner, project, as_pi):
        pm2_runner.script("pm2 install pm2-server-monit", returncode=1)

        result = Pm2Setup(project, runner=pm2_runner).run()

        assert not result.monitoring
        assert "monitoring setup failed" in result.warnings[-1]

    def test_monitoring_failure_strict(self, pm2_runner, project, as_pi):
        pm2_runner.script("pm2 install pm2-server-monit", returncode=1)
        with pytest.raises(VerificationError, match="monitoring"):
            Pm2Setup(project, runner=pm2_runner, strict=True).run()


class TestRunAsUser:
    """Test root acting on behalf of the project owner."""

    def test_commands_run_as_owner(self, pm2_runner, project, monkeypatch, as_root):
        monkeypatch.setattr("piprov.services.pm2.invoking_user", lambda path_hint=None: "pi")

        Pm2Setup(project, runner=pm2_runner).run()

        assert pm2_runner.find("pm2 start ecosystem").user == "pi"
        assert pm2_runner.find("mkdir -p").user == "pi"
        # the generated startup command already carries sudo
        assert pm2_runner.find("sudo env").user is None
