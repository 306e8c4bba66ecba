"""Tests for loading nvm from shell profiles."""
from piprov.services.shell_profile import NVM_SNIPPET, add_nvm_loader, configure_profiles, is_nvm_configured


class TestAddNvmLoader:
    """Test profile text transforms."""

    def test_empty_profile(self):
        assert add_nvm_loader("") == NVM_SNIPPET

    def test_appends_after_existing_content(self):
        text = add_nvm_loader("alias ll='ls -l'\n")
        assert text.startswith("alias ll='ls -l'\n\n# NVM configuration")

    def test_already_configured(self):
        text = 'export NVM_DIR="$HOME/.nvm"\n[ -s "$NVM_DIR/nvm.sh" ] && . "$NVM_DIR/nvm.sh"\n'
        assert is_nvm_configured(text)
        assert add_nvm_loader(text) == text

    def test_login_profile_sources_bashrc(self):
        text = add_nvm_loader("# ~/.profile\n", source_bashrc=True)
        assert ". ~/.bashrc" in text
        assert text.index(". ~/.bashrc") < text.index("NVM_DIR")

    def test_bashrc_already_sourced(self):
        original = "if [ -f ~/.bashrc ]; then . ~/.bashrc; fi\n"
        assert add_nvm_loader(original, source_bashrc=True).count(".bashrc") == original.count(".bashrc")


class TestConfigureProfiles:
    """Test editing profile files in a home directory."""

    def test_creates_bashrc_only(self, tmp_path):
        configured = configure_profiles(tmp_path, mock=False)

        assert configured == [tmp_path / ".bashrc"]
        assert (tmp_path / ".bashrc").read_text() == NVM_SNIPPET
        assert not (tmp_path / ".bash_profile").exists()
        assert not (tmp_path / ".zshrc").exists()

    def test_existing_login_profile(self, tmp_path):
        (tmp_path / ".profile").write_text("# ~/.profile\n")

        configured = configure_profiles(tmp_path, mock=False)

        assert configured == [tmp_path / ".bashrc", tmp_path / ".profile"]
        profile = (tmp_path / ".profile").read_text()
        assert ". ~/.bashrc" in profile
        assert "NVM_DIR" in profile

    def test_existing_zshrc(self, tmp_path):
        (tmp_path / ".zshrc").write_text("export ZSH=$HOME/.oh-my-zsh\n")

        configure_profiles(tmp_path, mock=False)

        zshrc = (tmp_path / ".zshrc").read_text()
        assert "NVM_DIR" in zshrc
        assert ".bashrc" not in zshrc

    def test_idempotent(self, tmp_path):
        configure_profiles(tmp_path, mock=False)
        first = (tmp_path / ".bashrc").read_text()
        configure_profiles(tmp_path, mock=False)
        assert (tmp_path / ".bashrc").read_text() == first

    def test_no_backup_files(self, tmp_path):
        (tmp_path / ".bashrc").write_text("# bashrc\n")
        configure_profiles(tmp_path, mock=False)
        assert sorted(p.name for p in tmp_path.iterdir()) == [".bashrc"]

    def test_mock(self, tmp_path):
        assert configure_profiles(tmp_path, mock=True) == [tmp_path / ".bashrc"]
        assert not (tmp_path / ".bashrc").exists()
