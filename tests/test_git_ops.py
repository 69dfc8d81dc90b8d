"""Tests for the git backends."""

import pytest

from github_vault.git_ops import (
    AuthenticationError,
    ChangedPath,
    ChangeKind,
    GitCliBackend,
    GitError,
    GitPythonBackend,
    MergeConflictError,
    NothingToCommitError,
    PushRejectedError,
    _auth_header_config,
    _pull_error,
    _push_error,
    _redact,
    create_backend,
    group_by_kind,
    parse_porcelain,
)
from github_vault.filesystem import LocalFileSystem
from github_vault.repo_state import RepositoryStateMachine

from conftest import git, requires_git

BACKENDS = [GitCliBackend, GitPythonBackend]


class TestParsePorcelain:
    """Test parse_porcelain()."""

    def test_change_kinds(self):
        output = "\n".join([
            "## main...origin/main",
            " M notes/daily.md",
            "M  staged.md",
            "A  new.md",
            " D gone.md",
            "R  old.md -> renamed.md",
            "?? untracked.md",
            "AM added-then-edited.md",
            "UU conflicted.md",
        ])

        assert parse_porcelain(output) == [
            ChangedPath("notes/daily.md", ChangeKind.MODIFIED),
            ChangedPath("staged.md", ChangeKind.MODIFIED),
            ChangedPath("new.md", ChangeKind.ADDED),
            ChangedPath("gone.md", ChangeKind.DELETED),
            ChangedPath("renamed.md", ChangeKind.RENAMED),
            ChangedPath("untracked.md", ChangeKind.ADDED),
            ChangedPath("added-then-edited.md", ChangeKind.ADDED),
            ChangedPath("conflicted.md", ChangeKind.MODIFIED),
        ]

    def test_quoted_paths(self):
        assert parse_porcelain('?? "my note.md"\n') == [ChangedPath("my note.md", ChangeKind.ADDED)]

    def test_empty(self):
        assert parse_porcelain("") == []
        assert parse_porcelain("## main\n") == []


def test_group_by_kind():
    grouped = group_by_kind([
        ChangedPath("a.md", ChangeKind.ADDED),
        ChangedPath("b.md", ChangeKind.MODIFIED),
        ChangedPath("c.md", ChangeKind.ADDED),
    ])
    assert grouped == {ChangeKind.ADDED: ["a.md", "c.md"], ChangeKind.MODIFIED: ["b.md"]}


class TestErrorMapping:
    """Test translation of git output into exceptions."""

    def test_push_rejected(self):
        error = _push_error(" ! [rejected]        main -> main (fetch first)")
        assert isinstance(error, PushRejectedError)
        assert error.details

    def test_push_auth(self):
        error = _push_error("fatal: Authentication failed for 'https://github.com/user/vault.git/'")
        assert isinstance(error, AuthenticationError)

    def test_push_other(self):
        error = _push_error("fatal: unable to access: Could not resolve host: github.com\n")
        assert type(error) is GitError
        assert error.message == "Push failed: fatal: unable to access: Could not resolve host: github.com"

    def test_pull_conflict(self):
        assert isinstance(_pull_error("CONFLICT (content): Merge conflict in a.md"), MergeConflictError)

    def test_pull_auth(self):
        assert isinstance(_pull_error("remote: Permission to user/vault.git denied"), AuthenticationError)


def test_credential_is_redacted():
    header = _auth_header_config("ghp_secret")
    text = f"git -c {header} push origin main failed for ghp_secret"

    redacted = _redact(text, "ghp_secret")

    assert "ghp_secret" not in redacted
    assert header.split("Basic ")[1] not in redacted
    assert _redact(text, None) == text


class TestCreateBackend:
    """Test create_backend()."""

    def test_known_backends(self, tmp_path):
        assert isinstance(create_backend("cli", tmp_path), GitCliBackend)
        backend = create_backend("gitpython", str(tmp_path), "token")
        assert isinstance(backend, GitPythonBackend)
        assert backend.root == tmp_path.resolve()
        assert backend.credential == "token"

    def test_unknown_backend(self, tmp_path):
        with pytest.raises(GitError) as excinfo:
            create_backend("hg", tmp_path)
        assert "Unknown git backend" in excinfo.value.message

    def test_empty_credential_is_none(self, tmp_path):
        assert create_backend("cli", tmp_path, "").credential is None


def test_is_initialized_checks_git_metadata(tmp_path):
    backend = GitCliBackend(LocalFileSystem(tmp_path))
    assert backend.is_initialized() is False
    (tmp_path / ".git").mkdir()
    assert backend.is_initialized() is True


@requires_git
@pytest.mark.parametrize("backend_cls", BACKENDS, ids=lambda cls: cls.name)
class TestBackendIntegration:
    """Run each backend against real repositories."""

    @pytest.fixture
    def vault(self, tmp_path):
        vault = tmp_path / "vault"
        vault.mkdir()
        return vault

    def test_probe_available(self, backend_cls, vault):
        assert backend_cls(LocalFileSystem(vault)).probe_available() is True

    def test_initialize_sets_branch(self, backend_cls, vault):
        backend = backend_cls(LocalFileSystem(vault))
        assert backend.is_initialized() is False

        backend.initialize("main")

        assert backend.is_initialized() is True
        assert git("symbolic-ref", "HEAD", cwd=vault).strip() == "refs/heads/main"
        backend.close()

    def test_set_remote_upserts(self, backend_cls, vault):
        backend = backend_cls(LocalFileSystem(vault))
        backend.initialize("main")
        assert backend.get_remote_url("origin") is None

        backend.set_remote("origin", "https://github.com/user/repo.git")
        backend.set_remote("origin", "https://github.com/user/repo.git")
        assert backend.get_remote_url("origin") == "https://github.com/user/repo.git"

        backend.set_remote("origin", "https://github.com/user/repo2.git")
        assert backend.get_remote_url("origin") == "https://github.com/user/repo2.git"
        assert git("remote", cwd=vault).split() == ["origin"]
        backend.close()

    def test_status_stage_commit(self, backend_cls, vault):
        backend = backend_cls(LocalFileSystem(vault))
        backend.initialize("main")
        assert backend.status_list() == []

        (vault / "note1.md").write_text("# Note 1")
        (vault / "folder").mkdir()
        (vault / "folder" / "note2.md").write_text("# Note 2")
        assert backend.status_list() == [
            ChangedPath("folder/note2.md", ChangeKind.ADDED),
            ChangedPath("note1.md", ChangeKind.ADDED),
        ]

        backend.stage_all()
        assert len(backend.status_list()) == 2

        backend.commit("first")
        assert backend.status_list() == []
        assert git("log", "-1", "--format=%s", cwd=vault).strip() == "first"

        (vault / "note1.md").write_text("# Note 1, edited")
        (vault / "folder" / "note2.md").unlink()
        assert backend.status_list() == [
            ChangedPath("folder/note2.md", ChangeKind.DELETED),
            ChangedPath("note1.md", ChangeKind.MODIFIED),
        ]
        backend.close()

    def test_commit_with_nothing_staged(self, backend_cls, vault):
        backend = backend_cls(LocalFileSystem(vault))
        backend.initialize("main")
        (vault / "note.md").write_text("# Note")
        backend.stage_all()
        backend.commit("first")

        with pytest.raises(NothingToCommitError):
            backend.commit("second")
        backend.close()

    def test_push_and_pull(self, backend_cls, vault, bare_remote, tmp_path):
        backend = backend_cls(LocalFileSystem(vault))
        backend.initialize("main")
        backend.set_remote("origin", str(bare_remote))
        (vault / "note.md").write_text("# Note")
        backend.stage_all()
        backend.commit("first")

        backend.push("origin", "main")
        git("--git-dir", str(bare_remote), "rev-parse", "refs/heads/main", cwd=tmp_path)

        other = tmp_path / "other"
        git("clone", "-b", "main", str(bare_remote), str(other), cwd=tmp_path)
        (other / "remote-note.md").write_text("# From elsewhere")
        git("add", "-A", cwd=other)
        git("commit", "-m", "remote change", cwd=other)
        git("push", "origin", "main", cwd=other)

        backend.pull("origin", "main")
        assert (vault / "remote-note.md").read_text() == "# From elsewhere"
        backend.close()

    def test_push_rejected_when_behind(self, backend_cls, vault, bare_remote, tmp_path):
        other = tmp_path / "other"
        other.mkdir()
        git("init", cwd=other)
        git("symbolic-ref", "HEAD", "refs/heads/main", cwd=other)
        (other / "a.md").write_text("a")
        git("add", "-A", cwd=other)
        git("commit", "-m", "elsewhere", cwd=other)
        git("push", str(bare_remote), "main", cwd=other)

        backend = backend_cls(LocalFileSystem(vault))
        backend.initialize("main")
        backend.set_remote("origin", str(bare_remote))
        (vault / "b.md").write_text("b")
        backend.stage_all()
        backend.commit("local")

        with pytest.raises(PushRejectedError):
            backend.push("origin", "main")
        backend.close()

    def test_push_without_remote_fails(self, backend_cls, vault):
        backend = backend_cls(LocalFileSystem(vault))
        backend.initialize("main")
        with pytest.raises(GitError):
            backend.push("origin", "main")
        backend.close()

    def test_vault_inside_parent_repository(self, backend_cls, tmp_path, config):
        parent = tmp_path / "parent"
        vault = parent / "vault"
        vault.mkdir(parents=True)
        git("init", cwd=parent)

        backend = backend_cls(LocalFileSystem(vault))
        assert backend.is_initialized() is True

        assert RepositoryStateMachine(backend, config).ensure_ready() is False
        assert not (vault / ".git").exists()
        assert git("remote", "get-url", "origin", cwd=parent).strip() == config.remote_url
        backend.close()


@requires_git
def test_identity_read_errors_propagate(tmp_path, monkeypatch):
    backend = GitPythonBackend(LocalFileSystem(tmp_path))
    backend.initialize("main")

    class UnreadableConfig:
        def get_value(self, section, option):
            raise OSError("config is unreadable")

    monkeypatch.setattr(backend.repo, "config_reader", lambda *args, **kwargs: UnreadableConfig())

    with pytest.raises(OSError):
        backend.commit("first")
    backend.close()
