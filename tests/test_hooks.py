import os

import pytest

from gitgate.config_loader import ConfigError
from gitgate.guard.hooks import MARKER, HookInstaller, HookName, InstallOutcome, render_hook

GG = "python -m gitgate"


@pytest.fixture
def hooks_dir(tmp_path):
    path = tmp_path / "hooks"
    path.mkdir()
    return path


def _contents(hooks_dir):
    return {h.value: (hooks_dir / h.value).read_bytes() for h in HookName}


def test_install_writes_three_executable_hooks(hooks_dir):
    results = HookInstaller(hooks_dir, invocation=GG).install()

    assert [r.outcome for r in results] == [InstallOutcome.INSTALLED] * 3
    for hook in HookName:
        path = hooks_dir / hook.value
        assert os.access(path, os.X_OK)
        assert MARKER in path.read_text()
    assert f"{GG} scan || exit $?" in (hooks_dir / "pre-commit").read_text()
    assert f'{GG} check-msg "$1"' in (hooks_dir / "commit-msg").read_text()
    assert "scan --outgoing" in (hooks_dir / "pre-push").read_text()


def test_second_install_is_byte_identical(hooks_dir):
    installer = HookInstaller(hooks_dir, invocation=GG)
    installer.install()
    first = _contents(hooks_dir)

    results = installer.install()
    assert [r.outcome for r in results] == [InstallOutcome.ALREADY_INSTALLED] * 3
    assert _contents(hooks_dir) == first


def test_force_writes_exactly_one_copy(hooks_dir):
    installer = HookInstaller(hooks_dir, invocation=GG)
    installer.install()
    installer.install(force=True)

    for hook in HookName:
        text = (hooks_dir / hook.value).read_text()
        assert text == render_hook(hook, GG)
        assert text.count(MARKER) == 1
    assert list(hooks_dir.glob(".*.tmp")) == []


def test_foreign_hook_kept_without_force_and_backed_up_with_force(hooks_dir):
    foreign = hooks_dir / "pre-commit"
    foreign.write_text("#!/bin/sh\nnpm run lint\n")

    results = {r.hook: r for r in HookInstaller(hooks_dir, invocation=GG).install()}
    assert results[HookName.PRE_COMMIT].outcome == InstallOutcome.SKIPPED_FOREIGN
    assert foreign.read_text() == "#!/bin/sh\nnpm run lint\n"

    results = {r.hook: r for r in HookInstaller(hooks_dir, invocation=GG).install(force=True)}
    replaced = results[HookName.PRE_COMMIT]
    assert replaced.outcome == InstallOutcome.REPLACED
    assert replaced.backup.read_text() == "#!/bin/sh\nnpm run lint\n"
    assert MARKER in foreign.read_text()


def test_missing_hooks_dir_is_config_error(tmp_path):
    with pytest.raises(ConfigError):
        HookInstaller(tmp_path / "not-a-repo" / "hooks").install()
