from __future__ import annotations

import json
import textwrap
from pathlib import Path

import yaml
from typer.testing import CliRunner

from ea.cli import DEFAULT_CONFIG_TEMPLATE, app, load_config
from ea.tools.vcs import GitRepository


def _write_config(repo: GitRepository, executable: Path | str = "claude") -> Path:
    config_path = repo.root / "edit-assist.yaml"
    config_path.write_text(
        textwrap.dedent(
            f"""
            project:
              repo_root: .
            assistant:
              executable: "{executable}"
              timeout_ms: 5000
            preview:
              width: 20
            """
        ).strip()
        + "\n",
        encoding="utf-8",
    )
    return config_path


def _proposal_payload(target: Path) -> dict:
    return {
        "summary": "Shout",
        "changes": [{"filepath": str(target), "start_line": 1, "end_line": 1, "new_content": "ONE"}],
    }


def _proposal_assistant(fake_assistant, target: Path) -> Path:
    envelope = json.dumps({"result": json.dumps(_proposal_payload(target))})
    return fake_assistant(f"cat <<'EOF'\n{envelope}\nEOF\n")


def test_init_writes_default_config(tmp_path: Path) -> None:
    config_path = tmp_path / "edit-assist.yaml"
    runner = CliRunner()

    result = runner.invoke(app, ["init", "--config", str(config_path)], catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert yaml.safe_load(config_path.read_text(encoding="utf-8")) == DEFAULT_CONFIG_TEMPLATE

    again = runner.invoke(app, ["init", "--config", str(config_path)], catch_exceptions=False)
    assert again.exit_code == 1
    assert "already exists" in again.output


def test_load_config_merges_over_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "custom.yaml"
    config_path.write_text("assistant:\n  timeout_ms: 10\n", encoding="utf-8")

    config = load_config(config_path, required=True)

    assert config["assistant"] == {"executable": "claude", "timeout_ms": 10}
    assert config["inline_diff"]["signs"]["add"] == "+"
    assert load_config(tmp_path / "absent.yaml")["assistant"]["timeout_ms"] == 300000


def test_propose_applies_on_confirmation(fake_assistant, git_repo: GitRepository) -> None:
    target = git_repo.root / "alpha.txt"
    config_path = _write_config(git_repo, _proposal_assistant(fake_assistant, target))

    result = CliRunner().invoke(
        app,
        ["propose", "Shout the first line", "--file", str(target), "--lines", "1-2", "--config", str(config_path)],
        input="y\n",
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "  Summary: Shout" in result.output
    assert "  + ONE" in result.output
    assert "Changes applied" in result.output
    assert target.read_text(encoding="utf-8") == "ONE\ntwo\nthree\n"


def test_propose_declined_leaves_file(fake_assistant, git_repo: GitRepository) -> None:
    target = git_repo.root / "alpha.txt"
    config_path = _write_config(git_repo, _proposal_assistant(fake_assistant, target))

    result = CliRunner().invoke(
        app,
        ["propose", "Shout", "--file", str(target), "--config", str(config_path)],
        input="n\n",
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "Proposal discarded" in result.output
    assert target.read_text(encoding="utf-8") == "one\ntwo\nthree\n"


def test_propose_reports_assistant_failure(fake_assistant, git_repo: GitRepository) -> None:
    config_path = _write_config(git_repo, fake_assistant("echo 'quota exceeded' >&2\nexit 1\n"))

    result = CliRunner().invoke(
        app,
        ["propose", "Anything", "--file", str(git_repo.root / "alpha.txt"), "--config", str(config_path)],
        catch_exceptions=False,
    )

    assert result.exit_code == 1
    assert "Assistant error: quota exceeded" in result.output


def test_edit_declined_reverts(fake_assistant, git_repo: GitRepository) -> None:
    script = fake_assistant("printf 'edited\\n' > alpha.txt\nprintf 'x' > extra.txt\n")
    config_path = _write_config(git_repo, script)

    result = CliRunner().invoke(
        app,
        ["edit", "Rewrite", "--file", str(git_repo.root / "alpha.txt"), "--config", str(config_path)],
        input="n\n",
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "  ~ alpha.txt" in result.output
    assert "  + extra.txt" in result.output
    assert "Changes reverted" in result.output
    assert (git_repo.root / "alpha.txt").read_text(encoding="utf-8") == "one\ntwo\nthree\n"
    assert not (git_repo.root / "extra.txt").exists()


def test_edit_accepted_keeps_tracked_changes(fake_assistant, git_repo: GitRepository) -> None:
    script = fake_assistant("printf 'new beta\\n' > beta.txt\n")
    config_path = _write_config(git_repo, script)

    result = CliRunner().invoke(
        app,
        [
            "edit",
            "Rewrite",
            "--file",
            str(git_repo.root / "alpha.txt"),
            "--all-tracked",
            "--yes",
            "--config",
            str(config_path),
        ],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "Changes kept" in result.output
    assert (git_repo.root / "beta.txt").read_text(encoding="utf-8") == "new beta\n"


def test_apply_and_preview_saved_proposal(git_repo: GitRepository) -> None:
    target = git_repo.root / "alpha.txt"
    config_path = _write_config(git_repo)
    proposal_path = git_repo.root / "proposal.json"
    proposal_path.write_text(json.dumps(_proposal_payload(target)), encoding="utf-8")
    runner = CliRunner()

    shown = runner.invoke(app, ["preview", str(proposal_path), "--config", str(config_path)], catch_exceptions=False)

    assert shown.exit_code == 0, shown.output
    assert "  - one" in shown.output
    assert target.read_text(encoding="utf-8") == "one\ntwo\nthree\n"

    applied = runner.invoke(
        app,
        ["apply", str(proposal_path), "--yes", "--config", str(config_path)],
        catch_exceptions=False,
    )

    assert applied.exit_code == 0, applied.output
    assert target.read_text(encoding="utf-8") == "ONE\ntwo\nthree\n"


def test_apply_rejects_invalid_proposal(git_repo: GitRepository) -> None:
    config_path = _write_config(git_repo)

    result = CliRunner().invoke(
        app,
        ["apply", "-", "--config", str(config_path)],
        input='{"changes": []}',
        catch_exceptions=False,
    )

    assert result.exit_code == 1
    assert "Validation error: proposal must have at least one change" in result.output


def test_invalid_line_range_is_a_usage_error(git_repo: GitRepository) -> None:
    config_path = _write_config(git_repo)

    result = CliRunner().invoke(
        app,
        ["propose", "x", "--file", str(git_repo.root / "alpha.txt"), "--lines", "b-a", "--config", str(config_path)],
    )

    assert result.exit_code == 2


def test_diff_command(git_repo: GitRepository) -> None:
    config_path = _write_config(git_repo)
    runner = CliRunner()

    clean = runner.invoke(app, ["diff", "--config", str(config_path)], catch_exceptions=False)
    assert "-- No uncommitted changes --" in clean.output

    (git_repo.root / "alpha.txt").write_text("one\n2\nthree\n", encoding="utf-8")
    dirty = runner.invoke(app, ["diff", "--config", str(config_path)], catch_exceptions=False)

    assert dirty.exit_code == 0
    assert "+2" in dirty.output
    assert "-two" in dirty.output
