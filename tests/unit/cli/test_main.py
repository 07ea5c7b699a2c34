"""Unit tests for CLI command handling."""

from __future__ import annotations

import pytest

from cli.main import main
from core.errors import TidemarkNotFoundError
from core.types import REQUESTED, Instant
from tests.timeline_builders import build_timeline

_RT = "20240101000000000"


def _seed_table(tmp_path) -> str:
    timeline = build_timeline(tmp_path)
    requested = Instant(REQUESTED, "commit", _RT)
    timeline.create_new_instant(requested)
    inflight = timeline.transition_requested_to_inflight(requested)
    timeline.save_as_complete(inflight, {"k": "v"})
    timeline.create_new_instant(Instant(REQUESTED, "clean", "20240101000000001"))
    return str(tmp_path / "table")


def test_cli_extensions_lists_registry(capsys) -> None:
    """CLI extensions should print one line per registered pair."""
    exit_code = main(["extensions"])
    lines = capsys.readouterr().out.strip().splitlines()

    assert exit_code == 0 and len(lines) == 32 and ".commit\tcommit\tCOMPLETED" in lines


def test_cli_instants_lists_latest_states(tmp_path, capsys) -> None:
    """CLI instants should print each instant's latest state."""
    table_root = _seed_table(tmp_path)

    exit_code = main(["--table-root", table_root, "instants"])
    lines = capsys.readouterr().out.strip().splitlines()

    assert exit_code == 0 and lines == [
        f"{_RT}\tcommit\tCOMPLETED\t20231114221320000",
        "20240101000000001\tclean\tREQUESTED\t-",
    ]


def test_cli_instants_filters_pending(tmp_path, capsys) -> None:
    """CLI instants --pending should hide completed instants."""
    table_root = _seed_table(tmp_path)

    main(["--table-root", table_root, "instants", "--pending"])
    lines = capsys.readouterr().out.strip().splitlines()

    assert lines == ["20240101000000001\tclean\tREQUESTED\t-"]


def test_cli_instants_all_states_shows_stage_files(tmp_path, capsys) -> None:
    """CLI instants --all-states should list every stage file."""
    table_root = _seed_table(tmp_path)

    main(["--table-root", table_root, "instants", "--completed", "--all-states"])
    completed_lines = capsys.readouterr().out.strip().splitlines()
    main(["--table-root", table_root, "instants", "--all-states"])
    all_lines = capsys.readouterr().out.strip().splitlines()

    assert len(completed_lines) == 1 and len(all_lines) == 4


def test_cli_show_prints_payload(tmp_path, capsys) -> None:
    """CLI show should print the stored payload."""
    table_root = _seed_table(tmp_path)

    exit_code = main(["--table-root", table_root, "show", _RT, "--action", "commit"])
    output = capsys.readouterr().out.strip()

    assert exit_code == 0 and output == '{"k":"v"}'


def test_cli_show_missing_instant_raises(tmp_path) -> None:
    """CLI show should surface a missing instant as NotFound."""
    table_root = _seed_table(tmp_path)

    with pytest.raises(TidemarkNotFoundError):
        main(["--table-root", table_root, "show", "20990101000000000", "--action", "commit"])


def test_cli_new_instant_time_prints_time(tmp_path, capsys) -> None:
    """CLI new-instant-time should print a 17-digit instant time."""
    exit_code = main(["--table-root", str(tmp_path), "new-instant-time", "--no-lock"])
    output = capsys.readouterr().out.strip()

    assert exit_code == 0 and len(output) == 17 and output.isdigit()


def test_cli_rejects_unknown_action(capsys) -> None:
    """Unknown actions should be rejected by argument parsing."""
    with pytest.raises(SystemExit):
        main(["show", _RT, "--action", "merge"])

    assert "invalid choice" in capsys.readouterr().err
