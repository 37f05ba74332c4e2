"""Tests for the command line scripts' argument handling and output."""

from contextlib import contextmanager

from gymlink.db.store import SourceGymStore
from gymlink.errors import StorageError
from gymlink.types import Org
from scripts import run_gym_matching
from scripts.report_gym_links import format_report
from scripts.run_gym_matching import StopFlag, build_parser


def test_matching_parser_defaults():
    args = build_parser().parse_args([])

    assert args.dry_run is False
    assert args.limit is None
    assert args.page_size is None
    assert args.stats_json is None


def test_matching_parser_options():
    args = build_parser().parse_args(["--dry-run", "--limit", "25", "--page-size", "50"])

    assert args.dry_run is True
    assert args.limit == 25
    assert args.page_size == 50


def test_stop_flag():
    stop = StopFlag()
    assert stop() is False

    stop.request(2, None)

    assert stop() is True


def test_format_report():
    report = format_report(
        {
            Org.IBJJF: {"total": 4, "linked": 1, "unlinked": 3},
            Org.JJWL: {"total": 0, "linked": 0, "unlinked": 0},
        },
        us_only=True,
    )

    assert report.splitlines()[0] == "Gym link coverage (US only):"
    assert "IBJJF" in report
    assert "(25.0% linked)" in report
    assert "(0.0% linked)" in report


def test_matching_main_reports_load_failure(db_session, monkeypatch, capsys):
    @contextmanager
    def fake_session():
        yield db_session

    def unavailable(*args, **kwargs):
        raise StorageError("store unavailable")

    monkeypatch.setattr(run_gym_matching, "get_session", fake_session)
    monkeypatch.setattr(run_gym_matching.signal, "signal", lambda signum, handler: None)
    monkeypatch.setattr(SourceGymStore, "page_by_org", unavailable)

    exit_code = run_gym_matching.main(["--limit", "5"])

    assert exit_code == 1
    output = capsys.readouterr().out
    assert "Loading gyms failed: store unavailable" in output
