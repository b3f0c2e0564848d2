import io
import json

from rich.console import Console

from needlebot.ui import Dashboard, Stats, make_logger


def quiet_dash(tmp_path):
    console = Console(file=io.StringIO(), width=100, color_system=None)
    return Dashboard(stats=Stats(stats_file=str(tmp_path / "stats.json")), console=console)


def test_debug_hidden_unless_verbose(tmp_path):
    dash = quiet_dash(tmp_path)
    log = make_logger(dash)
    log("Not found: map.png (0.412 < 0.900)", "DEBUG")
    log("Anchor 'map' @ 100,100", "SUCCESS")
    assert [lvl for _, lvl, _ in dash.lines()] == ["SUCCESS"]

    verbose = make_logger(dash, verbose=True)
    verbose("Needle loaded", "DEBUG")
    assert [lvl for _, lvl, _ in dash.lines()] == ["SUCCESS", "DEBUG"]


def test_messages_with_brackets_print_verbatim(tmp_path):
    dash = quiet_dash(tmp_path)
    dash.log("Region [x, y, w, h] = [1, 2, 3, 4]", "WARN")
    out = dash._console.file.getvalue()
    assert "[1, 2, 3, 4]" in out
    assert "WARN" in out


def test_stats_hit_rate_and_counter():
    stats = Stats()
    for _ in range(4):
        stats.inc_cycles()
    stats.inc_matches()
    stats.inc_misses()
    stats.set_counter("1450")
    data = stats.get()
    assert data["hit_rate"] == 25.0
    assert data["counter"] == "1450"
    assert data["runtime"] == "00:00:00"


def test_stats_totals_survive_restart(tmp_path):
    path = str(tmp_path / "logs" / "stats.json")
    first = Stats(stats_file=path)
    first.inc_clicks()
    first.inc_clicks()
    first.inc_frames()
    first.save()
    assert json.loads((tmp_path / "logs" / "stats.json").read_text())["total_clicks"] == 2

    second = Stats(stats_file=path)
    second.load()
    second.inc_clicks()
    data = second.get()
    assert data["clicks"] == 1
    assert data["total_clicks"] == 3
    assert data["total_frames"] == 1


def test_corrupt_stats_file_ignored(tmp_path):
    path = tmp_path / "stats.json"
    path.write_text("{broken")
    stats = Stats(stats_file=str(path))
    stats.load()
    assert stats.get()["total_clicks"] == 0


def test_dashboard_renders_without_live(tmp_path):
    dash = quiet_dash(tmp_path)
    dash.set_status(Dashboard.STATUS_RUNNING, "frame loop")
    dash.set_session(["state=ready", "map: (100,100) 40x40 score=0.970"])
    dash.stats.set_counter("12")
    dash._console.print(dash._render())
    out = dash._console.file.getvalue()
    assert "NEEDLEBOT" in out
    assert "map: (100,100)" in out
