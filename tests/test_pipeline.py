"""
Tests for the end-to-end flow: run_pipeline, HTMLGenerator, CSV export and
the command-line entry point.
"""
import json
from pathlib import Path

import pandas as pd
import pytest

import water_quality_dashboard as wqd
from water_quality_dashboard import (
    ChartBuilder,
    DashboardConfig,
    FetchError,
    HTMLGenerator,
    ModalController,
    PipelineResult,
    run_pipeline,
    write_csv,
)


def _embedded(html, name):
    """Return the JSON literal assigned to ``const <name> = ...;`` in the page."""
    marker = f"const {name} = "
    start = html.index(marker) + len(marker)
    end = html.index(";\n", start)
    return json.loads(html[start:end])


# ── run_pipeline ──────────────────────────────────────────────────────────────

class TestRunPipeline:
    def test_success(self, fake_fetcher, scenario_records):
        fake_fetcher.fetch.return_value = scenario_records
        result = run_pipeline(DashboardConfig(timezone=None), fetcher=fake_fetcher)
        assert result.ok
        assert result.series.years == [2020]
        assert result.stats.fetched == 3
        assert result.error is None

    def test_fetch_failure_becomes_error_result(self, fake_fetcher):
        fake_fetcher.fetch.side_effect = FetchError("Request to x failed: boom")
        result = run_pipeline(DashboardConfig(), fetcher=fake_fetcher)
        assert not result.ok
        assert result.series is None
        assert "boom" in result.error

    def test_no_valid_records_is_not_an_error(self, fake_fetcher):
        fake_fetcher.fetch.return_value = [{"oxigeno_disuelto": ""}]
        result = run_pipeline(DashboardConfig(), fetcher=fake_fetcher)
        assert result.ok
        assert result.series.is_empty


# ── HTMLGenerator ─────────────────────────────────────────────────────────────

class TestGenerateDashboard:
    def _write(self, tmp_path, series, stats=None):
        result = PipelineResult(series=series, stats=stats or wqd.AggregationStats(fetched=6, kept=4))
        charts = ChartBuilder.build_charts(series)
        modal = ModalController()
        for chart in charts:
            modal.attach(chart)
        out = tmp_path / "dashboard.html"
        HTMLGenerator.generate_dashboard(result, charts, modal, out)
        return out.read_text(encoding="utf-8")

    def test_charts_embedded(self, tmp_path, series):
        html = self._write(tmp_path, series)
        charts = _embedded(html, "CHARTS")
        assert [c["id"] for c in charts] == ["oxygenChart", "comparisonChart"]
        assert _embedded(html, "MESSAGE") is None
        assert "__CHARTS_JSON__" not in html

    def test_modal_bindings_embedded(self, tmp_path, series):
        html = self._write(tmp_path, series)
        bindings = _embedded(html, "MODAL")
        assert bindings["overlayId"] == "chartModal"
        assert 'id="chartModal"' in html
        assert 'id="modalChart"' in html
        assert set(bindings["charts"]) == {"oxygenChart", "comparisonChart"}

    def test_overlay_handlers_drive_shared_surface(self, tmp_path, series):
        html = self._write(tmp_path, series)
        assert "__MODAL_OVERLAY__" not in html
        assert "__MODAL_SCRIPT__" not in html
        assert html.count('id="modalChart"') == 1
        handler = html[html.index("function openEnlarged(chartId)"):]
        purge = handler.index("Plotly.purge(modalSurface)")
        draw = handler.index("Plotly.newPlot(modalSurface")
        assert purge < draw
        assert 'const modalSurface = document.getElementById("modalChart")' in html
        assert "openEnlarged(fig.id)" in html

    def test_kpis(self, tmp_path, series):
        html = self._write(tmp_path, series)
        kpis = {k["label"]: k["value"] for k in _embedded(html, "KPIS")}
        assert kpis["Records fetched"] == 6
        assert kpis["Valid records"] == 4
        assert kpis["Years covered"] == "2019–2021"

    def test_empty_series_shows_notice(self, tmp_path):
        html = self._write(tmp_path, wqd.AnnualSeries())
        assert _embedded(html, "CHARTS") == []
        assert _embedded(html, "MESSAGE")["title"] == "No valid measurements"

    def test_source_url_escaped(self, tmp_path, series):
        result = PipelineResult(series=series)
        out = tmp_path / "d.html"
        HTMLGenerator.generate_dashboard(result, ChartBuilder.build_charts(series), ModalController(),
                                         out, source_url="https://x/</script><b>")
        html = out.read_text(encoding="utf-8")
        assert "https://x/</script>" not in html
        assert _embedded(html, "SOURCE") == "https://x/</script><b>"


class TestGenerateErrorPage:
    def test_error_visible_and_no_charts(self, tmp_path):
        out = tmp_path / "error.html"
        HTMLGenerator.generate_error_page("Request to x failed: timed out", out)
        html = out.read_text(encoding="utf-8")
        message = _embedded(html, "MESSAGE")
        assert message["level"] == "error"
        assert "timed out" in message["text"]
        assert _embedded(html, "CHARTS") == []
        assert _embedded(html, "MODAL")["charts"] == {}


# ── CSV export ────────────────────────────────────────────────────────────────

class TestWriteCsv:
    def test_round_trip(self, tmp_path, series):
        out = write_csv(series, tmp_path / "annual.csv")
        df = pd.read_csv(out)
        assert df["year"].tolist() == [2019, 2020, 2021]
        assert df["mean_oxygen_mg_l"].tolist() == [7.0, 6.1, 5.5]

    def test_two_decimal_values(self, tmp_path, series):
        text = write_csv(series, tmp_path / "annual.csv").read_text(encoding="utf-8")
        assert text.splitlines()[1] == "2019,7.00,8.50"
        assert "20.10" in text


# ── CLI ───────────────────────────────────────────────────────────────────────

class TestParseArgs:
    def test_defaults(self):
        config = wqd.parse_args([])
        assert config.url == wqd.API_URL
        assert config.limit == 1000
        assert config.output_path == Path(wqd.OUTPUT_HTML)
        assert config.csv_path is None
        assert config.open_browser is True

    def test_options(self, tmp_path):
        config = wqd.parse_args([
            "--limit", "200", "--timezone", "America/Bogota", "--no-browser",
            "--output", str(tmp_path / "o.html"), "--csv", str(tmp_path / "a.csv"),
        ])
        assert config.limit == 200
        assert config.timezone == "America/Bogota"
        assert config.open_browser is False
        assert config.csv_path == tmp_path / "a.csv"

    def test_rejects_zero_limit(self):
        with pytest.raises(SystemExit):
            wqd.parse_args(["--limit", "0"])


class TestMain:
    def test_writes_dashboard_and_csv(self, tmp_path, monkeypatch, multi_year_records):
        monkeypatch.setattr(wqd.DataFetcher, "fetch", lambda self: multi_year_records)
        out = tmp_path / "dash.html"
        csv_out = tmp_path / "annual.csv"
        wqd.main(["--no-browser", "--output", str(out), "--csv", str(csv_out)])
        assert len(_embedded(out.read_text(encoding="utf-8"), "CHARTS")) == 2
        assert csv_out.exists()

    def test_fetch_failure_writes_error_page_and_exits(self, tmp_path, monkeypatch):
        def fail(self):
            raise FetchError("Request to x failed: connection refused")

        monkeypatch.setattr(wqd.DataFetcher, "fetch", fail)
        out = tmp_path / "dash.html"
        with pytest.raises(SystemExit) as exc:
            wqd.main(["--no-browser", "--output", str(out)])
        assert exc.value.code == 1
        assert "connection refused" in _embedded(out.read_text(encoding="utf-8"), "MESSAGE")["text"]

    def test_unknown_timezone_exits(self, tmp_path):
        with pytest.raises(SystemExit) as exc:
            wqd.main(["--no-browser", "--timezone", "Nowhere/Special", "--output", str(tmp_path / "x.html")])
        assert exc.value.code == 1
