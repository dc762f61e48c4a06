"""
Water Quality Dashboard - Annual Dissolved Oxygen & Turbidity
==============================================================
Fetches open water quality monitoring data from datos.gov.co and renders
annual averages as an interactive Plotly dashboard.

Features:
- Single GET against the Socrata endpoint (capped at 1000 records)
- Drops records lacking oxygen, turbidity or measurement date
- Groups measurements by local calendar year and averages both metrics
- Two bar charts (oxygen only, oxygen vs turbidity) with entry animation
- Click any chart to enlarge it in an overlay; click the background to close
- Visible error page when the data source cannot be reached
- Optional CSV export of the annual series

Usage:
    python water_quality_dashboard.py
    python water_quality_dashboard.py --timezone America/Bogota --csv annual.csv

Requirements:
    - pandas
    - numpy
    - requests
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from pathlib import Path
from typing import Dict, List, Tuple, Optional, Any
import argparse
import copy
import html
import os
import sys
import json
import math
import webbrowser
import datetime
import logging
import zoneinfo

try:
    import pandas as pd
    import numpy as np
    import requests
except ImportError as e:
    print(f"Error: Required package not found ({e.name}). Please install: pip install pandas numpy requests")
    sys.exit(1)

# Configuration
API_URL = "https://www.datos.gov.co/resource/syfm-bqhq.json"
RECORD_LIMIT = 1000
REQUEST_TIMEOUT = 30  # seconds
OUTPUT_HTML = "water_quality_dashboard.html"
ANIMATION_DURATION_MS = 1500

OXYGEN_COLOR = "#1976d2"
TURBIDITY_COLOR = "#ff9800"

OXYGEN_CHART_ID = "oxygenChart"
COMPARISON_CHART_ID = "comparisonChart"
MODAL_OVERLAY_ID = "chartModal"
MODAL_SURFACE_ID = "modalChart"

PLACEHOLDER_VALUES = ['*', '* ', ' *', '**', 'NA', 'N/A', 'n/a', '#', '-', '--', 'Nil', 'nil', 'NIL']
# Leading decimal number, as JS parseFloat reads it ("7.5 mg/L" -> 7.5, "7,5" -> 7)
FLOAT_PREFIX = r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
TWO_PLACES = Decimal("0.01")
LOCALTIME_PATH = "/etc/localtime"

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Raised when the monitoring records cannot be retrieved or decoded"""


@dataclass(frozen=True)
class FieldNames:
    """Names of the required fields in each raw record"""
    oxygen: str = "oxigeno_disuelto"
    turbidity: str = "turbiedad"
    date: str = "fecha_de_la_medicion"

    def as_list(self) -> List[str]:
        return [self.oxygen, self.turbidity, self.date]


@dataclass
class DashboardConfig:
    """Settings for one dashboard run"""
    url: str = API_URL
    limit: int = RECORD_LIMIT
    timeout: float = REQUEST_TIMEOUT
    timezone: Optional[str] = None
    output_path: Path = Path(OUTPUT_HTML)
    csv_path: Optional[Path] = None
    open_browser: bool = True
    fields: FieldNames = field(default_factory=FieldNames)


def _system_timezone() -> datetime.tzinfo:
    """System zone with its DST rules: $TZ, then /etc/localtime, then the current offset"""
    tz_env = os.environ.get("TZ", "").lstrip(":")
    if tz_env:
        try:
            return zoneinfo.ZoneInfo(tz_env)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError):
            logger.debug(f"TZ={tz_env!r} is not an IANA zone name")
    localtime = Path(LOCALTIME_PATH)
    if localtime.is_file():
        try:
            with localtime.open("rb") as f:
                return zoneinfo.ZoneInfo.from_file(f, key="localtime")
        except ValueError as e:
            logger.debug(f"Could not read {localtime}: {e}")
    logger.warning("System timezone rules unavailable, using the current UTC offset")
    return datetime.datetime.now().astimezone().tzinfo


def resolve_timezone(name: Optional[str]) -> datetime.tzinfo:
    """Return the named timezone, or the system local timezone when name is None"""
    if name is None:
        return _system_timezone()
    try:
        return zoneinfo.ZoneInfo(name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name!r}") from e


def round_half_up(value: float) -> Decimal:
    """Two decimals, ties away from zero, on the exact binary value (like JS toFixed)"""
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def format_two_decimals(value: float) -> str:
    return format(round_half_up(value), "f")


@dataclass
class AnnualSeries:
    """Parallel, year-ordered annual means of both metrics"""
    years: List[int] = field(default_factory=list)
    oxygen: List[float] = field(default_factory=list)
    turbidity: List[float] = field(default_factory=list)

    def __post_init__(self):
        if not (len(self.years) == len(self.oxygen) == len(self.turbidity)):
            raise ValueError("years, oxygen and turbidity must have equal length")

    @property
    def is_empty(self) -> bool:
        return not self.years

    @property
    def labels(self) -> List[str]:
        return [str(y) for y in self.years]

    @property
    def oxygen_text(self) -> List[str]:
        return [format_two_decimals(v) for v in self.oxygen]

    @property
    def turbidity_text(self) -> List[str]:
        return [format_two_decimals(v) for v in self.turbidity]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "year": self.years,
            "mean_oxygen_mg_l": self.oxygen,
            "mean_turbidity_ntu": self.turbidity,
        })


@dataclass
class AggregationStats:
    """Counts of what the filter/aggregator kept and dropped"""
    fetched: int = 0
    kept: int = 0
    missing_fields: int = 0
    non_numeric: int = 0
    bad_date: int = 0

    @property
    def dropped(self) -> int:
        return self.missing_fields + self.non_numeric + self.bad_date

    def to_dict(self) -> Dict[str, int]:
        return {
            "fetched": self.fetched,
            "kept": self.kept,
            "dropped": self.dropped,
            "missing_fields": self.missing_fields,
            "non_numeric": self.non_numeric,
            "bad_date": self.bad_date,
        }


@dataclass
class PipelineResult:
    """Outcome of the fetch-and-aggregate stage"""
    series: Optional[AnnualSeries] = None
    stats: AggregationStats = field(default_factory=AggregationStats)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.series is not None


# --------------------------
# Fetching
# --------------------------
class DataFetcher:
    """Retrieves raw monitoring records from the Socrata endpoint"""

    def __init__(
            self,
            url: str = API_URL,
            limit: int = RECORD_LIMIT,
            timeout: float = REQUEST_TIMEOUT,
            session: Optional[requests.Session] = None
    ):
        self.url = url
        self.limit = limit
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_url(self) -> str:
        """Endpoint with the record-count cap embedded as a query parameter"""
        return f"{self.url}?$limit={self.limit}"

    def fetch(self) -> List[Dict[str, Any]]:
        """Issue one GET and return the decoded JSON array of records.

        Raises:
            FetchError: on network failure, HTTP error status, a body that is
                not JSON, or JSON that is not an array.
        """
        url = self.build_url()
        logger.info(f"Fetching records from {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(f"Request to {url} failed: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise FetchError(f"Response from {url} is not valid JSON: {e}") from e

        if not isinstance(payload, list):
            raise FetchError(f"Expected a JSON array from {url}, got {type(payload).__name__}")

        records = [r for r in payload if isinstance(r, dict)]
        if len(records) != len(payload):
            logger.warning(f"Ignored {len(payload) - len(records)} non-object entries in response")
        logger.info(f"Received {len(records)} records")
        return records


# --------------------------
# Filtering & aggregation
# --------------------------
class DataProcessor:
    """Handles filtering, parsing and yearly aggregation of raw records"""

    @staticmethod
    def is_missing(value: Any) -> bool:
        """Absent, null, NaN or blank; numeric zero counts as present"""
        if value is None:
            return True
        if isinstance(value, float) and math.isnan(value):
            return True
        if isinstance(value, str) and value.strip() == "":
            return True
        return False

    @staticmethod
    def to_frame(records: List[Dict[str, Any]], fields: FieldNames) -> pd.DataFrame:
        """Reduce raw records to a DataFrame of the three required columns"""
        columns = fields.as_list()
        rows = [{c: r.get(c) for c in columns} for r in records]
        return pd.DataFrame(rows, columns=columns, dtype=object)

    @staticmethod
    def extract_year(value: Any, tz: datetime.tzinfo) -> Optional[int]:
        """Calendar year of a measurement date in local time.

        Timestamps without an offset are read as local wall-clock time, so the
        written year is kept. Offset-aware timestamps are converted to tz first.
        """
        try:
            ts = pd.Timestamp(str(value).strip())
        except (ValueError, TypeError, OverflowError):
            return None
        if pd.isna(ts):
            return None
        if ts.tzinfo is not None:
            ts = ts.tz_convert(tz)
        return int(ts.year)

    @staticmethod
    def _to_number(series: pd.Series) -> pd.Series:
        """Leading-number parse of text values; NaN when no number leads or it is non-finite"""
        cleaned = series.map(lambda v: v.strip() if isinstance(v, str) else v)
        cleaned = cleaned.replace(PLACEHOLDER_VALUES, np.nan)
        is_text = cleaned.map(lambda v: isinstance(v, str)).astype(bool)
        prefix = cleaned.where(is_text, "").astype(str).str.extract(FLOAT_PREFIX, expand=False).astype(object)
        raw = prefix.where(is_text, cleaned)
        numbers = pd.to_numeric(raw, errors="coerce").astype(float)
        return numbers.where(np.isfinite(numbers))

    @staticmethod
    def parse_measurements(
            df: pd.DataFrame,
            fields: FieldNames,
            tz: datetime.tzinfo,
            stats: Optional[AggregationStats] = None
    ) -> pd.DataFrame:
        """Turn complete records into year/oxygen/turbidity rows, dropping unparseable ones"""
        stats = stats if stats is not None else AggregationStats()

        present = ~df[fields.as_list()].map(DataProcessor.is_missing).any(axis=1)
        stats.missing_fields += int((~present).sum())
        df = df[present]

        oxygen = DataProcessor._to_number(df[fields.oxygen])
        turbidity = DataProcessor._to_number(df[fields.turbidity])
        numeric = oxygen.notna() & turbidity.notna()
        stats.non_numeric += int((~numeric).sum())

        years = df.loc[numeric, fields.date].map(lambda v: DataProcessor.extract_year(v, tz))
        dated = years.notna()
        stats.bad_date += int((~dated).sum())

        index = years[dated].index
        measurements = pd.DataFrame({
            "year": years[dated].astype(int),
            "oxygen": oxygen.loc[index],
            "turbidity": turbidity.loc[index],
        }, index=index)
        stats.kept += len(measurements)
        return measurements.reset_index(drop=True)

    @staticmethod
    def aggregate_by_year(measurements: pd.DataFrame) -> AnnualSeries:
        """Mean of each metric per year, rounded to 2 decimals, years ascending"""
        if measurements.empty:
            return AnnualSeries()

        grouped = measurements.groupby("year", sort=True).agg(
            oxygen_sum=("oxygen", "sum"),
            turbidity_sum=("turbidity", "sum"),
            count=("oxygen", "count"),
        )
        oxygen_mean = grouped["oxygen_sum"] / grouped["count"]
        turbidity_mean = grouped["turbidity_sum"] / grouped["count"]

        return AnnualSeries(
            years=[int(y) for y in grouped.index],
            oxygen=[float(round_half_up(v)) for v in oxygen_mean],
            turbidity=[float(round_half_up(v)) for v in turbidity_mean],
        )

    @staticmethod
    def process(
            records: List[Dict[str, Any]],
            fields: FieldNames,
            tz: datetime.tzinfo
    ) -> Tuple[AnnualSeries, AggregationStats]:
        """Full filter/aggregate stage over raw records"""
        stats = AggregationStats(fetched=len(records))
        df = DataProcessor.to_frame(records, fields)
        measurements = DataProcessor.parse_measurements(df, fields, tz, stats)
        series = DataProcessor.aggregate_by_year(measurements)

        logger.info(
            f"Kept {stats.kept} of {stats.fetched} records "
            f"(missing fields: {stats.missing_fields}, non-numeric: {stats.non_numeric}, "
            f"bad date: {stats.bad_date})"
        )
        logger.info(f"Annual series covers {len(series.years)} years")
        return series, stats


def run_pipeline(config: DashboardConfig, fetcher: Optional[DataFetcher] = None) -> PipelineResult:
    """Fetch and aggregate, returning an explicit outcome instead of raising"""
    fetcher = fetcher or DataFetcher(config.url, config.limit, config.timeout)
    tz = resolve_timezone(config.timezone)
    try:
        records = fetcher.fetch()
    except FetchError as e:
        logger.error(str(e))
        return PipelineResult(error=str(e))

    series, stats = DataProcessor.process(records, config.fields, tz)
    return PipelineResult(series=series, stats=stats)


# --------------------------
# Chart configuration
# --------------------------
@dataclass
class Dataset:
    label: str
    data: List[float]
    color: str
    text: List[str] = field(default_factory=list)


@dataclass
class ChartOptions:
    responsive: bool = True
    animation_duration: int = ANIMATION_DURATION_MS
    begin_at_zero: bool = False
    maintain_aspect_ratio: bool = True


@dataclass
class ChartSpec:
    """Library-neutral bar chart configuration handed to the page"""
    chart_id: str
    title: str
    labels: List[str]
    datasets: List[Dataset]
    options: ChartOptions = field(default_factory=ChartOptions)
    chart_type: str = "bar"
    y_title: str = ""

    def enlarged(self) -> "ChartSpec":
        """Same type and data, filling its container without keeping aspect ratio"""
        return ChartSpec(
            chart_id=self.chart_id,
            title=self.title,
            labels=list(self.labels),
            datasets=copy.deepcopy(self.datasets),
            options=ChartOptions(responsive=True, animation_duration=0, maintain_aspect_ratio=False),
            chart_type=self.chart_type,
            y_title=self.y_title,
        )

    def _value_range(self) -> List[float]:
        values = [v for d in self.datasets for v in d.data]
        if not values:
            return [0, 1]
        lo = min(0.0, min(values))
        hi = max(0.0, max(values)) * 1.1
        return [lo, hi if hi > lo else lo + 1]

    def to_plotly(self) -> Dict[str, Any]:
        """Plotly figure for this chart: data, layout, config and entry animation"""
        data = []
        for d in self.datasets:
            data.append({
                "type": self.chart_type,
                "name": d.label,
                "x": list(self.labels),
                "y": list(d.data),
                "text": list(d.text),
                "textposition": "none",
                "hovertemplate": "%{x}: %{text}<extra>" + d.label + "</extra>",
                "marker": {"color": d.color},
            })

        yaxis: Dict[str, Any] = {"title": self.y_title}
        if self.options.animation_duration:
            # bars start at zero and grow, so the axis cannot autorange mid-animation
            yaxis["range"] = self._value_range()
        if self.options.begin_at_zero:
            yaxis["rangemode"] = "tozero"

        layout = {
            "title": self.title,
            "barmode": "group",
            "margin": {"t": 50, "l": 60, "r": 20, "b": 60},
            "xaxis": {"title": "Year", "type": "category"},
            "yaxis": yaxis,
            "legend": {"orientation": "h", "y": -0.2},
            "autosize": True,
        }
        if not self.options.maintain_aspect_ratio:
            layout["margin"] = {"t": 60, "l": 70, "r": 30, "b": 70}

        return {
            "id": self.chart_id,
            "data": data,
            "layout": layout,
            "config": {"responsive": self.options.responsive, "displaylogo": False},
            "animation": {"duration": self.options.animation_duration},
        }


class ChartBuilder:
    """Builds the two dashboard charts from an annual series"""

    @staticmethod
    def build_oxygen_chart(series: AnnualSeries) -> ChartSpec:
        return ChartSpec(
            chart_id=OXYGEN_CHART_ID,
            title="Annual mean dissolved oxygen",
            labels=series.labels,
            datasets=[Dataset("Annual mean dissolved oxygen (mg/L)", list(series.oxygen),
                              OXYGEN_COLOR, series.oxygen_text)],
            y_title="mg/L",
        )

    @staticmethod
    def build_comparison_chart(series: AnnualSeries) -> ChartSpec:
        return ChartSpec(
            chart_id=COMPARISON_CHART_ID,
            title="Dissolved oxygen vs turbidity (annual means)",
            labels=series.labels,
            datasets=[
                Dataset("Annual mean dissolved oxygen (mg/L)", list(series.oxygen),
                        OXYGEN_COLOR, series.oxygen_text),
                Dataset("Annual mean turbidity (NTU)", list(series.turbidity),
                        TURBIDITY_COLOR, series.turbidity_text),
            ],
            options=ChartOptions(begin_at_zero=True),
        )

    @staticmethod
    def build_charts(series: AnnualSeries) -> Tuple[ChartSpec, ChartSpec]:
        return ChartBuilder.build_oxygen_chart(series), ChartBuilder.build_comparison_chart(series)


# --------------------------
# Modal controller
# --------------------------
class ModalController:
    """Owns the shared overlay and its single enlarged-chart slot.

    The page holds two overlay states, closed (initial) and open, driven by the
    script this controller emits. Opening any managed chart purges the chart in
    the slot before drawing the new one on the shared surface; closing only
    hides the overlay, leaving the instance for the next open to purge.
    """

    OPEN_DISPLAY = "flex"
    CLOSED_DISPLAY = "none"

    _SCRIPT = """
  // Single overlay, single enlarged slot shared by every chart
  const modal = document.getElementById(__OVERLAY_ID__);
  const modalSurface = document.getElementById(__SURFACE_ID__);
  let __SLOT__ = null;

  function openEnlarged(chartId){
    const fig = MODAL.charts[chartId];
    if (!fig) return;
    modal.style.display = __OPEN_DISPLAY__;
    if (__SLOT__ !== null) {
      Plotly.purge(modalSurface);
      __SLOT__ = null;
    }
    Plotly.newPlot(modalSurface, fig.data, fig.layout, fig.config);
    __SLOT__ = chartId;
  }

  modal.addEventListener('click', function(ev){
    if (ev.target === modal) modal.style.display = __CLOSED_DISPLAY__;
  });
"""

    def __init__(
            self,
            overlay_id: str = MODAL_OVERLAY_ID,
            surface_id: str = MODAL_SURFACE_ID,
            slot_name: str = "enlargedChart"
    ):
        if not slot_name.isidentifier():
            raise ValueError(f"Slot name must be a valid identifier: {slot_name!r}")
        self.overlay_id = overlay_id
        self.surface_id = surface_id
        self.slot_name = slot_name
        self._charts: Dict[str, ChartSpec] = {}

    @property
    def chart_ids(self) -> List[str]:
        return list(self._charts)

    def attach(self, spec: ChartSpec):
        self._charts[spec.chart_id] = spec

    def to_bindings(self) -> Dict[str, Any]:
        """Element ids, slot, display states and enlarged figures used by the page"""
        return {
            "overlayId": self.overlay_id,
            "surfaceId": self.surface_id,
            "slot": self.slot_name,
            "openDisplay": self.OPEN_DISPLAY,
            "closedDisplay": self.CLOSED_DISPLAY,
            "charts": {cid: spec.enlarged().to_plotly() for cid, spec in self._charts.items()},
        }

    def render_overlay(self) -> str:
        """Overlay markup: background container wrapping the enlarged-chart surface"""
        return (
            f'<div class="modal-overlay" id="{html.escape(self.overlay_id)}">\n'
            f'  <div class="modal-content">\n'
            f'    <div class="modal-surface" id="{html.escape(self.surface_id)}"></div>\n'
            f'  </div>\n'
            f'</div>'
        )

    def render_script(self) -> str:
        """Open/close handlers for the page, filled from to_bindings()"""
        bindings = self.to_bindings()
        script = self._SCRIPT
        script = script.replace("__OVERLAY_ID__", json.dumps(bindings["overlayId"]))
        script = script.replace("__SURFACE_ID__", json.dumps(bindings["surfaceId"]))
        script = script.replace("__OPEN_DISPLAY__", json.dumps(bindings["openDisplay"]))
        script = script.replace("__CLOSED_DISPLAY__", json.dumps(bindings["closedDisplay"]))
        script = script.replace("__SLOT__", bindings["slot"])
        return script.replace("</script>", "<\\/script>")


# --------------------------
# HTML output
# --------------------------
class HTMLGenerator:
    """Generates the HTML dashboard"""

    @staticmethod
    def _safe_json_dump(obj) -> str:
        json_str = json.dumps(obj, ensure_ascii=False, separators=(",", ":"))
        return json_str.replace("</script>", "<\\/script>")

    @staticmethod
    def _kpis(result: PipelineResult) -> List[Dict[str, Any]]:
        stats = result.stats
        years = result.series.years if result.series else []
        span = f"{years[0]}–{years[-1]}" if years else "n/a"
        return [
            {"label": "Records fetched", "value": stats.fetched},
            {"label": "Valid records", "value": stats.kept},
            {"label": "Dropped records", "value": stats.dropped},
            {"label": "Years covered", "value": span},
        ]

    @staticmethod
    def _render(
            output_path: Path,
            source_url: str,
            charts: List[Dict[str, Any]],
            kpis: List[Dict[str, Any]],
            modal: ModalController,
            message: Optional[Dict[str, str]]
    ) -> Path:
        html_content = HTMLGenerator._get_html_template()
        generated = datetime.datetime.now().strftime("%Y-%m-%d %H:%M")

        html_content = html_content.replace("__MODAL_OVERLAY__", modal.render_overlay())
        html_content = html_content.replace("__MODAL_SCRIPT__", modal.render_script())
        html_content = html_content.replace("__CHARTS_JSON__", HTMLGenerator._safe_json_dump(charts))
        html_content = html_content.replace("__KPIS_JSON__", HTMLGenerator._safe_json_dump(kpis))
        html_content = html_content.replace("__MODAL_JSON__", HTMLGenerator._safe_json_dump(modal.to_bindings()))
        html_content = html_content.replace("__MESSAGE_JSON__", HTMLGenerator._safe_json_dump(message))
        html_content = html_content.replace("__SOURCE_JSON__", HTMLGenerator._safe_json_dump(source_url))
        html_content = html_content.replace("__GENERATED_JSON__", HTMLGenerator._safe_json_dump(generated))

        output_path.write_text(html_content, encoding="utf-8")
        logger.info(f"Dashboard written to: {output_path}")
        return output_path

    @staticmethod
    def generate_dashboard(
            result: PipelineResult,
            charts: Tuple[ChartSpec, ...],
            modal: ModalController,
            output_path: Path,
            source_url: str = API_URL
    ) -> Path:
        """Write the chart dashboard, or a notice when no valid measurements remain"""
        message = None
        figures = [c.to_plotly() for c in charts]
        if result.series is None or result.series.is_empty:
            message = {
                "level": "notice",
                "title": "No valid measurements",
                "text": f"None of the {result.stats.fetched} fetched records had usable "
                        f"dissolved oxygen, turbidity and date values.",
            }
            figures = []
            modal = ModalController(modal.overlay_id, modal.surface_id, modal.slot_name)
        return HTMLGenerator._render(output_path, source_url, figures,
                                     HTMLGenerator._kpis(result), modal, message)

    @staticmethod
    def generate_error_page(message: str, output_path: Path, source_url: str = API_URL) -> Path:
        """Write the dashboard layout with a visible error in place of the charts"""
        error = {"level": "error", "title": "Could not load monitoring data", "text": message}
        return HTMLGenerator._render(output_path, source_url, [], [], ModalController(), error)

    def _get_html_template() -> str:
        """Return the complete HTML template"""
        return """<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8" />
<meta name="viewport" content="width=device-width,initial-scale=1" />
<title>Water Quality - Annual Dissolved Oxygen & Turbidity</title>

<script src="https://cdn.plot.ly/plotly-2.35.2.min.js"></script>

<style>
:root{ --accent1:#0ea5e9; --accent2:#2563eb; --card-bg:#fff; --muted:#6b7280; }
*{box-sizing:border-box}
body{font-family:Inter,system-ui,-apple-system,Segoe UI,Roboto,Helvetica,Arial; background:#f3f6fb; margin:0; color:#0f172a;}
.header{background:linear-gradient(90deg,var(--accent2),var(--accent1)); color:#fff; padding:12px 18px;}
.header h1{margin:0; font-size:18px;}
.header .sub{font-size:12px; opacity:.85; margin-top:4px; word-break:break-all;}
.main{ padding:14px 28px 40px 28px; }
.card{background:var(--card-bg); padding:12px; border-radius:12px; box-shadow:0 6px 18px rgba(45,55,72,0.04); margin-bottom:12px;}
.kpis{display:flex; gap:10px; flex-wrap:wrap;}
.kpi{background:linear-gradient(180deg,#fff,#fbfdff); padding:8px 10px; border-radius:10px; min-width:120px; text-align:center; box-shadow:0 3px 10px rgba(16,24,40,0.04);}
.kpi .label{font-size:12px; color:var(--muted);}
.kpi .value{font-size:20px; font-weight:700; color:var(--accent2);}
.charts-grid{display:grid; grid-template-columns:repeat(auto-fit, minmax(420px, 1fr)); gap:12px;}
.param-title{font-weight:700; margin-bottom:8px;}
.chart-surface{width:100%; height:380px; cursor:zoom-in;}
.hint{color:var(--muted); font-size:12px; margin-top:6px;}
.message{padding:14px; border-radius:8px; font-size:14px;}
.message.error{background:linear-gradient(135deg,#fee2e2,#fecaca); border-left:4px solid #ef4444; color:#991b1b;}
.message.notice{background:linear-gradient(135deg,#fef3c7,#fde68a); border-left:4px solid #f59e0b; color:#92400e;}
.modal-overlay{display:none; position:fixed; inset:0; background:rgba(15,23,42,0.65); z-index:3000; align-items:center; justify-content:center;}
.modal-content{background:var(--card-bg); width:90vw; height:85vh; border-radius:12px; padding:12px; box-shadow:0 20px 40px rgba(2,6,23,0.3);}
.modal-surface{width:100%; height:100%;}
.footer-note{color:var(--muted); font-size:12px; margin-top:12px;}
</style>
</head>
<body>
<div class="header">
  <h1>Water Quality Monitoring - Annual Dissolved Oxygen & Turbidity</h1>
  <div class="sub" id="sourceLine"></div>
</div>

<main class="main">
  <div class="card kpis" id="kpisArea"></div>
  <div id="messageArea"></div>
  <div class="charts-grid" id="chartsContainer"></div>
  <div class="footer-note" id="generatedLine"></div>
</main>

__MODAL_OVERLAY__

<script>
document.addEventListener('DOMContentLoaded', function() {
  const CHARTS = __CHARTS_JSON__;
  const KPIS = __KPIS_JSON__;
  const MODAL = __MODAL_JSON__;
  const MESSAGE = __MESSAGE_JSON__;
  const SOURCE = __SOURCE_JSON__;
  const GENERATED = __GENERATED_JSON__;

  function escapeHtml(s){
    return String(s).replace(/[&<>"']/g, c => ({'&':'&amp;','<':'&lt;','>':'&gt;','"':'&quot;',"'":'&#39;'}[c]));
  }

  document.getElementById('sourceLine').textContent = 'Source: ' + SOURCE;
  document.getElementById('generatedLine').textContent = 'Generated ' + GENERATED;

  const kpisArea = document.getElementById('kpisArea');
  if (KPIS.length === 0) {
    kpisArea.style.display = 'none';
  } else {
    kpisArea.innerHTML = KPIS.map(k =>
      `<div class="kpi"><div class="label">${escapeHtml(k.label)}</div><div class="value">${escapeHtml(k.value)}</div></div>`
    ).join('');
  }

  if (MESSAGE) {
    document.getElementById('messageArea').innerHTML =
      `<div class="card"><div class="message ${escapeHtml(MESSAGE.level)}"><strong>${escapeHtml(MESSAGE.title)}</strong><br>${escapeHtml(MESSAGE.text)}</div></div>`;
  }

  // Draw bars at zero, then grow them to their values
  function drawWithEntry(surface, fig){
    const start = fig.data.map(t => Object.assign({}, t, { y: t.y.map(() => 0) }));
    return Plotly.newPlot(surface, start, fig.layout, fig.config).then(() => {
      if (!fig.animation.duration) return;
      return Plotly.animate(surface, { data: fig.data.map(t => ({ y: t.y })) }, {
        transition: { duration: fig.animation.duration, easing: 'cubic-in-out' },
        frame: { duration: fig.animation.duration, redraw: false }
      });
    });
  }

__MODAL_SCRIPT__

  const container = document.getElementById('chartsContainer');
  CHARTS.forEach(fig => {
    const card = document.createElement('div');
    card.className = 'card';
    card.innerHTML = `<div class="param-title">${escapeHtml(fig.layout.title)}</div>` +
      `<div class="chart-surface" id="${escapeHtml(fig.id)}"></div>` +
      `<div class="hint">Click the chart to enlarge</div>`;
    container.appendChild(card);
    const surface = card.querySelector('.chart-surface');
    drawWithEntry(surface, fig);
    surface.addEventListener('click', function(){ openEnlarged(fig.id); });
  });
});
</script>
</body>
</html>"""


def write_csv(series: AnnualSeries, path: Path) -> Path:
    series.to_frame().to_csv(path, index=False, float_format="%.2f")
    logger.info(f"Annual series written to: {path}")
    return path


def parse_args(argv: Optional[List[str]] = None) -> DashboardConfig:
    parser = argparse.ArgumentParser(
        description="Build the annual dissolved oxygen & turbidity dashboard from datos.gov.co.",
    )
    parser.add_argument("--url", default=API_URL,
                        help=f"Socrata resource endpoint (default: {API_URL})")
    parser.add_argument("--limit", type=int, default=RECORD_LIMIT,
                        help=f"Maximum records to request (default: {RECORD_LIMIT})")
    parser.add_argument("--timeout", type=float, default=REQUEST_TIMEOUT,
                        help=f"HTTP timeout in seconds (default: {REQUEST_TIMEOUT})")
    parser.add_argument("--timezone", default=None,
                        help="IANA timezone used to derive calendar years (default: system local)")
    parser.add_argument("--output", type=Path, default=Path(OUTPUT_HTML),
                        help=f"HTML output path (default: {OUTPUT_HTML})")
    parser.add_argument("--csv", type=Path, default=None,
                        help="Also write the annual series to this CSV file")
    parser.add_argument("--no-browser", action="store_true",
                        help="Don't open the dashboard in a browser")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable debug logging")
    args = parser.parse_args(argv)

    if args.limit < 1:
        parser.error("--limit must be at least 1")

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    return DashboardConfig(
        url=args.url,
        limit=args.limit,
        timeout=args.timeout,
        timezone=args.timezone,
        output_path=args.output,
        csv_path=args.csv,
        open_browser=not args.no_browser,
    )


def open_in_browser(path: Path):
    try:
        webbrowser.open(path.resolve().as_uri())
        logger.info("Dashboard opened in browser")
    except Exception as e:
        logger.warning(f"Could not open browser: {e}")
        logger.info(f"Please open manually: {path}")


def main(argv: Optional[List[str]] = None):
    """Main execution function"""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    try:
        config = parse_args(argv)
        logger.info("Starting Water Quality Dashboard Generator")

        try:
            resolve_timezone(config.timezone)
        except ValueError as e:
            logger.error(str(e))
            sys.exit(1)

        result = run_pipeline(config)

        if not result.ok:
            HTMLGenerator.generate_error_page(result.error, config.output_path, config.url)
            if config.open_browser:
                open_in_browser(config.output_path)
            sys.exit(1)

        charts = ChartBuilder.build_charts(result.series)
        modal = ModalController()
        for chart in charts:
            modal.attach(chart)

        HTMLGenerator.generate_dashboard(result, charts, modal, config.output_path, config.url)

        if config.csv_path is not None:
            write_csv(result.series, config.csv_path)

        if config.open_browser:
            open_in_browser(config.output_path)

        logger.info("Dashboard generation complete!")

    except KeyboardInterrupt:
        logger.info("Process interrupted by user")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
