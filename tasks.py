# tasks.py  ── invoke ≥2.2
from invoke import task, Context  # type: ignore
from typing import List, Optional

import contextlib
import pathlib
import shutil
import socket
import sys


BASE_ENV = pathlib.Path(__file__).parent


def _parse_knots(knots: Optional[str]) -> List[float]:
    """
    Parse a comma-separated knot list such as ``"1950,1990"``.

    Raises:
        ValueError: If any entry is not a number
    """
    if not knots:
        return []
    try:
        return [float(k) for k in knots.split(",") if k.strip()]
    except ValueError as e:
        raise ValueError(f"Invalid knot list: {knots}") from e


def _parse_levels(levels: str) -> tuple:
    return tuple(float(c) for c in levels.split(",") if c.strip())


def _port_free(host: str, port: int, timeout: float = 0.1) -> bool:
    """
    Return True iff *host:port* is NOT in use.

    Uses a non-blocking TCP connect and does **not** rely on lsof / netstat.
    """
    try:
        with contextlib.closing(
            socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        ) as s:
            s.settimeout(timeout)
            s.connect((host, port))
            return False      # connection succeeded ⇒ something listening
    except (OSError, socket.timeout):
        return True           # connection failed ⇒ port is free


def _find_port(preferred: int, start: int = 5200) -> int:
    """Try the preferred port, fall back to the first free one >= *start*."""
    if _port_free("127.0.0.1", preferred):
        return preferred
    for port in range(start, 65535):
        if _port_free("127.0.0.1", port):
            return port
    raise RuntimeError("No free port found")


@task(
    help={
        "path": "Test path or node id (default: tests)",
        "keyword": "Only run tests matching this -k expression",
    }
)
def test(c: Context, path: str = "tests", keyword: Optional[str] = None) -> None:
    """Run the pytest suite."""
    cmd = f"{sys.executable} -m pytest {path} -q"
    if keyword:
        cmd += f" -k '{keyword}'"
    c.run(cmd, pty=False)


@task(
    help={
        "games": "Game-level CSV (default: config.GAME_LOG_FILE)",
        "out": "Annual series CSV to write (default: config.ANNUAL_SERIES_FILE)",
    }
)
def aggregate(c: Context, games: Optional[str] = None, out: Optional[str] = None) -> None:
    """Aggregate the raw game log into the cached annual series."""
    from cle_game_duration.data.loader import build_annual_series

    annual = build_annual_series(games, out)
    print(f"📅 {len(annual)} seasons, {int(annual['duration_hours_9'].isna().sum())} without a duration")


@task(
    help={
        "csv": "Annual series CSV (default: config.ANNUAL_SERIES_FILE)",
        "knots": "Comma-separated knot years, e.g. 1950,1990 (default: linear trend)",
        "horizon": "Years to forecast (default: config.FORECAST_HORIZON)",
        "levels": "Comma-separated confidence levels (default: 0.8,0.95)",
        "method": "Interval method: constant | prediction",
        "out": "Write the forecast table to this CSV",
        "save": "Write the forecast table to config.FORECAST_FILE",
        "track": "Log the run to MLflow",
    }
)
def forecast(
    c: Context,
    csv: Optional[str] = None,
    knots: Optional[str] = None,
    horizon: Optional[int] = None,
    levels: str = "0.8,0.95",
    method: str = "constant",
    out: Optional[str] = None,
    save: bool = False,
    track: bool = False,
) -> None:
    """Fit a trend to the annual series, print diagnostics and the forecast."""
    from cle_game_duration.config import DiagnosticsConfig, ForecastConfig, config
    from cle_game_duration.data.loader import CsvSeriesLoader
    from cle_game_duration.models.trend import Linear, PiecewiseLinear
    from cle_game_duration.pipeline import run_from_loader

    knot_years = _parse_knots(knots)
    spec = PiecewiseLinear(knot_years) if knot_years else Linear()
    forecast_config = ForecastConfig(
        horizon=int(horizon) if horizon is not None else config.FORECAST_HORIZON,
        confidence_levels=_parse_levels(levels),
        interval_method=method,
    )

    result = run_from_loader(CsvSeriesLoader(csv), spec, DiagnosticsConfig(), forecast_config)
    print(f"📈 {result.label}")
    print(result.fitted.coefficient_table())
    print("\n🔍 Diagnostics")
    for key, value in result.diagnostics.to_dict().items():
        print(f"  {key}: {value}")
    table = result.forecast.to_frame()
    print("\n🔮 Forecast")
    print(table.to_string(index=False))

    if save and not out:
        config.ensure_directories()
        out = config.FORECAST_FILE
    if out:
        table.to_csv(out, index=False)
        print(f"\n💾 Forecast written to {out}")
    if track:
        from mlops.logging import track_pipeline
        run_id = track_pipeline(result)
        print(f"\n🗂  Logged MLflow run {run_id}")


@task(
    help={
        "csv": "Annual series CSV (default: config.ANNUAL_SERIES_FILE)",
        "knots": "Semicolon-separated knot sets, e.g. '1950;1950,1990'",
    }
)
def compare(c: Context, csv: Optional[str] = None, knots: str = "") -> None:
    """Compare the linear trend with one piecewise trend per knot set."""
    from cle_game_duration.data.loader import CsvSeriesLoader
    from cle_game_duration.models.trend import Linear, PiecewiseLinear
    from cle_game_duration.utils.metrics import compare_specifications

    specs = [Linear()] + [
        PiecewiseLinear(_parse_knots(group)) for group in knots.split(";") if group.strip()
    ]
    series = CsvSeriesLoader(csv).load()
    print(compare_specifications(series, specs).to_string(index=False))


@task(help={"port": "MLflow UI port (default: 5000, auto-assigns if busy)"})
def mlflow_ui(c: Context, port: int = 5000) -> None:
    """Serve the local MLflow tracking UI."""
    port = _find_port(int(port))
    print(f"🌐 MLflow UI on http://127.0.0.1:{port}")
    c.run(f"mlflow ui --port {port}", pty=False)


@task
def clean(c: Context) -> None:
    """Remove local MLflow stores and pytest caches."""
    for name in ("mlruns", "mlruns_local", ".pytest_cache"):
        path = BASE_ENV / name
        if path.exists():
            shutil.rmtree(path, ignore_errors=True)
            print(f"🗑️  Removed {path}")
