"""Command line interface for pulsesync using Typer."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

import json
import logging

import typer
from pydantic import ValidationError

from .config import Settings, load_settings
from .core.pipeline import SessionResult, analyze_session
from .core.realtime import RealTimeQualityEngine, RealtimeSample
from .errors import ConfigurationError, InputError
from .export import save_session, write_result
from .ingest import RecordedSession, load_session
from .simulation import PRESETS, SimulationConfig, generate_streams, preset
from .utils.logging import get_logger

app = typer.Typer(help="Dual-channel pulse transit time analysis")
logger = logging.getLogger(__name__)


def _parse_override_value(raw: str) -> object:
    lower = raw.lower()
    if lower in {"true", "false"}:
        return lower == "true"
    if lower in {"null", "none"}:
        return None
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        pass
    if raw.startswith("[") or raw.startswith("{"):
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            raise typer.BadParameter(f"invalid JSON override value: {raw}") from None
    return raw


def _ensure_path(settings: Settings, keys: List[str]) -> None:
    current: object = settings
    for key in keys[:-1]:
        if not hasattr(current, key):
            raise typer.BadParameter(f"unknown configuration key: {'.'.join(keys)}")
        current = getattr(current, key)
    if not hasattr(current, keys[-1]):
        raise typer.BadParameter(f"unknown configuration key: {'.'.join(keys)}")


def _apply_override(data: Dict[str, object], keys: List[str], value: object) -> None:
    target = data
    for key in keys[:-1]:
        existing = target.get(key)
        if not isinstance(existing, dict):
            existing = {}
            target[key] = existing
        target = existing
    target[keys[-1]] = value


@app.callback()
def init(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        dir_okay=False,
        file_okay=True,
        exists=False,
        help="Path to a YAML or JSON configuration file.",
    ),
    set_overrides: List[str] = typer.Option(
        [],
        "--set",
        help="Override configuration values using dotted paths, e.g. filter.low_hz=0.8",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Initialise the Typer context with validated settings."""

    get_logger("pulsesync", level=logging.DEBUG if verbose else logging.WARNING)

    if config is not None and not config.exists():
        raise typer.BadParameter(f"configuration file not found: {config}")

    try:
        settings = load_settings(config) if config else Settings()
    except (FileNotFoundError, RuntimeError, TypeError, json.JSONDecodeError) as exc:
        raise typer.BadParameter(f"failed to load configuration: {exc}") from exc
    except ValidationError as exc:
        raise typer.BadParameter(f"invalid configuration: {exc}") from exc

    if set_overrides:
        data = settings.model_dump()
        for override in set_overrides:
            if "=" not in override:
                raise typer.BadParameter(
                    "overrides must be of the form --set section.key=value"
                )
            key, raw_value = override.split("=", 1)
            if not key:
                raise typer.BadParameter("override key cannot be empty")
            keys = key.split(".")
            _ensure_path(settings, keys)
            value = _parse_override_value(raw_value)
            _apply_override(data, keys, value)
        try:
            settings = Settings.model_validate(data)
        except ValidationError as exc:
            raise typer.BadParameter(f"invalid configuration override: {exc}") from exc

    ctx.obj = settings


def _load(path: Path) -> RecordedSession:
    try:
        return load_session(path)
    except (InputError, OSError, ValueError) as exc:
        typer.secho(f"Failed to load session {path}: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _analyze(session: RecordedSession, cfg: Settings) -> SessionResult:
    try:
        return analyze_session(session.face, session.finger, session.aux, settings=cfg)
    except ConfigurationError as exc:
        typer.secho(f"Configuration does not fit {session.source}: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@app.command()
def simulate(
    ctx: typer.Context,
    output: Path = typer.Argument(..., help="Destination .npz or .csv file"),
    preset_name: Optional[str] = typer.Option(
        None, "--preset", "-p", help=f"One of: {', '.join(PRESETS)}"
    ),
    ptt_ms: Optional[float] = typer.Option(None, "--ptt-ms"),
    heart_rate_hz: Optional[float] = typer.Option(None, "--heart-rate-hz"),
    noise: Optional[float] = typer.Option(None, "--noise", help="Tonal noise level"),
    drift: Optional[float] = typer.Option(None, "--drift", help="Baseline drift per sample"),
    duration: Optional[float] = typer.Option(None, "--duration", help="Duration in seconds"),
    seed: Optional[int] = typer.Option(None, "--seed"),
) -> None:
    """Write a synthetic dual-channel session with a known PTT.

    Without ``--preset`` the ``simulation`` configuration section is used;
    explicit options override either source.
    """

    cfg: Settings = ctx.obj
    if preset_name is not None:
        try:
            sim = preset(preset_name)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--preset") from exc
    else:
        sim = SimulationConfig.from_settings(cfg.simulation)

    overrides = {
        "ptt_ms": ptt_ms,
        "heart_rate_hz": heart_rate_hz,
        "noise_level": noise,
        "drift_rate": drift,
        "duration_s": duration,
        "seed": seed,
    }
    sim = sim.with_overrides(**{k: v for k, v in overrides.items() if v is not None})
    if not sim.is_valid():
        logger.warning("simulation parameters outside the physiological range: %s", sim)

    face, finger = generate_streams(sim)
    try:
        path = save_session(output, face, finger)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="OUTPUT") from exc
    typer.echo(
        f"Wrote {len(face)} samples per channel to {path} "
        f"(ptt={sim.ptt_ms:g} ms, hr={sim.heart_rate_bpm:.0f} bpm)"
    )


@app.command()
def analyze(
    ctx: typer.Context,
    input: Path = typer.Argument(..., exists=True, dir_okay=False),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the JSON result here"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only print the headline"),
) -> None:
    """Estimate PTT, confidence and GoodSync segments for a recorded session."""

    cfg: Settings = ctx.obj
    session = _load(input)
    result = _analyze(session, cfg)
    text = write_result(result, output)

    if result.reported:
        headline = f"PTT {result.ptt_ms:.1f} ms (confidence {result.confidence:.2f})"
    else:
        headline = "PTT withheld: " + ", ".join(result.ptt.reasons)
    if quiet:
        typer.echo(headline)
        return
    if output is None:
        typer.echo(text)
        return
    typer.echo(f"{headline}; result written to {output}")
    if not result.reported:
        for tip in result.ptt.guidance:
            typer.echo(f"  - {tip}")


@app.command()
def segments(
    ctx: typer.Context,
    input: Path = typer.Argument(..., exists=True, dir_okay=False),
) -> None:
    """List GoodSync segments of a recorded session."""

    cfg: Settings = ctx.obj
    session = _load(input)
    result = _analyze(session, cfg)
    if not result.segments:
        typer.echo("No GoodSync segments")
        return
    for seg in result.segments:
        typer.echo(
            f"{seg.start_ms / 1000.0:7.2f}s - {seg.end_ms / 1000.0:7.2f}s "
            f"corr={seg.correlation:.2f} dHR={seg.hr_delta_bpm:.1f} bpm "
            f"sqi={seg.sqi_face}/{seg.sqi_finger}"
        )


@app.command()
def plot(
    ctx: typer.Context,
    input: Path = typer.Argument(..., exists=True, dir_okay=False),
    save: Path = typer.Option(..., "--save", "-s", help="Image file to write"),
) -> None:
    """Render conditioned channels, GoodSync segments and window PTTs."""

    from .viz import plot_session

    cfg: Settings = ctx.obj
    session = _load(input)
    result = _analyze(session, cfg)
    if result.conditioned is None:
        typer.secho("Nothing to plot: " + ", ".join(result.ptt.reasons), err=True)
        raise typer.Exit(code=1)
    plot_session(result, save=save)
    typer.echo(f"Saved figure to {save}")


def _replay(session: RecordedSession):
    events = [(int(t), "face", float(v)) for t, v in zip(session.face.timestamps_ns, session.face.values)]
    events += [(int(t), "finger", float(v)) for t, v in zip(session.finger.timestamps_ns, session.finger.values)]
    events.sort(key=lambda e: e[0])
    for t, channel, value in events:
        yield RealtimeSample(t, **{channel: value})


@app.command()
def monitor(
    ctx: typer.Context,
    input: Path = typer.Argument(..., exists=True, dir_okay=False),
) -> None:
    """Replay a recorded session through the near-real-time quality engine."""

    cfg: Settings = ctx.obj
    session = _load(input)
    engine = RealTimeQualityEngine(cfg)
    count = 0
    for sample in _replay(session):
        snap = engine.add_sample(sample)
        if snap is None:
            continue
        count += 1
        delta = "n/a" if snap.hr_delta_bpm is None else f"{snap.hr_delta_bpm:.1f}"
        typer.echo(
            f"{snap.updated_at_ms / 1000.0:7.2f}s face={snap.face.status.value} "
            f"finger={snap.finger.status.value} dHR={delta}"
            + (f" tip={snap.tip}" if snap.tip else "")
        )
    if count == 0:
        typer.echo("Not enough samples for a quality update")


def main() -> None:
    """Execute the Typer application."""

    app()


if __name__ == "__main__":
    main()
