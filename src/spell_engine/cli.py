"""SpellEngine CLI.

Usage:
    spell-engine templates            - List the loaded spell templates
    spell-engine recognize FILE       - Score a JSON stroke against the templates
    spell-engine replay SESSION       - Run a recorded pointer session through capture
    spell-engine learn NAME SESSION   - Record a template from a session and save it
    spell-engine benchmark            - Measure recognition latency
    spell-engine init-config PATH     - Write the default YAML configuration
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Optional

import typer

from spell_engine.config import SpellEngineConfig
from spell_engine.errors import ConfigError

app = typer.Typer(
    name="spell-engine",
    help="🪄 Wand tracking and unistroke spell recognition.",
    add_completion=False,
)

DEFAULT_TEMPLATES_FILE = "templates.json"


def _setup(config_path: Optional[str], log_level: Optional[str]) -> SpellEngineConfig:
    """Load configuration and configure logging for a command."""
    config = SpellEngineConfig()
    if config_path:
        try:
            config = SpellEngineConfig.from_yaml(config_path)
        except (OSError, ConfigError) as e:
            typer.echo(f"❌ Could not load config {config_path}: {e}", err=True)
            raise typer.Exit(1)

    level = (log_level or config.log_level or "info").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return config


def _templates_path(config: SpellEngineConfig, override: Optional[str]) -> Path:
    return Path(override or config.templates_path or DEFAULT_TEMPLATES_FILE)


def _load_recognizer(config: SpellEngineConfig, templates: Optional[str]):
    from spell_engine.templates import TemplateStore, build_recognizer

    store = TemplateStore(_templates_path(config, templates))
    return build_recognizer(store.load_or_defaults(), config.recognizer)


def _read_stroke(path: Path) -> list[tuple[float, float]]:
    """Points from a JSON file: a list of [x, y] / {"x", "y"}, or a template record."""
    from spell_engine.templates import TemplateRecord

    with open(path) as f:
        data = json.load(f)
    if isinstance(data, list):
        data = {"points": data}
    return TemplateRecord.from_dict(data).points


@app.command()
def templates(
    templates: Optional[str] = typer.Option(None, "--templates", "-t", help="Template store (JSON)"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    log_level: Optional[str] = typer.Option(None, help="Log level"),
):
    """List the spell templates the recognizer would load."""
    cfg = _setup(config, log_level)
    recognizer = _load_recognizer(cfg, templates)

    typer.echo(f"📜 {recognizer.template_count} templates")
    for template in recognizer.templates:
        typer.echo(f"   {template.name:25s} {len(template.source):4d} points")


@app.command()
def recognize(
    stroke_file: str = typer.Argument(..., help="JSON file with the stroke points"),
    templates: Optional[str] = typer.Option(None, "--templates", "-t", help="Template store (JSON)"),
    min_score: Optional[float] = typer.Option(None, help="Override the acceptance score"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    log_level: Optional[str] = typer.Option(None, help="Log level"),
):
    """Recognize a single stroke stored as JSON."""
    cfg = _setup(config, log_level)
    path = Path(stroke_file)
    if not path.exists():
        typer.echo(f"❌ Stroke file not found: {stroke_file}", err=True)
        raise typer.Exit(1)

    try:
        points = _read_stroke(path)
    except (ValueError, TypeError, KeyError, AttributeError) as e:
        typer.echo(f"❌ Could not read stroke from {stroke_file}: {e}", err=True)
        raise typer.Exit(1)

    recognizer = _load_recognizer(cfg, templates)
    if min_score is not None:
        recognizer.min_score = min_score

    result = recognizer.recognize(points)
    if result.success:
        typer.echo(f"✨ {result.name} (score: {result.score:.3f})")
        return

    best = f" (best: {result.name}, score: {result.score:.3f})" if result.name else ""
    typer.echo(f"❌ Not recognized: {result.reason}{best}")
    raise typer.Exit(1)


@app.command()
def replay(
    session: str = typer.Argument(..., help="Path to a recorded session (.json/.npz)"),
    templates: Optional[str] = typer.Option(None, "--templates", "-t", help="Template store (JSON)"),
    realtime: bool = typer.Option(False, help="Play at recorded timing"),
    speed: float = typer.Option(1.0, help="Playback speed multiplier"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    log_level: Optional[str] = typer.Option(None, help="Log level"),
):
    """Replay a recorded pointer session through the capture engine."""
    from spell_engine.capture import EventType
    from spell_engine.pipeline import WandPipeline
    from spell_engine.recorder import SessionPlayer

    cfg = _setup(config, log_level)
    path = Path(session)
    if not path.exists():
        typer.echo(f"❌ Session not found: {session}", err=True)
        raise typer.Exit(1)

    player = SessionPlayer.load(path)
    typer.echo(f"▶️  Replaying {path.name} ({player.sample_count} samples, {player.duration:.1f}s)")

    pipeline = WandPipeline.from_config(cfg, recognizer=_load_recognizer(cfg, templates))

    def on_event(event):
        if event.type == EventType.RECOGNIZED and event.result is not None and event.result.success:
            typer.echo(f"   ✨ {event.result.name} (score: {event.result.score:.2f}) at {event.timestamp:.2f}s")
        elif event.is_failure:
            typer.echo(f"   ❌ {event.message} at {event.timestamp:.2f}s")

    pipeline.on_event(on_event)
    player.replay(pipeline, realtime=realtime, speed=speed)

    stats = pipeline.stats
    typer.echo(f"\n✅ Replay complete. {stats.casts} cast(s), {stats.failures} failure(s).")


@app.command()
def learn(
    name: str = typer.Argument(..., help="Spell name for the new template"),
    session: str = typer.Argument(..., help="Recorded session holding one performance"),
    templates: Optional[str] = typer.Option(None, "--templates", "-t", help="Template store (JSON)"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    log_level: Optional[str] = typer.Option(None, help="Log level"),
):
    """Record a template from a session and add it to the template store."""
    from spell_engine.capture import EventType
    from spell_engine.pipeline import WandPipeline
    from spell_engine.recorder import SessionPlayer
    from spell_engine.templates import TemplateStore, build_recognizer, records_from

    cfg = _setup(config, log_level)
    path = Path(session)
    if not path.exists():
        typer.echo(f"❌ Session not found: {session}", err=True)
        raise typer.Exit(1)

    store = TemplateStore(_templates_path(cfg, templates))
    recognizer = build_recognizer(store.load_or_defaults(), cfg.recognizer)
    pipeline = WandPipeline.from_config(cfg, recognizer=recognizer)
    player = SessionPlayer.load(path)

    events = [pipeline.arm(name, timestamp=0.0), pipeline.start(timestamp=0.0)]
    events.extend(player.replay(pipeline))
    events.append(pipeline.stop(timestamp=player.duration))

    outcome = next(
        (e for e in events if e.type in (EventType.RECORDED, EventType.RECORD_FAILED, EventType.IGNORED)),
        None,
    )
    if outcome is None or outcome.type != EventType.RECORDED:
        message = outcome.message if outcome is not None else "no recording produced"
        typer.echo(f"❌ {message}", err=True)
        raise typer.Exit(1)

    store.save(records_from(recognizer))
    typer.echo(f"💾 Recorded '{outcome.template_name}' ({len(outcome.points)} points) -> {store.path}")


@app.command()
def benchmark(
    iterations: int = typer.Option(200, help="Number of strokes to recognize"),
    noise: float = typer.Option(2.0, help="Gaussian jitter (px) added to each stroke"),
    scale: float = typer.Option(4.0, help="Template-to-canvas scale factor"),
    seed: int = typer.Option(42, help="Random seed"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    log_level: Optional[str] = typer.Option(None, help="Log level"),
):
    """Run recognition latency benchmarks on synthetic strokes."""
    import numpy as np
    from spell_engine.profiler import PipelineProfiler
    from spell_engine.templates import build_recognizer, default_templates

    cfg = _setup(config, log_level)
    records = default_templates()
    recognizer = build_recognizer(records, cfg.recognizer)
    profiler = PipelineProfiler()
    rng = np.random.default_rng(seed)

    typer.echo(f"⚡ Running benchmark: {iterations} strokes, {recognizer.template_count} templates")

    hits = 0
    times = []
    for i in range(iterations):
        record = records[i % len(records)]
        stroke = np.asarray(record.points, dtype=np.float64) * scale
        stroke = stroke + rng.normal(0.0, noise, stroke.shape)

        t0 = time.perf_counter()
        with profiler.stage("recognize"):
            result = recognizer.recognize(stroke)
        times.append(time.perf_counter() - t0)

        if result.success and result.name == record.name:
            hits += 1

    avg_ms = sum(times) / len(times) * 1000 if times else 0.0
    p95_ms = sorted(times)[int(len(times) * 0.95)] * 1000 if times else 0.0
    accuracy = hits / iterations if iterations else 0.0

    typer.echo(f"\n📊 Results:")
    typer.echo(f"   Average latency: {avg_ms:.2f} ms")
    typer.echo(f"   P95 latency:     {p95_ms:.2f} ms")
    typer.echo(f"   Self-match rate: {accuracy:.1%}")

    typer.echo(f"\n📈 Stage breakdown:")
    for name, stats in profiler.summary().items():
        typer.echo(f"   {name:25s} avg={stats['avg_ms']:.3f}ms  p95={stats['p95_ms']:.3f}ms")


@app.command("init-config")
def init_config(
    path: str = typer.Argument(..., help="Where to write the YAML file"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Start from this config instead of defaults"),
    log_level: Optional[str] = typer.Option(None, help="Log level"),
):
    """Write the effective configuration (defaults unless --config) to YAML."""
    cfg = _setup(config, log_level)
    target = Path(path)
    if target.exists() and not force:
        typer.echo(f"❌ {path} already exists (use --force to overwrite)", err=True)
        raise typer.Exit(1)

    cfg.to_yaml(target)
    typer.echo(f"📝 Wrote configuration to {target}")


def main():
    app()


if __name__ == "__main__":
    main()
