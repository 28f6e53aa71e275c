from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Dict, List, Optional
import asyncio
import json
import logging

import typer
from dotenv import load_dotenv

from .browser import adjustment_for_user_agent, detect_browser, detect_device_class
from .config import ConfigurationError, RunConfig, load_run_config, load_runtime_settings
from .mock import mock_probe_fns, scripted_probe_fns
from .registry import build_probes
from .schemas import report_to_dict
from .session import DetectionSession
from .types import Outcome
from .verdicts import state_label, verdict_label


app = typer.Typer(help="Blockscope ad-blocker detection harness")


@app.callback()
def _root_callback(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log pass details to stderr")):
    """Blockscope CLI root."""
    load_dotenv()
    level = logging.INFO if verbose else getattr(logging, load_runtime_settings().log_level.upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _load_config(config: Optional[Path]) -> RunConfig:
    try:
        return load_run_config(config)
    except ConfigurationError as exc:
        typer.echo(f"ERROR: {exc}", err=True)
        raise typer.Exit(1)


def _parse_outcomes(pairs: List[str]) -> Dict[str, Outcome]:
    outcomes: Dict[str, Outcome] = {}
    for item in pairs or []:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            typer.echo(f"ERROR: expected NAME=OUTCOME, got '{item}'", err=True)
            raise typer.Exit(1)
        outcomes[name.strip()] = Outcome.from_value(value)
    return outcomes


async def _no_sleep(_: float) -> None:
    return None


def _run_session(
    cfg: RunConfig,
    implementations: Dict,
    user_agent: Optional[str],
    hostname: Optional[str],
    no_delay: bool,
    out: Optional[Path],
) -> None:
    probes = build_probes(cfg, implementations)
    confirmed: List[bool] = []
    session = DetectionSession(
        probes,
        cfg,
        user_agent=user_agent,
        hostname=hostname,
        on_adblock_confirmed=lambda: confirmed.append(True),
        sleep=_no_sleep if no_delay else asyncio.sleep,
    )
    report = asyncio.run(session.run())
    payload = report_to_dict(report)
    payload["callback_fired"] = bool(confirmed)

    if out is not None:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(payload, indent=2))
        typer.echo(f"Wrote {out}")

    typer.echo(f"{state_label(report.state)}  state={report.state.value}  reason={report.reason}")
    for block in (report.primary, report.verification):
        if block is None or block.result is None:
            continue
        res = block.result
        lo, hi = res.credible_interval
        typer.echo(
            f"  {block.stage}: p={res.probability:.3f}  CI95=[{lo:.3f}, {hi:.3f}]  "
            f"confidence={res.confidence:.3f}  threshold={res.threshold:.3f}  ({verdict_label(res.probability)})"
        )


@app.command("adjust")
def cmd_adjust(user_agent: str = typer.Option("", "--user-agent", "-u", help="User-Agent header to classify")):
    """Show the device/browser classification and the resulting adjustment."""
    payload = {
        "device_class": detect_device_class(user_agent).value,
        "browser": asdict(detect_browser(user_agent)),
        "adjustment": adjustment_for_user_agent(user_agent).to_dict(),
    }
    typer.echo(json.dumps(payload, indent=2))


@app.command("detect")
def cmd_detect(
    outcome: List[str] = typer.Option(None, "--outcome", "-o", help="Scripted probe outcome NAME=positive|negative|indeterminate (repeatable)"),
    config: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, help="Path to run config YAML/JSON"),
    user_agent: str = typer.Option("", "--user-agent", "-u", help="User-Agent header for browser adjustments"),
    hostname: Optional[str] = typer.Option(None, help="Page hostname (dev hosts bypass detection)"),
    no_delay: bool = typer.Option(False, "--no-delay", help="Skip detection and verification delays"),
    out: Optional[Path] = typer.Option(None, help="Write the session report JSON here"),
):
    """Run one detection session against scripted probe outcomes."""
    cfg = _load_config(config)
    outcomes = _parse_outcomes(outcome)
    if not outcomes:
        typer.echo("ERROR: at least one --outcome is required", err=True)
        raise typer.Exit(1)
    _run_session(cfg, scripted_probe_fns(outcomes), user_agent, hostname, no_delay, out)


@app.command("simulate")
def cmd_simulate(
    block_rate: float = typer.Option(0.9, min=0.0, max=1.0, help="Chance each mock probe reports blocking"),
    failure_rate: float = typer.Option(0.0, min=0.0, max=1.0, help="Chance each mock probe is indeterminate"),
    seed: int = typer.Option(0, help="Mock seed (deterministic per probe)"),
    config: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, help="Path to run config YAML/JSON"),
    user_agent: str = typer.Option("", "--user-agent", "-u", help="User-Agent header for browser adjustments"),
    no_delay: bool = typer.Option(False, "--no-delay", help="Skip detection and verification delays"),
    out: Optional[Path] = typer.Option(None, help="Write the session report JSON here"),
):
    """Run one detection session against deterministic mock probes."""
    cfg = _load_config(config)
    fns = mock_probe_fns(block_rate, seed=seed, failure_rate=failure_rate)
    _run_session(cfg, fns, user_agent, None, no_delay, out)


def main():
    app()


if __name__ == "__main__":
    main()
