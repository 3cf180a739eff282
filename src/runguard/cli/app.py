"""
Root Typer application for the runguard CLI.

Commands:
    check   One gate evaluation for an instance (exit 3 if it must wait)
    wait    Poll until the instance may proceed
    admit   One admission cycle, or the fixed-cadence loop with ``--loop``
    config  Show resolved settings
"""

from __future__ import annotations

import typer
from typer import Typer

from runguard.adapters.aws import StepFunctionsDirectory
from runguard.adapters.protocols import ExecutionDirectory
from runguard.cli.utils import console, output_error, output_json
from runguard.coordination.gate import evaluate_gate
from runguard.core.errors import RunGuardError
from runguard.core.logging import configure_logging
from runguard.core.settings import RunGuardSettings, get_settings
from runguard.execution.driver import AdmissionLoop, ControlLoopDriver, DriverConfig
from runguard.handlers import build_admitter

EXIT_MUST_WAIT = 3

app = Typer(
    name="runguard",
    help="runguard: at-most-one-running guards over an eventually-consistent directory.",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("runguard")
        except PackageNotFoundError:
            v = "0.1.0"
        console.print(f"runguard {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """runguard CLI: gate checks and admission cycles."""
    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_format == "json",
        service="runguard",
    )


def make_directory(settings: RunGuardSettings) -> ExecutionDirectory:
    return StepFunctionsDirectory.from_settings(settings)


@app.command("check")
def check(
    job_id: str = typer.Argument(..., help="Job (state machine) identifier"),
    instance_id: str = typer.Argument(..., help="Identity of the instance asking"),
) -> None:
    """Evaluate the oldest-wins gate once and print the decision."""
    settings = get_settings()
    try:
        snapshot = make_directory(settings).list_running(job_id)
        decision = evaluate_gate(instance_id, snapshot)
    except RunGuardError as e:
        output_error(e)

    output_json(decision.to_dict())
    if not decision.can_proceed:
        raise typer.Exit(code=EXIT_MUST_WAIT)


@app.command("wait")
def wait(
    job_id: str = typer.Argument(..., help="Job (state machine) identifier"),
    instance_id: str = typer.Argument(..., help="Identity of the instance asking"),
    interval: float | None = typer.Option(None, "--interval", help="Seconds between polls"),
    max_cycles: int | None = typer.Option(None, "--max-cycles", help="Give up after this many polls"),
) -> None:
    """Poll the gate until the instance may proceed."""
    settings = get_settings()
    overrides = {"max_cycles": max_cycles}
    if interval is not None:
        overrides["wait_interval_seconds"] = interval

    driver = ControlLoopDriver(
        make_directory(settings),
        job_id,
        instance_id,
        DriverConfig.from_settings(settings, **overrides),
    )
    try:
        decision = driver.run_until_proceed()
    except RunGuardError as e:
        output_error(e)

    output_json({**decision.to_dict(), "cycles": driver.cycles})


@app.command("admit")
def admit(
    loop: bool = typer.Option(False, "--loop", help="Keep running on a fixed cadence"),
    interval: float | None = typer.Option(None, "--interval", help="Seconds between cycles"),
    max_cycles: int | None = typer.Option(None, "--max-cycles", help="Stop after this many cycles"),
) -> None:
    """Run the queue-gated admitter."""
    settings = get_settings()
    try:
        admitter = build_admitter(settings)
        if not loop:
            output_json(admitter.run_cycle().to_dict())
            return
    except RunGuardError as e:
        output_error(e)

    admission_loop = AdmissionLoop(
        admitter,
        interval_seconds=interval if interval is not None else settings.admission_interval_seconds,
        max_cycles=max_cycles,
    )
    try:
        results = admission_loop.run()
    except KeyboardInterrupt:
        admission_loop.stop()
        results = admission_loop.results

    output_json([r.to_dict() for r in results])


@app.command("config")
def show_config() -> None:
    """Print the resolved settings as JSON."""
    console.print_json(get_settings().model_dump_json())


if __name__ == "__main__":  # pragma: no cover
    app()
