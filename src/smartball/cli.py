"""CLI for the smartball kick capture and analysis toolkit."""

import asyncio
import csv
import logging
import sys

import click


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log protocol and decoder details.")
def main(verbose: bool) -> None:
    """smartball: kick capture and force estimation for the smart ball."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _echo_report(report) -> None:
    state = " (cancelled)" if report.cancelled else ""
    click.echo(f"Type {report.data_type}: {report.samples}/{report.requested} samples{state}")
    if not report.impacts:
        click.echo("  No impacts found.")
    for impact in report.impacts:
        click.echo(f"  {impact!r}")


@main.command()
@click.option("--address", "-a", required=True, help="BLE address of the ball.")
@click.option("--samples", "-n", default=1096, help="Samples to request (max 1096).")
@click.option("--type", "data_type", type=click.Choice(["1", "2"]), default="2", help="Stream encoding.")
@click.option("--timeout", "-t", default=30.0, help="Seconds to wait for the kick and the transfer.")
@click.option("--output", "-o", default=None, help="JSONL packet log path.")
def kick(address: str, samples: int, data_type: str, timeout: float, output: str | None) -> None:
    """Arm the ball, wait for a kick and estimate its force."""
    from smartball.analytics.pipeline import analyze_capture
    from smartball.logger import capture_kick
    from smartball.protocol import DataType

    click.echo(f"Connecting to {address}... kick the ball once armed.")
    try:
        capture = asyncio.run(capture_kick(address, samples, DataType(int(data_type)), timeout, output))
    except asyncio.TimeoutError:
        click.echo("Timed out waiting for the ball.")
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nStopped.")
        return

    if capture is None:
        click.echo("Ball is missing required characteristics.")
        sys.exit(1)
    _echo_report(analyze_capture(capture))


@main.command()
@click.argument("file", type=click.Path(exists=True))
@click.option("--type", "data_type", type=click.Choice(["1", "2"]), default=None,
              help="Encoding to assume if the log has no request record.")
@click.option("--samples", "-n", default=None, type=int,
              help="Requested count to assume if the log has no request record.")
@click.option("--json", "as_json", is_flag=True, help="Print reports as JSON.")
def analyze(file: str, data_type: str | None, samples: int | None, as_json: bool) -> None:
    """Replay a packet log and estimate the force of every impact."""
    from smartball.analytics.pipeline import analyze_capture
    from smartball.protocol import DataType
    from smartball.replay import replay_file

    captures = replay_file(file, DataType(int(data_type)) if data_type else None, samples)
    if not captures:
        click.echo("No transmissions found.")
        return

    for capture in captures:
        report = analyze_capture(capture)
        if as_json:
            click.echo(report.to_json())
        else:
            _echo_report(report)


@main.command()
@click.argument("file", type=click.Path(exists=True))
@click.option("--type", "data_type", type=click.Choice(["1", "2"]), default=None,
              help="Encoding to assume if the log has no request record.")
@click.option("--output", "-o", type=click.File("w"), default="-", help="CSV output (default stdout).")
@click.option("--raw", is_flag=True, help="Write device counts instead of g.")
def decode(file: str, data_type: str | None, output, raw: bool) -> None:
    """Decode a packet log to CSV samples (time, x, y, z)."""
    from smartball.protocol import DataType
    from smartball.replay import replay_file

    writer = csv.writer(output)
    writer.writerow(["capture", "time", "x", "y", "z"])
    captures = replay_file(file, DataType(int(data_type)) if data_type else None)
    for i, capture in enumerate(captures):
        for s in capture.samples:
            x, y, z = (s.x, s.y, s.z) if raw else s.g
            writer.writerow([i, f"{s.time:.3f}", x, y, z])


if __name__ == "__main__":
    main()
