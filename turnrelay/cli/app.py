import itertools
import json
import logging
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version as package_version
from pathlib import Path
from typing import Any, Callable

import typer

from turnrelay.config import ConfigError, RelayConfig, load_relay_config
from turnrelay.core.types import EVENT_TYPES, ITEM_KINDS, NOTIFICATION_METHODS
from turnrelay.normalize import NotificationNormalizer
from turnrelay.recordings import Recording, RecordingError, read_recording
from turnrelay.session.emitter import new_message_id
from turnrelay.transport import ForwardingError, forward_messages, replay_notifications

app = typer.Typer(help="turnrelay CLI")


@dataclass(slots=True)
class _OutputOptions:
    quiet: bool = False
    stable_json: bool = True


_OUTPUT_OPTIONS = _OutputOptions()


def _resolve_cli_version() -> str:
    try:
        return package_version("turnrelay")
    except PackageNotFoundError:
        from turnrelay import __version__ as local_version

        return local_version


def _version_callback(value: bool) -> None:
    if not value:
        return
    typer.echo(_resolve_cli_version(), color=False)
    raise typer.Exit()


def _configure_logging(level_name: str | None) -> None:
    try:
        config = RelayConfig.from_env()
        if level_name:
            config = config.with_overrides(log_level=level_name)
    except ConfigError as error:
        raise typer.BadParameter(str(error), param_hint="--log-level") from error
    logging.basicConfig(
        level=config.logging_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("turnrelay").setLevel(config.logging_level)


@app.callback()
def app_options(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show turnrelay version and exit.",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        help="Suppress non-error text output.",
    ),
    stable_json: bool = typer.Option(
        True,
        "--stable-json/--pretty-json",
        help="Emit stable compact JSON (or pretty JSON).",
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Logging level (defaults to TURNRELAY_LOG_LEVEL or WARNING).",
    ),
) -> None:
    """Global output and logging controls for all CLI commands."""
    _OUTPUT_OPTIONS.quiet = quiet
    _OUTPUT_OPTIONS.stable_json = stable_json
    _configure_logging(log_level)


def _echo(message: str, *, err: bool = False, force: bool = False) -> None:
    if _OUTPUT_OPTIONS.quiet and not err and not force:
        return
    typer.echo(message, err=err)


def _render_json(payload: Any) -> str:
    if _OUTPUT_OPTIONS.stable_json:
        return json.dumps(payload, ensure_ascii=True, sort_keys=True, separators=(",", ":"))
    return json.dumps(payload, ensure_ascii=True, sort_keys=True, indent=2)


def _echo_json(payload: dict[str, Any], *, err: bool = False) -> None:
    typer.echo(_render_json(payload), err=err)


def _fail(command: str, error: Exception, *, json_output: bool, **context: Any) -> typer.Exit:
    message = f"{command} failed: {error}"
    if json_output:
        _echo_json({"status": "error", "exit_code": 1, "message": message, **context})
    else:
        _echo(message, err=True)
    return typer.Exit(code=1)


def _load_recording(command: str, path: Path, *, json_output: bool) -> Recording:
    try:
        return read_recording(path)
    except FileNotFoundError as error:
        raise _fail(
            command,
            RecordingError(f"recording not found: {path}"),
            json_output=json_output,
            recording_path=str(path),
        ) from error
    except RecordingError as error:
        raise _fail(command, error, json_output=json_output, recording_path=str(path)) from error


def _sequential_ids() -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"msg-{next(counter):06d}"


@app.command()
def normalize(
    recording: Path = typer.Argument(..., help="Path to a .jsonl (or .jsonl.zst) notification recording."),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit one machine-readable payload instead of one event per line.",
    ),
) -> None:
    """Convert recorded runtime notifications into canonical events."""
    loaded = _load_recording("normalize", recording, json_output=json_output)
    normalizer = NotificationNormalizer()
    events = []
    for notification in loaded.notifications:
        events.extend(normalizer.handle_notification(notification.method, notification.params))

    if json_output:
        _echo_json(
            {
                "status": "ok",
                "exit_code": 0,
                "message": "normalize completed",
                "recording": loaded.to_dict(),
                "events": [event.to_dict() for event in events],
            }
        )
        return

    for event in events:
        _echo(_render_json(event.to_dict()))
    _echo(
        f"normalized {len(loaded.notifications)} notifications into {len(events)} events "
        f"(dropped lines: {loaded.dropped_lines})",
        err=True,
    )


@app.command()
def replay(
    recording: Path = typer.Argument(..., help="Path to a .jsonl (or .jsonl.zst) notification recording."),
    forward_url: str | None = typer.Option(
        None,
        "--forward-url",
        help="POST outbound messages to this hub URL (defaults to TURNRELAY_FORWARD_URL).",
    ),
    config_path: Path | None = typer.Option(
        None,
        "--config",
        help="Path to a versioned JSON relay config.",
    ),
    sequential_ids: bool = typer.Option(
        False,
        "--sequential-ids",
        help="Use msg-000001 style message ids instead of random UUIDs.",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit one machine-readable payload instead of one message per line.",
    ),
) -> None:
    """Replay recorded notifications into outbound tool-call messages."""
    try:
        config = load_relay_config(config_path) if config_path is not None else RelayConfig.from_env()
    except (ConfigError, FileNotFoundError) as error:
        raise _fail("replay", error, json_output=json_output, recording_path=str(recording)) from error

    loaded = _load_recording("replay", recording, json_output=json_output)
    result = replay_notifications(
        loaded.notifications,
        id_factory=_sequential_ids() if sequential_ids else new_message_id,
    )
    outbound = result.transport.sent

    target_url = forward_url or config.forward_url
    forward_status: int | None = None
    if target_url:
        try:
            forward_status = forward_messages(
                target_url,
                outbound,
                session_id=result.transport.session_id,
                timeout_seconds=config.request_timeout_seconds,
            )
        except ForwardingError as error:
            raise _fail("replay", error, json_output=json_output, recording_path=str(recording)) from error

    if json_output:
        _echo_json(
            {
                "status": "ok",
                "exit_code": 0,
                "message": "replay completed",
                "recording": loaded.to_dict(),
                "replay": result.to_dict(),
                "messages": outbound,
                "forward_url": target_url,
                "forward_status": forward_status,
            }
        )
        return

    for message in outbound:
        _echo(_render_json(message))
    if target_url:
        _echo(f"forwarded {len(outbound)} messages to {target_url} (HTTP {forward_status})", err=True)


@app.command()
def methods(
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit machine-readable catalogue output.",
    ),
) -> None:
    """List recognized notification methods, item kinds and event types."""
    if json_output:
        _echo_json(
            {
                "status": "ok",
                "exit_code": 0,
                "message": "methods listed",
                "notification_methods": list(NOTIFICATION_METHODS),
                "item_kinds": list(ITEM_KINDS),
                "event_types": list(EVENT_TYPES),
            }
        )
        return

    _echo("notification methods:")
    for method in NOTIFICATION_METHODS:
        _echo(f"  {method}")
    _echo("item kinds: " + ", ".join(ITEM_KINDS))


def main() -> None:
    app()
