"""
Command-line entry point.

Resolves devices, checks that the whisper model and executable exist, then
serves the control API. Startup problems exit before any capture begins.
"""

import sys

import click

from .app.output_parser import DEFAULT_NOISE_PATTERNS, OutputParser
from .app.session import RecordingSession
from .app.speech_to_text_engine import WhisperCliEngine
from .config import PipelineConfig
from .input.sources import detect_backend
from .utils.exceptions import CaptureError, InitializationError
from .utils.logger import configure_logging, get_logger, log_file_path


def shorten_device_name(name: str) -> str:
    """Drop common PulseAudio prefixes/suffixes for display."""
    for prefix in ("alsa_output.", "alsa_input."):
        if name.startswith(prefix):
            name = name[len(prefix):]
    if name.endswith(".monitor"):
        name = name[:-len(".monitor")]
    if len(name) > 30:
        name = name[:27] + "..."
    return name


def resolve_devices(backend, device, mic, no_mic, logger):
    """System audio device first, then the microphone unless disabled."""
    if not device:
        try:
            device = backend.default_monitor()
        except CaptureError as e:
            logger.error(f"No default audio monitor found: {e}")
            raise click.ClickException(
                f"Error getting default audio monitor: {e}\n"
                "Please specify a device with --device"
            )
    logger.info(f"System audio device: {device}")

    devices = [device]
    if no_mic:
        logger.info("Microphone capture disabled")
        return devices

    if not mic:
        try:
            mic = backend.default_input()
        except CaptureError as e:
            logger.warning(f"Could not find default microphone: {e}")
            click.echo(
                click.style(f"Warning: Could not find default microphone: {e}", fg="yellow"),
                err=True,
            )
            click.echo("Continuing with system audio only. Use --mic to specify a microphone.", err=True)
            return devices

    logger.info(f"Microphone device: {mic}")
    devices.append(mic)
    return devices


@click.command()
@click.option("--model", "model_path", default=None, help="Path to the whisper.cpp model file")
@click.option("--device", default=None, help="System audio device (default: the default monitor)")
@click.option("--mic", default=None, help="Microphone device (default: the default input)")
@click.option("--no-mic", is_flag=True, help="Disable microphone capture (system audio only)")
@click.option("--language", default=None, help="Transcription language code (default: en)")
@click.option("--log-dir", default=None, help="Directory for log files")
@click.option("--host", default="127.0.0.1", show_default=True, help="Address to serve the API on")
@click.option("--port", default=8000, show_default=True, type=int, help="Port to serve the API on")
def main(model_path, device, mic, no_mic, language, log_dir, host, port):
    """Live transcription of system audio and microphone with whisper.cpp."""
    config = PipelineConfig.from_env(model_path=model_path, language=language, log_dir=log_dir)
    if not config.validate():
        raise click.ClickException("Invalid configuration, see log for details")

    logger = configure_logging(config.log_dir)
    logger.info("Livescribe starting up")
    logger.info(f"Model: {config.model_path}")
    logger.info(f"Log file: {log_file_path(logger)}")

    try:
        engine = WhisperCliEngine(
            config.model_path,
            executable=config.whisper_path,
            language=config.language,
            parser=OutputParser(DEFAULT_NOISE_PATTERNS, config.extra_noise_patterns),
            logger=get_logger("engine"),
        )
    except InitializationError as e:
        logger.error(f"Startup check failed: {e}")
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)
    logger.info(f"Whisper CLI: {engine.whisper_path}")

    try:
        backend = detect_backend()
    except CaptureError as e:
        raise click.ClickException(str(e))

    devices = resolve_devices(backend, device, mic, no_mic, logger)

    session = RecordingSession(
        config,
        engine,
        devices,
        backend=backend,
        logger=get_logger("session"),
    )

    from .server import create_app
    import uvicorn

    click.echo(f"Devices: {' | '.join(shorten_device_name(d) for d in devices)}")
    click.echo(f"Serving on http://{host}:{port}")
    uvicorn.run(create_app(session, logger=get_logger("server")), host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
