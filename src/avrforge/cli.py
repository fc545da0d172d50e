"""
Command-line interface for avrforge.

This module provides the `avrforge` CLI tool for generating, building and
flashing AVR firmware.
"""

import argparse
import asyncio
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from avrforge import __version__
from avrforge.build.orchestrator import CompileResult
from avrforge.cli_utils import ErrorFormatter, PathValidator, setup_logging
from avrforge.config.board_config import BOARD_DEFAULTS, load_board_profile
from avrforge.config.project_settings import ConfigurationError, ProjectSettings
from avrforge.deploy.port_coordinator import PortCoordinator
from avrforge.deploy.port_detection import detect_board_port, list_board_ports, usb_ids_from_board
from avrforge.deploy.telemetry import DEFAULT_BAUDRATE, TelemetryError, TelemetryReader
from avrforge.deploy.uploader import UploadResult
from avrforge.pipeline import FirmwarePipeline


@dataclass
class GenerateArgs:
    """Arguments for the generate command."""

    project_dir: Path
    board: Optional[str] = None
    verbose: bool = False


@dataclass
class BuildArgs:
    """Arguments for the build command."""

    project_dir: Path
    board: Optional[str] = None
    verbose: bool = False


@dataclass
class UploadArgs:
    """Arguments for the upload command."""

    project_dir: Path
    board: Optional[str] = None
    port: Optional[str] = None
    image: Optional[Path] = None
    verbose: bool = False


@dataclass
class MonitorArgs:
    """Arguments for the monitor command."""

    project_dir: Path
    port: Optional[str] = None
    baud: int = DEFAULT_BAUDRATE
    timeout: Optional[float] = None
    verbose: bool = False


def _print_compile_result(result: CompileResult, verbose: bool) -> None:
    for warning in result.warnings:
        ErrorFormatter.print_warning(warning)

    if result.success:
        ErrorFormatter.print_success(f"Build successful ({result.build_time:.2f}s)")
        print()
        print(f"Firmware: {result.hex_path}")
        return

    stage = result.stage.value if result.stage else "build"
    ErrorFormatter.print_error(f"Build failed during {stage}", result.error or "")
    errors = [problem for problem in result.problems if problem.is_error]
    for problem in errors:
        print(f"  {problem}")
    if verbose or not errors:
        output = "\n".join(part for part in (result.stdout, result.stderr) if part)
        if output:
            print(output)


def _print_upload_result(result: UploadResult, verbose: bool) -> None:
    if result.success:
        ErrorFormatter.print_success(result.message)
        if result.caveat:
            ErrorFormatter.print_warning(result.caveat)
        return

    ErrorFormatter.print_error("Upload failed", result.message)
    if verbose:
        output = "\n".join(part for part in (result.stdout, result.stderr) if part)
        if output:
            print(output)


def generate_command(args: GenerateArgs) -> None:
    """Regenerate the peripheral initialization sources.

    Examples:
        avrforge generate              # Regenerate in the current directory
        avrforge generate my_project   # Regenerate a specific project
    """
    try:
        pipeline = FirmwarePipeline(verbose=args.verbose)
        result = pipeline.regenerate(args.project_dir, board_id=args.board)

        if not result.success:
            ErrorFormatter.print_error("Code generation failed", result.error or "")
            sys.exit(1)

        if result.written:
            ErrorFormatter.print_success("Generated sources updated")
            for path in result.written:
                print(f"  {path}")
        else:
            ErrorFormatter.print_success("Generated sources already up to date")
        sys.exit(0)

    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt("Generation")
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def build_command(args: BuildArgs) -> None:
    """Compile and link the project into firmware.hex.

    Examples:
        avrforge build                 # Build for the configured board
        avrforge build -b mega         # Build for a specific board
        avrforge build --verbose       # Verbose output
    """
    print(f"avrforge v{__version__}")
    print()

    try:
        pipeline = FirmwarePipeline(verbose=args.verbose)
        result = asyncio.run(pipeline.build(args.project_dir, args.board))
        _print_compile_result(result, args.verbose)
        sys.exit(0 if result.success else 1)

    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt("Build")
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def upload_command(args: UploadArgs) -> None:
    """Build the project (unless an image is given) and flash it.

    Examples:
        avrforge upload                          # Build, detect port, flash
        avrforge upload -p /dev/ttyACM0          # Flash on a specific port
        avrforge upload --image firmware.hex     # Flash a prebuilt image
    """
    print(f"avrforge v{__version__}")
    print()

    try:
        settings = ProjectSettings.load(args.project_dir)
        pipeline = FirmwarePipeline(
            coordinator=PortCoordinator(settle_delay=settings.settle_delay),
            verbose=args.verbose,
        )

        if args.image is None:
            deploy = asyncio.run(pipeline.build_and_upload(args.project_dir, args.board, args.port))
            _print_compile_result(deploy.compile, args.verbose)
            if deploy.upload is not None:
                _print_upload_result(deploy.upload, args.verbose)
            sys.exit(0 if deploy.success else 1)

        board = load_board_profile(args.board or settings.board, settings.boards_txt)
        port = args.port or settings.port or detect_board_port(usb_ids_from_board(board.usb_ids))
        if port is None:
            ErrorFormatter.print_error("Upload failed", "No serial port found. Connect the board or pass --port.")
            sys.exit(1)

        result = asyncio.run(pipeline.upload(args.image, port, board, settings))
        _print_upload_result(result, args.verbose)
        sys.exit(0 if result.success else 1)

    except ConfigurationError as e:
        ErrorFormatter.print_error("Invalid project settings", str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt("Upload")
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def boards_command() -> None:
    """List the built-in board table."""
    print(f"{'ID':<10} {'MCU':<12} {'F_CPU':<12} NAME")
    for board_id, values in BOARD_DEFAULTS.items():
        print(f"{board_id:<10} {values['mcu']:<12} {values['f_cpu']:<12} {values['name']}")
    sys.exit(0)


def ports_command() -> None:
    """List serial ports that may have a board attached."""
    ports = list_board_ports()
    if not ports:
        print("No candidate serial ports found")
        sys.exit(1)
    for port in ports:
        marker = "*" if port.is_arduino else " "
        print(f"{marker} {port.device:<20} {port.description}")
    sys.exit(0)


async def _monitor(args: MonitorArgs, settings: ProjectSettings, port: str) -> None:
    coordinator = PortCoordinator(settle_delay=settings.settle_delay)
    reader = TelemetryReader(
        coordinator,
        port,
        baudrate=args.baud,
        on_record=lambda record: print(json.dumps(record), flush=True),
    )
    await reader.start()
    try:
        if args.timeout is not None:
            await asyncio.sleep(args.timeout)
        else:
            await asyncio.Event().wait()
    finally:
        await reader.close()


def monitor_command(args: MonitorArgs) -> None:
    """Print telemetry records from the board as JSON lines.

    Examples:
        avrforge monitor                      # Detect port, 9600 baud
        avrforge monitor -p COM3 --baud 115200
        avrforge monitor -t 30                # Stop after 30 seconds
    """
    try:
        settings = ProjectSettings.load(args.project_dir)
        port = args.port or settings.port or detect_board_port()
        if port is None:
            ErrorFormatter.print_error("Monitor failed", "No serial port found. Connect the board or pass --port.")
            sys.exit(1)

        print(f"Monitoring {port} at {args.baud} baud (Ctrl-C to stop)")
        asyncio.run(_monitor(args, settings, port))
        sys.exit(0)

    except ConfigurationError as e:
        ErrorFormatter.print_error("Invalid project settings", str(e))
        sys.exit(1)
    except TelemetryError as e:
        ErrorFormatter.print_error("Monitor failed", str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt("Monitor")
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def _add_common_arguments(parser: argparse.ArgumentParser, board: bool = True, port: bool = False) -> None:
    parser.add_argument(
        "project_dir",
        nargs="?",
        type=Path,
        default=Path.cwd(),
        help="Project directory (default: current directory)",
    )
    if board:
        parser.add_argument(
            "-b",
            "--board",
            default=None,
            help="Board id (default: from avrforge.ini, else uno)",
        )
    if port:
        parser.add_argument(
            "-p",
            "--port",
            default=None,
            help="Serial port (default: from avrforge.ini, else auto-detect)",
        )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )


def main() -> None:
    """avrforge - peripheral code generation and firmware flashing for AVR boards."""
    parser = argparse.ArgumentParser(
        prog="avrforge",
        description="avrforge - peripheral code generation and firmware flashing for AVR boards",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"avrforge {__version__}",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Write a rotating log file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    generate_parser = subparsers.add_parser("generate", help="Regenerate peripheral initialization sources")
    _add_common_arguments(generate_parser)

    build_parser = subparsers.add_parser("build", help="Build firmware")
    _add_common_arguments(build_parser)

    upload_parser = subparsers.add_parser("upload", help="Build and flash firmware")
    _add_common_arguments(upload_parser, port=True)
    upload_parser.add_argument(
        "--image",
        type=Path,
        default=None,
        help="Flash this Intel HEX image instead of building",
    )

    subparsers.add_parser("boards", help="List built-in boards")
    subparsers.add_parser("ports", help="List candidate serial ports")

    monitor_parser = subparsers.add_parser("monitor", help="Print board telemetry")
    _add_common_arguments(monitor_parser, board=False, port=True)
    monitor_parser.add_argument(
        "--baud",
        default=DEFAULT_BAUDRATE,
        type=int,
        help=f"Baud rate (default: {DEFAULT_BAUDRATE})",
    )
    monitor_parser.add_argument(
        "-t",
        "--timeout",
        default=None,
        type=float,
        help="Stop after this many seconds (default: run until interrupted)",
    )

    # Parse arguments
    parsed_args = parser.parse_args()

    # If no command specified, show help
    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    setup_logging(getattr(parsed_args, "verbose", False), parsed_args.log_file)

    # Validate project directory exists
    if hasattr(parsed_args, "project_dir"):
        PathValidator.validate_project_dir(parsed_args.project_dir)

    # Execute command
    if parsed_args.command == "generate":
        generate_command(GenerateArgs(
            project_dir=parsed_args.project_dir,
            board=parsed_args.board,
            verbose=parsed_args.verbose,
        ))
    elif parsed_args.command == "build":
        build_command(BuildArgs(
            project_dir=parsed_args.project_dir,
            board=parsed_args.board,
            verbose=parsed_args.verbose,
        ))
    elif parsed_args.command == "upload":
        upload_command(UploadArgs(
            project_dir=parsed_args.project_dir,
            board=parsed_args.board,
            port=parsed_args.port,
            image=parsed_args.image,
            verbose=parsed_args.verbose,
        ))
    elif parsed_args.command == "boards":
        boards_command()
    elif parsed_args.command == "ports":
        ports_command()
    elif parsed_args.command == "monitor":
        monitor_command(MonitorArgs(
            project_dir=parsed_args.project_dir,
            port=parsed_args.port,
            baud=parsed_args.baud,
            timeout=parsed_args.timeout,
            verbose=parsed_args.verbose,
        ))


if __name__ == "__main__":
    main()
