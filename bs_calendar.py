#!/usr/bin/env python3
"""
bs-calendar - resolve a calendar view and print its view model as JSON.

This is the command line entry point.
"""

import sys
import json
import argparse
from pathlib import Path

from calendar_core.calendar import create_calendar
from calendar_core.config import Config, ConfigError
from calendar_core.network_worker import shutdown_network_worker
from calendar_core.render import JsonRenderer


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="bs-calendar - preview calendar windows, layouts and searches"
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        help="Path to configuration file (default: auto-detect)"
    )
    parser.add_argument(
        "--view",
        choices=["day", "week", "month", "year"],
        help="View to show (default: start_view from the configuration)"
    )
    parser.add_argument(
        "--date",
        help="Reference date, YYYY-MM-DD (default: today)"
    )
    parser.add_argument(
        "--url",
        help="Endpoint to load appointments from"
    )
    parser.add_argument(
        "--appointments",
        type=Path,
        help="JSON file with a list of appointments to use instead of an endpoint"
    )
    parser.add_argument(
        "--search",
        metavar="TERM",
        help="Run a search instead of showing a date window"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug output"
    )
    return parser.parse_args(argv)


def load_config(args) -> Config:
    """Read the configuration file and apply command line overrides."""
    if args.config is not None:
        config = Config.load(args.config)
    elif Config.get_default_config_path().exists():
        config = Config.load()
    else:
        config = Config()

    overrides = {"now_refresh_interval": 0}
    if args.view:
        overrides["start_view"] = args.view
        if args.view not in config.views:
            overrides["views"] = config.views + [args.view]
    if args.date:
        overrides["start_date"] = args.date
    if args.url:
        overrides["url"] = args.url
    if args.debug:
        overrides["debug"] = True
    return config.updated(**overrides)


def load_appointments(path: Path) -> list:
    with open(path, 'r') as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON list of appointments")
    return data


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    # Load configuration
    try:
        config = load_config(args)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        print("\nPlease create a configuration file at:")
        print(f"  - {Config.get_default_config_path()}")
        print("\nExample configuration:")
        print("""
[General]
locale = "en-GB"
start_view = "week"
start_week_on_sunday = false
url = "https://example.com/appointments"

[HourSlots]
start = 7
end = 20
height = 30
""")
        sys.exit(1)
    except (ConfigError, ValueError, TypeError) as e:
        print(f"Error loading configuration: {e}")
        sys.exit(1)

    data_source = None
    if args.appointments is not None:
        try:
            records = load_appointments(args.appointments)
        except (OSError, ValueError) as e:
            print(f"Error loading appointments: {e}")
            sys.exit(1)

        def data_source(query):
            return records

    if args.debug:
        print(f"Loaded configuration from: {args.config or Config.get_default_config_path()}",
              file=sys.stderr)
        print(f"  View: {config.start_view}  Date: {config.start_date}", file=sys.stderr)

    calendar = create_calendar("cli", config, data_source)
    try:
        outcome = calendar.initial_load.result(timeout=config.request_timeout)
        if args.search is not None:
            outcome = calendar.enter_search(args.search).result(timeout=config.request_timeout)
        if outcome.error:
            print(f"Error loading appointments: {outcome.error}", file=sys.stderr)
        JsonRenderer(sys.stdout).render(calendar.view_model)
    finally:
        calendar.destroy()
        shutdown_network_worker()

    return 1 if outcome.error else 0


if __name__ == "__main__":
    sys.exit(main())
