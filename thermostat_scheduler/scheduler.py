# SPDX-License-Identifier: MPL-2.0
"""
Thermostat Peak Event Scheduler

Adjusts a Braeburn thermostat's weekly program around Hydro-Québec winter
peak demand events. Meant to run periodically, e.g. hourly from a systemd
timer.

Each run:
1. Loads the normal weekly program and the peak policy from configuration
2. Gets the peak events from the feed (or its local cache)
3. Assembles the program for the peak event ending in the next 12 hours
4. Compares it with the program stored on the thermostat
5. Uploads the new program if it differs, unless running in dry-run mode
"""

import argparse
import difflib
import logging
from datetime import datetime
from typing import List, Optional

from thermostat_scheduler.braeburn import BraeburnAPIError, BraeburnClient
from thermostat_scheduler.config import (
    Config,
    ConfigurationError,
    apply_cli_overrides,
    describe_peak_policy,
    load_config,
    parse_duration,
)
from thermostat_scheduler.hydroquebec import HydroQuebecAPIError, HydroQuebecClient
from thermostat_scheduler.peak import PeakEvent, assemble_program, select_peak_event
from thermostat_scheduler.schedule import WeeklyProgram

# Logger will be configured later based on config/CLI args
logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """
    Configure logging level for all modules.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level_map = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL,
    }

    log_level = level_map.get(level.upper(), logging.WARNING)

    logging.basicConfig(
        level=log_level,
        format='%(name)s - %(levelname)s - %(message)s',
        force=True,
    )

    for name in ('scheduler', 'schedule', 'peak', 'config', 'hydroquebec', 'braeburn'):
        logging.getLogger(f'thermostat_scheduler.{name}').setLevel(log_level)


def program_diff(current: WeeklyProgram, target: WeeklyProgram) -> str:
    """Return a unified diff between two weekly programs, in readable form."""
    return "\n".join(difflib.unified_diff(
        current.describe().splitlines(),
        target.describe().splitlines(),
        fromfile="thermostat",
        tofile="computed",
        lineterm="",
    ))


def fetch_peak_events(config: Config) -> List[PeakEvent]:
    """Get peak events from the feed or its cache."""
    with HydroQuebecClient(config.peak_events_url) as feed:
        return feed.get_peak_events(config.events_cache_file, config.events_cache_ttl)


def run(config: Config, now: Optional[datetime] = None, dry_run: bool = False) -> int:
    """
    Run one scheduling pass.

    Args:
        config: Application configuration
        now: Current time, defaults to the local wall clock
        dry_run: Only report differences, never update the thermostat

    Returns:
        Exit code (0 for success, 1 for error)
    """
    if now is None:
        now = datetime.now().astimezone()

    try:
        events = fetch_peak_events(config)
    except HydroQuebecAPIError as e:
        logger.error(f"Failed to get peak events: {e}")
        return 1

    # Based on the config and the list of peak events, assemble a program
    # for the current week.
    program = assemble_program(config, now, events)
    new_state_data = program.to_state_data()

    if dry_run:
        event = select_peak_event(events, now)
        print(f"Peak event: {event if event else 'none in the next 12 hours'}")
        for name, value in describe_peak_policy(config.peak_program).items():
            print(f"  {name + ':':<22}{value}")
        print(program.describe())

    with BraeburnClient() as client:
        try:
            client.login(config.username, config.password)
            devices = client.list_devices()
        except BraeburnAPIError as e:
            logger.error(f"Failed to get list of devices: {e}")
            return 1

        if not devices:
            logger.error("Expected one device, found none")
            return 1

        if len(devices) > 1:
            logger.warning(
                f"Expected exactly one device, found {len(devices)}. "
                f"Using the first one ({devices[0].uuid})."
            )
        device = devices[0]

        if device.program_state_data() == new_state_data:
            logger.info("No changes required to the thermostat program.")
            return 0

        try:
            current = WeeklyProgram.from_state_data(device.state_data)
            diff = program_diff(current, program)
        except ValueError as e:
            logger.debug(f"Cannot parse the thermostat program: {e}")
            diff = "\n".join(
                f"{name}: {device.state_data.get(name)} -> {value}"
                for name, value in new_state_data.items()
            )

        logger.warning(f"The thermostat program differs from the one that was computed:\n{diff}")
        if dry_run:
            logger.warning("Dry-run; exiting early without any modifications.")
            return 0

        try:
            client.set_device_attributes(device.uuid, new_state_data)
        except BraeburnAPIError as e:
            logger.error(f"Failed to update device schedule: {e}")
            return 1

    logger.info(f"Updated the program of device {device.uuid}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Command line entry point.
    """
    parser = argparse.ArgumentParser(
        description='Thermostat Scheduler - adjusts the thermostat program around peak demand events'
    )
    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='Path to configuration file (default: searches /etc, /run, /usr/lib, ~/.config)'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show the computed program and differences without updating the thermostat'
    )
    parser.add_argument(
        '--events-cache',
        type=str,
        default=None,
        help='Location of the peak events cache file (default: ~/.cache/thermostat-scheduler/events.json)'
    )
    parser.add_argument(
        '--events-cache-ttl',
        type=parse_duration,
        default=None,
        help='How long to cache the peak events for, e.g. "25h" (default: 25h)'
    )
    parser.add_argument(
        '--log-level',
        type=str.upper,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        default=None,
        help='Logging level (overrides config file)'
    )
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        logging.basicConfig(format='%(name)s - %(levelname)s - %(message)s')
        logger.error(f"Failed to read config: {e}")
        return 1

    apply_cli_overrides(config, args)
    configure_logging(config.logging_level)

    return run(config, dry_run=args.dry_run)


if __name__ == "__main__":
    exit(main())
