# SPDX-License-Identifier: MPL-2.0
"""
Configuration loading and validation.

Settings are read from an INI file, secrets from the systemd credentials
directory ($CREDENTIALS_DIRECTORY). Example configuration:

    [braeburn]
    username = me@example.com

    [peak_events]
    url = https://donnees.hydroquebec.com/api/explore/v2.1/...
    cache_ttl = 25h

    [normal_program]
    default = 07:00/21/24 09:00/20/24 16:00/21/24 21:00/20/25
    saturday = 08:00/21/24 10:00/21/24 16:00/21/24 22:00/20/25

    [peak_program]
    pre_heat_duration = 1h
    peak_buffer = 2m
    pre_heat_temp_offset = 2
    peak_temp_offset = -2
    maintain_normal_temp_before_preheat = false

The thermostat password is read from the braeburn_password credential.
"""

import argparse
import configparser
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlparse

from thermostat_scheduler.peak import PeakPolicy
from thermostat_scheduler.schedule import DailyProgram, DaySlot, Weekday, WeeklyProgram

logger = logging.getLogger(__name__)

DEFAULT_PEAK_EVENTS_URL = (
    "https://donnees.hydroquebec.com/api/explore/v2.1/catalog/datasets/evenements-pointe/"
    "exports/json?lang=fr&refine=secteurclient%3A%22Residentiel%22"
    "&refine=offre%3A%22CPC-D%22&timezone=America%2FToronto"
)
DEFAULT_EVENTS_CACHE_TTL = timedelta(hours=25)

CONFIG_SEARCH_PATHS = [
    "/etc/thermostat-scheduler/thermostat-scheduler.conf",
    "/run/thermostat-scheduler/thermostat-scheduler.conf",
    "/usr/lib/thermostat-scheduler/thermostat-scheduler.conf",
]

_DURATION_RE = re.compile(r"^(?:(?P<hours>\d+)h)?(?:(?P<minutes>\d+)m)?(?:(?P<seconds>\d+)s)?$")


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


def _default_events_cache_file() -> str:
    return str(Path.home() / ".cache" / "thermostat-scheduler" / "events.json")


@dataclass
class Config:
    """Application configuration."""
    # Braeburn BlueLink account
    username: str
    password: str

    # The normal every day program
    normal_program: WeeklyProgram

    # How to modify the program during peak events
    peak_program: PeakPolicy = field(default_factory=PeakPolicy)

    # Peak event feed
    peak_events_url: str = DEFAULT_PEAK_EVENTS_URL
    events_cache_file: str = field(default_factory=_default_events_cache_file)
    events_cache_ttl: timedelta = DEFAULT_EVENTS_CACHE_TTL

    # Logging
    logging_level: str = 'WARNING'  # Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration such as "1h", "2m", "1h30m", "45s" or "hh:mm".

    Args:
        value: Duration string

    Returns:
        timedelta object

    Raises:
        ValueError: If format is invalid
    """
    value = value.strip()

    if ':' in value:
        parts = value.split(':')
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError(f"Invalid duration format: '{value}'. Expected 'hh:mm'")
        hours, minutes = int(parts[0]), int(parts[1])
        if not (0 <= minutes <= 59):
            raise ValueError(f"Minute must be 0-59, got {minutes}")
        return timedelta(hours=hours, minutes=minutes)

    if value == "0":
        return timedelta(0)

    match = _DURATION_RE.match(value)
    if not value or not match:
        raise ValueError(
            f"Invalid duration format: '{value}'. "
            f"Examples: '1h', '2m', '1h30m', '07:30'"
        )
    return timedelta(
        hours=int(match.group('hours') or 0),
        minutes=int(match.group('minutes') or 0),
        seconds=int(match.group('seconds') or 0),
    )


def parse_slot(value: str) -> DaySlot:
    """
    Parse a program slot in format <time>/<heat>/<cool>.

    Args:
        value: String such as "07:00/21/24" or "7h/21/24"

    Returns:
        DaySlot object

    Raises:
        ValueError: If format is invalid
    """
    parts = value.strip().split('/')
    if len(parts) != 3:
        raise ValueError(
            f"Invalid slot format: '{value}'. "
            f"Expected '<time>/<heat>/<cool>'. Example: '07:00/21/24'"
        )

    try:
        return DaySlot(
            time=parse_duration(parts[0]),
            heat=int(parts[1]),
            cool=int(parts[2]),
        )
    except ValueError as e:
        raise ValueError(f"Invalid slot format: '{value}'. {e}")


def parse_daily_program(value: str) -> DailyProgram:
    """
    Parse a daily program made of four whitespace separated slots.

    Slots are, in order: morning, day, evening and night.

    Args:
        value: e.g. "07:00/21/24 09:00/20/24 16:00/21/24 21:00/20/25"

    Returns:
        DailyProgram object

    Raises:
        ValueError: If format is invalid
    """
    slots = value.split()
    if len(slots) != 4:
        raise ValueError(f"A daily program needs 4 slots (morning, day, evening, night), got {len(slots)}")
    return DailyProgram(*(parse_slot(s) for s in slots))


def validate_day_slot(slot: DaySlot) -> None:
    if slot.time < timedelta(0) or slot.time > timedelta(hours=24):
        raise ConfigurationError(f"Slot time must be between 0s and 24h, got: {slot}")
    # Loosely enforce that the temperatures are within acceptable ranges
    if not (0 <= slot.heat <= 50):
        raise ConfigurationError(f"Slot heat must be between 0°C and 50°C, got: {slot}")
    if not (0 <= slot.cool <= 50):
        raise ConfigurationError(f"Slot cool must be between 0°C and 50°C, got: {slot}")


def validate_daily_program(dp: DailyProgram) -> None:
    """
    Validate a daily program.

    Each slot must be within range, and slot times must be in order since
    the slot lookups rely on it.

    Raises:
        ConfigurationError: If the daily program is invalid
    """
    for slot in dp.slots():
        validate_day_slot(slot)

    last = timedelta(seconds=-1)
    for slot in dp.slots():
        if slot.time < last:
            raise ConfigurationError(f"Daily program times aren't in order, {last} !< {slot.time}")
        last = slot.time


def validate_weekly_program(wp: WeeklyProgram) -> None:
    for weekday in Weekday:
        try:
            validate_daily_program(wp.daily_program_on(weekday))
        except ConfigurationError as e:
            raise ConfigurationError(f"{weekday.name.capitalize()}: {e}")


def validate_peak_policy(policy: PeakPolicy) -> None:
    """
    Validate the peak program.

    Raises:
        ConfigurationError: If a value is out of range
    """
    if not (timedelta(0) <= policy.pre_heat_duration <= timedelta(hours=2)):
        raise ConfigurationError(
            f"Pre-heat duration should be between 0s and 2h, got {policy.pre_heat_duration}"
        )
    if not (timedelta(0) <= policy.peak_buffer_duration <= timedelta(minutes=10)):
        raise ConfigurationError(
            f"Peak buffer duration should be between 0s and 10m, got {policy.peak_buffer_duration}"
        )
    if not (0 <= policy.pre_heat_temp_offset <= 10):
        raise ConfigurationError(
            f"Pre-heat temp offset should be between 0°C and 10°C, got {policy.pre_heat_temp_offset}"
        )
    if not (-10 <= policy.peak_temp_offset <= 0):
        raise ConfigurationError(
            f"Peak temp offset should be between -10°C and 0°C, got {policy.peak_temp_offset}"
        )


def validate_config(config: Config) -> None:
    """
    Validate a complete configuration.

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    if not config.username or not config.password:
        raise ConfigurationError("Username and password are required")

    url = urlparse(config.peak_events_url)
    if url.scheme not in ('http', 'https') or not url.netloc:
        raise ConfigurationError(f"Invalid peak events URL: '{config.peak_events_url}'")

    validate_weekly_program(config.normal_program)
    validate_peak_policy(config.peak_program)


def find_default_config() -> Optional[str]:
    """
    Find configuration file using standard search paths.

    Search order:
    1. /etc/thermostat-scheduler/thermostat-scheduler.conf
    2. /run/thermostat-scheduler/thermostat-scheduler.conf
    3. /usr/lib/thermostat-scheduler/thermostat-scheduler.conf
    4. ~/.config/thermostat-scheduler/thermostat-scheduler.conf

    Returns:
        Path to first existing config file, or None if none found
    """
    search_paths = CONFIG_SEARCH_PATHS + [
        str(Path.home() / ".config" / "thermostat-scheduler" / "thermostat-scheduler.conf"),
    ]

    for path in search_paths:
        if os.path.exists(path):
            logger.debug(f"Found configuration file: {path}")
            return path

    return None


def _read_normal_program(parser: configparser.ConfigParser) -> WeeklyProgram:
    if not parser.has_section('normal_program'):
        raise ConfigurationError("Missing [normal_program] section")

    default: Optional[DailyProgram] = None
    if parser.has_option('normal_program', 'default'):
        default = parse_daily_program(parser.get('normal_program', 'default'))

    days: List[DailyProgram] = []
    missing: List[str] = []
    for weekday in Weekday:
        option = weekday.name.lower()
        if parser.has_option('normal_program', option):
            days.append(parse_daily_program(parser.get('normal_program', option)))
        elif default is not None:
            days.append(DailyProgram(*(DaySlot(s.time, s.heat, s.cool) for s in default.slots())))
        else:
            missing.append(option)

    if missing:
        raise ConfigurationError(
            f"No program for {', '.join(missing)} and no default in [normal_program]"
        )
    return WeeklyProgram(days)


def _read_peak_policy(parser: configparser.ConfigParser) -> PeakPolicy:
    policy = PeakPolicy()
    if not parser.has_section('peak_program'):
        logger.warning("No [peak_program] section, peak events will not change the program")
        return policy

    if parser.has_option('peak_program', 'pre_heat_duration'):
        policy.pre_heat_duration = parse_duration(parser.get('peak_program', 'pre_heat_duration'))
    if parser.has_option('peak_program', 'peak_buffer'):
        policy.peak_buffer_duration = parse_duration(parser.get('peak_program', 'peak_buffer'))
    if parser.has_option('peak_program', 'pre_heat_temp_offset'):
        policy.pre_heat_temp_offset = parser.getint('peak_program', 'pre_heat_temp_offset')
    if parser.has_option('peak_program', 'peak_temp_offset'):
        policy.peak_temp_offset = parser.getint('peak_program', 'peak_temp_offset')
    if parser.has_option('peak_program', 'maintain_normal_temp_before_preheat'):
        policy.maintain_normal_temp_before_preheat = parser.getboolean(
            'peak_program', 'maintain_normal_temp_before_preheat'
        )
    return policy


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from INI file and credentials directory.

    Args:
        config_path: Path to configuration INI file. If None, searches default locations.

    Returns:
        Validated Config object

    Raises:
        ConfigurationError: If configuration is invalid or credentials missing
    """
    if config_path is None:
        config_path = find_default_config()
        if config_path is None:
            raise ConfigurationError(
                "No configuration file found. Searched: " + ", ".join(CONFIG_SEARCH_PATHS) +
                ", ~/.config/thermostat-scheduler/thermostat-scheduler.conf"
            )

    if not os.path.exists(config_path):
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read(config_path)
    except configparser.Error as e:
        raise ConfigurationError(f"Invalid configuration file {config_path}: {e}")

    # Get credentials directory from environment
    creds_dir = os.getenv('CREDENTIALS_DIRECTORY')
    if not creds_dir:
        raise ConfigurationError(
            "CREDENTIALS_DIRECTORY environment variable not set"
        )

    creds_path = Path(creds_dir)
    if not creds_path.exists():
        raise ConfigurationError(
            f"Credentials directory does not exist: {creds_dir}"
        )

    password_file = creds_path / "braeburn_password"
    if not password_file.exists():
        raise ConfigurationError(
            f"braeburn_password file not found in {creds_dir}"
        )
    password = password_file.read_text().strip()

    try:
        config = Config(
            username=parser.get('braeburn', 'username'),
            password=password,
            normal_program=_read_normal_program(parser),
            peak_program=_read_peak_policy(parser),
        )

        if parser.has_section('peak_events'):
            if parser.has_option('peak_events', 'url'):
                config.peak_events_url = parser.get('peak_events', 'url')
            if parser.has_option('peak_events', 'cache_file'):
                config.events_cache_file = os.path.expanduser(parser.get('peak_events', 'cache_file'))
            if parser.has_option('peak_events', 'cache_ttl'):
                config.events_cache_ttl = parse_duration(parser.get('peak_events', 'cache_ttl'))

        if parser.has_option('logging', 'level'):
            config.logging_level = parser.get('logging', 'level').upper()

    except (configparser.NoSectionError, configparser.NoOptionError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}")
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration value: {e}")

    validate_config(config)
    return config


def apply_cli_overrides(config: Config, args: argparse.Namespace) -> None:
    """
    Apply command line argument overrides to configuration.

    Args:
        config: Configuration object to modify
        args: Parsed command line arguments
    """
    if getattr(args, 'events_cache', None) is not None:
        logger.debug(f"Overriding events cache file with: {args.events_cache}")
        config.events_cache_file = args.events_cache

    if getattr(args, 'events_cache_ttl', None) is not None:
        config.events_cache_ttl = args.events_cache_ttl

    if getattr(args, 'log_level', None) is not None:
        config.logging_level = args.log_level.upper()


def describe_peak_policy(policy: PeakPolicy) -> Dict[str, str]:
    """Return the peak policy as printable name/value pairs."""
    return {
        "Pre-heat duration": str(policy.pre_heat_duration),
        "Peak buffer": str(policy.peak_buffer_duration),
        "Pre-heat offset": f"{policy.pre_heat_temp_offset:+d}°C",
        "Peak offset": f"{policy.peak_temp_offset:+d}°C",
        "Maintain normal temp": "yes" if policy.maintain_normal_temp_before_preheat else "no",
    }
