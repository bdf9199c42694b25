#!/usr/bin/env python3
# SPDX-License-Identifier: MPL-2.0
"""
Example usage of the peak event program assembly.

This script fetches the upcoming peak events and shows how the normal weekly
program would be adjusted, without contacting the thermostat.
"""

from datetime import datetime, timedelta

from thermostat_scheduler.config import DEFAULT_PEAK_EVENTS_URL, Config
from thermostat_scheduler.hydroquebec import HydroQuebecAPIError, HydroQuebecClient
from thermostat_scheduler.peak import PeakPolicy, assemble_program
from thermostat_scheduler.schedule import DailyProgram, DaySlot, Weekday, WeeklyProgram


def main():
    """Example usage of the program assembly."""

    # Same program every day
    daily = DailyProgram(
        morning=DaySlot(timedelta(hours=7), heat=21, cool=24),
        day=DaySlot(timedelta(hours=9), heat=20, cool=24),
        evening=DaySlot(timedelta(hours=16), heat=21, cool=24),
        night=DaySlot(timedelta(hours=21), heat=20, cool=25),
    )
    config = Config(
        username="unused",
        password="unused",
        normal_program=WeeklyProgram.uniform(daily),
        peak_program=PeakPolicy(
            pre_heat_duration=timedelta(hours=1),
            peak_buffer_duration=timedelta(minutes=2),
            pre_heat_temp_offset=2,
            peak_temp_offset=-2,
        ),
    )

    with HydroQuebecClient(DEFAULT_PEAK_EVENTS_URL) as feed:
        try:
            events = feed.get_peak_events()
        except HydroQuebecAPIError as e:
            print(f"Error fetching peak events: {e}")
            return 1

    now = datetime.now().astimezone()
    print(f"Retrieved {len(events)} peak events, upcoming:")
    for event in events:
        if event.end > now:
            print(f"  {event}")

    program = assemble_program(config, now, events)
    if program == config.normal_program:
        print("\nNo peak event in the next 12 hours, the normal program applies.")
        return 0

    print("\nAdjusted program:")
    print(program.describe())

    print("\nDevice program strings:")
    for name, value in program.to_state_data().items():
        print(f"  {name}: {value}")

    today = Weekday.of(now)
    print(f"\nToday ({today.name.capitalize()}) is stored in {today.program_field}")
    return 0


if __name__ == "__main__":
    exit(main())
