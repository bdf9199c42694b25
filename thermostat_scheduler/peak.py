# SPDX-License-Identifier: MPL-2.0
"""
Peak Event Program Assembly

Overlays a peak demand event onto the normal weekly program. Before the
event the thermostat pre-heats, during the event it holds a lower
temperature, and once the event (plus a small buffer) is over it returns to
the normal program.

Only one event is ever applied per run: the first one, in list order, that
ends within the lookahead window.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Iterable, Optional

from thermostat_scheduler.schedule import DaySlot, Weekday, WeeklyProgram

if TYPE_CHECKING:
    from thermostat_scheduler.config import Config

logger = logging.getLogger(__name__)

# Only events ending within this window of now are applied.
EVENT_LOOKAHEAD = timedelta(hours=12)


@dataclass
class PeakPolicy:
    """How to modify the normal program around a peak event."""
    # How long to pre-heat before a peak event. Too long a pre-heat can run
    # into the previous slot.
    pre_heat_duration: timedelta = timedelta(0)

    # How long before and after the peak event to hold the peak temperature,
    # to absorb clock drift between the schedule and the thermostat.
    # TODO: the thermostat appears to round slot times down to 10 minutes
    # (18m -> 10m), so buffers under 10m are not honoured on the device.
    peak_buffer_duration: timedelta = timedelta(0)

    # Heat offset during pre-heating, relative to the normal temperature at
    # the end of the peak event.
    pre_heat_temp_offset: int = 0

    # Heat offset during the peak event, relative to the same reference.
    peak_temp_offset: int = 0

    # Keep the temperature of the peak period, rather than the one that
    # precedes pre-heating, until pre-heating starts.
    maintain_normal_temp_before_preheat: bool = False


@dataclass(frozen=True)
class PeakEvent:
    """A peak demand event, start < end, both timezone-aware."""
    start: datetime
    end: datetime

    def __str__(self) -> str:
        return f"{self.start.isoformat()} to {self.end.isoformat()}"


def time_of_day(when: datetime) -> timedelta:
    """Return the offset of a datetime from midnight of its own day."""
    midnight = when.replace(hour=0, minute=0, second=0, microsecond=0)
    return when - midnight


def select_peak_event(
    events: Iterable[PeakEvent],
    now: datetime,
    lookahead: timedelta = EVENT_LOOKAHEAD
) -> Optional[PeakEvent]:
    """
    Pick the peak event relevant to now.

    An event is relevant when it ends strictly between now and now plus the
    lookahead. Events already over are ignored and events further out are
    not due for pre-heating yet.

    Args:
        events: Peak events in chronological order
        now: Current time
        lookahead: How far ahead an event may end

    Returns:
        The first relevant event, or None
    """
    for event in events:
        if now < event.end < now + lookahead:
            return event
    return None


def assemble_program(config: "Config", now: datetime, events: Iterable[PeakEvent]) -> WeeklyProgram:
    """
    Assemble the weekly program to run, given the upcoming peak events.

    The normal program in the configuration is never modified: the overlay
    is applied to a copy, and an equal copy is returned when no event is
    relevant.

    The resulting day program is not re-sorted. Policies within the
    validated bounds keep pre-heat, peak, restore and after-peak slots in
    morning, day, evening, night order.

    Args:
        config: Configuration holding normal_program and peak_program
        now: Current time
        events: Peak events in chronological order

    Returns:
        WeeklyProgram to send to the thermostat
    """
    wp = config.normal_program.copy()
    policy = config.peak_program

    event = select_peak_event(events, now)
    if event is None:
        logger.debug(f"No peak event ends within {EVENT_LOOKAHEAD} of {now.isoformat()}")
        return wp

    logger.info(f"Found relevant peak event: {event}")

    start = time_of_day(event.start)
    end = time_of_day(event.end)
    start_day = Weekday.of(event.start)
    end_day = Weekday.of(event.end)

    today = wp.daily_program_on(start_day)
    yesterday = wp.daily_program_before(start_day)

    # What runs before pre-heating starts, or, when maintaining the normal
    # temperature, what would normally run during the peak period.
    if policy.maintain_normal_temp_before_preheat:
        before_pre_heating = wp.day_event_after(start_day, start)
    else:
        before_pre_heating = wp.day_event_before(start_day, start - policy.pre_heat_duration)

    # Offsets are relative to what runs just before the buffered end.
    before_end = wp.day_event_before(end_day, end + policy.peak_buffer_duration)

    pre_heating = DaySlot(
        time=start - policy.pre_heat_duration,
        heat=before_end.heat + policy.pre_heat_temp_offset,
        cool=before_end.cool,
    )
    peak_period = DaySlot(
        time=start - policy.peak_buffer_duration,
        heat=before_end.heat + policy.peak_temp_offset,
        cool=before_end.cool,
    )
    back_to_normal = DaySlot(
        time=end + policy.peak_buffer_duration,
        heat=before_end.heat,
        cool=before_end.cool,
    )
    after_peak_period = wp.day_event_after(end_day, end + policy.peak_buffer_duration)

    yesterday.night.heat = before_pre_heating.heat
    yesterday.night.cool = before_pre_heating.cool
    today.morning = pre_heating
    today.day = peak_period
    today.evening = back_to_normal
    today.night = after_peak_period

    logger.debug(
        f"{start_day.name.capitalize()} program for peak event: "
        f"pre-heat {pre_heating}, peak {peak_period}, "
        f"normal {back_to_normal}, then {after_peak_period}"
    )
    return wp
