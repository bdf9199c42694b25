# SPDX-License-Identifier: MPL-2.0
"""
Thermostat Weekly Program Model

Models the four-slot daily program (morning, day, evening, night) used by
Braeburn BlueLink thermostats, the seven-day weekly program built from it,
and the fixed-width program strings the device API exchanges.
"""

import copy
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import IntEnum
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)

# Device state attribute for each weekday; the device week starts on Monday.
PROGRAM_FIELDS = ("PGM_01", "PGM_02", "PGM_03", "PGM_04", "PGM_05", "PGM_06", "PGM_07")

SLOT_STRING_LENGTH = 7  # HHMMTTT
PROGRAM_STRING_LENGTH = 8 * SLOT_STRING_LENGTH


class Weekday(IntEnum):
    """Days of the week, numbered like the program's storage order."""
    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def of(cls, when: datetime) -> "Weekday":
        """Return the weekday of a datetime, in the datetime's own timezone."""
        # datetime.weekday() is Monday=0
        return cls((when.weekday() + 1) % 7)

    def previous(self) -> "Weekday":
        return Weekday((self + 7 - 1) % 7)

    def next(self) -> "Weekday":
        return Weekday((self + 1) % 7)

    @property
    def program_field(self) -> str:
        """Device state attribute holding this day's program."""
        return PROGRAM_FIELDS[(self + 6) % 7]


@dataclass
class DaySlot:
    """A single transition in a daily program."""
    time: timedelta  # Offset from midnight, e.g. timedelta(hours=14)
    heat: int  # Temperature to heat to, in °C
    cool: int  # Temperature to cool to, in °C

    def _clock(self) -> Tuple[int, int]:
        # Wall-clock time, so 24h is 00:00 and -1h is 23:00
        seconds = int(self.time.total_seconds()) % (24 * 3600)
        return seconds // 3600, seconds % 3600 // 60

    def _time_string(self) -> str:
        hours, minutes = self._clock()
        return f"{hours:02d}{minutes:02d}"

    def to_heat_string(self) -> str:
        """Return the heat part of this slot in device format (HHMMTTT)."""
        return f"{self._time_string()}{int(self.heat * 10):03d}"

    def to_cool_string(self) -> str:
        """Return the cool part of this slot in device format (HHMMTTT)."""
        return f"{self._time_string()}{int(self.cool * 10):03d}"

    def __str__(self) -> str:
        hours, minutes = self._clock()
        return f"{hours:02d}:{minutes:02d} heat {self.heat}°C cool {self.cool}°C"


@dataclass
class DailyProgram:
    """The program for a single day, made of four slots in time order."""
    morning: DaySlot
    day: DaySlot
    evening: DaySlot
    night: DaySlot

    def slots(self) -> List[DaySlot]:
        return [self.morning, self.day, self.evening, self.night]

    def to_program_string(self) -> str:
        """
        Render this daily program in the device's program string format.

        Four heat groups followed by four cool groups, each HHMMTTT where TTT
        is the temperature multiplied by ten.

        Returns:
            56 character program string
        """
        slots = self.slots()
        return (
            "".join(slot.to_heat_string() for slot in slots) +
            "".join(slot.to_cool_string() for slot in slots)
        )

    @classmethod
    def from_program_string(cls, value: str) -> "DailyProgram":
        """
        Parse a device program string.

        Slot times are read from the heat groups. Temperatures are truncated
        to whole degrees.

        Args:
            value: 56 character program string as returned by the device

        Returns:
            DailyProgram object

        Raises:
            ValueError: If the string is not a valid program string
        """
        if len(value) != PROGRAM_STRING_LENGTH or not value.isdigit():
            raise ValueError(f"Invalid program string: '{value}'")

        groups = [
            value[i:i + SLOT_STRING_LENGTH]
            for i in range(0, PROGRAM_STRING_LENGTH, SLOT_STRING_LENGTH)
        ]
        slots = []
        for heat_group, cool_group in zip(groups[:4], groups[4:]):
            slots.append(DaySlot(
                time=timedelta(hours=int(heat_group[0:2]), minutes=int(heat_group[2:4])),
                heat=int(heat_group[4:7]) // 10,
                cool=int(cool_group[4:7]) // 10,
            ))
        return cls(*slots)


@dataclass
class WeeklyProgram:
    """
    The program for a whole week, one DailyProgram per weekday.

    Daily programs are stored in Weekday order, Sunday first.
    """
    days: List[DailyProgram]

    def __post_init__(self) -> None:
        if len(self.days) != len(Weekday):
            raise ValueError(f"A weekly program needs {len(Weekday)} daily programs, got {len(self.days)}")

    @classmethod
    def uniform(cls, daily: DailyProgram) -> "WeeklyProgram":
        """Build a weekly program that runs the same daily program every day."""
        return cls([copy.deepcopy(daily) for _ in Weekday])

    def copy(self) -> "WeeklyProgram":
        return copy.deepcopy(self)

    def daily_program_on(self, weekday: Weekday) -> DailyProgram:
        return self.days[weekday]

    def daily_program_before(self, weekday: Weekday) -> DailyProgram:
        """Return the daily program for the day before weekday."""
        return self.days[Weekday(weekday).previous()]

    def daily_program_after(self, weekday: Weekday) -> DailyProgram:
        """Return the daily program for the day after weekday."""
        return self.days[Weekday(weekday).next()]

    def day_event_before(self, weekday: Weekday, when: timedelta) -> DaySlot:
        """
        Find the slot in effect at the given time of day.

        Returns the last slot on weekday that starts at or before when. If no
        slot starts that early, the previous day's night temperatures are
        still in effect, so a slot at midnight carrying them is returned.

        The daily program must have its slots in time order.

        Args:
            weekday: Day to look up
            when: Time of day as an offset from midnight

        Returns:
            A copy of the matching slot
        """
        dp = self.daily_program_on(weekday)
        for slot in reversed(dp.slots()):
            if slot.time <= when:
                return copy.copy(slot)

        logger.debug(f"No slot before {when} on {Weekday(weekday).name}, using previous night")
        night = self.daily_program_before(weekday).night
        return DaySlot(time=timedelta(0), heat=night.heat, cool=night.cool)

    def day_event_after(self, weekday: Weekday, when: timedelta) -> DaySlot:
        """
        Find the first slot that starts at or after the given time of day.

        Falls back to a slot at when carrying the next day's morning
        temperatures if nothing else starts later on weekday.

        Args:
            weekday: Day to look up
            when: Time of day as an offset from midnight

        Returns:
            A copy of the matching slot
        """
        dp = self.daily_program_on(weekday)
        for slot in dp.slots():
            if slot.time >= when:
                return copy.copy(slot)

        logger.debug(f"No slot after {when} on {Weekday(weekday).name}, using next morning")
        morning = self.daily_program_after(weekday).morning
        return DaySlot(time=when, heat=morning.heat, cool=morning.cool)

    def to_state_data(self) -> Dict[str, str]:
        """
        Convert to the device's state data program attributes.

        Returns:
            Dictionary mapping PGM_01 (Monday) ... PGM_07 (Sunday) to program strings
        """
        return {
            weekday.program_field: self.days[weekday].to_program_string()
            for weekday in sorted(Weekday, key=lambda d: d.program_field)
        }

    @classmethod
    def from_state_data(cls, state_data: Dict[str, str]) -> "WeeklyProgram":
        """
        Build a weekly program from device state data.

        Args:
            state_data: Device state attributes, only the PGM_0x keys are read

        Returns:
            WeeklyProgram object

        Raises:
            ValueError: If a program attribute is missing or malformed
        """
        days = []
        for weekday in Weekday:
            value = state_data.get(weekday.program_field)
            if value is None:
                raise ValueError(f"Missing {weekday.program_field} in device state data")
            days.append(DailyProgram.from_program_string(value))
        return cls(days)

    def describe(self) -> str:
        """Return a human readable table of the weekly program."""
        lines = []
        for weekday in Weekday:
            dp = self.days[weekday]
            lines.append(f"{weekday.name.capitalize()}:")
            for name, slot in zip(("morning", "day", "evening", "night"), dp.slots()):
                lines.append(f"  {name:<8} {slot}")
        return "\n".join(lines)
