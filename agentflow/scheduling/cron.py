from datetime import datetime, timedelta

from agentflow.exceptions import InvalidScheduleError

ALIASES = {
    '@hourly': '0 * * * *',
    '@daily': '0 0 * * *',
    '@midnight': '0 0 * * *',
    '@weekly': '0 0 * * 0',
    '@monthly': '0 0 1 * *',
    '@yearly': '0 0 1 1 *',
    '@annually': '0 0 1 1 *',
}

# (low, high) per field: minute, hour, day of month, month, day of week
FIELD_RANGES = ((0, 59), (0, 23), (1, 31), (1, 12), (0, 7))

# Far enough ahead to reach the next February 29th
SEARCH_HORIZON = timedelta(days=366 * 8)


def parse_field(text: str, low: int, high: int, expression: str) -> frozenset[int]:
    values: set[int] = set()
    for part in text.split(','):
        step = 1
        stepped = '/' in part
        if stepped:
            part, step_text = part.split('/', 1)
            if not step_text.isdigit() or int(step_text) == 0:
                raise InvalidScheduleError(expression, f"bad step '{step_text}'")
            step = int(step_text)

        if part == '*':
            start, end = low, high
        elif '-' in part:
            first, _, last = part.partition('-')
            if not (first.isdigit() and last.isdigit()):
                raise InvalidScheduleError(expression, f"bad range '{part}'")
            start, end = int(first), int(last)
        elif part.isdigit():
            start = int(part)
            end = high if stepped else start
        else:
            raise InvalidScheduleError(expression, f"bad value '{part}'")

        if start < low or end > high or start > end:
            raise InvalidScheduleError(expression, f"'{part}' is outside {low}-{high}")
        values.update(range(start, end + 1, step))
    return frozenset(values)


class CronExpression:
    """Five-field cron expression: ``minute hour day-of-month month day-of-week``.

    Fields accept ``*``, numbers, comma lists, ``a-b`` ranges and ``/n``
    steps; day of week runs 0-7 with both 0 and 7 meaning Sunday. When both
    day fields are restricted a time matches if either one does, as in
    classic cron. The ``@daily``-style aliases are accepted too.
    """

    def __init__(self, expression: str):
        self.expression = expression.strip()
        fields = ALIASES.get(self.expression, self.expression).split()
        if len(fields) != 5:
            raise InvalidScheduleError(expression, f"expected 5 fields, got {len(fields)}")

        self.minutes, self.hours, self.days, self.months, weekdays = (
            parse_field(text, low, high, expression)
            for text, (low, high) in zip(fields, FIELD_RANGES)
        )
        self.weekdays = frozenset(0 if d == 7 else d for d in weekdays)
        self._days_restricted = not fields[2].startswith('*')
        self._weekdays_restricted = not fields[4].startswith('*')

    def _day_matches(self, moment: datetime) -> bool:
        day_ok = moment.day in self.days
        # cron counts Sunday as 0, datetime.weekday() counts Monday as 0
        weekday_ok = (moment.weekday() + 1) % 7 in self.weekdays
        if self._days_restricted and self._weekdays_restricted:
            return day_ok or weekday_ok
        return day_ok and weekday_ok

    def matches(self, moment: datetime) -> bool:
        return (
            moment.minute in self.minutes
            and moment.hour in self.hours
            and moment.month in self.months
            and self._day_matches(moment)
        )

    def next_after(self, after: datetime) -> datetime:
        """First matching minute strictly after *after*."""
        moment = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
        limit = moment + SEARCH_HORIZON
        while moment <= limit:
            if moment.month not in self.months:
                moment = (moment.replace(day=1, hour=0, minute=0) + timedelta(days=32)).replace(day=1)
            elif not self._day_matches(moment):
                moment = moment.replace(hour=0, minute=0) + timedelta(days=1)
            elif moment.hour not in self.hours:
                moment = moment.replace(minute=0) + timedelta(hours=1)
            elif moment.minute not in self.minutes:
                moment += timedelta(minutes=1)
            else:
                return moment
        raise InvalidScheduleError(self.expression, "never matches a real date")

    def __eq__(self, other):
        return isinstance(other, CronExpression) and str(self) == str(other)

    def __hash__(self):
        return hash(str(self))

    def __str__(self):
        return ALIASES.get(self.expression, self.expression)

    def __repr__(self):
        return f"CronExpression({self.expression!r})"
