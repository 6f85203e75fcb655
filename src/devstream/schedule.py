"""Daily fire-time computation."""
from datetime import datetime, timedelta


class DailySchedule:
    """Fires once a day at the top of a local hour.

    Attributes:
        hour: Hour of day (0-23) at which the schedule fires.
    """

    def __init__(self, hour: int) -> None:
        if not 0 <= hour <= 23:
            raise ValueError(f"hour must be in 0..23, got {hour}")
        self.hour = hour

    def next_fire(self, now: datetime) -> datetime:
        """Return the first fire time strictly after ``now``.

        Args:
            now: Current time; its tzinfo is kept.

        Returns:
            Today at ``hour``:00 if still ahead, otherwise tomorrow.
        """
        candidate = now.replace(hour=self.hour, minute=0, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    def seconds_until(self, now: datetime) -> float:
        return (self.next_fire(now) - now).total_seconds()
