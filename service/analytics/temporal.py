"""
Temporal pattern analysis of GPS jamming events.

Answers: "When does GPS jamming happen most?"
"""
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from core.models import FlaggedPoint

DAY_NAMES = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']


def _top_bins(counts: Dict[int, int], n: int = 3) -> List[int]:
    # ties go to the earlier bin
    non_empty = [k for k, v in counts.items() if v > 0]
    return sorted(non_empty, key=lambda k: (-counts[k], k))[:n]


def jamming_temporal(events: Iterable[FlaggedPoint]) -> Dict[str, Any]:
    """
    Bucket flagged events by UTC hour of day and day of week.

    Returns:
        {
            'by_hour': [{hour, count}],
            'by_day_of_week': [{day, day_name, count}],
            'peak_hours': [int],
            'peak_days': [str],
            'total_events': int
        }
    """
    hourly_counts = defaultdict(int)
    daily_counts = defaultdict(int)

    total_events = 0
    for event in events:
        dt = datetime.fromtimestamp(event.point.ts, tz=timezone.utc)
        hourly_counts[dt.hour] += 1
        daily_counts[dt.weekday()] += 1
        total_events += 1

    by_hour = [{'hour': h, 'count': hourly_counts.get(h, 0)} for h in range(24)]
    by_day = [{'day': d, 'day_name': DAY_NAMES[d], 'count': daily_counts.get(d, 0)} for d in range(7)]

    return {
        'by_hour': by_hour,
        'by_day_of_week': by_day,
        'peak_hours': _top_bins(hourly_counts),
        'peak_days': [DAY_NAMES[d] for d in _top_bins(daily_counts)],
        'total_events': total_events,
    }
