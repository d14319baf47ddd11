"""
Trailing Window Aggregation

Summarizes a subject's daily usage features over the W days before each
survey event. For an event on day D the window is [D - W, D - 1]: exactly
W calendar days, never the event day itself.

Per tracked feature:
- <feature>_median: median of non-missing daily values (NaN if none)
- <feature>_missing: W minus the number of non-missing daily values,
  counting both null values and days without any record

An event is only summarized when the earliest available daily record is
on or before D - W; otherwise it lacks a full history and is dropped.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from loguru import logger

from ..config import HISTORY_SCOPES, TRACKED_FEATURES
from ..errors import DropReason

GROUP_KEYS = ["subject_id", "wave"]


@dataclass
class WindowResult:
    """Windowed feature sets plus the events dropped for short history."""

    windows: pd.DataFrame
    insufficient: pd.DataFrame

    @property
    def n_insufficient(self) -> int:
        return len(self.insufficient)


def window_bounds(event_date: pd.Timestamp, window_days: int) -> Tuple[pd.Timestamp, pd.Timestamp]:
    """First and last day (inclusive) of the window preceding `event_date`."""
    event_date = pd.Timestamp(event_date).normalize()
    return event_date - pd.Timedelta(days=window_days), event_date - pd.Timedelta(days=1)


def summarize_window(
    records: pd.DataFrame, features: Sequence[str], window_days: int
) -> Dict[str, float]:
    """Median and missing count of each feature over one window's records."""
    summary: Dict[str, float] = {"n_days_observed": len(records)}
    for feature in features:
        values = records[feature].dropna()
        # Median of an empty window stays undefined
        summary[f"{feature}_median"] = float(values.median()) if len(values) else float("nan")
        summary[f"{feature}_missing"] = window_days - len(values)
    return summary


class WindowAggregator:
    """
    Builds one windowed feature set per eligible survey event.

    Each (subject_id, wave) group is processed independently and the
    per-group results are concatenated once at the end.
    """

    def __init__(
        self,
        window_days: int = 14,
        features: Optional[Sequence[str]] = None,
        history_scope: str = "subject",
    ):
        """
        Args:
            window_days: Window length W in days
            features: Daily feature columns to summarize
            history_scope: 'subject' to gate on the subject's own earliest
                record in the wave, 'wave' to gate on the wave's earliest
                record
        """
        if window_days < 1:
            raise ValueError(f"window_days must be >= 1, got {window_days}")
        if history_scope not in HISTORY_SCOPES:
            raise ValueError(f"Unknown history_scope: {history_scope!r}")
        self.window_days = window_days
        self.features: List[str] = list(features or TRACKED_FEATURES)
        self.history_scope = history_scope

    def output_columns(self, event_columns: Sequence[str]) -> List[str]:
        cols = list(event_columns) + ["window_start", "window_end", "n_days_observed"]
        for feature in self.features:
            cols += [f"{feature}_median", f"{feature}_missing"]
        return cols

    def _earliest_lookup(self, daily: pd.DataFrame) -> Callable[[tuple], Optional[pd.Timestamp]]:
        """Earliest available date for a (subject_id, wave) key."""
        if self.history_scope == "wave":
            by_wave = daily.groupby("wave")["date"].min().to_dict()
            return lambda key: by_wave.get(key[1])
        by_subject = daily.groupby(GROUP_KEYS)["date"].min().to_dict()
        return by_subject.get

    def _aggregate_group(
        self,
        events: pd.DataFrame,
        records: Optional[pd.DataFrame],
        earliest: Optional[pd.Timestamp],
    ) -> Tuple[List[dict], List[int]]:
        rows, dropped = [], []
        if records is not None:
            records = records.sort_values("date")
        for idx, event in events.iterrows():
            start, end = window_bounds(event["date"], self.window_days)
            if earliest is None or earliest > start:
                dropped.append(idx)
                continue
            if records is None:
                in_window = pd.DataFrame(columns=["date"] + self.features)
            else:
                in_window = records[(records["date"] >= start) & (records["date"] <= end)]
            row = event.to_dict()
            row.update(window_start=start, window_end=end)
            row.update(summarize_window(in_window, self.features, self.window_days))
            rows.append(row)
        return rows, dropped

    def aggregate(self, events: pd.DataFrame, daily: pd.DataFrame) -> WindowResult:
        """
        Summarize the trailing window of every survey event.

        Args:
            events: Survey events with subject_id, wave, date (plus any
                outcome columns, which are carried through)
            daily: Derived subject-day records with subject_id, wave, date
                and the tracked feature columns

        Returns:
            WindowResult
        """
        missing = set(self.features) - set(daily.columns)
        if missing:
            raise ValueError(f"Daily records lack window features: {sorted(missing)}")

        events = events.reset_index(drop=True)
        earliest = self._earliest_lookup(daily)
        daily_groups = {key: group for key, group in daily.groupby(GROUP_KEYS)}

        results = [
            self._aggregate_group(group, daily_groups.get(key), earliest(key))
            for key, group in events.groupby(GROUP_KEYS, sort=True)
        ]
        rows = [row for group_rows, _ in results for row in group_rows]
        dropped = [idx for _, group_dropped in results for idx in group_dropped]

        windows = pd.DataFrame(rows, columns=self.output_columns(events.columns))
        for col in ("date", "window_start", "window_end"):
            windows[col] = pd.to_datetime(windows[col])
        for feature in self.features:
            windows[f"{feature}_missing"] = windows[f"{feature}_missing"].astype("int64")
        windows["n_days_observed"] = windows["n_days_observed"].astype("int64")

        insufficient = events.loc[dropped].assign(
            drop_reason=DropReason.INSUFFICIENT_HISTORY.value
        )
        logger.info(
            f"Built {len(windows)} {self.window_days}-day windows; "
            f"{len(insufficient)} events lacked a full history"
        )
        return WindowResult(
            windows=windows.sort_values(["subject_id", "wave", "date"]).reset_index(drop=True),
            insufficient=insufficient.reset_index(drop=True),
        )
