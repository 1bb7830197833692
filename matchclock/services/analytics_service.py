"""Play time analytics for the matchclock core."""

from __future__ import annotations

import csv
import datetime as dt
import io
import statistics
from collections import Counter
from typing import Iterable, List, Optional

from ..models import GameReport, GameSettings, LineupAssignment, PlayerTimeSummary
from ..utils import format_play_time, now_ts
from ..utils.constants import FAIRNESS_THRESHOLD_SECONDS
from .play_time_ledger import calculate_play_time_by_position, calculate_player_play_time, find_open_record

FAIRNESS_ORDER = {"under": 0, "ok": 1, "over": 2}


class AnalyticsService:
    """
    Generate reports describing playing time distribution for one game.

    Every rostered player's target is an equal split of the field time
    elapsed so far (elapsed seconds times the number of field positions).
    """

    def __init__(self, repository, game_id: str, clock, ledger,
                 settings: Optional[GameSettings] = None) -> None:
        self.repository = repository
        self.game_id = game_id
        self.clock = clock
        self.ledger = ledger
        self.settings = settings or clock.settings

    def roster(self, roster: Optional[Iterable[str]] = None) -> List[str]:
        """Players to report on; defaults to everyone who played or is assigned."""
        if roster is not None:
            return list(dict.fromkeys(roster))
        seen = [r.player_id for r in self.ledger.records()]
        seen.extend(a.player_id for a in self.repository.list(LineupAssignment, game_id=self.game_id))
        return list(dict.fromkeys(seen))

    def generate_game_report(self, roster: Optional[Iterable[str]] = None,
                             now: Optional[float] = None) -> GameReport:
        """Build a :class:`GameReport` snapshot for the game."""
        now = now if now is not None else now_ts()
        elapsed_seconds = self.clock.current_game_seconds(now)
        records = self.ledger.records()
        players = self.roster(roster)
        roster_size = len(players)

        field_total = max(0, elapsed_seconds * self.settings.max_players_on_field)
        target_per_player = field_total / roster_size if roster_size else 0.0
        target_per_player_int = int(round(target_per_player)) if roster_size else 0

        summaries: List[PlayerTimeSummary] = []
        for player_id in players:
            open_record = find_open_record(records, player_id)
            closed = calculate_player_play_time(records, player_id)
            cumulative = calculate_player_play_time(records, player_id, elapsed_seconds)
            stint_seconds = cumulative - closed
            delta = int(round(cumulative - target_per_player))
            bench_seconds = max(0, int(elapsed_seconds - cumulative)) if elapsed_seconds > 0 else 0
            target_share = cumulative / target_per_player if target_per_player > 0 else 0.0

            summaries.append(
                PlayerTimeSummary(
                    player_id=player_id,
                    on_field=open_record is not None,
                    position_id=open_record.position_id if open_record else None,
                    closed_seconds=closed,
                    active_stint_seconds=stint_seconds,
                    cumulative_seconds=cumulative,
                    target_seconds=target_per_player_int,
                    delta_seconds=delta,
                    bench_seconds=bench_seconds,
                    target_share=target_share,
                    fairness=self._classify_fairness(delta),
                    seconds_by_position=calculate_play_time_by_position(
                        records, player_id, elapsed_seconds
                    ),
                )
            )

        summaries.sort(
            key=lambda item: (
                FAIRNESS_ORDER.get(item.fairness, 1),
                item.delta_seconds,
                item.player_id,
            )
        )
        totals = [summary.cumulative_seconds for summary in summaries]
        fairness_counter = Counter(summary.fairness for summary in summaries)
        fairness_counts = {
            "under": fairness_counter.get("under", 0),
            "ok": fairness_counter.get("ok", 0),
            "over": fairness_counter.get("over", 0),
        }

        return GameReport(
            generated_ts=now,
            game_id=self.game_id,
            roster_size=roster_size,
            elapsed_seconds=elapsed_seconds,
            field_seconds_total=int(field_total),
            target_seconds_per_player=target_per_player_int,
            players=summaries,
            average_seconds=statistics.mean(totals) if totals else 0.0,
            median_seconds=statistics.median(totals) if totals else 0.0,
            min_seconds=min(totals) if totals else 0,
            max_seconds=max(totals) if totals else 0,
            fairness_counts=fairness_counts,
        )

    def generate_report_csv(self, report: Optional[GameReport] = None) -> str:
        """Return a CSV document describing the current playing time report.

        Args:
            report: Optional pre-generated :class:`GameReport` snapshot. When
                omitted a fresh report is generated.

        Returns:
            CSV formatted string containing summary information followed by a
            table of player level metrics.

        Raises:
            ValueError: If there are no players to include in the report.
        """
        report = report or self.generate_game_report()
        if report.roster_size == 0:
            raise ValueError("Cannot export analytics without any players")

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")

        generated_dt = dt.datetime.fromtimestamp(report.generated_ts, tz=dt.timezone.utc)
        writer.writerow(["Play Time Report"])
        writer.writerow(["Game", report.game_id])
        writer.writerow(["Generated", generated_dt.isoformat(timespec="seconds")])
        writer.writerow(["Roster Size", report.roster_size])
        writer.writerow(["Elapsed Seconds", report.elapsed_seconds])
        writer.writerow(["Field Seconds Total", report.field_seconds_total])
        writer.writerow(["Target Seconds Per Player", report.target_seconds_per_player])
        writer.writerow(["Average Seconds", round(report.average_seconds, 2)])
        writer.writerow(["Median Seconds", round(report.median_seconds, 2)])
        writer.writerow(["Minimum Seconds", report.min_seconds])
        writer.writerow(["Maximum Seconds", report.max_seconds])

        fairness_counts = report.fairness_counts or {}
        writer.writerow(["Players Under Target", fairness_counts.get("under", 0)])
        writer.writerow(["Players On Target", fairness_counts.get("ok", 0)])
        writer.writerow(["Players Over Target", fairness_counts.get("over", 0)])
        writer.writerow([])

        writer.writerow(
            [
                "Player",
                "On Field",
                "Position",
                "Closed Seconds",
                "Active Stint Seconds",
                "Cumulative Seconds",
                "Target Seconds",
                "Delta Seconds",
                "Bench Seconds",
                "Target Share (%)",
                "Fairness",
                "Play Time",
            ]
        )

        for summary in report.players:
            writer.writerow(
                [
                    summary.player_id,
                    "yes" if summary.on_field else "no",
                    summary.position_id or "",
                    summary.closed_seconds,
                    summary.active_stint_seconds,
                    summary.cumulative_seconds,
                    summary.target_seconds,
                    summary.delta_seconds,
                    summary.bench_seconds,
                    round(summary.target_share * 100, 2),
                    summary.fairness,
                    format_play_time(summary.cumulative_seconds),
                ]
            )

        csv_text = buffer.getvalue()
        buffer.close()
        return csv_text

    @staticmethod
    def _classify_fairness(delta_seconds: int) -> str:
        if delta_seconds <= -FAIRNESS_THRESHOLD_SECONDS:
            return "under"
        if delta_seconds >= FAIRNESS_THRESHOLD_SECONDS:
            return "over"
        return "ok"
