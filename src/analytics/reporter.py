"""Console reports over the submission history"""

from typing import Dict, Any
from loguru import logger

from ..memory.store import SubmissionStore


class Reporter:
    """Print recent submissions and aggregated stats"""

    def __init__(self, store: SubmissionStore):
        """Initialize reporter"""
        self.store = store
        logger.debug("Reporter initialized")

    def _status(self, run: Dict[str, Any]) -> str:
        if run.get('success'):
            return f"OK - {run.get('quotes_found', 0)} quote(s)"
        where = run.get('stage') or run.get('step') or 'unknown'
        kind = run.get('error_kind') or 'error'
        return f"Failed at {where} ({kind})"

    def display_recent_runs(self, limit: int = 10):
        """Display recent quote submissions"""
        runs = self.store.get_recent_submissions(limit)

        if not runs:
            print("No recent runs found.")
            return

        print(f"Displaying last {len(runs)} runs:\n")

        headers = ["#", "Submitted", "Vehicles", "Time", "Status"]
        widths = {
            "#": 3,
            "Submitted": 26,
            "Vehicles": 8,
            "Time": 9,
            "Status": 60
        }

        header_line = " | ".join(f"{h:<{widths[h]}}" for h in headers)
        print(header_line)
        print("-" * len(header_line))

        for i, run in enumerate(runs, 1):
            row = {
                "#": str(i),
                "Submitted": run.get('submitted_at', 'N/A')[:widths["Submitted"]],
                "Vehicles": str(run.get('vehicle_count', 0)),
                "Time": f"{run.get('processing_time_ms', 0) / 1000:.1f}s",
                "Status": self._status(run)[:widths["Status"]]
            }
            print(" | ".join(f"{row[h]:<{widths[h]}}" for h in headers))

        print("\n")

    def display_aggregated_stats(self, days: int):
        """Display aggregated stats for the last N days"""
        stats = self.store.get_aggregated_stats(days)

        if not stats or stats.get('total_submissions') == 0:
            print(f"No submissions found for the last {days} days.")
            return

        print(f"Aggregated Stats for Last {days} Days\n")

        print("Overall Performance")
        print("-------------------")
        print(f"  Total Submissions: {stats['total_submissions']}")
        print(f"  Successful: {stats['successful']}")
        print(f"  Failed: {stats['failed']}")
        print(f"  Success Rate: {stats['success_rate'] * 100:.2f}%")
        print(f"  Quotes Collected: {stats['total_quotes']}")
        print(f"  Average Processing Time: {stats['avg_processing_time_ms'] / 1000:.1f}s")
        print("\n")

        if stats['failures_by_stage']:
            print("Failures by Stage")
            print("-----------------")
            for stage, count in stats['failures_by_stage'].items():
                print(f"  - {stage}: {count} failures")
            print("\n")

        if stats['failures_by_kind']:
            print("Failures by Kind")
            print("----------------")
            for kind, count in stats['failures_by_kind'].items():
                print(f"  - {kind}: {count} failures")
            print("\n")
