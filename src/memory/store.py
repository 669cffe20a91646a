"""Local JSON submission history"""

import os
import json
from typing import Dict, Any, Optional, List
from datetime import datetime, timedelta
from loguru import logger

from .models import SubmissionRecord


class SubmissionStore:
    """History of quote requests using local JSON storage"""

    def __init__(self, history_file: str = 'submissions.json'):
        """
        Initialize submission store

        Args:
            history_file: Path of the JSON file backing the store
        """
        self.history_file = history_file
        logger.info(f"Using local JSON storage for submissions ({history_file})")
        self._load_local_store()

    def _empty_store(self) -> Dict[str, Any]:
        return {'submissions': {}}

    def _load_local_store(self):
        """Load local JSON store"""
        try:
            if os.path.exists(self.history_file) and os.path.getsize(self.history_file) > 0:
                with open(self.history_file, 'r') as f:
                    self.local_data = json.load(f)
            else:
                self.local_data = self._empty_store()
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading submission history: {e}")
            self.local_data = self._empty_store()

        if not isinstance(self.local_data.get('submissions'), dict):
            logger.warning("Submission history malformed, starting fresh")
            self.local_data = self._empty_store()

    def _save_local_store(self):
        """Save local JSON store"""
        directory = os.path.dirname(self.history_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.history_file, 'w') as f:
            json.dump(self.local_data, f, indent=2, default=str)

    def save_submission(self, record: SubmissionRecord) -> Optional[str]:
        """
        Persist a submission

        Returns:
            Submission id, or None if the history file could not be written
        """
        self.local_data['submissions'][record.id] = record.model_dump()
        try:
            self._save_local_store()
        except OSError as e:
            logger.error(f"Error saving submission {record.id}: {e}")
            return None
        logger.info(f"📁 Saved submission {record.id} (success={record.success}, quotes={record.quotes_found})")
        return record.id

    def get_submission(self, submission_id: str) -> Optional[Dict[str, Any]]:
        return self.local_data['submissions'].get(submission_id)

    def get_recent_submissions(self, limit: int = 10) -> List[Dict[str, Any]]:
        """
        Get recent submissions

        Args:
            limit: Maximum number of records to retrieve

        Returns:
            List of submission records, most recent first
        """
        submissions = list(self.local_data['submissions'].values())
        submissions.sort(key=lambda x: x.get('submitted_at', ''), reverse=True)
        return submissions[:limit]

    def get_aggregated_stats(self, days: int = 7) -> Dict[str, Any]:
        """
        Aggregate submissions from the last N days

        Args:
            days: Number of days to aggregate

        Returns:
            Totals, success rate, quote counts, and failures by stage and kind
        """
        cutoff_date = datetime.now() - timedelta(days=days)
        submissions = []
        for submission_id, submission in self.local_data['submissions'].items():
            try:
                submitted_at = datetime.fromisoformat(submission.get('submitted_at', ''))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping submission {submission_id} with bad timestamp: {e}")
                continue
            if submitted_at >= cutoff_date:
                submissions.append(submission)

        aggregated = {
            'total_submissions': len(submissions),
            'date_range': f"Last {days} days",
            'successful': 0,
            'failed': 0,
            'total_quotes': 0,
            'avg_processing_time_ms': 0.0,
            'failures_by_stage': {},
            'failures_by_kind': {},
        }

        total_time = 0
        for submission in submissions:
            total_time += submission.get('processing_time_ms', 0)
            aggregated['total_quotes'] += submission.get('quotes_found', 0)
            if submission.get('success'):
                aggregated['successful'] += 1
                continue

            aggregated['failed'] += 1
            stage = submission.get('stage') or submission.get('step') or 'unknown'
            aggregated['failures_by_stage'][stage] = aggregated['failures_by_stage'].get(stage, 0) + 1
            kind = submission.get('error_kind') or 'unknown'
            aggregated['failures_by_kind'][kind] = aggregated['failures_by_kind'].get(kind, 0) + 1

        if submissions:
            aggregated['avg_processing_time_ms'] = total_time / len(submissions)
            aggregated['success_rate'] = aggregated['successful'] / len(submissions)
        else:
            aggregated['success_rate'] = 0.0

        return aggregated
