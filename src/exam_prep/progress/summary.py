"""Dashboard statistics aggregated from progress records."""

from collections.abc import Iterable

from exam_prep.models.progress import (
    ProgramProgress,
    ProgressRecord,
    ProgressStatus,
    ProgressSummary,
)
from exam_prep.models.user import Stats


def summarize(records: Iterable[ProgressRecord], stats: Stats | None = None) -> ProgressSummary:
    summary = ProgressSummary()
    for record in records:
        summary.total_topics += 1
        summary.total_minutes += record.minutes_spent
        if record.status == ProgressStatus.COMPLETED:
            summary.completed_topics += 1
        elif record.status == ProgressStatus.IN_PROGRESS:
            summary.in_progress_topics += 1

        if record.program_id:
            program = summary.by_program.setdefault(record.program_id, ProgramProgress())
            program.total += 1
            if record.status == ProgressStatus.COMPLETED:
                program.completed += 1

    for program in summary.by_program.values():
        program.percent = round(program.completed / program.total * 100) if program.total else 0

    if stats is not None:
        summary.total_questions = stats.total_questions
        summary.total_correct = stats.total_correct
        summary.streak = stats.streak
    return summary
