"""
Utility functions for the results app.

Glue between the repository and the pure scoring core, plus the class
statistics shown on the score entry screen.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP

from .grading import to_decimal
from .reports import compile_report

logger = logging.getLogger(__name__)


def build_report_card(repository, student_id, term, session, class_id=None,
                      grading_system=None):
    """
    Compile a student's report card from stored data.

    Args:
        repository: BaseResultsRepository implementation
        student_id: the student
        term: e.g. 'First Term'
        session: e.g. '2024/2025'
        class_id: class whose subject list is zero-filled (optional)
        grading_system: name of the grading system (default one if None)

    Returns:
        Report
    """
    scores = repository.fetch_scores([student_id], term, session=session)
    subjects = repository.list_subjects_for_class(class_id) if class_id else []
    meta = repository.fetch_report_meta(student_id, term, session)

    scoring = {}
    if hasattr(repository, 'get_scoring'):
        scoring = repository.get_scoring(grading_system)

    return compile_report(
        student_id,
        term,
        session,
        scores,
        subjects_master=subjects,
        report_meta=meta,
        classifier=scoring.get('classifier'),
        ca_max=scoring.get('ca_max'),
        exam_max=scoring.get('exam_max'),
    )


def build_class_reports(repository, student_ids, term, session, class_id=None,
                        grading_system=None):
    """Compile report cards for several students of one class, in the given order."""
    reports = []
    for student_id in student_ids:
        reports.append(build_report_card(
            repository, student_id, term, session,
            class_id=class_id, grading_system=grading_system,
        ))
    logger.debug(f"Compiled {len(reports)} report cards for {class_id or 'class'} ({term} {session})")
    return reports


def summarize_class_results(records, pass_mark=None):
    """
    Statistics of one subject across a class.

    Args:
        records: SubjectRecord list (one per student)
        pass_mark: lowest passing total; when omitted each record's own
            is_passing flag decides, as graded by its grade table

    Returns:
        dict with student_count, average, highest, lowest, pass_count,
        pass_rate (percent, 2 dp) and grade_distribution
    """
    records = list(records)
    count = len(records)

    distribution = {}
    for record in records:
        distribution[record.grade] = distribution.get(record.grade, 0) + 1

    if not count:
        return {
            'student_count': 0,
            'average': Decimal('0.00'),
            'highest': None,
            'lowest': None,
            'pass_count': 0,
            'pass_rate': Decimal('0.00'),
            'grade_distribution': distribution,
        }

    totals = [record.total for record in records]
    if pass_mark is None:
        passed = len([record for record in records if record.is_passing])
    else:
        pass_mark = to_decimal(pass_mark)
        passed = len([t for t in totals if t >= pass_mark])
    two_places = Decimal('0.01')

    return {
        'student_count': count,
        'average': (sum(totals, Decimal('0')) / count).quantize(two_places, rounding=ROUND_HALF_UP),
        'highest': max(totals),
        'lowest': min(totals),
        'pass_count': passed,
        'pass_rate': (Decimal(passed) * 100 / count).quantize(two_places, rounding=ROUND_HALF_UP),
        'grade_distribution': distribution,
    }

