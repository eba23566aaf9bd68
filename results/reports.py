"""
Report card compilation.

compile_report() merges a student's component scores with whatever report
card data has been stored (attendance, skill ratings, comments, status) into
one Report value. Scores are always re-aggregated; totals or grades cached on
a stored report card are never reused.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP

from django.core.exceptions import ValidationError

from . import config
from .adapters import normalize_attendance, normalize_report_meta
from .aggregation import aggregate_subject_records
from .choices import ReportStatus

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('student_id', 'term', 'session')


class Report:
    """Report card for one student in one term of a session."""

    def __init__(self, student_id, term, session, academic_records=None,
                 status=ReportStatus.DRAFT, attendance=None, skills=None,
                 psychomotor=None, teacher_comment='', principal_comment='',
                 position='-', total_students='-', report_id=None,
                 submitted_at=None, published_at=None):
        self.report_id = report_id
        self.student_id = student_id
        self.term = term
        self.session = session
        self.status = ReportStatus(status)
        self.academic_records = list(academic_records or [])
        self.attendance = normalize_attendance(attendance)
        self.skills = dict(skills or {})
        self.psychomotor = dict(psychomotor or {})
        self.teacher_comment = teacher_comment
        self.principal_comment = principal_comment
        self.position = position
        self.total_students = total_students
        self.submitted_at = submitted_at
        self.published_at = published_at

    def __repr__(self):
        return f"<Report {self.identifier} [{self.status}]>"

    @property
    def identifier(self):
        """Stored id when known, otherwise the (student, term, session) key."""
        if self.report_id is not None:
            return self.report_id
        return f"{self.student_id}:{self.term}:{self.session}"

    @property
    def summary(self):
        """Totals across subjects, in the shape of the report card footer."""
        taken = len(self.academic_records)
        total_marks = sum((r.total for r in self.academic_records), Decimal('0'))
        passed = len([r for r in self.academic_records if r.is_passing])
        average = Decimal('0')
        if taken:
            average = (total_marks / taken).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
        return {
            'total_marks': total_marks,
            'average': average,
            'subjects_taken': taken,
            'subjects_passed': passed,
            'subjects_failed': taken - passed,
        }

    def copy(self, **changes):
        """Return a new Report with the given attributes replaced."""
        values = {
            'report_id': self.report_id,
            'student_id': self.student_id,
            'term': self.term,
            'session': self.session,
            'academic_records': list(self.academic_records),
            'status': self.status,
            'attendance': dict(self.attendance),
            'skills': dict(self.skills),
            'psychomotor': dict(self.psychomotor),
            'teacher_comment': self.teacher_comment,
            'principal_comment': self.principal_comment,
            'position': self.position,
            'total_students': self.total_students,
            'submitted_at': self.submitted_at,
            'published_at': self.published_at,
        }
        values.update(changes)
        return Report(**values)

    def to_dict(self):
        return {
            'id': self.report_id,
            'student_id': self.student_id,
            'term': self.term,
            'session': self.session,
            'status': self.status.value,
            'academic_records': [r.to_dict() for r in self.academic_records],
            'attendance': dict(self.attendance),
            'skills': dict(self.skills),
            'psychomotor': dict(self.psychomotor),
            'teacher_comment': self.teacher_comment,
            'principal_comment': self.principal_comment,
            'position': self.position,
            'total_students': self.total_students,
            'summary': self.summary,
            'submitted_at': self.submitted_at,
            'published_at': self.published_at,
        }


def _is_blank(value):
    return value is None or str(value).strip() == ''


def parse_status(value):
    """Parse a stored status ('Published', 'published', ...) into a ReportStatus."""
    if _is_blank(value):
        return ReportStatus.DRAFT
    text = str(value).strip().lower()
    for status in ReportStatus:
        if status.value.lower() == text:
            return status
    raise ValidationError({'status': [f"Unknown report status: {value}"]})


def _belongs_to(score, student_id, term, session):
    """Scores without a term/session are assumed to be scoped by the caller."""
    if str(score.student_id) != str(student_id):
        return False
    if score.term is not None and score.term != term:
        return False
    if score.session is not None and score.session != session:
        return False
    return True


def compile_report(student_id, term, session, scores, subjects_master=None,
                   report_meta=None, classifier=None, ca_max=None, exam_max=None):
    """
    Compile the report card for (student_id, term, session).

    Args:
        student_id: student identifier (required)
        term: e.g. 'First Term' (required)
        session: e.g. '2024/2025' (required)
        scores: ComponentScore list; rows for other students/terms are ignored
        subjects_master: subjects the class is expected to be graded in
        report_meta: stored report card fields (snake_case or camelCase)
        classifier: GradeClassifier for the school's grade table

    Returns:
        Report

    Raises:
        ValidationError: if student_id, term or session is missing
    """
    identity = {'student_id': student_id, 'term': term, 'session': session}
    missing = [field for field in REQUIRED_FIELDS if _is_blank(identity[field])]
    if missing:
        raise ValidationError({
            field: ['This field is required to compile a report.'] for field in missing
        })

    relevant = []
    ignored = 0
    for score in scores or []:
        if _belongs_to(score, student_id, term, session):
            relevant.append(score)
        else:
            ignored += 1
    if ignored:
        logger.debug(f"Ignored {ignored} scores outside {student_id} / {term} / {session}")

    records = aggregate_subject_records(
        relevant,
        classifier=classifier,
        subjects_master=subjects_master,
        ca_max=ca_max,
        exam_max=exam_max,
    )

    meta = normalize_report_meta(report_meta)
    default_comment = config.DEFAULT_COMMENT
    default_rank = config.DEFAULT_RANK

    def text_or_default(field):
        value = meta.get(field)
        return default_comment if _is_blank(value) else value

    def rank_or_default(field):
        value = meta.get(field)
        return default_rank if _is_blank(value) else value

    return Report(
        report_id=meta.get('id'),
        student_id=student_id,
        term=term,
        session=session,
        academic_records=records,
        status=parse_status(meta.get('status')),
        attendance=meta.get('attendance'),
        skills=meta.get('skills'),
        psychomotor=meta.get('psychomotor'),
        teacher_comment=text_or_default('teacher_comment'),
        principal_comment=text_or_default('principal_comment'),
        position=rank_or_default('position'),
        total_students=rank_or_default('total_students'),
        submitted_at=meta.get('submitted_at'),
        published_at=meta.get('published_at'),
    )
