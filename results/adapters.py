"""
Single adapter between stored/transported rows and the canonical shapes.

Rows reach the results app from the ORM, from API payloads and from older
exports, with field names such as ``ca_score``, ``ca`` or
``continuousAssessment`` for the same value. They are mapped here, once,
instead of at every call site.
"""
from collections.abc import Mapping

from .aggregation import ComponentScore, parse_timestamp

SCORE_FIELD_ALIASES = {
    'student_id': ('student_id', 'studentId', 'student'),
    'subject': ('subject', 'subject_name', 'subjectName'),
    'term': ('term', 'term_name', 'termName'),
    'session': ('session', 'academic_session', 'academicSession'),
    'ca': ('ca_score', 'ca', 'continuous_assessment', 'continuousAssessment'),
    'exam': ('exam_score', 'exam', 'examScore', 'score'),
    'updated_at': ('updated_at', 'updatedAt'),
}

REPORT_META_ALIASES = {
    'id': ('id', 'report_id', 'reportId'),
    'status': ('status',),
    'attendance': ('attendance',),
    'skills': ('skills',),
    'psychomotor': ('psychomotor',),
    'teacher_comment': ('teacher_comment', 'teacherComment'),
    'principal_comment': ('principal_comment', 'principalComment'),
    'position': ('position',),
    'total_students': ('total_students', 'totalStudents'),
    'submitted_at': ('submitted_at', 'submittedAt'),
    'published_at': ('published_at', 'publishedAt'),
}

ATTENDANCE_FIELDS = ('present', 'absent', 'late', 'total')


def first_present(row, names, default=None):
    """Return the first alias in ``names`` that ``row`` carries a non-None value for."""
    for name in names:
        value = row.get(name)
        if value is not None:
            return value
    return default


def normalize_score_row(row, term=None, session=None):
    """
    Build a ComponentScore from a stored or transported row.

    Args:
        row: dict using any of the aliases in SCORE_FIELD_ALIASES
        term: fallback term when the row does not carry one
        session: fallback session when the row does not carry one
    """
    values = {
        field: first_present(row, aliases)
        for field, aliases in SCORE_FIELD_ALIASES.items()
    }
    return ComponentScore(
        student_id=values['student_id'],
        subject=values['subject'] or '',
        term=values['term'] or term,
        session=values['session'] or session,
        ca=values['ca'] if values['ca'] is not None else 0,
        exam=values['exam'] if values['exam'] is not None else 0,
        updated_at=parse_timestamp(values['updated_at']),
    )


def normalize_report_meta(row):
    """
    Map stored report card fields to canonical snake_case keys.

    Keys the row does not carry are left out so the compiler can tell
    "missing" apart from "explicitly set".
    """
    if not row:
        return {}

    meta = {}
    for field, aliases in REPORT_META_ALIASES.items():
        value = first_present(row, aliases)
        if value is not None:
            meta[field] = value
    return meta


def normalize_attendance(value):
    """Coerce an attendance mapping to {present, absent, late, total} integers.

    Anything other than a mapping is treated as no attendance recorded.
    """
    if not isinstance(value, Mapping):
        value = {}
    attendance = {}
    for field in ATTENDANCE_FIELDS:
        try:
            count = int(value.get(field) or 0)
        except (TypeError, ValueError):
            count = 0
        attendance[field] = max(count, 0)
    return attendance
