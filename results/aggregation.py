"""
Per-subject aggregation of continuous assessment and exam scores.

A ComponentScore is what a teacher types for one student in one subject;
a SubjectRecord is the derived row printed on the report card.
"""
import logging
from datetime import datetime, timezone as dt_timezone

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from . import config
from .grading import GradeClassifier, clamp_score

logger = logging.getLogger(__name__)


def parse_timestamp(value):
    """
    Aware datetime for an updated_at value, or None.

    Accepts datetimes and ISO 8601 strings. Naive values are taken as UTC;
    anything unparseable counts as no timestamp.
    """
    if isinstance(value, str):
        try:
            value = parse_datetime(value.strip())
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if timezone.is_naive(value):
        value = timezone.make_aware(value, dt_timezone.utc)
    return value


def subject_key(name):
    """Case- and whitespace-insensitive key used to match subject names."""
    return ' '.join(str(name or '').split()).casefold()


class ComponentScore:
    """Scores for one (student, subject, term, session)."""

    def __init__(self, student_id, subject, term, session, ca=0, exam=0, updated_at=None):
        self.student_id = student_id
        self.subject = subject
        self.term = term
        self.session = session
        self.ca = ca
        self.exam = exam
        self.updated_at = updated_at

    def __repr__(self):
        return (
            f"ComponentScore({self.student_id!r}, {self.subject!r}, {self.term!r}, "
            f"{self.session!r}, ca={self.ca!r}, exam={self.exam!r})"
        )

    @property
    def key(self):
        return (str(self.student_id), subject_key(self.subject), self.term, self.session)

    def to_dict(self):
        return {
            'student_id': self.student_id,
            'subject': self.subject,
            'term': self.term,
            'session': self.session,
            'ca': self.ca,
            'exam': self.exam,
            'updated_at': self.updated_at,
        }


class SubjectRecord:
    """Canonical per-subject line of a report card."""

    def __init__(self, subject, ca, exam, grade, remark, is_passing=False):
        self.subject = subject
        self.ca = ca
        self.exam = exam
        self.grade = grade
        self.remark = remark
        self.is_passing = is_passing

    @property
    def total(self):
        return self.ca + self.exam

    def __repr__(self):
        return f"SubjectRecord({self.subject!r}, total={self.total}, grade={self.grade!r})"

    def __eq__(self, other):
        if not isinstance(other, SubjectRecord):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def to_dict(self):
        return {
            'subject': self.subject,
            'ca': self.ca,
            'exam': self.exam,
            'total': self.total,
            'grade': self.grade,
            'remark': self.remark,
            'is_passing': self.is_passing,
        }


def _pick_latest(candidates):
    """
    Choose one score out of duplicates for the same subject.

    The latest updated_at wins. Scores without a timestamp lose to any
    timestamped score; remaining ties go to the score that came last.
    """
    def recency(pair):
        index, score = pair
        updated_at = parse_timestamp(score.updated_at)
        if updated_at is None:
            return (0, None, index)
        return (1, updated_at, index)

    return max(enumerate(candidates), key=recency)[1]


def aggregate_subject_records(scores, classifier=None, subjects_master=None,
                              ca_max=None, exam_max=None):
    """
    Merge a student's component scores into one SubjectRecord per subject.

    Args:
        scores: iterable of ComponentScore for one student, term and session
        classifier: GradeClassifier (defaults to the standard table)
        subjects_master: subjects the class is expected to be graded in;
            those without scores are zero-filled
        ca_max: continuous assessment cap (default RESULTS_CA_MAX)
        exam_max: exam cap (default RESULTS_EXAM_MAX)

    Returns:
        list of SubjectRecord sorted by subject name
    """
    classifier = classifier or GradeClassifier()
    if ca_max is None:
        ca_max = config.CA_MAX
    if exam_max is None:
        exam_max = config.EXAM_MAX

    display_names = {}
    for name in subjects_master or []:
        key = subject_key(name)
        if key and key not in display_names:
            display_names[key] = ' '.join(str(name).split())

    by_subject = {}
    for score in scores:
        key = subject_key(score.subject)
        if not key:
            logger.warning(f"Ignoring score without a subject for student {score.student_id}")
            continue
        by_subject.setdefault(key, []).append(score)
        display_names.setdefault(key, ' '.join(str(score.subject).split()))

    records = []
    for key, name in display_names.items():
        candidates = by_subject.get(key, [])
        if len(candidates) > 1:
            logger.warning(
                f"{len(candidates)} scores recorded for {name}; "
                f"keeping the most recently updated one"
            )

        if candidates:
            chosen = _pick_latest(candidates)
            ca = clamp_score(chosen.ca, ca_max)
            exam = clamp_score(chosen.exam, exam_max)
        else:
            ca = clamp_score(0, ca_max)
            exam = clamp_score(0, exam_max)

        result = classifier.classify(ca + exam)
        records.append(SubjectRecord(
            subject=name,
            ca=ca,
            exam=exam,
            grade=result['grade'],
            remark=result['remark'],
            is_passing=result['is_passing'],
        ))

    records.sort(key=lambda r: (r.subject.casefold(), r.subject))
    return records
