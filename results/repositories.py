"""
Data access for the results app.

The scoring core (grading, aggregation, reports, publication) never touches
the database. It talks to storage through BaseResultsRepository, and
DjangoResultsRepository is the ORM-backed implementation used by the admin,
the Celery tasks and the management commands.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from django.core.cache import cache
from django.db import transaction
from django.utils import timezone

from . import config
from .adapters import normalize_score_row
from .aggregation import ComponentScore as ComponentScoreValue
from .choices import ReportStatus
from .grading import GradeClassifier, GradeThresholdConfig, validate_scores
from .models import (
    ClassSubject, ComponentScore, GradingSystem, ReportCard, ScoreAuditLog,
)
from .signals import signals_disabled

logger = logging.getLogger(__name__)

GRADING_GENERATION_KEY = 'results_grading_generation'


class BaseResultsRepository(ABC):
    """
    Storage operations the scoring core relies on.

    Score writes are last-writer-wins upserts keyed by
    (student_id, subject, term, session); there is no version token.
    """

    @abstractmethod
    def fetch_scores(self, student_ids, term, subject=None, session=None) -> List[ComponentScoreValue]:
        """Scores of the given students for a term, at most one per subject."""

    @abstractmethod
    def upsert_score(self, score, user=None) -> ComponentScoreValue:
        """Create or overwrite the score for its (student, subject, term, session)."""

    @abstractmethod
    def set_report_status(self, report_id, status):
        """Persist a report card's publication status."""

    @abstractmethod
    def list_subjects_for_class(self, class_id) -> List[str]:
        """Subject master list of a class."""

    @abstractmethod
    def fetch_report_meta(self, student_id, term, session) -> Optional[Dict]:
        """Stored report card fields, or None if the report has not been started."""


def _normalize_subject(name):
    return ' '.join(str(name or '').split())


def invalidate_grading_cache():
    """Drop every cached grade table (called when grading systems change)."""
    try:
        cache.incr(GRADING_GENERATION_KEY)
    except ValueError:
        cache.set(GRADING_GENERATION_KEY, 1, None)


def _grading_cache_key(name):
    generation = cache.get(GRADING_GENERATION_KEY, 0)
    return f'results_grading_{generation}_{name or "default"}'


class DjangoResultsRepository(BaseResultsRepository):
    """BaseResultsRepository backed by the results app models."""

    def __init__(self, ca_max=None, exam_max=None):
        self.ca_max = config.CA_MAX if ca_max is None else ca_max
        self.exam_max = config.EXAM_MAX if exam_max is None else exam_max

    # ---------------- Scores ---------------- #

    def fetch_scores(self, student_ids, term, subject=None, session=None):
        queryset = ComponentScore.objects.filter(
            student_id__in=[str(sid) for sid in student_ids],
            term=term,
        )
        if subject:
            queryset = queryset.filter(subject__iexact=_normalize_subject(subject))
        if session:
            queryset = queryset.filter(session=session)

        return [row.to_value() for row in queryset.order_by('student_id', 'subject')]

    def upsert_score(self, score, user=None, class_id=''):
        """
        Store a score, sanitizing CA/exam against this repository's caps.

        Args:
            score: ComponentScore value or a row dict (any supported aliases)
            user: user recorded in the audit log
            class_id: class the score was entered for

        Returns:
            ComponentScore value as stored
        """
        if isinstance(score, dict):
            score = normalize_score_row(score)

        sanitized = validate_scores(
            {'ca': score.ca, 'exam': score.exam},
            ca_max=self.ca_max,
            exam_max=self.exam_max,
        )
        subject = _normalize_subject(score.subject)

        with transaction.atomic():
            row, created = ComponentScore.objects.select_for_update().get_or_create(
                student_id=str(score.student_id),
                subject__iexact=subject,
                term=score.term,
                session=score.session,
                defaults={
                    'subject': subject,
                    'class_id': class_id or '',
                    'ca_score': sanitized['ca'],
                    'exam_score': sanitized['exam'],
                },
            )

            old_ca = old_exam = None
            if not created:
                old_ca, old_exam = row.ca_score, row.exam_score
                row.ca_score = sanitized['ca']
                row.exam_score = sanitized['exam']
                update_fields = ['ca_score', 'exam_score', 'updated_at']
                if class_id and row.class_id != class_id:
                    row.class_id = class_id
                    update_fields.append('class_id')
                row.save(update_fields=update_fields)

            ScoreAuditLog.objects.create(
                score=row,
                student_id=row.student_id,
                subject=row.subject,
                term=row.term,
                session=row.session,
                user=user,
                action='CREATE' if created else 'UPDATE',
                old_ca=old_ca,
                new_ca=row.ca_score,
                old_exam=old_exam,
                new_exam=row.exam_score,
            )

        logger.debug(
            f"{'Created' if created else 'Updated'} {row.subject} score for "
            f"{row.student_id}: {row.ca_score} + {row.exam_score}"
        )
        return row.to_value()

    def bulk_upsert_scores(self, scores, user=None, class_id=''):
        """
        Upsert many scores with per-save signals disabled.

        Report cards for every (student, term, session) touched are created
        once at the end instead of once per score.
        """
        stored = []
        with signals_disabled():
            for score in scores:
                stored.append(self.upsert_score(score, user=user, class_id=class_id))

        keys = {(s.student_id, s.term, s.session) for s in stored}
        for student_id, term, session in sorted(keys):
            self.ensure_report_card(student_id, term, session, class_id=class_id)

        logger.info(f"Bulk upserted {len(stored)} scores for {len(keys)} report cards")
        return stored

    # ---------------- Report cards ---------------- #

    def ensure_report_card(self, student_id, term, session, class_id=''):
        """Get or start the Draft report card for (student, term, session)."""
        card, created = ReportCard.objects.get_or_create(
            student_id=str(student_id),
            term=term,
            session=session,
            defaults={'class_id': class_id or '', 'status': ReportStatus.DRAFT},
        )
        if created:
            logger.debug(f"Started report card for {student_id} ({term} {session})")
        return card

    def fetch_report_meta(self, student_id, term, session):
        card = ReportCard.objects.filter(
            student_id=str(student_id), term=term, session=session
        ).first()
        return card.to_meta() if card else None

    def set_report_status(self, report_id, status):
        """
        Persist a status change.

        Publishing stamps published_at; moving back out of Published clears
        it. Every submission from Draft stamps submitted_at; unpublishing
        keeps the original submission time.

        Raises:
            ReportCard.DoesNotExist: if the report card is unknown
        """
        status = ReportStatus(status)
        card = ReportCard.objects.get(pk=report_id)
        now = timezone.now()

        previous = card.status
        card.status = status
        update_fields = ['status', 'updated_at']
        if status == ReportStatus.PUBLISHED:
            card.published_at = now
            update_fields.append('published_at')
        elif card.published_at is not None:
            card.published_at = None
            update_fields.append('published_at')
        if status == ReportStatus.SUBMITTED and previous == ReportStatus.DRAFT:
            card.submitted_at = now
            update_fields.append('submitted_at')

        card.save(update_fields=update_fields)
        logger.info(f"Report card {report_id} set to {status}")
        return card

    def list_report_cards(self, term, session, class_id=None, status=None):
        queryset = ReportCard.objects.filter(term=term, session=session)
        if class_id:
            queryset = queryset.filter(class_id=class_id)
        if status:
            queryset = queryset.filter(status=ReportStatus(status))
        return list(queryset.order_by('student_id'))

    # ---------------- Subjects ---------------- #

    def list_subjects_for_class(self, class_id):
        return list(
            ClassSubject.objects.filter(class_id=class_id, is_active=True)
            .order_by('order', 'subject')
            .values_list('subject', flat=True)
        )

    # ---------------- Grading systems ---------------- #

    def get_grading_rows(self, name=None):
        """
        Grade table and caps of a grading system, cached.

        Uses the named system, else the default one, else any active one.
        Returns None when no grading system is configured.
        """
        cache_key = _grading_cache_key(name)
        cached = cache.get(cache_key)
        if cached is not None:
            return cached or None

        queryset = GradingSystem.objects.filter(is_active=True)
        if name:
            system = queryset.filter(name=name).first()
        else:
            system = queryset.filter(is_default=True).first() or queryset.first()

        data = {}
        if system:
            data = {
                'name': system.name,
                'ca_max': system.ca_max,
                'exam_max': system.exam_max,
                'rows': [
                    {
                        'min_score': scale.min_score,
                        'grade': scale.grade_label,
                        'remark': scale.remark,
                        'is_pass': scale.is_pass,
                    }
                    for scale in system.scales.all().order_by('-min_score')
                ],
            }

        # Empty dict caches "nothing configured" too
        cache.set(cache_key, data, config.GRADING_CACHE_TIMEOUT)
        return data or None

    def get_scoring(self, name=None):
        """
        Caps and classifier for a grading system.

        Falls back to this repository's caps and the standard grade table
        when nothing is configured.

        Returns:
            dict: {'ca_max', 'exam_max', 'classifier'}
        """
        data = self.get_grading_rows(name)
        if not data or not data['rows']:
            return {
                'ca_max': self.ca_max,
                'exam_max': self.exam_max,
                'classifier': GradeClassifier(),
            }
        thresholds = GradeThresholdConfig.from_rows(data['rows'], name=data['name'])
        return {
            'ca_max': data['ca_max'],
            'exam_max': data['exam_max'],
            'classifier': GradeClassifier(thresholds),
        }
