"""
Signals of the results app.

Saving a score starts the student's Draft report card for that term, and
any change to a grading system drops the cached grade tables.
"""
import logging
import threading

from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver

from .choices import ReportStatus
from .models import ComponentScore, GradeScale, GradingSystem, ReportCard

logger = logging.getLogger(__name__)

# Thread-local storage for signal disabling (thread-safe)
_thread_locals = threading.local()


def _is_signals_disabled():
    """Check if signals are disabled for the current thread."""
    return getattr(_thread_locals, 'signals_disabled', False)


def disable_signals():
    """Disable score signals for the current thread (for bulk operations)."""
    _thread_locals.signals_disabled = True


def enable_signals():
    """Re-enable score signals for the current thread."""
    _thread_locals.signals_disabled = False


class signals_disabled:
    """Context manager to temporarily disable signals (thread-safe)."""

    def __enter__(self):
        self._previous_state = _is_signals_disabled()
        disable_signals()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self._previous_state:
            enable_signals()
        return False


@receiver(post_save, sender=ComponentScore)
def score_saved(sender, instance, created, **kwargs):
    """Make sure a report card exists for the score's student and term."""
    if _is_signals_disabled():
        return

    card, card_created = ReportCard.objects.get_or_create(
        student_id=instance.student_id,
        term=instance.term,
        session=instance.session,
        defaults={'class_id': instance.class_id, 'status': ReportStatus.DRAFT},
    )
    if card_created:
        logger.debug(
            f"Started report card for {instance.student_id} "
            f"({instance.term} {instance.session})"
        )


# ============ Cache Invalidation Signals ============

@receiver(post_save, sender=GradingSystem)
@receiver(post_delete, sender=GradingSystem)
@receiver(post_save, sender=GradeScale)
@receiver(post_delete, sender=GradeScale)
def invalidate_grading_cache(sender, instance, **kwargs):
    """Invalidate cached grade tables when grading systems are modified."""
    from .repositories import invalidate_grading_cache as clear_cache
    clear_cache()
    logger.debug(f"Grading cache invalidated due to {sender.__name__} change")
