"""
Celery tasks for the results app.
Handles bulk publication of report cards at the end of a term.
"""
import logging

from celery import shared_task
from django.db import OperationalError

from . import config
from .choices import ReportStatus
from .publication import PublicationStateMachine
from .repositories import DjangoResultsRepository
from .utils import build_report_card


logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    max_retries=config.TASK_MAX_RETRIES,
    default_retry_delay=config.TASK_RETRY_DELAY,
)
def publish_submitted_reports(self, term, session, class_id=None, grading_system=None):
    """
    Publish every Submitted report card of a term.

    Reports that fail to save are listed in the result and do not stop the
    others. Only a failure to load the report cards at all is retried.

    Args:
        term: e.g. 'First Term'
        session: e.g. '2024/2025'
        class_id: limit to one class (optional)
        grading_system: grading system name used to compile the reports

    Returns:
        dict: BulkPublishResult.to_dict()
    """
    repository = DjangoResultsRepository()

    try:
        cards = repository.list_report_cards(
            term, session, class_id=class_id, status=ReportStatus.SUBMITTED
        )
        reports = [
            build_report_card(
                repository, card.student_id, term, session,
                class_id=card.class_id or None, grading_system=grading_system,
            )
            for card in cards
        ]
    except OperationalError as e:
        logger.warning(f"Could not load report cards for {term} {session}, retrying: {e}")
        raise self.retry(exc=e)

    logger.info(f"Publishing {len(reports)} submitted report cards for {term} {session}")

    machine = PublicationStateMachine()
    result = machine.publish_all(reports, persist=repository.set_report_status)

    for item in result.failed:
        logger.warning(f"Report card {item['id']} was not published: {item['error']}")

    data = result.to_dict()
    data['succeeded'] = [str(pk) for pk in data['succeeded']]
    data['skipped'] = [str(pk) for pk in data['skipped']]
    data['failed'] = [{'id': str(item['id']), 'error': item['error']} for item in data['failed']]
    return data
