"""
Publication workflow of report cards.

    Draft --submit--> Submitted --publish--> Published
    Draft <--reject-- Submitted <--unpublish-- Published

Parents and students only see Published reports. Nothing is terminal:
a published report can be pulled back to Submitted for correction.
"""
import logging

from django.utils import timezone

from .choices import ReportStatus
from .exceptions import InvalidTransitionError

logger = logging.getLogger(__name__)

SUBMIT = 'submit'
PUBLISH = 'publish'
UNPUBLISH = 'unpublish'
REJECT = 'reject'

TRANSITIONS = {
    (ReportStatus.DRAFT, SUBMIT): ReportStatus.SUBMITTED,
    (ReportStatus.SUBMITTED, PUBLISH): ReportStatus.PUBLISHED,
    (ReportStatus.PUBLISHED, UNPUBLISH): ReportStatus.SUBMITTED,
    (ReportStatus.SUBMITTED, REJECT): ReportStatus.DRAFT,
}

ACTIONS = (SUBMIT, PUBLISH, UNPUBLISH, REJECT)


class BulkPublishResult:
    """Per-item outcome of publish_all()."""

    def __init__(self):
        self.succeeded = []
        self.failed = []
        self.skipped = []
        self.reports = []

    def __repr__(self):
        return (
            f"<BulkPublishResult succeeded={len(self.succeeded)} "
            f"failed={len(self.failed)} skipped={len(self.skipped)}>"
        )

    @property
    def applied_count(self):
        return len(self.succeeded)

    @property
    def skipped_count(self):
        return len(self.skipped)

    @property
    def failed_count(self):
        return len(self.failed)

    def to_dict(self):
        return {
            'succeeded': list(self.succeeded),
            'failed': [dict(item) for item in self.failed],
            'skipped': list(self.skipped),
            'applied_count': self.applied_count,
            'skipped_count': self.skipped_count,
            'failed_count': self.failed_count,
        }


class PublicationStateMachine:
    """
    Applies status changes to Report values.

    Transitions never mutate the report passed in; they return a copy with
    the new status and timestamps. Whether the caller may publish at all is
    decided by the caller (admin permissions), not here.
    """

    def __init__(self, clock=None):
        self.clock = clock or timezone.now

    def target(self, state, action):
        """Status reached by ``action`` from ``state``, or None if not allowed."""
        return TRANSITIONS.get((ReportStatus(state), action))

    def can_apply(self, report, action):
        try:
            self._check(report, action)
        except InvalidTransitionError:
            return False
        return True

    def _check(self, report, action):
        if action not in ACTIONS:
            raise InvalidTransitionError(report.status, action, 'unknown action')

        target = self.target(report.status, action)
        if target is None:
            raise InvalidTransitionError(report.status, action)

        if action == SUBMIT and not report.academic_records:
            raise InvalidTransitionError(
                report.status, action, 'the report has no academic records'
            )
        return target

    def apply(self, report, action):
        """
        Apply ``action`` to ``report``.

        Returns:
            Report: a copy in the new state

        Raises:
            InvalidTransitionError: if the action is not allowed from the
                report's current state or its precondition fails
        """
        target = self._check(report, action)
        changes = {'status': target}

        if action == SUBMIT:
            changes['submitted_at'] = self.clock()
        elif action == PUBLISH:
            changes['published_at'] = self.clock()
        elif action in (UNPUBLISH, REJECT):
            changes['published_at'] = None

        logger.debug(f"Report {report.identifier}: {report.status} -> {target} ({action})")
        return report.copy(**changes)

    def submit(self, report):
        return self.apply(report, SUBMIT)

    def publish(self, report):
        return self.apply(report, PUBLISH)

    def unpublish(self, report):
        return self.apply(report, UNPUBLISH)

    def reject(self, report):
        return self.apply(report, REJECT)

    def publish_all(self, reports, persist=None):
        """
        Publish every Submitted report.

        Reports in any other state are skipped, not failed. Each report is
        handled on its own: when ``persist`` raises for one report, that
        report is recorded as failed (and left unchanged) and the rest carry on.

        Args:
            reports: iterable of Report
            persist: optional callable(report_id, status) storing the new
                status, e.g. BaseResultsRepository.set_report_status

        Returns:
            BulkPublishResult
        """
        result = BulkPublishResult()

        for report in reports:
            if report.status != ReportStatus.SUBMITTED:
                result.skipped.append(report.identifier)
                result.reports.append(report)
                continue

            published = self.publish(report)
            if persist is not None:
                try:
                    persist(report.identifier, published.status)
                except Exception as e:
                    logger.exception(f"Failed to publish report {report.identifier}")
                    result.failed.append({'id': report.identifier, 'error': str(e)})
                    result.reports.append(report)
                    continue

            result.succeeded.append(report.identifier)
            result.reports.append(published)

        logger.info(
            f"Bulk publish: {result.applied_count} published, "
            f"{result.skipped_count} skipped, {result.failed_count} failed"
        )
        return result
