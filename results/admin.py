import logging

from django.contrib import admin, messages

from unfold.admin import ModelAdmin, TabularInline

from .exceptions import InvalidTransitionError
from .models import (
    ClassSubject, ComponentScore, GradeScale, GradingSystem, ReportCard, ScoreAuditLog,
)
from .publication import PUBLISH, REJECT, SUBMIT, UNPUBLISH, PublicationStateMachine
from .repositories import DjangoResultsRepository
from .utils import build_report_card

logger = logging.getLogger(__name__)


class GradeScaleInline(TabularInline):
    model = GradeScale
    extra = 0
    fields = ('grade_label', 'min_score', 'remark', 'is_pass', 'order')
    ordering = ('-min_score',)


@admin.register(GradingSystem)
class GradingSystemAdmin(ModelAdmin):
    inlines = [GradeScaleInline]

    list_display = ('name', 'curriculum', 'ca_max', 'exam_max', 'is_default', 'is_active')
    list_filter = ('curriculum', 'is_active')
    search_fields = ('name',)
    readonly_fields = ('created_at', 'updated_at')


@admin.register(ClassSubject)
class ClassSubjectAdmin(ModelAdmin):
    list_display = ('class_id', 'subject', 'order', 'is_active')
    list_filter = ('is_active',)
    search_fields = ('class_id', 'subject')


@admin.register(ComponentScore)
class ComponentScoreAdmin(ModelAdmin):
    list_display = ('student_id', 'subject', 'term', 'session', 'ca_score', 'exam_score', 'total_display', 'updated_at')
    list_filter = ('term', 'session')
    search_fields = ('student_id', 'subject', 'class_id')
    readonly_fields = ('created_at', 'updated_at')

    def total_display(self, obj):
        return obj.ca_score + obj.exam_score
    total_display.short_description = 'Total'


@admin.register(ScoreAuditLog)
class ScoreAuditLogAdmin(ModelAdmin):
    list_display = ('created_at', 'action', 'student_id', 'subject', 'term', 'old_ca', 'new_ca', 'old_exam', 'new_exam', 'user')
    list_filter = ('action', 'term', 'session')
    search_fields = ('student_id', 'subject')

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(ReportCard)
class ReportCardAdmin(ModelAdmin):
    list_display = ('student_id', 'class_id', 'term', 'session', 'status', 'submitted_at', 'published_at')
    list_filter = ('status', 'term', 'session')
    search_fields = ('student_id', 'class_id')
    readonly_fields = ('status', 'submitted_at', 'published_at', 'created_at', 'updated_at')
    actions = ['submit_reports', 'publish_reports', 'unpublish_reports', 'reject_reports']

    def _run_transition(self, request, queryset, action, verb):
        """Apply one state machine action to each selected report card."""
        repository = DjangoResultsRepository()
        machine = PublicationStateMachine()
        applied = skipped = failed = 0

        for card in queryset:
            report = build_report_card(
                repository, card.student_id, card.term, card.session,
                class_id=card.class_id or None,
            )
            try:
                updated = machine.apply(report, action)
            except InvalidTransitionError as e:
                logger.debug(f"Skipped {card}: {e}")
                skipped += 1
                continue

            try:
                repository.set_report_status(card.pk, updated.status)
            except Exception as e:
                logger.error(f"Failed to {action} report card {card.pk}: {e}")
                failed += 1
                continue
            applied += 1

        self.message_user(request, f"{applied} report card(s) {verb}.", messages.SUCCESS)
        if skipped:
            self.message_user(
                request,
                f"{skipped} report card(s) skipped (not in a state that allows this).",
                messages.WARNING,
            )
        if failed:
            self.message_user(request, f"{failed} report card(s) failed.", messages.ERROR)

    @admin.action(description='Submit selected report cards')
    def submit_reports(self, request, queryset):
        self._run_transition(request, queryset, SUBMIT, 'submitted')

    @admin.action(description='Publish selected report cards')
    def publish_reports(self, request, queryset):
        self._run_transition(request, queryset, PUBLISH, 'published')

    @admin.action(description='Unpublish selected report cards')
    def unpublish_reports(self, request, queryset):
        self._run_transition(request, queryset, UNPUBLISH, 'unpublished')

    @admin.action(description='Return selected report cards to draft')
    def reject_reports(self, request, queryset):
        self._run_transition(request, queryset, REJECT, 'returned to draft')
