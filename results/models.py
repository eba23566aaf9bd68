import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models

from .aggregation import ComponentScore as ComponentScoreValue
from .choices import Curriculum, ReportStatus
from .grading import GradeClassifier, GradeThresholdConfig


class GradingSystem(models.Model):
    """A school's grade table and component caps (e.g. Standard CA 40 / Exam 60)."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(
        max_length=100,
        unique=True,
        help_text='Name of the grading system (e.g., Standard, British)'
    )
    curriculum = models.CharField(
        max_length=20,
        choices=Curriculum.choices,
        default=Curriculum.STANDARD,
    )
    description = models.TextField(blank=True)
    ca_max = models.PositiveSmallIntegerField(
        default=40,
        validators=[MaxValueValidator(100)],
        help_text='Maximum continuous assessment score'
    )
    exam_max = models.PositiveSmallIntegerField(
        default=60,
        validators=[MaxValueValidator(100)],
        help_text='Maximum examination score'
    )
    is_active = models.BooleanField(default=True)
    is_default = models.BooleanField(
        default=False,
        help_text='Used when no grading system is chosen explicitly'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} (CA {self.ca_max} / Exam {self.exam_max})"

    def clean(self):
        if self.ca_max + self.exam_max != 100:
            raise ValidationError(
                f'CA and exam caps must add up to 100 (got {self.ca_max + self.exam_max})'
            )

    def to_threshold_config(self):
        """Build the grade table from this system's scales (None if it has none)."""
        rows = [
            {
                'min_score': scale.min_score,
                'grade': scale.grade_label,
                'remark': scale.remark,
                'is_pass': scale.is_pass,
            }
            for scale in self.scales.all().order_by('-min_score')
        ]
        if not rows:
            return None
        return GradeThresholdConfig.from_rows(rows, name=self.name)

    def get_classifier(self):
        return GradeClassifier(self.to_threshold_config())

    class Meta:
        db_table = 'grading_system'
        ordering = ['name']
        verbose_name = 'Grading System'
        verbose_name_plural = 'Grading Systems'


class GradeScale(models.Model):
    """One band of a grading system: totals >= min_score get grade_label."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    grading_system = models.ForeignKey(
        GradingSystem,
        on_delete=models.CASCADE,
        related_name='scales',
        db_index=True
    )
    grade_label = models.CharField(
        max_length=5,
        help_text='Grade label (e.g., A, B, A*)'
    )
    min_score = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text='Lowest total for this grade (inclusive); 0 marks the fallback grade'
    )
    remark = models.CharField(
        max_length=50,
        blank=True,
        help_text='Remark printed with the grade (e.g., Excellent)'
    )
    is_pass = models.BooleanField(
        default=True,
        help_text='Whether this grade is considered passing'
    )
    order = models.IntegerField(
        default=0,
        help_text='Display order (lower numbers appear first)'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.grade_label} (>= {self.min_score}) - {self.remark}"

    def clean(self):
        """Two bands of the same system cannot start at the same score."""
        if self.min_score is None or not self.grading_system_id:
            return
        clash = GradeScale.objects.filter(
            grading_system_id=self.grading_system_id,
            min_score=self.min_score,
        ).exclude(pk=self.pk)

        if clash.exists():
            raise ValidationError(
                f'Another grade already starts at {self.min_score}: {clash.first()}'
            )

    class Meta:
        db_table = 'grade_scale'
        ordering = ['grading_system', 'order', '-min_score']
        verbose_name = 'Grade Scale'
        verbose_name_plural = 'Grade Scales'
        unique_together = ['grading_system', 'grade_label']


class ClassSubject(models.Model):
    """Subject master list: the subjects a class is graded in."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    class_id = models.CharField(
        max_length=50,
        db_index=True,
        help_text='Class identifier (e.g., JSS1-A)'
    )
    subject = models.CharField(max_length=100)
    order = models.PositiveSmallIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    def __str__(self):
        return f"{self.class_id}: {self.subject}"

    class Meta:
        db_table = 'class_subject'
        ordering = ['class_id', 'order', 'subject']
        verbose_name = 'Class Subject'
        verbose_name_plural = 'Class Subjects'
        unique_together = ['class_id', 'subject']


class ComponentScore(models.Model):
    """CA and exam scores of one student in one subject for a term."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    student_id = models.CharField(max_length=50, db_index=True)
    class_id = models.CharField(max_length=50, blank=True, db_index=True)
    subject = models.CharField(max_length=100)
    term = models.CharField(
        max_length=30,
        help_text='e.g., First Term'
    )
    session = models.CharField(
        max_length=20,
        help_text='Academic session (e.g., 2024/2025)'
    )
    ca_score = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal('0'),
        validators=[MinValueValidator(Decimal('0'))],
        help_text='Continuous assessment score'
    )
    exam_score = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal('0'),
        validators=[MinValueValidator(Decimal('0'))],
        help_text='Examination score'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.student_id} - {self.subject} ({self.term} {self.session}): {self.ca_score}+{self.exam_score}"

    def to_value(self):
        return ComponentScoreValue(
            student_id=self.student_id,
            subject=self.subject,
            term=self.term,
            session=self.session,
            ca=self.ca_score,
            exam=self.exam_score,
            updated_at=self.updated_at,
        )

    class Meta:
        db_table = 'component_score'
        ordering = ['student_id', 'term', 'subject']
        verbose_name = 'Component Score'
        verbose_name_plural = 'Component Scores'
        unique_together = ['student_id', 'subject', 'term', 'session']
        indexes = [
            models.Index(fields=['term', 'session', 'student_id'], name='component_score_term_idx'),
        ]


class ScoreAuditLog(models.Model):
    """
    Audit log for score changes. Tracks who changed what and when.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    ACTION_CHOICES = [
        ('CREATE', 'Created'),
        ('UPDATE', 'Updated'),
    ]

    score = models.ForeignKey(
        ComponentScore,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs'
    )

    # Identifiers kept separately in case the score is deleted
    student_id = models.CharField(max_length=50)
    subject = models.CharField(max_length=100)
    term = models.CharField(max_length=30)
    session = models.CharField(max_length=20)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='score_audit_logs'
    )

    action = models.CharField(max_length=10, choices=ACTION_CHOICES)
    old_ca = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    new_ca = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    old_exam = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    new_exam = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.get_action_display()} {self.subject} score for {self.student_id} by {self.user}"

    class Meta:
        db_table = 'score_audit_log'
        ordering = ['-created_at']
        verbose_name = 'Score Audit Log'
        verbose_name_plural = 'Score Audit Logs'
        indexes = [
            models.Index(fields=['student_id', 'subject'], name='score_audit_student_idx'),
            models.Index(fields=['-created_at'], name='score_audit_created_idx'),
        ]


class ReportCard(models.Model):
    """
    Stored report card data for (student, term, session).

    Academic records are not stored here; they are compiled from
    ComponentScore rows every time the report is built.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    student_id = models.CharField(max_length=50, db_index=True)
    class_id = models.CharField(max_length=50, blank=True, db_index=True)
    term = models.CharField(max_length=30)
    session = models.CharField(max_length=20)
    status = models.CharField(
        max_length=10,
        choices=ReportStatus.choices,
        default=ReportStatus.DRAFT,
        db_index=True
    )

    attendance = models.JSONField(
        default=dict,
        blank=True,
        help_text='{"present": 0, "absent": 0, "late": 0, "total": 0}'
    )
    skills = models.JSONField(default=dict, blank=True)
    psychomotor = models.JSONField(default=dict, blank=True)

    teacher_comment = models.TextField(blank=True)
    principal_comment = models.TextField(blank=True)

    # Ranking is entered, not computed
    position = models.PositiveSmallIntegerField(null=True, blank=True)
    total_students = models.PositiveSmallIntegerField(null=True, blank=True)

    submitted_at = models.DateTimeField(null=True, blank=True)
    published_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.student_id} - {self.term} {self.session} [{self.status}]"

    def to_meta(self):
        """Stored fields in the shape compile_report() expects."""
        return {
            'id': self.pk,
            'status': self.status,
            'attendance': self.attendance,
            'skills': self.skills,
            'psychomotor': self.psychomotor,
            'teacher_comment': self.teacher_comment,
            'principal_comment': self.principal_comment,
            'position': self.position,
            'total_students': self.total_students,
            'submitted_at': self.submitted_at,
            'published_at': self.published_at,
        }

    class Meta:
        db_table = 'report_card'
        ordering = ['-session', 'term', 'student_id']
        verbose_name = 'Report Card'
        verbose_name_plural = 'Report Cards'
        unique_together = ['student_id', 'term', 'session']
        indexes = [
            models.Index(fields=['term', 'session', 'status'], name='report_card_status_idx'),
        ]
