import decimal
import uuid

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='GradingSystem',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(help_text='Name of the grading system (e.g., Standard, British)', max_length=100, unique=True)),
                ('curriculum', models.CharField(choices=[('STANDARD', 'Standard (CA 40 / Exam 60)'), ('NIGERIAN', 'Nigerian (CA 40 / Exam 60)'), ('BRITISH', 'British (Coursework 50 / Exam 50)')], default='STANDARD', max_length=20)),
                ('description', models.TextField(blank=True)),
                ('ca_max', models.PositiveSmallIntegerField(default=40, help_text='Maximum continuous assessment score', validators=[django.core.validators.MaxValueValidator(100)])),
                ('exam_max', models.PositiveSmallIntegerField(default=60, help_text='Maximum examination score', validators=[django.core.validators.MaxValueValidator(100)])),
                ('is_active', models.BooleanField(default=True)),
                ('is_default', models.BooleanField(default=False, help_text='Used when no grading system is chosen explicitly')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Grading System',
                'verbose_name_plural': 'Grading Systems',
                'db_table': 'grading_system',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='GradeScale',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('grade_label', models.CharField(help_text='Grade label (e.g., A, B, A*)', max_length=5)),
                ('min_score', models.DecimalField(decimal_places=2, help_text='Lowest total for this grade (inclusive); 0 marks the fallback grade', max_digits=5, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)])),
                ('remark', models.CharField(blank=True, help_text='Remark printed with the grade (e.g., Excellent)', max_length=50)),
                ('is_pass', models.BooleanField(default=True, help_text='Whether this grade is considered passing')),
                ('order', models.IntegerField(default=0, help_text='Display order (lower numbers appear first)')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('grading_system', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='scales', to='results.gradingsystem')),
            ],
            options={
                'verbose_name': 'Grade Scale',
                'verbose_name_plural': 'Grade Scales',
                'db_table': 'grade_scale',
                'ordering': ['grading_system', 'order', '-min_score'],
                'unique_together': {('grading_system', 'grade_label')},
            },
        ),
        migrations.CreateModel(
            name='ClassSubject',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('class_id', models.CharField(db_index=True, help_text='Class identifier (e.g., JSS1-A)', max_length=50)),
                ('subject', models.CharField(max_length=100)),
                ('order', models.PositiveSmallIntegerField(default=0)),
                ('is_active', models.BooleanField(default=True)),
            ],
            options={
                'verbose_name': 'Class Subject',
                'verbose_name_plural': 'Class Subjects',
                'db_table': 'class_subject',
                'ordering': ['class_id', 'order', 'subject'],
                'unique_together': {('class_id', 'subject')},
            },
        ),
        migrations.CreateModel(
            name='ComponentScore',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('student_id', models.CharField(db_index=True, max_length=50)),
                ('class_id', models.CharField(blank=True, db_index=True, max_length=50)),
                ('subject', models.CharField(max_length=100)),
                ('term', models.CharField(help_text='e.g., First Term', max_length=30)),
                ('session', models.CharField(help_text='Academic session (e.g., 2024/2025)', max_length=20)),
                ('ca_score', models.DecimalField(decimal_places=2, default=decimal.Decimal('0'), help_text='Continuous assessment score', max_digits=5, validators=[django.core.validators.MinValueValidator(decimal.Decimal('0'))])),
                ('exam_score', models.DecimalField(decimal_places=2, default=decimal.Decimal('0'), help_text='Examination score', max_digits=5, validators=[django.core.validators.MinValueValidator(decimal.Decimal('0'))])),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Component Score',
                'verbose_name_plural': 'Component Scores',
                'db_table': 'component_score',
                'ordering': ['student_id', 'term', 'subject'],
                'indexes': [models.Index(fields=['term', 'session', 'student_id'], name='component_score_term_idx')],
                'unique_together': {('student_id', 'subject', 'term', 'session')},
            },
        ),
        migrations.CreateModel(
            name='ScoreAuditLog',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('student_id', models.CharField(max_length=50)),
                ('subject', models.CharField(max_length=100)),
                ('term', models.CharField(max_length=30)),
                ('session', models.CharField(max_length=20)),
                ('action', models.CharField(choices=[('CREATE', 'Created'), ('UPDATE', 'Updated')], max_length=10)),
                ('old_ca', models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True)),
                ('new_ca', models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True)),
                ('old_exam', models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True)),
                ('new_exam', models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('score', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='audit_logs', to='results.componentscore')),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='score_audit_logs', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Score Audit Log',
                'verbose_name_plural': 'Score Audit Logs',
                'db_table': 'score_audit_log',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['student_id', 'subject'], name='score_audit_student_idx'),
                    models.Index(fields=['-created_at'], name='score_audit_created_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ReportCard',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('student_id', models.CharField(db_index=True, max_length=50)),
                ('class_id', models.CharField(blank=True, db_index=True, max_length=50)),
                ('term', models.CharField(max_length=30)),
                ('session', models.CharField(max_length=20)),
                ('status', models.CharField(choices=[('Draft', 'Draft'), ('Submitted', 'Submitted'), ('Published', 'Published')], db_index=True, default='Draft', max_length=10)),
                ('attendance', models.JSONField(blank=True, default=dict, help_text='{"present": 0, "absent": 0, "late": 0, "total": 0}')),
                ('skills', models.JSONField(blank=True, default=dict)),
                ('psychomotor', models.JSONField(blank=True, default=dict)),
                ('teacher_comment', models.TextField(blank=True)),
                ('principal_comment', models.TextField(blank=True)),
                ('position', models.PositiveSmallIntegerField(blank=True, null=True)),
                ('total_students', models.PositiveSmallIntegerField(blank=True, null=True)),
                ('submitted_at', models.DateTimeField(blank=True, null=True)),
                ('published_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Report Card',
                'verbose_name_plural': 'Report Cards',
                'db_table': 'report_card',
                'ordering': ['-session', 'term', 'student_id'],
                'indexes': [models.Index(fields=['term', 'session', 'status'], name='report_card_status_idx')],
                'unique_together': {('student_id', 'term', 'session')},
            },
        ),
    ]
