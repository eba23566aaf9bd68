from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from io import StringIO

from django.contrib.admin.sites import AdminSite
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.test import RequestFactory, SimpleTestCase, TestCase

from .adapters import normalize_attendance, normalize_report_meta, normalize_score_row
from .admin import ReportCardAdmin
from .aggregation import ComponentScore as Score, SubjectRecord, aggregate_subject_records
from .choices import PSYCHOMOTOR_SKILLS, SKILL_BEHAVIOUR_DOMAINS, ReportStatus
from .exceptions import InvalidTransitionError
from .grading import (
    BRITISH_THRESHOLDS, DEFAULT_THRESHOLDS, NIGERIAN_THRESHOLDS, PASS_FAIL_THRESHOLDS,
    GradeBand, GradeClassifier, GradeThresholdConfig, get_preset, validate_scores,
)
from .models import ComponentScore, GradeScale, GradingSystem, ReportCard, ScoreAuditLog
from .publication import PublicationStateMachine
from .reports import Report, compile_report
from .repositories import DjangoResultsRepository
from .signals import signals_disabled
from .tasks import publish_submitted_reports
from .utils import build_class_reports, build_report_card, summarize_class_results


TERM = 'First Term'
SESSION = '2024/2025'


def make_score(subject, ca, exam, student_id='stu-1', updated_at=None):
    return Score(student_id, subject, TERM, SESSION, ca=ca, exam=exam, updated_at=updated_at)


def make_record(subject='Mathematics', ca=30, exam=40, grade='C', remark='Good', is_passing=True):
    return SubjectRecord(subject, Decimal(ca), Decimal(exam), grade, remark, is_passing)


def fixed_clock():
    return datetime(2025, 1, 10, 9, 0, tzinfo=dt_timezone.utc)


class ValidateScoresTest(SimpleTestCase):
    """Tests for CA/exam sanitization."""

    def test_valid_scores_unchanged(self):
        """Test scores within the caps pass through."""
        result = validate_scores({'ca': 35, 'exam': 58})
        self.assertEqual(result, {'ca': Decimal('35'), 'exam': Decimal('58')})

    def test_malformed_input_becomes_zero(self):
        """Test text and negatives are zeroed."""
        result = validate_scores({'ca': 'abc', 'exam': -10})
        self.assertEqual(result['ca'], Decimal('0'))
        self.assertEqual(result['exam'], Decimal('0'))

    def test_values_above_cap_clamped(self):
        """Test overflow clamps to the cap instead of raising."""
        result = validate_scores({'ca': 40, 'exam': 65})
        self.assertEqual(result['ca'], Decimal('40'))
        self.assertEqual(result['exam'], Decimal('60'))

    def test_missing_and_blank_fields(self):
        """Test missing, None and blank fields become zero."""
        self.assertEqual(validate_scores({}), {'ca': Decimal('0'), 'exam': Decimal('0')})
        self.assertEqual(validate_scores(None), {'ca': Decimal('0'), 'exam': Decimal('0')})
        result = validate_scores({'ca': '   ', 'exam': None})
        self.assertEqual(result, {'ca': Decimal('0'), 'exam': Decimal('0')})

    def test_numeric_strings_accepted(self):
        """Test numeric strings with whitespace are parsed."""
        result = validate_scores({'ca': ' 12.5 ', 'exam': '48'})
        self.assertEqual(result['ca'], Decimal('12.50'))
        self.assertEqual(result['exam'], Decimal('48'))

    def test_nan_and_infinity(self):
        """Test NaN is zeroed and infinities clamp into range."""
        result = validate_scores({'ca': float('nan'), 'exam': float('inf')})
        self.assertEqual(result['ca'], Decimal('0'))
        self.assertEqual(result['exam'], Decimal('60'))
        result = validate_scores({'ca': float('-inf'), 'exam': 'NaN'})
        self.assertEqual(result, {'ca': Decimal('0'), 'exam': Decimal('0')})

    def test_booleans_are_not_numbers(self):
        """Test booleans are treated as non-numeric."""
        result = validate_scores({'ca': True, 'exam': False})
        self.assertEqual(result, {'ca': Decimal('0'), 'exam': Decimal('0')})

    def test_custom_caps(self):
        """Test caps can be passed explicitly."""
        result = validate_scores({'ca': 45, 'exam': 45}, ca_max=50, exam_max=50)
        self.assertEqual(result, {'ca': Decimal('45'), 'exam': Decimal('45')})

    def test_always_within_bounds(self):
        """Test every malformed input resolves into 0..cap."""
        inputs = [None, '', 'x', -1, 0, 39.999, 40, 41, 1e9, '1e3', float('nan'), float('-inf'), [], {}]
        for ca in inputs:
            for exam in inputs:
                result = validate_scores({'ca': ca, 'exam': exam})
                self.assertTrue(Decimal('0') <= result['ca'] <= Decimal('40'), (ca, result))
                self.assertTrue(Decimal('0') <= result['exam'] <= Decimal('60'), (exam, result))


class GradeClassifierTest(SimpleTestCase):
    """Tests for grade classification."""

    def setUp(self):
        self.classifier = GradeClassifier()

    def test_default_table_boundaries(self):
        """Test inclusive lower bounds of the default table."""
        cases = [
            (100, 'A', 'Excellent'),
            (75, 'A', 'Excellent'),
            (74.99, 'B', 'Very Good'),
            (65, 'B', 'Very Good'),
            (50, 'C', 'Good'),
            (45, 'D', 'Fair'),
            (44.99, 'F', 'Needs Improvement'),
            (0, 'F', 'Needs Improvement'),
        ]
        for total, grade, remark in cases:
            result = self.classifier.classify(total)
            self.assertEqual(result['grade'], grade, total)
            self.assertEqual(result['remark'], remark, total)

    def test_passing_flag(self):
        """Test D and above pass, F fails."""
        self.assertTrue(self.classifier.classify(45)['is_passing'])
        self.assertFalse(self.classifier.classify(44)['is_passing'])

    def test_concrete_examples(self):
        """Test sanitized score pairs map to the expected grades."""
        scores = validate_scores({'ca': 35, 'exam': 58})
        result = self.classifier.classify(scores['ca'] + scores['exam'])
        self.assertEqual(scores['ca'] + scores['exam'], Decimal('93'))
        self.assertEqual(result['grade'], 'A')
        self.assertEqual(result['remark'], 'Excellent')

        scores = validate_scores({'ca': 'abc', 'exam': -10})
        self.assertEqual(self.classifier.classify(scores['ca'] + scores['exam'])['grade'], 'F')

        scores = validate_scores({'ca': 40, 'exam': 65})
        self.assertEqual(scores['ca'] + scores['exam'], Decimal('100'))
        self.assertEqual(self.classifier.classify(scores['ca'] + scores['exam'])['grade'], 'A')

    def test_monotonic(self):
        """Test a higher total never gets a worse grade."""
        for thresholds in (DEFAULT_THRESHOLDS, PASS_FAIL_THRESHOLDS, NIGERIAN_THRESHOLDS, BRITISH_THRESHOLDS):
            classifier = GradeClassifier(thresholds)
            previous = None
            for step in range(0, 1001):
                total = Decimal(step) / 10
                rank = classifier.rank(classifier.classify(total)['grade'])
                if previous is not None:
                    self.assertLessEqual(rank, previous, (thresholds.name, total))
                previous = rank

    def test_pass_fail_table(self):
        """Test the alternative 70/60/50/45 table and its remarks."""
        classifier = GradeClassifier(PASS_FAIL_THRESHOLDS)
        self.assertEqual(classifier.classify(70)['grade'], 'A')
        self.assertEqual(classifier.classify(69)['grade'], 'B')
        self.assertEqual(classifier.classify(45)['remark'], 'Pass')
        self.assertEqual(classifier.classify(10)['remark'], 'Fail')

    def test_unparseable_total_is_zero(self):
        """Test a non-numeric total gets the fallback grade."""
        self.assertEqual(self.classifier.classify('abc')['grade'], 'F')

    def test_rank_unknown_grade(self):
        """Test ranking a grade outside the table raises ValueError."""
        with self.assertRaises(ValueError):
            self.classifier.rank('Z')


class GradeThresholdConfigTest(SimpleTestCase):
    """Tests for grade table validation and construction."""

    def test_bands_sorted_descending(self):
        """Test bands are evaluated from the highest threshold."""
        table = GradeThresholdConfig([GradeBand(50, 'C', 'Good'), GradeBand(80, 'A', 'Excellent')])
        self.assertEqual([b.grade for b in table.bands], ['A', 'C'])
        self.assertEqual(table.grades, ('A', 'C', 'F'))

    def test_empty_table_rejected(self):
        """Test a table needs at least one band."""
        with self.assertRaises(ValueError):
            GradeThresholdConfig([])

    def test_duplicate_thresholds_rejected(self):
        """Test two bands cannot share a minimum score."""
        with self.assertRaises(ValueError):
            GradeThresholdConfig([GradeBand(50, 'C', 'Good'), GradeBand(50, 'D', 'Fair')])

    def test_duplicate_labels_rejected(self):
        """Test grade labels must be unique."""
        with self.assertRaises(ValueError):
            GradeThresholdConfig([GradeBand(70, 'A', 'Excellent'), GradeBand(50, 'A', 'Good')])

    def test_negative_threshold_rejected(self):
        """Test thresholds cannot be negative."""
        with self.assertRaises(ValueError):
            GradeThresholdConfig([GradeBand(-5, 'A', 'Excellent')])

    def test_from_rows_uses_zero_row_as_fallback(self):
        """Test the row starting at 0 becomes the fallback grade."""
        table = GradeThresholdConfig.from_rows([
            {'min_score': 60, 'grade': 'P', 'remark': 'Pass'},
            {'min_score': 0, 'grade': 'X', 'remark': 'Fail', 'is_pass': False},
        ], name='Simple')
        classifier = GradeClassifier(table)
        self.assertEqual(classifier.classify(59)['grade'], 'X')
        self.assertEqual(classifier.classify(59)['remark'], 'Fail')
        self.assertEqual(classifier.classify(60)['grade'], 'P')

    def test_pass_mark(self):
        """Test the pass mark is the lowest passing threshold."""
        self.assertEqual(DEFAULT_THRESHOLDS.pass_mark, Decimal('45'))
        self.assertEqual(NIGERIAN_THRESHOLDS.pass_mark, Decimal('40'))
        self.assertEqual(BRITISH_THRESHOLDS.pass_mark, Decimal('40'))


class CurriculumPresetTest(SimpleTestCase):
    """Tests for curriculum scoring presets."""

    def test_british_preset(self):
        """Test British coursework/exam split and A* band."""
        preset = get_preset('british')
        self.assertEqual((preset['ca_max'], preset['exam_max']), (50, 50))
        classifier = GradeClassifier(preset['thresholds'])
        self.assertEqual(classifier.classify(92)['grade'], 'A*')
        self.assertEqual(classifier.classify(35)['grade'], 'F')
        self.assertFalse(classifier.classify(35)['is_passing'])
        self.assertEqual(classifier.classify(10)['grade'], 'U')

    def test_nigerian_preset(self):
        """Test Nigerian table has an E pass band."""
        preset = get_preset('NIGERIAN')
        classifier = GradeClassifier(preset['thresholds'])
        self.assertEqual(classifier.classify(42)['grade'], 'E')
        self.assertTrue(classifier.classify(42)['is_passing'])
        self.assertEqual(classifier.classify(39)['grade'], 'F')

    def test_unknown_preset(self):
        """Test unknown curricula raise ValueError."""
        with self.assertRaises(ValueError):
            get_preset('martian')

    def test_skill_domains(self):
        """Test the default rating domains are exposed."""
        self.assertIn('Punctuality', SKILL_BEHAVIOUR_DOMAINS)
        self.assertIn('Handwriting', PSYCHOMOTOR_SKILLS)


class AggregateSubjectRecordsTest(SimpleTestCase):
    """Tests for per-subject aggregation."""

    def test_totals_and_grades(self):
        """Test each subject gets a clamped total and a grade."""
        records = aggregate_subject_records([make_score('Mathematics', 35, 58), make_score('English', 20, 30)])
        self.assertEqual([r.subject for r in records], ['English', 'Mathematics'])
        self.assertEqual(records[1].total, Decimal('93'))
        self.assertEqual(records[1].grade, 'A')
        self.assertEqual(records[0].total, Decimal('50'))
        self.assertEqual(records[0].grade, 'C')

    def test_out_of_range_scores_clamped(self):
        """Test stored scores beyond the caps are clamped before grading."""
        records = aggregate_subject_records([make_score('Physics', 55, -3)])
        self.assertEqual(records[0].ca, Decimal('40'))
        self.assertEqual(records[0].exam, Decimal('0'))

    def test_master_subjects_zero_filled(self):
        """Test every master subject appears even without scores."""
        records = aggregate_subject_records(
            [make_score('Math', 30, 50)],
            subjects_master=['Math', 'English', 'Biology'],
        )
        self.assertEqual([r.subject for r in records], ['Biology', 'English', 'Math'])
        for record in records[:2]:
            self.assertEqual(record.total, Decimal('0'))
            self.assertEqual(record.grade, 'F')
            self.assertFalse(record.is_passing)

    def test_scored_subjects_outside_master_kept(self):
        """Test subjects with scores but missing from the master list are included."""
        records = aggregate_subject_records(
            [make_score('French', 30, 40)],
            subjects_master=['Math'],
        )
        self.assertEqual([r.subject for r in records], ['French', 'Math'])

    def test_subject_names_matched_case_insensitively(self):
        """Test 'mathematics ' and 'Mathematics' are one subject, named as in the master list."""
        records = aggregate_subject_records(
            [make_score('mathematics ', 30, 50)],
            subjects_master=['Mathematics'],
        )
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].subject, 'Mathematics')
        self.assertEqual(records[0].total, Decimal('80'))

    def test_duplicates_latest_updated_wins(self):
        """Test the most recently updated duplicate is kept."""
        now = fixed_clock()
        scores = [
            make_score('Math', 10, 10, updated_at=now),
            make_score('Math', 30, 50, updated_at=now + timedelta(minutes=5)),
            make_score('Math', 20, 20, updated_at=now - timedelta(days=1)),
        ]
        records = aggregate_subject_records(scores)
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].total, Decimal('80'))

    def test_duplicates_without_timestamps_last_wins(self):
        """Test untimestamped duplicates resolve to the last one given."""
        records = aggregate_subject_records([make_score('Math', 10, 10), make_score('Math', 20, 20)])
        self.assertEqual(records[0].total, Decimal('40'))

    def test_timestamped_duplicate_beats_untimestamped(self):
        """Test a timestamped score wins over one without a timestamp."""
        records = aggregate_subject_records([
            make_score('Math', 30, 30, updated_at=fixed_clock()),
            make_score('Math', 5, 5),
        ])
        self.assertEqual(records[0].total, Decimal('60'))

    def test_string_timestamp_compared_with_datetime(self):
        """Test ISO strings from API rows compete with stored datetimes."""
        api_row = normalize_score_row({
            'studentId': 'stu-1', 'subject': 'Math', 'term': TERM, 'session': SESSION,
            'ca': 30, 'exam': 50, 'updatedAt': '2025-02-01T00:00:00Z',
        })
        records = aggregate_subject_records([
            api_row,
            make_score('Math', 10, 10, updated_at=datetime(2025, 1, 1, tzinfo=dt_timezone.utc)),
        ])
        self.assertEqual(records[0].total, Decimal('80'))

    def test_naive_and_aware_timestamps_mixed(self):
        """Test naive timestamps are read as UTC next to aware ones."""
        records = aggregate_subject_records([
            make_score('Math', 30, 50, updated_at=datetime(2025, 3, 1, 8, 0)),
            make_score('Math', 10, 10, updated_at=fixed_clock()),
            make_score('Math', 20, 20, updated_at='2025-01-20 12:00'),
        ])
        self.assertEqual(records[0].total, Decimal('80'))

    def test_unparseable_timestamp_counts_as_missing(self):
        """Test garbage timestamps lose to a real one without raising."""
        records = aggregate_subject_records([
            make_score('Math', 30, 30, updated_at=fixed_clock()),
            make_score('Math', 5, 5, updated_at='last tuesday'),
            make_score('Math', 6, 6, updated_at='2025-13-45T99:00'),
            make_score('Math', 7, 7, updated_at=12345),
        ])
        self.assertEqual(records[0].total, Decimal('60'))

    def test_blank_subject_ignored(self):
        """Test scores without a subject are dropped."""
        records = aggregate_subject_records([make_score('  ', 30, 30), make_score('Math', 1, 1)])
        self.assertEqual([r.subject for r in records], ['Math'])

    def test_idempotent(self):
        """Test the same input always yields the same output."""
        scores = [
            make_score('Math', 30, 50),
            make_score('english', 'x', 20),
            make_score('Biology', 40, 61),
        ]
        first = aggregate_subject_records(scores, subjects_master=['Chemistry'])
        second = aggregate_subject_records(scores, subjects_master=['Chemistry'])
        self.assertEqual([r.to_dict() for r in first], [r.to_dict() for r in second])

    def test_injected_classifier(self):
        """Test the grade table can be swapped at the call site."""
        records = aggregate_subject_records(
            [make_score('Math', 30, 40)],
            classifier=GradeClassifier(PASS_FAIL_THRESHOLDS),
        )
        self.assertEqual(records[0].grade, 'A')


class AdapterTest(SimpleTestCase):
    """Tests for field-name normalization."""

    def test_camel_case_score_row(self):
        """Test camelCase aliases map to a ComponentScore."""
        score = normalize_score_row(
            {'studentId': 's1', 'subjectName': 'Math', 'continuousAssessment': '30', 'examScore': 50},
            term=TERM, session=SESSION,
        )
        self.assertEqual(score.student_id, 's1')
        self.assertEqual(score.subject, 'Math')
        self.assertEqual(score.ca, '30')
        self.assertEqual(score.exam, 50)
        self.assertEqual((score.term, score.session), (TERM, SESSION))

    def test_snake_case_score_row(self):
        """Test stored column names map to a ComponentScore."""
        score = normalize_score_row({
            'student_id': 's2', 'subject': 'English', 'term': 'Second Term',
            'session': SESSION, 'ca_score': 12, 'exam_score': 40,
        }, term=TERM)
        self.assertEqual(score.term, 'Second Term')
        self.assertEqual((score.ca, score.exam), (12, 40))

    def test_missing_components_default_to_zero(self):
        """Test rows without CA/exam fields produce zeros."""
        score = normalize_score_row({'student_id': 's1', 'subject': 'Math'})
        self.assertEqual((score.ca, score.exam), (0, 0))

    def test_report_meta_aliases(self):
        """Test report metadata aliases map to canonical keys and None is dropped."""
        meta = normalize_report_meta({
            'reportId': 'r1',
            'teacherComment': 'Good work',
            'totalStudents': 30,
            'position': None,
        })
        self.assertEqual(meta, {'id': 'r1', 'teacher_comment': 'Good work', 'total_students': 30})
        self.assertEqual(normalize_report_meta(None), {})

    def test_attendance(self):
        """Test attendance is coerced to non-negative integers."""
        self.assertEqual(
            normalize_attendance({'present': '50', 'absent': -2, 'late': 'x'}),
            {'present': 50, 'absent': 0, 'late': 0, 'total': 0},
        )

    def test_attendance_not_a_mapping(self):
        """Test lists, strings and numbers give zeroed attendance."""
        zeroed = {'present': 0, 'absent': 0, 'late': 0, 'total': 0}
        self.assertEqual(normalize_attendance([1, 2]), zeroed)
        self.assertEqual(normalize_attendance('50'), zeroed)
        self.assertEqual(normalize_attendance(7), zeroed)

    def test_updated_at_parsed(self):
        """Test string timestamps become aware datetimes."""
        score = normalize_score_row({'student_id': 'stu-1', 'subject': 'Math', 'updated_at': '2025-01-10T09:00:00'})
        self.assertEqual(score.updated_at, fixed_clock())
        score = normalize_score_row({'student_id': 'stu-1', 'subject': 'Math', 'updated_at': 'soon'})
        self.assertIsNone(score.updated_at)


class CompileReportTest(SimpleTestCase):
    """Tests for report card compilation."""

    def test_defaults_without_meta(self):
        """Test documented defaults when nothing has been stored."""
        report = compile_report('stu-1', TERM, SESSION, [make_score('Math', 30, 50)])
        self.assertEqual(report.status, ReportStatus.DRAFT)
        self.assertEqual(report.attendance, {'present': 0, 'absent': 0, 'late': 0, 'total': 0})
        self.assertEqual(report.skills, {})
        self.assertEqual(report.psychomotor, {})
        self.assertEqual(report.teacher_comment, 'No comment yet.')
        self.assertEqual(report.principal_comment, 'No comment yet.')
        self.assertEqual(report.position, '-')
        self.assertEqual(report.total_students, '-')

    def test_malformed_attendance_meta(self):
        """Test a non-mapping attendance value does not break compilation."""
        report = compile_report(
            'stu-1', TERM, SESSION, [make_score('Math', 30, 50)],
            report_meta={'attendance': [1, 2]},
        )
        self.assertEqual(report.attendance, {'present': 0, 'absent': 0, 'late': 0, 'total': 0})

    def test_meta_applied(self):
        """Test stored fields are carried into the report."""
        report = compile_report(
            'stu-1', TERM, SESSION, [make_score('Math', 30, 50)],
            report_meta={
                'status': 'published',
                'attendance': {'present': 58, 'absent': 2, 'total': 60},
                'skills': {'Punctuality': 5},
                'teacherComment': 'Diligent',
                'position': 3,
                'total_students': 40,
            },
        )
        self.assertEqual(report.status, ReportStatus.PUBLISHED)
        self.assertEqual(report.attendance['present'], 58)
        self.assertEqual(report.skills, {'Punctuality': 5})
        self.assertEqual(report.teacher_comment, 'Diligent')
        self.assertEqual(report.principal_comment, 'No comment yet.')
        self.assertEqual((report.position, report.total_students), (3, 40))

    def test_subject_universe_is_union(self):
        """Test master subjects and scored subjects are both reported."""
        report = compile_report(
            'stu-1', TERM, SESSION,
            [make_score('Math', 30, 50), make_score('Art', 20, 20)],
            subjects_master=['Math', 'English'],
        )
        self.assertEqual([r.subject for r in report.academic_records], ['Art', 'English', 'Math'])

    def test_other_students_and_terms_ignored(self):
        """Test only the requested student's term scores are used."""
        scores = [
            make_score('Math', 30, 50),
            make_score('Math', 1, 1, student_id='stu-2'),
            Score('stu-1', 'English', 'Second Term', SESSION, ca=40, exam=60),
        ]
        report = compile_report('stu-1', TERM, SESSION, scores)
        self.assertEqual(len(report.academic_records), 1)
        self.assertEqual(report.academic_records[0].total, Decimal('80'))

    def test_missing_identity_raises(self):
        """Test blank student, term or session is a validation error."""
        with self.assertRaises(ValidationError) as ctx:
            compile_report('', TERM, ' ', [])
        self.assertEqual(set(ctx.exception.message_dict), {'student_id', 'session'})

    def test_unknown_status_raises(self):
        """Test an unrecognised stored status is rejected."""
        with self.assertRaises(ValidationError):
            compile_report('stu-1', TERM, SESSION, [], report_meta={'status': 'Archived'})

    def test_summary(self):
        """Test report footer totals."""
        report = compile_report(
            'stu-1', TERM, SESSION,
            [make_score('Math', 30, 50), make_score('English', 10, 20)],
        )
        summary = report.summary
        self.assertEqual(summary['total_marks'], Decimal('110'))
        self.assertEqual(summary['average'], Decimal('55.00'))
        self.assertEqual(summary['subjects_passed'], 1)
        self.assertEqual(summary['subjects_failed'], 1)


class PublicationStateMachineTest(SimpleTestCase):
    """Tests for the report publication workflow."""

    def setUp(self):
        self.machine = PublicationStateMachine(clock=fixed_clock)
        self.records = [make_record()]

    def make_report(self, status=ReportStatus.DRAFT, records=None, report_id=None):
        return Report(
            'stu-1', TERM, SESSION,
            academic_records=self.records if records is None else records,
            status=status, report_id=report_id,
        )

    def test_submit_requires_records(self):
        """Test submitting an empty report fails."""
        with self.assertRaises(InvalidTransitionError) as ctx:
            self.machine.submit(self.make_report(records=[]))
        self.assertEqual(ctx.exception.state, ReportStatus.DRAFT)
        self.assertEqual(ctx.exception.action, 'submit')

    def test_submit(self):
        """Test Draft with records becomes Submitted."""
        report = self.make_report()
        submitted = self.machine.submit(report)
        self.assertEqual(submitted.status, ReportStatus.SUBMITTED)
        self.assertEqual(submitted.submitted_at, fixed_clock())
        self.assertEqual(report.status, ReportStatus.DRAFT)

    def test_publish_from_draft_fails(self):
        """Test Draft cannot be published directly."""
        with self.assertRaises(InvalidTransitionError) as ctx:
            self.machine.publish(self.make_report())
        self.assertIn('publish', str(ctx.exception))
        self.assertIn('Draft', str(ctx.exception))

    def test_publish_and_unpublish(self):
        """Test Submitted -> Published -> Submitted."""
        published = self.machine.publish(self.make_report(ReportStatus.SUBMITTED))
        self.assertEqual(published.status, ReportStatus.PUBLISHED)
        self.assertEqual(published.published_at, fixed_clock())

        unpublished = self.machine.unpublish(published)
        self.assertEqual(unpublished.status, ReportStatus.SUBMITTED)
        self.assertIsNone(unpublished.published_at)

    def test_reject(self):
        """Test Submitted can be returned to Draft."""
        rejected = self.machine.reject(self.make_report(ReportStatus.SUBMITTED))
        self.assertEqual(rejected.status, ReportStatus.DRAFT)

    def test_unknown_action(self):
        """Test unknown actions are invalid transitions."""
        report = self.make_report()
        self.assertFalse(self.machine.can_apply(report, 'archive'))
        with self.assertRaises(InvalidTransitionError):
            self.machine.apply(report, 'archive')

    def test_publish_all_skips_non_submitted(self):
        """Test bulk publish applies only to Submitted reports."""
        reports = [
            self.make_report(ReportStatus.SUBMITTED, report_id='r1'),
            self.make_report(ReportStatus.DRAFT, report_id='r2'),
            self.make_report(ReportStatus.SUBMITTED, report_id='r3'),
            self.make_report(ReportStatus.DRAFT, report_id='r4'),
            self.make_report(ReportStatus.SUBMITTED, report_id='r5'),
        ]
        result = self.machine.publish_all(reports)

        self.assertEqual(result.succeeded, ['r1', 'r3', 'r5'])
        self.assertEqual(result.failed, [])
        self.assertEqual(result.skipped, ['r2', 'r4'])
        statuses = [r.status for r in result.reports]
        self.assertEqual(statuses.count(ReportStatus.PUBLISHED), 3)
        self.assertEqual(statuses.count(ReportStatus.DRAFT), 2)

    def test_publish_all_partial_failure(self):
        """Test one failing persist call does not stop the others."""
        persisted = []

        def persist(report_id, status):
            if report_id == 'r2':
                raise ConnectionError('store unavailable')
            persisted.append((report_id, status))

        reports = [
            self.make_report(ReportStatus.SUBMITTED, report_id='r1'),
            self.make_report(ReportStatus.SUBMITTED, report_id='r2'),
            self.make_report(ReportStatus.SUBMITTED, report_id='r3'),
        ]
        result = self.machine.publish_all(reports, persist=persist)

        self.assertEqual(result.succeeded, ['r1', 'r3'])
        self.assertEqual(result.failed, [{'id': 'r2', 'error': 'store unavailable'}])
        self.assertEqual(persisted, [('r1', ReportStatus.PUBLISHED), ('r3', ReportStatus.PUBLISHED)])
        self.assertEqual(result.reports[1].status, ReportStatus.SUBMITTED)
        self.assertEqual(result.to_dict()['failed_count'], 1)


class SummarizeClassResultsTest(SimpleTestCase):
    """Tests for class statistics."""

    def test_summary(self):
        """Test average, pass rate and grade distribution."""
        records = [
            make_record(ca=40, exam=40, grade='A'),
            make_record(ca=20, exam=30, grade='C'),
            make_record(ca=10, exam=20, grade='F', is_passing=False),
        ]
        summary = summarize_class_results(records, pass_mark=45)
        self.assertEqual(summary['student_count'], 3)
        self.assertEqual(summary['average'], Decimal('53.33'))
        self.assertEqual(summary['highest'], Decimal('80'))
        self.assertEqual(summary['lowest'], Decimal('30'))
        self.assertEqual(summary['pass_count'], 2)
        self.assertEqual(summary['pass_rate'], Decimal('66.67'))
        self.assertEqual(summary['grade_distribution'], {'A': 1, 'C': 1, 'F': 1})

    def test_pass_count_follows_grade_table(self):
        """Test records pass by their own grade table when no pass mark is given."""
        classifier = GradeClassifier(BRITISH_THRESHOLDS)
        records = aggregate_subject_records(
            [make_score('English', 20, 22)], classifier=classifier, ca_max=50, exam_max=50,
        )
        self.assertEqual(records[0].grade, 'E')
        self.assertTrue(records[0].is_passing)

        summary = summarize_class_results(records)
        self.assertEqual(summary['pass_count'], 1)
        self.assertEqual(summary['pass_rate'], Decimal('100.00'))

    def test_explicit_pass_mark_overrides_flags(self):
        """Test a caller-supplied pass mark is applied to totals."""
        records = [make_record(ca=20, exam=22, grade='E', is_passing=True)]
        self.assertEqual(summarize_class_results(records, pass_mark=45)['pass_count'], 0)

    def test_empty_class(self):
        """Test an empty class summarizes to zeros."""
        summary = summarize_class_results([])
        self.assertEqual(summary['student_count'], 0)
        self.assertEqual(summary['average'], Decimal('0'))
        self.assertIsNone(summary['highest'])


class GradingSystemModelTest(TestCase):
    """Tests for stored grading systems."""

    def setUp(self):
        cache.clear()
        self.system = GradingSystem.objects.create(name='School Table')
        GradeScale.objects.create(grading_system=self.system, grade_label='A', min_score=Decimal('70'), remark='Excellent')
        GradeScale.objects.create(grading_system=self.system, grade_label='F', min_score=Decimal('0'), remark='Fail', is_pass=False)

    def test_caps_must_sum_to_100(self):
        """Test clean() rejects caps that do not add up to 100."""
        system = GradingSystem(name='Broken', ca_max=50, exam_max=60)
        with self.assertRaises(ValidationError):
            system.clean()

    def test_duplicate_min_score_rejected(self):
        """Test clean() rejects a second band at the same score."""
        scale = GradeScale(grading_system=self.system, grade_label='B', min_score=Decimal('70'))
        with self.assertRaises(ValidationError):
            scale.clean()

    def test_to_threshold_config(self):
        """Test stored scales become a grade table."""
        classifier = self.system.get_classifier()
        self.assertEqual(classifier.classify(75)['grade'], 'A')
        self.assertEqual(classifier.classify(69)['grade'], 'F')
        self.assertEqual(classifier.classify(69)['remark'], 'Fail')

    def test_str_representation(self):
        """Test string representation."""
        self.assertEqual(str(self.system), 'School Table (CA 40 / Exam 60)')


class DjangoResultsRepositoryTest(TestCase):
    """Tests for the ORM-backed repository."""

    def setUp(self):
        cache.clear()
        self.repository = DjangoResultsRepository()

    def test_upsert_creates_then_updates(self):
        """Test upserts are keyed by student, subject, term and session."""
        self.repository.upsert_score(make_score('Mathematics', 30, 50))
        stored = self.repository.upsert_score(make_score('mathematics ', 35, 55))

        self.assertEqual(ComponentScore.objects.count(), 1)
        row = ComponentScore.objects.get()
        self.assertEqual(row.ca_score, Decimal('35'))
        self.assertEqual(row.exam_score, Decimal('55'))
        self.assertEqual(stored.subject, 'Mathematics')

    def test_upsert_is_idempotent(self):
        """Test repeating the same upsert leaves one row with the same values."""
        for _ in range(3):
            self.repository.upsert_score(make_score('English', 20, 30))
        row = ComponentScore.objects.get()
        self.assertEqual((row.ca_score, row.exam_score), (Decimal('20'), Decimal('30')))

    def test_upsert_sanitizes(self):
        """Test stored scores are clamped."""
        stored = self.repository.upsert_score(make_score('Physics', 'abc', 99))
        self.assertEqual(stored.ca, Decimal('0'))
        self.assertEqual(stored.exam, Decimal('60'))

    def test_upsert_accepts_row_dicts(self):
        """Test aliased rows are accepted."""
        self.repository.upsert_score({
            'studentId': 'stu-9', 'subject': 'Art', 'term': TERM,
            'session': SESSION, 'continuousAssessment': 12, 'examScore': 34,
        })
        self.assertTrue(ComponentScore.objects.filter(student_id='stu-9', subject='Art').exists())

    def test_audit_log(self):
        """Test every upsert records old and new values."""
        self.repository.upsert_score(make_score('Math', 10, 20))
        self.repository.upsert_score(make_score('Math', 15, 25))

        logs = {log.action: log for log in ScoreAuditLog.objects.all()}
        self.assertEqual(set(logs), {'CREATE', 'UPDATE'})
        self.assertIsNone(logs['CREATE'].old_ca)
        self.assertEqual(logs['UPDATE'].old_ca, Decimal('10'))
        self.assertEqual(logs['UPDATE'].new_exam, Decimal('25'))

    def test_fetch_scores(self):
        """Test fetching by students, term, subject and session."""
        self.repository.upsert_score(make_score('Math', 10, 20, student_id='a'))
        self.repository.upsert_score(make_score('English', 10, 20, student_id='a'))
        self.repository.upsert_score(make_score('Math', 30, 40, student_id='b'))
        self.repository.upsert_score(Score('a', 'Math', 'Second Term', SESSION, ca=1, exam=1))

        self.assertEqual(len(self.repository.fetch_scores(['a'], TERM)), 2)
        self.assertEqual(len(self.repository.fetch_scores(['a', 'b'], TERM, subject='math')), 2)
        self.assertEqual(len(self.repository.fetch_scores(['a'], TERM, session='2023/2024')), 0)

    def test_score_save_starts_report_card(self):
        """Test saving a score creates the Draft report card."""
        self.repository.upsert_score(make_score('Math', 10, 20), class_id='JSS1-A')
        card = ReportCard.objects.get(student_id='stu-1', term=TERM, session=SESSION)
        self.assertEqual(card.status, ReportStatus.DRAFT)
        self.assertEqual(card.class_id, 'JSS1-A')

    def test_signals_disabled(self):
        """Test no report card is created while signals are disabled."""
        with signals_disabled():
            ComponentScore.objects.create(student_id='stu-1', subject='Math', term=TERM, session=SESSION)
        self.assertFalse(ReportCard.objects.exists())

    def test_bulk_upsert_creates_report_cards_once(self):
        """Test bulk upserts still start one report card per student."""
        scores = [
            make_score('Math', 10, 20, student_id='a'),
            make_score('English', 10, 20, student_id='a'),
            make_score('Math', 10, 20, student_id='b'),
        ]
        self.repository.bulk_upsert_scores(scores, class_id='JSS1-A')
        self.assertEqual(ComponentScore.objects.count(), 3)
        self.assertEqual(ReportCard.objects.count(), 2)

    def test_set_report_status_stamps(self):
        """Test publication timestamps are persisted."""
        card = ReportCard.objects.create(student_id='stu-1', term=TERM, session=SESSION)

        self.repository.set_report_status(card.pk, ReportStatus.SUBMITTED)
        card.refresh_from_db()
        self.assertEqual(card.status, ReportStatus.SUBMITTED)
        self.assertIsNotNone(card.submitted_at)

        self.repository.set_report_status(card.pk, ReportStatus.PUBLISHED)
        card.refresh_from_db()
        self.assertIsNotNone(card.published_at)

        self.repository.set_report_status(card.pk, ReportStatus.SUBMITTED)
        card.refresh_from_db()
        self.assertIsNone(card.published_at)

    def test_set_report_status_unknown_card(self):
        """Test unknown report ids propagate DoesNotExist."""
        other = ReportCard(student_id='x', term=TERM, session=SESSION)
        with self.assertRaises(ReportCard.DoesNotExist):
            self.repository.set_report_status(other.pk, ReportStatus.PUBLISHED)

    def test_resubmission_restamps_submitted_at(self):
        """Test submitting again after a reject records the new submission time."""
        card = ReportCard.objects.create(student_id='stu-1', term=TERM, session=SESSION)
        self.repository.set_report_status(card.pk, ReportStatus.SUBMITTED)
        first_submission = fixed_clock() - timedelta(days=3)
        ReportCard.objects.filter(pk=card.pk).update(submitted_at=first_submission)

        self.repository.set_report_status(card.pk, ReportStatus.DRAFT)
        self.repository.set_report_status(card.pk, ReportStatus.SUBMITTED)
        card.refresh_from_db()
        self.assertGreater(card.submitted_at, first_submission)

    def test_unpublish_keeps_submitted_at(self):
        """Test moving back from Published keeps the original submission time."""
        card = ReportCard.objects.create(student_id='stu-1', term=TERM, session=SESSION)
        self.repository.set_report_status(card.pk, ReportStatus.SUBMITTED)
        ReportCard.objects.filter(pk=card.pk).update(submitted_at=fixed_clock())

        self.repository.set_report_status(card.pk, ReportStatus.PUBLISHED)
        self.repository.set_report_status(card.pk, ReportStatus.SUBMITTED)
        card.refresh_from_db()
        self.assertEqual(card.submitted_at, fixed_clock())

    def test_list_subjects_for_class(self):
        """Test the subject master list is ordered and excludes inactive subjects."""
        from .models import ClassSubject
        ClassSubject.objects.create(class_id='JSS1-A', subject='Mathematics', order=1)
        ClassSubject.objects.create(class_id='JSS1-A', subject='English', order=2)
        ClassSubject.objects.create(class_id='JSS1-A', subject='Latin', order=3, is_active=False)
        ClassSubject.objects.create(class_id='JSS2-A', subject='Biology')

        self.assertEqual(self.repository.list_subjects_for_class('JSS1-A'), ['Mathematics', 'English'])

    def test_get_scoring_defaults(self):
        """Test the standard table is used when nothing is configured."""
        scoring = self.repository.get_scoring()
        self.assertEqual(scoring['ca_max'], 40)
        self.assertEqual(scoring['classifier'].classify(75)['grade'], 'A')

    def test_grading_cache_invalidated(self):
        """Test changes to grading systems are picked up."""
        self.assertEqual(self.repository.get_scoring()['classifier'].classify(70)['grade'], 'B')

        system = GradingSystem.objects.create(name='Lenient', is_default=True)
        GradeScale.objects.create(grading_system=system, grade_label='A', min_score=Decimal('60'), remark='Excellent')

        self.assertEqual(self.repository.get_scoring()['classifier'].classify(70)['grade'], 'A')

    def test_build_report_card(self):
        """Test compiling a report from stored data."""
        from .models import ClassSubject
        ClassSubject.objects.create(class_id='JSS1-A', subject='Mathematics')
        ClassSubject.objects.create(class_id='JSS1-A', subject='English')
        self.repository.upsert_score(make_score('Mathematics', 35, 58), class_id='JSS1-A')
        ReportCard.objects.filter(student_id='stu-1').update(teacher_comment='Keep it up', position=2)

        report = build_report_card(self.repository, 'stu-1', TERM, SESSION, class_id='JSS1-A')

        self.assertEqual([r.subject for r in report.academic_records], ['English', 'Mathematics'])
        self.assertEqual(report.academic_records[1].grade, 'A')
        self.assertEqual(report.academic_records[0].grade, 'F')
        self.assertEqual(report.teacher_comment, 'Keep it up')
        self.assertEqual(report.position, 2)
        self.assertEqual(report.total_students, '-')
        self.assertIsNotNone(report.report_id)


    def test_build_class_reports(self):
        """Test class reports keep the requested student order."""
        self.repository.upsert_score(make_score('Math', 10, 20, student_id='b'))
        self.repository.upsert_score(make_score('Math', 30, 40, student_id='a'))

        reports = build_class_reports(self.repository, ['b', 'a', 'c'], TERM, SESSION)

        self.assertEqual([r.student_id for r in reports], ['b', 'a', 'c'])
        self.assertEqual(reports[1].academic_records[0].total, Decimal('70'))
        self.assertEqual(reports[2].academic_records, [])
        self.assertIsNone(reports[2].report_id)

class PublishSubmittedReportsTaskTest(TestCase):
    """Tests for the bulk publication task."""

    def setUp(self):
        cache.clear()
        self.repository = DjangoResultsRepository()
        for student_id in ('a', 'b', 'c'):
            self.repository.upsert_score(make_score('Math', 30, 40, student_id=student_id), class_id='JSS1-A')
        for student_id in ('a', 'b'):
            card = ReportCard.objects.get(student_id=student_id)
            self.repository.set_report_status(card.pk, ReportStatus.SUBMITTED)

    def test_publishes_submitted_only(self):
        """Test only Submitted report cards are published."""
        result = publish_submitted_reports(TERM, SESSION)

        self.assertEqual(result['applied_count'], 2)
        self.assertEqual(result['failed_count'], 0)
        published = ReportCard.objects.filter(status=ReportStatus.PUBLISHED)
        self.assertEqual(set(published.values_list('student_id', flat=True)), {'a', 'b'})
        self.assertEqual(ReportCard.objects.get(student_id='c').status, ReportStatus.DRAFT)
        self.assertTrue(all(card.published_at for card in published))

    def test_class_filter(self):
        """Test limiting publication to another class publishes nothing."""
        result = publish_submitted_reports(TERM, SESSION, class_id='JSS2-B')
        self.assertEqual(result['applied_count'], 0)
        self.assertFalse(ReportCard.objects.filter(status=ReportStatus.PUBLISHED).exists())


class ReportCardAdminActionTest(TestCase):
    """Tests for the admin workflow actions."""

    def setUp(self):
        cache.clear()
        self.repository = DjangoResultsRepository()
        self.repository.upsert_score(make_score('Math', 30, 40, student_id='a'))
        ReportCard.objects.create(student_id='empty', term=TERM, session=SESSION)

        self.admin = ReportCardAdmin(ReportCard, AdminSite())
        self.messages = []
        self.admin.message_user = lambda request, message, level=None: self.messages.append(message)
        self.request = RequestFactory().post('/admin/results/reportcard/')

    def test_submit_action(self):
        """Test reports with records are submitted and empty ones skipped."""
        self.admin.submit_reports(self.request, ReportCard.objects.all())

        self.assertEqual(ReportCard.objects.get(student_id='a').status, ReportStatus.SUBMITTED)
        self.assertEqual(ReportCard.objects.get(student_id='empty').status, ReportStatus.DRAFT)
        self.assertIn('1 report card(s) submitted.', self.messages)
        self.assertTrue(any('1 report card(s) skipped' in m for m in self.messages))

    def test_publish_then_reject(self):
        """Test publish skips drafts and reject returns submitted reports to draft."""
        self.admin.publish_reports(self.request, ReportCard.objects.all())
        self.assertFalse(ReportCard.objects.filter(status=ReportStatus.PUBLISHED).exists())

        self.admin.submit_reports(self.request, ReportCard.objects.filter(student_id='a'))
        self.admin.reject_reports(self.request, ReportCard.objects.filter(student_id='a'))
        self.assertEqual(ReportCard.objects.get(student_id='a').status, ReportStatus.DRAFT)


class SeedGradingDataCommandTest(TestCase):
    """Tests for the seed_grading_data management command."""

    def setUp(self):
        cache.clear()

    def test_seeds_presets(self):
        """Test the four grading systems are created once."""
        call_command('seed_grading_data', stdout=StringIO())
        call_command('seed_grading_data', stdout=StringIO())

        self.assertEqual(GradingSystem.objects.count(), 4)
        self.assertEqual(GradingSystem.objects.get(name='British').scales.count(), 8)
        self.assertEqual(GradingSystem.objects.get(is_default=True).name, 'Standard')

    def test_force_recreates(self):
        """Test --force replaces existing systems."""
        call_command('seed_grading_data', stdout=StringIO())
        GradeScale.objects.filter(grading_system__name='Standard', grade_label='A').delete()
        call_command('seed_grading_data', '--force', stdout=StringIO())
        self.assertEqual(GradingSystem.objects.get(name='Standard').scales.count(), 5)

    def test_seeded_system_used_for_grading(self):
        """Test the repository grades with a seeded system."""
        call_command('seed_grading_data', stdout=StringIO())
        scoring = DjangoResultsRepository().get_scoring('British')
        self.assertEqual((scoring['ca_max'], scoring['exam_max']), (50, 50))
        self.assertEqual(scoring['classifier'].classify(92)['grade'], 'A*')

        default = DjangoResultsRepository().get_scoring()
        self.assertEqual(default['classifier'].classify(74)['grade'], 'B')
