"""
Management command to seed the standard grading systems.
Creates the Standard and Pass/Fail A-F tables plus the Nigerian and British
curriculum tables, with the Standard table as the default.

Usage:
    python manage.py seed_grading_data
    python manage.py seed_grading_data --force
"""
from django.core.management.base import BaseCommand
from django.db import transaction

from results.choices import Curriculum
from results.grading import (
    BRITISH_THRESHOLDS, DEFAULT_THRESHOLDS, NIGERIAN_THRESHOLDS, PASS_FAIL_THRESHOLDS,
)
from results.models import GradingSystem, GradeScale

GRADING_SYSTEMS = [
    {
        'name': 'Standard',
        'curriculum': Curriculum.STANDARD,
        'description': 'A-F scale: A 75+, B 65+, C 50+, D 45+, F below 45',
        'ca_max': 40,
        'exam_max': 60,
        'is_default': True,
        'thresholds': DEFAULT_THRESHOLDS,
    },
    {
        'name': 'Pass/Fail',
        'curriculum': Curriculum.STANDARD,
        'description': 'A-F scale with pass/fail remarks: A 70+, B 60+, C 50+, D 45+',
        'ca_max': 40,
        'exam_max': 60,
        'is_default': False,
        'thresholds': PASS_FAIL_THRESHOLDS,
    },
    {
        'name': 'Nigerian',
        'curriculum': Curriculum.NIGERIAN,
        'description': 'A-F scale with an E pass band at 40',
        'ca_max': 40,
        'exam_max': 60,
        'is_default': False,
        'thresholds': NIGERIAN_THRESHOLDS,
    },
    {
        'name': 'British',
        'curriculum': Curriculum.BRITISH,
        'description': 'A*-U scale, coursework 50 / exam 50',
        'ca_max': 50,
        'exam_max': 50,
        'is_default': False,
        'thresholds': BRITISH_THRESHOLDS,
    },
]


class Command(BaseCommand):
    help = 'Seed the Standard, Pass/Fail, Nigerian and British grading systems'

    def add_arguments(self, parser):
        parser.add_argument(
            '--force',
            action='store_true',
            help='Overwrite existing grading systems with the same names',
        )

    def handle(self, *args, **options):
        force = options['force']

        with transaction.atomic():
            for data in GRADING_SYSTEMS:
                self.create_grading_system(data, force)

        self.stdout.write(self.style.SUCCESS('Successfully seeded grading data'))

    def create_grading_system(self, data, force):
        """Create one grading system and its scales from a grade table."""
        name = data['name']
        if GradingSystem.objects.filter(name=name).exists():
            if not force:
                self.stdout.write(f'{name} grading system already exists. Use --force to overwrite.')
                return
            GradingSystem.objects.filter(name=name).delete()

        thresholds = data['thresholds']
        system = GradingSystem.objects.create(
            name=name,
            curriculum=data['curriculum'],
            description=data['description'],
            ca_max=data['ca_max'],
            exam_max=data['exam_max'],
            is_active=True,
            is_default=data['is_default'],
        )

        # Fallback grade is stored as the band starting at 0
        bands = list(thresholds.bands) + [thresholds.fallback]
        for i, band in enumerate(bands):
            GradeScale.objects.create(
                grading_system=system,
                grade_label=band.grade,
                min_score=band.min_score,
                remark=band.remark,
                is_pass=band.is_pass,
                order=i,
            )

        self.stdout.write(self.style.SUCCESS(f'Created {name} grading system with {len(bands)} grades'))
