from django.db import models
from django.utils.translation import gettext_lazy as _


class ReportStatus(models.TextChoices):
    DRAFT = 'Draft', _('Draft')
    SUBMITTED = 'Submitted', _('Submitted')
    PUBLISHED = 'Published', _('Published')


class GradeLetter(models.TextChoices):
    A = 'A', _('A')
    B = 'B', _('B')
    C = 'C', _('C')
    D = 'D', _('D')
    F = 'F', _('F')


class TermName(models.TextChoices):
    FIRST = 'First Term', _('First Term')
    SECOND = 'Second Term', _('Second Term')
    THIRD = 'Third Term', _('Third Term')


class Curriculum(models.TextChoices):
    STANDARD = 'STANDARD', _('Standard (CA 40 / Exam 60)')
    NIGERIAN = 'NIGERIAN', _('Nigerian (CA 40 / Exam 60)')
    BRITISH = 'BRITISH', _('British (Coursework 50 / Exam 50)')


# Affective and psychomotor domains rated on the report card (1-5 scale)
SKILL_BEHAVIOUR_DOMAINS = [
    'Neatness',
    'Punctuality',
    'Politeness',
    'Respect for Others',
    'Participation in Class',
    'Homework Completion',
    'Teamwork/Cooperation',
    'Attentiveness',
    'Creativity',
    'Honesty/Integrity',
]

PSYCHOMOTOR_SKILLS = [
    'Handwriting',
    'Drawing/Art Skills',
    'Craft Skills',
    'Music & Dance',
    'Sports Participation',
]
