"""
Score sanitization and grade classification.

Everything in this module is pure: no database access, no settings writes.
Grade tables are GradeThresholdConfig objects passed in by the caller, so
every screen that grades a total uses the same table instead of its own copy.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .choices import Curriculum, GradeLetter
from . import config

TWO_PLACES = Decimal('0.01')


def to_decimal(value):
    """
    Coerce user input to a Decimal.

    Returns None for anything that is not a number (empty strings, text,
    None, booleans, NaN). Infinities are kept so callers can clamp them.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if number.is_nan():
        return None
    return number


def clamp_score(value, maximum):
    """Clamp a raw component score into 0..maximum. Never raises."""
    maximum = to_decimal(maximum)
    if maximum is None or maximum < 0:
        maximum = Decimal('0')

    number = to_decimal(value)
    if number is None:
        return Decimal('0')
    if number < 0:
        return Decimal('0')
    if number > maximum:
        number = maximum
    return number.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def validate_scores(raw, ca_max=None, exam_max=None):
    """
    Sanitize a {ca, exam} pair typed into the score entry grid.

    Missing or malformed fields become 0, negatives become 0 and values above
    a cap become the cap, so every keystroke resolves to a valid pair.

    Args:
        raw: dict with optional 'ca' and 'exam' (numbers or strings)
        ca_max: continuous assessment cap (default RESULTS_CA_MAX)
        exam_max: exam cap (default RESULTS_EXAM_MAX)

    Returns:
        dict: {'ca': Decimal, 'exam': Decimal}
    """
    if ca_max is None:
        ca_max = config.CA_MAX
    if exam_max is None:
        exam_max = config.EXAM_MAX
    raw = raw or {}

    return {
        'ca': clamp_score(raw.get('ca'), ca_max),
        'exam': clamp_score(raw.get('exam'), exam_max),
    }


class GradeBand:
    """One row of a grade table: totals >= min_score get this grade."""

    def __init__(self, min_score, grade, remark, is_pass=True):
        self.min_score = to_decimal(min_score)
        self.grade = str(grade)
        self.remark = remark
        self.is_pass = is_pass

    def __repr__(self):
        return f"GradeBand({self.min_score}, {self.grade!r}, {self.remark!r})"

    def __eq__(self, other):
        if not isinstance(other, GradeBand):
            return NotImplemented
        return (
            self.min_score == other.min_score and self.grade == other.grade
            and self.remark == other.remark and self.is_pass == other.is_pass
        )

    def as_result(self):
        return {
            'grade': self.grade,
            'remark': self.remark,
            'is_passing': self.is_pass,
        }


class GradeThresholdConfig:
    """
    An ordered grade table with inclusive lower bounds.

    Bands are evaluated from the highest threshold down and the first match
    wins; totals below every band get the fallback grade.
    """

    def __init__(self, bands, fallback_grade=GradeLetter.F.value,
                 fallback_remark='Needs Improvement', name=''):
        bands = list(bands)
        if not bands:
            raise ValueError("A grade table needs at least one band")

        for band in bands:
            if band.min_score is None or band.min_score < 0:
                raise ValueError(f"Invalid minimum score for grade {band.grade!r}")

        bands.sort(key=lambda b: b.min_score, reverse=True)

        thresholds = [b.min_score for b in bands]
        if len(set(thresholds)) != len(thresholds):
            raise ValueError("Grade bands must have distinct minimum scores")

        grades = [b.grade for b in bands] + [str(fallback_grade)]
        if len(set(grades)) != len(grades):
            raise ValueError("Grade labels must be unique within a table")

        self.name = name
        self.bands = tuple(bands)
        self.fallback = GradeBand(0, fallback_grade, fallback_remark, is_pass=False)

    def __repr__(self):
        return f"<GradeThresholdConfig {self.name or 'custom'}: {list(self.grades)}>"

    @property
    def grades(self):
        """Grade labels from best to worst."""
        return tuple(b.grade for b in self.bands) + (self.fallback.grade,)

    @property
    def pass_mark(self):
        """Lowest threshold whose band counts as a pass (None if nothing passes)."""
        passing = [b.min_score for b in self.bands if b.is_pass]
        return min(passing) if passing else None

    @classmethod
    def from_rows(cls, rows, name=''):
        """
        Build a table from plain dicts, e.g. loaded from settings or the database.

        Each row has 'min_score', 'grade', 'remark' and optionally 'is_pass'.
        The row with min_score 0 (if any) becomes the fallback band.
        """
        bands = []
        fallback = None
        for row in rows:
            band = GradeBand(
                row['min_score'], row['grade'], row.get('remark', ''),
                is_pass=row.get('is_pass', True),
            )
            if band.min_score == 0:
                fallback = band
            else:
                bands.append(band)

        if fallback is None:
            return cls(bands, name=name)
        return cls(
            bands,
            fallback_grade=fallback.grade,
            fallback_remark=fallback.remark,
            name=name,
        )


class GradeClassifier:
    """Maps a total score to a grade letter and remark using one grade table."""

    def __init__(self, thresholds=None):
        self.thresholds = thresholds or DEFAULT_THRESHOLDS

    def classify(self, total):
        """
        Classify a total score.

        Returns:
            dict: {'grade': str, 'remark': str, 'is_passing': bool}
        """
        number = to_decimal(total)
        if number is None:
            number = Decimal('0')

        for band in self.thresholds.bands:
            if number >= band.min_score:
                return band.as_result()
        return self.thresholds.fallback.as_result()

    def rank(self, grade):
        """Position of a grade in the table, 0 being the best."""
        try:
            return self.thresholds.grades.index(grade)
        except ValueError:
            raise ValueError(f"Unknown grade {grade!r} for table {self.thresholds.name!r}") from None


DEFAULT_THRESHOLDS = GradeThresholdConfig(
    [
        GradeBand(75, GradeLetter.A, 'Excellent'),
        GradeBand(65, GradeLetter.B, 'Very Good'),
        GradeBand(50, GradeLetter.C, 'Good'),
        GradeBand(45, GradeLetter.D, 'Fair'),
    ],
    fallback_remark='Needs Improvement',
    name='Standard',
)

# Same letters with lower A/B cut-offs and pass/fail remark wording
PASS_FAIL_THRESHOLDS = GradeThresholdConfig(
    [
        GradeBand(70, GradeLetter.A, 'Excellent'),
        GradeBand(60, GradeLetter.B, 'Very Good'),
        GradeBand(50, GradeLetter.C, 'Good'),
        GradeBand(45, GradeLetter.D, 'Pass'),
    ],
    fallback_remark='Fail',
    name='Pass/Fail',
)

NIGERIAN_THRESHOLDS = GradeThresholdConfig(
    [
        GradeBand(70, 'A', 'Excellent'),
        GradeBand(60, 'B', 'Very Good'),
        GradeBand(50, 'C', 'Good'),
        GradeBand(45, 'D', 'Fair'),
        GradeBand(40, 'E', 'Pass'),
    ],
    fallback_remark='Fail',
    name='Nigerian',
)

BRITISH_THRESHOLDS = GradeThresholdConfig(
    [
        GradeBand(90, 'A*', 'Outstanding'),
        GradeBand(80, 'A', 'Excellent'),
        GradeBand(70, 'B', 'Very Good'),
        GradeBand(60, 'C', 'Good'),
        GradeBand(50, 'D', 'Satisfactory'),
        GradeBand(40, 'E', 'Pass'),
        GradeBand(30, 'F', 'Weak', is_pass=False),
    ],
    fallback_grade='U',
    fallback_remark='Ungraded',
    name='British',
)

SCORING_PRESETS = {
    Curriculum.STANDARD: {'ca_max': 40, 'exam_max': 60, 'thresholds': DEFAULT_THRESHOLDS},
    Curriculum.NIGERIAN: {'ca_max': 40, 'exam_max': 60, 'thresholds': NIGERIAN_THRESHOLDS},
    Curriculum.BRITISH: {'ca_max': 50, 'exam_max': 50, 'thresholds': BRITISH_THRESHOLDS},
}


def get_preset(name):
    """
    Look up the caps and grade table of a curriculum.

    Args:
        name: a Curriculum value, case-insensitive ('british', 'NIGERIAN', ...)

    Returns:
        dict: {'ca_max': int, 'exam_max': int, 'thresholds': GradeThresholdConfig}
    """
    key = str(name or '').strip().upper()
    for curriculum, preset in SCORING_PRESETS.items():
        if curriculum.value == key:
            return dict(preset)
    raise ValueError(f"Unknown curriculum: {name}")
