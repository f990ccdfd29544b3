from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from src.util.helper.exceptions import RangeValidationError

SCORE_MIN = Decimal("0")
SCORE_MAX = Decimal("20")
PROGRESS_MIN = 0
PROGRESS_MAX = 100

# Échelle des colonnes DECIMAL(4, 2)
SCORE_QUANTUM = Decimal("0.01")


def to_decimal(field: str, value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        # Passage par str pour éviter les artefacts binaires des float (18.1 -> 18.1000000000000014)
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise RangeValidationError(field, value, message=f"{field} n'est pas une valeur numérique : {value!r}")


def check_range(field: str, value: Any, minimum: Any, maximum: Any) -> Any:
    """Lève RangeValidationError si value sort de [minimum, maximum]"""
    if value is None:
        return value
    number = to_decimal(field, value)
    if not number.is_finite() or number < Decimal(minimum) or number > Decimal(maximum):
        raise RangeValidationError(field, value, minimum, maximum)
    return value


def check_score(field: str, value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    check_range(field, value, SCORE_MIN, SCORE_MAX)
    return to_decimal(field, value).quantize(SCORE_QUANTUM, rounding=ROUND_HALF_UP)


def check_progress(value: Any) -> int:
    check_range("progress_percentage", value, PROGRESS_MIN, PROGRESS_MAX)
    return value


def compute_overall_score(technical: Any, soft_skills: Any, attendance: Any) -> Decimal:
    """Moyenne non pondérée des trois notes, arrondie à l'échelle de la colonne.

    >>> compute_overall_score(18, 14, 20)
    Decimal('17.33')
    """
    components = (
        ("technical_skills_score", technical),
        ("soft_skills_score", soft_skills),
        ("attendance_score", attendance),
    )
    total = Decimal("0")
    for field, value in components:
        if value is None:
            raise RangeValidationError(field, value, SCORE_MIN, SCORE_MAX,
                                       message=f"{field} est obligatoire")
        check_range(field, value, SCORE_MIN, SCORE_MAX)
        total += to_decimal(field, value)
    overall = (total / 3).quantize(SCORE_QUANTUM, rounding=ROUND_HALF_UP)
    check_range("overall_score", overall, SCORE_MIN, SCORE_MAX)
    return overall
