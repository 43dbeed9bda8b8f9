"""
Typed QC records for batch stages.

Each manufacturing stage accepts one record family:
- ProcessStageQC for preparation, mixing, heating and cooling
- FinalQC for final_qc
- CompletionRecord for completed

Payloads arrive as plain dicts (form data). parse_stage_data() turns them
into the matching record, rejecting unknown keys and ill-typed values, and
to_dict() gives back the subset of fields that were actually supplied.
"""

from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from ..utils.constants import QUANTITY_DECIMAL_PLACES
from ..utils.validators import decimal_places
from .enums import BatchStage, QualityGrade

PH_MIN = Decimal("0")
PH_MAX = Decimal("14")


class QCSchemaError(ValueError):
    """Raised when a QC payload does not fit the stage schema.

    Attributes:
        errors: One message per offending field
    """

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


def _to_decimal(name: str, value: Any, errors: List[str]) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        errors.append(f"{name} must be a number")
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        errors.append(f"{name} must be a number")
        return None
    if not result.is_finite():
        errors.append(f"{name} must be a number")
        return None
    return result


def _to_text(name: str, value: Any, errors: List[str]) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        errors.append(f"{name} must be text")
        return None
    return value


def _to_bool(name: str, value: Any, errors: List[str]) -> Optional[bool]:
    if value is None:
        return None
    if not isinstance(value, bool):
        errors.append(f"{name} must be true or false")
        return None
    return value


_NUMBER = "number"
_TEXT = "text"
_BOOL = "bool"

_CONVERTERS = {
    _NUMBER: _to_decimal,
    _TEXT: _to_text,
    _BOOL: _to_bool,
}


class _StageRecord:
    """Shared parsing for the stage record dataclasses."""

    # field name -> kind; filled in by each subclass
    FIELD_KINDS: Dict[str, str] = {}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]):
        data = dict(data or {})
        errors: List[str] = []

        unknown = sorted(set(data) - set(cls.FIELD_KINDS))
        for key in unknown:
            errors.append(f"Unknown field '{key}' for {cls.__name__}")

        values = {}
        for name, kind in cls.FIELD_KINDS.items():
            if name in data:
                values[name] = _CONVERTERS[kind](name, data[name], errors)

        record = cls(**values)
        errors.extend(record._check())
        if errors:
            raise QCSchemaError(errors)
        return record

    def _check(self) -> List[str]:
        errors = []
        ph = getattr(self, "ph", None)
        if ph is not None and not (PH_MIN <= ph <= PH_MAX):
            errors.append("ph must be between 0 and 14")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Supplied fields only; Decimals become floats for JSON storage."""
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, Decimal):
                value = float(value)
            result[f.name] = value
        return result


@dataclass
class ProcessStageQC(_StageRecord):
    """QC readings taken during preparation, mixing, heating or cooling."""

    temperature: Optional[Decimal] = None
    ph: Optional[Decimal] = None
    viscosity: Optional[Decimal] = None
    color: Optional[str] = None
    odor: Optional[str] = None
    texture: Optional[str] = None
    remarks: Optional[str] = None
    passed: Optional[bool] = None

    FIELD_KINDS = {
        "temperature": _NUMBER,
        "ph": _NUMBER,
        "viscosity": _NUMBER,
        "color": _TEXT,
        "odor": _TEXT,
        "texture": _TEXT,
        "remarks": _TEXT,
        "passed": _BOOL,
    }


@dataclass
class FinalQC(_StageRecord):
    """Final inspection of a batch, including its overall grade."""

    overall_grade: Optional[str] = None
    appearance: Optional[str] = None
    color: Optional[str] = None
    odor: Optional[str] = None
    texture: Optional[str] = None
    temperature: Optional[Decimal] = None
    ph: Optional[Decimal] = None
    remarks: Optional[str] = None
    passed: Optional[bool] = None

    FIELD_KINDS = {
        "overall_grade": _TEXT,
        "appearance": _TEXT,
        "color": _TEXT,
        "odor": _TEXT,
        "texture": _TEXT,
        "temperature": _NUMBER,
        "ph": _NUMBER,
        "remarks": _TEXT,
        "passed": _BOOL,
    }

    def _check(self) -> List[str]:
        errors = super()._check()
        if self.overall_grade is not None:
            grades = [grade.value for grade in QualityGrade]
            if self.overall_grade not in grades:
                errors.append(f"overall_grade must be one of: {', '.join(grades)}")
        return errors


@dataclass
class CompletionRecord(_StageRecord):
    """Data captured when a batch is marked completed."""

    output_quantity: Optional[Decimal] = None
    remarks: Optional[str] = None

    FIELD_KINDS = {
        "output_quantity": _NUMBER,
        "remarks": _TEXT,
    }

    def _check(self) -> List[str]:
        errors = super()._check()
        if self.output_quantity is not None and self.output_quantity < 0:
            errors.append("output_quantity cannot be negative")
        elif (
            self.output_quantity is not None
            and decimal_places(self.output_quantity) > QUANTITY_DECIMAL_PLACES
        ):
            errors.append(
                f"output_quantity must have at most {QUANTITY_DECIMAL_PLACES} decimal places"
            )
        return errors


_PROCESS_STAGES = (
    BatchStage.PREPARATION,
    BatchStage.MIXING,
    BatchStage.HEATING,
    BatchStage.COOLING,
)


def schema_for_stage(stage) -> type:
    """Return the record class that validates QC data for `stage`."""
    stage = BatchStage.parse(stage)
    if stage in _PROCESS_STAGES:
        return ProcessStageQC
    if stage == BatchStage.FINAL_QC:
        return FinalQC
    return CompletionRecord


def parse_stage_data(stage, data: Optional[Dict[str, Any]]):
    """
    Validate a QC payload for a stage.

    Raises:
        QCSchemaError: If the payload has unknown keys or invalid values
        ValueError: If the stage is unknown
    """
    return schema_for_stage(stage).from_dict(data)
