"""
Measurement coercion shared by the services.

Quantities are stored as ``Numeric(14, 3)`` and costs as ``Numeric(12, 2)``
(see the models); values arriving from callers go through
``to_measurement()`` first so that no float ever reaches a column and no
value is rounded or overflows on the way in.
"""

from decimal import Decimal, InvalidOperation

from sqlalchemy import Numeric


def numeric_column(model: type, name: str) -> Numeric | None:
    """The ``Numeric`` type of ``model.<name>``, or None for other columns."""
    column = model.__table__.columns.get(name)
    if column is not None and isinstance(column.type, Numeric):
        return column.type
    return None


def _check_fits(value: Decimal, field_name: str, column_type: Numeric) -> None:
    precision, scale = column_type.precision, column_type.scale or 0
    if precision is None or value.is_zero():
        return
    normalized = value.normalize()
    if normalized.as_tuple().exponent < -scale:
        raise ValueError(f"{field_name} allows at most {scale} decimal places")
    if normalized.adjusted() + 1 > precision - scale:
        raise ValueError(
            f"{field_name} is too large: at most {precision - scale} integer digits"
        )


def to_measurement(
    value: object,
    field_name: str = "value",
    column_type: Numeric | None = None,
) -> Decimal | None:
    """
    Convert an inbound measurement to Decimal.

    Accepts int, Decimal, numeric strings and floats (floats go through str()
    so that 0.1 stays 0.1).  None passes through unchanged so callers can
    clear a recorded value.  With ``column_type`` the value must also fit
    the column's precision and scale exactly.

    Raises:
        ValueError: if the value is not numeric, not finite, negative, or
            does not fit ``column_type``.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be a number, got {value!r}")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"{field_name} must be a number, got {value!r}") from None
    if not result.is_finite():
        raise ValueError(f"{field_name} must be finite, got {value!r}")
    if result < 0:
        raise ValueError(f"{field_name} must be greater than or equal to 0")
    if column_type is not None:
        _check_fits(result, field_name, column_type)
    return result
