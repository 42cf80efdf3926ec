# === SECTION: InputConvert [id: InputConvert]===
from __future__ import annotations

import math
from typing import Any, Type, TypeVar

from .ExpressionTree import contains_variable
from .ParseExpression import ExpressionParseError
from .numpify import numpify_cached, parse_user_expression

T = TypeVar("T", int, float)


def InputConvert(obj: Any, dest_type: Type[T] = float, truncate: bool = True) -> T:
    """
    Convert `obj` to `dest_type`.

    Supported destination types:
    - float (strictly real)
    - int

    Rules:
    - If `obj` is a number: cast via dest_type(obj).
    - If `obj` is a string:
        1) try float(s)
        2) else parse it with the grapher's expression parser and evaluate it.
           Only constant expressions are accepted ("pi/2", "2π", "sqrt(2)");
           text that mentions ``x`` is rejected.

    Truncation Rules (`truncate`):
    - When converting Float -> Int:
        - If `truncate=True`: Truncate decimal part (e.g., 3.9 -> 3).
        - If `truncate=False`: Require exact integer (e.g., 3.0 -> 3, 3.1 -> Error).

    Raises
    ------
    NotImplementedError
        If dest_type is unsupported.
    ValueError
        If conversion fails, the value is undefined (e.g. "log(-1)"), or
        truncation rules are violated.
    """
    if dest_type not in (float, int):
        raise NotImplementedError(
            f"Unsupported destination type: {dest_type!r}. Only float and int are supported."
        )

    def _coerce_real_value(r_val: float) -> T:
        """Coerce a real value to 'dest_type' respecting the 'truncate' flag."""
        if dest_type is float:
            return float(r_val)  # type: ignore[return-value]

        if not math.isfinite(r_val):
            raise ValueError(f"Could not convert {r_val!r} to int: value is not finite.")
        if not float(r_val).is_integer():
            if not truncate:
                raise ValueError(
                    f"Could not convert {r_val!r} to int: value is not an exact integer."
                )
            # If truncate=True, int() truncates towards zero

        return int(r_val)  # type: ignore[return-value]

    # Fast path: real numeric types (exclude bool)
    if isinstance(obj, (int, float)) and not isinstance(obj, bool):
        return _coerce_real_value(float(obj))

    # String path
    if isinstance(obj, str):
        s = obj.strip()
        if s == "":
            raise ValueError(f"Cannot convert empty string to {dest_type.__name__}.")

        # 1) Plain native conversion
        try:
            return _coerce_real_value(float(s))
        except ValueError:
            pass

        # 2) Expression path
        try:
            tree = parse_user_expression(s)
        except ExpressionParseError as e:
            raise ValueError(
                f"Could not convert {obj!r} to {dest_type.__name__}: {e}"
            ) from e
        if contains_variable(tree):
            raise ValueError(
                f"Could not convert {obj!r} to {dest_type.__name__}: expression depends on x."
            )
        value = numpify_cached(tree)(0.0)
        if math.isnan(value):
            raise ValueError(
                f"Could not convert {obj!r} to {dest_type.__name__}: value is undefined."
            )
        return _coerce_real_value(value)

    # Fallback: try converting to float generically (NumPy scalars, Decimal, ...)
    try:
        return _coerce_real_value(float(obj))
    except (TypeError, ValueError) as e:
        raise ValueError(f"Could not convert {obj!r} to {dest_type.__name__}.") from e

# === END OF SECTION: InputConvert [id: InputConvert]===
