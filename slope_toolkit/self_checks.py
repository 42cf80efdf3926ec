"""Built-in sanity checks for the compiler and derivative provider.

The grapher shows these as a PASS/FAIL list under the plot; they are also a
quick smoke test after changing the parser or the derivative rules.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, NamedTuple, Optional, Sequence

from .derivatives import compile_derivative
from .numpify import compile_expression

__all__ = ["SELF_CHECK_CASES", "SelfCheckCase", "SelfCheckResult", "run_self_checks"]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass(frozen=True)
class SelfCheckCase:
    """One expectation about ``f`` and/or ``f'`` at a single ``x``.

    ``expect`` checks ``f(x)`` within ``tol``; ``expect_finite`` only checks
    that ``f(x)`` is finite. ``d_expect`` and ``d_undefined`` do the same for
    the derivative and run only when the ``f`` check passed.
    """

    name: str
    expr: str
    x: float
    expect: Optional[float] = None
    expect_finite: bool = False
    d_expect: Optional[float] = None
    d_undefined: bool = False
    tol: float = 1e-6


class SelfCheckResult(NamedTuple):
    name: str
    passed: bool
    note: str


SELF_CHECK_CASES: tuple[SelfCheckCase, ...] = (
    SelfCheckCase("sin(x) at 0", "sin(x)", 0.0, expect=0.0, tol=1e-10),
    SelfCheckCase("(x^2)' at 3", "x^2", 3.0, d_expect=6.0),
    SelfCheckCase("exp(-x^2) finite", "exp(-x^2)", 2.0, expect_finite=True),
    SelfCheckCase("abs kink: derivative undefined at 0", "abs(x)", 0.0, d_undefined=True),
    SelfCheckCase("log(1) = 0", "log(x)", 1.0, expect=0.0, tol=1e-10),
    SelfCheckCase("poly derivative at -2", "x^3 - 3*x", -2.0, d_expect=9.0),
    SelfCheckCase("piecewise finite", "x<0?-x:x^2", -1.0, expect_finite=True),
)


def _run_case(case: SelfCheckCase) -> SelfCheckResult:
    f = compile_expression(case.expr)
    if f is None:
        return SelfCheckResult(case.name, False, "parse fail")

    passed = True
    notes: List[str] = []
    if case.expect is not None:
        value = f(case.x)
        passed = math.isfinite(value) and abs(value - case.expect) <= case.tol
        notes.append(f"f={value}")
    elif case.expect_finite:
        value = f(case.x)
        passed = math.isfinite(value)
        notes.append(f"f={value}")

    if passed and (case.d_undefined or case.d_expect is not None):
        df = compile_derivative(case.expr)
        slope = df(case.x) if df is not None else math.nan
        if case.d_undefined:
            passed = not math.isfinite(slope)
        else:
            passed = math.isfinite(slope) and abs(slope - case.d_expect) <= case.tol
        notes.append(f"f'={slope}")
    return SelfCheckResult(case.name, passed, "; ".join(notes))


def run_self_checks(cases: Sequence[SelfCheckCase] = SELF_CHECK_CASES) -> List[SelfCheckResult]:
    """Evaluate ``cases`` and return one result per case, in order."""
    results = [_run_case(case) for case in cases]
    failed = [r.name for r in results if not r.passed]
    if failed:
        logger.warning("Self checks failed: %s", ", ".join(failed))
    return results
