"""
Pattern Compiler Utility

Compiles the ordered OTP pattern chain with consistent flags and ReDoS safety checks.

SECURITY STORY: The extractor runs every pattern against attacker-controllable
HTML. A pattern with nested unbounded quantifiers can backtrack
catastrophically on crafted input and stall a supervisor thread, so patterns
are screened for known ReDoS signatures before they are compiled.
"""

import re
from typing import List, Tuple

# Nested or repeated quantifiers on unbounded character classes
_REDOS_SIGNATURES: List[str] = [
    r"(\w+)*",
    r"(\d+)+",
    r"(\s+)*",
    r"(a+)+",
    r"([a-zA-Z]+)*",
    r"(.*)*",
    r"(.+)+",
]


def check_redos_safety(patterns: List[str]) -> None:
    """
    Raise ValueError if any pattern contains a known ReDoS signature.

    This is a lightweight static check based on substring matching, not a
    full ReDoS prover.

    Args:
        patterns: List of regex pattern strings to inspect.

    Raises:
        ValueError: If any pattern contains a known ReDoS signature.
    """
    for pattern in patterns:
        for unsafe in _REDOS_SIGNATURES:
            if unsafe in pattern:
                raise ValueError(f"Potential ReDoS in pattern: {pattern!r}")


def compile_pattern_chain(
    patterns: List[Tuple[str, str]],
    flags: int = 0,
    validate_redos: bool = True,
) -> List[Tuple[str, re.Pattern]]:
    """
    Compile named patterns individually, preserving their order.

    Unlike a combined alternation, each pattern stays a separate object so the
    caller can try them one at a time and stop at the first hit: order is the
    precedence.

    Args:
        patterns: ``(name, pattern)`` pairs in precedence order.
        flags: Regex compilation flags.
        validate_redos: If ``True``, run ``check_redos_safety`` before compiling.

    Returns:
        ``(name, compiled_pattern)`` pairs in the same order.
    """
    if validate_redos:
        check_redos_safety([p for _, p in patterns])
    return [(name, re.compile(p, flags)) for name, p in patterns]
