# lipid_levels/trace.py
# Rule trace: every stage appends the rules that fired, with the value that
# triggered them and the effect, so a result can be audited line by line.

from typing import Any, Dict, List, Optional

Trace = List[Dict[str, Any]]


def add_trace(trace: Optional[Trace], rule: str, value: Any = None, effect: str = "") -> None:
    if trace is None:
        return
    trace.append({"rule": rule, "value": value, "effect": effect})


def fmt_2dp(x: Optional[float]) -> Optional[float]:
    return None if x is None else round(float(x), 2)
