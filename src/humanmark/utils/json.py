import json
from typing import Any, NoReturn, Union


def _reject_constant(name: str) -> NoReturn:
    raise ValueError(f"non-standard JSON constant {name}")


def json_dumps(obj: Any, *, canonical: bool = False) -> str:
    """Compact JSON; canonical=True also sorts keys so equal claims encode identically."""
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False, sort_keys=canonical)


def json_loads(data: Union[str, bytes]) -> Any:
    """
    Parse strict JSON text; bytes must be UTF-8.

    NaN / Infinity / -Infinity are refused. Raises ValueError on bad input.
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    return json.loads(data, parse_constant=_reject_constant)
