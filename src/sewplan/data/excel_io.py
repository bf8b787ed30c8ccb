from __future__ import annotations

import io
import re
import unicodedata
from datetime import date, datetime

import pandas as pd


def read_excel_bytes(content: bytes) -> pd.DataFrame:
    """Read .xlsx bytes into a DataFrame.

    Reads the first sheet only.
    """
    bio = io.BytesIO(content)
    df = pd.read_excel(bio)
    df.columns = [str(c).strip() for c in df.columns]
    return df


def normalize_col_name(name: str) -> str:
    """Normalize spreadsheet column names to an ASCII-ish snake_case token.

    Handles accents, non-breaking spaces, tabs, and punctuation
    ("PO No." -> "po_no", "Plan Start Date" -> "plan_start_date").
    """

    s = str(name or "").strip().lower()
    s = unicodedata.normalize("NFKD", s)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = s.replace("\u00a0", " ")
    s = re.sub(r"[\s\t]+", " ", s)
    # keep alnum + spaces, turn the rest into spaces
    s = re.sub(r"[^a-z0-9 ]+", " ", s)
    s = re.sub(r"\s+", "_", s).strip("_")
    return s


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = [normalize_col_name(c) for c in df.columns]
    return df


def is_blank(value) -> bool:
    if value is None:
        return True
    try:
        if pd.isna(value):
            return True
    except (TypeError, ValueError):
        pass
    return str(value).strip() == "" or str(value).strip().lower() == "nan"


_DIGITS_RE = re.compile(r"^-?\d+$")


def parse_int_strict(value, *, field: str) -> int:
    """Parse an integer cell.

    Accepts ints, floats like 123.0, and digit-only strings.
    Raises ValueError otherwise.
    """
    if is_blank(value):
        raise ValueError(f"{field} is empty")

    if isinstance(value, bool):
        raise ValueError(f"{field} invalid: {value!r}")

    if isinstance(value, int):
        return int(value)

    if isinstance(value, float):
        if float(value).is_integer():
            return int(value)
        raise ValueError(f"{field} invalid (not an integer): {value!r}")

    s = str(value).strip().replace(",", "")
    if _DIGITS_RE.match(s):
        return int(s)
    try:
        f = float(s)
    except ValueError:
        raise ValueError(f"{field} invalid: {value!r}") from None
    if f.is_integer():
        return int(f)
    raise ValueError(f"{field} invalid (not an integer): {value!r}")


def coerce_date(value, *, field: str = "date") -> date:
    """Coerce common Excel/Pandas date representations to a `date`."""
    if is_blank(value):
        raise ValueError(f"{field} is empty")

    if isinstance(value, datetime):
        return value.date()

    # pandas Timestamp
    if hasattr(value, "to_pydatetime"):
        return value.to_pydatetime().date()

    if isinstance(value, date):
        return value

    s = str(value).strip()
    try:
        return datetime.fromisoformat(s).date()
    except ValueError:
        pass

    for fmt in ("%d-%m-%Y", "%d/%m/%Y", "%Y/%m/%d", "%m/%d/%Y"):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue

    raise ValueError(f"{field} invalid: {value!r}")


def coerce_optional_date(value, *, field: str = "date") -> date | None:
    if is_blank(value):
        return None
    return coerce_date(value, field=field)


def coerce_float(value) -> float | None:
    """Coerce common Excel/Pandas numeric representations to float.

    Returns None when value is empty/NaN.
    Accepts numbers and strings (handles ',' as decimal separator).
    """
    if is_blank(value):
        return None

    if isinstance(value, (int, float)):
        return float(value)

    s = str(value).strip()

    # 1.234,56 -> 1234.56
    if "," in s and "." in s:
        s = s.replace(".", "").replace(",", ".")
    elif "," in s:
        s = s.replace(",", ".")

    try:
        return float(s)
    except ValueError:
        return None
