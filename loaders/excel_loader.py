from pathlib import Path
from typing import List
import pandas as pd

def _cell_text(value) -> str:
    if pd.isna(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()

def load_excel(path: Path) -> str:
    parts: List[str] = []
    with pd.ExcelFile(path) as xls:
        for sheet in xls.sheet_names:
            # header=None keeps the first row as data instead of column names
            df = xls.parse(sheet, header=None, dtype=object)
            lines = [f"[Sheet: {sheet}]"]
            for _, row in df.iterrows():
                cells = [c for c in (_cell_text(v) for v in row.tolist()) if c]
                if cells:
                    lines.append("\t".join(cells))
            parts.append("\n".join(lines))
    return "\n\n".join(parts).strip()
