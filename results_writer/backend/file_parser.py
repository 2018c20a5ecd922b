"""
Tabular upload parser: CSV, XLSX and XLS survey exports to row records.
"""

import math
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from results_writer.config import CONFIG


class FileParser:
    """Parse uploaded survey/research data into a list of row dictionaries."""

    def __init__(self, supported_formats: List[str] = None, max_file_size_mb: float = None):
        self.supported_formats = supported_formats or list(CONFIG.file_parsing.supported_formats)
        self.max_file_size_mb = max_file_size_mb or CONFIG.file_parsing.max_file_size_mb

    def parse(self, file_path: str, limit: Optional[int] = None) -> Dict[str, Any]:
        """Parse file and return records plus a short description of the table."""
        file_path = Path(file_path)
        ext = file_path.suffix.lower().lstrip(".")

        if ext not in self.supported_formats:
            raise ValueError(f"Unsupported format: {ext}")
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")
        size_mb = file_path.stat().st_size / (1024 * 1024)
        if size_mb > self.max_file_size_mb:
            raise ValueError(f"File is {size_mb:.1f} MB, the limit is {self.max_file_size_mb} MB")

        if ext == "csv":
            df = self._read_csv(file_path)
        else:
            df = self._read_workbook(file_path, ext)

        df.columns = [str(column).strip() for column in df.columns]
        records = self._records(df)
        total_rows = len(records)
        if limit is not None:
            records = records[:limit]

        return {
            "format": ext,
            "file_name": file_path.name,
            "columns": list(df.columns),
            "total_rows": total_rows,
            "rows": len(records),
            "records": records,
            "dtypes": df.dtypes.astype(str).to_dict(),
        }

    def parse_records(self, file_path: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return self.parse(file_path, limit=limit)["records"]

    def _read_csv(self, file_path: Path) -> pd.DataFrame:
        try:
            return pd.read_csv(file_path, skip_blank_lines=True)
        except UnicodeDecodeError:
            return pd.read_csv(file_path, skip_blank_lines=True, encoding="latin-1")
        except Exception as e:
            raise RuntimeError(f"CSV parsing failed: {str(e)}")

    def _read_workbook(self, file_path: Path, ext: str) -> pd.DataFrame:
        """First sheet only, header in the first row."""
        try:
            engine = "openpyxl" if ext == "xlsx" else "xlrd"
            return pd.read_excel(file_path, sheet_name=0, engine=engine)
        except Exception as e:
            raise RuntimeError(f"{ext.upper()} parsing failed: {str(e)}")

    @staticmethod
    def _records(df: pd.DataFrame) -> List[Dict[str, Any]]:
        """Rows as plain dictionaries; empty cells become None."""
        df = df.dropna(how="all")
        records = []
        for row in df.to_dict("records"):
            clean = {}
            for key, value in row.items():
                if isinstance(value, float) and math.isnan(value):
                    value = None
                elif value is pd.NaT:
                    value = None
                elif isinstance(value, pd.Timestamp):
                    value = value.isoformat()
                elif hasattr(value, "item"):
                    value = value.item()
                clean[key] = value
            records.append(clean)
        return records
