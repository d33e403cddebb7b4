"""
CSV export helpers (pandas).

Files are appended batch by batch so that an interrupted scrape keeps what it
already wrote; every row gets a ``rowNumber`` that continues across appends.
"""

import csv
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import pandas as pd

from config_schemas import LegalNoteSummary
from legal_notes import preprocess_row

logger = logging.getLogger(__name__)

ROW_NUMBER_COLUMN = "rowNumber"


def count_data_rows(path: Union[str, Path]) -> int:
    """Data rows in an existing CSV (header excluded)"""
    path = Path(path)
    if not path.exists() or path.stat().st_size == 0:
        return 0
    try:
        return len(pd.read_csv(path, usecols=[0], dtype=str, encoding='utf-8'))
    except pd.errors.EmptyDataError:
        return 0


def append_rows(path: Union[str, Path], rows: List[Dict[str, Any]], columns: List[str]) -> int:
    """
    Append records to a CSV, writing the header only into a new/empty file.

    Args:
        path: Target CSV
        rows: Records keyed by column name; unknown keys are dropped
        columns: Column order (``rowNumber`` is prepended)

    Returns:
        Number of rows written
    """
    if not rows:
        return 0

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    write_header = not path.exists() or path.stat().st_size == 0
    start = 0 if write_header else count_data_rows(path)

    df = pd.DataFrame(rows).reindex(columns=columns)
    df.insert(0, ROW_NUMBER_COLUMN, range(start + 1, start + len(df) + 1))
    df.to_csv(
        path,
        mode='a',
        header=write_header,
        index=False,
        encoding='utf-8',
        quoting=csv.QUOTE_ALL,
    )
    logger.info(f"📊 Wrote batch of {len(df)} records to {path}")
    return len(df)


def truncate_rows(path: Union[str, Path], keep: int) -> int:
    """Drop data rows beyond the first ``keep``; returns how many were removed"""
    path = Path(path)
    total = count_data_rows(path)
    if total <= keep:
        return 0

    df = pd.read_csv(path, dtype=str, keep_default_na=False, encoding='utf-8')
    df.head(keep).to_csv(path, index=False, encoding='utf-8', quoting=csv.QUOTE_ALL)
    logger.warning(f"⚠️ Removed {total - keep} rows past row {keep} from {path}")
    return total - keep


def _query_folders(output_dir: Path) -> Iterable[Path]:
    return sorted(p for p in output_dir.iterdir() if p.is_dir())


def consolidate(output_dir: Union[str, Path], filename: str = "company_data.csv",
                target: str = "all_company_data.csv") -> Optional[Path]:
    """Merge ``filename`` from every query folder into one CSV with a single header"""
    output_dir = Path(output_dir)
    if not output_dir.is_dir():
        logger.warning(f"⚠️ Output directory {output_dir} does not exist")
        return None

    frames = []
    for folder in _query_folders(output_dir):
        csv_path = folder / filename
        if not csv_path.exists() or csv_path.stat().st_size == 0:
            continue
        try:
            frames.append(pd.read_csv(csv_path, dtype=str, keep_default_na=False, encoding='utf-8'))
        except pd.errors.EmptyDataError:
            continue

    target_path = output_dir / target
    if not frames:
        logger.warning(f"⚠️ No {filename} files found under {output_dir}")
        pd.DataFrame().to_csv(target_path, index=False)
        return target_path

    merged = pd.concat(frames, ignore_index=True)
    merged.to_csv(target_path, index=False, encoding='utf-8', quoting=csv.QUOTE_ALL)
    logger.info(f"📊 Consolidated {len(merged)} rows from {len(frames)} folders into {target_path}")
    return target_path


def enrich_notices(path: Union[str, Path], target: Optional[Union[str, Path]] = None) -> Path:
    """Add the legal-note summary columns to a notices CSV"""
    path = Path(path)
    target_path = Path(target) if target else path.with_name(f"{path.stem}_enriched{path.suffix}")

    df = pd.read_csv(path, dtype=str, keep_default_na=False, encoding='utf-8')
    summaries = [preprocess_row(row).model_dump() for row in df.to_dict(orient="records")]
    summary_df = pd.DataFrame(summaries, index=df.index, columns=list(LegalNoteSummary.model_fields))
    for column in ("business_scope", "national_ids", "phone_numbers"):
        summary_df[column] = summary_df[column].apply(lambda items: "; ".join(items))
    summary_df = summary_df.add_prefix("note_")

    enriched = pd.concat([df, summary_df], axis=1)
    enriched.to_csv(target_path, index=False, encoding='utf-8', quoting=csv.QUOTE_ALL)
    logger.info(f"📊 Enriched {len(enriched)} notices into {target_path}")
    return target_path
