"""
Filter decision report.

Tabulates the filter decisions of one feed batch so every hidden or boosted
item can be traced back to the topics that caused it.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import List

import pandas as pd

from feedprefs.models.content import FilterDecision

logger = logging.getLogger(__name__)

REPORT_COLUMNS = ["Item", "Title", "Visible", "Relevance", "Preferred Matches", "Blocked Matches"]


def decisions_to_frame(decisions: List[FilterDecision]) -> pd.DataFrame:
    """
    Build a report table, one row per decision, in feed order.

    Args:
        decisions: Decisions from FeedPersonalizer.decide()

    Returns:
        DataFrame with REPORT_COLUMNS
    """
    rows = [
        {
            "Item": d.item.item_id,
            "Title": d.item.title,
            "Visible": d.visible,
            "Relevance": d.relevance_delta,
            "Preferred Matches": ", ".join(t.label for t in d.matched_preferred),
            "Blocked Matches": ", ".join(t.label for t in d.matched_blocked)
        }
        for d in decisions
    ]

    if not rows:
        return pd.DataFrame(columns=REPORT_COLUMNS)
    return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def write_report(
    decisions: List[FilterDecision],
    output_dir: str,
    name: str = "feed_report"
) -> str:
    """
    Save the decision table as CSV with a metadata summary next to it.

    Args:
        decisions: Decisions from FeedPersonalizer.decide()
        output_dir: Directory to write into (created if missing)
        name: Base file name without extension

    Returns:
        Path to the CSV file
    """
    df = decisions_to_frame(decisions)

    os.makedirs(output_dir, exist_ok=True)
    output_path = os.path.join(output_dir, f"{name}.csv")
    df.to_csv(output_path, index=False)

    visible = int(df["Visible"].sum()) if not df.empty else 0
    boosted = int((df["Visible"] & (df["Relevance"] > 0)).sum()) if not df.empty else 0

    metadata = {
        "total_items": len(df),
        "visible_items": visible,
        "hidden_items": len(df) - visible,
        "boosted_items": boosted,
        "generated_at": datetime.now(timezone.utc).isoformat()
    }
    metadata_path = os.path.join(output_dir, f"{name}_metadata.json")
    with open(metadata_path, "w") as f:
        json.dump(metadata, f, indent=2)

    logger.info(
        f"Feed report saved to {output_path} "
        f"({len(df)} items, {metadata['hidden_items']} hidden, {boosted} boosted)"
    )
    return output_path
