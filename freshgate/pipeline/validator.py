"""Output validator: enforces the freshness invariants on freshness_results.csv.

Checks:
  1. Confidence within [0.0, 1.0]
  2. Every ``fresh`` row is dated strictly after its cutoff
  3. Included rows carry an inclusion reason, excluded rows an exclusion reason
  4. Every row names a known estimation method

Usage:
    python -m freshgate.pipeline.validator output/freshness_results.csv
"""

import sys
import csv
from datetime import datetime
from typing import List, Tuple

from freshgate.models.datatypes import CACHED_SUFFIX, EstimationMethod


_REQUIRED_COLS = [
    "Source_Id", "Feed_Position", "Title", "Url",
    "Included", "Reason", "Method", "Confidence",
    "Estimated_Date", "Cutoff", "Details",
]

INCLUDED_REASONS = {"metadata", "fresh", "fallback_included"}
EXCLUDED_REASONS = {"stale", "fallback_excluded", "not_probed", "error"}
_METHODS = {m.value for m in EstimationMethod}


def _known_method(method: str) -> bool:
    if method.endswith(CACHED_SUFFIX):
        method = method[: -len(CACHED_SUFFIX)]
    return method in _METHODS


def validate(csv_path: str) -> Tuple[bool, List[str]]:
    """Run all validation checks against csv_path.

    Args:
        csv_path: Absolute or relative path to ``freshness_results.csv``.

    Returns:
        Tuple of ``(passed: bool, messages: list[str])``.
        ``messages`` contains PASS/FAIL lines for each check.
    """
    messages: List[str] = []
    passed = True

    # ── load ──────────────────────────────────────────────────────────────────
    try:
        with open(csv_path, encoding="utf-8", newline="") as f:
            reader = csv.DictReader(f)
            rows = list(reader)
    except FileNotFoundError:
        return False, [f"FAIL  file not found: {csv_path}"]
    except (OSError, csv.Error) as exc:
        return False, [f"FAIL  could not read CSV: {exc}"]

    # ── column presence ───────────────────────────────────────────────────────
    if not rows:
        return False, ["FAIL  CSV is empty"]
    missing = [c for c in _REQUIRED_COLS if c not in rows[0]]
    if missing:
        return False, [f"FAIL  missing columns: {missing}"]

    # ── check 1: Confidence in [0, 1] ─────────────────────────────────────────
    bad_scores = []
    for i, row in enumerate(rows, start=2):
        raw = row.get("Confidence", "")
        try:
            score = float(raw)
            if not (0.0 <= score <= 1.0):
                bad_scores.append((i, score))
        except ValueError:
            bad_scores.append((i, raw))
    if not bad_scores:
        messages.append("PASS  Confidence ∈ [0.0, 1.0] for all rows")
    else:
        messages.append(
            f"FAIL  Confidence out of range in "
            f"{len(bad_scores)} rows: {bad_scores[:3]}"
        )
        passed = False

    # ── check 2: fresh rows dated after their cutoff ──────────────────────────
    bad_fresh = []
    for i, row in enumerate(rows, start=2):
        if row.get("Reason") != "fresh":
            continue
        try:
            estimated = datetime.fromisoformat(row["Estimated_Date"])
            cutoff = datetime.fromisoformat(row["Cutoff"])
        except ValueError:
            bad_fresh.append(i)
            continue
        if not estimated > cutoff:
            bad_fresh.append(i)
    if not bad_fresh:
        messages.append("PASS  every fresh row is dated after its cutoff")
    else:
        messages.append(f"FAIL  fresh rows at or before cutoff: {bad_fresh[:5]}")
        passed = False

    # ── check 3: reasons agree with the Included flag ─────────────────────────
    bad_reasons = []
    for i, row in enumerate(rows, start=2):
        included = row.get("Included", "").strip().lower()
        reason = row.get("Reason", "")
        if included == "true" and reason in INCLUDED_REASONS:
            continue
        if included == "false" and reason in EXCLUDED_REASONS:
            continue
        bad_reasons.append((i, included, reason))
    if not bad_reasons:
        messages.append("PASS  Included/Reason consistent for all rows")
    else:
        messages.append(f"FAIL  inconsistent Included/Reason in {len(bad_reasons)} rows: {bad_reasons[:3]}")
        passed = False

    # ── check 4: known methods ────────────────────────────────────────────────
    unknown = [
        (i, row.get("Method", ""))
        for i, row in enumerate(rows, start=2)
        if not _known_method(row.get("Method", ""))
    ]
    if not unknown:
        messages.append("PASS  all estimation methods recognised")
    else:
        messages.append(f"FAIL  unknown methods in {len(unknown)} rows: {unknown[:3]}")
        passed = False

    return passed, messages


def main() -> int:
    if len(sys.argv) < 2:
        print("Usage: python -m freshgate.pipeline.validator <path_to_csv>")
        return 1
    csv_path = sys.argv[1]
    passed, messages = validate(csv_path)
    for msg in messages:
        print(msg)
    if passed:
        print("\nVALIDATION PASSED ✓")
        return 0
    else:
        print("\nVALIDATION FAILED ✗")
        return 1


if __name__ == "__main__":
    sys.exit(main())
