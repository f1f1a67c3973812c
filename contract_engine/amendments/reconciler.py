"""Cross-check detected amendments against the separately extracted baseline."""

import logging
import math

from contract_engine.agents.models import ExtractionBundle
from contract_engine.amendments.dates import normalize_date
from contract_engine.amendments.models import Amendment, Conflict

logger = logging.getLogger(__name__)


def _rate_present(value, rates: list[float]) -> bool:
    if not isinstance(value, (int, float)):
        return False
    return any(math.isclose(value, rate, abs_tol=1e-9) for rate in rates)


def _tier_conflict(amendment: Amendment, baseline: ExtractionBundle) -> Conflict | None:
    if baseline.financial is None:
        return None
    rates = [
        t.rebate_percentage
        for t in baseline.financial.rebate_tiers
        if t.rebate_percentage is not None
    ]
    if _rate_present(amendment.original_value, rates) and not _rate_present(
        amendment.revised_value, rates
    ):
        return Conflict(
            amendment=amendment,
            conflict_description=(
                f"Extracted data contains original tier rate ({amendment.original_value:g}%), "
                f"but amendment revises it to {amendment.revised_value:g}%. "
                "Extracted data may be from pre-amendment version."
            ),
        )
    return None


def _date_conflict(amendment: Amendment, baseline: ExtractionBundle) -> Conflict | None:
    if baseline.general is None or amendment.original_value is None:
        return None
    general = baseline.general
    dates = {
        normalize_date(d)
        for d in (general.effective_date, general.expiration_date, general.execution_date)
        if d
    }
    if amendment.original_value in dates and amendment.revised_value not in dates:
        return Conflict(
            amendment=amendment,
            conflict_description=(
                f"Extracted data contains original date ({amendment.original_value}), "
                f"but amendment changes it to {amendment.revised_value}. "
                "Extracted data may be from pre-amendment version."
            ),
        )
    return None


def check_amendment_conflicts(
    amendments: list[Amendment], baseline: ExtractionBundle
) -> list[Conflict]:
    """Flag amendments whose replaced value is still the baseline's current value.

    Tier-rate changes compare against the financial rebate tiers, date
    changes against the general effective/expiration/execution dates.
    Payment-term changes have no baseline counterpart and never conflict.
    """
    conflicts = []
    for amendment in amendments:
        if amendment.amendment_type == "tier_rate_change":
            conflict = _tier_conflict(amendment, baseline)
        elif amendment.amendment_type == "date_change":
            conflict = _date_conflict(amendment, baseline)
        elif amendment.amendment_type == "payment_term_change":
            logger.debug(
                "No baseline payment-terms rule; skipping amendment %d",
                amendment.amendment_number,
            )
            continue
        else:
            continue

        if conflict is not None:
            conflicts.append(conflict)

    if conflicts:
        logger.warning("%d amendment conflicts with extracted baseline", len(conflicts))
    return conflicts
