"""Field validation shared by request schemas and services."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from app.connect.domain.exceptions import ValidationError

EVENT_CATEGORIES = (
	"Academic",
	"Social",
	"Sports",
	"Arts",
	"Career",
	"Community Service",
	"Other",
)
FLAG_REASONS = ("Inappropriate Content", "Spam", "Misinformation", "Other")
FLAG_DETAILS_MAX = 1000
REJECTION_REASON_MAX = 500
# events.price is numeric(10,2)
PRICE_STEP = Decimal("0.01")
PRICE_MAX = Decimal("99999999.99")

_FLAG_REASON_LOOKUP = {reason.lower(): reason for reason in FLAG_REASONS}


def validate_category(category: Optional[str]) -> Optional[str]:
	if category is None:
		return None
	if category not in EVENT_CATEGORIES:
		raise ValidationError("invalid_category")
	return category


def validate_pricing(is_free: bool, price: Optional[Decimal]) -> Optional[Decimal]:
	"""Free events carry no price; paid events carry a positive one."""
	if is_free:
		if price is not None:
			raise ValidationError("free_event_has_price")
		return None
	if price is None or price <= 0:
		raise ValidationError("paid_event_requires_price")
	if price > PRICE_MAX:
		raise ValidationError("price_too_large")
	if price != price.quantize(PRICE_STEP):
		raise ValidationError("price_precision")
	return price


def require_text(value: str, code: str) -> str:
	"""Strip surrounding whitespace; blank text is rejected with `code`."""
	value = value.strip()
	if not value:
		raise ValidationError(code)
	return value


def normalize_flag_reason(reason: str) -> str:
	"""Map a reason to its canonical spelling, case-insensitively."""
	canonical = _FLAG_REASON_LOOKUP.get((reason or "").strip().lower())
	if canonical is None:
		raise ValidationError("invalid_flag_reason")
	return canonical


def validate_flag_details(details: Optional[str]) -> Optional[str]:
	if details is None:
		return None
	details = details.strip()
	if len(details) > FLAG_DETAILS_MAX:
		raise ValidationError("flag_details_too_long")
	return details or None


def validate_rejection_reason(reason: Optional[str]) -> str:
	reason = (reason or "").strip()
	if not reason:
		raise ValidationError("rejection_reason_required")
	if len(reason) > REJECTION_REASON_MAX:
		raise ValidationError("rejection_reason_too_long")
	return reason
