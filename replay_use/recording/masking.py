"""
Value masking policies applied to committed field values.

Recordings capture field values unredacted unless a recording asks for
masking, in which case password inputs, e-mail or card-number shaped values,
and fields named like credentials are replaced before they reach the timeline.
"""

import re
from typing import Optional, Protocol

MASK = '***'

_EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
_CARD_RE = re.compile(r'^(?:\d[ -]?){13,19}$')
_SENSITIVE_NAME_RE = re.compile(r'pass(word|wd)?|secret|token|otp|cvv|cvc', re.IGNORECASE)


class ValueMasker(Protocol):
	def mask(self, value: str, field_type: Optional[str] = None, selector: Optional[str] = None) -> str: ...


class PassthroughMasker:
	def mask(self, value: str, field_type: Optional[str] = None, selector: Optional[str] = None) -> str:
		return value


class SensitiveValueMasker:
	def __init__(self, mask: str = MASK):
		self.mask_text = mask

	def is_sensitive(self, value: str, field_type: Optional[str] = None, selector: Optional[str] = None) -> bool:
		if (field_type or '').lower() == 'password':
			return True
		if selector and _SENSITIVE_NAME_RE.search(selector):
			return True
		stripped = value.strip()
		return bool(_EMAIL_RE.match(stripped) or _CARD_RE.match(stripped))

	def mask(self, value: str, field_type: Optional[str] = None, selector: Optional[str] = None) -> str:
		if not value:
			return value
		return self.mask_text if self.is_sensitive(value, field_type, selector) else value


def masker_for(mask_sensitive_values: bool) -> ValueMasker:
	return SensitiveValueMasker() if mask_sensitive_values else PassthroughMasker()
