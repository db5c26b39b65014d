"""Identifier validation shared by the domain components."""

from __future__ import annotations

import re
from typing import Optional

# Server-issued user ids are 24 character hex object ids.
_USER_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")


def is_valid_user_id(value: Optional[str]) -> bool:
	return bool(value) and bool(_USER_ID_RE.match(str(value)))
