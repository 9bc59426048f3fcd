"""Finfactor Account Aggregator integration package."""
import os
from typing import Final

BASE_URL: Final[str] = os.getenv("FINFACTOR_BASE_URL", "https://dhanaprayoga.fiu.finfactor.in")
API_PREFIX: Final[str] = os.getenv("FINFACTOR_API_PREFIX", "/pfm/api/v2")
LOGIN_PATH: Final[str] = "/user-login"
