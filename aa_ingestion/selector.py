"""Pick the one linked account used for account-scoped calls.

Priority, in order:

1. the first FIP whose name contains the preferred token and does not contain
   the excluded token (case-insensitive), provided it has accounts;
2. otherwise the first FIP, in response order, with a non-empty
   ``linkedAccounts`` list;
3. within the chosen FIP, the first account in list order.

The rule is a provider-specific business choice. It is kept in one
injectable :class:`SelectionPolicy` so callers never match FIP names inline.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .errors import NoLinkedAccount

__all__ = ["SelectionPolicy", "SelectedAccount", "AccountSelector", "iter_fip_accounts"]

_LOG = logging.getLogger(__name__)

# the id sent as ``accountId`` on account-scoped calls
_ACCOUNT_ID_KEYS = ("accountRefNumber", "fiDataId", "accountId", "linkRefNumber", "maskedAccNumber")


@dataclass(slots=True, frozen=True)
class SelectionPolicy:
    preferred_token: str = ""
    excluded_token: str = ""

    def is_preferred(self, fip_name: Optional[str]) -> bool:
        if not self.preferred_token or not fip_name:
            return False
        name = fip_name.casefold()
        if self.preferred_token.casefold() not in name:
            return False
        return not (self.excluded_token and self.excluded_token.casefold() in name)


@dataclass(slots=True)
class SelectedAccount:
    account_id: str
    fip_id: Optional[str]
    fip_name: Optional[str]


def _unwrap(payload: Any) -> Any:
    if isinstance(payload, dict) and "fipData" not in payload and isinstance(payload.get("data"), (dict, list)):
        return payload["data"]
    return payload


def iter_fip_accounts(payload: Any) -> Iterator[Tuple[Dict[str, Any], List[Dict[str, Any]]]]:
    """Yield ``(fip, accounts)`` pairs from any linked-accounts shape.

    Handles the ``{fipData: [...]}`` tree, a bare list of accounts, and a
    single account object. The last two yield a synthetic FIP built from the
    account's own ``fipId``/``fipName``.
    """
    payload = _unwrap(payload)
    if isinstance(payload, dict) and isinstance(payload.get("fipData"), list):
        for fip in payload["fipData"]:
            if not isinstance(fip, dict):
                continue
            accounts = fip.get("linkedAccounts")
            accounts = [a for a in accounts if isinstance(a, dict)] if isinstance(accounts, list) else []
            yield fip, accounts
        return
    if isinstance(payload, list):
        accounts = [a for a in payload if isinstance(a, dict)]
    elif isinstance(payload, dict) and any(k in payload for k in _ACCOUNT_ID_KEYS):
        accounts = [payload]
    else:
        return
    for account in accounts:
        yield {"fipId": account.get("fipId"), "fipName": account.get("fipName")}, [account]


def _account_id(account: Dict[str, Any]) -> Optional[str]:
    for key in _ACCOUNT_ID_KEYS:
        value = account.get(key)
        if value not in (None, ""):
            return str(value)
    return None


class AccountSelector:
    def __init__(self, policy: Optional[SelectionPolicy] = None) -> None:
        self.policy = policy or SelectionPolicy()

    def select(self, payload: Any, *, asset_type: Optional[str] = None) -> SelectedAccount:
        """Return the account to query or raise :class:`NoLinkedAccount`."""
        candidates = [
            (fip, accounts)
            for fip, accounts in iter_fip_accounts(payload)
            if any(_account_id(a) for a in accounts)
        ]
        if not candidates:
            raise NoLinkedAccount(asset_type)

        chosen = next(
            (c for c in candidates if self.policy.is_preferred(c[0].get("fipName"))),
            candidates[0],
        )
        fip, accounts = chosen
        account = next(a for a in accounts if _account_id(a))
        selected = SelectedAccount(
            account_id=_account_id(account),  # type: ignore[arg-type]
            fip_id=fip.get("fipId"),
            fip_name=fip.get("fipName"),
        )
        _LOG.debug(
            "selected account %s at %s for %s",
            selected.account_id,
            selected.fip_name,
            asset_type or "-",
        )
        return selected
