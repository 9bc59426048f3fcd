"""Map ``/<asset>/user-linked-accounts`` responses.

Each ``fipData[].linkedAccounts[]`` element becomes one
:class:`~aa_domain.records.AccountBundle` (account, holder, summary). The
element arrives either flat (``accountCurrentBalance``, ``holderName``) or
nested (``Summary{...}``, ``Profile{..., Holders{Holder[...]}}``); nested
blocks are flattened one level and top-level keys win.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from aa_domain.records import (
    AccountBundle,
    AssetType,
    FieldError,
    FipRef,
    MappedAccount,
    MappedHolder,
    MappedSummary,
    MappingResult,
)

from ..selector import iter_fip_accounts
from .fields import FieldSpec, Kind, RenameTable, collect_extra, first_present, unwrap

__all__ = [
    "map_linked_accounts",
    "map_deposit",
    "map_term_deposit",
    "map_recurring_deposit",
    "map_mutual_fund",
    "map_equities",
    "map_etf",
    "map_nps",
    "SUMMARY_TABLES",
]

_NESTED_BLOCKS = ("Summary", "summary", "Profile", "profile")

ACCOUNT_TABLE = RenameTable(
    "account",
    [
        FieldSpec("account_ref_number", ("accountRefNumber",)),
        FieldSpec("link_ref_number", ("linkRefNumber",)),
        FieldSpec("masked_account_number", ("maskedAccNumber", "maskedAccountNumber")),
        FieldSpec("fi_data_id", ("fiDataId",)),
        FieldSpec("account_type", ("accType", "accountType", "type")),
        FieldSpec("link_status", ("linkStatus",)),
    ],
)

# flat shape: holder fields sit on the account element itself
HOLDER_FLAT_TABLE = RenameTable(
    "holder",
    [
        FieldSpec("name", ("holderName",)),
        FieldSpec("pan", ("holderPan",)),
        FieldSpec("dob", ("holderDob",), Kind.DATE),
        FieldSpec("mobile", ("holderMobile",)),
        FieldSpec("email", ("holderEmail",)),
        FieldSpec("address", ("holderAddress",)),
        FieldSpec("nominee", ("holderNominee",)),
        FieldSpec("ckyc_compliance", ("holderCkycCompliance",), Kind.BOOLEAN),
        FieldSpec("holder_type", ("holderType", "holdersType")),
    ],
)

HOLDER_NESTED_TABLE = RenameTable(
    "holder",
    [
        FieldSpec("name", ("name",)),
        FieldSpec("pan", ("pan",)),
        FieldSpec("dob", ("dob",), Kind.DATE),
        FieldSpec("mobile", ("mobile",)),
        FieldSpec("email", ("email",)),
        FieldSpec("address", ("address",)),
        FieldSpec("nominee", ("nominee",)),
        FieldSpec("ckyc_compliance", ("ckycCompliance",), Kind.BOOLEAN),
    ],
)

_DEPOSIT_COMMON = [
    FieldSpec("currency", ("currency",)),
    FieldSpec("branch", ("branch", "accountBranch")),
    FieldSpec("ifsc", ("ifsc", "ifscCode", "accountIfscCode")),
    FieldSpec("opening_date", ("openingDate", "accountOpeningDate"), Kind.DATE),
    FieldSpec("status", ("status", "accountStatus")),
]

_TERM_COMMON = _DEPOSIT_COMMON + [
    FieldSpec("current_balance", ("currentValue", "currentBalance", "accountCurrentBalance"), Kind.NUMBER),
    FieldSpec("principal_amount", ("principalAmount", "depositAmount"), Kind.NUMBER),
    FieldSpec("maturity_amount", ("maturityAmount",), Kind.NUMBER),
    FieldSpec("maturity_date", ("maturityDate",), Kind.DATE),
    FieldSpec("interest_rate", ("interestRate",), Kind.NUMBER),
    FieldSpec("interest_payout", ("interestPayout",)),
    FieldSpec("tenure", ("tenure", "tenureMonths", "tenureDays")),
]

SUMMARY_TABLES: Dict[AssetType, RenameTable] = {
    AssetType.DEPOSIT: RenameTable(
        "deposit_summary",
        _DEPOSIT_COMMON
        + [
            FieldSpec("current_balance", ("currentBalance", "accountCurrentBalance", "balance"), Kind.NUMBER),
            FieldSpec("balance_datetime", ("balanceDateTime", "balanceDatetime"), Kind.DATETIME),
            FieldSpec("micr", ("micrCode", "micr", "accountMicrCode")),
            FieldSpec("available_balance", ("availableBalance",), Kind.NUMBER),
            FieldSpec("pending_balance", ("pendingBalance",), Kind.NUMBER),
            FieldSpec("drawing_limit", ("drawingLimit", "accountDrawingLimit"), Kind.NUMBER),
            FieldSpec("od_limit", ("currentODLimit", "odLimit", "availableCreditLimit"), Kind.NUMBER),
            FieldSpec("facility", ("facility", "facilityType", "accountFacility")),
        ],
    ),
    AssetType.TERM_DEPOSIT: RenameTable("term_deposit_summary", _TERM_COMMON),
    AssetType.RECURRING_DEPOSIT: RenameTable(
        "recurring_deposit_summary",
        _TERM_COMMON
        + [
            FieldSpec("recurring_amount", ("recurringAmount", "installmentAmount"), Kind.NUMBER),
            FieldSpec("recurring_day", ("recurringDay",), Kind.INTEGER),
            FieldSpec("installments", ("installments", "numberOfInstallments", "installmentsPaid"), Kind.INTEGER),
        ],
    ),
    AssetType.MUTUAL_FUND: RenameTable(
        "mutual_fund_summary",
        [
            FieldSpec("currency", ("currency",)),
            FieldSpec("cost_value", ("costValue", "investedValue", "totalCostValue"), Kind.NUMBER),
            FieldSpec("current_value", ("currentValue", "currentMktValue", "totalCurrentValue"), Kind.NUMBER),
            FieldSpec("holdings_count", ("holdingsCount", "noOfHoldings", "totalHoldings"), Kind.INTEGER),
        ],
    ),
    AssetType.EQUITIES: RenameTable(
        "equities_summary",
        [
            FieldSpec("currency", ("currency",)),
            FieldSpec("current_value", ("currentValue", "holdingValue", "totalCurrentValue"), Kind.NUMBER),
            FieldSpec("holdings_count", ("holdingsCount", "noOfHoldings", "totalHoldings"), Kind.INTEGER),
        ],
    ),
    AssetType.NPS: RenameTable(
        "nps_summary",
        [
            FieldSpec("currency", ("currency",)),
            FieldSpec("current_value", ("currentValue", "totalValue", "accountCurrentBalance"), Kind.NUMBER),
            FieldSpec("pran_id", ("pranId", "pran")),
        ],
    ),
}
SUMMARY_TABLES[AssetType.ETF] = RenameTable("etf_summary", SUMMARY_TABLES[AssetType.EQUITIES].specs)

_FIP_KEYS = ("fipId", "fipName")


def _flatten(element: Dict[str, Any]) -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for block in _NESTED_BLOCKS:
        nested = element.get(block)
        if isinstance(nested, dict):
            flat.update({k: v for k, v in nested.items() if k != "Holders"})
    flat.update({k: v for k, v in element.items() if k not in _NESTED_BLOCKS})
    return flat


def _profile_holders(element: Dict[str, Any]) -> List[Dict[str, Any]]:
    profile = element.get("Profile") or element.get("profile") or {}
    holders = profile.get("Holders") if isinstance(profile, dict) else None
    items = holders.get("Holder") if isinstance(holders, dict) else holders
    if isinstance(items, dict):
        items = [items]
    if not isinstance(items, list):
        return []
    return [h for h in items if isinstance(h, dict)]


def _map_holder(
    element: Dict[str, Any], flat: Dict[str, Any], errors: List[FieldError]
) -> Optional[MappedHolder]:
    if any(k in flat for k in HOLDER_FLAT_TABLE.aliases):
        values = HOLDER_FLAT_TABLE.apply(flat, errors)
        values["holder_type"] = values["holder_type"] or "SINGLE"
        return MappedHolder(**values)

    holders = _profile_holders(element)
    if not holders:
        return None
    first, *others = holders
    values = HOLDER_NESTED_TABLE.apply(first, errors)
    extra = collect_extra(first, [HOLDER_NESTED_TABLE])
    if others:
        # joint holders beyond the first are kept verbatim
        extra["additionalHolders"] = others
    return MappedHolder(
        **values,
        holder_type="JOINT" if others else "SINGLE",
        extra=extra,
    )


def _map_element(
    element: Dict[str, Any],
    fip: Optional[FipRef],
    asset_type: AssetType,
    errors: List[FieldError],
) -> AccountBundle:
    flat = _flatten(element)
    summary_table = SUMMARY_TABLES[asset_type]

    values = ACCOUNT_TABLE.apply(flat, errors)
    account_ref = first_present(
        values["account_ref_number"], values["link_ref_number"], values["masked_account_number"]
    )
    account = MappedAccount(
        asset_type=asset_type,
        fip=fip,
        **{**values, "account_ref_number": account_ref},
        extra=collect_extra(flat, [ACCOUNT_TABLE, summary_table, HOLDER_FLAT_TABLE], ignore=_FIP_KEYS),
    )
    summary = MappedSummary(asset_type=asset_type, values=summary_table.apply(flat, errors))
    return AccountBundle(account=account, holder=_map_holder(element, flat, errors), summary=summary)


def map_linked_accounts(payload: Any, asset_type: AssetType) -> MappingResult:
    """Flatten every FIP x linked-account pair into account bundles."""
    result = MappingResult()
    tree = unwrap(payload, "fipData")
    seen_fips: Dict[str, FipRef] = {}

    for fip_raw, accounts in iter_fip_accounts(tree):
        code = first_present(fip_raw.get("fipId"), fip_raw.get("fipName"))
        fip: Optional[FipRef] = None
        if code is not None:
            fip = seen_fips.get(str(code))
            if fip is None:
                fip = FipRef(external_code=str(code), name=fip_raw.get("fipName"))
                seen_fips[fip.external_code] = fip
                result.fips.append(fip)
        for element in accounts:
            result.accounts.append(_map_element(element, fip, asset_type, result.field_errors))
    return result


def map_deposit(payload: Any) -> MappingResult:
    return map_linked_accounts(payload, AssetType.DEPOSIT)


def map_term_deposit(payload: Any) -> MappingResult:
    return map_linked_accounts(payload, AssetType.TERM_DEPOSIT)


def map_recurring_deposit(payload: Any) -> MappingResult:
    return map_linked_accounts(payload, AssetType.RECURRING_DEPOSIT)


def map_mutual_fund(payload: Any) -> MappingResult:
    return map_linked_accounts(payload, AssetType.MUTUAL_FUND)


def map_equities(payload: Any) -> MappingResult:
    return map_linked_accounts(payload, AssetType.EQUITIES)


def map_etf(payload: Any) -> MappingResult:
    return map_linked_accounts(payload, AssetType.ETF)


def map_nps(payload: Any) -> MappingResult:
    return map_linked_accounts(payload, AssetType.NPS)
