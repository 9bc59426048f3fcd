"""Pure payload-to-record mappers, one per endpoint family."""
from .directory import map_brokers, map_fips
from .holdings import map_demat_holdings, map_equity_holdings, map_mf_holdings
from .insights import map_analysis, map_insights
from .linked_accounts import (
    map_deposit,
    map_equities,
    map_etf,
    map_linked_accounts,
    map_mutual_fund,
    map_nps,
    map_recurring_deposit,
    map_term_deposit,
)
from .statements import map_statement

__all__ = [
    "map_brokers",
    "map_fips",
    "map_demat_holdings",
    "map_equity_holdings",
    "map_mf_holdings",
    "map_analysis",
    "map_insights",
    "map_deposit",
    "map_equities",
    "map_etf",
    "map_linked_accounts",
    "map_mutual_fund",
    "map_nps",
    "map_recurring_deposit",
    "map_term_deposit",
    "map_statement",
]
