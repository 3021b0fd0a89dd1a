"""
Standings service.

Builds the net-worth leaderboard so the frontend can render the live
ranking and the final results directly from the server.
"""
from decimal import Decimal
from typing import Any, Dict, List

from models import RoomState
from services.ledger_service import net_worth, portfolio_value


def get_standings(state: RoomState, loan_repayment: Decimal) -> List[Dict[str, Any]]:
    """
    Return players ordered by net worth, richest first.

    Net worth already has the loan repayment deducted for players who
    took the emergency loan; live cash is reported untouched.
    """
    rows: List[Dict[str, Any]] = []
    for player in state.players.values():
        rows.append({
            "player_id": player.id,
            "name": player.name,
            "cash": player.cash,
            "portfolio_value": portfolio_value(player, state.market),
            "has_used_loan": player.has_used_loan,
            "net_worth": net_worth(player, state.market, loan_repayment),
        })

    rows.sort(key=lambda row: row["net_worth"], reverse=True)
    for rank, row in enumerate(rows, start=1):
        row["rank"] = rank
    return rows
