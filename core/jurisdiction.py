"""
Place-of-supply resolution.

Decides whether a supply is intra-state (CGST + SGST) or inter-state (IGST)
from the seller's dispatch state and the buyer's delivery state, and maps
state names to their two-digit GST state codes.
"""

from core.exceptions import UnknownStateError
from core.models import TransactionType

UNKNOWN_STATE_CODE = "00"

# GST state codes for states and union territories
STATE_CODES: dict[str, str] = {
    "JAMMU AND KASHMIR": "01",
    "HIMACHAL PRADESH": "02",
    "PUNJAB": "03",
    "CHANDIGARH": "04",
    "UTTARAKHAND": "05",
    "HARYANA": "06",
    "DELHI": "07",
    "RAJASTHAN": "08",
    "UTTAR PRADESH": "09",
    "BIHAR": "10",
    "SIKKIM": "11",
    "ARUNACHAL PRADESH": "12",
    "NAGALAND": "13",
    "MANIPUR": "14",
    "MIZORAM": "15",
    "TRIPURA": "16",
    "MEGHALAYA": "17",
    "ASSAM": "18",
    "WEST BENGAL": "19",
    "JHARKHAND": "20",
    "ODISHA": "21",
    "CHHATTISGARH": "22",
    "MADHYA PRADESH": "23",
    "GUJARAT": "24",
    "DADRA AND NAGAR HAVELI AND DAMAN AND DIU": "26",
    "MAHARASHTRA": "27",
    "KARNATAKA": "29",
    "GOA": "30",
    "LAKSHADWEEP": "31",
    "KERALA": "32",
    "TAMIL NADU": "33",
    "PUDUCHERRY": "34",
    "ANDAMAN AND NICOBAR ISLANDS": "35",
    "TELANGANA": "36",
    "ANDHRA PRADESH": "37",
    "LADAKH": "38",
}


def normalize_state(state_name: str | None) -> str:
    """Uppercase and trim a free-text state name."""
    return (state_name or "").strip().upper()


def determine_transaction_type(seller_state: str | None, buyer_state: str | None) -> TransactionType:
    """
    INTRA_STATE when both normalized names match, INTER_STATE otherwise.

    Raises:
        UnknownStateError: If either name is blank. Two blanks would
            otherwise compare equal and silently produce CGST/SGST.
    """
    seller = normalize_state(seller_state)
    buyer = normalize_state(buyer_state)

    if not seller:
        raise UnknownStateError("Seller state is required to determine GST type")
    if not buyer:
        raise UnknownStateError("Buyer state is required to determine GST type")

    if seller == buyer:
        return TransactionType.INTRA_STATE
    return TransactionType.INTER_STATE


def get_state_code(state_name: str | None) -> str:
    """Two-digit GST state code, "00" for anything not in the table."""
    return STATE_CODES.get(normalize_state(state_name), UNKNOWN_STATE_CODE)
