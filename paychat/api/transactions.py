from typing import Any, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ..services.transaction_summary import extract_summary, get_grammar
from ..services.transfer import build_transfer_call, format_idr

router = APIRouter(prefix="/transactions")


class SummaryRequest(BaseModel):
    text: str = Field(description="Assistant reply to scan for a transaction directive")
    language: Optional[str] = Field(default=None, description="Directive language override (en, id)")


class TransactionSummaryModel(BaseModel):
    recipient_label: str
    recipient_address: str
    amount: int = Field(description="Amount in smallest token units")
    amount_display: str
    category: str


class TransferCallModel(BaseModel):
    to: str = Field(description="Token contract")
    value: int = 0
    data: str = Field(description="ABI-encoded transfer calldata")
    function: str
    args: List[Any]


class SummaryResponse(BaseModel):
    summary: Optional[TransactionSummaryModel] = None
    call: Optional[TransferCallModel] = None


@router.post("/summary", response_model=SummaryResponse)
async def summarize_transaction(request: SummaryRequest) -> SummaryResponse:
    """Extract the transfer proposal (if any) from an assistant reply"""

    try:
        grammar = get_grammar(request.language)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    summary = extract_summary(request.text, grammar=grammar)
    if summary is None:
        return SummaryResponse()

    return SummaryResponse(
        summary=TransactionSummaryModel(
            **summary.to_dict(),
            amount_display=format_idr(summary.amount),
        ),
        call=TransferCallModel(**build_transfer_call(summary)),
    )
