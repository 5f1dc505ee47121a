"""
Sequence Controllers (API Routes)
==================================

FastAPI route for issuing document numbers.
"""

from pydantic import BaseModel, Field
from fastapi import APIRouter, Depends

from casetrack.sequences.generator import SequenceGenerator
from casetrack.shared.api.dependencies import get_sequence_generator

router = APIRouter(prefix="/sequences", tags=["Document Numbers"])


class DocumentNumberResponse(BaseModel):
    """Response model for an issued document number."""
    document_type: str = Field(..., description="Canonical document type")
    document_number: str = Field(..., description="Formatted number, e.g. VESPL/EQ/2526/001")


@router.post(
    "/{document_type}/next",
    response_model=DocumentNumberResponse,
    summary="Issue the next document number",
    description="""
    Issue the next number for a document type in the current fiscal year
    (April to March).

    **Document types**: `CASE`, `ENQUIRY`, `ESTIMATION`, `QUOTATION`,
    `SALES_ORDER`, `PURCHASE_ORDER`, `WORK_ORDER`, `INVOICE`, `DELIVERY_CHALLAN`

    Every call consumes a number; numbers are never reissued.
    """,
    responses={
        200: {
            "description": "Number issued",
            "content": {
                "application/json": {
                    "example": {"document_type": "ENQUIRY", "document_number": "VESPL/EQ/2526/001"}
                }
            }
        },
        422: {"description": "Unknown document type"}
    }
)
async def issue_document_number(
    document_type: str,
    generator: SequenceGenerator = Depends(get_sequence_generator)
) -> DocumentNumberResponse:
    number = await generator.next_document_number(document_type)
    return DocumentNumberResponse(document_type=document_type.strip().upper(), document_number=number)
