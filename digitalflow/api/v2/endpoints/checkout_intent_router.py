from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from digitalflow.api.v2.dependencies import get_db
from digitalflow.core.errors import AutomationError
from digitalflow.schemas.commerce import checkout_intent_schema
from digitalflow.services.commerce.checkout_intent_service import CheckoutIntentService

router = APIRouter()


@router.post("", response_model=checkout_intent_schema.CheckoutIntentOut, status_code=status.HTTP_201_CREATED)
def create_checkout_intent(payload: checkout_intent_schema.CheckoutIntentCreate, db: Session = Depends(get_db)):
    intent = CheckoutIntentService(db).create_intent(payload)
    return checkout_intent_schema.CheckoutIntentOut.model_validate(intent)


@router.get("", response_model=checkout_intent_schema.CheckoutIntentOut)
def get_checkout_intent(
    intent_id: Optional[int] = Query(default=None, alias="intentId"),
    visitor_id: Optional[str] = Query(default=None, alias="visitorId"),
    db: Session = Depends(get_db),
):
    if intent_id is None and not visitor_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="visitor_id_or_intent_id_required")
    try:
        intent = CheckoutIntentService(db).find_intent(intent_id=intent_id, visitor_id=visitor_id)
    except AutomationError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.code) from exc
    return checkout_intent_schema.CheckoutIntentOut.model_validate(intent)


@router.post("/convert", response_model=checkout_intent_schema.CheckoutConversionOut)
def convert_checkout_intent(payload: checkout_intent_schema.CheckoutConversionIn, db: Session = Depends(get_db)):
    return CheckoutIntentService(db).mark_converted(payload)
