import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from owninstead.api.deps import get_current_user
from owninstead.domain.models import Rule
from owninstead.domain.schemas.rule import RuleCreateRequest, RuleResponse, RuleUpdateRequest
from owninstead.infrastructure.db.database import get_db
from owninstead.infrastructure.db.repositories.rule_repository import RuleRepository

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=List[RuleResponse], summary="List rules")
async def list_rules(
    active_only: bool = False,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await RuleRepository(db).list_for_user(user_id, active_only=active_only)


@router.post("", response_model=RuleResponse, status_code=201, summary="Create a rule")
async def create_rule(
    payload: RuleCreateRequest,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        rule = Rule(id="", user_id=user_id, **payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    created = await RuleRepository(db).create(rule)
    logger.info("Rule created | user=%s | rule=%s | %s", user_id, created.id, created.category.value)
    return created


@router.get("/{rule_id}", response_model=RuleResponse, summary="Get a rule")
async def get_rule(
    rule_id: str,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rule = await RuleRepository(db).get_for_user(rule_id, user_id)
    if rule is None:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


@router.patch("/{rule_id}", response_model=RuleResponse, summary="Update a rule")
async def update_rule(
    rule_id: str,
    payload: RuleUpdateRequest,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    try:
        rule = await RuleRepository(db).update(rule_id, user_id, **changes)
    except ValueError as e:
        logger.warning("Rule update rejected | rule=%s | %s", rule_id, e)
        raise HTTPException(status_code=422, detail=str(e))

    if rule is None:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


@router.delete("/{rule_id}", status_code=204, summary="Deactivate a rule")
async def delete_rule(
    rule_id: str,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    # Evaluations reference rules, so rules are deactivated rather than removed
    if not await RuleRepository(db).deactivate(rule_id, user_id):
        raise HTTPException(status_code=404, detail="Rule not found")
    return Response(status_code=204)
