"""Quest catalog API endpoints."""

from __future__ import annotations

from typing import assert_never

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from colink.auth.dependencies import get_current_session, require_professor
from colink.auth.session import Role, Session
from colink.db.models import Quest
from colink.dependencies import get_db
from colink.quests.schemas import QuestCreateRequest, QuestListResponse, QuestResponse, QuestUpdateRequest
from colink.quests.service import create_quest, deactivate_quest, get_quest, list_quests, update_quest

router = APIRouter(prefix="/api/v1/quests", tags=["Quests"])


def quest_response(quest: Quest) -> QuestResponse:
    return QuestResponse(
        id=quest.id,
        title=quest.title,
        description=quest.description,
        xp_reward=quest.xp_reward,
        difficulty=quest.difficulty,
        category=quest.category,
        is_published=quest.is_published,
        deadline=quest.deadline,
        created_by=quest.created_by,
        created_at=quest.created_at,
        updated_at=quest.updated_at,
    )


@router.get("", response_model=QuestListResponse)
async def list_quests_endpoint(
    mine: bool = Query(True, description="Professors: only quests they created"),
    session: Session = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> QuestListResponse:
    """Students see published quests; professors see drafts too."""
    match session.role:
        case Role.STUDENT:
            quests = await list_quests(db, published_only=True)
        case Role.PROFESSOR:
            quests = await list_quests(
                db,
                published_only=False,
                created_by=session.user_id if mine else None,
            )
        case _:
            assert_never(session.role)
    return QuestListResponse(quests=[quest_response(q) for q in quests], total=len(quests))


@router.get("/{quest_id}", response_model=QuestResponse)
async def get_quest_endpoint(
    quest_id: int,
    session: Session = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> QuestResponse:
    quest = await get_quest(db, quest_id, published_only=session.is_student)
    return quest_response(quest)


@router.post("", response_model=QuestResponse, status_code=201)
async def create_quest_endpoint(
    body: QuestCreateRequest,
    session: Session = Depends(require_professor),
    db: AsyncSession = Depends(get_db),
) -> QuestResponse:
    quest = await create_quest(
        db,
        session.user_id,
        title=body.title,
        description=body.description,
        xp_reward=body.xp_reward,
        difficulty=body.difficulty.value,
        category=body.category,
        is_published=body.is_published,
        deadline=body.deadline,
    )
    await db.commit()
    return quest_response(quest)


@router.patch("/{quest_id}", response_model=QuestResponse)
async def update_quest_endpoint(
    quest_id: int,
    body: QuestUpdateRequest,
    session: Session = Depends(require_professor),
    db: AsyncSession = Depends(get_db),
) -> QuestResponse:
    quest = await update_quest(db, quest_id, session.user_id, body.model_dump(exclude_unset=True))
    await db.commit()
    return quest_response(quest)


@router.delete("/{quest_id}", status_code=204)
async def delete_quest_endpoint(
    quest_id: int,
    session: Session = Depends(require_professor),
    db: AsyncSession = Depends(get_db),
) -> None:
    """Soft delete: the quest disappears from listings, history is kept."""
    await deactivate_quest(db, quest_id, session.user_id)
    await db.commit()
