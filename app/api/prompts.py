"""
AI Prompts API Endpoints

Provides HTTP endpoints for the AI settings screen: persona CRUD and activation.
"""
from fastapi import APIRouter, HTTPException, Depends, status
from typing import Optional
import logging

from app.api.errors import http_error
from app.auth.dependencies import get_current_operator
from app.models.inbox import Prompt, PromptCreate, PromptListResponse, PromptUpdate
from app.models.operator import Operator
from app.services.errors import InboxError
from app.services.prompt_service import PromptService, get_prompt_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai/prompts", tags=["ai-prompts"])


@router.get(
    "",
    response_model=PromptListResponse,
    summary="List prompts",
    description="All personas, newest first"
)
async def list_prompts(
    operator: Operator = Depends(get_current_operator),
    prompt_service: PromptService = Depends(get_prompt_service)
):
    """List AI personas"""
    try:
        prompts = await prompt_service.list_prompts()
        return PromptListResponse(prompts=prompts, total=len(prompts))

    except InboxError as e:
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error listing prompts: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch prompts"
        )


@router.get(
    "/active",
    response_model=Optional[Prompt],
    summary="Get active prompt",
    description="The active persona, or null when none is active"
)
async def get_active_prompt(
    operator: Operator = Depends(get_current_operator),
    prompt_service: PromptService = Depends(get_prompt_service)
):
    """Get the active persona"""
    try:
        return await prompt_service.get_active_prompt()

    except InboxError as e:
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching active prompt: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch active prompt"
        )


@router.post(
    "",
    response_model=Prompt,
    status_code=status.HTTP_201_CREATED,
    summary="Create prompt"
)
async def create_prompt(
    prompt: PromptCreate,
    operator: Operator = Depends(get_current_operator),
    prompt_service: PromptService = Depends(get_prompt_service)
):
    """Create a new AI persona"""
    try:
        created = await prompt_service.create_prompt(prompt)
        logger.info(f"Prompt created: {created.id} by {operator.label}")
        return created

    except InboxError as e:
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating prompt: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create prompt"
        )


@router.put(
    "/{prompt_id}",
    response_model=Prompt,
    summary="Update prompt"
)
async def update_prompt(
    prompt_id: str,
    prompt_update: PromptUpdate,
    operator: Operator = Depends(get_current_operator),
    prompt_service: PromptService = Depends(get_prompt_service)
):
    """Update an AI persona"""
    try:
        return await prompt_service.update_prompt(prompt_id, prompt_update)

    except InboxError as e:
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating prompt {prompt_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update prompt"
        )


@router.delete(
    "/{prompt_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete prompt"
)
async def delete_prompt(
    prompt_id: str,
    operator: Operator = Depends(get_current_operator),
    prompt_service: PromptService = Depends(get_prompt_service)
):
    """Delete an AI persona"""
    try:
        await prompt_service.delete_prompt(prompt_id)
        logger.info(f"Prompt deleted: {prompt_id} by {operator.label}")

    except InboxError as e:
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting prompt {prompt_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete prompt"
        )


@router.post(
    "/{prompt_id}/activate",
    response_model=Prompt,
    summary="Activate prompt",
    description="Make this the single active persona"
)
async def activate_prompt(
    prompt_id: str,
    operator: Operator = Depends(get_current_operator),
    prompt_service: PromptService = Depends(get_prompt_service)
):
    """Activate an AI persona"""
    try:
        prompt = await prompt_service.activate(prompt_id)
        logger.info(f"✅ Prompt {prompt_id} activated by {operator.label}")
        return prompt

    except InboxError as e:
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error activating prompt {prompt_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to activate prompt"
        )
