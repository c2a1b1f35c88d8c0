"""
Prompt Service

Service layer for AI personas (prompts) and the global active-persona switch.
"""
import logging
from typing import List, Optional

from app.models.inbox import Prompt, PromptCreate, PromptUpdate
from app.services.errors import InboxValidationError, NotFoundError
from app.services.table_store import TableStore, get_table_store

logger = logging.getLogger(__name__)

TABLE = "prompts"


class PromptService:
    """Service for managing AI personas"""

    def __init__(self, store: TableStore):
        self.store = store

    async def list_prompts(self) -> List[Prompt]:
        """List every prompt, newest first"""
        rows = self.store.select(TABLE, order_by="created_at", descending=True)
        return [Prompt(**row) for row in rows]

    async def get_prompt(self, prompt_id: str) -> Prompt:
        """
        Get a prompt by ID.

        Raises:
            NotFoundError: If the prompt does not exist
        """
        rows = self.store.select(TABLE, {"id": prompt_id})
        if not rows:
            raise NotFoundError(f"Prompt {prompt_id} not found")
        return Prompt(**rows[0])

    async def get_active_prompt(self) -> Optional[Prompt]:
        """Get the active persona, or None when no prompt is active"""
        rows = self.store.select(TABLE, {"is_active": True})
        if len(rows) > 1:
            logger.warning(f"{len(rows)} prompts are marked active; using the most recently updated")
            rows.sort(key=lambda row: row.get("updated_at") or "", reverse=True)
        return Prompt(**rows[0]) if rows else None

    async def create_prompt(self, prompt_data: PromptCreate) -> Prompt:
        """
        Create a new (inactive) prompt.

        Raises:
            InboxValidationError: If title or content is blank
        """
        if not prompt_data.title.strip():
            raise InboxValidationError("Prompt title is required")
        if not prompt_data.content.strip():
            raise InboxValidationError("Prompt content is required")

        row = self.store.insert(TABLE, {
            "title": prompt_data.title.strip(),
            "content": prompt_data.content,
            "assistant_name": prompt_data.assistant_name,
            "tone": prompt_data.tone,
            "response_delay": prompt_data.response_delay,
            "is_active": False
        })
        logger.info(f"✅ Created prompt '{row['title']}' ({row['id']})")
        return Prompt(**row)

    async def update_prompt(self, prompt_id: str, prompt_data: PromptUpdate) -> Prompt:
        """
        Partially update a prompt. An empty patch returns the current row.

        Raises:
            InboxValidationError: If title or content is set to blank
            NotFoundError: If the prompt does not exist
        """
        patch = prompt_data.model_dump(exclude_unset=True, exclude_none=True)
        if "title" in patch:
            if not patch["title"].strip():
                raise InboxValidationError("Prompt title cannot be empty")
            patch["title"] = patch["title"].strip()
        if "content" in patch and not patch["content"].strip():
            raise InboxValidationError("Prompt content cannot be empty")

        if not patch:
            return await self.get_prompt(prompt_id)

        rows = self.store.update(TABLE, patch, {"id": prompt_id})
        if not rows:
            raise NotFoundError(f"Prompt {prompt_id} not found")

        logger.info(f"Updated prompt {prompt_id}: {sorted(patch)}")
        return Prompt(**rows[0])

    async def delete_prompt(self, prompt_id: str) -> None:
        """
        Delete a prompt. Deleting the active prompt leaves no persona active.

        Raises:
            NotFoundError: If the prompt does not exist
        """
        rows = self.store.delete(TABLE, {"id": prompt_id})
        if not rows:
            raise NotFoundError(f"Prompt {prompt_id} not found")
        logger.info(f"Deleted prompt {prompt_id}")

    async def activate(self, prompt_id: str) -> Prompt:
        """
        Make a prompt the single active persona.

        One atomic store operation sets ``is_active`` on the target and clears
        it everywhere else, so concurrent activations cannot leave two active
        prompts. Activating the already active prompt changes nothing.

        Raises:
            NotFoundError: If the prompt does not exist (nothing is changed)
        """
        changed = self.store.set_exclusive(TABLE, "is_active", prompt_id)
        logger.info(f"✅ Activated prompt {prompt_id} ({len(changed)} rows changed)")

        for row in changed:
            if row["id"] == prompt_id:
                return Prompt(**row)
        return await self.get_prompt(prompt_id)


# Singleton instance
_prompt_service: Optional[PromptService] = None


def get_prompt_service() -> PromptService:
    """
    Get or create PromptService instance.

    Returns:
        PromptService instance
    """
    global _prompt_service
    if _prompt_service is None:
        _prompt_service = PromptService(get_table_store())
    return _prompt_service
