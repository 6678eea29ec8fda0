"""
Template service.

Plain CRUD over the templates table with read-through caching. Every
mutation invalidates the affected cache keys before returning.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from notifyhub.models.template import Template
from notifyhub.services.template_cache import ALL_TEMPLATES_KEY, TemplateCache, template_key


class TemplateService:
    """Service for managing email templates."""

    def __init__(self, db: AsyncSession, cache: TemplateCache):
        self.db = db
        self.cache = cache

    async def list_templates(self) -> list[dict]:
        """All templates, newest first."""
        async def load():
            stmt = select(Template).order_by(Template.created_at.desc(), Template.id.desc())
            result = await self.db.execute(stmt)
            return [t.to_dict() for t in result.scalars().all()]

        return await self.cache.get_or_load(ALL_TEMPLATES_KEY, load)

    async def get_template(self, template_id: int) -> dict | None:
        async def load():
            template = await self.db.get(Template, template_id)
            return template.to_dict() if template else None

        return await self.cache.get_or_load(template_key(template_id), load)

    async def create_template(
        self,
        name: str,
        subject: str,
        html_content: str,
        description: str | None = None,
        variables: list[str] | None = None,
    ) -> dict:
        template = Template(
            name=name,
            description=description,
            subject=subject,
            html_content=html_content,
            variables=list(variables or []),
        )
        self.db.add(template)
        await self.db.commit()
        await self.db.refresh(template)

        await self.cache.invalidate()
        return template.to_dict()

    async def update_template(self, template_id: int, **fields) -> dict | None:
        """
        Update a template.

        Returns:
            Updated template, None if not found
        """
        template = await self.db.get(Template, template_id)
        if not template:
            return None

        for field in ("name", "description", "subject", "html_content"):
            if field in fields:
                setattr(template, field, fields[field])
        if "variables" in fields:
            template.variables = list(fields["variables"] or [])

        await self.db.commit()
        await self.db.refresh(template)

        await self.cache.invalidate(template_id)
        return template.to_dict()

    async def delete_template(self, template_id: int) -> bool:
        template = await self.db.get(Template, template_id)
        if not template:
            return False

        await self.db.delete(template)
        await self.db.commit()

        await self.cache.invalidate(template_id)
        return True
