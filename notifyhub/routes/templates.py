"""
Template API routes.

CRUD passthrough over the template store, served through the read-through
cache.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from notifyhub.database import get_db
from notifyhub.dependencies.context import get_context
from notifyhub.services.context import ServiceContext
from notifyhub.services.template_service import TemplateService


router = APIRouter(prefix="/api/templates", tags=["templates"])


class TemplateRequest(BaseModel):
    """Request model for creating or replacing a template."""
    name: str
    description: str | None = None
    subject: str = ""
    html_content: str = ""
    variables: list[str] = []


def get_template_service(
    db: AsyncSession = Depends(get_db),
    context: ServiceContext = Depends(get_context),
) -> TemplateService:
    return TemplateService(db, context.template_cache)


@router.get("", response_model=list[dict])
async def list_templates(service: TemplateService = Depends(get_template_service)):
    """Get all templates, newest first."""
    return await service.list_templates()


@router.get("/{template_id}", response_model=dict)
async def get_template(template_id: int, service: TemplateService = Depends(get_template_service)):
    template = await service.get_template(template_id)
    if not template:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Template not found"
        )
    return template


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_template(
    request: TemplateRequest,
    service: TemplateService = Depends(get_template_service),
):
    return await service.create_template(**request.model_dump())


@router.put("/{template_id}", response_model=dict)
async def update_template(
    template_id: int,
    request: TemplateRequest,
    service: TemplateService = Depends(get_template_service),
):
    template = await service.update_template(template_id, **request.model_dump())
    if not template:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Template not found"
        )
    return template


@router.delete("/{template_id}", response_model=dict)
async def delete_template(template_id: int, service: TemplateService = Depends(get_template_service)):
    deleted = await service.delete_template(template_id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Template not found"
        )
    return {"message": "Template deleted successfully"}
