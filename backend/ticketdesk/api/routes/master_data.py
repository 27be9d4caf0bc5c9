"""Master Data API Routes - Routing and classification reference data"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query, UploadFile, File
from pydantic import BaseModel, Field

from ..deps import CurrentUser, get_current_user_context, get_correlation_id_dep
from ...domain.errors import DomainError, ValidationError
from ...services.master_data_service import MasterDataService
from ...services.directory_service import DirectoryService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================

class NamedItemRequest(BaseModel):
    """Create a target business group, category or project"""
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)


class CreateSubcategoryRequest(BaseModel):
    category_id: str
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    estimated_duration_minutes: Optional[int] = Field(None, ge=0)
    input_template: Optional[str] = None
    closure_steps: Optional[str] = None


class CreateMappingRequest(BaseModel):
    """Classification mapping for a target group, category and optional subcategory"""
    target_business_group_id: str
    category_id: str
    subcategory_id: Optional[str] = None
    estimated_duration_minutes: int = Field(0, ge=0)
    spoc_user_id: Optional[str] = None
    auto_title_template: Optional[str] = Field(None, max_length=500)
    description: Optional[str] = Field(None, max_length=1000)


class UpdateMappingRequest(BaseModel):
    subcategory_id: Optional[str] = None
    estimated_duration_minutes: Optional[int] = Field(None, ge=0)
    spoc_user_id: Optional[str] = None
    auto_title_template: Optional[str] = Field(None, max_length=500)
    description: Optional[str] = Field(None, max_length=1000)


# ============================================================================
# Target business groups
# ============================================================================

@router.get("/target-business-groups")
async def list_target_business_groups(
    current: CurrentUser = Depends(get_current_user_context)
):
    groups = MasterDataService().list_target_business_groups()
    return {"items": [g.model_dump(mode="json") for g in groups]}


@router.post("/target-business-groups", status_code=status.HTTP_201_CREATED)
async def create_target_business_group(
    request: NamedItemRequest,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    try:
        group = MasterDataService().create_target_business_group(
            request.name, request.description, current.is_admin
        )
        return group.model_dump(mode="json")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/target-business-groups/{group_id}/spoc")
async def get_target_business_group_spoc(
    group_id: str,
    current: CurrentUser = Depends(get_current_user_context)
):
    """
    Default SPOC for a target group

    Taken from the group's mappings. Returns {"spoc": null} when none is set.
    """
    try:
        service = MasterDataService()
        service.repo.get_target_group_or_raise(group_id)
        spoc = service.get_spoc_for_target_business_group(group_id)
        return {"spoc": DirectoryService().user_to_dict(spoc) if spoc else None}

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


# ============================================================================
# Categories and subcategories
# ============================================================================

@router.get("/categories")
async def list_categories(
    current: CurrentUser = Depends(get_current_user_context)
):
    categories = MasterDataService().list_categories()
    return {"items": [c.model_dump(mode="json") for c in categories]}


@router.post("/categories", status_code=status.HTTP_201_CREATED)
async def create_category(
    request: NamedItemRequest,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    try:
        category = MasterDataService().create_category(
            request.name, request.description, current.is_admin
        )
        return category.model_dump(mode="json")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/subcategories")
async def list_subcategories(
    category_id: Optional[str] = Query(None, description="Only subcategories of this category"),
    current: CurrentUser = Depends(get_current_user_context)
):
    subcategories = MasterDataService().list_subcategories(category_id)
    return {"items": [s.model_dump(mode="json") for s in subcategories]}


@router.post("/subcategories", status_code=status.HTTP_201_CREATED)
async def create_subcategory(
    request: CreateSubcategoryRequest,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    try:
        subcategory = MasterDataService().create_subcategory(
            request.category_id,
            request.name,
            current.is_admin,
            description=request.description,
            estimated_duration_minutes=request.estimated_duration_minutes,
            input_template=request.input_template,
            closure_steps=request.closure_steps
        )
        return subcategory.model_dump(mode="json")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


# ============================================================================
# Projects
# ============================================================================

@router.get("/projects")
async def list_projects(
    current: CurrentUser = Depends(get_current_user_context)
):
    projects = MasterDataService().list_projects()
    return {"items": [p.model_dump(mode="json") for p in projects]}


@router.post("/projects", status_code=status.HTTP_201_CREATED)
async def create_project(
    request: NamedItemRequest,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    try:
        project = MasterDataService().create_project(
            request.name, request.description, current.is_admin
        )
        return project.model_dump(mode="json")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


# ============================================================================
# Classification mappings
# ============================================================================

@router.get("/mappings")
async def list_mappings(
    target_business_group_id: Optional[str] = Query(None),
    current: CurrentUser = Depends(get_current_user_context)
):
    return {"items": MasterDataService().list_mappings(target_business_group_id)}


@router.post("/mappings", status_code=status.HTTP_201_CREATED)
async def create_mapping(
    request: CreateMappingRequest,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    try:
        service = MasterDataService()
        mapping = service.create_mapping(
            request.target_business_group_id,
            request.category_id,
            current.is_admin,
            subcategory_id=request.subcategory_id,
            estimated_duration_minutes=request.estimated_duration_minutes,
            spoc_user_id=request.spoc_user_id,
            auto_title_template=request.auto_title_template,
            description=request.description
        )
        return service.mapping_to_dict(mapping)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


# Must be registered before /mappings/{mapping_id}
@router.post("/mappings/bulk-upload")
async def bulk_upload_mappings(
    file: UploadFile = File(..., description="CSV file"),
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Create or update mappings from a CSV file

    Columns: targetBusinessGroup, category, subcategory, estimatedDuration,
    spocEmail, autoTitleTemplate, description. Bad rows are reported and
    skipped.
    """
    try:
        content = await file.read()
        try:
            csv_text = content.decode("utf-8")
        except UnicodeDecodeError:
            raise ValidationError("CSV file must be UTF-8 encoded")

        result = MasterDataService().bulk_upload_mappings(csv_text, current.is_admin)

        logger.info(
            f"Bulk mapping upload: {result['created']} created, {result['updated']} updated, "
            f"{len(result['errors'])} errors",
            extra={"actor_email": current.user.email}
        )
        return result

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.patch("/mappings/{mapping_id}")
async def update_mapping(
    mapping_id: str,
    request: UpdateMappingRequest,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    try:
        service = MasterDataService()
        mapping = service.update_mapping(
            mapping_id,
            request.model_dump(exclude_unset=True),
            current.is_admin
        )
        return service.mapping_to_dict(mapping)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.delete("/mappings/{mapping_id}")
async def delete_mapping(
    mapping_id: str,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    try:
        MasterDataService().delete_mapping(mapping_id, current.is_admin)
        return {"message": "Mapping deleted"}

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
