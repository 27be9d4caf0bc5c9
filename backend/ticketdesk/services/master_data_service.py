"""Master Data Service - Ticket classification master data and routing mappings"""
import csv
import io
from typing import Any, Dict, List, Optional

from ..domain.models import (
    TargetBusinessGroup, Category, Subcategory, Project, ClassificationMapping, User
)
from ..domain.errors import (
    PermissionDeniedError, ValidationError, MasterDataNotFoundError, AlreadyExistsError, DomainError
)
from ..repositories.master_data_repo import MasterDataRepository
from ..repositories.directory_repo import DirectoryRepository
from ..utils.idgen import (
    generate_group_id, generate_category_id, generate_subcategory_id,
    generate_project_id, generate_mapping_id
)
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

BULK_UPLOAD_COLUMNS = [
    "targetBusinessGroup", "category", "subcategory", "estimatedDuration",
    "spocEmail", "autoTitleTemplate", "description"
]

# Fields a mapping update may touch
MAPPING_UPDATE_FIELDS = {
    "subcategory_id", "estimated_duration_minutes", "spoc_user_id",
    "auto_title_template", "description"
}


def _require_admin(is_admin: bool, what: str) -> None:
    if not is_admin:
        raise PermissionDeniedError(f"Only admin can manage {what}")


def _clean_name(name: Optional[str], label: str) -> str:
    if not name or not name.strip():
        raise ValidationError(f"{label} name is required")
    return name.strip()


class MasterDataService:
    """Service for target groups, categories, subcategories, projects and mappings"""

    def __init__(self):
        self.repo = MasterDataRepository()
        self.directory_repo = DirectoryRepository()

    # =========================================================================
    # Target business groups, categories, subcategories, projects
    # =========================================================================

    def list_target_business_groups(self) -> List[TargetBusinessGroup]:
        return self.repo.list_target_groups()

    def create_target_business_group(
        self, name: str, description: Optional[str], is_admin: bool
    ) -> TargetBusinessGroup:
        _require_admin(is_admin, "target business groups")
        return self.repo.create_target_group(TargetBusinessGroup(
            group_id=generate_group_id(),
            name=_clean_name(name, "Target business group"),
            description=description,
            created_at=utc_now()
        ))

    def list_categories(self) -> List[Category]:
        return self.repo.list_categories()

    def create_category(self, name: str, description: Optional[str], is_admin: bool) -> Category:
        _require_admin(is_admin, "categories")
        return self.repo.create_category(Category(
            category_id=generate_category_id(),
            name=_clean_name(name, "Category"),
            description=description,
            created_at=utc_now()
        ))

    def list_subcategories(self, category_id: Optional[str] = None) -> List[Subcategory]:
        return self.repo.list_subcategories(category_id)

    def create_subcategory(
        self,
        category_id: str,
        name: str,
        is_admin: bool,
        description: Optional[str] = None,
        estimated_duration_minutes: Optional[int] = None,
        input_template: Optional[str] = None,
        closure_steps: Optional[str] = None
    ) -> Subcategory:
        _require_admin(is_admin, "subcategories")
        self.repo.get_category_or_raise(category_id)

        if estimated_duration_minutes is not None and estimated_duration_minutes < 0:
            raise ValidationError("Estimated duration cannot be negative")

        return self.repo.create_subcategory(Subcategory(
            subcategory_id=generate_subcategory_id(),
            category_id=category_id,
            name=_clean_name(name, "Subcategory"),
            description=description,
            estimated_duration_minutes=estimated_duration_minutes,
            input_template=input_template,
            closure_steps=closure_steps,
            created_at=utc_now()
        ))

    def list_projects(self) -> List[Project]:
        return self.repo.list_projects()

    def create_project(self, name: str, description: Optional[str], is_admin: bool) -> Project:
        _require_admin(is_admin, "projects")
        return self.repo.create_project(Project(
            project_id=generate_project_id(),
            name=_clean_name(name, "Project"),
            description=description,
            created_at=utc_now()
        ))

    # =========================================================================
    # Classification mappings
    # =========================================================================

    def _validate_mapping_refs(
        self,
        target_business_group_id: str,
        category_id: str,
        subcategory_id: Optional[str],
        spoc_user_id: Optional[str]
    ) -> None:
        self.repo.get_target_group_or_raise(target_business_group_id)
        self.repo.get_category_or_raise(category_id)
        if subcategory_id:
            subcategory = self.repo.get_subcategory_or_raise(subcategory_id)
            if subcategory.category_id != category_id:
                raise ValidationError(
                    "Subcategory does not belong to the selected category",
                    details={"subcategory_id": subcategory_id, "category_id": category_id}
                )
        if spoc_user_id:
            self.directory_repo.get_user_or_raise(spoc_user_id)

    def mapping_to_dict(self, mapping: ClassificationMapping) -> Dict[str, Any]:
        """Mapping with the names of everything it references"""
        data = mapping.model_dump(mode="json")

        group = self.repo.get_target_group(mapping.target_business_group_id)
        category = self.repo.get_category(mapping.category_id)
        subcategory = self.repo.get_subcategory(mapping.subcategory_id)
        spoc = self.directory_repo.get_user(mapping.spoc_user_id) if mapping.spoc_user_id else None

        data["target_business_group_name"] = group.name if group else None
        data["category_name"] = category.name if category else None
        data["subcategory_name"] = subcategory.name if subcategory else None
        data["spoc_name"] = spoc.full_name if spoc else None
        data["spoc_email"] = spoc.email if spoc else None
        return data

    def list_mappings(self, target_business_group_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return [self.mapping_to_dict(m) for m in self.repo.list_mappings(target_business_group_id)]

    def create_mapping(
        self,
        target_business_group_id: str,
        category_id: str,
        is_admin: bool,
        subcategory_id: Optional[str] = None,
        estimated_duration_minutes: int = 0,
        spoc_user_id: Optional[str] = None,
        auto_title_template: Optional[str] = None,
        description: Optional[str] = None
    ) -> ClassificationMapping:
        _require_admin(is_admin, "classification mappings")
        self._validate_mapping_refs(target_business_group_id, category_id, subcategory_id, spoc_user_id)

        if estimated_duration_minutes < 0:
            raise ValidationError("Estimated duration cannot be negative")

        return self.repo.create_mapping(ClassificationMapping(
            mapping_id=generate_mapping_id(),
            target_business_group_id=target_business_group_id,
            category_id=category_id,
            subcategory_id=subcategory_id,
            estimated_duration_minutes=estimated_duration_minutes,
            spoc_user_id=spoc_user_id,
            auto_title_template=auto_title_template,
            description=description,
            created_at=utc_now()
        ))

    def update_mapping(self, mapping_id: str, changes: Dict[str, Any], is_admin: bool) -> ClassificationMapping:
        _require_admin(is_admin, "classification mappings")
        mapping = self.repo.get_mapping_or_raise(mapping_id)

        unknown = set(changes) - MAPPING_UPDATE_FIELDS
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)}
            )
        if not changes:
            return mapping

        subcategory_id = changes.get("subcategory_id", mapping.subcategory_id)
        spoc_user_id = changes.get("spoc_user_id", mapping.spoc_user_id)
        self._validate_mapping_refs(
            mapping.target_business_group_id, mapping.category_id, subcategory_id, spoc_user_id
        )

        if changes.get("estimated_duration_minutes") is not None and changes["estimated_duration_minutes"] < 0:
            raise ValidationError("Estimated duration cannot be negative")

        if subcategory_id != mapping.subcategory_id:
            clash = self.repo.find_mapping(mapping.target_business_group_id, mapping.category_id, subcategory_id)
            if clash and clash.mapping_id != mapping_id:
                raise AlreadyExistsError(
                    "A mapping for this target group, category and subcategory already exists",
                    details={"mapping_id": clash.mapping_id}
                )

        return self.repo.update_mapping(mapping_id, dict(changes))

    def delete_mapping(self, mapping_id: str, is_admin: bool) -> None:
        _require_admin(is_admin, "classification mappings")
        self.repo.delete_mapping(mapping_id)

    # =========================================================================
    # Routing
    # =========================================================================

    def get_spoc_for_target_business_group(self, target_business_group_id: str) -> Optional[User]:
        """SPOC of the oldest mapping of the group that names one"""
        for mapping in self.repo.list_mappings(target_business_group_id):
            if mapping.spoc_user_id:
                spoc = self.directory_repo.get_user(mapping.spoc_user_id)
                if spoc:
                    return spoc
        return None

    def find_mapping_for_ticket(
        self,
        target_business_group_id: Optional[str],
        category_id: Optional[str],
        subcategory_id: Optional[str]
    ) -> Optional[ClassificationMapping]:
        """Exact mapping for the classification, falling back to the category-wide one"""
        if not target_business_group_id or not category_id:
            return None
        if subcategory_id:
            mapping = self.repo.find_mapping(target_business_group_id, category_id, subcategory_id)
            if mapping:
                return mapping
        return self.repo.find_mapping(target_business_group_id, category_id, None)

    # =========================================================================
    # Bulk upload
    # =========================================================================

    def _get_or_create_target_group(self, name: str) -> TargetBusinessGroup:
        group = self.repo.get_target_group_by_name(name)
        if group:
            return group
        return self.repo.create_target_group(TargetBusinessGroup(
            group_id=generate_group_id(), name=name, created_at=utc_now()
        ))

    def _get_or_create_category(self, name: str) -> Category:
        category = self.repo.get_category_by_name(name)
        if category:
            return category
        return self.repo.create_category(Category(
            category_id=generate_category_id(), name=name, created_at=utc_now()
        ))

    def _get_or_create_subcategory(self, category_id: str, name: str) -> Subcategory:
        subcategory = self.repo.get_subcategory_by_name(category_id, name)
        if subcategory:
            return subcategory
        return self.repo.create_subcategory(Subcategory(
            subcategory_id=generate_subcategory_id(),
            category_id=category_id,
            name=name,
            created_at=utc_now()
        ))

    def _upload_row(self, row: Dict[str, str]) -> bool:
        """Create or update the mapping for one CSV row. Returns True if created."""
        group_name = (row.get("targetBusinessGroup") or "").strip()
        category_name = (row.get("category") or "").strip()
        subcategory_name = (row.get("subcategory") or "").strip()
        duration_text = (row.get("estimatedDuration") or "").strip()
        spoc_email = (row.get("spocEmail") or "").strip()

        if not group_name or not category_name:
            raise ValidationError("targetBusinessGroup and category are required")

        try:
            duration = int(duration_text) if duration_text else 0
        except ValueError:
            raise ValidationError(f"estimatedDuration must be a whole number of minutes, got '{duration_text}'")
        if duration < 0:
            raise ValidationError("estimatedDuration cannot be negative")

        spoc_user_id = None
        if spoc_email:
            spoc = self.directory_repo.get_user_by_email(spoc_email)
            if not spoc:
                raise MasterDataNotFoundError(f"No user found with email {spoc_email}")
            spoc_user_id = spoc.user_id

        group = self._get_or_create_target_group(group_name)
        category = self._get_or_create_category(category_name)
        subcategory = self._get_or_create_subcategory(category.category_id, subcategory_name) if subcategory_name else None
        subcategory_id = subcategory.subcategory_id if subcategory else None

        values = {
            "estimated_duration_minutes": duration,
            "spoc_user_id": spoc_user_id,
            "auto_title_template": (row.get("autoTitleTemplate") or "").strip() or None,
            "description": (row.get("description") or "").strip() or None
        }

        existing = self.repo.find_mapping(group.group_id, category.category_id, subcategory_id)
        if existing:
            self.repo.update_mapping(existing.mapping_id, values)
            return False

        self.repo.create_mapping(ClassificationMapping(
            mapping_id=generate_mapping_id(),
            target_business_group_id=group.group_id,
            category_id=category.category_id,
            subcategory_id=subcategory_id,
            created_at=utc_now(),
            **values
        ))
        return True

    def bulk_upload_mappings(self, csv_text: str, is_admin: bool) -> Dict[str, Any]:
        """
        Create or update mappings from CSV text

        Expected header: targetBusinessGroup, category, subcategory,
        estimatedDuration, spocEmail, autoTitleTemplate, description.
        Rows are independent: a bad row is reported and the rest continue.
        Row numbers count the header as row 1.
        """
        _require_admin(is_admin, "classification mappings")

        reader = csv.DictReader(io.StringIO(csv_text.lstrip("\ufeff")))
        if not reader.fieldnames or not {"targetBusinessGroup", "category"} <= set(reader.fieldnames):
            raise ValidationError(
                "CSV must have a header row with targetBusinessGroup and category columns",
                details={"expected_columns": BULK_UPLOAD_COLUMNS}
            )

        created = 0
        updated = 0
        errors: List[Dict[str, Any]] = []

        for index, row in enumerate(reader, start=2):
            if not any((value or "").strip() for value in row.values() if isinstance(value, str)):
                continue
            try:
                if self._upload_row(row):
                    created += 1
                else:
                    updated += 1
            except DomainError as e:
                errors.append({"row": index, "message": e.message})

        logger.info(f"Bulk mapping upload: {created} created, {updated} updated, {len(errors)} errors")
        return {"created": created, "updated": updated, "errors": errors}
