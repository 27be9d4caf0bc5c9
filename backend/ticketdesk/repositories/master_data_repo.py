"""Master Data Repository - Target groups, categories, subcategories, projects and mappings"""
import re
from typing import Any, Dict, List, Optional, Type, TypeVar
from pymongo.collection import Collection
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError
from pydantic import BaseModel

from .mongo_client import get_collection
from ..domain.models import (
    TargetBusinessGroup, Category, Subcategory, Project, ClassificationMapping
)
from ..domain.errors import AlreadyExistsError, MasterDataNotFoundError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _name_query(name: str) -> Dict[str, Any]:
    """Case-insensitive exact name match"""
    return {"name": {"$regex": f"^{re.escape(name.strip())}$", "$options": "i"}}


class MasterDataRepository:
    """Repository for ticket classification master data"""

    def __init__(self):
        self._target_groups: Collection = get_collection("target_business_groups")
        self._categories: Collection = get_collection("categories")
        self._subcategories: Collection = get_collection("subcategories")
        self._projects: Collection = get_collection("projects")
        self._mappings: Collection = get_collection("classification_mappings")

    # =========================================================================
    # Helpers
    # =========================================================================

    def _insert(self, collection: Collection, doc_id: str, record: ModelT) -> ModelT:
        doc = record.model_dump()
        doc["_id"] = doc_id
        try:
            collection.insert_one(doc)
        except DuplicateKeyError:
            raise AlreadyExistsError(f"{collection.name} record already exists", details={"id": doc_id})
        return record

    def _find_one(self, collection: Collection, query: Dict[str, Any], model: Type[ModelT]) -> Optional[ModelT]:
        doc = collection.find_one(query)
        if doc:
            doc.pop("_id", None)
            return model.model_validate(doc)
        return None

    def _find(
        self,
        collection: Collection,
        query: Dict[str, Any],
        model: Type[ModelT],
        sort_field: str = "name"
    ) -> List[ModelT]:
        items = []
        for doc in collection.find(query).sort(sort_field, ASCENDING):
            doc.pop("_id", None)
            items.append(model.model_validate(doc))
        return items

    # =========================================================================
    # Target Business Groups
    # =========================================================================

    def create_target_group(self, group: TargetBusinessGroup) -> TargetBusinessGroup:
        if self.get_target_group_by_name(group.name):
            raise AlreadyExistsError(f"Target business group '{group.name}' already exists")
        logger.info(f"Creating target business group: {group.name}")
        return self._insert(self._target_groups, group.group_id, group)

    def get_target_group(self, group_id: Optional[str]) -> Optional[TargetBusinessGroup]:
        if not group_id:
            return None
        return self._find_one(self._target_groups, {"group_id": group_id}, TargetBusinessGroup)

    def get_target_group_or_raise(self, group_id: str) -> TargetBusinessGroup:
        group = self.get_target_group(group_id)
        if not group:
            raise MasterDataNotFoundError(
                f"Target business group {group_id} not found",
                details={"target_business_group_id": group_id}
            )
        return group

    def get_target_group_by_name(self, name: str) -> Optional[TargetBusinessGroup]:
        return self._find_one(self._target_groups, _name_query(name), TargetBusinessGroup)

    def list_target_groups(self) -> List[TargetBusinessGroup]:
        return self._find(self._target_groups, {}, TargetBusinessGroup)

    # =========================================================================
    # Categories & Subcategories
    # =========================================================================

    def create_category(self, category: Category) -> Category:
        if self.get_category_by_name(category.name):
            raise AlreadyExistsError(f"Category '{category.name}' already exists")
        logger.info(f"Creating category: {category.name}")
        return self._insert(self._categories, category.category_id, category)

    def get_category(self, category_id: Optional[str]) -> Optional[Category]:
        if not category_id:
            return None
        return self._find_one(self._categories, {"category_id": category_id}, Category)

    def get_category_or_raise(self, category_id: str) -> Category:
        category = self.get_category(category_id)
        if not category:
            raise MasterDataNotFoundError(
                f"Category {category_id} not found",
                details={"category_id": category_id}
            )
        return category

    def get_category_by_name(self, name: str) -> Optional[Category]:
        return self._find_one(self._categories, _name_query(name), Category)

    def list_categories(self) -> List[Category]:
        return self._find(self._categories, {}, Category)

    def create_subcategory(self, subcategory: Subcategory) -> Subcategory:
        if self.get_subcategory_by_name(subcategory.category_id, subcategory.name):
            raise AlreadyExistsError(
                f"Subcategory '{subcategory.name}' already exists in this category",
                details={"category_id": subcategory.category_id}
            )
        logger.info(f"Creating subcategory: {subcategory.name}")
        return self._insert(self._subcategories, subcategory.subcategory_id, subcategory)

    def get_subcategory(self, subcategory_id: Optional[str]) -> Optional[Subcategory]:
        if not subcategory_id:
            return None
        return self._find_one(self._subcategories, {"subcategory_id": subcategory_id}, Subcategory)

    def get_subcategory_or_raise(self, subcategory_id: str) -> Subcategory:
        subcategory = self.get_subcategory(subcategory_id)
        if not subcategory:
            raise MasterDataNotFoundError(
                f"Subcategory {subcategory_id} not found",
                details={"subcategory_id": subcategory_id}
            )
        return subcategory

    def get_subcategory_by_name(self, category_id: str, name: str) -> Optional[Subcategory]:
        query = _name_query(name)
        query["category_id"] = category_id
        return self._find_one(self._subcategories, query, Subcategory)

    def list_subcategories(self, category_id: Optional[str] = None) -> List[Subcategory]:
        query = {"category_id": category_id} if category_id else {}
        return self._find(self._subcategories, query, Subcategory)

    # =========================================================================
    # Projects
    # =========================================================================

    def create_project(self, project: Project) -> Project:
        if self.get_project_by_name(project.name):
            raise AlreadyExistsError(f"Project '{project.name}' already exists")
        logger.info(f"Creating project: {project.name}")
        return self._insert(self._projects, project.project_id, project)

    def get_project(self, project_id: Optional[str]) -> Optional[Project]:
        if not project_id:
            return None
        return self._find_one(self._projects, {"project_id": project_id}, Project)

    def get_project_or_raise(self, project_id: str) -> Project:
        project = self.get_project(project_id)
        if not project:
            raise MasterDataNotFoundError(
                f"Project {project_id} not found",
                details={"project_id": project_id}
            )
        return project

    def get_project_by_name(self, name: str) -> Optional[Project]:
        return self._find_one(self._projects, _name_query(name), Project)

    def list_projects(self) -> List[Project]:
        return self._find(self._projects, {}, Project)

    # =========================================================================
    # Classification Mappings
    # =========================================================================

    def create_mapping(self, mapping: ClassificationMapping) -> ClassificationMapping:
        existing = self.find_mapping(
            mapping.target_business_group_id, mapping.category_id, mapping.subcategory_id
        )
        if existing:
            raise AlreadyExistsError(
                "A mapping for this target group, category and subcategory already exists",
                details={"mapping_id": existing.mapping_id}
            )
        logger.info(f"Creating classification mapping: {mapping.mapping_id}")
        return self._insert(self._mappings, mapping.mapping_id, mapping)

    def get_mapping(self, mapping_id: str) -> Optional[ClassificationMapping]:
        return self._find_one(self._mappings, {"mapping_id": mapping_id}, ClassificationMapping)

    def get_mapping_or_raise(self, mapping_id: str) -> ClassificationMapping:
        mapping = self.get_mapping(mapping_id)
        if not mapping:
            raise MasterDataNotFoundError(
                f"Mapping {mapping_id} not found",
                details={"mapping_id": mapping_id}
            )
        return mapping

    def find_mapping(
        self,
        target_business_group_id: str,
        category_id: str,
        subcategory_id: Optional[str]
    ) -> Optional[ClassificationMapping]:
        """Find the mapping for an exact (group, category, subcategory) key"""
        return self._find_one(
            self._mappings,
            {
                "target_business_group_id": target_business_group_id,
                "category_id": category_id,
                "subcategory_id": subcategory_id
            },
            ClassificationMapping
        )

    def list_mappings(self, target_business_group_id: Optional[str] = None) -> List[ClassificationMapping]:
        """List mappings, oldest first"""
        query = {"target_business_group_id": target_business_group_id} if target_business_group_id else {}
        return self._find(self._mappings, query, ClassificationMapping, sort_field="created_at")

    def update_mapping(self, mapping_id: str, updates: Dict[str, Any]) -> ClassificationMapping:
        updates["updated_at"] = utc_now()

        try:
            result = self._mappings.find_one_and_update(
                {"mapping_id": mapping_id},
                {"$set": updates},
                return_document=True
            )
        except DuplicateKeyError:
            raise AlreadyExistsError("A mapping for this target group, category and subcategory already exists")

        if result is None:
            raise MasterDataNotFoundError(f"Mapping {mapping_id} not found", details={"mapping_id": mapping_id})

        result.pop("_id", None)
        logger.info(f"Updated classification mapping: {mapping_id}")
        return ClassificationMapping.model_validate(result)

    def delete_mapping(self, mapping_id: str) -> None:
        result = self._mappings.delete_one({"mapping_id": mapping_id})
        if result.deleted_count == 0:
            raise MasterDataNotFoundError(f"Mapping {mapping_id} not found", details={"mapping_id": mapping_id})
        logger.info(f"Deleted classification mapping: {mapping_id}")
