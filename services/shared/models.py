"""
Request and response models for the syllabus REST API.

Persisted shapes (assignments, collection settings, class metadata) are
reused from ``syllabus_data.models`` so the API speaks the same camelCase
JSON that is stored on items and in preferences.
"""
from __future__ import annotations

import typing as t

from pydantic import BaseModel, ConfigDict, Field

from syllabus_data.models import Assignment, ClassMetadata, CollectionSettings, CustomPriority


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class AssignmentRequest(_Request):
    """Fields of a new assignment. At least one must be set."""
    class_number: t.Optional[int] = Field(default=None, alias="classNumber")
    priority: t.Optional[str] = None
    class_instruction: t.Optional[str] = Field(default=None, alias="classInstruction")
    status: t.Optional[t.Literal["done"]] = None


class AssignmentUpdateRequest(AssignmentRequest):
    """
    Partial update of an assignment.

    Only fields present in the request body change; an explicit ``null``
    clears the field.
    """


class AssignmentUpdateResponse(BaseModel):
    assignment: t.Optional[Assignment] = None
    removed: bool = False


class ItemAssignment(BaseModel):
    item_id: int
    title: str
    assignment: Assignment


class ItemSummary(BaseModel):
    id: int
    title: str


class ClassGroup(BaseModel):
    class_number: t.Optional[int] = None
    metadata: t.Optional[ClassMetadata] = None
    items: list[ItemAssignment] = Field(default_factory=list)


class ClassGroupsResponse(BaseModel):
    collection_id: int
    class_groups: list[ClassGroup] = Field(default_factory=list)
    further_reading: list[ItemSummary] = Field(default_factory=list)


class Nomenclature(BaseModel):
    singular: str
    plural: str
    singular_capitalized: str
    plural_capitalized: str


class SyllabusView(BaseModel):
    """Everything a syllabus page header needs for one collection."""
    collection_id: int
    title: str
    settings: CollectionSettings
    priorities: list[CustomPriority]
    nomenclature: Nomenclature
    class_numbers: list[int] = Field(default_factory=list)


class SyllabusSettingsUpdate(_Request):
    """Partial update of collection settings; absent fields are left unchanged."""
    description: t.Optional[str] = None
    nomenclature: t.Optional[str] = None
    locked: t.Optional[bool] = None
    priorities: t.Optional[list[CustomPriority]] = None


class ClassCreateRequest(_Request):
    """Create a class; without a number the next one after the current range is used."""
    class_number: t.Optional[int] = Field(default=None, alias="classNumber", ge=1)


class ClassCreateResponse(BaseModel):
    class_number: int


class ClassMetadataUpdate(_Request):
    """Partial update of a class; absent fields are left unchanged, ``null`` clears."""
    title: t.Optional[str] = None
    description: t.Optional[str] = None
    reading_date: t.Optional[str] = Field(default=None, alias="readingDate")
    status: t.Optional[t.Literal["done"]] = None


class ItemOrderRequest(_Request):
    item_order: list[str] = Field(alias="itemOrder")


class SetTalisMetadataRequest(_Request):
    """Metadata pushed by an importer; without a collection ID the selected collection is used."""
    collection_id: t.Optional[int] = Field(default=None, alias="collectionId")
    metadata: dict[str, t.Any]


class SuccessResponse(BaseModel):
    success: bool = True
