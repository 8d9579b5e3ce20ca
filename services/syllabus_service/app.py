"""
FastAPI service exposing syllabus assignments and collection settings.

The service opens the JSON-backed local library on startup and serves the
same operations the MCP server and CLI use, including the metadata import
endpoint importers post to.
"""
from __future__ import annotations

import logging
import typing as t
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from local_host import LocalLibrary
from services.shared.models import (AssignmentRequest, AssignmentUpdateRequest, AssignmentUpdateResponse,
                                    ClassCreateRequest, ClassCreateResponse, ClassGroup, ClassGroupsResponse,
                                    ClassMetadataUpdate, ItemAssignment, ItemOrderRequest, ItemSummary,
                                    Nomenclature, SetTalisMetadataRequest, SuccessResponse, SyllabusSettingsUpdate,
                                    SyllabusView)
from syllabus_data.config import SyllabusConfig
from syllabus_data.errors import CollectionNotFoundError, InvalidSettingsError, ItemNotFoundError
from syllabus_data.logging_config import configure_logging
from syllabus_data.manager import SyllabusManager
from syllabus_data.models import Assignment, ClassMetadata, SyllabusExport

logger = logging.getLogger(__name__)


def create_app(library: t.Optional[LocalLibrary] = None, config: t.Optional[SyllabusConfig] = None) -> FastAPI:
    """Build the application.

    Args:
        library: Library to serve. Defaults to the file at ``SYLLABUS_LIBRARY_PATH``.
        config: Engine configuration. Defaults to the environment.
    """
    config = config or SyllabusConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open the library and start the engine on startup, flush pending writes on shutdown."""
        app.state.library = library or LocalLibrary.load(config.library_path)
        app.state.manager = SyllabusManager(app.state.library.host, config)
        app.state.manager.initialize()

        yield

        await app.state.manager.shutdown()

    app = FastAPI(
        title="Syllabus Service",
        description="REST API for syllabus assignments, class metadata and collection settings",
        version="1.0.0",
        lifespan=lifespan,
    )
    _register_routes(app)
    return app


def get_manager(request: Request) -> SyllabusManager:
    return request.app.state.manager


def _item_assignment(entry) -> ItemAssignment:
    return ItemAssignment(item_id=entry.item.id, title=entry.item.title, assignment=entry.assignment)


def _syllabus_view(manager: SyllabusManager, collection_id: int) -> SyllabusView:
    collection = manager.require_collection(collection_id)
    forms = manager.settings.get_nomenclature_formatted(collection_id)
    return SyllabusView(
        collection_id=collection.id,
        title=collection.name,
        settings=manager.settings.get_settings(collection_id),
        priorities=manager.settings.get_priorities_for_collection(collection_id),
        nomenclature=Nomenclature(
            singular=forms.singular,
            plural=forms.plural,
            singular_capitalized=forms.singular_capitalized,
            plural_capitalized=forms.plural_capitalized,
        ),
        class_numbers=manager.get_full_class_number_range(collection_id),
    )


def _register_routes(app: FastAPI) -> None:
    @app.exception_handler(ItemNotFoundError)
    @app.exception_handler(CollectionNotFoundError)
    async def not_found_handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(InvalidSettingsError)
    async def invalid_settings_handler(request: Request, exc: InvalidSettingsError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.get("/health")
    async def health_check():
        """Health check endpoint for container orchestration."""
        return {"status": "healthy", "service": "syllabus-service"}

    # -----------------------------
    # Collection settings
    # -----------------------------

    @app.get("/collections/{collection_id}/syllabus", response_model=SyllabusView)
    async def get_syllabus(collection_id: int, manager: SyllabusManager = Depends(get_manager)) -> SyllabusView:
        return _syllabus_view(manager, collection_id)

    @app.patch("/collections/{collection_id}/syllabus", response_model=SyllabusView)
    async def update_syllabus(
        collection_id: int,
        request: SyllabusSettingsUpdate,
        manager: SyllabusManager = Depends(get_manager),
    ) -> SyllabusView:
        manager.require_collection(collection_id)
        changes = request.model_dump(exclude_unset=True)
        if "description" in changes:
            manager.settings.set_collection_description(collection_id, changes["description"] or "")
        if "nomenclature" in changes:
            manager.settings.set_nomenclature(collection_id, changes["nomenclature"] or "")
        if "locked" in changes:
            manager.settings.set_locked(collection_id, bool(changes["locked"]))
        if "priorities" in changes:
            manager.settings.set_priorities(collection_id, request.priorities or [])
        return _syllabus_view(manager, collection_id)

    @app.get("/collections/{collection_id}/export", response_model=SyllabusExport)
    async def export_syllabus(collection_id: int, manager: SyllabusManager = Depends(get_manager)) -> SyllabusExport:
        collection = manager.require_collection(collection_id)
        return manager.settings.export_metadata(collection_id, title=collection.name)

    # -----------------------------
    # Classes
    # -----------------------------

    @app.get("/collections/{collection_id}/classes", response_model=ClassGroupsResponse)
    async def list_classes(collection_id: int, manager: SyllabusManager = Depends(get_manager)) -> ClassGroupsResponse:
        manager.require_collection(collection_id)
        groups = manager.get_class_groups(collection_id)
        return ClassGroupsResponse(
            collection_id=collection_id,
            class_groups=[
                ClassGroup(
                    class_number=group.class_number,
                    metadata=group.metadata,
                    items=[_item_assignment(entry) for entry in group.item_assignments],
                )
                for group in groups.class_groups
            ],
            further_reading=[ItemSummary(id=item.id, title=item.title) for item in groups.further_reading],
        )

    @app.post("/collections/{collection_id}/classes", response_model=ClassCreateResponse,
              status_code=status.HTTP_201_CREATED)
    async def add_class(
        collection_id: int,
        request: ClassCreateRequest,
        manager: SyllabusManager = Depends(get_manager),
    ) -> ClassCreateResponse:
        manager.require_collection(collection_id)
        class_number = request.class_number
        if class_number is None:
            class_number = len(manager.get_full_class_number_range(collection_id)) + 1
        manager.settings.create_additional_class(collection_id, class_number)
        return ClassCreateResponse(class_number=class_number)

    @app.put("/collections/{collection_id}/classes/{class_number}", response_model=t.Optional[ClassMetadata])
    async def update_class(
        collection_id: int,
        class_number: int,
        request: ClassMetadataUpdate,
        manager: SyllabusManager = Depends(get_manager),
    ) -> t.Optional[ClassMetadata]:
        manager.require_collection(collection_id)
        changes = request.model_dump(exclude_unset=True)
        if "title" in changes:
            manager.settings.set_class_title(collection_id, class_number, changes["title"] or "")
        if "description" in changes:
            manager.settings.set_class_description(collection_id, class_number, changes["description"] or "")
        if "reading_date" in changes:
            manager.settings.set_class_reading_date(collection_id, class_number, changes["reading_date"])
        if "status" in changes:
            manager.settings.set_class_status(collection_id, class_number, changes["status"])
        return manager.settings.get_class_metadata(collection_id, class_number)

    @app.delete("/collections/{collection_id}/classes/{class_number}", response_model=SuccessResponse)
    async def delete_class(
        collection_id: int, class_number: int, manager: SyllabusManager = Depends(get_manager)
    ) -> SuccessResponse:
        manager.require_collection(collection_id)
        manager.settings.delete_class(collection_id, class_number)
        return SuccessResponse()

    @app.put("/collections/{collection_id}/classes/{class_number}/order", response_model=list[ItemAssignment])
    async def set_class_order(
        collection_id: int,
        class_number: int,
        request: ItemOrderRequest,
        manager: SyllabusManager = Depends(get_manager),
    ) -> list[ItemAssignment]:
        manager.require_collection(collection_id)
        manager.settings.set_class_item_order(collection_id, class_number, request.item_order)
        return [_item_assignment(e) for e in manager.get_all_class_assignments(collection_id, class_number)]

    # -----------------------------
    # Assignments
    # -----------------------------

    @app.get("/collections/{collection_id}/items/{item_id}/assignments", response_model=list[Assignment])
    async def list_assignments(
        collection_id: int, item_id: int, manager: SyllabusManager = Depends(get_manager)
    ) -> list[Assignment]:
        manager.require_collection(collection_id)
        manager.require_item(item_id)
        return manager.get_item_assignments(item_id, collection_id, sort=True)

    @app.post("/collections/{collection_id}/items/{item_id}/assignments", response_model=Assignment,
              status_code=status.HTTP_201_CREATED)
    async def create_assignment(
        collection_id: int,
        item_id: int,
        request: AssignmentRequest,
        manager: SyllabusManager = Depends(get_manager),
    ) -> Assignment:
        manager.require_collection(collection_id)
        assignment = await manager.add_assignment(item_id, collection_id, **request.model_dump())
        if assignment is None:
            raise HTTPException(status_code=422,
                                detail="An assignment needs a class number, priority or instruction")
        return assignment

    @app.patch("/collections/{collection_id}/items/{item_id}/assignments/{assignment_id}",
               response_model=AssignmentUpdateResponse)
    async def patch_assignment(
        collection_id: int,
        item_id: int,
        assignment_id: str,
        request: AssignmentUpdateRequest,
        manager: SyllabusManager = Depends(get_manager),
    ) -> AssignmentUpdateResponse:
        manager.require_collection(collection_id)
        existing = manager.get_item_assignments(manager.require_item(item_id), collection_id)
        if not any(a.id == assignment_id for a in existing):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Assignment not found: {assignment_id}")
        updated = await manager.update_assignment(
            item_id, collection_id, assignment_id, **request.model_dump(exclude_unset=True)
        )
        return AssignmentUpdateResponse(assignment=updated, removed=updated is None)

    @app.delete("/collections/{collection_id}/items/{item_id}/assignments/{assignment_id}",
                response_model=SuccessResponse)
    async def delete_assignment(
        collection_id: int,
        item_id: int,
        assignment_id: str,
        manager: SyllabusManager = Depends(get_manager),
    ) -> SuccessResponse:
        manager.require_collection(collection_id)
        if not await manager.remove_assignment_by_id(item_id, collection_id, assignment_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Assignment not found: {assignment_id}")
        return SuccessResponse()

    # -----------------------------
    # Import
    # -----------------------------

    @app.post("/syllabus/setTalisMetadata", response_model=SuccessResponse)
    async def set_talis_metadata(
        request: SetTalisMetadataRequest, manager: SyllabusManager = Depends(get_manager)
    ) -> SuccessResponse:
        """Merge imported syllabus metadata into a collection (the selected one by default)."""
        collection_id = request.collection_id
        if collection_id is None:
            selection = manager.host.selection
            selected = selection.get_selected_collection() if selection is not None else None
            if selected is None:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No collection selected")
            collection_id = selected.id
        manager.require_collection(collection_id)
        logger.info("Setting imported syllabus metadata for collection %s", collection_id)
        manager.settings.import_metadata(collection_id, request.metadata)
        return SuccessResponse()


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _config = SyllabusConfig.from_env()
    configure_logging(_config.log_level)
    uvicorn.run(app, host="0.0.0.0", port=_config.service_port)
