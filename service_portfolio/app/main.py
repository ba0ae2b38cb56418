"""
Portfolio service for the Portfolio Access Layer.

Serves the shaped portfolio document to the public site and the entity CRUD,
history and cache administration endpoints to the admin UI.
"""

import uuid
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import NotFoundError
from shared.retry import RetryConfig

from .cache.accessor import PortfolioDataAccessor
from .cache.memory_cache import MemoryCacheProvider
from .cache.refresh import CacheRefreshManager
from .persistence import VersionedStore, create_store
from .portfolio.data import PortfolioDataService
from .portfolio.models import (
    PROFILE_KEY, BulkOrderRequest, CacheStatusResponse, ExperienceCreateRequest,
    ExperienceUpdateRequest, PortfolioResponse, ProfileUpdateRequest,
    ProjectCreateRequest, ProjectImageInput, ProjectImageUpdateRequest,
    ProjectUpdateRequest, RecordType, SkillCreateRequest, SkillUpdateRequest,
    project_image_key, skill_key, experience_key,
)


SERVICE_NAME = "portfolio"
SERVICE_PORT = 8020


def _found(value: Optional[Dict[str, Any]], entity: str, identifier: str) -> Dict[str, Any]:
    if value is None:
        raise NotFoundError(f"{entity} not found", {"id": identifier})
    return value


class PortfolioService(BaseService):
    """Portfolio service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        store: Optional[VersionedStore] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config or get_config(SERVICE_NAME, SERVICE_PORT))

        self.store = store or create_store(self.config)
        self.data_service = PortfolioDataService(self.store)
        self.cache = MemoryCacheProvider()
        self.accessor = PortfolioDataAccessor(self.data_service, self.cache, self.config, self.metrics)
        self.refresh_manager = CacheRefreshManager(
            self.accessor,
            self.store,
            self.config,
            metrics=self.metrics,
            retry_config=retry_config,
        )

        self._setup_portfolio_routes()

    def _setup_portfolio_routes(self):
        """Set up portfolio-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Portfolio Access Layer - Portfolio Service",
                "version": "1.0.0",
                "cache_enabled": self.config.cache_enabled,
            }

        @self.app.get("/api/portfolio/data", response_model=PortfolioResponse)
        async def get_portfolio_data():
            """Shaped portfolio document for the public site."""
            return await self.accessor.get_portfolio_data()

        # Profile

        @self.app.get("/api/profile")
        async def get_profile():
            return _found(await self.data_service.get_profile(), "Profile", PROFILE_KEY)

        @self.app.put("/api/profile")
        async def update_profile(request: ProfileUpdateRequest):
            profile = await self.data_service.set_profile(request.model_dump(mode="json"))
            self.accessor.update_cache_item(PROFILE_KEY, profile, RecordType.PROFILE)
            return profile

        # Skills

        @self.app.get("/api/skills")
        async def list_skills(
            category: Optional[str] = Query(None, description="Filter by category"),
            featured: Optional[bool] = Query(None, description="Only featured skills"),
        ):
            if featured:
                skills = await self.data_service.get_featured_skills()
            else:
                skills = await self.data_service.get_all_skills()
            if category:
                skills = [skill for skill in skills if skill.get("category") == category]
            return skills

        @self.app.post("/api/skills", status_code=201)
        async def create_skill(request: SkillCreateRequest):
            skill = request.model_dump(mode="json")
            skill["id"] = skill.get("id") or str(uuid.uuid4())
            created = await self.data_service.create_skill(skill)
            self.accessor.update_cache_item(skill_key(created["id"]), created, RecordType.SKILL)
            return created

        @self.app.get("/api/skills/categories/list")
        async def list_skill_categories():
            return {"categories": await self.data_service.get_skill_categories()}

        @self.app.put("/api/skills/order/bulk")
        async def reorder_skills(request: BulkOrderRequest):
            updated = await self.data_service.update_skills_order(request.model_dump()["items"])
            await self.refresh_manager.force_refresh()
            return {"updated": updated}

        @self.app.get("/api/skills/{skill_id}")
        async def get_skill(skill_id: str):
            return _found(await self.data_service.get_skill(skill_id), "Skill", skill_id)

        @self.app.put("/api/skills/{skill_id}")
        async def update_skill(skill_id: str, request: SkillUpdateRequest):
            skill = await self.data_service.update_skill(skill_id, request.model_dump(mode="json", exclude_unset=True))
            self.accessor.update_cache_item(skill_key(skill_id), skill, RecordType.SKILL)
            return skill

        @self.app.delete("/api/skills/{skill_id}")
        async def delete_skill(skill_id: str):
            await self.data_service.delete_skill(skill_id)
            self.accessor.delete_cache_item(skill_key(skill_id))
            return {"message": "Skill deleted", "id": skill_id}

        # Experiences

        @self.app.get("/api/experiences")
        async def list_experiences():
            return await self.data_service.get_all_experiences()

        @self.app.post("/api/experiences", status_code=201)
        async def create_experience(request: ExperienceCreateRequest):
            experience = request.model_dump(mode="json")
            experience["id"] = experience.get("id") or str(uuid.uuid4())
            created = await self.data_service.create_experience(experience)
            await self.refresh_manager.force_refresh()
            return created

        @self.app.put("/api/experiences/order/bulk")
        async def reorder_experiences(request: BulkOrderRequest):
            updated = await self.data_service.update_experiences_order(request.model_dump()["items"])
            await self.refresh_manager.force_refresh()
            return {"updated": updated}

        @self.app.get("/api/experiences/{experience_id}")
        async def get_experience(experience_id: str):
            return _found(await self.data_service.get_experience(experience_id), "Experience", experience_id)

        @self.app.put("/api/experiences/{experience_id}")
        async def update_experience(experience_id: str, request: ExperienceUpdateRequest):
            """Update an experience; a supplied ``achievements`` list replaces the stored one."""
            patch = request.model_dump(mode="json", exclude_unset=True)
            achievements = patch.pop("achievements", None)

            if achievements is None:
                experience = await self.data_service.update_experience(experience_id, patch)
                self.accessor.update_cache_item(experience_key(experience_id), experience, RecordType.EXPERIENCE)
                return await self.data_service.get_experience(experience_id)

            experience = await self.data_service.update_experience_with_achievements(
                experience_id, patch, achievements
            )
            await self.refresh_manager.force_refresh()
            return experience

        @self.app.delete("/api/experiences/{experience_id}")
        async def delete_experience(experience_id: str):
            await self.data_service.delete_experience(experience_id)
            await self.refresh_manager.force_refresh()
            return {"message": "Experience deleted", "id": experience_id}

        # Projects

        @self.app.get("/api/projects")
        async def list_projects(
            status: Optional[str] = Query(None, description="Filter by status"),
            featured: Optional[bool] = Query(None, description="Only featured projects"),
        ):
            if status:
                projects = await self.data_service.get_projects_by_status(status)
            else:
                projects = await self.data_service.get_all_projects()
            if featured:
                projects = [project for project in projects if project.get("is_featured") is True]
            return projects

        @self.app.post("/api/projects", status_code=201)
        async def create_project(request: ProjectCreateRequest):
            project = request.model_dump(mode="json")
            project["id"] = project.get("id") or str(uuid.uuid4())
            created = await self.data_service.create_project(project)
            await self.refresh_manager.force_refresh()
            return created

        @self.app.put("/api/projects/order/bulk")
        async def reorder_projects(request: BulkOrderRequest):
            updated = await self.data_service.update_projects_order(request.model_dump()["items"])
            await self.refresh_manager.force_refresh()
            return {"updated": updated}

        @self.app.put("/api/projects/images/{image_id}")
        async def update_project_image(image_id: str, request: ProjectImageUpdateRequest):
            image = await self.data_service.update_project_image(
                image_id, request.model_dump(mode="json", exclude_unset=True)
            )
            self.accessor.update_cache_item(project_image_key(image_id), image, RecordType.PROJECT_IMAGE)
            return image

        @self.app.delete("/api/projects/images/{image_id}")
        async def delete_project_image(image_id: str):
            await self.data_service.delete_project_image(image_id)
            self.accessor.delete_cache_item(project_image_key(image_id))
            return {"message": "Project image deleted", "id": image_id}

        @self.app.get("/api/projects/{identifier}")
        async def get_project(identifier: str):
            """Fetch a project by id, falling back to slug."""
            project = await self.data_service.get_project(identifier)
            if project is None:
                project = await self.data_service.get_project_by_slug(identifier)
            return _found(project, "Project", identifier)

        @self.app.put("/api/projects/{project_id}")
        async def update_project(project_id: str, request: ProjectUpdateRequest):
            project = await self.data_service.update_project(
                project_id, request.model_dump(mode="json", exclude_unset=True)
            )
            await self.refresh_manager.force_refresh()
            return project

        @self.app.delete("/api/projects/{project_id}")
        async def delete_project(project_id: str):
            await self.data_service.delete_project(project_id)
            await self.refresh_manager.force_refresh()
            return {"message": "Project deleted", "id": project_id}

        @self.app.post("/api/projects/{project_id}/images", status_code=201)
        async def create_project_image(project_id: str, request: ProjectImageInput):
            image = await self.data_service.create_project_image(project_id, request.model_dump(mode="json"))
            self.accessor.update_cache_item(project_image_key(image["id"]), image, RecordType.PROJECT_IMAGE)
            return image

        # Administration

        @self.app.get("/api/admin/history/{key}")
        async def get_history(key: str) -> List[Dict[str, Any]]:
            history = await self.data_service.get_item_history(key)
            if not history:
                raise NotFoundError("No history for key", {"key": key})
            return history

        @self.app.post("/api/admin/rollback/{key}/{version}")
        async def rollback(key: str, version: int):
            record = await self.data_service.rollback_item(key, version)
            self.accessor.update_cache_item(key, record["value"], RecordType(record["type"]))
            return record

        @self.app.get("/api/admin/stats")
        async def dashboard_stats():
            return await self.data_service.get_dashboard_stats()

        @self.app.get("/api/admin/export")
        async def export_data():
            """Backup of every active record, read from the store."""
            return await self.data_service.export_all_data()

        @self.app.get("/api/admin/cache/status", response_model=CacheStatusResponse)
        async def cache_status():
            return {**self.accessor.get_cache_status(), **self.refresh_manager.status()}

        @self.app.get("/api/admin/cache/keys")
        async def cache_keys():
            return self.accessor.list_cache_keys()

        @self.app.post("/api/admin/cache/clear")
        async def clear_cache():
            cleared = await self.refresh_manager.clear_cache()
            return {"message": "Cache cleared", "cleared": cleared}

        @self.app.post("/api/admin/cache/refresh")
        async def refresh_cache():
            refreshed = await self.refresh_manager.force_refresh()
            return {"refreshed": refreshed, **self.refresh_manager.status()}

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check portfolio service dependencies."""
        dependencies = {}

        try:
            dependencies["store"] = "ok" if await self.store.health_check() else "error"
        except Exception:
            dependencies["store"] = "error"

        return dependencies

    async def start(self):
        """Start portfolio service components."""
        await self.store.start()
        await self.refresh_manager.initialize()
        self.logger.info("Portfolio service started", cache_enabled=self.config.cache_enabled)

    async def stop(self):
        """Stop portfolio service components."""
        await self.refresh_manager.shutdown()
        await self.store.stop()
        self.logger.info("Portfolio service stopped")


def create_app(
    config: Optional[ServiceConfig] = None,
    store: Optional[VersionedStore] = None,
) -> FastAPI:
    """Create portfolio service application."""
    service = PortfolioService(config=config, store=store)
    return service.app


if __name__ == "__main__":
    service = PortfolioService()
    service.run()
